"""Value types shared by the capture and conditioning pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np

# Canonical format expected by the speech-to-text engine
TARGET_SAMPLE_RATE = 16000
TARGET_CHANNELS = 1


class SourceTag(str, Enum):
    """Live audio source."""

    MICROPHONE = "microphone"
    SYSTEM = "system"


@dataclass(frozen=True)
class FrameFormat:
    """
    Format descriptor delivered with every captured frame.

    Attributes:
        sample_rate: Native sample rate of the frame in Hz
        bits_per_sample: Bit depth of one sample (8, 16, 24, 32 or 64)
        is_float: True for IEEE float samples
        is_signed: True for signed integer samples (ignored for float)
        channels: Number of channels in the frame
        interleaved: False when each channel occupies its own contiguous plane
    """

    sample_rate: float
    bits_per_sample: int = 16
    is_float: bool = False
    is_signed: bool = True
    channels: int = 1
    interleaved: bool = True

    @property
    def bytes_per_sample(self) -> int:
        return self.bits_per_sample // 8


@dataclass(frozen=True)
class AudioStream:
    """Immutable snapshot of one source's captured samples."""

    source: SourceTag
    sample_rate: float
    channels: int
    samples: np.ndarray = field(repr=False)

    @property
    def frame_count(self) -> int:
        if self.channels <= 0:
            return 0
        return len(self.samples) // self.channels

    @property
    def duration(self) -> float:
        """Duration in seconds at the observed native rate."""
        if self.sample_rate <= 0:
            return 0.0
        return self.frame_count / self.sample_rate

    @property
    def is_empty(self) -> bool:
        return len(self.samples) == 0


def empty_canonical() -> np.ndarray:
    """Return an empty canonical buffer."""
    return np.zeros(0, dtype=np.float32)
