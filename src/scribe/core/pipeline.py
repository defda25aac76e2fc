"""
Offline conditioning of captured streams into the final canonical buffer.

resample (per source) -> mix -> optional peak normalization -> trim silence

Runs single-threaded on immutable snapshots once the capture session is
closed. A conversion failure on one source is logged and that source is
skipped; processing continues with the other.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np

from scribe.core.errors import ConversionFailedError
from scribe.core.mixer import mix, normalize_peak
from scribe.core.resampler import resample
from scribe.core.trimmer import (
    DEFAULT_PADDING_WINDOWS,
    DEFAULT_THRESHOLD,
    DEFAULT_WINDOW_SIZE,
    trim_silence,
)
from scribe.core.types import TARGET_SAMPLE_RATE, AudioStream, empty_canonical

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineSettings:
    """Explicit parameters for the conditioning stages."""

    resample_method: str = "polyphase"
    silence_window: int = DEFAULT_WINDOW_SIZE
    silence_threshold: float = DEFAULT_THRESHOLD
    silence_padding_windows: int = DEFAULT_PADDING_WINDOWS
    trim_silence: bool = True
    normalize: bool = False
    normalize_peak: float = 0.9


def convert_stream(stream: AudioStream, settings: PipelineSettings) -> np.ndarray:
    """Resample one captured stream to canonical mono."""
    converted = resample(
        stream.samples,
        stream.sample_rate,
        channels=stream.channels,
        target_rate=TARGET_SAMPLE_RATE,
        method=settings.resample_method,
        source=stream.source.value,
    )
    logger.debug(
        f"Resampled {stream.source.value} ({stream.sample_rate:g} Hz -> "
        f"{TARGET_SAMPLE_RATE / 1000:g} kHz): {len(converted)} samples "
        f"({len(converted) / TARGET_SAMPLE_RATE:.1f}s)"
    )
    return converted


def finalize(
    streams: Iterable[AudioStream],
    settings: PipelineSettings | None = None,
) -> np.ndarray:
    """
    Turn captured streams into one trimmed canonical buffer.

    Args:
        streams: Snapshots of the microphone and/or system streams
        settings: Conditioning parameters (defaults when None)

    Returns:
        Mono float32 buffer at the target rate; empty when nothing was captured

    Raises:
        ConversionFailedError: Only when every non-empty stream failed to convert
    """
    settings = settings or PipelineSettings()
    streams = list(streams)
    logger.debug(
        "Raw samples - "
        + ", ".join(f"{s.source.value}: {len(s.samples)}" for s in streams)
    )

    converted: list[np.ndarray] = []
    failures: list[ConversionFailedError] = []
    for stream in streams:
        if stream.is_empty:
            continue
        try:
            converted.append(convert_stream(stream, settings))
        except ConversionFailedError as e:
            logger.warning(f"Failed to resample {stream.source.value} audio: {e}")
            failures.append(e)

    if failures and not converted:
        raise failures[0]

    mixed = empty_canonical()
    for buffer in converted:
        mixed = mix(mixed, buffer)

    if len(mixed) == 0:
        logger.warning("No audio samples captured")
        return empty_canonical()

    if len(converted) > 1:
        logger.debug(f"Mixed audio: {len(mixed)} samples")

    if settings.normalize:
        mixed = normalize_peak(mixed, settings.normalize_peak)

    if settings.trim_silence:
        mixed = trim_silence(
            mixed,
            window_size=settings.silence_window,
            threshold=settings.silence_threshold,
            padding_windows=settings.silence_padding_windows,
            sample_rate=TARGET_SAMPLE_RATE,
        )

    duration = len(mixed) / TARGET_SAMPLE_RATE
    logger.info(f"Final audio: {len(mixed)} samples ({duration:.1f}s)")
    return np.asarray(mixed, dtype=np.float32)
