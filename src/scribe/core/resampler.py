"""
Sample-rate and channel conversion to the canonical mono 16 kHz format.

Two deterministic methods are available:
- "polyphase": band-limited polyphase filtering (scipy.signal.resample_poly)
- "linear": linear interpolation (numpy.interp), cheaper and lower quality

The output length is always round(frames * target_rate / rate), so the
duration of the input is preserved to within one output sample period.
"""

import logging
import math
from fractions import Fraction

import numpy as np
from scipy import signal

from scribe.core.errors import ConversionFailedError
from scribe.core.types import TARGET_SAMPLE_RATE

logger = logging.getLogger(__name__)

RESAMPLE_METHODS = ("polyphase", "linear")

# Bounds the polyphase filter length for awkward fractional rates
_MAX_RATIO_DENOMINATOR = 4096


def downmix(samples: np.ndarray, channels: int) -> np.ndarray:
    """
    Average interleaved channels into mono.

    A trailing partial frame (fewer than ``channels`` samples) is dropped.
    """
    if channels <= 1:
        return samples
    frames = len(samples) // channels
    if frames * channels != len(samples):
        logger.debug(
            f"Dropping {len(samples) - frames * channels} trailing sample(s) "
            f"that do not form a whole {channels}-channel frame"
        )
    interleaved = samples[: frames * channels].reshape(frames, channels)
    return interleaved.mean(axis=1, dtype=np.float64).astype(np.float32)


def expected_length(frame_count: int, rate: float, target_rate: int = TARGET_SAMPLE_RATE) -> int:
    """Number of output samples that preserves the input duration."""
    return int(round(frame_count * target_rate / rate))


def _fit_length(samples: np.ndarray, length: int) -> np.ndarray:
    if len(samples) >= length:
        return samples[:length]
    pad_value = samples[-1] if len(samples) else 0.0
    return np.concatenate(
        [samples, np.full(length - len(samples), pad_value, dtype=samples.dtype)]
    )


def _polyphase(mono: np.ndarray, rate: float, target_rate: int, length: int) -> np.ndarray:
    ratio = (Fraction(target_rate) / Fraction(rate)).limit_denominator(_MAX_RATIO_DENOMINATOR)
    up, down = ratio.numerator, ratio.denominator
    if up == down:
        return _fit_length(mono, length)
    resampled = signal.resample_poly(mono.astype(np.float64), up, down)
    return _fit_length(resampled, length)


def _linear(mono: np.ndarray, rate: float, target_rate: int, length: int) -> np.ndarray:
    positions = np.arange(length, dtype=np.float64) * (rate / target_rate)
    positions = np.minimum(positions, len(mono) - 1)
    return np.interp(positions, np.arange(len(mono), dtype=np.float64), mono)


def resample(
    samples: np.ndarray,
    rate: float,
    channels: int = 1,
    target_rate: int = TARGET_SAMPLE_RATE,
    method: str = "polyphase",
    source: str | None = None,
) -> np.ndarray:
    """
    Convert a source buffer to mono float32 at ``target_rate``.

    Args:
        samples: Interleaved float32 samples at the native rate
        rate: Observed native sample rate in Hz
        channels: Channel count of the interleaved input
        target_rate: Output sample rate (16000 for the canonical format)
        method: "polyphase" or "linear"
        source: Source name, attached to errors for the caller

    Returns:
        Mono float32 array clamped to [-1, 1]

    Raises:
        ConversionFailedError: On an invalid rate, channel count or method
    """
    if method not in RESAMPLE_METHODS:
        raise ConversionFailedError(f"Unknown resample method: {method!r}", source)
    if channels < 1:
        raise ConversionFailedError(f"Invalid channel count: {channels}", source)
    if not math.isfinite(rate) or rate <= 0:
        raise ConversionFailedError(f"Invalid sample rate: {rate}", source)

    samples = np.asarray(samples, dtype=np.float32)
    if len(samples) == 0:
        return np.zeros(0, dtype=np.float32)

    if rate == target_rate and channels == 1:
        return samples

    mono = downmix(samples, channels)
    if len(mono) == 0:
        return np.zeros(0, dtype=np.float32)
    if rate == target_rate:
        return mono

    length = expected_length(len(mono), rate, target_rate)
    if length == 0:
        return np.zeros(0, dtype=np.float32)

    try:
        if method == "polyphase":
            converted = _polyphase(mono, rate, target_rate, length)
        else:
            converted = _linear(mono, rate, target_rate, length)
    except (ValueError, MemoryError) as e:
        raise ConversionFailedError(f"Resampling from {rate} Hz failed: {e}", source) from e

    logger.debug(
        f"Resampled {source or 'audio'} from {rate:g} Hz x{channels} to "
        f"{target_rate} Hz mono ({len(samples)} -> {len(converted)} samples)"
    )
    return np.clip(converted, -1.0, 1.0).astype(np.float32)
