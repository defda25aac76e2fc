"""
Energy-based silence removal for canonical buffers.

The signal is cut into fixed windows (the last one may be short). A window
is kept when its RMS reaches the threshold; each kept window also keeps its
neighbours so transients at segment edges are not clipped. Dropped windows
are removed entirely rather than replaced with silence.
"""

import logging

import numpy as np

from scribe.core.types import TARGET_SAMPLE_RATE

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 1600  # 100 ms at 16 kHz
DEFAULT_THRESHOLD = 0.01
DEFAULT_PADDING_WINDOWS = 1


def window_rms(samples: np.ndarray, window_size: int) -> np.ndarray:
    """RMS of each consecutive window, including a trailing partial one."""
    total_windows = -(-len(samples) // window_size)
    padded = np.zeros(total_windows * window_size, dtype=np.float64)
    padded[: len(samples)] = samples
    sums = np.square(padded).reshape(total_windows, window_size).sum(axis=1)

    counts = np.full(total_windows, window_size, dtype=np.float64)
    remainder = len(samples) % window_size
    if remainder:
        counts[-1] = remainder
    return np.sqrt(sums / counts)


def keep_mask(
    rms: np.ndarray, threshold: float, padding_windows: int = DEFAULT_PADDING_WINDOWS
) -> np.ndarray:
    """Windows at or above threshold, dilated by ``padding_windows`` per side."""
    voiced = rms >= threshold
    padded = voiced.copy()
    for shift in range(1, padding_windows + 1):
        padded[:-shift] |= voiced[shift:]
        padded[shift:] |= voiced[:-shift]
    return padded


def trim_silence(
    samples: np.ndarray,
    window_size: int = DEFAULT_WINDOW_SIZE,
    threshold: float = DEFAULT_THRESHOLD,
    padding_windows: int = DEFAULT_PADDING_WINDOWS,
    sample_rate: int = TARGET_SAMPLE_RATE,
) -> np.ndarray:
    """
    Remove low-energy windows from a canonical buffer.

    Args:
        samples: Mono float32 samples
        window_size: Samples per analysis window (1600 = 100 ms at 16 kHz)
        threshold: Minimum RMS for a window to count as voiced
        padding_windows: Neighbouring windows kept on each side of a voiced one
        sample_rate: Only used to report removed duration

    Returns:
        Kept windows concatenated in their original order
    """
    if window_size <= 0:
        raise ValueError(f"window_size must be positive, got {window_size}")
    if padding_windows < 0:
        raise ValueError(f"padding_windows must be >= 0, got {padding_windows}")

    if len(samples) == 0:
        return np.zeros(0, dtype=np.float32)

    mask = keep_mask(window_rms(samples, window_size), threshold, padding_windows)
    if mask.all():
        return samples

    sample_mask = np.repeat(mask, window_size)[: len(samples)]
    result = np.asarray(samples[sample_mask], dtype=np.float32)

    removed_duration = (len(samples) - len(result)) / sample_rate
    if removed_duration > 0.1:
        logger.debug(f"Removed {removed_duration:.1f}s of silence")

    return result
