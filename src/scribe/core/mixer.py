"""Mixing and level adjustment of canonical buffers."""

import logging

import numpy as np

logger = logging.getLogger(__name__)


def mix(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Mix two canonical buffers (e.g. microphone + system) by summing and clamping.

    The shorter buffer is zero-padded. There is no averaging, so a single
    active source keeps its level when the other one is silent.
    """
    if len(a) == 0:
        return b
    if len(b) == 0:
        return a

    length = max(len(a), len(b))
    result = np.zeros(length, dtype=np.float32)
    result[: len(a)] += a
    result[: len(b)] += b
    return np.clip(result, -1.0, 1.0, out=result)


def normalize_peak(samples: np.ndarray, target_peak: float = 0.9) -> np.ndarray:
    """
    Peak-normalize samples so the loudest peak reaches ``target_peak``.

    Only ever amplifies: a signal whose peak already meets the target, an
    all-zero signal and an empty signal are returned unchanged.
    """
    if len(samples) == 0:
        return samples

    peak = float(np.max(np.abs(samples)))
    if peak == 0:
        return samples

    gain = target_peak / peak
    if gain <= 1.0:
        logger.debug(f"Peak {peak:.4f} already above target, skipping normalization")
        return samples

    logger.debug(f"Normalized: peak {peak:.4f} -> {target_peak:.4f} (gain: {gain:.1f}x)")
    return np.clip(samples * gain, -1.0, 1.0).astype(np.float32)
