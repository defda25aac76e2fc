"""Tests for mixing and peak normalization."""

from __future__ import annotations

import numpy as np
import pytest

from scribe.core.mixer import mix, normalize_peak


def test_mix_with_empty_is_identity() -> None:
    a = np.array([0.1, -0.2, 0.3], dtype=np.float32)
    empty = np.zeros(0, dtype=np.float32)

    np.testing.assert_array_equal(mix(a, empty), a)
    np.testing.assert_array_equal(mix(empty, a), a)


def test_mix_sums_and_pads_shorter_input() -> None:
    a = np.array([0.1, 0.2, 0.3], dtype=np.float32)
    b = np.array([0.5], dtype=np.float32)

    out = mix(a, b)
    assert len(out) == 3
    np.testing.assert_allclose(out, [0.6, 0.2, 0.3], rtol=1e-6)


def test_mix_does_not_average() -> None:
    voice = np.full(10, 0.4, dtype=np.float32)
    silence = np.zeros(10, dtype=np.float32)

    np.testing.assert_allclose(mix(voice, silence), voice)


def test_mix_is_clamped() -> None:
    a = np.array([0.8, -0.8, 0.5], dtype=np.float32)
    b = np.array([0.8, -0.8, -0.2], dtype=np.float32)

    out = mix(a, b)
    np.testing.assert_allclose(out, [1.0, -1.0, 0.3], rtol=1e-6)
    assert np.max(np.abs(out)) <= 1.0


def test_mix_does_not_modify_inputs() -> None:
    a = np.array([0.9, 0.9], dtype=np.float32)
    b = np.array([0.9, 0.9], dtype=np.float32)
    mix(a, b)

    np.testing.assert_array_equal(a, np.array([0.9, 0.9], dtype=np.float32))


def test_normalize_amplifies_quiet_signal() -> None:
    quiet = np.array([0.1, -0.3, 0.2], dtype=np.float32)

    out = normalize_peak(quiet, 0.9)
    assert float(np.max(np.abs(out))) == pytest.approx(0.9, rel=1e-6)
    np.testing.assert_allclose(out, [0.3, -0.9, 0.6], rtol=1e-6)


def test_normalize_never_attenuates() -> None:
    loud = np.array([0.95, -0.5], dtype=np.float32)
    np.testing.assert_array_equal(normalize_peak(loud, 0.9), loud)


def test_normalize_silence_and_empty() -> None:
    silence = np.zeros(8, dtype=np.float32)
    empty = np.zeros(0, dtype=np.float32)

    np.testing.assert_array_equal(normalize_peak(silence), silence)
    assert len(normalize_peak(empty)) == 0
