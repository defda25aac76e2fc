"""
Decoding of raw captured frames into normalized float samples.

Every frame is converted exactly once, at ingestion time:
- 8-bit integer (unsigned or signed) -> [-1, 1]
- 16/24/32-bit signed integer -> [-1, 1]
- 32/64-bit float -> passed through
Planar (non-interleaved) multi-channel frames are interleaved so downstream
consumers see one linear L,R,L,R,... stream per source.
"""

import numpy as np

from scribe.core.errors import UnsupportedFormatError
from scribe.core.types import FrameFormat


def _int24_to_int32(raw: np.ndarray) -> np.ndarray:
    """Unpack little-endian packed 24-bit samples to sign-extended int32."""
    triplets = raw.reshape(-1, 3).astype(np.int32)
    values = triplets[:, 0] | (triplets[:, 1] << 8) | (triplets[:, 2] << 16)
    return np.where(values & 0x800000, values - 0x1000000, values)


def decode_samples(data: bytes, fmt: FrameFormat) -> np.ndarray:
    """
    Convert raw little-endian sample bytes to float32 in [-1, 1].

    Trailing bytes that do not form a whole sample are ignored.

    Raises:
        UnsupportedFormatError: For encodings other than those listed above
    """
    bits = fmt.bits_per_sample
    if bits % 8 != 0 or bits <= 0:
        raise UnsupportedFormatError(f"Unsupported bit depth: {bits}")

    width = bits // 8
    usable = len(data) - (len(data) % width)
    raw = np.frombuffer(data[:usable], dtype=np.uint8)

    if fmt.is_float:
        if bits == 32:
            return raw.view("<f4").astype(np.float32)
        if bits == 64:
            return raw.view("<f8").astype(np.float32)
        raise UnsupportedFormatError(f"Unsupported float bit depth: {bits}")

    if bits == 8:
        if fmt.is_signed:
            return raw.view(np.int8).astype(np.float32) / 128.0
        return (raw.astype(np.float32) - 128.0) / 128.0

    if not fmt.is_signed:
        raise UnsupportedFormatError(f"Unsigned {bits}-bit integer samples are not supported")

    if bits == 16:
        return raw.view("<i2").astype(np.float32) / 32768.0
    if bits == 24:
        return (_int24_to_int32(raw) / 8388608.0).astype(np.float32)
    if bits == 32:
        return (raw.view("<i4").astype(np.float64) / 2147483648.0).astype(np.float32)

    raise UnsupportedFormatError(f"Unsupported integer bit depth: {bits}")


def interleave_planar(samples: np.ndarray, channels: int) -> np.ndarray:
    """Turn [L L L ... R R R ...] into [L R L R ...]."""
    if channels <= 1 or len(samples) == 0:
        return samples
    frames = len(samples) // channels
    planes = samples[: frames * channels].reshape(channels, frames)
    return np.ascontiguousarray(planes.T).reshape(-1)


def decode_frame(data: bytes, fmt: FrameFormat) -> np.ndarray:
    """Decode one captured frame into interleaved normalized float32 samples."""
    if fmt.channels < 1:
        raise UnsupportedFormatError(f"Invalid channel count: {fmt.channels}")

    samples = decode_samples(data, fmt)
    if not fmt.interleaved:
        samples = interleave_planar(samples, fmt.channels)
    return samples
