"""
RIFF/WAVE encoding and decoding for canonical buffers.

Encoding is strict: always 16 kHz, mono, 16-bit signed PCM with the
standard 44-byte header. Decoding is lenient: any 16-bit PCM file with any
channel count and sample rate, with extra chunks allowed before ``data``.
The result of decoding is always a canonical buffer.
"""

import logging
import struct
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from scribe.core.errors import MalformedWavError, UnsupportedFormatError
from scribe.core.resampler import downmix, resample
from scribe.core.types import TARGET_CHANNELS, TARGET_SAMPLE_RATE

logger = logging.getLogger(__name__)

WAVE_FORMAT_PCM = 1
BITS_PER_SAMPLE = 16
HEADER_SIZE = 44
INT16_SCALE = 32767.0

_CHUNK_HEADER = struct.Struct("<4sI")
_FMT_BODY = struct.Struct("<HHIIHH")


@dataclass(frozen=True)
class WavInfo:
    """Parsed header of a RIFF/WAVE container."""

    format_tag: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_offset: int
    data_size: int

    @property
    def frame_count(self) -> int:
        if self.block_align <= 0:
            return 0
        return self.data_size // self.block_align

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frame_count / self.sample_rate


def encode(samples: np.ndarray) -> bytes:
    """
    Encode a canonical buffer as a 16 kHz mono 16-bit PCM WAV file.

    Samples are clamped to [-1, 1], scaled by 32767 and rounded.
    """
    samples = np.asarray(samples, dtype=np.float32)
    pcm = np.round(np.clip(samples.astype(np.float64), -1.0, 1.0) * INT16_SCALE).astype("<i2")

    block_align = TARGET_CHANNELS * (BITS_PER_SAMPLE // 8)
    byte_rate = TARGET_SAMPLE_RATE * block_align
    data_size = len(pcm) * block_align

    header = b"".join(
        [
            _CHUNK_HEADER.pack(b"RIFF", 36 + data_size),
            b"WAVE",
            _CHUNK_HEADER.pack(b"fmt ", _FMT_BODY.size),
            _FMT_BODY.pack(
                WAVE_FORMAT_PCM,
                TARGET_CHANNELS,
                TARGET_SAMPLE_RATE,
                byte_rate,
                block_align,
                BITS_PER_SAMPLE,
            ),
            _CHUNK_HEADER.pack(b"data", data_size),
        ]
    )
    return header + pcm.tobytes()


def write_wav(samples: np.ndarray, path: str | Path) -> Path:
    """Write a canonical buffer to ``path``, creating parent directories."""
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encode(samples))
    logger.debug(
        f"Wrote WAV: {path} ({len(samples)} samples, "
        f"{len(samples) / TARGET_SAMPLE_RATE:.1f}s)"
    )
    return path


def _iter_chunks(data: bytes, offset: int):
    """Yield (chunk_id, body_offset, declared_size) from ``offset`` onward."""
    while offset + _CHUNK_HEADER.size <= len(data):
        chunk_id, size = _CHUNK_HEADER.unpack_from(data, offset)
        body = offset + _CHUNK_HEADER.size
        yield chunk_id, body, size
        # RIFF chunks are word aligned; odd sizes carry a pad byte
        offset = body + size + (size & 1)


def read_wav_info(data: bytes) -> WavInfo:
    """
    Parse and validate the RIFF/WAVE header.

    Raises:
        MalformedWavError: Missing magic, missing/short ``fmt ``, missing or truncated ``data``
        UnsupportedFormatError: Non-PCM format tag or a bit depth other than 16
    """
    if len(data) < 12:
        raise MalformedWavError("file too small for a RIFF header")
    if data[0:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise MalformedWavError("missing RIFF/WAVE magic")

    fmt_fields = None
    fmt_end = None
    for chunk_id, body, size in _iter_chunks(data, 12):
        if chunk_id == b"fmt ":
            if size < _FMT_BODY.size or body + _FMT_BODY.size > len(data):
                raise MalformedWavError(f"fmt chunk too short ({size} bytes)")
            fmt_fields = _FMT_BODY.unpack_from(data, body)
            fmt_end = body + size + (size & 1)
            break
    if fmt_fields is None or fmt_end is None:
        raise MalformedWavError("missing fmt chunk")

    format_tag, channels, sample_rate, byte_rate, block_align, bits = fmt_fields
    if format_tag != WAVE_FORMAT_PCM:
        raise UnsupportedFormatError(f"Not PCM format (format tag: {format_tag})")
    if bits != BITS_PER_SAMPLE:
        raise UnsupportedFormatError(f"Unsupported bit depth: {bits}")
    if channels < 1:
        raise MalformedWavError(f"invalid channel count {channels}")
    if sample_rate < 1:
        raise MalformedWavError(f"invalid sample rate {sample_rate}")

    for chunk_id, body, size in _iter_chunks(data, fmt_end):
        if chunk_id != b"data":
            logger.debug(f"Skipping {chunk_id!r} chunk ({size} bytes)")
            continue
        available = len(data) - body
        if size > available:
            raise MalformedWavError(
                f"data chunk truncated (declared {size} bytes, {available} available)"
            )
        return WavInfo(
            format_tag=format_tag,
            channels=channels,
            sample_rate=sample_rate,
            byte_rate=byte_rate,
            block_align=channels * (bits // 8),
            bits_per_sample=bits,
            data_offset=body,
            data_size=size,
        )

    raise MalformedWavError("missing data chunk")


def decode(data: bytes, method: str = "polyphase") -> np.ndarray:
    """
    Decode WAV bytes into a canonical buffer.

    Multi-channel files are averaged to mono; files at other rates are
    resampled to 16 kHz.
    """
    info = read_wav_info(data)

    usable = info.frame_count * info.block_align
    raw = np.frombuffer(data, dtype="<i2", count=usable // 2, offset=info.data_offset)
    samples = np.clip(raw.astype(np.float64) / INT16_SCALE, -1.0, 1.0).astype(np.float32)

    if info.channels > 1:
        samples = downmix(samples, info.channels)

    if info.sample_rate != TARGET_SAMPLE_RATE:
        samples = resample(
            samples,
            float(info.sample_rate),
            channels=1,
            target_rate=TARGET_SAMPLE_RATE,
            method=method,
            source="wav",
        )

    return samples


def read_wav(path: str | Path, method: str = "polyphase") -> np.ndarray:
    """Read a WAV file from disk into a canonical buffer."""
    path = Path(path).expanduser()
    samples = decode(path.read_bytes(), method=method)
    logger.info(f"Read {len(samples)} samples ({len(samples) / TARGET_SAMPLE_RATE:.1f}s) from {path}")
    return samples
