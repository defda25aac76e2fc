"""
Capture and signal-conditioning core.

This module contains:
- capture: live session lifecycle and per-frame ingestion
- backends: PyAudio microphone and soundcard loopback capture
- resampler / mixer / trimmer: pure DSP stages on canonical buffers
- pipeline: finalization of captured streams
- wav_codec: RIFF/WAVE persistence
"""

from scribe.core.capture import CaptureSession, LiveSourceCapture
from scribe.core.mixer import mix, normalize_peak
from scribe.core.pipeline import PipelineSettings, finalize
from scribe.core.resampler import resample
from scribe.core.sample_buffer import SampleBuffer
from scribe.core.trimmer import trim_silence
from scribe.core.types import TARGET_SAMPLE_RATE, AudioStream, FrameFormat, SourceTag
from scribe.core.wav_codec import decode, encode, read_wav, write_wav

__all__ = [
    "AudioStream",
    "CaptureSession",
    "FrameFormat",
    "LiveSourceCapture",
    "PipelineSettings",
    "SampleBuffer",
    "SourceTag",
    "TARGET_SAMPLE_RATE",
    "decode",
    "encode",
    "finalize",
    "mix",
    "normalize_peak",
    "read_wav",
    "resample",
    "trim_silence",
    "write_wav",
]
