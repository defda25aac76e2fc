"""
Exception types raised by the Scribe capture and conditioning pipeline.

Hierarchy:
- ScribeError
  - CaptureError
    - PermissionDeniedError
    - NoCapturableSourceError
  - UnsupportedFormatError
  - ConversionFailedError
  - MalformedWavError
  - TranscriptionError
  - NoAudioCapturedError
  - ConfigError
"""

from __future__ import annotations

MICROPHONE_REMEDIATION = (
    "Microphone access was refused.",
    "Grant access to your terminal application in the system privacy settings",
    "(e.g. System Settings > Privacy & Security > Microphone on macOS,",
    "or check that your user is in the 'audio' group on Linux), then try again.",
)

SYSTEM_AUDIO_REMEDIATION = (
    "System audio capture was refused.",
    "To grant permission, open:",
    "  System Settings > Privacy & Security > Screen & System Audio Recording",
    "Then enable access for your terminal application (e.g., Terminal, iTerm2).",
    "On Linux, make sure PulseAudio/PipeWire exposes a monitor source.",
)


class ScribeError(Exception):
    """Base class for all Scribe errors."""


class CaptureError(ScribeError):
    """Live capture could not be started or was terminated by the backend."""


class PermissionDeniedError(CaptureError):
    """The OS capture subsystem refused access to a source."""

    def __init__(self, message: str, remediation: tuple[str, ...] = ()):
        super().__init__(message)
        self.remediation = remediation


class NoCapturableSourceError(CaptureError):
    """No display, audio endpoint or loopback device is available."""


class UnsupportedFormatError(ScribeError, ValueError):
    """Non-PCM format tag or a bit depth/encoding this pipeline cannot read."""


class ConversionFailedError(ScribeError):
    """Resampling or channel conversion failed for a single source."""

    def __init__(self, message: str, source: str | None = None):
        super().__init__(message)
        self.source = source


class MalformedWavError(ScribeError, ValueError):
    """A RIFF/WAVE container violated a structural expectation."""

    def __init__(self, expectation: str):
        super().__init__(f"Invalid WAV file: {expectation}")
        self.expectation = expectation


class TranscriptionError(ScribeError):
    """The speech-to-text engine failed."""


class NoAudioCapturedError(ScribeError):
    """Raised by callers that treat an empty capture as a failure."""

    def __init__(self, message: str = "No audio was captured during the recording session"):
        super().__init__(message)


class ConfigError(ScribeError):
    """The configuration file could not be parsed."""
