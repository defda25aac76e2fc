"""
Scribe - record microphone and system audio, condition it to 16 kHz mono,
and transcribe it locally.
"""

from scribe.common.version import __version__

__all__ = ["__version__"]
