"""
OS capture backends for microphone and system audio.

Handles capture from:
- Microphone input (PyAudio, callback mode on the PortAudio thread)
- System audio loopback (soundcard, dedicated reader thread)

Each backend delivers raw frames plus a FrameFormat describing them, and
reports stream failures through the error callback.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

import numpy as np

from scribe.core.capture import ErrorCallback, FrameCallback
from scribe.core.errors import (
    MICROPHONE_REMEDIATION,
    SYSTEM_AUDIO_REMEDIATION,
    CaptureError,
    NoCapturableSourceError,
    PermissionDeniedError,
)
from scribe.core.types import FrameFormat, SourceTag

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024
SYSTEM_SAMPLE_RATE = 48000
_OPEN_TIMEOUT = 5.0

# Try to import PyAudio
HAS_PYAUDIO = False
if TYPE_CHECKING:
    import pyaudio
else:
    try:
        import pyaudio

        HAS_PYAUDIO = True
    except ImportError:
        pyaudio = None

# Try to import soundcard (system audio loopback)
HAS_SOUNDCARD = False
if TYPE_CHECKING:
    import soundcard
else:
    try:
        import soundcard

        HAS_SOUNDCARD = True
    except (ImportError, RuntimeError, OSError, AssertionError):
        # soundcard probes the audio server on import and fails without one
        soundcard = None

_PERMISSION_MARKERS = ("permission", "not permitted", "access denied", "unauthorized")


def is_permission_error(error: BaseException) -> bool:
    """Heuristic: does this backend error mean the OS refused access?"""
    if isinstance(error, PermissionError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _PERMISSION_MARKERS)


def _permission_denied(source: SourceTag, error: BaseException) -> PermissionDeniedError:
    remediation = (
        MICROPHONE_REMEDIATION if source is SourceTag.MICROPHONE else SYSTEM_AUDIO_REMEDIATION
    )
    return PermissionDeniedError(f"{source.value} capture permission denied: {error}", remediation)


class _PyAudioHandle:
    def __init__(self, audio: Any, stream: Any):
        self._audio = audio
        self._stream = stream

    def close(self) -> None:
        try:
            self._stream.stop_stream()
            self._stream.close()
        except Exception:
            logger.debug("Failed to stop/close audio stream during cleanup")
        try:
            self._audio.terminate()
        except Exception:
            logger.debug("Failed to terminate PyAudio during cleanup")


class PyAudioMicrophoneBackend:
    """Microphone capture through PyAudio at the device's native rate."""

    def __init__(self, device_index: int | None = None, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.device_index = device_index
        self.chunk_size = chunk_size

    def available_sources(self) -> set[SourceTag]:
        if not HAS_PYAUDIO:
            logger.debug("PyAudio is not available")
            return set()
        return {SourceTag.MICROPHONE} if self.list_input_devices() else set()

    def _device_info(self, audio: Any) -> dict[str, Any]:
        if self.device_index is not None:
            return audio.get_device_info_by_index(self.device_index)
        return audio.get_default_input_device_info()

    def _supported_channels(self, audio: Any, device_index: int | None, rate: int) -> int:
        """Mono if the device supports it, otherwise stereo."""
        for channels in (1, 2):
            try:
                if audio.is_format_supported(
                    rate,
                    input_device=device_index,
                    input_channels=channels,
                    input_format=pyaudio.paInt16,
                ):
                    return channels
            except Exception:
                logger.debug(f"{channels}-channel capture not supported at {rate} Hz")
        return 1

    def open(
        self, source: SourceTag, on_frame: FrameCallback, on_error: ErrorCallback
    ) -> _PyAudioHandle:
        if source is not SourceTag.MICROPHONE:
            raise CaptureError(f"PyAudio backend cannot capture {source.value}")
        if not HAS_PYAUDIO:
            raise NoCapturableSourceError("PyAudio is required for microphone recording")

        audio = pyaudio.PyAudio()
        try:
            try:
                info = self._device_info(audio)
            except (IOError, OSError) as e:
                raise NoCapturableSourceError(f"No microphone input device: {e}") from e

            device_index = int(info["index"])
            rate = int(info.get("defaultSampleRate", 44100))
            channels = self._supported_channels(audio, device_index, rate)
            fmt = FrameFormat(
                sample_rate=float(rate),
                bits_per_sample=16,
                is_float=False,
                is_signed=True,
                channels=channels,
                interleaved=True,
            )

            def _callback(in_data, frame_count, time_info, status):
                if status:
                    logger.debug(f"PortAudio input status flags: {status}")
                try:
                    if in_data:
                        on_frame(in_data, fmt)
                except Exception as e:
                    logger.error(f"Recording error: {e}")
                return (None, pyaudio.paContinue)

            stream = audio.open(
                format=pyaudio.paInt16,
                channels=channels,
                rate=rate,
                input=True,
                frames_per_buffer=self.chunk_size,
                input_device_index=device_index,
                stream_callback=_callback,
            )
            stream.start_stream()
        except CaptureError:
            audio.terminate()
            raise
        except Exception as e:
            audio.terminate()
            if is_permission_error(e):
                raise _permission_denied(source, e) from e
            raise CaptureError(f"Failed to start microphone recording: {e}") from e

        logger.info(f"Microphone recording started at {rate} Hz x{channels}")
        return _PyAudioHandle(audio, stream)

    @staticmethod
    def list_input_devices() -> list[dict[str, Any]]:
        """List available microphone input devices."""
        if not HAS_PYAUDIO:
            return []

        devices: list[dict[str, Any]] = []
        try:
            audio = pyaudio.PyAudio()
            for i in range(audio.get_device_count()):
                try:
                    info = audio.get_device_info_by_index(i)
                    max_input_channels = int(info.get("maxInputChannels", 0))
                    if max_input_channels > 0:
                        devices.append(
                            {
                                "index": i,
                                "name": info.get("name", f"Device {i}"),
                                "channels": max_input_channels,
                                "sample_rate": info.get("defaultSampleRate"),
                            }
                        )
                except Exception:
                    continue
            audio.terminate()
        except Exception as e:
            logger.error(f"Error listing input devices: {e}")

        return devices


class _LoopbackHandle:
    """Reader thread pulling blocks from a soundcard recorder."""

    def __init__(
        self,
        microphone: Any,
        on_frame: FrameCallback,
        on_error: ErrorCallback,
        sample_rate: int,
        chunk_size: int,
    ):
        self._microphone = microphone
        self._on_frame = on_frame
        self._on_error = on_error
        self._sample_rate = sample_rate
        self._chunk_size = chunk_size
        self._stop_event = threading.Event()
        self._ready = threading.Event()
        self._open_error: BaseException | None = None
        self._thread = threading.Thread(
            target=self._run, name="scribe-system-audio", daemon=True
        )

    def start(self) -> None:
        self._thread.start()
        if not self._ready.wait(timeout=_OPEN_TIMEOUT):
            self._stop_event.set()
            raise CaptureError("Timed out opening the system audio recorder")
        if self._open_error is not None:
            raise self._open_error

    def _open_recorder(self) -> tuple[Any, Any, int]:
        last_error: BaseException | None = None
        for channels in (2, 1):
            try:
                ctx = self._microphone.recorder(
                    samplerate=self._sample_rate,
                    channels=channels,
                    blocksize=self._chunk_size,
                )
                # The stream is only opened on __enter__
                return ctx, ctx.__enter__(), channels
            except Exception as e:
                if is_permission_error(e):
                    raise
                last_error = e
        raise CaptureError(f"No supported loopback recorder format found: {last_error}")

    def _run(self) -> None:
        try:
            ctx, recorder, channels = self._open_recorder()
        except BaseException as e:
            if is_permission_error(e):
                self._open_error = _permission_denied(SourceTag.SYSTEM, e)
            elif isinstance(e, CaptureError):
                self._open_error = e
            else:
                self._open_error = CaptureError(f"Failed to start system audio recording: {e}")
            self._ready.set()
            return

        self._ready.set()
        fmt = FrameFormat(
            sample_rate=float(self._sample_rate),
            bits_per_sample=32,
            is_float=True,
            channels=channels,
            interleaved=True,
        )
        try:
            while not self._stop_event.is_set():
                frame = recorder.record(numframes=self._chunk_size)
                if frame is None:
                    continue
                block = np.ascontiguousarray(frame, dtype="<f4")
                if block.size == 0:
                    continue
                self._on_frame(block.tobytes(), fmt)
        except Exception as e:
            if not self._stop_event.is_set():
                logger.error(f"System audio recording error: {e}")
                self._on_error(_permission_denied(SourceTag.SYSTEM, e) if is_permission_error(e) else e)
        finally:
            try:
                ctx.__exit__(None, None, None)
            except Exception:
                logger.debug("Failed to close system audio recorder during cleanup")

    def close(self) -> None:
        self._stop_event.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=1.0)


class SoundcardLoopbackBackend:
    """System audio capture through a soundcard loopback device."""

    def __init__(
        self,
        system_output_id: str | None = None,
        sample_rate: int = SYSTEM_SAMPLE_RATE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.system_output_id = system_output_id
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size

    def available_sources(self) -> set[SourceTag]:
        if not HAS_SOUNDCARD:
            logger.debug("soundcard is not available")
            return set()
        return {SourceTag.SYSTEM} if self._iter_loopback_microphones() else set()

    @staticmethod
    def _iter_loopback_microphones() -> list[Any]:
        """Return all loopback-capable microphones from soundcard."""
        if not HAS_SOUNDCARD:
            return []

        try:
            microphones = soundcard.all_microphones(include_loopback=True)
        except TypeError:
            # Older soundcard variants may not support include_loopback kwarg.
            microphones = soundcard.all_microphones()
        except Exception:
            return []

        return [mic for mic in microphones if bool(getattr(mic, "isloopback", False))]

    def _get_loopback_microphone(self) -> Any:
        """
        Resolve a loopback microphone for system audio capture.

        The soundcard API records loopback from microphone-style devices,
        not directly from speaker objects.
        """
        loopbacks = self._iter_loopback_microphones()
        if not loopbacks:
            raise NoCapturableSourceError("No loopback capture devices available")

        if self.system_output_id:
            target_id = str(self.system_output_id)
            for mic in loopbacks:
                if target_id in {str(getattr(mic, "id", "")), str(getattr(mic, "name", ""))}:
                    return mic
            raise NoCapturableSourceError(
                f"Configured system audio device not found: {self.system_output_id}"
            )

        # Prefer loopback for the current default speaker when available.
        try:
            default_speaker = soundcard.default_speaker()
        except Exception:
            default_speaker = None

        if default_speaker is not None:
            speaker_name = str(getattr(default_speaker, "name", ""))
            if speaker_name:
                for mic in loopbacks:
                    if speaker_name in str(getattr(mic, "name", "")):
                        return mic

        # Final fallback: first available loopback device.
        return loopbacks[0]

    def open(
        self, source: SourceTag, on_frame: FrameCallback, on_error: ErrorCallback
    ) -> _LoopbackHandle:
        if source is not SourceTag.SYSTEM:
            raise CaptureError(f"soundcard backend cannot capture {source.value}")
        if not HAS_SOUNDCARD:
            raise NoCapturableSourceError("soundcard is required for system audio recording")

        microphone = self._get_loopback_microphone()
        handle = _LoopbackHandle(
            microphone, on_frame, on_error, self.sample_rate, self.chunk_size
        )
        handle.start()
        logger.info(
            f"System audio recording started from "
            f"{getattr(microphone, 'name', 'default loopback device')}"
        )
        return handle

    @classmethod
    def list_output_devices(cls) -> list[dict[str, Any]]:
        """List loopback-capable system output devices."""
        devices: list[dict[str, Any]] = []
        for mic in cls._iter_loopback_microphones():
            mic_name = str(getattr(mic, "name", "Loopback device"))
            mic_id = str(getattr(mic, "id", mic_name))
            devices.append({"id": mic_id, "name": mic_name})
        return devices


class CompositeBackend:
    """Routes each source to its own backend."""

    def __init__(self, backends: dict[SourceTag, Any]):
        self.backends = backends

    def available_sources(self) -> set[SourceTag]:
        sources: set[SourceTag] = set()
        for source, backend in self.backends.items():
            if source in backend.available_sources():
                sources.add(source)
        return sources

    def open(self, source: SourceTag, on_frame: FrameCallback, on_error: ErrorCallback):
        backend = self.backends.get(source)
        if backend is None:
            raise NoCapturableSourceError(f"No backend configured for {source.value}")
        return backend.open(source, on_frame, on_error)


def default_backend(
    device_index: int | None = None,
    system_output_id: str | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> CompositeBackend:
    """PyAudio for the microphone, soundcard loopback for system audio."""
    return CompositeBackend(
        {
            SourceTag.MICROPHONE: PyAudioMicrophoneBackend(device_index, chunk_size),
            SourceTag.SYSTEM: SoundcardLoopbackBackend(system_output_id, chunk_size=chunk_size),
        }
    )
