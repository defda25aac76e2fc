"""Tests for PyAudio and soundcard capture backends using fake libraries."""

from __future__ import annotations

import threading
import time
from types import SimpleNamespace

import numpy as np
import pytest

from scribe.core import backends
from scribe.core.backends import (
    CompositeBackend,
    PyAudioMicrophoneBackend,
    SoundcardLoopbackBackend,
    is_permission_error,
)
from scribe.core.errors import (
    MICROPHONE_REMEDIATION,
    SYSTEM_AUDIO_REMEDIATION,
    CaptureError,
    NoCapturableSourceError,
    PermissionDeniedError,
)
from scribe.core.types import SourceTag

# ----------------------------------------------------------------------
# PyAudio fakes
# ----------------------------------------------------------------------


class _FakeStream:
    def __init__(self, callback) -> None:
        self.callback = callback
        self.started = False
        self.stopped = False
        self.closed = False

    def start_stream(self) -> None:
        self.started = True

    def stop_stream(self) -> None:
        self.stopped = True

    def close(self) -> None:
        self.closed = True


class _FakePyAudio:
    instances: list["_FakePyAudio"] = []
    mono_supported = True
    open_error: BaseException | None = None
    devices = [
        {"index": 0, "name": "Speakers", "maxInputChannels": 0, "defaultSampleRate": 48000.0},
        {"index": 1, "name": "USB Mic", "maxInputChannels": 2, "defaultSampleRate": 44100.0},
    ]

    def __init__(self) -> None:
        self.terminated = False
        self.open_kwargs: dict = {}
        self.stream: _FakeStream | None = None
        _FakePyAudio.instances.append(self)

    def get_device_count(self) -> int:
        return len(self.devices)

    def get_device_info_by_index(self, index: int) -> dict:
        return self.devices[index]

    def get_default_input_device_info(self) -> dict:
        return self.devices[1]

    def is_format_supported(self, rate, input_device=None, input_channels=None, input_format=None):
        if input_channels == 1 and not self.mono_supported:
            raise ValueError("Invalid number of channels")
        return True

    def open(self, **kwargs) -> _FakeStream:
        if self.open_error is not None:
            raise self.open_error
        self.open_kwargs = kwargs
        self.stream = _FakeStream(kwargs["stream_callback"])
        return self.stream

    def terminate(self) -> None:
        self.terminated = True


@pytest.fixture
def fake_pyaudio(monkeypatch):
    _FakePyAudio.instances = []
    _FakePyAudio.mono_supported = True
    _FakePyAudio.open_error = None
    module = SimpleNamespace(PyAudio=_FakePyAudio, paInt16=8, paContinue=0)
    monkeypatch.setattr(backends, "pyaudio", module)
    monkeypatch.setattr(backends, "HAS_PYAUDIO", True)
    return module


def test_microphone_unavailable_without_pyaudio(monkeypatch) -> None:
    monkeypatch.setattr(backends, "HAS_PYAUDIO", False)
    backend = PyAudioMicrophoneBackend()

    assert backend.available_sources() == set()
    assert backend.list_input_devices() == []
    with pytest.raises(NoCapturableSourceError):
        backend.open(SourceTag.MICROPHONE, lambda d, f: None, lambda e: None)


def test_microphone_frames_carry_native_format(fake_pyaudio) -> None:
    frames = []
    backend = PyAudioMicrophoneBackend(chunk_size=512)

    assert backend.available_sources() == {SourceTag.MICROPHONE}
    handle = backend.open(SourceTag.MICROPHONE, lambda d, f: frames.append((d, f)), lambda e: None)

    audio = _FakePyAudio.instances[-1]
    assert audio.open_kwargs["rate"] == 44100
    assert audio.open_kwargs["channels"] == 1
    assert audio.open_kwargs["frames_per_buffer"] == 512
    assert audio.stream.started

    result = audio.stream.callback(b"\x00\x40" * 4, 4, {}, 0)
    assert result == (None, 0)
    data, fmt = frames[0]
    assert data == b"\x00\x40" * 4
    assert fmt.sample_rate == 44100.0
    assert fmt.bits_per_sample == 16
    assert not fmt.is_float

    handle.close()
    assert audio.stream.stopped and audio.stream.closed
    assert audio.terminated


def test_microphone_falls_back_to_stereo(fake_pyaudio) -> None:
    _FakePyAudio.mono_supported = False
    frames = []
    PyAudioMicrophoneBackend().open(
        SourceTag.MICROPHONE, lambda d, f: frames.append(f), lambda e: None
    )

    audio = _FakePyAudio.instances[-1]
    assert audio.open_kwargs["channels"] == 2
    audio.stream.callback(b"\x00" * 8, 2, {}, 0)
    assert frames[0].channels == 2


def test_microphone_permission_error(fake_pyaudio) -> None:
    _FakePyAudio.open_error = OSError("[Errno -9999] Permission denied by the system")

    with pytest.raises(PermissionDeniedError) as exc_info:
        PyAudioMicrophoneBackend().open(SourceTag.MICROPHONE, lambda d, f: None, lambda e: None)

    assert exc_info.value.remediation == MICROPHONE_REMEDIATION
    assert _FakePyAudio.instances[-1].terminated


def test_microphone_generic_open_error(fake_pyaudio) -> None:
    _FakePyAudio.open_error = OSError("[Errno -9996] Invalid input device")

    with pytest.raises(CaptureError) as exc_info:
        PyAudioMicrophoneBackend().open(SourceTag.MICROPHONE, lambda d, f: None, lambda e: None)
    assert not isinstance(exc_info.value, PermissionDeniedError)


def test_microphone_backend_rejects_system_source(fake_pyaudio) -> None:
    with pytest.raises(CaptureError):
        PyAudioMicrophoneBackend().open(SourceTag.SYSTEM, lambda d, f: None, lambda e: None)


def test_list_input_devices_skips_output_only(fake_pyaudio) -> None:
    devices = PyAudioMicrophoneBackend.list_input_devices()

    assert devices == [{"index": 1, "name": "USB Mic", "channels": 2, "sample_rate": 44100.0}]


# ----------------------------------------------------------------------
# soundcard fakes
# ----------------------------------------------------------------------


class _FakeRecorder:
    def __init__(
        self,
        channels: int,
        fail_after: int | None,
        record_error: BaseException | None,
        enter_error: BaseException | None = None,
    ):
        self.channels = channels
        self.enter_error = enter_error
        self.calls = 0
        self.fail_after = fail_after
        self.record_error = record_error
        self.exited = False

    def __enter__(self):
        if self.enter_error is not None:
            raise self.enter_error
        return self

    def __exit__(self, *exc) -> None:
        self.exited = True

    def record(self, numframes: int):
        self.calls += 1
        if self.fail_after is not None and self.calls > self.fail_after:
            raise self.record_error or RuntimeError("device disconnected")
        time.sleep(0.001)
        return np.full((numframes, self.channels), 0.25, dtype=np.float32)


class _FakeMic:
    def __init__(self, name: str, mic_id: str, isloopback: bool = True) -> None:
        self.name = name
        self.id = mic_id
        self.isloopback = isloopback
        self.recorder_error: BaseException | None = None
        self.fail_after: int | None = None
        self.record_error: BaseException | None = None
        self.recorders: list[_FakeRecorder] = []
        # Channel count whose stream fails to open
        self.unsupported_channels: int | None = None

    def recorder(self, samplerate, channels, blocksize):
        if self.recorder_error is not None:
            raise self.recorder_error
        enter_error = None
        if channels == self.unsupported_channels:
            enter_error = RuntimeError(f"Error opening stream with {channels} channels")
        recorder = _FakeRecorder(channels, self.fail_after, self.record_error, enter_error)
        self.recorders.append(recorder)
        return recorder


@pytest.fixture
def fake_soundcard(monkeypatch):
    mics = [
        _FakeMic("Built-in Microphone", "mic-1", isloopback=False),
        _FakeMic("Monitor of HDMI Output", "hdmi.monitor"),
        _FakeMic("Monitor of Built-in Speakers", "speakers.monitor"),
    ]
    module = SimpleNamespace(
        mics=mics,
        all_microphones=lambda include_loopback=False: list(mics),
        default_speaker=lambda: SimpleNamespace(name="Built-in Speakers"),
    )
    monkeypatch.setattr(backends, "soundcard", module)
    monkeypatch.setattr(backends, "HAS_SOUNDCARD", True)
    return module


def test_loopback_unavailable_without_soundcard(monkeypatch) -> None:
    monkeypatch.setattr(backends, "HAS_SOUNDCARD", False)

    assert SoundcardLoopbackBackend().available_sources() == set()
    assert SoundcardLoopbackBackend.list_output_devices() == []


def test_loopback_prefers_default_speaker(fake_soundcard) -> None:
    mic = SoundcardLoopbackBackend()._get_loopback_microphone()
    assert mic.id == "speakers.monitor"


def test_loopback_configured_device(fake_soundcard) -> None:
    assert SoundcardLoopbackBackend("hdmi.monitor")._get_loopback_microphone().id == "hdmi.monitor"

    with pytest.raises(NoCapturableSourceError):
        SoundcardLoopbackBackend("missing")._get_loopback_microphone()


def test_no_loopback_devices(fake_soundcard) -> None:
    for mic in fake_soundcard.mics:
        mic.isloopback = False

    backend = SoundcardLoopbackBackend()
    assert backend.available_sources() == set()
    with pytest.raises(NoCapturableSourceError):
        backend._get_loopback_microphone()


def test_list_output_devices(fake_soundcard) -> None:
    devices = SoundcardLoopbackBackend.list_output_devices()

    assert [d["id"] for d in devices] == ["hdmi.monitor", "speakers.monitor"]


def test_loopback_delivers_float_frames_until_closed(fake_soundcard) -> None:
    got_frame = threading.Event()
    frames = []

    def on_frame(data, fmt) -> None:
        frames.append((data, fmt))
        got_frame.set()

    backend = SoundcardLoopbackBackend(chunk_size=256)
    assert backend.available_sources() == {SourceTag.SYSTEM}
    handle = backend.open(SourceTag.SYSTEM, on_frame, lambda e: None)

    assert got_frame.wait(2.0)
    handle.close()

    data, fmt = frames[0]
    assert fmt.is_float and fmt.bits_per_sample == 32
    assert fmt.channels == 2
    assert fmt.sample_rate == 48000.0
    assert len(data) == 256 * 2 * 4

    recorder = fake_soundcard.mics[2].recorders[0]
    assert recorder.exited


def test_loopback_falls_back_to_mono_when_stereo_stream_fails(fake_soundcard) -> None:
    fake_soundcard.mics[2].unsupported_channels = 2
    got_frame = threading.Event()
    formats = []

    def on_frame(data, fmt) -> None:
        formats.append(fmt)
        got_frame.set()

    handle = SoundcardLoopbackBackend(chunk_size=128).open(SourceTag.SYSTEM, on_frame, lambda e: None)

    assert got_frame.wait(2.0)
    handle.close()

    assert formats[0].channels == 1
    assert [r.channels for r in fake_soundcard.mics[2].recorders] == [2, 1]
    assert fake_soundcard.mics[2].recorders[1].exited


def test_loopback_permission_error_on_open(fake_soundcard) -> None:
    for mic in fake_soundcard.mics:
        mic.recorder_error = PermissionError("Operation not permitted")

    with pytest.raises(PermissionDeniedError) as exc_info:
        SoundcardLoopbackBackend().open(SourceTag.SYSTEM, lambda d, f: None, lambda e: None)
    assert exc_info.value.remediation == SYSTEM_AUDIO_REMEDIATION


def test_loopback_failure_mid_stream_reports_error(fake_soundcard) -> None:
    target = fake_soundcard.mics[2]
    target.fail_after = 3
    errors = []
    failed = threading.Event()

    def on_error(error) -> None:
        errors.append(error)
        failed.set()

    handle = SoundcardLoopbackBackend().open(SourceTag.SYSTEM, lambda d, f: None, on_error)

    assert failed.wait(2.0)
    assert "device disconnected" in str(errors[0])
    handle.close()


def test_loopback_backend_rejects_microphone_source(fake_soundcard) -> None:
    with pytest.raises(CaptureError):
        SoundcardLoopbackBackend().open(SourceTag.MICROPHONE, lambda d, f: None, lambda e: None)


# ----------------------------------------------------------------------
# Composite routing
# ----------------------------------------------------------------------


class _StubBackend:
    def __init__(self, sources) -> None:
        self.sources = set(sources)
        self.opened: list[SourceTag] = []

    def available_sources(self):
        return self.sources

    def open(self, source, on_frame, on_error):
        self.opened.append(source)
        return SimpleNamespace(close=lambda: None)


def test_composite_routes_each_source() -> None:
    mic = _StubBackend({SourceTag.MICROPHONE})
    system = _StubBackend(set())
    composite = CompositeBackend({SourceTag.MICROPHONE: mic, SourceTag.SYSTEM: system})

    assert composite.available_sources() == {SourceTag.MICROPHONE}
    composite.open(SourceTag.MICROPHONE, lambda d, f: None, lambda e: None)
    assert mic.opened == [SourceTag.MICROPHONE]


def test_composite_without_backend_for_source() -> None:
    composite = CompositeBackend({SourceTag.MICROPHONE: _StubBackend({SourceTag.MICROPHONE})})

    with pytest.raises(NoCapturableSourceError):
        composite.open(SourceTag.SYSTEM, lambda d, f: None, lambda e: None)


@pytest.mark.parametrize(
    "error, expected",
    [
        (PermissionError("nope"), True),
        (OSError("Access denied"), True),
        (RuntimeError("Operation not permitted"), True),
        (OSError("Device unavailable"), False),
    ],
)
def test_is_permission_error(error, expected) -> None:
    assert is_permission_error(error) is expected
