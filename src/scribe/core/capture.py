"""
Live capture session for microphone and system audio.

Roles are split three ways:
- SampleBuffer (one per source) stores decoded samples
- CaptureSession holds the closed flag and the one-shot stop event
- LiveSourceCapture wires a CaptureBackend to the session and exposes
  ``ingest()`` as the per-frame entry point used by delivery threads

``start()`` blocks the calling thread until ``stop()`` is called from
anywhere else (another thread, or a signal handler on the same thread).
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol

import numpy as np

from scribe.core.errors import (
    CaptureError,
    NoCapturableSourceError,
    UnsupportedFormatError,
)
from scribe.core.frames import decode_frame
from scribe.core.pipeline import PipelineSettings, finalize
from scribe.core.sample_buffer import SampleBuffer
from scribe.core.types import AudioStream, FrameFormat, SourceTag

logger = logging.getLogger(__name__)

FrameCallback = Callable[[bytes, FrameFormat], None]
ErrorCallback = Callable[[BaseException], None]

# Log buffered sample counts roughly every this many samples
_PROGRESS_INTERVAL = 100000


class CaptureHandle(Protocol):
    """An open source in the OS capture subsystem."""

    def close(self) -> None: ...


class CaptureBackend(Protocol):
    """OS capture subsystem used by LiveSourceCapture."""

    def available_sources(self) -> set[SourceTag]: ...

    def open(
        self,
        source: SourceTag,
        on_frame: FrameCallback,
        on_error: ErrorCallback,
    ) -> CaptureHandle: ...


class CaptureSession:
    """
    Lifecycle state of one capture: the buffers, a closed flag set exactly
    once, and the event that wakes the thread blocked in ``wait()``.
    """

    def __init__(self, buffers: dict[SourceTag, SampleBuffer]):
        self.buffers = buffers
        # Reentrant: a SIGINT handler may call close() while the interrupted
        # thread already holds the lock
        self._lock = threading.RLock()
        self._closed = False
        self._error: BaseException | None = None
        self._stopped = threading.Event()

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def close(self, error: BaseException | None = None) -> bool:
        """
        Close the session, seal every buffer, then wake the waiter.

        Returns:
            True for the call that actually closed the session
        """
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            self._error = error

        for buffer in self.buffers.values():
            buffer.seal()
        self._stopped.set()
        return True

    def wait(self) -> BaseException | None:
        """Block until closed. Returns the backend error that closed it, if any."""
        self._stopped.wait()
        with self._lock:
            return self._error


class LiveSourceCapture:
    """
    Captures microphone and/or system audio until stopped.

    A capture object runs a single session; create a new one per recording.
    """

    def __init__(
        self,
        backend: CaptureBackend,
        nominal_rates: dict[SourceTag, float] | None = None,
    ):
        """
        Initialize the capture.

        Args:
            backend: OS capture subsystem
            nominal_rates: Rate assumed for a source until its first frame arrives
        """
        self.backend = backend
        rates = nominal_rates or {}
        self.session = CaptureSession(
            {
                source: SampleBuffer(source, nominal_rate=rates.get(source, 48000.0))
                for source in SourceTag
            }
        )
        self._enabled: set[SourceTag] = set()
        self._handles: list[CaptureHandle] = []
        self._handles_lock = threading.RLock()
        self._started = False
        self._format_errors: set[SourceTag] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, capture_mic: bool = True, capture_system: bool = True) -> None:
        """
        Open the requested sources and block until ``stop()`` is called.

        Raises:
            ValueError: If neither source is requested
            PermissionDeniedError: If the OS refused access to a source
            NoCapturableSourceError: If none of the requested sources exist
            CaptureError: If a source could not be opened or died mid-capture
        """
        if not (capture_mic or capture_system):
            raise ValueError("At least one of microphone or system audio must be enabled")
        if self._started:
            raise CaptureError("Capture session already started")
        self._started = True

        logger.info(f"Starting audio capture (mic: {capture_mic}, system: {capture_system})")

        requested = []
        if capture_mic:
            requested.append(SourceTag.MICROPHONE)
        if capture_system:
            requested.append(SourceTag.SYSTEM)

        available = self.backend.available_sources()
        enabled = [source for source in requested if source in available]
        for source in requested:
            if source not in available:
                logger.warning(f"No {source.value} capture endpoint available, skipping")
        if not enabled:
            names = " or ".join(source.value for source in requested)
            raise NoCapturableSourceError(f"No capturable {names} source found")

        if self.session.closed:
            logger.info("Capture stopped before it started")
            return

        self._enabled = set(enabled)
        try:
            for source in enabled:
                handle = self.backend.open(
                    source,
                    self._frame_callback(source),
                    self._error_callback(source),
                )
                self._register_handle(handle)
                logger.debug(f"Added {source.value} output")
        except CaptureError:
            self._abort()
            raise
        except Exception as e:
            self._abort()
            raise CaptureError(f"Failed to start audio capture: {e}") from e

        logger.info("Audio capture started")

        error = self.session.wait()
        # A stop that landed while a source was registering can leave a handle behind
        self._teardown_async()
        if error is not None:
            if isinstance(error, CaptureError):
                raise error
            raise CaptureError(f"Audio capture stopped with error: {error}") from error

    def stop(self) -> bool:
        """
        Stop capturing. Safe to call any number of times from any thread.

        Returns immediately; the backend is torn down on a daemon thread.

        Returns:
            True for the call that actually stopped the session
        """
        if not self.session.close():
            return False
        logger.info("Stopping audio capture...")
        self._teardown_async()
        return True

    @property
    def is_capturing(self) -> bool:
        return self._started and not self.session.closed

    def _register_handle(self, handle: CaptureHandle) -> None:
        with self._handles_lock:
            if not self.session.closed:
                self._handles.append(handle)
                return
        # Stopped while this source was opening
        self._close_handle(handle)

    def _abort(self) -> None:
        self.session.close()
        handles = self._take_handles()
        for handle in handles:
            self._close_handle(handle)

    def _take_handles(self) -> list[CaptureHandle]:
        with self._handles_lock:
            handles, self._handles = self._handles, []
        return handles

    def _teardown_async(self) -> None:
        handles = self._take_handles()
        if not handles:
            return
        thread = threading.Thread(
            target=self._teardown,
            args=(handles,),
            name="scribe-capture-teardown",
            daemon=True,
        )
        thread.start()

    def _teardown(self, handles: list[CaptureHandle]) -> None:
        for handle in handles:
            self._close_handle(handle)
        logger.debug("Capture backend torn down")

    @staticmethod
    def _close_handle(handle: CaptureHandle) -> None:
        try:
            handle.close()
        except Exception as e:
            logger.warning(f"Error stopping stream: {e}")

    # ------------------------------------------------------------------
    # Delivery path
    # ------------------------------------------------------------------

    def _frame_callback(self, source: SourceTag) -> FrameCallback:
        def on_frame(data: bytes, fmt: FrameFormat) -> None:
            self.ingest(source, data, fmt)

        return on_frame

    def _error_callback(self, source: SourceTag) -> ErrorCallback:
        def on_error(error: BaseException) -> None:
            logger.error(f"{source.value} stream stopped with error: {error}")
            if self.session.close(error):
                self._teardown_async()

        return on_error

    def ingest(self, source: SourceTag, data: bytes, fmt: FrameFormat) -> bool:
        """
        Decode one frame and append it to the source's buffer.

        Called on the backend's delivery thread.

        Returns:
            True if the frame was stored, False if it was dropped
        """
        buffer = self.session.buffers[source]
        if buffer.sealed:
            return False

        try:
            samples = decode_frame(data, fmt)
        except UnsupportedFormatError as e:
            if source not in self._format_errors:
                self._format_errors.add(source)
                logger.warning(f"Dropping {source.value} frames: {e}")
            return False

        before = len(buffer)
        accepted = buffer.append(samples, sample_rate=fmt.sample_rate, channels=fmt.channels)
        if accepted and (before // _PROGRESS_INTERVAL) != ((before + len(samples)) // _PROGRESS_INTERVAL):
            logger.debug(
                f"{source.value} audio: {before + len(samples)} samples buffered "
                f"({fmt.sample_rate:g} Hz)"
            )
        return accepted

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[SourceTag, AudioStream]:
        """Immutable copies of the enabled sources' buffers."""
        return {
            source: buffer.snapshot()
            for source, buffer in self.session.buffers.items()
            if source in self._enabled
        }

    def finish(self, settings: PipelineSettings | None = None) -> np.ndarray:
        """Stop (if needed) and return the final conditioned canonical buffer."""
        self.stop()
        return finalize(self.snapshot().values(), settings)
