"""
Thread-safe append-only sample accumulator for one live source.

A delivery thread appends decoded chunks while the session is open. Once
sealed, appends are rejected; seal and append serialize on the same lock so
a chunk racing the seal is either fully stored or fully dropped.
"""

import logging
import threading

import numpy as np

from scribe.core.types import AudioStream, SourceTag

logger = logging.getLogger(__name__)


class SampleBuffer:
    """Append-only float32 buffer with a one-way seal."""

    def __init__(self, source: SourceTag, nominal_rate: float = 48000.0, channels: int = 1):
        self.source = source
        self._lock = threading.Lock()
        self._chunks: list[np.ndarray] = []
        self._count = 0
        self._sealed = False
        self._sample_rate = float(nominal_rate)
        self._channels = channels
        self._rate_observed = False

    def append(
        self,
        samples: np.ndarray,
        sample_rate: float | None = None,
        channels: int | None = None,
    ) -> bool:
        """
        Append a decoded chunk.

        Args:
            samples: Interleaved float32 samples
            sample_rate: Rate observed on the wire for this chunk
            channels: Channel count observed for this chunk

        Returns:
            False if the buffer was already sealed and the chunk was dropped
        """
        with self._lock:
            if self._sealed:
                return False

            if sample_rate is not None:
                if self._rate_observed and sample_rate != self._sample_rate:
                    logger.warning(
                        f"{self.source.value} sample rate changed mid-stream: "
                        f"{self._sample_rate} Hz -> {sample_rate} Hz"
                    )
                self._sample_rate = float(sample_rate)
                self._rate_observed = True
            if channels is not None:
                self._channels = channels

            if len(samples):
                self._chunks.append(np.asarray(samples, dtype=np.float32))
                self._count += len(samples)
            return True

    def seal(self) -> bool:
        """Reject all further appends. Returns True on the first call only."""
        with self._lock:
            if self._sealed:
                return False
            self._sealed = True
            return True

    @property
    def sealed(self) -> bool:
        with self._lock:
            return self._sealed

    def __len__(self) -> int:
        with self._lock:
            return self._count

    def snapshot(self) -> AudioStream:
        """Return a contiguous immutable copy of everything appended so far."""
        with self._lock:
            if self._chunks:
                samples = np.concatenate(self._chunks)
                # Collapse to one chunk so repeated snapshots stay cheap
                self._chunks = [samples]
            else:
                samples = np.zeros(0, dtype=np.float32)
            rate = self._sample_rate
            channels = self._channels

        frozen = samples.copy()
        frozen.flags.writeable = False
        return AudioStream(
            source=self.source,
            sample_rate=rate,
            channels=channels,
            samples=frozen,
        )
