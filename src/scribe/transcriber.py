"""
Local speech-to-text over canonical buffers using faster-whisper.

The model is loaded lazily on the first transcription so that recording
never waits on model initialization.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np

from scribe.core.errors import TranscriptionError
from scribe.core.types import TARGET_SAMPLE_RATE

logger = logging.getLogger(__name__)

HAS_FASTER_WHISPER = False
if TYPE_CHECKING:
    import faster_whisper
else:
    try:
        import faster_whisper

        HAS_FASTER_WHISPER = True
    except ImportError:
        faster_whisper = None

AUTO_LANGUAGE = "auto"


def resolve_language(language: str | None) -> str | None:
    """Map "auto"/empty to None so the engine detects the language."""
    if not language or language.strip().lower() == AUTO_LANGUAGE:
        return None
    return language.strip()


class WhisperTranscriber:
    """Transcribes 16 kHz mono float32 audio with a faster-whisper model."""

    def __init__(
        self,
        model: str,
        device: str = "auto",
        compute_type: str = "default",
        download_root: Path | str | None = None,
        beam_size: int = 5,
    ):
        """
        Args:
            model: Model name (e.g. "large-v3-turbo") or path to a converted model
            device: "auto", "cpu" or "cuda"
            compute_type: CTranslate2 compute type ("default", "int8", "float16", ...)
            download_root: Directory holding downloaded models
            beam_size: Beam size for decoding
        """
        self.model_name = model
        self.device = device
        self.compute_type = compute_type
        self.download_root = Path(download_root) if download_root else None
        self.beam_size = beam_size
        self._model: Any = None

    def _model_path(self) -> str:
        # A model already present under the models directory is used directly
        if self.download_root is not None:
            local = self.download_root / self.model_name
            if local.exists():
                return str(local)
        return self.model_name

    def _load_model(self) -> Any:
        if self._model is not None:
            return self._model
        if not HAS_FASTER_WHISPER:
            raise TranscriptionError(
                "faster-whisper is required for transcription "
                "(install with: pip install 'scribe-audio[transcribe]')"
            )

        logger.info(f"Loading Whisper model: {self.model_name}")
        try:
            self._model = faster_whisper.WhisperModel(
                model_size_or_path=self._model_path(),
                device=self.device,
                compute_type=self.compute_type,
                download_root=str(self.download_root) if self.download_root else None,
            )
        except Exception as e:
            logger.exception(f"Error loading Whisper model: {e}")
            raise TranscriptionError(f"Failed to load model '{self.model_name}': {e}") from e

        logger.info("Whisper model loaded and ready")
        return self._model

    def transcribe(self, samples: np.ndarray, language: str | None = AUTO_LANGUAGE) -> str:
        """
        Transcribe a canonical buffer.

        Args:
            samples: Mono float32 samples at 16 kHz
            language: Language code, or "auto" to detect

        Returns:
            Segment texts joined by newlines, stripped

        Raises:
            TranscriptionError: If the model cannot be loaded or decoding fails
        """
        model = self._load_model()
        audio = np.asarray(samples, dtype=np.float32)
        lang = resolve_language(language)

        start_time = time.time()
        try:
            segments, info = model.transcribe(audio, language=lang, beam_size=self.beam_size)
            parts = [segment.text.strip() for segment in segments]
        except Exception as e:
            logger.exception(f"Transcription error: {e}")
            raise TranscriptionError(f"Transcription failed: {e}") from e

        elapsed = time.time() - start_time
        logger.info(
            f"Transcription completed in {elapsed:.2f}s: {len(parts)} segments, "
            f"language={getattr(info, 'language', lang)}, "
            f"audio={len(audio) / TARGET_SAMPLE_RATE:.1f}s"
        )
        return "\n".join(part for part in parts if part).strip()
