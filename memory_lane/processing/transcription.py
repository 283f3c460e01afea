"""Speech-to-text backends for narration audio."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Iterable, Optional, Protocol


LOGGER = logging.getLogger(__name__)


class TranscriptionEngine(Protocol):
    """Protocol describing a transcription backend."""

    def transcribe(self, audio: bytes) -> str:
        """Return the plain transcript of *audio*."""


class FasterWhisperTranscription:
    """Transcription engine backed by :mod:`faster_whisper`."""

    def __init__(
        self,
        model_size: str = "base",
        *,
        download_root: Optional[Path] = None,
        compute_type: str = "int8",
        beam_size: int = 5,
        suffix: str = ".webm",
    ) -> None:
        self._beam_size = beam_size
        self._suffix = suffix

        try:
            from faster_whisper import WhisperModel
        except ImportError as exc:  # pragma: no cover - exercised in runtime, not tests
            raise RuntimeError("faster-whisper is not installed") from exc

        download_directory = str(download_root) if download_root is not None else None
        self._model = WhisperModel(
            model_size,
            device="cpu",
            compute_type=compute_type,
            download_root=download_directory,
        )
        LOGGER.debug(
            "Loaded faster_whisper model '%s' (download_root=%s, compute_type=%s)",
            model_size,
            download_directory,
            compute_type,
        )

    def transcribe(self, audio: bytes) -> str:
        # faster_whisper decodes through PyAV and needs a real file.
        with tempfile.TemporaryDirectory(prefix="memory-lane-") as workdir:
            audio_path = Path(workdir) / f"narration{self._suffix}"
            audio_path.write_bytes(audio)
            LOGGER.debug("Transcribing %d bytes of narration audio", len(audio))
            segments, info = self._model.transcribe(str(audio_path), beam_size=self._beam_size)
            text = join_segments(segment.text for segment in segments)
        LOGGER.debug(
            "Transcription finished (duration=%.2fs, characters=%d)",
            float(getattr(info, "duration", 0.0) or 0.0),
            len(text),
        )
        return text


def join_segments(texts: Iterable[str]) -> str:
    """Join segment texts into a single line without timestamps or labels."""

    return " ".join(cleaned for cleaned in (text.strip() for text in texts) if cleaned).strip()


__all__ = ["FasterWhisperTranscription", "TranscriptionEngine", "join_segments"]
