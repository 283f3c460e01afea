"""Processing backends used by the editing flow."""

from .transcription import FasterWhisperTranscription, TranscriptionEngine, join_segments

__all__ = ["FasterWhisperTranscription", "TranscriptionEngine", "join_segments"]
