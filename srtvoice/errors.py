from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base error for the srtvoice pipeline."""


class TranscriptError(PipelineError):
    """Raised when a transcript file cannot be read or parsed."""


class TranscriptNotFoundError(TranscriptError, FileNotFoundError):
    """Raised when the requested transcript file does not exist."""


class MalformedTimecode(PipelineError, ValueError):
    """Raised when a timestamp does not look like HH:MM:SS,mmm."""


class SynthesisError(PipelineError):
    """Raised when the speech server call fails."""


class NetworkError(SynthesisError):
    """Raised when the speech server cannot be reached or times out."""


class ServiceError(SynthesisError):
    """Raised when the speech server answers with an error status or no audio."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EngineError(PipelineError):
    """Raised when an ffmpeg/ffprobe invocation fails."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class DurationProbeError(EngineError):
    """Raised when the playback duration of a clip cannot be measured."""


class TempoError(EngineError):
    """Raised when time-compressing a clip fails."""


class NothingToMergeError(PipelineError):
    """Raised when no cue produced a clip, so there is nothing to merge."""


class MergeEngineError(EngineError):
    """Raised when mixing the delayed clips into one track fails."""


class AnalysisEngineError(EngineError):
    """Raised when the loudness analysis pass itself fails."""


class AnalysisParseError(PipelineError):
    """Raised when no usable loudnorm JSON block is found in the analysis output."""


class ApplicationEngineError(EngineError):
    """Raised when the loudness application pass fails."""
