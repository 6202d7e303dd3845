from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, TypedDict


class CueEntry(TypedDict):
    """One cue as written in a JSON cue list."""

    id: int
    start: str
    end: str
    text: str


class DictionaryEntry(TypedDict, total=False):
    value: str
    caseSensitive: bool


@dataclass(frozen=True)
class Cue:
    id: int
    start_ms: int
    end_ms: int
    text: str

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


@dataclass
class SynthesizedClip:
    """Audio for one cue, anchored at the cue start on the shared timeline."""

    path: str
    start_offset_ms: int
    duration_ms: float
    cue_id: int = 0
    speed: float = 1.0

    @property
    def end_ms(self) -> float:
        return self.start_offset_ms + self.duration_ms


@dataclass(frozen=True)
class LoudnessStats:
    """Values measured by the loudnorm analysis pass.

    ``engine_suggested_offset`` is what ffmpeg proposes for the second pass.
    It is kept for logging only; the applied offset is recomputed from
    ``measured_integrated``.
    """

    measured_integrated: float
    measured_lra: float
    measured_true_peak: float
    measured_threshold: float
    engine_suggested_offset: float


class RunState(enum.Enum):
    INIT = "init"
    PER_CUE = "per_cue"
    MERGING = "merging"
    NORMALIZING = "normalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunResult:
    output_path: str
    clips: List[SynthesizedClip] = field(default_factory=list)
    skipped_cue_ids: List[int] = field(default_factory=list)
