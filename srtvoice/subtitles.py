from __future__ import annotations

import json
import os
from datetime import timedelta
from typing import List, Sequence

import pysubs2
import srt
from pysubs2.exceptions import Pysubs2Error

from srtvoice.errors import MalformedTimecode, TranscriptError, TranscriptNotFoundError
from srtvoice.logging_utils import get_logger
from srtvoice.timecode import parse_timecode
from srtvoice.types import Cue, CueEntry

log = get_logger(__name__)

_MS = timedelta(milliseconds=1)


def list_transcripts(srt_dir: str) -> List[str]:
    """Return the .srt file names in ``srt_dir``, sorted by name."""
    return sorted(name for name in os.listdir(srt_dir) if name.lower().endswith(".srt"))


def _flatten(text: str) -> str:
    return " ".join(line.strip() for line in text.splitlines() if line.strip())


def load_srt_cues(path: str) -> List[Cue]:
    """Read an SRT file into cues in file order, keeping each block's own index as the cue id."""
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            subs = list(srt.parse(f.read()))
    except (OSError, UnicodeDecodeError, srt.SRTParseError) as e:
        raise TranscriptError(f"Failed to read subtitles {path}: {e}")
    return [
        Cue(id=int(sub.index), start_ms=sub.start // _MS, end_ms=sub.end // _MS, text=_flatten(sub.content))
        for sub in subs
    ]


def load_subtitle_cues(path: str) -> List[Cue]:
    """Read a non-SRT subtitle file (ASS, VTT, ...) with pysubs2.

    These formats carry no cue index, so ids are numbered from 1 in file
    order; comment events are ignored.
    """
    try:
        subs = pysubs2.load(path, encoding="utf-8")
    except (Pysubs2Error, UnicodeDecodeError, ValueError) as e:
        raise TranscriptError(f"Failed to read subtitles {path}: {e}")

    cues: List[Cue] = []
    for event in subs.events:
        if event.is_comment:
            continue
        cues.append(Cue(id=len(cues) + 1, start_ms=int(event.start), end_ms=int(event.end),
                        text=_flatten(event.plaintext)))
    return cues


def load_json_cues(path: str) -> List[Cue]:
    """Read a JSON cue list ``[{"id", "start", "end", "text"}, ...]``.

    Timestamps are ``HH:MM:SS,mmm`` strings. A cue with a malformed timestamp
    or id is logged and skipped; the rest keep their order.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise TranscriptError(f"Failed to read cue list {path}: {e}")
    if not isinstance(data, list):
        raise TranscriptError(f"Cue list must be a JSON array: {path}")

    entries: List[CueEntry] = data
    cues: List[Cue] = []
    for pos, entry in enumerate(entries, start=1):
        try:
            cue = Cue(
                id=int(entry.get("id", pos)),
                start_ms=parse_timecode(entry["start"]),
                end_ms=parse_timecode(entry["end"]),
                text=str(entry.get("text", "")),
            )
        except MalformedTimecode as e:
            log.warning("malformed timecode; skip cue", extra={"position": pos, "error": str(e)})
            continue
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            log.warning("invalid cue entry; skip", extra={"position": pos, "error": repr(e)})
            continue
        cues.append(cue)
    return cues


def drop_duplicate_ids(cues: Sequence[Cue]) -> List[Cue]:
    """Keep the first cue for each id; later cues reusing an id are logged and dropped.

    Per-cue clip files are named after the cue id, so ids must be unique
    within a run.
    """
    seen = set()
    unique: List[Cue] = []
    for cue in cues:
        if cue.id in seen:
            log.warning("duplicate cue id; skip cue", extra={"cue": cue.id, "text": cue.text})
            continue
        seen.add(cue.id)
        unique.append(cue)
    return unique


def load_cues(path: str) -> List[Cue]:
    """Load cues from ``path``.

    ``.json`` files are cue lists, ``.srt`` files go through the srt library
    and anything else through pysubs2. Duplicate ids are dropped.
    """
    if not os.path.exists(path):
        raise TranscriptNotFoundError(f"Transcript not found: {path}")
    lower = path.lower()
    if lower.endswith(".json"):
        cues = load_json_cues(path)
    elif lower.endswith(".srt"):
        cues = load_srt_cues(path)
    else:
        cues = load_subtitle_cues(path)
    cues = drop_duplicate_ids(cues)
    log.info("cues loaded", extra={"path": path, "cues": len(cues)})
    return cues
