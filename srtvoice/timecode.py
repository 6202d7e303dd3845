"""Conversion between SRT-style timestamps and integer milliseconds."""

from __future__ import annotations

import re

from srtvoice.errors import MalformedTimecode

_TIMECODE_RE = re.compile(r"^(\d+):(\d{1,2}):(\d{1,2})[,.](\d{1,3})$")


def parse_timecode(text: str) -> int:
    """Parse ``HH:MM:SS,mmm`` into milliseconds since the start of the track.

    A ``.`` is accepted in place of the comma. The fractional part is read as
    a decimal fraction, so ``00:00:01,5`` is 1500 ms.

    Raises:
        MalformedTimecode: if the text does not match the pattern.
    """
    m = _TIMECODE_RE.match(str(text).strip())
    if not m:
        raise MalformedTimecode(f"Malformed timecode: {text!r}")
    hours, minutes, seconds = int(m.group(1)), int(m.group(2)), int(m.group(3))
    if minutes >= 60 or seconds >= 60:
        raise MalformedTimecode(f"Malformed timecode: {text!r}")
    millis = int(m.group(4).ljust(3, "0"))
    return (hours * 3600 + minutes * 60 + seconds) * 1000 + millis


def format_timecode(ms: float) -> str:
    total = int(round(ms))
    hours, rest = divmod(total, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"
