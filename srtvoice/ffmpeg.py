"""Typed filter-graph descriptors and the ffmpeg/ffprobe subprocess boundary."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from srtvoice.errors import EngineError
from srtvoice.logging_utils import get_logger

log = get_logger(__name__)


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return repr(value)
    return str(value)


@dataclass(frozen=True)
class FilterSpec:
    """One ffmpeg filter: a name plus ordered ``key=value`` options.

    Filters taking a single unnamed argument (``atempo=1.5``,
    ``adelay=1000|1000``) use ``value`` instead of ``params``.
    """

    name: str
    params: Tuple[Tuple[str, Any], ...] = ()
    value: Optional[Any] = None

    @classmethod
    def with_options(cls, name: str, **options: Any) -> "FilterSpec":
        return cls(name=name, params=tuple(options.items()))

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.name}={_fmt(self.value)}"
        if not self.params:
            return self.name
        return self.name + "=" + ":".join(f"{k}={_fmt(v)}" for k, v in self.params)


@dataclass(frozen=True)
class FilterChain:
    """A labelled linear chain inside a ``-filter_complex`` graph."""

    filters: Tuple[FilterSpec, ...]
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()

    def __str__(self) -> str:
        ins = "".join(f"[{label}]" for label in self.inputs)
        outs = "".join(f"[{label}]" for label in self.outputs)
        return ins + ",".join(str(f) for f in self.filters) + outs


def filter_chain(filters: Sequence[FilterSpec]) -> str:
    """Serialize a simple ``-af`` chain."""
    return ",".join(str(f) for f in filters)


def filter_graph(chains: Sequence[FilterChain]) -> str:
    """Serialize a ``-filter_complex`` graph."""
    return ";".join(str(c) for c in chains)


@dataclass
class EngineResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_tail(self, lines: int = 5) -> str:
        return "\n".join(self.stderr.strip().splitlines()[-lines:])


@dataclass
class FfmpegEngine:
    """Runs ffmpeg/ffprobe as subprocesses with an optional timeout."""

    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    timeout: Optional[float] = None
    base_args: List[str] = field(default_factory=lambda: ["-hide_banner", "-nostdin"])

    def _run(self, cmd: List[str]) -> EngineResult:
        log.debug("engine run", extra={"cmd": " ".join(cmd)})
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, check=False, timeout=self.timeout)
        except FileNotFoundError as exc:
            raise EngineError(f"{cmd[0]} not found. Please install FFmpeg.") from exc
        except subprocess.TimeoutExpired as exc:
            raise EngineError(f"{cmd[0]} timed out after {self.timeout}s") from exc
        return EngineResult(proc.returncode, proc.stdout or "", proc.stderr or "")

    def run_ffmpeg(self, args: Sequence[str]) -> EngineResult:
        """Run ffmpeg with ``args``; the caller decides what a non-zero exit means."""
        return self._run([self.ffmpeg_bin, *self.base_args, *args])

    def probe(self, path: str) -> Dict[str, Any]:
        """Run ffprobe on ``path`` and return its JSON output as a dict."""
        cmd = [self.ffprobe_bin, "-v", "error", "-show_format", "-print_format", "json", path]
        result = self._run(cmd)
        if not result.ok:
            raise EngineError(
                f"ffprobe failed (exit {result.returncode}): {result.stderr_tail()}",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise EngineError("Failed to parse ffprobe output as JSON.") from exc
