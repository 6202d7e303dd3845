"""Two-pass EBU R128 loudness normalization through ffmpeg's loudnorm filter.

Pass 1 runs loudnorm in analysis mode and reads the JSON block it prints to
stderr. Pass 2 feeds the measured values back in as ``measured_*`` options so
the filter can run in its linear mode. The ``offset`` handed to pass 2 is
recomputed as ``target - measured_i``: the ``target_offset`` that loudnorm
reports itself has proven wrong for dynamic speech material and is only
logged.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict

from srtvoice.errors import AnalysisEngineError, AnalysisParseError, ApplicationEngineError
from srtvoice.ffmpeg import FfmpegEngine, FilterSpec
from srtvoice.logging_utils import get_logger
from srtvoice.types import LoudnessStats

log = get_logger(__name__)

DEFAULT_LRA = 11.0
DEFAULT_TRUE_PEAK = -1.5

_STAT_KEYS = {
    "measured_integrated": "input_i",
    "measured_lra": "input_lra",
    "measured_true_peak": "input_tp",
    "measured_threshold": "input_thresh",
    "engine_suggested_offset": "target_offset",
}


def analysis_filter(target: float, lra: float = DEFAULT_LRA, tp: float = DEFAULT_TRUE_PEAK) -> FilterSpec:
    return FilterSpec.with_options("loudnorm", I=target, LRA=lra, tp=tp, print_format="json")


def parse_loudnorm_stats(stderr: str) -> LoudnessStats:
    """Extract LoudnessStats from the last ``{...}`` block of loudnorm's stderr."""
    start = stderr.rfind("{")
    end = stderr.rfind("}")
    if start < 0 or end < start:
        raise AnalysisParseError("No loudnorm JSON block found in ffmpeg output.")
    try:
        data: Dict[str, Any] = json.loads(stderr[start:end + 1])
    except json.JSONDecodeError as e:
        raise AnalysisParseError(f"Invalid loudnorm JSON block: {e}")

    values: Dict[str, float] = {}
    for field_name, key in _STAT_KEYS.items():
        try:
            values[field_name] = float(data[key])
        except KeyError:
            raise AnalysisParseError(f"loudnorm JSON is missing {key!r}")
        except (TypeError, ValueError):
            raise AnalysisParseError(f"loudnorm JSON has non-numeric {key!r}: {data[key]!r}")
    return LoudnessStats(**values)


def corrected_offset(target: float, measured_integrated: float) -> float:
    """Gain offset for pass 2, independent of loudnorm's own suggestion."""
    return round(target - measured_integrated, 2)


def application_filter(
    stats: LoudnessStats,
    target: float,
    lra: float = DEFAULT_LRA,
    tp: float = DEFAULT_TRUE_PEAK,
) -> FilterSpec:
    offset = corrected_offset(target, stats.measured_integrated)
    return FilterSpec.with_options(
        "loudnorm",
        I=target,
        LRA=lra,
        tp=tp,
        measured_i=stats.measured_integrated,
        measured_lra=stats.measured_lra,
        measured_tp=stats.measured_true_peak,
        measured_thresh=stats.measured_threshold,
        offset=f"{offset:.2f}",
    )


def analyze_loudness(
    engine: FfmpegEngine,
    path: str,
    target: float,
    lra: float = DEFAULT_LRA,
    tp: float = DEFAULT_TRUE_PEAK,
) -> LoudnessStats:
    """Pass 1: measure ``path`` without writing any audio."""
    log.info("loudness analysis", extra={"input": path, "target": target})
    result = engine.run_ffmpeg(["-i", path, "-af", str(analysis_filter(target, lra, tp)), "-f", "null", "-"])
    if not result.ok:
        raise AnalysisEngineError(
            f"loudnorm analysis failed (exit {result.returncode}): {result.stderr_tail()}",
            returncode=result.returncode,
            stderr=result.stderr,
        )
    stats = parse_loudnorm_stats(result.stderr)
    log.info("loudness measured", extra={
        "input_i": stats.measured_integrated, "input_tp": stats.measured_true_peak,
        "input_lra": stats.measured_lra,
    })
    return stats


def _partial_path(dst: str) -> str:
    head, tail = os.path.split(dst)
    stem, ext = os.path.splitext(tail)
    return os.path.join(head, f".{stem}.partial{ext}")


def apply_loudness(
    engine: FfmpegEngine,
    src: str,
    dst: str,
    stats: LoudnessStats,
    target: float,
    lra: float = DEFAULT_LRA,
    tp: float = DEFAULT_TRUE_PEAK,
    sample_rate: int = 44100,
) -> str:
    """Pass 2: apply the correction; ``dst`` only appears once ffmpeg succeeded."""
    offset = corrected_offset(target, stats.measured_integrated)
    log.info("loudness offset", extra={
        "engine_suggested": stats.engine_suggested_offset, "applied": f"{offset:.2f}"
    })
    partial = _partial_path(dst)
    af = str(application_filter(stats, target, lra, tp))
    result = engine.run_ffmpeg(["-y", "-i", src, "-af", af, "-ar", str(sample_rate), partial])
    if not result.ok:
        if os.path.exists(partial):
            os.remove(partial)
        raise ApplicationEngineError(
            f"loudnorm application failed (exit {result.returncode}): {result.stderr_tail()}",
            returncode=result.returncode,
            stderr=result.stderr,
        )
    os.replace(partial, dst)
    log.info("loudness normalized", extra={"output": dst})
    return dst


def normalize_loudness(
    engine: FfmpegEngine,
    src: str,
    dst: str,
    target: float = -16.0,
    lra: float = DEFAULT_LRA,
    tp: float = DEFAULT_TRUE_PEAK,
    sample_rate: int = 44100,
) -> LoudnessStats:
    """Run both passes on ``src`` writing ``dst``; returns the pass-1 measurement."""
    stats = analyze_loudness(engine, src, target, lra, tp)
    apply_loudness(engine, src, dst, stats, target, lra, tp, sample_rate)
    return stats
