from __future__ import annotations

import os
from typing import List, Sequence

from srtvoice.errors import DurationProbeError, EngineError, MergeEngineError, NothingToMergeError, TempoError
from srtvoice.ffmpeg import FfmpegEngine, FilterChain, FilterSpec, filter_chain, filter_graph
from srtvoice.logging_utils import get_logger
from srtvoice.types import SynthesizedClip

log = get_logger(__name__)

# ffmpeg's atempo accepts factors in [0.5, 2.0] per instance.
ATEMPO_MIN = 0.5
ATEMPO_MAX = 2.0


def probe_duration_ms(engine: FfmpegEngine, path: str) -> float:
    """Measure the playback duration of ``path`` in milliseconds."""
    if not os.path.exists(path):
        raise DurationProbeError(f"Audio file not found: {path}")
    try:
        info = engine.probe(path)
    except EngineError as e:
        raise DurationProbeError(f"Duration probe failed for {path}: {e}", returncode=e.returncode, stderr=e.stderr)
    try:
        seconds = float(info["format"]["duration"])
    except (KeyError, TypeError, ValueError):
        raise DurationProbeError(f"No duration reported for {path}")
    return seconds * 1000.0


def needs_tempo(generated_s: float, cue_s: float) -> bool:
    """Speech is only ever compressed to fit its cue, never stretched."""
    return generated_s > cue_s and cue_s > 0


def speed_factor(generated_s: float, cue_s: float) -> float:
    return generated_s / cue_s


def tempo_stages(factor: float) -> List[float]:
    """Split ``factor`` into chained atempo stages each inside [0.5, 2.0].

    The product of the stages equals ``factor``, so e.g. 5.0 becomes
    ``[2.0, 2.0, 1.25]`` rather than being clamped.
    """
    if factor <= 0:
        raise TempoError(f"Tempo factor must be positive, got {factor}")
    stages: List[float] = []
    remaining = factor
    while remaining > ATEMPO_MAX:
        stages.append(ATEMPO_MAX)
        remaining /= ATEMPO_MAX
    while remaining < ATEMPO_MIN:
        stages.append(ATEMPO_MIN)
        remaining /= ATEMPO_MIN
    stages.append(remaining)
    return stages


def tempo_filter(factor: float) -> str:
    return filter_chain([FilterSpec("atempo", value=s) for s in tempo_stages(factor)])


def adjust_tempo(engine: FfmpegEngine, src: str, dst: str, factor: float) -> str:
    """Time-compress ``src`` by ``factor`` into ``dst`` and return ``dst``."""
    af = tempo_filter(factor)
    log.info("tempo adjust", extra={"speed": round(factor, 2), "file": os.path.basename(src), "filter": af})
    result = engine.run_ffmpeg(["-y", "-i", src, "-af", af, dst])
    if not result.ok:
        raise TempoError(
            f"atempo failed for {src} (exit {result.returncode}): {result.stderr_tail()}",
            returncode=result.returncode,
            stderr=result.stderr,
        )
    return dst


def merge_filter_graph(clips: Sequence[SynthesizedClip]) -> str:
    """Delay every clip to its cue start on both channels, then mix longest-wins."""
    chains: List[FilterChain] = []
    labels: List[str] = []
    for i, clip in enumerate(clips):
        delay = int(clip.start_offset_ms)
        label = f"a{i}"
        chains.append(FilterChain(
            filters=(FilterSpec("adelay", value=f"{delay}|{delay}"),),
            inputs=(f"{i}:a",),
            outputs=(label,),
        ))
        labels.append(label)
    chains.append(FilterChain(
        filters=(FilterSpec.with_options("amix", inputs=len(clips), duration="longest"),),
        inputs=tuple(labels),
    ))
    return filter_graph(chains)


def expected_merge_duration_ms(clips: Sequence[SynthesizedClip]) -> float:
    """Length of the mixed track: the latest clip end, not the sum of clips."""
    return max((clip.end_ms for clip in clips), default=0.0)


def merge_clips(engine: FfmpegEngine, clips: Sequence[SynthesizedClip], dst: str) -> str:
    """Mix all clips onto one timeline in a single ffmpeg call and write ``dst``."""
    if not clips:
        raise NothingToMergeError("No audio clips were generated; nothing to merge.")
    for clip in clips:
        if clip.start_offset_ms < 0:
            raise MergeEngineError(f"Clip for cue {clip.cue_id} has negative offset {clip.start_offset_ms}")

    args: List[str] = ["-y"]
    for clip in clips:
        args += ["-i", clip.path]
    args += ["-filter_complex", merge_filter_graph(clips), "-c:a", "libmp3lame", dst]

    log.info("merge clips", extra={
        "clips": len(clips), "expected_duration_ms": round(expected_merge_duration_ms(clips), 1)
    })
    result = engine.run_ffmpeg(args)
    if not result.ok:
        log.error("merge failed", extra={"returncode": result.returncode})
        raise MergeEngineError(
            f"amix failed (exit {result.returncode}): {result.stderr_tail()}",
            returncode=result.returncode,
            stderr=result.stderr,
        )
    log.info("clips merged", extra={"output": dst})
    return dst
