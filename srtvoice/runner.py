from __future__ import annotations

import os
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence

from srtvoice.audio import adjust_tempo, merge_clips, needs_tempo, probe_duration_ms, speed_factor
from srtvoice.config import PipelineConfig
from srtvoice.errors import EngineError, NothingToMergeError, PipelineError
from srtvoice.ffmpeg import FfmpegEngine
from srtvoice.logging_utils import get_logger
from srtvoice.loudness import normalize_loudness
from srtvoice.subtitles import drop_duplicate_ids, load_cues
from srtvoice.text import normalize_text
from srtvoice.timecode import format_timecode
from srtvoice.types import Cue, DictionaryEntry, RunResult, RunState, SynthesizedClip
from srtvoice.vits_client import synthesize_cue

log = get_logger(__name__)

Synthesizer = Callable[[str, int, PipelineConfig], Optional[bytes]]


def prepare_scratch_dir(path: str) -> None:
    """Remove and recreate the per-run scratch directory."""
    if os.path.exists(path):
        shutil.rmtree(path)
    os.makedirs(path)


class PipelineRunner:
    """Sequences cue synthesis, tempo correction, merging and loudness normalization.

    ``state`` moves INIT -> PER_CUE -> MERGING -> NORMALIZING -> DONE. A cue
    that fails at any per-cue step is logged and left out; a failure while
    merging or normalizing moves to FAILED and is re-raised.
    """

    def __init__(
        self,
        config: PipelineConfig,
        engine: Optional[FfmpegEngine] = None,
        synthesizer: Optional[Synthesizer] = None,
        dictionary: Optional[Dict[str, DictionaryEntry]] = None,
    ) -> None:
        self.config = config
        self.engine = engine or FfmpegEngine(
            ffmpeg_bin=config.ffmpeg_bin, ffprobe_bin=config.ffprobe_bin, timeout=config.engine_timeout
        )
        self.synthesizer = synthesizer or synthesize_cue
        self.dictionary = dictionary
        self.state = RunState.INIT

    def process_cue(self, cue: Cue) -> Optional[SynthesizedClip]:
        """Produce the clip for one cue, or None when the cue has to be skipped."""
        text = normalize_text(cue.text, self.dictionary)
        if text != cue.text:
            log.info("text normalized", extra={"cue": cue.id, "before": cue.text, "after": text})
        if not text.strip():
            log.info("empty text after normalization; skip", extra={"cue": cue.id})
            return None

        audio = self.synthesizer(text, cue.id, self.config)
        if not audio:
            return None
        src = os.path.join(self.config.temp_dir, f"temp_{cue.id}.{self.config.audio_format}")
        try:
            with open(src, "wb") as f:
                f.write(audio)
        except OSError as e:
            log.error("cannot write clip; skip", extra={"cue": cue.id, "path": src, "error": str(e)})
            return None

        try:
            generated_ms = probe_duration_ms(self.engine, src)
            cue_s = cue.duration_ms / 1000.0
            generated_s = generated_ms / 1000.0
            log.info("durations", extra={
                "cue": cue.id, "cue_s": round(cue_s, 2), "generated_s": round(generated_s, 2)
            })

            path, duration_ms, speed = src, generated_ms, 1.0
            if needs_tempo(generated_s, cue_s):
                speed = speed_factor(generated_s, cue_s)
                dst = os.path.join(self.config.temp_dir, f"processed_{cue.id}.{self.config.audio_format}")
                path = adjust_tempo(self.engine, src, dst, speed)
                duration_ms = probe_duration_ms(self.engine, path)
            else:
                log.info("fits cue window; no tempo change", extra={"cue": cue.id})
        except EngineError as e:
            log.error("cue audio processing failed; skip", extra={"cue": cue.id, "error": str(e)})
            return None

        return SynthesizedClip(
            path=path, start_offset_ms=cue.start_ms, duration_ms=duration_ms, cue_id=cue.id, speed=speed
        )

    def _collect_clips(self, cues: Sequence[Cue]) -> List[Optional[SynthesizedClip]]:
        if self.config.workers > 1:
            with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
                # map() yields in submission order, which keeps the cue order.
                return list(pool.map(self.process_cue, cues))
        return [self.process_cue(cue) for cue in cues]

    def run(self, cues: Sequence[Cue], output_path: str) -> RunResult:
        """Turn ``cues`` into one normalized track at ``output_path``."""
        self.state = RunState.INIT
        prepare_scratch_dir(self.config.temp_dir)
        os.makedirs(self.config.out_dir, exist_ok=True)
        out_parent = os.path.dirname(output_path)
        if out_parent:
            os.makedirs(out_parent, exist_ok=True)

        self.state = RunState.PER_CUE
        unique = drop_duplicate_ids(cues)
        log.info("start cue processing", extra={"cues": len(unique), "workers": self.config.workers})
        clips: List[SynthesizedClip] = []
        skipped: List[int] = []
        produced = {id(cue): clip for cue, clip in zip(unique, self._collect_clips(unique))}
        for cue in cues:
            clip = produced.get(id(cue))
            if clip is None:
                skipped.append(cue.id)
                continue
            log.debug("clip ready", extra={"cue": cue.id, "at": format_timecode(clip.start_offset_ms)})
            clips.append(clip)

        self.state = RunState.MERGING
        merged = os.path.join(self.config.out_dir, f"temp_merged_{int(time.time() * 1000)}.mp3")
        try:
            if not clips:
                raise NothingToMergeError("No audio clips were generated; nothing to merge.")
            merge_clips(self.engine, clips, merged)

            self.state = RunState.NORMALIZING
            normalize_loudness(
                self.engine,
                merged,
                output_path,
                target=self.config.target_loudness,
                lra=self.config.loudness_range,
                tp=self.config.true_peak,
                sample_rate=self.config.sample_rate,
            )
        except (PipelineError, OSError) as e:
            log.error("run failed", extra={"stage": self.state.value, "error": str(e)})
            self.state = RunState.FAILED
            raise
        os.remove(merged)

        self.state = RunState.DONE
        log.info("run done", extra={"output": output_path, "clips": len(clips), "skipped": skipped})
        return RunResult(output_path=output_path, clips=clips, skipped_cue_ids=skipped)

    def run_file(self, transcript_path: str, output_path: Optional[str] = None) -> RunResult:
        """Load cues from ``transcript_path`` and run; output defaults to out_dir/<stem>.mp3."""
        if output_path is None:
            stem = os.path.splitext(os.path.basename(transcript_path))[0]
            output_path = os.path.join(self.config.out_dir, f"{stem}.mp3")
        return self.run(load_cues(transcript_path), output_path)
