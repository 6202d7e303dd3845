from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional

from srtvoice.config import PipelineConfig
from srtvoice.errors import PipelineError
from srtvoice.logging_utils import get_logger, setup_logging
from srtvoice.runner import PipelineRunner
from srtvoice.subtitles import list_transcripts
from srtvoice.text import load_dictionary

log = get_logger(__name__)

_DEFAULTS = PipelineConfig()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Generate a timed, loudness-normalized voice track from an SRT file")
    parser.add_argument("--srt_path", type=str, default=None,
                        help="Transcript to process (.srt or .json cue list). Prompts from --srt_dir when omitted")
    parser.add_argument("--output", type=str, default=None, help="Output MP3 path (default: <out_dir>/<srt name>.mp3)")
    parser.add_argument("--list", action="store_true", help="List the .srt files in --srt_dir and exit")
    parser.add_argument("--endpoint", type=str, default=_DEFAULTS.endpoint, help="VITS endpoint URL")
    parser.add_argument("--speaker_id", type=int, default=_DEFAULTS.speaker_id,
                        help=f"Speaker ID (default: {_DEFAULTS.speaker_id})")
    parser.add_argument("--lang", type=str, default=_DEFAULTS.lang, help="Synthesis language (default: auto)")
    parser.add_argument("--srt_dir", type=str, default=_DEFAULTS.srt_dir, help="Directory holding .srt files")
    parser.add_argument("--out_dir", type=str, default=_DEFAULTS.out_dir, help="Output directory")
    parser.add_argument("--temp_dir", type=str, default=_DEFAULTS.temp_dir,
                        help="Scratch directory for per-cue clips (cleared at start of each run)")
    parser.add_argument("--dict_path", type=str, default=_DEFAULTS.dict_path, help="Substitution dictionary JSON")
    parser.add_argument("--target_loudness", type=float, default=_DEFAULTS.target_loudness,
                        help=f"Target integrated loudness in LUFS (default: {_DEFAULTS.target_loudness})")
    parser.add_argument("--loudness_range", type=float, default=_DEFAULTS.loudness_range, help="loudnorm LRA")
    parser.add_argument("--true_peak", type=float, default=_DEFAULTS.true_peak, help="loudnorm true peak (dBTP)")
    parser.add_argument("--request_timeout", type=float, default=_DEFAULTS.request_timeout,
                        help="Speech server timeout in seconds")
    parser.add_argument("--engine_timeout", type=float, default=_DEFAULTS.engine_timeout,
                        help="ffmpeg/ffprobe timeout in seconds")
    parser.add_argument("--ffmpeg_bin", type=str, default=_DEFAULTS.ffmpeg_bin)
    parser.add_argument("--ffprobe_bin", type=str, default=_DEFAULTS.ffprobe_bin)
    parser.add_argument("--workers", type=int, default=_DEFAULTS.workers,
                        help="Cues synthesized in parallel (default: 1, sequential)")
    parser.add_argument("--log_level", type=str, default=None, help="Log level (e.g., INFO, DEBUG)")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    return PipelineConfig(
        endpoint=args.endpoint,
        speaker_id=args.speaker_id,
        lang=args.lang,
        request_timeout=args.request_timeout,
        srt_dir=args.srt_dir,
        out_dir=args.out_dir,
        temp_dir=args.temp_dir,
        dict_path=args.dict_path,
        target_loudness=args.target_loudness,
        loudness_range=args.loudness_range,
        true_peak=args.true_peak,
        ffmpeg_bin=args.ffmpeg_bin,
        ffprobe_bin=args.ffprobe_bin,
        engine_timeout=args.engine_timeout,
        workers=max(1, args.workers),
    )


def choose_transcript(srt_dir: str, files: List[str]) -> Optional[str]:
    """Print a numbered menu of ``files`` and return the chosen path, or None."""
    print("Select the SRT file to process:")
    for i, name in enumerate(files, start=1):
        print(f"  [{i}] {name}")
    answer = input("\nEnter the file number: ")
    try:
        index = int(answer) - 1
    except ValueError:
        return None
    if index < 0 or index >= len(files):
        return None
    return os.path.join(srt_dir, files[index])


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    # pick a file from ./srt interactively
    python3 srt_voice_generator.py

    # process one file directly
    python3 srt_voice_generator.py --srt_path srt/episode1.srt --speaker_id 2894

    # quieter output, custom loudness
    python3 srt_voice_generator.py --srt_path cues.json --target_loudness -18 --log_level WARNING
    """
    args = parse_args(argv)
    setup_logging(args.log_level)
    config = build_config(args)

    srt_path = args.srt_path
    if srt_path is None:
        if not os.path.isdir(config.srt_dir):
            os.makedirs(config.srt_dir)
            log.info("srt directory created; put .srt files in it", extra={"srt_dir": config.srt_dir})
            return 0
        files = list_transcripts(config.srt_dir)
        if not files:
            log.info("no .srt files found", extra={"srt_dir": config.srt_dir})
            return 0
        if args.list:
            for name in files:
                print(name)
            return 0
        srt_path = choose_transcript(config.srt_dir, files)
        if srt_path is None:
            log.error("invalid selection")
            return 1

    dictionary = load_dictionary(config.dict_path)
    runner = PipelineRunner(config, dictionary=dictionary)
    try:
        result = runner.run_file(srt_path, args.output)
    except (PipelineError, OSError) as e:
        log.error("voice track generation failed", extra={"state": runner.state.value, "error": str(e)})
        return 1
    finally:
        log.info("per-cue clips are kept for inspection; delete manually", extra={"temp_dir": config.temp_dir})
    log.info("voice track written", extra={"file": result.output_path, "clips": len(result.clips)})
    return 0


if __name__ == "__main__":
    sys.exit(main())
