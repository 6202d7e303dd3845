from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class PipelineConfig:
    """Settings for one srtvoice run.

    Built once (usually from CLI arguments) and handed to the runner; the
    defaults match a local VITS server and a -16 LUFS spoken-word target.
    """

    # speech server
    endpoint: str = "http://127.0.0.1:23456/voice/vits"
    speaker_id: int = 2894
    audio_format: str = "mp3"
    lang: str = "auto"
    request_timeout: Optional[float] = 60.0

    # filesystem
    srt_dir: str = "./srt"
    out_dir: str = "./out"
    temp_dir: str = "./temp_audio"
    dict_path: str = "./dict.json"

    # loudnorm targets
    target_loudness: float = -16.0
    loudness_range: float = 11.0
    true_peak: float = -1.5

    # ffmpeg
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    engine_timeout: Optional[float] = 600.0
    sample_rate: int = 44100

    # per-cue synthesis/tempo workers; 1 keeps strict sequential order
    workers: int = 1
