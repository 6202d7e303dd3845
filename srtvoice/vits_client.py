from __future__ import annotations

from typing import Optional

import requests

from srtvoice.config import PipelineConfig
from srtvoice.errors import NetworkError, ServiceError, SynthesisError
from srtvoice.logging_utils import get_logger

log = get_logger(__name__)


def synthesize_speech(text: str, config: PipelineConfig) -> bytes:
    """Call the VITS ``/voice/vits`` endpoint and return audio bytes or raise SynthesisError."""
    params = {
        "id": config.speaker_id,
        "format": config.audio_format,
        "lang": config.lang,
        "text": text,
    }
    log.debug("vits GET", extra={"url": config.endpoint, "speaker_id": config.speaker_id, "text_len": len(text)})
    try:
        resp = requests.get(config.endpoint, params=params, timeout=config.request_timeout)
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"VITS request failed (speaker_id={config.speaker_id}): {e}")
    if not resp.ok:
        raise ServiceError(
            f"VITS returned HTTP {resp.status_code} (speaker_id={config.speaker_id})",
            status_code=resp.status_code,
        )
    if not resp.content:
        raise ServiceError(f"VITS returned no audio (speaker_id={config.speaker_id})", status_code=resp.status_code)
    return resp.content


def synthesize_cue(text: str, cue_id: int, config: PipelineConfig) -> Optional[bytes]:
    """Synthesize one cue; log and return None on failure so the run can go on."""
    log.info("synthesize", extra={"cue": cue_id, "text": text})
    try:
        return synthesize_speech(text, config)
    except SynthesisError as e:
        extra = {"cue": cue_id, "error": str(e)}
        if isinstance(e, ServiceError) and e.status_code is not None:
            extra["status"] = e.status_code
        log.error("synthesis failed", extra=extra)
        return None
