"""Speech text cleanup and dictionary substitution."""

from __future__ import annotations

import json
import os
import re
from typing import Dict, Optional

from srtvoice.logging_utils import get_logger
from srtvoice.types import DictionaryEntry

log = get_logger(__name__)

# Runs of two or more box-drawing/dingbat/CJK-punctuation/fullwidth/private-use
# symbols or bracketed groups, i.e. kaomoji such as (╯°□°)╯ or （＾▽＾）（＾▽＾）.
_KAOMOJI_RE = re.compile(
    r"(?:[\u2500-\u257F\u2580-\u259F\u25A0-\u25FF\u2600-\u26FF\u2700-\u27BF"
    r"\u3000-\u303F\uFF00-\uFFEF\uE000-\uF8FF]|\([^)]*\)|\uFF08[^\uFF09]*\uFF09){2,}"
)
_EMOTICON_RE = re.compile(r"\s*(?:qwq|qaq|owo|ovo|t_t|;-;|:\)|:\(|:p|:d|=v=)\s*", re.IGNORECASE)
# Bracketed groups without any letter, digit, CJK ideograph or kana.
_SYMBOL_GROUP_RE = re.compile(r"[\uFF08(][^a-zA-Z0-9\u4e00-\u9fa5\u3040-\u309f\u30a0-\u30ff]+?[)\uFF09]")
_JS_GROUP_REF_RE = re.compile(r"\$(\$|&|\d{1,2})")


def cleanup_text(text: str) -> str:
    """Strip emoticons and decorative symbols that a synthesizer would read aloud."""
    cleaned = _KAOMOJI_RE.sub("", text)
    cleaned = _EMOTICON_RE.sub(" ", cleaned)
    cleaned = _SYMBOL_GROUP_RE.sub("", cleaned)
    return re.sub(r"\s+", " ", cleaned.strip())


def _replacement_template(value: str) -> str:
    """Turn a ``$1`` / ``$&`` style replacement into a ``re`` template."""

    def repl(m: re.Match) -> str:
        ref = m.group(1)
        if ref == "$":
            return "$"
        if ref == "&":
            return r"\g<0>"
        return rf"\g<{int(ref)}>"

    return _JS_GROUP_REF_RE.sub(repl, value.replace("\\", "\\\\"))


def load_dictionary(path: str) -> Optional[Dict[str, DictionaryEntry]]:
    """Load the substitution dictionary, or return None with a warning."""
    if not os.path.exists(path):
        log.warning("dictionary not found; substitution disabled", extra={"path": path})
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        log.warning("dictionary unreadable; substitution disabled", extra={"path": path, "error": str(e)})
        return None
    if not isinstance(data, dict):
        log.warning("dictionary must be a JSON object; substitution disabled", extra={"path": path})
        return None
    log.info("dictionary loaded", extra={"path": path, "entries": len(data)})
    return data


def apply_dictionary(text: str, dictionary: Optional[Dict[str, DictionaryEntry]]) -> str:
    """Apply every dictionary pattern to ``text``, longest pattern first.

    Patterns are regular expressions, matched case-insensitively unless the
    entry sets ``caseSensitive``. A pattern (or replacement) that does not
    compile is skipped with a warning and the remaining ones still apply.
    """
    if not dictionary:
        return text
    result = text
    for pattern in sorted(dictionary, key=len, reverse=True):
        entry = dictionary[pattern]
        if isinstance(entry, str):
            entry = {"value": entry}
        if not isinstance(entry, dict) or "value" not in entry:
            log.warning("dictionary entry without value; skip", extra={"pattern": pattern})
            continue
        flags = 0 if entry.get("caseSensitive") else re.IGNORECASE
        try:
            result = re.sub(pattern, _replacement_template(str(entry["value"])), result, flags=flags)
        except re.error as e:
            log.warning("invalid dictionary pattern; skip", extra={"pattern": pattern, "error": str(e)})
    return result


def normalize_text(text: str, dictionary: Optional[Dict[str, DictionaryEntry]] = None) -> str:
    return apply_dictionary(cleanup_text(text), dictionary)
