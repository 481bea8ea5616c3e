"""
Text helpers shared by the proxy backends and the remote client
"""
import html
import json
import re
from typing import Any, Dict, Optional

TAG_PATTERN = re.compile(r"<[^>]+>")
SCRIPT_STYLE_PATTERN = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
WHITESPACE_PATTERN = re.compile(r"\s+")
JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


def strip_html(text: Optional[str]) -> str:
    """Plain text of an HTML fragment, whitespace collapsed"""
    if not text:
        return ""
    text = SCRIPT_STYLE_PATTERN.sub(" ", text)
    text = TAG_PATTERN.sub(" ", text)
    return WHITESPACE_PATTERN.sub(" ", html.unescape(text)).strip()


def parse_json_reply(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Pull a JSON object out of a model reply

    Models often wrap JSON in code fences or prose; the outermost {...} span
    is tried when the whole reply does not parse.

    Returns:
        Parsed dict or None
    """
    if not text:
        return None
    candidates = [text.strip()]
    match = JSON_OBJECT_PATTERN.search(text)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None
