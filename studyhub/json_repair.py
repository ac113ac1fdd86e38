"""
Best-effort parsing of JSON emitted by language models.

Models often wrap JSON in Markdown fences or prose, or emit JavaScript-style
object literals (single quotes, bare keys, trailing commas). safe_parse_json
strips the wrapping, tries a strict parse, then applies a fixed list of
textual repairs and retries once. It is a heuristic, not a JSON5 parser:
repairs can still fail, and they can corrupt string values that legitimately
contain quotes.
"""

import json
import logging
import re
from typing import Any

from .exceptions import AIResponseParseError

logger = logging.getLogger(__name__)

SAMPLE_LENGTH = 500

CODE_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?")

# Applied in order on the second attempt.
REPAIRS = [
    # single-quoted keys: {'name': ...}
    (re.compile(r"([{,]\s*)'([^']+)'(\s*:)"), r'\1"\2"\3'),
    # single-quoted values: ...: 'a'}
    (re.compile(r"(:\s*)'([^']*)'(?=\s*[},\]])"), r'\1"\2"'),
    # single-quoted array items: ['a', 'b']
    (re.compile(r"([\[,]\s*)'([^']*)'(?=\s*[,\]])"), r'\1"\2"'),
    # trailing commas
    (re.compile(r",\s*}"), "}"),
    (re.compile(r",\s*]"), "]"),
    # bare keys: {name: ...}
    (re.compile(r"([{,]\s*)([A-Za-z_$][A-Za-z0-9_$]*)(\s*:)"), r'\1"\2"\3'),
]

BARE_VALUE_PATTERN = re.compile(r":(\s*)([A-Za-z][A-Za-z0-9_$]*)(\s*[,}\]])")
JSON_LITERALS = {"true", "false", "null"}


def _quote_bare_value(match: re.Match) -> str:
    word = match.group(2)
    if word in JSON_LITERALS:
        return match.group(0)
    return f':{match.group(1)}"{word}"{match.group(3)}'


def strip_code_fences(text: str) -> str:
    return CODE_FENCE_PATTERN.sub("", text).strip()


def extract_json_segment(text: str) -> str:
    """
    Slice text from the first '{' or '[' to the last '}' or ']'.

    Raises:
        AIResponseParseError: If the text contains no JSON container at all
    """
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    end = max(text.rfind("}"), text.rfind("]"))

    if not starts or end == -1:
        raise AIResponseParseError(
            "No JSON object or array found in AI response",
            original_sample=text[:SAMPLE_LENGTH],
        )

    start = min(starts)
    if end < start:
        raise AIResponseParseError(
            "Malformed JSON in AI response: closing bracket before opening bracket",
            original_sample=text[:SAMPLE_LENGTH],
        )
    return text[start:end + 1]


def repair_json_text(text: str) -> str:
    """Apply the fixed sequence of textual repairs."""
    repaired = text
    for pattern, replacement in REPAIRS:
        repaired = pattern.sub(replacement, repaired)
    repaired = BARE_VALUE_PATTERN.sub(_quote_bare_value, repaired)
    return repaired


def safe_parse_json(text: str) -> Any:
    """
    Parse a JSON value out of an AI response.

    Args:
        text: Raw model output, possibly fenced or wrapped in prose

    Returns:
        The parsed JSON value (dict or list)

    Raises:
        AIResponseParseError: If no JSON can be recovered. The error carries
            samples of the original and repaired content.
    """
    if text is None or not str(text).strip():
        raise AIResponseParseError("Empty AI response, expected JSON")

    cleaned = strip_code_fences(str(text))
    segment = extract_json_segment(cleaned)

    try:
        return json.loads(segment)
    except json.JSONDecodeError as first_error:
        logger.warning(f"Strict JSON parse failed ({first_error}), attempting repair")

    repaired = repair_json_text(segment)
    try:
        result = json.loads(repaired)
        logger.info("JSON repaired successfully")
        return result
    except json.JSONDecodeError as e:
        logger.error(f"JSON repair failed: {e}")
        logger.error(f"Original content sample: {segment[:SAMPLE_LENGTH]}")
        logger.error(f"Repaired content sample: {repaired[:SAMPLE_LENGTH]}")
        raise AIResponseParseError(
            f"Failed to parse AI response as JSON after repair attempt: {e.msg} "
            f"(line {e.lineno}, column {e.colno}). "
            f"Original sample: {segment[:SAMPLE_LENGTH]!r}. "
            f"Repaired sample: {repaired[:SAMPLE_LENGTH]!r}",
            original_sample=segment[:SAMPLE_LENGTH],
            repaired_sample=repaired[:SAMPLE_LENGTH],
        ) from e
