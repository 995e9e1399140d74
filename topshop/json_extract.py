"""Best-effort parsing of Claude replies that should have been pure JSON."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_NESTED_OBJECT_RE = re.compile(r"\{(?:[^{}]|(?:\{(?:[^{}]|(?:\{[^{}]*\}))*\}))*\}")
_TITLE_FIELD_RE = re.compile(r'"title"\s*:\s*"([^"]+)"')
_CONTENT_FIELD_RE = re.compile(r'"content"\s*:\s*"([\s\S]+?)(?:"\s*,\s*"|"\s*})')
_TAGS_FIELD_RE = re.compile(r'"tags"\s*:\s*\[([\s\S]+?)\]')
_META_FIELD_RE = re.compile(r'"metaDescription"\s*:\s*"([^"]+)"')
_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_LIST_PREFIX_RE = re.compile(r"^\d+[.)]\s+|^[-*•]\s+")
_NUMBERED_RE = re.compile(r"^\d+[.)]\s+")
_BULLET_RE = re.compile(r"^[-*•]\s+")
_QUOTED_RE = re.compile(r"""^["'].*["']$""")

DEFAULT_TITLE = "Blog Post"


def extract_first_json_object(text: str) -> dict[str, Any]:
    """
    Extract and parse the first top-level JSON object from an arbitrary text blob.

    Braces inside JSON strings are ignored, so HTML or CSS in a string value does
    not end the object early.
    """

    if not isinstance(text, str):
        raise ValueError("Input text must be a string")
    raw = text.strip()
    if not raw:
        raise ValueError("Input text is empty")

    start: int | None = None
    depth = 0
    in_string = False
    escape = False

    for i, ch in enumerate(raw):
        if start is None:
            if ch == "{":
                start = i
                depth = 1
                in_string = False
                escape = False
            continue

        if in_string:
            if escape:
                escape = False
                continue
            if ch == "\\":
                escape = True
                continue
            if ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
            continue
        if ch == "{":
            depth += 1
            continue
        if ch == "}":
            depth -= 1
            if depth == 0:
                parsed = json.loads(raw[start : i + 1])
                if not isinstance(parsed, dict):
                    raise ValueError("Extracted JSON was not an object")
                return parsed

    raise ValueError("Unable to locate a complete JSON object in response text")


def _looks_like_blog_payload(value: Any) -> bool:
    return isinstance(value, dict) and ("content" in value or "title" in value)


def _longest_nested_object(text: str) -> dict[str, Any] | None:
    matches = _NESTED_OBJECT_RE.findall(text)
    if not matches:
        return None
    longest = max(matches, key=len)
    try:
        parsed = json.loads(longest)
    except ValueError:
        return None
    return parsed if _looks_like_blog_payload(parsed) else None


def _unescape_json_fragment(value: str) -> str:
    return value.replace('\\"', '"').replace("\\n", "\n").replace("\\\\", "\\")


def _extract_fields_by_pattern(text: str) -> dict[str, Any]:
    title_match = _TITLE_FIELD_RE.search(text)
    content_match = _CONTENT_FIELD_RE.search(text)
    tags_match = _TAGS_FIELD_RE.search(text)
    meta_match = _META_FIELD_RE.search(text)

    tags: list[str] = []
    if tags_match:
        tags = [tag.strip().strip('"') for tag in tags_match.group(1).split(",")]
        tags = [tag for tag in tags if tag]

    return {
        "title": title_match.group(1) if title_match else DEFAULT_TITLE,
        "content": _unescape_json_fragment(content_match.group(1)) if content_match else "",
        "tags": tags,
        "metaDescription": meta_match.group(1) if meta_match else "",
    }


def _normalize_blog_payload(payload: dict[str, Any]) -> dict[str, Any]:
    tags = payload.get("tags") or []
    if isinstance(tags, str):
        tags = [tag.strip() for tag in tags.split(",")]
    if not isinstance(tags, list):
        tags = []

    title = payload.get("title")
    content = payload.get("content")
    meta = payload.get("metaDescription")
    return {
        "title": title if isinstance(title, str) and title.strip() else DEFAULT_TITLE,
        "content": content if isinstance(content, str) else "",
        "tags": [str(tag).strip() for tag in tags if str(tag).strip()],
        "metaDescription": meta if isinstance(meta, str) else "",
    }


def extract_blog_content(text: str) -> dict[str, Any]:
    """
    Pull ``title``, ``content``, ``tags`` and ``metaDescription`` out of a reply.

    Tries, in order: the longest nested object that parses, the first balanced
    object, and finally per-field pattern matching.
    """
    parsed = _longest_nested_object(text)
    if parsed is None:
        try:
            candidate = extract_first_json_object(text)
        except ValueError:
            candidate = None
        if _looks_like_blog_payload(candidate):
            parsed = candidate
    if parsed is None:
        logger.warning("claude_reply_json_unparseable_using_field_patterns")
        parsed = _extract_fields_by_pattern(text)
    return _normalize_blog_payload(parsed)


def _titles_from_json(text: str) -> list[str] | None:
    match = _JSON_ARRAY_RE.search(text)
    try:
        parsed = json.loads(match.group(0) if match else text)
    except ValueError:
        return None
    if isinstance(parsed, dict):
        parsed = parsed.get("titles")
    if not isinstance(parsed, list):
        return None
    titles = [str(item).strip() for item in parsed if str(item).strip()]
    return titles or None


def _is_title_line(line: str) -> bool:
    stripped = line.strip()
    if len(stripped) <= 10:
        return False
    if "Here are" in line or "suggestions" in line or "titles" in line:
        return False
    return bool(_NUMBERED_RE.match(stripped) or _BULLET_RE.match(stripped) or _QUOTED_RE.match(stripped))


def _clean_title_line(line: str) -> str:
    cleaned = _LIST_PREFIX_RE.sub("", line.strip())
    return cleaned.strip().strip("\"'").strip()


def extract_titles(text: str, response_format: str | None = None) -> list[str]:
    if response_format == "json":
        titles = _titles_from_json(text)
        if titles:
            return titles

    lines = re.split(r"[\n\r]+", text)
    titles = [_clean_title_line(line) for line in lines if _is_title_line(line)]
    titles = [title for title in titles if title]
    if titles:
        return titles

    return [line.strip() for line in lines if 15 < len(line.strip()) < 100][:5]
