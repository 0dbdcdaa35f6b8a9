"""
Parsing of raw Gemini completions into learning map branches.

Structural fields (branch title and subtopics, subtopic title and
description) are hard requirements. ``resources`` is decorative: when it is
missing or not a list it becomes ``[]``. URL shape and resource types are
left to the persistence schema.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

_FENCE_OPEN_RE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?[ \t]*```$")

INVALID_JSON = "invalid JSON"
MISSING_BRANCHES = "missing branches array"
INVALID_BRANCH = "invalid branch structure"
INVALID_SUBTOPIC = "invalid subtopic structure"


class ParseError(ValueError):
    def __init__(self, reason: str, detail: Optional[str] = None):
        self.reason = reason
        self.detail = detail
        text = f"{reason}: {detail}" if detail else reason
        super().__init__(f"Failed to parse Gemini response: {text}")


def strip_code_fence(raw_text: str) -> str:
    text = str(raw_text or "").strip()
    if not text.startswith("```"):
        return text
    text = _FENCE_OPEN_RE.sub("", text, count=1)
    text = _FENCE_CLOSE_RE.sub("", text, count=1)
    return text.strip()


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _validate_subtopic(subtopic: Any, position: str) -> None:
    if not isinstance(subtopic, dict):
        raise ParseError(INVALID_SUBTOPIC, f"{position} is not an object")
    if not _has_text(subtopic.get("title")) or not _has_text(subtopic.get("description")):
        raise ParseError(INVALID_SUBTOPIC, f"{position} is missing title or description")
    if not isinstance(subtopic.get("resources"), list):
        subtopic["resources"] = []


def _validate_branch(branch: Any, index: int) -> None:
    if not isinstance(branch, dict):
        raise ParseError(INVALID_BRANCH, f"branch {index} is not an object")
    if not _has_text(branch.get("title")) or not isinstance(branch.get("subtopics"), list):
        raise ParseError(INVALID_BRANCH, f"branch {index} is missing title or subtopics")
    for sub_index, subtopic in enumerate(branch["subtopics"]):
        _validate_subtopic(subtopic, f"branch {index} subtopic {sub_index}")


def parse_branches(raw_text: str) -> List[Dict[str, Any]]:
    """
    Turn a raw completion into a validated list of branch dicts.

    Raises:
        ParseError: malformed JSON or a structurally invalid document.
    """
    cleaned = strip_code_fence(raw_text)

    try:
        document = json.loads(cleaned)
    except (ValueError, TypeError, RecursionError) as exc:
        raise ParseError(INVALID_JSON, str(exc)) from exc

    if not isinstance(document, dict) or not isinstance(document.get("branches"), list):
        raise ParseError(MISSING_BRANCHES)

    branches = document["branches"]
    for index, branch in enumerate(branches):
        _validate_branch(branch, index)
    return branches
