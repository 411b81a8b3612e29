"""
Payload extraction from free-form issue bodies.

Two template styles are understood:

- labelled lines (``Title: ...``, ``**Artist:** ...``, ``- TrackID: ...``)
- issue-form sections (``### Title`` followed by the value paragraph)

The lyric block is a fenced code block either placed under a ``### Lyrics``
heading or tagged with a ``lyrics``/``lrc`` info string.
"""

import re
from typing import Dict, List, Optional, Tuple

from .models import ExtractedPayload


MISSING_SECTION = "missing_section"
MISSING_FIELD = "missing_field"
MALFORMED_TEMPLATE = "malformed_template"

LYRICS_FIELD = "lyrics"
LYRIC_INFO_STRINGS = {"lyrics", "lyric", "lrc"}
KNOWN_FIELDS = {"title", "artist", "trackid", "contributors", "baserevision", "source", "remarks"}
URL_SCHEMES = {"http", "https"}

# Placeholder GitHub issue forms write for optional fields left empty
NO_RESPONSE = "_No response_"

# Split after \r\n, \n or a lone \r only; str.splitlines() would also break on
# form feeds and other control characters the rule engine needs to see.
LINE_BREAK_RE = re.compile(r"(?<=\n)|(?<=\r)(?!\n)")
FENCE_RE = re.compile(r"^[ ]{0,3}(?P<fence>`{3,}|~{3,})[ \t]*(?P<info>[^`\s]*)[^`]*$")
HEADING_RE = re.compile(r"^[ ]{0,3}#{1,6}[ \t]+(?P<name>.+?)[ \t]*#*[ \t]*$")
LABEL_RE = re.compile(
    r"^[ \t]*(?:[-*+][ \t]+)?(?:\*\*|__)?(?P<name>[A-Za-z][A-Za-z _-]{0,40}?)[ \t]*"
    r"(?::(?:\*\*|__)|(?:\*\*|__):|:)[ \t]*(?P<value>.*?)[ \t]*$"
)


class ExtractionError(Exception):
    """Raised when the issue body does not follow the submission template."""

    def __init__(self, kind: str, message: str, field: Optional[str] = None):
        self.kind = kind
        self.field = field
        self.message = message
        super().__init__(message)

    @property
    def rule_id(self) -> str:
        return self.kind.replace("_", "-")


def normalize_field_name(name: str) -> str:
    """Case-normalize a field label: ``Track ID``, ``track_id`` -> ``trackid``."""
    return re.sub(r"[\s_\-*:]+", "", name).lower()


def _clean_value(value: str) -> str:
    value = value.strip()
    if value == NO_RESPONSE:
        return ""
    return value


def _find_fences(lines: List[str]) -> List[Tuple[int, int, str]]:
    """
    Locate fenced code blocks.

    Returns:
        List of (open_index, close_index, info_string)

    Raises:
        ExtractionError: If a fence is opened but never closed
    """
    blocks = []
    i = 0
    while i < len(lines):
        m = FENCE_RE.match(lines[i].rstrip("\r"))
        if not m:
            i += 1
            continue
        fence = m.group("fence")
        info = m.group("info").lower()
        close = None
        for j in range(i + 1, len(lines)):
            candidate = lines[j].rstrip("\r").strip()
            if candidate.startswith(fence[0] * len(fence)) and candidate.strip(fence[0]) == "":
                close = j
                break
        if close is None:
            raise ExtractionError(
                MALFORMED_TEMPLATE,
                f"Code block opened on line {i + 1} is never closed",
            )
        blocks.append((i, close, info))
        i = close + 1
    return blocks


def _heading_before(lines: List[str], index: int) -> Optional[str]:
    """Nearest heading above ``index``, normalized."""
    for j in range(index - 1, -1, -1):
        m = HEADING_RE.match(lines[j].rstrip("\r"))
        if m:
            return normalize_field_name(m.group("name"))
    return None


def _select_lyric_block(lines: List[str], blocks: List[Tuple[int, int, str]]) -> Tuple[int, int]:
    candidates = [
        (start, end) for start, end, info in blocks
        if info in LYRIC_INFO_STRINGS or (_heading_before(lines, start) or "").startswith("lyric")
    ]
    if not candidates:
        raise ExtractionError(
            MISSING_SECTION,
            "No lyric block found: put the lyrics in a ``` code block under a '### Lyrics' heading",
        )
    if len(candidates) > 1:
        raise ExtractionError(
            MALFORMED_TEMPLATE,
            f"Found {len(candidates)} lyric blocks; submit exactly one",
        )
    return candidates[0]


def split_lines(text: str) -> List[str]:
    """Split on \\r\\n, \\n and lone \\r, keeping the terminators."""
    return [part for part in LINE_BREAK_RE.split(text) if part]


def _collect_fields(lines: List[str], blocks: List[Tuple[int, int, str]]) -> Dict[str, str]:
    """Collect labelled fields and issue-form sections outside code blocks."""
    inside_fence = set()
    for start, end, _ in blocks:
        inside_fence.update(range(start, end + 1))

    fields: Dict[str, str] = {}
    section: Optional[str] = None
    section_lines: List[str] = []

    def flush_section():
        if section and not section.startswith("lyric") and section not in fields:
            fields[section] = _clean_value("\n".join(section_lines))

    for i, line in enumerate(lines):
        if i in inside_fence:
            continue
        heading = HEADING_RE.match(line)
        if heading:
            flush_section()
            section = normalize_field_name(heading.group("name"))
            section_lines = []
            continue
        label = LABEL_RE.match(line)
        if label:
            key = normalize_field_name(label.group("name"))
            # Inside an issue-form section only known labels count; the rest
            # is the section value (e.g. "Live: Remastered").
            if key in KNOWN_FIELDS or (section is None and key not in URL_SCHEMES):
                if key not in fields:
                    fields[key] = _clean_value(label.group("value"))
                continue
        if section is not None and line.strip():
            section_lines.append(line.strip())

    flush_section()
    return fields


def extract_payload(body: str) -> ExtractedPayload:
    """
    Isolate the lyric block and labelled metadata fields from an issue body.

    Args:
        body: Decoded issue body text

    Returns:
        ExtractedPayload with normalized field names

    Raises:
        ExtractionError: missing_section, missing_field("lyrics") or
            malformed_template
    """
    if not body or not body.strip():
        raise ExtractionError(MALFORMED_TEMPLATE, "Issue body is empty")

    # Terminators are kept so the lyric block reaches the rules verbatim
    lines = split_lines(body)
    bare = [line.rstrip("\r\n") for line in lines]

    blocks = _find_fences(bare)
    start, end = _select_lyric_block(bare, blocks)

    lyric_block = "".join(lines[start + 1:end])
    if not lyric_block.strip():
        raise ExtractionError(
            MISSING_FIELD,
            "The lyric block is empty",
            field=LYRICS_FIELD,
        )

    fields = _collect_fields(bare, blocks)
    return ExtractedPayload(fields=fields, lyric_block=lyric_block)
