"""
Lyric block parser.

Turns the extracted payload into a LyricDocument. Problems are accumulated as
diagnostics instead of raised: one bad line never hides the rest.

Content line grammar::

    [MM:SS.CC] text
    MM:SS.CC text

with 1-3 minute digits, seconds 00-59 and two hundredths digits.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from .extractor import split_lines
from .models import (
    Diagnostic,
    ExtractedPayload,
    LyricDocument,
    LyricHeader,
    LyricLine,
    Severity,
)
from .config import get_rule_config


TIMESTAMP_RE = re.compile(
    r"^(?P<open>\[)?(?P<mm>\d{1,3}):(?P<ss>\d{2})\.(?P<cs>\d{2})(?P<close>\])?"
)
TRACK_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:-]*$")
MAX_TRACK_ID_LENGTH = 128
CONTRIBUTOR_SPLIT_RE = re.compile(r"[,;、/]")
REVISION_RE = re.compile(r"[0-9]+")
URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)

REQUIRED_HEADER_FIELDS = (
    ("title", "Title"),
    ("artist", "Artist"),
    ("trackid", "TrackID"),
)


@dataclass(frozen=True)
class ParseResult:
    document: LyricDocument
    diagnostics: Tuple[Diagnostic, ...]
    parse_succeeded: bool


def format_timestamp(ts: timedelta) -> str:
    """Render a timestamp as MM:SS.CC."""
    total_cs = int(round(ts.total_seconds() * 100))
    mm, rem = divmod(total_cs, 6000)
    ss, cs = divmod(rem, 100)
    return f"{mm:02d}:{ss:02d}.{cs:02d}"


def compute_content_hash(block: str) -> str:
    """
    Hash the lyric block in normalized form.

    Line endings are unified, trailing whitespace is dropped per line and
    surrounding blank lines are removed, so cosmetic re-pastes of the same
    lyrics hash identically.

    Returns:
        String in format "sha256:<fullhash>"
    """
    lines = [line.rstrip() for line in block.replace("\r\n", "\n").replace("\r", "\n").split("\n")]
    while lines and not lines[0]:
        lines.pop(0)
    while lines and not lines[-1]:
        lines.pop()
    normalized = "\n".join(lines)
    return f"sha256:{hashlib.sha256(normalized.encode('utf-8')).hexdigest()}"


def parse_line(raw: str) -> Optional[Tuple[timedelta, str]]:
    """
    Parse one content line.

    Returns:
        (timestamp, text) or None when the line does not match the grammar
    """
    m = TIMESTAMP_RE.match(raw)
    if not m:
        return None
    bracketed = bool(m.group("open"))
    # Brackets must be balanced
    if bracketed != bool(m.group("close")):
        return None
    seconds = int(m.group("ss"))
    if seconds >= 60:
        return None

    rest = raw[m.end():]
    if not rest:
        text = ""
    elif rest[0] in " \t":
        # exactly one separator; any further whitespace belongs to the text
        text = rest[1:]
    elif bracketed:
        text = rest
    else:
        return None

    ts = timedelta(
        minutes=int(m.group("mm")),
        seconds=seconds,
        milliseconds=int(m.group("cs")) * 10,
    )
    return ts, text


def _malformed_reason(raw: str) -> str:
    m = re.match(r"^\[?(\d{1,3}):(\d{2})", raw)
    if m and int(m.group(2)) >= 60:
        return f"seconds field '{m.group(2)}' is out of range (00-59)"
    m = TIMESTAMP_RE.match(raw)
    if m and bool(m.group("open")) != bool(m.group("close")):
        return "unbalanced brackets around the timestamp"
    if m:
        return "timestamp must be followed by a space before the text"
    if re.match(r"^\s*\[?\d+:\d+", raw):
        return "timestamp must be MM:SS.CC (two-digit seconds and hundredths) at the start of the line"
    return "line does not start with a MM:SS.CC timestamp"


def parse_contributors(value: Optional[str]) -> frozenset:
    """Split a contributor list and drop empties and repeats."""
    if not value:
        return frozenset()
    names = (name.strip() for name in CONTRIBUTOR_SPLIT_RE.split(value.replace("\n", ",")))
    return frozenset(name.lstrip("@") for name in names if name.strip("@ "))


def _header_error(rule_id: str, message: str) -> Diagnostic:
    return Diagnostic(Severity.ERROR, rule_id, message)


def parse_header(
    payload: ExtractedPayload,
    rule_config: Dict[str, Any],
) -> Tuple[LyricHeader, List[Diagnostic]]:
    """
    Build the header record and one diagnostic per bad field.

    Title, Artist and TrackID are required; BaseRevision and Source are
    optional but checked when present.
    """
    diagnostics: List[Diagnostic] = []
    max_len = rule_config["max_header_length"]
    values: Dict[str, Optional[str]] = {}

    for key, label in REQUIRED_HEADER_FIELDS:
        value = payload.get(key)
        if value is None:
            diagnostics.append(_header_error(
                "missing-header-field", f"{label} is missing or empty",
            ))
            values[key] = None
            continue
        if len(value) > max_len:
            diagnostics.append(_header_error(
                "invalid-header-field", f"{label} is longer than {max_len} characters",
            ))
            values[key] = None
            continue
        if key == "trackid" and (len(value) > MAX_TRACK_ID_LENGTH or not TRACK_ID_RE.match(value)):
            diagnostics.append(_header_error(
                "invalid-header-field",
                f"TrackID '{value}' is not a valid track identifier "
                f"(letters, digits and . _ : - only, at most {MAX_TRACK_ID_LENGTH} characters)",
            ))
            values[key] = None
            continue
        values[key] = value

    base_revision = None
    raw_revision = payload.get("baserevision")
    if raw_revision is not None:
        if REVISION_RE.fullmatch(raw_revision):
            base_revision = int(raw_revision)
        else:
            diagnostics.append(_header_error(
                "invalid-header-field",
                f"BaseRevision '{raw_revision}' must be a non-negative integer",
            ))

    source_url = payload.get("source")
    if source_url is not None and not URL_RE.match(source_url):
        diagnostics.append(Diagnostic(
            Severity.WARNING,
            "invalid-source-url",
            f"Source '{source_url}' is not an http(s) URL",
        ))
        source_url = None

    header = LyricHeader(
        title=values["title"],
        artist=values["artist"],
        track_id=values["trackid"],
        contributors=parse_contributors(payload.get("contributors")),
        base_revision=base_revision,
        source_url=source_url,
    )
    return header, diagnostics


def parse_lines(block: str) -> Tuple[List[LyricLine], List[Diagnostic]]:
    """
    Parse every content line of the block, in order.

    Ordering diagnostics compare each line with the previously parsed one;
    a regression is reported but the line is kept.
    """
    lines: List[LyricLine] = []
    diagnostics: List[Diagnostic] = []
    previous: Optional[LyricLine] = None

    for index, raw in enumerate(split_lines(block)):
        content = raw.rstrip("\r\n")
        if not content.strip():
            continue

        parsed = parse_line(content)
        if parsed is None:
            diagnostics.append(Diagnostic(
                Severity.ERROR,
                "malformed-line",
                f"Line {index + 1}: {_malformed_reason(content)}",
                line_index=index,
            ))
            continue

        ts, text = parsed
        line = LyricLine(timestamp=ts, text=text, line_index=index)

        if previous is not None:
            if ts < previous.timestamp:
                diagnostics.append(Diagnostic(
                    Severity.ERROR,
                    "non-monotonic-timestamp",
                    f"Line {index + 1}: {format_timestamp(ts)} is earlier than "
                    f"the previous line's {format_timestamp(previous.timestamp)}",
                    line_index=index,
                ))
            elif ts == previous.timestamp:
                if text == previous.text:
                    diagnostics.append(Diagnostic(
                        Severity.ERROR,
                        "duplicate-line",
                        f"Line {index + 1} repeats line {previous.line_index + 1} exactly",
                        line_index=index,
                    ))
                else:
                    diagnostics.append(Diagnostic(
                        Severity.WARNING,
                        "duplicate-timestamp",
                        f"Line {index + 1} shares timestamp {format_timestamp(ts)} "
                        f"with line {previous.line_index + 1}",
                        line_index=index,
                    ))

        if not text.strip():
            diagnostics.append(Diagnostic(
                Severity.WARNING,
                "empty-line",
                f"Line {index + 1}: timestamp {format_timestamp(ts)} has no text",
                line_index=index,
            ))

        lines.append(line)
        previous = line

    return lines, diagnostics


def parse_document(payload: ExtractedPayload, config: Optional[Dict[str, Any]] = None) -> ParseResult:
    """
    Parse an extracted payload into a LyricDocument.

    Args:
        payload: Output of extract_payload()
        config: Checker config (defaults when None)

    Returns:
        ParseResult; parse_succeeded is True iff no header error occurred
        and at least one line parsed
    """
    rule_config = get_rule_config(config)

    header, header_diagnostics = parse_header(payload, rule_config)
    lines, line_diagnostics = parse_lines(payload.lyric_block)

    diagnostics = header_diagnostics + line_diagnostics
    if not lines:
        diagnostics.append(Diagnostic(
            Severity.ERROR,
            "no-lyric-lines",
            "The lyric block contains no valid timestamped lines",
        ))

    header_failed = any(d.is_error for d in header_diagnostics)

    document = LyricDocument(
        header=header,
        lines=tuple(lines),
        raw_block=payload.lyric_block,
        content_hash=compute_content_hash(payload.lyric_block),
    )
    return ParseResult(
        document=document,
        diagnostics=tuple(diagnostics),
        parse_succeeded=not header_failed and bool(lines),
    )
