"""
Semantic validation rules over a parsed LyricDocument.

Each rule is a plain function that yields diagnostics and never touches the
document. RULES fixes the reporting order; running the engine twice on the
same document yields the same sequence.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from .config import get_rule_config
from .models import Diagnostic, LyricDocument, Severity
from .parser import format_timestamp


RuleCheck = Callable[[LyricDocument, Dict[str, Any]], Iterable[Diagnostic]]


@dataclass(frozen=True)
class RuleSpec:
    rule_id: str
    title: str
    severity: Severity
    suggestion: str
    check: RuleCheck


# U+FFFD marks text that was already mis-decoded upstream; U+FEFF is a stray BOM
SUSPECT_CODEPOINTS = {"\ufffd": "U+FFFD replacement character", "\ufeff": "U+FEFF byte order mark"}

MARKUP_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"<\d{1,3}:\d{2}(?:[.:]\d{2,3})?>"), "inline word-timing tag"),
    (re.compile(r"</?[A-Za-z][A-Za-z0-9:_-]*(?:\s[^<>]*)?/?>"), "HTML/XML tag"),
    (re.compile(r"&(?:[A-Za-z]{2,8}|#\d{1,6}|#x[0-9A-Fa-f]{1,6});"), "HTML entity"),
    (re.compile(r"\[(?:\d{1,3}:\d{2}(?:[.:]\d{2,3})?|[a-z]{2,6}:[^\]]*)\]"), "bracketed LRC tag"),
)

LINE_ENDING_RE = re.compile(r"\r\n|\r|\n")
SPACE_RUN_RE = re.compile(r" {2,}|\t")


def _control_characters(text: str) -> List[str]:
    found = []
    for ch in text:
        if ch == "\t":
            continue
        if unicodedata.category(ch) == "Cc":
            found.append(f"U+{ord(ch):04X}")
        elif ch in SUSPECT_CODEPOINTS:
            found.append(SUSPECT_CODEPOINTS[ch])
    return sorted(set(found))


def check_control_characters(document: LyricDocument, settings: Dict[str, Any]) -> Iterator[Diagnostic]:
    header = document.header
    header_values = (
        ("Title", header.title),
        ("Artist", header.artist),
        ("TrackID", header.track_id),
    )
    for label, value in header_values:
        bad = _control_characters(value or "")
        if bad:
            yield Diagnostic(
                Severity.ERROR,
                "control-character",
                f"{label} contains control or invalid characters: {', '.join(bad)}",
            )
    for contributor in sorted(header.contributors):
        bad = _control_characters(contributor)
        if bad:
            yield Diagnostic(
                Severity.ERROR,
                "control-character",
                f"Contributor {contributor!r} contains control or invalid characters: {', '.join(bad)}",
            )

    for line in document.lines:
        bad = _control_characters(line.text)
        if bad:
            yield Diagnostic(
                Severity.ERROR,
                "control-character",
                f"Line {line.line_index + 1} contains control or invalid characters: {', '.join(bad)}",
                line_index=line.line_index,
            )


def check_line_endings(document: LyricDocument, settings: Dict[str, Any]) -> Iterator[Diagnostic]:
    styles = {m.group(0) for m in LINE_ENDING_RE.finditer(document.raw_block)}
    if len(styles) > 1:
        names = sorted({"\r\n": "CRLF", "\r": "CR", "\n": "LF"}[s] for s in styles)
        yield Diagnostic(
            Severity.ERROR,
            "mixed-line-endings",
            f"Lyric block mixes line ending styles: {', '.join(names)}",
        )


def check_line_length(document: LyricDocument, settings: Dict[str, Any]) -> Iterator[Diagnostic]:
    limit = settings["max_line_length"]
    for line in document.lines:
        if len(line.text) > limit:
            yield Diagnostic(
                Severity.ERROR,
                "line-too-long",
                f"Line {line.line_index + 1} is {len(line.text)} characters long (limit {limit})",
                line_index=line.line_index,
            )


def check_markup(document: LyricDocument, settings: Dict[str, Any]) -> Iterator[Diagnostic]:
    for line in document.lines:
        kinds = []
        for pattern, kind in MARKUP_PATTERNS:
            m = pattern.search(line.text)
            if m:
                kinds.append(f"{kind} '{m.group(0)}'")
        if kinds:
            yield Diagnostic(
                Severity.ERROR,
                "markup-leakage",
                f"Line {line.line_index + 1} contains markup: {'; '.join(kinds)}",
                line_index=line.line_index,
            )


def check_contributors(document: LyricDocument, settings: Dict[str, Any]) -> Iterator[Diagnostic]:
    if not document.header.contributors:
        yield Diagnostic(
            Severity.ERROR,
            "missing-contributors",
            "Contributors is missing or empty",
        )


def check_whitespace(document: LyricDocument, settings: Dict[str, Any]) -> Iterator[Diagnostic]:
    for line in document.lines:
        text = line.text
        if not text.strip():
            continue
        if text != text.strip() or SPACE_RUN_RE.search(text):
            yield Diagnostic(
                Severity.WARNING,
                "untrimmed-text",
                f"Line {line.line_index + 1} has leading, trailing or repeated whitespace",
                line_index=line.line_index,
            )


def check_duration(document: LyricDocument, settings: Dict[str, Any]) -> Iterator[Diagnostic]:
    if not document.lines:
        return
    limit = timedelta(seconds=settings["max_duration_seconds"])
    last = max(line.timestamp for line in document.lines)
    if last > limit:
        yield Diagnostic(
            Severity.WARNING,
            "implausible-duration",
            f"Last timestamp {format_timestamp(last)} exceeds {format_timestamp(limit)}",
            line_index=max(line.line_index for line in document.lines if line.timestamp == last),
        )


RULES: Tuple[RuleSpec, ...] = (
    RuleSpec(
        rule_id="control-character",
        title="Control characters",
        severity=Severity.ERROR,
        suggestion="Remove invisible control characters; re-copy the text from a plain-text editor.",
        check=check_control_characters,
    ),
    RuleSpec(
        rule_id="mixed-line-endings",
        title="Mixed line endings",
        severity=Severity.ERROR,
        suggestion="Save the lyrics with a single line ending style (LF preferred).",
        check=check_line_endings,
    ),
    RuleSpec(
        rule_id="line-too-long",
        title="Line too long",
        severity=Severity.ERROR,
        suggestion="Split the line at a natural phrase break and give each part its own timestamp.",
        check=check_line_length,
    ),
    RuleSpec(
        rule_id="markup-leakage",
        title="Markup in lyric text",
        severity=Severity.ERROR,
        suggestion="Strip HTML/TTML tags, entities and extra LRC tags; keep one timestamp per line.",
        check=check_markup,
    ),
    RuleSpec(
        rule_id="missing-contributors",
        title="Contributors missing",
        severity=Severity.ERROR,
        suggestion="List everyone who worked on the timing in the Contributors field.",
        check=check_contributors,
    ),
    RuleSpec(
        rule_id="untrimmed-text",
        title="Untrimmed whitespace",
        severity=Severity.WARNING,
        suggestion="Use a single space between words and none at the line edges.",
        check=check_whitespace,
    ),
    RuleSpec(
        rule_id="implausible-duration",
        title="Implausible duration",
        severity=Severity.WARNING,
        suggestion="Check the minutes field of the final timestamps.",
        check=check_duration,
    ),
)

RULES_BY_ID: Dict[str, RuleSpec] = {rule.rule_id: rule for rule in RULES}


def run_rules(document: LyricDocument, config: Optional[Dict[str, Any]] = None) -> Tuple[Diagnostic, ...]:
    """
    Run every registered rule in declaration order.

    Args:
        document: Parsed (possibly partial) document
        config: Checker config (defaults when None)

    Returns:
        Diagnostics grouped by rule, each group in line order
    """
    settings = get_rule_config(config)
    diagnostics: List[Diagnostic] = []
    for rule in RULES:
        diagnostics.extend(rule.check(document, settings))
    return tuple(diagnostics)
