"""
Markdown rendering of verdicts for issue comments.

Each comment embeds the verdict fingerprint in an HTML comment so the
reporting side can skip posting when the latest bot comment already carries
the same fingerprint (re-labelling an unchanged issue).
"""

import re
from typing import List, Optional

from .models import ConflictKind, Verdict
from .rules import RULES_BY_ID
from .verdict import verdict_fingerprint


FINGERPRINT_MARKER = "lyric-checker:verdict"
FINGERPRINT_RE = re.compile(r"<!--\s*" + re.escape(FINGERPRINT_MARKER) + r"\s+(sha256:[0-9a-f]{64})\s*-->")

MAX_TABLE_ROWS = 50

STATUS_HEADLINES = {
    "accepted": "Submission passed all checks",
    "rejected": "Submission rejected",
    "retry": "Check could not complete; it will be retried",
}

CONFLICT_TEXT = {
    ConflictKind.NEW: "No canonical entry exists for this track yet; this submission would create it.",
    ConflictKind.REPLACES: "This submission replaces canonical entry `{existing_id}`.",
    ConflictKind.DUPLICATE_OF: "The lyrics are identical to canonical entry `{existing_id}`; nothing to change.",
    ConflictKind.STALE_RELATIVE_TO: (
        "Canonical entry `{existing_id}` changed after the revision this submission is based on. "
        "Rebase your edits on the current version and update BaseRevision."
    ),
    ConflictKind.LOOKUP_UNAVAILABLE: "The lyric database could not be reached ({detail}).",
    ConflictKind.NOT_CHECKED: "The lyric database was not consulted ({detail}).",
}


def _escape_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\r", " ").replace("\n", " ")


def render_conflict(verdict: Verdict) -> str:
    conflict = verdict.conflict
    return CONFLICT_TEXT[conflict.kind].format(
        existing_id=conflict.existing_id or "",
        detail=conflict.detail or "no detail",
    )


def render_markdown(verdict: Verdict) -> str:
    """
    Render a verdict as an issue comment body.

    The output depends only on the verdict, so identical verdicts render to
    identical comments.
    """
    out: List[str] = []
    out.append(f"## {STATUS_HEADLINES[verdict.status]}")
    out.append("")
    out.append(
        f"**Errors:** {verdict.error_count} · **Warnings:** {verdict.warning_count} · "
        f"**Conflict:** `{verdict.conflict.kind.value}`"
    )
    out.append("")
    out.append(render_conflict(verdict))

    if verdict.diagnostics:
        out.append("")
        out.append("| Severity | Rule | Line | Message |")
        out.append("|---|---|---|---|")
        for d in verdict.diagnostics[:MAX_TABLE_ROWS]:
            line = str(d.line_index + 1) if d.line_index is not None else ""
            out.append(
                f"| {d.severity.value} | `{d.rule_id}` | {line} | {_escape_cell(d.message)} |"
            )
        hidden = len(verdict.diagnostics) - MAX_TABLE_ROWS
        if hidden > 0:
            out.append("")
            out.append(f"_{hidden} more diagnostic(s) not shown._")

        hints = []
        for rule_id in sorted({d.rule_id for d in verdict.diagnostics}):
            spec = RULES_BY_ID.get(rule_id)
            if spec is not None:
                hints.append(f"- **{spec.title}:** {spec.suggestion}")
        if hints:
            out.append("")
            out.append("### How to fix")
            out.extend(hints)

    if verdict.content_hash:
        out.append("")
        out.append(f"<sub>Content hash `{verdict.content_hash}` · checker {verdict.checker_version}</sub>")

    out.append("")
    out.append(f"<!-- {FINGERPRINT_MARKER} {verdict_fingerprint(verdict)} -->")
    return "\n".join(out) + "\n"


def find_fingerprint(comment_body: str) -> Optional[str]:
    """Extract the verdict fingerprint from a previously posted comment."""
    m = FINGERPRINT_RE.search(comment_body or "")
    return m.group(1) if m else None


def already_reported(verdict: Verdict, previous_comment: Optional[str]) -> bool:
    """True when ``previous_comment`` was rendered from an identical verdict."""
    if not previous_comment:
        return False
    return find_fingerprint(previous_comment) == verdict_fingerprint(verdict)
