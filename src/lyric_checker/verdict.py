"""
Verdict composition and serialization.

compose_verdict() is a pure aggregation; verdict_to_json() produces the
byte-stable form handed to the reporting collaborator.
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import jsonschema

from .models import ConflictClassification, Diagnostic, Verdict


CHECKER_VERSION = "1.0.0"
SCHEMA_PATH = Path(__file__).parent / "schemas" / "verdict.schema.json"

_schema_cache: Optional[Dict[str, Any]] = None


class VerdictSchemaError(Exception):
    """Raised when a serialized verdict does not match the verdict schema."""
    pass


def compose_verdict(
    submission_id: str,
    parse_succeeded: bool,
    extraction_diagnostics: Iterable[Diagnostic],
    parse_diagnostics: Iterable[Diagnostic],
    rule_diagnostics: Iterable[Diagnostic],
    conflict: ConflictClassification,
    content_hash: Optional[str] = None,
) -> Verdict:
    """
    Aggregate stage outputs into a Verdict.

    Diagnostics keep stage order: extraction, parser, rules.
    accepted is True iff parsing succeeded, no diagnostic is an error and
    the conflict classification does not block.
    """
    diagnostics = (
        tuple(extraction_diagnostics)
        + tuple(parse_diagnostics)
        + tuple(rule_diagnostics)
    )
    accepted = (
        parse_succeeded
        and not any(d.is_error for d in diagnostics)
        and not conflict.blocks_acceptance
    )
    return Verdict(
        submission_id=submission_id,
        parse_succeeded=parse_succeeded,
        diagnostics=diagnostics,
        conflict=conflict,
        accepted=accepted,
        content_hash=content_hash,
        checker_version=CHECKER_VERSION,
    )


def verdict_to_dict(verdict: Verdict) -> Dict[str, Any]:
    """Convert to a JSON-ready dict."""
    return {
        "submission_id": verdict.submission_id,
        "status": verdict.status,
        "accepted": verdict.accepted,
        "retryable": verdict.retryable,
        "parse_succeeded": verdict.parse_succeeded,
        "content_hash": verdict.content_hash,
        "conflict": verdict.conflict.to_dict(),
        "error_count": verdict.error_count,
        "warning_count": verdict.warning_count,
        "diagnostics": [d.to_dict() for d in verdict.diagnostics],
        "checker_version": verdict.checker_version,
    }


def verdict_to_json(verdict: Verdict, indent: Optional[int] = None) -> str:
    """
    Serialize deterministically: sorted keys, fixed separators, no timestamps.

    Identical verdicts always produce identical strings.
    """
    separators = (",", ": ") if indent else (",", ":")
    return json.dumps(
        verdict_to_dict(verdict),
        ensure_ascii=False,
        sort_keys=True,
        indent=indent,
        separators=separators,
    )


def verdict_fingerprint(verdict: Verdict) -> str:
    """
    Stable digest of the compact serialization.

    Returns:
        String in format "sha256:<fullhash>"
    """
    digest = hashlib.sha256(verdict_to_json(verdict).encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


def load_verdict_schema() -> Dict[str, Any]:
    global _schema_cache
    if _schema_cache is None:
        with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
            _schema_cache = json.load(f)
    return _schema_cache


def validate_verdict_dict(data: Dict[str, Any]) -> List[str]:
    """
    Validate a serialized verdict against the JSON schema.

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = jsonschema.Draft7Validator(load_verdict_schema())
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
        path = ".".join(str(p) for p in error.absolute_path)
        errors.append(f"{path}: {error.message}" if path else error.message)
    return errors


def check_verdict_dict(data: Dict[str, Any]) -> None:
    """
    Raises:
        VerdictSchemaError: If the dict does not match the schema
    """
    errors = validate_verdict_dict(data)
    if errors:
        raise VerdictSchemaError(f"Verdict failed schema validation: {'; '.join(errors)}")
