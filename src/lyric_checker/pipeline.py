"""
End-to-end validation of one submission.

validate() is the only entry point the harness needs: it never raises for
bad input, and all I/O is behind the injected lookup capability.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from .config import resolve_config
from .extractor import ExtractionError, extract_payload
from .models import ConflictClassification, Diagnostic, RawSubmission, Severity, Verdict
from .parser import parse_document
from .resolver import resolve_conflict
from .rules import run_rules
from .store import LookupFn
from .verdict import compose_verdict

logger = logging.getLogger(__name__)


UTF8_BOM = "\ufeff"


def decode_body(body: Any) -> Tuple[Optional[str], Optional[Diagnostic]]:
    """
    Decode the raw body as strict UTF-8.

    Returns:
        (text, None) on success, (None, diagnostic) otherwise
    """
    if isinstance(body, (bytes, bytearray)):
        try:
            text = bytes(body).decode("utf-8")
        except UnicodeDecodeError as e:
            return None, Diagnostic(
                Severity.ERROR,
                "invalid-encoding",
                f"Issue body is not valid UTF-8 (byte offset {e.start})",
            )
    elif isinstance(body, str):
        text = body
        try:
            # lone surrogates cannot be encoded and signal a broken upstream decode
            text.encode("utf-8")
        except UnicodeEncodeError as e:
            return None, Diagnostic(
                Severity.ERROR,
                "invalid-encoding",
                f"Issue body contains an unpaired surrogate at offset {e.start}",
            )
    elif body is None:
        text = ""
    else:
        return None, Diagnostic(
            Severity.ERROR,
            "invalid-encoding",
            f"Issue body has unsupported type {type(body).__name__}",
        )

    if text.startswith(UTF8_BOM):
        text = text[len(UTF8_BOM):]
    return text, None


def _single_diagnostic_verdict(
    submission_id: str,
    diagnostic: Diagnostic,
    detail: str,
) -> Verdict:
    return compose_verdict(
        submission_id=submission_id,
        parse_succeeded=False,
        extraction_diagnostics=(diagnostic,),
        parse_diagnostics=(),
        rule_diagnostics=(),
        conflict=ConflictClassification.not_checked(detail),
    )


def _run(submission: RawSubmission, lookup: LookupFn, config: Dict[str, Any]) -> Verdict:
    sid = submission.submission_id

    text, encoding_error = decode_body(submission.body)
    if encoding_error is not None:
        logger.warning(f"Submission {sid}: {encoding_error.message}")
        return _single_diagnostic_verdict(sid, encoding_error, "issue body could not be decoded")

    try:
        payload = extract_payload(text)
    except ExtractionError as e:
        logger.info(f"Submission {sid}: extraction failed ({e.kind}): {e.message}")
        diagnostic = Diagnostic(Severity.ERROR, e.rule_id, e.message)
        return _single_diagnostic_verdict(sid, diagnostic, "submission template not recognised")

    result = parse_document(payload, config)
    logger.info(
        f"Submission {sid}: parsed {len(result.document.lines)} line(s), "
        f"{len(result.diagnostics)} parser diagnostic(s)"
    )

    rule_diagnostics = run_rules(result.document, config)

    conflict = resolve_conflict(
        result.document,
        lookup,
        timeout_seconds=config["lookup"]["timeout_seconds"],
        require_base_revision=config["conflict"]["require_base_revision"],
    )

    return compose_verdict(
        submission_id=sid,
        parse_succeeded=result.parse_succeeded,
        extraction_diagnostics=(),
        parse_diagnostics=result.diagnostics,
        rule_diagnostics=rule_diagnostics,
        conflict=conflict,
        content_hash=result.document.content_hash,
    )


def validate(
    submission: RawSubmission,
    lookup: LookupFn,
    config: Optional[Dict[str, Any]] = None,
) -> Verdict:
    """
    Validate one submission and return its verdict.

    Args:
        submission: Issue id, raw body and submitter
        lookup: Canonical-entry lookup capability (read-only)
        config: Checker config, full or partial; missing keys take the defaults

    Returns:
        Verdict. Unexpected internal failures fail closed as a single
        ``internal-error`` diagnostic instead of propagating.

    Raises:
        ConfigError: If the merged config is invalid
    """
    config = resolve_config(config)
    try:
        verdict = _run(submission, lookup, config)
    except Exception:
        logger.exception(f"Submission {submission.submission_id}: internal error during validation")
        verdict = _single_diagnostic_verdict(
            submission.submission_id,
            Diagnostic(
                Severity.ERROR,
                "internal-error",
                "The checker hit an internal error; a maintainer has to look at this submission",
            ),
            "validation aborted",
        )

    logger.info(
        f"Submission {submission.submission_id}: {verdict.status} "
        f"({verdict.error_count} error(s), {verdict.warning_count} warning(s), "
        f"conflict={verdict.conflict.kind.value})"
    )
    return verdict
