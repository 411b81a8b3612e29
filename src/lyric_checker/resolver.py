"""
Conflict classification against the canonical lyric database.

Compares a parsed submission with the current canonical entry for its track:

- no entry                              -> new
- same content hash                     -> duplicate_of
- entry revision <= declared base       -> replaces
- entry revision >  declared base       -> stale_relative_to
- lookup timed out or raised            -> lookup_unavailable
"""

import logging
import threading
from typing import Any, Dict, Optional

from .config import DEFAULT_LOOKUP_TIMEOUT_SECONDS
from .models import CanonicalRecord, ConflictClassification, LyricDocument
from .store import LookupFn

logger = logging.getLogger(__name__)


class LookupTimeoutError(Exception):
    """Raised when a canonical lookup does not finish within its time limit."""
    pass


def call_with_timeout(lookup: LookupFn, track_id: str, timeout_seconds: float) -> Optional[CanonicalRecord]:
    """
    Run a lookup in a daemon worker thread, giving up after ``timeout_seconds``.

    A timed-out worker keeps running in the background but, being a daemon,
    never holds up interpreter exit once the verdict is written.

    Raises:
        LookupTimeoutError: If the lookup does not finish in time
        Exception: Whatever the lookup itself raised
    """
    outcome: Dict[str, Any] = {}

    def worker():
        try:
            outcome["record"] = lookup(track_id)
        except Exception as e:
            outcome["error"] = e

    thread = threading.Thread(target=worker, name=f"canonical-lookup-{track_id}", daemon=True)
    thread.start()
    thread.join(timeout_seconds)

    if thread.is_alive():
        raise LookupTimeoutError(f"Lookup of {track_id} did not finish within {timeout_seconds:g}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("record")


def classify(
    record: Optional[CanonicalRecord],
    content_hash: str,
    base_revision: Optional[int],
    require_base_revision: bool = False,
) -> ConflictClassification:
    """Pure classification once the canonical record (or its absence) is known."""
    if record is None:
        return ConflictClassification.new()
    if record.content_hash == content_hash:
        return ConflictClassification.duplicate_of(record.record_id)
    if base_revision is None:
        if require_base_revision:
            return ConflictClassification.stale_relative_to(record.record_id)
        return ConflictClassification.replaces(record.record_id)
    if record.revision > base_revision:
        return ConflictClassification.stale_relative_to(record.record_id)
    return ConflictClassification.replaces(record.record_id)


def resolve_conflict(
    document: LyricDocument,
    lookup: LookupFn,
    timeout_seconds: float = DEFAULT_LOOKUP_TIMEOUT_SECONDS,
    require_base_revision: bool = False,
) -> ConflictClassification:
    """
    Classify a submission against the canonical store.

    Args:
        document: Parsed submission
        lookup: Read-only canonical lookup capability
        timeout_seconds: Upper bound on the lookup call
        require_base_revision: Treat an undeclared base revision as stale

    Returns:
        ConflictClassification; never raises for lookup failures
    """
    track_id = document.header.track_id
    if not track_id:
        return ConflictClassification.not_checked("no valid TrackID to look up")

    try:
        record = call_with_timeout(lookup, track_id, timeout_seconds)
    except LookupTimeoutError:
        logger.warning(f"Canonical lookup for {track_id} timed out after {timeout_seconds}s")
        return ConflictClassification.lookup_unavailable(
            f"lookup timed out after {timeout_seconds:g}s"
        )
    except Exception as e:
        logger.warning(f"Canonical lookup for {track_id} failed: {e}")
        return ConflictClassification.lookup_unavailable(
            f"lookup failed: {type(e).__name__}"
        )

    classification = classify(
        record,
        document.content_hash,
        document.header.base_revision,
        require_base_revision=require_base_revision,
    )
    logger.info(f"Track {track_id} classified as {classification.kind.value}")
    return classification
