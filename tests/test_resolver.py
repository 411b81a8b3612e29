"""Tests for src/lyric_checker/resolver.py - conflict classification."""

import subprocess
import sys
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.lyric_checker.models import (
    CanonicalRecord,
    ConflictKind,
    LyricDocument,
    LyricHeader,
)
from src.lyric_checker.resolver import LookupTimeoutError, call_with_timeout, classify, resolve_conflict
from src.lyric_checker.store import LookupUnavailableError


HASH_A = "sha256:" + "a" * 64
HASH_B = "sha256:" + "b" * 64

REPO_ROOT = Path(__file__).parent.parent


def _document(track_id="lm-01", base_revision=None, content_hash=HASH_A):
    header = LyricHeader(
        title="Paper Boats",
        artist="Lena Moor",
        track_id=track_id,
        contributors=frozenset({"carol"}),
        base_revision=base_revision,
    )
    return LyricDocument(header=header, lines=(), raw_block="", content_hash=content_hash)


class TestClassify:
    def test_no_record_is_new(self):
        result = classify(None, HASH_A, None)
        assert result.kind is ConflictKind.NEW
        assert result.existing_id is None
        assert not result.blocks_acceptance

    def test_same_hash_is_duplicate(self):
        # hash match wins even when the declared base is behind
        record = CanonicalRecord("rec-1", HASH_A, revision=9)
        result = classify(record, HASH_A, 2)
        assert result.kind is ConflictKind.DUPLICATE_OF
        assert result.existing_id == "rec-1"
        assert result.blocks_acceptance

    @pytest.mark.parametrize("base", [3, 5])
    def test_current_or_newer_base_replaces(self, base):
        record = CanonicalRecord("rec-1", HASH_B, revision=3)
        result = classify(record, HASH_A, base)
        assert result.kind is ConflictKind.REPLACES
        assert result.existing_id == "rec-1"
        assert not result.blocks_acceptance

    def test_older_base_is_stale(self):
        record = CanonicalRecord("rec-1", HASH_B, revision=4)
        result = classify(record, HASH_A, 3)
        assert result.kind is ConflictKind.STALE_RELATIVE_TO
        assert result.blocks_acceptance

    def test_missing_base_replaces_by_default(self):
        record = CanonicalRecord("rec-1", HASH_B, revision=4)
        assert classify(record, HASH_A, None).kind is ConflictKind.REPLACES

    def test_missing_base_is_stale_when_required(self):
        record = CanonicalRecord("rec-1", HASH_B, revision=4)
        result = classify(record, HASH_A, None, require_base_revision=True)
        assert result.kind is ConflictKind.STALE_RELATIVE_TO


class TestResolveConflict:
    def test_lookup_called_with_track_id(self):
        lookup = MagicMock(return_value=None)
        result = resolve_conflict(_document(), lookup)
        lookup.assert_called_once_with("lm-01")
        assert result.kind is ConflictKind.NEW

    def test_no_track_id_skips_lookup(self):
        lookup = MagicMock()
        result = resolve_conflict(_document(track_id=None), lookup)
        lookup.assert_not_called()
        assert result.kind is ConflictKind.NOT_CHECKED
        assert result.blocks_acceptance
        assert not result.retryable

    def test_lookup_error_is_unavailable(self):
        lookup = MagicMock(side_effect=LookupUnavailableError("connection refused"))
        result = resolve_conflict(_document(), lookup)
        assert result.kind is ConflictKind.LOOKUP_UNAVAILABLE
        assert result.detail == "lookup failed: LookupUnavailableError"
        assert result.retryable

    def test_unexpected_lookup_exception_is_unavailable(self):
        lookup = MagicMock(side_effect=KeyError("boom"))
        result = resolve_conflict(_document(), lookup)
        assert result.kind is ConflictKind.LOOKUP_UNAVAILABLE
        assert result.detail == "lookup failed: KeyError"

    def test_slow_lookup_times_out(self):
        release = threading.Event()

        def slow_lookup(track_id):
            release.wait(5)
            return None

        try:
            result = resolve_conflict(_document(), slow_lookup, timeout_seconds=0.05)
        finally:
            release.set()

        assert result.kind is ConflictKind.LOOKUP_UNAVAILABLE
        assert result.detail == "lookup timed out after 0.05s"

    def test_base_revision_from_header(self):
        lookup = MagicMock(return_value=CanonicalRecord("rec-1", HASH_B, revision=7))
        assert resolve_conflict(_document(base_revision=6), lookup).kind is ConflictKind.STALE_RELATIVE_TO
        assert resolve_conflict(_document(base_revision=7), lookup).kind is ConflictKind.REPLACES

    def test_require_base_revision_flag(self):
        lookup = MagicMock(return_value=CanonicalRecord("rec-1", HASH_B, revision=7))
        result = resolve_conflict(_document(), lookup, require_base_revision=True)
        assert result.kind is ConflictKind.STALE_RELATIVE_TO


class TestCallWithTimeout:
    def test_returns_lookup_result(self):
        record = CanonicalRecord("rec-1", HASH_A, revision=1)
        assert call_with_timeout(lambda track_id: record, "lm-01", 1.0) is record

    def test_propagates_lookup_exception(self):
        def failing(track_id):
            raise ValueError("bad")

        with pytest.raises(ValueError):
            call_with_timeout(failing, "lm-01", 1.0)

    def test_times_out(self):
        release = threading.Event()
        try:
            with pytest.raises(LookupTimeoutError):
                call_with_timeout(lambda track_id: release.wait(5), "lm-01", 0.05)
        finally:
            release.set()

    def test_worker_is_daemon(self):
        seen = {}

        def lookup(track_id):
            seen["daemon"] = threading.current_thread().daemon
            return None

        call_with_timeout(lookup, "lm-01", 1.0)
        assert seen["daemon"] is True

    def test_hung_lookup_does_not_delay_process_exit(self):
        script = (
            "import time\n"
            "from src.lyric_checker.models import LyricDocument, LyricHeader\n"
            "from src.lyric_checker.resolver import resolve_conflict\n"
            "doc = LyricDocument(LyricHeader(track_id='lm-01'), (), '', 'sha256:' + 'a' * 64)\n"
            "result = resolve_conflict(doc, lambda track_id: time.sleep(30), timeout_seconds=0.2)\n"
            "print(result.kind.value)\n"
        )
        started = time.monotonic()
        proc = subprocess.run(
            [sys.executable, "-c", script],
            cwd=str(REPO_ROOT),
            capture_output=True,
            text=True,
            timeout=25,
        )
        elapsed = time.monotonic() - started

        assert proc.returncode == 0, proc.stderr
        assert proc.stdout.strip() == "lookup_unavailable"
        assert elapsed < 15
