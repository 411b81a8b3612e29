"""
Command-line interface for the lyric submission checker.

Provides subcommands for validating an issue body, printing the content hash
of its lyric block, and listing the validation rules.

Exit codes for ``validate``: 0 accepted, 1 rejected, 2 retry later,
3 usage or I/O error.
"""

import argparse
import logging
import sys
from contextlib import nullcontext
from pathlib import Path
from typing import Optional

from src.config.secrets import MissingSecretError, get_lookup_token, get_lookup_url
from src.logging_config import configure_logging

from . import config as checker_config
from . import store
from .extractor import ExtractionError, extract_payload
from .locking import LockError, submission_lock
from .models import RawSubmission
from .parser import compute_content_hash
from .pipeline import validate
from .report import render_markdown
from .rules import RULES
from .verdict import check_verdict_dict, verdict_to_dict, verdict_to_json, VerdictSchemaError

logger = logging.getLogger(__name__)

EXIT_ACCEPTED = 0
EXIT_REJECTED = 1
EXIT_RETRY = 2
EXIT_ERROR = 3

STATUS_EXIT_CODES = {
    "accepted": EXIT_ACCEPTED,
    "rejected": EXIT_REJECTED,
    "retry": EXIT_RETRY,
}


def _read_body(path: str) -> bytes:
    if path == "-":
        return sys.stdin.buffer.read()
    with open(path, "rb") as f:
        return f.read()


def _build_lookup(args: argparse.Namespace, cfg: dict) -> store.LookupFn:
    """Pick the canonical store from the CLI flags, falling back to the environment."""
    if args.offline:
        logger.warning("Running offline: every track is treated as new")
        return store.InMemoryCanonicalStore()
    if args.canonical_file:
        return store.load_canonical_file(Path(args.canonical_file))

    base_url = args.lookup_url or get_lookup_url()
    return store.HttpCanonicalStore(
        base_url,
        token=get_lookup_token(),
        timeout=cfg["lookup"]["timeout_seconds"],
        retry_config=checker_config.get_retry_config(cfg),
    )


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate one issue body and print the verdict."""
    try:
        cfg = checker_config.load_checker_config(Path(args.config) if args.config else None)
        if args.timeout is not None:
            cfg["lookup"]["timeout_seconds"] = args.timeout
            checker_config.validate_config(cfg)
        lookup = _build_lookup(args, cfg)
        body = _read_body(args.body_file)
    except (checker_config.ConfigError, store.StoreError, MissingSecretError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    submission = RawSubmission(
        submission_id=args.issue_id,
        body=body,
        submitter=args.submitter or "",
    )

    lock = submission_lock(Path(args.lock_dir), args.issue_id) if args.lock_dir else nullcontext()
    try:
        with lock:
            verdict = validate(submission, lookup, cfg)
    except LockError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        check_verdict_dict(verdict_to_dict(verdict))
    except VerdictSchemaError as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if args.format == "markdown":
        output = render_markdown(verdict)
    else:
        output = verdict_to_json(verdict, indent=2 if args.pretty else None) + "\n"

    if args.output:
        try:
            with open(args.output, "w", encoding="utf-8", newline="\n") as f:
                f.write(output)
        except OSError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR
        print(f"Verdict written to {args.output} ({verdict.status})")
    else:
        sys.stdout.write(output)

    return STATUS_EXIT_CODES[verdict.status]


def cmd_hash(args: argparse.Namespace) -> int:
    """Print the content hash of the lyric block in an issue body."""
    try:
        body = _read_body(args.body_file).decode("utf-8-sig")
        payload = extract_payload(body)
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except ExtractionError as e:
        print(f"Extraction failed: {e.message}", file=sys.stderr)
        return EXIT_REJECTED

    print(compute_content_hash(payload.lyric_block))
    return EXIT_ACCEPTED


def cmd_rules(args: argparse.Namespace) -> int:
    """List validation rules in reporting order."""
    print(f"{'Rule':<24} {'Severity':<9} Title")
    print("-" * 60)
    for rule in RULES:
        print(f"{rule.rule_id:<24} {rule.severity.value:<9} {rule.title}")
        if args.verbose:
            print(f"{'':<34} {rule.suggestion}")
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="lyric-checker",
        description="Validate community lyric submissions filed as issues"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate an issue body")
    validate_parser.add_argument("--body-file", default="-", help="Issue body file ('-' for stdin)")
    validate_parser.add_argument("--issue-id", required=True, help="Issue identifier")
    validate_parser.add_argument("--submitter", help="Submitter login")
    validate_parser.add_argument("--config", help="Path to checker.yaml")
    validate_parser.add_argument("--timeout", type=float, help="Lookup timeout in seconds")
    store_group = validate_parser.add_mutually_exclusive_group()
    store_group.add_argument("--canonical-file", help="JSON/YAML snapshot of canonical entries")
    store_group.add_argument("--lookup-url", help="Lyric database base URL (default: $LYRIC_CHECKER_LOOKUP_URL)")
    store_group.add_argument("--offline", action="store_true", help="Skip the lyric database; treat tracks as new")
    validate_parser.add_argument("--format", choices=["json", "markdown"], default="json")
    validate_parser.add_argument("--pretty", action="store_true", help="Indent JSON output")
    validate_parser.add_argument("--output", "-o", help="Write the verdict to a file")
    validate_parser.add_argument("--lock-dir", help="Serialize runs per issue with lock files in this directory")
    validate_parser.set_defaults(func=cmd_validate)

    # hash command
    hash_parser = subparsers.add_parser("hash", help="Print the lyric block content hash")
    hash_parser.add_argument("--body-file", default="-", help="Issue body file ('-' for stdin)")
    hash_parser.set_defaults(func=cmd_hash)

    # rules command
    rules_parser = subparsers.add_parser("rules", help="List validation rules")
    rules_parser.set_defaults(func=cmd_rules)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(logging.DEBUG if args.verbose else None)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
