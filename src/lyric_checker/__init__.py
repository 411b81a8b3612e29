"""
Lyric Submission Checker.

Validates community lyric submissions filed as issues before they are merged
into the shared lyric database.

Modules:
    models - Immutable records for submissions, documents, diagnostics and verdicts
    config - checker.yaml loading and defaults
    extractor - Lyric block and labelled field extraction from issue bodies
    parser - Timestamped line parsing and header checks
    rules - Ordered semantic validation rules
    store - Canonical-entry lookups (in-memory, snapshot file, HTTP)
    resolver - Conflict classification against the canonical entry
    verdict - Verdict composition, JSON serialization and schema checks
    report - Markdown issue-comment rendering
    pipeline - validate(): the end-to-end entry point
    locking - Per-submission advisory locks
    cli - Command-line interface entrypoints
"""

from . import models
from . import config
from . import extractor
from . import parser
from . import rules
from . import store
from . import resolver
from . import verdict
from . import report
from . import pipeline
from . import locking

from .pipeline import validate

__version__ = verdict.CHECKER_VERSION
