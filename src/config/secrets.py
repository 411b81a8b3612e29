"""
Credentials and endpoints for the canonical lyric database.

Usage:
    from src.config.secrets import get_lookup_url, get_lookup_token

    # Will raise if the URL is missing
    url = get_lookup_url()

CLI check:
    python -m src.config.secrets --check
"""

import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file on module import
_current = Path(__file__).resolve()
_repo_root = _current.parent.parent.parent  # src/config/secrets.py -> repo root
_env_path = _repo_root / ".env"

if _env_path.exists():
    load_dotenv(_env_path)
else:
    # Also try current working directory
    load_dotenv()


LOOKUP_URL_VAR = "LYRIC_CHECKER_LOOKUP_URL"
LOOKUP_TOKEN_VAR = "LYRIC_CHECKER_LOOKUP_TOKEN"


class MissingSecretError(Exception):
    """Raised when a required setting is not configured."""
    pass


def get_lookup_url() -> str:
    """
    Get the canonical store base URL from environment.

    Returns:
        str: Base URL without trailing slash

    Raises:
        MissingSecretError: If LYRIC_CHECKER_LOOKUP_URL is not set
    """
    url = os.environ.get(LOOKUP_URL_VAR, "").strip()
    if not url:
        raise MissingSecretError(
            f"{LOOKUP_URL_VAR} not found. "
            "Copy .env.example to .env and set the lyric database URL."
        )
    return url.rstrip("/")


def get_lookup_token() -> Optional[str]:
    """
    Get the optional bearer token for the canonical store.

    Returns:
        The token, or None when the store is public
    """
    token = os.environ.get(LOOKUP_TOKEN_VAR, "").strip()
    return token or None


def check_settings() -> dict:
    """
    Check which settings are configured.

    Returns:
        dict: Status of each setting ("OK", "MISSING" or "OPTIONAL")
    """
    status = {}
    status[LOOKUP_URL_VAR] = "OK" if os.environ.get(LOOKUP_URL_VAR, "").strip() else "MISSING"
    status[LOOKUP_TOKEN_VAR] = "OK" if os.environ.get(LOOKUP_TOKEN_VAR, "").strip() else "OPTIONAL"
    return status


def _cli_check():
    """CLI entry point for --check flag."""
    status = check_settings()
    all_ok = True

    for name, value in status.items():
        print(f"{name}: {value}")
        if value == "MISSING":
            all_ok = False

    if not all_ok:
        print("\nTo configure the lookup:")
        print("  1. Copy .env.example to .env")
        print(f"  2. Set {LOOKUP_URL_VAR} (and {LOOKUP_TOKEN_VAR} if the store is private)")
        sys.exit(1)
    else:
        print("\nLookup configured.")
        sys.exit(0)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        description="Check lyric database lookup configuration"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check if the lookup settings are configured"
    )

    args = parser.parse_args()

    if args.check:
        _cli_check()
    else:
        parser.print_help()
