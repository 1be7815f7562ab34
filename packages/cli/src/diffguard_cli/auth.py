"""GitHub token resolution with gh CLI fallback.

Resolution order (stops at first success):
  1. GITHUB_TOKEN, then GH_TOKEN environment variables (CI / explicit override)
  2. `gh auth token` (GitHub CLI session, for running against a PR locally)
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


def _token_from_gh_cli() -> str | None:
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return a GitHub token or None if no valid source is available. Never raises."""
    for name in _TOKEN_ENV_VARS:
        token = os.environ.get(name)
        if token:
            return token

    token = _token_from_gh_cli()
    if token:
        logger.debug("Resolved GitHub token via gh CLI session.")
    return token
