"""GistStore — shared review history in a GitHub Gist.

Useful when reviews run on ephemeral CI runners: every run reads and appends
to the same Gist, so the next push to a PR can find the commit the previous
run reviewed without scanning the PR's reviews.

Data format: a single JSON file named `diffguard_history.json` inside the
Gist, holding a JSON array of ReviewRecord dicts, newest entries appended.
"""

from __future__ import annotations

import json
import logging
import os

from diffguard_store.base import BaseStore
from diffguard_store.models import FindingRecord, ReviewRecord

logger = logging.getLogger(__name__)

_GIST_FILENAME = "diffguard_history.json"


class GistStore(BaseStore):
    """Stores review history in a GitHub Gist as an append-only JSON array.

    list_reviews() reads the full array and filters in memory, which suits
    hundreds or low thousands of records. Beyond that, use SQLiteStore.
    """

    def __init__(self, gist_id: str, token: str):
        from github import Auth, Github

        self._gist_id = gist_id
        self._gh = Github(auth=Auth.Token(token))

    def _get_gist(self):
        return self._gh.get_gist(self._gist_id)

    def save(self, record: ReviewRecord) -> None:
        """Append a review record to the Gist JSON file."""
        try:
            gist = self._get_gist()
            existing = self._read_records(gist)
            existing.append(self._to_dict(record))
            gist.edit(files={_GIST_FILENAME: {"content": json.dumps(existing, indent=2)}})
        except Exception as e:
            # The review is already on GitHub; losing the history entry only
            # means the next run falls back to scanning the PR's reviews.
            msg = "GistStore.save() failed (%s): %s"
            if os.environ.get("GITHUB_ACTIONS") == "true":
                msg += " (the built-in GITHUB_TOKEN has no Gist scope; use a PAT with 'gist' scope)"
            logger.warning(msg, type(e).__name__, e)

    def list_reviews(self, repo: str, pr_number: int | None = None) -> list[ReviewRecord]:
        try:
            records = self._read_records(self._get_gist())
        except Exception as e:
            logger.warning("GistStore.list_reviews() failed: %s", e)
            return []

        results = [self._from_dict(r) for r in records if r.get("repo") == repo]
        if pr_number is not None:
            results = [r for r in results if r.pr_number == pr_number]
        return results

    def _read_records(self, gist) -> list[dict]:
        """Read the current JSON array from the Gist file, or return []."""
        file_obj = gist.files.get(_GIST_FILENAME)
        if file_obj is None:
            return []
        try:
            return json.loads(file_obj.content) or []
        except (json.JSONDecodeError, AttributeError, TypeError):
            return []

    @staticmethod
    def _to_dict(record: ReviewRecord) -> dict:
        return {
            "repo": record.repo,
            "pr_number": record.pr_number,
            "head_sha": record.head_sha,
            "base_sha": record.base_sha,
            "reviewed_at": record.reviewed_at,
            "verdict": record.verdict,
            "files_reviewed": record.files_reviewed,
            "findings": [{"file": f.file, "hunk_header": f.hunk_header, "comment": f.comment} for f in record.findings],
        }

    @staticmethod
    def _from_dict(d: dict) -> ReviewRecord:
        return ReviewRecord(
            repo=d.get("repo", ""),
            pr_number=d.get("pr_number", 0),
            head_sha=d.get("head_sha", ""),
            base_sha=d.get("base_sha", ""),
            reviewed_at=d.get("reviewed_at", ""),
            verdict=d.get("verdict", ""),
            files_reviewed=d.get("files_reviewed", 0),
            findings=[
                FindingRecord(file=f.get("file", ""), comment=f.get("comment", ""), hunk_header=f.get("hunk_header"))
                for f in d.get("findings", [])
            ],
        )
