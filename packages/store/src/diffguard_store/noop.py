"""No-op store — the default when no store is configured.

Reviews are posted to GitHub but not persisted anywhere, so the scope
resolver always falls back to scanning the PR's reviews.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from diffguard_store.base import BaseStore

if TYPE_CHECKING:
    from diffguard_store.models import ReviewRecord


class NoOpStore(BaseStore):
    """Silently discards all records. Needs no configuration."""

    def save(self, record: ReviewRecord) -> None:
        pass  # intentional no-op

    def list_reviews(self, repo: str, pr_number: int | None = None) -> list[ReviewRecord]:
        return []

    def last_reviewed_sha(self, repo: str, pr_number: int) -> str | None:
        return None
