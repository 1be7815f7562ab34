"""Abstract store interface.

Any storage backend (Gist, SQLite, Postgres, S3) implements this interface.
The store is the explicit "pull request -> last reviewed commit" lookup used
by the scope resolver; scanning the PR's reviews remains the fallback when
the store has no answer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from diffguard_store.models import ReviewRecord


class BaseStore(ABC):
    """Pluggable persistence layer for review history.

    Implementations must be safe to call from CI environments where no
    interactive credentials are available. All auth must happen via
    constructor arguments or environment variables resolved at init time.
    """

    @abstractmethod
    def save(self, record: ReviewRecord) -> None:
        """Persist a submitted review record."""

    @abstractmethod
    def list_reviews(self, repo: str, pr_number: int | None = None) -> list[ReviewRecord]:
        """Return reviews for a repo, oldest first, optionally filtered by PR number.

        Returns an empty list if no reviews exist. Never raises.
        """

    def last_reviewed_sha(self, repo: str, pr_number: int) -> str | None:
        """Return the head commit of the most recent review of a PR, or None.

        Never raises. Backends with indexed storage may override this with a
        direct query.
        """
        records = self.list_reviews(repo, pr_number=pr_number)
        if not records:
            return None
        latest = max(records, key=lambda r: r.reviewed_at)
        return latest.head_sha or None

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Default is a no-op so callers can always call close() safely.
        """
