"""Review history data models.

Decoupled from diffguard_core so the store layer can be used independently
and diffguard_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class FindingRecord:
    """One rejecting verdict from a submitted review."""

    file: str
    comment: str
    hunk_header: str | None = None


@dataclass
class ReviewRecord:
    """A submitted PR review persisted to the store.

    Created by the CLI layer after run_review() returns a ReviewSummary.
    head_sha is the commit the review was anchored to, which is what the
    next synchronize event diffs from.
    """

    repo: str
    pr_number: int
    head_sha: str
    base_sha: str
    reviewed_at: str  # ISO-8601 UTC timestamp
    verdict: str  # "ALL_CLEAR" | "FINDINGS"
    files_reviewed: int = 0
    findings: list[FindingRecord] = field(default_factory=list)
