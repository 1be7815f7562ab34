from __future__ import annotations

import logging
from dataclasses import dataclass

from github import Auth, Github

from diffguard_core.models import ALL_CLEAR_MARKER, FINDINGS_HEADER, ChangedFile, PriorReviewMarker, WindowSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Comparison:
    files: tuple[ChangedFile, ...]
    commit_shas: tuple[str, ...]


def get_repo(repo_name: str, token: str | None, timeout: int = 15):
    auth = Auth.Token(token) if token else None
    return Github(auth=auth, timeout=timeout).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def to_changed_file(file) -> ChangedFile:
    return ChangedFile(path=file.filename, status=file.status, patch=file.patch)


def compare(repo, base_sha: str, head_sha: str) -> Comparison:
    """Return files and commits between two commits using GitHub's compare API."""
    comparison = repo.compare(base_sha, head_sha)
    return Comparison(
        files=tuple(to_changed_file(f) for f in comparison.files),
        commit_shas=tuple(c.sha for c in comparison.commits),
    )


def is_review_marker(body: str | None) -> bool:
    """True if a review body was produced by diffguard."""
    text = (body or "").lstrip()
    return text.startswith(ALL_CLEAR_MARKER) or text.startswith(FINDINGS_HEADER)


def find_prior_review(pr, author: str | None = None) -> PriorReviewMarker | None:
    """Return the commit of the most recent diffguard review on the PR, or None.

    Reviews come back oldest first, so the scan runs from the end. When author
    is given, only reviews submitted by that login count, so a human typing the
    all-clear marker does not move the window.
    """
    reviews = list(pr.get_reviews())
    for review in reversed(reviews):
        if author is not None and getattr(review.user, "login", None) != author:
            continue
        if is_review_marker(review.body) and review.commit_id:
            return PriorReviewMarker(commit_sha=review.commit_id, source=WindowSource.MARKER)
    return None


def create_review(repo, pr, body: str, head_sha: str):
    """Submit a single COMMENT review pinned to head_sha."""
    return pr.create_review(commit=repo.get_commit(head_sha), body=body, event="COMMENT")


def has_issue_comment(pr, marker: str) -> bool:
    return any(marker in (c.body or "") for c in pr.get_issue_comments())


def create_issue_comment(pr, body: str):
    return pr.create_issue_comment(body)


def read_repo_variable(repo, name: str) -> str | None:
    """Read a repository Actions variable. Raises GithubException when it cannot be read."""
    return repo.get_variable(name).value or None
