"""Incremental review-scope resolution.

Works out which changed files one invocation has to review. On a fresh pull
request that is simply base..head. On a push to an open pull request the
window is narrowed to what has not been reviewed yet:

  1. the commit of the newest diffguard review on the PR (the review store
     supplies it when the scan fails or agrees with it)
  2. otherwise the review store's last reviewed commit for this PR
  3. otherwise (or when the lookup fails) the last two commits of the PR

Step 3 is an approximation: it can miss commits older than the second-to-last
one, and it can re-review content outside the unreviewed delta.

Nothing is cached between invocations. The hosting platform (and the optional
store) are the only record of what was already reviewed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Union

from github import GithubException

from diffguard_core.gh.pull_request import compare, find_prior_review, get_pull
from diffguard_core.models import (
    ChangedFile,
    EventAction,
    OutcomeStatus,
    PriorReviewMarker,
    PullRequestEvent,
    ReviewOutcome,
    ReviewScope,
    WindowSource,
)
from diffguard_core.utils.patterns import matches

if TYPE_CHECKING:
    from diffguard_core.config import Settings
    from diffguard_store.base import BaseStore

logger = logging.getLogger(__name__)

_REVIEWABLE_STATUSES = ("added", "modified")


def check_eligibility(event: PullRequestEvent, settings: Settings) -> ReviewOutcome | None:
    """Return an INELIGIBLE outcome for events that must not be reviewed, else None."""
    if event.state == "closed" or event.locked:
        return ReviewOutcome(OutcomeStatus.INELIGIBLE, "invalid event payload")
    if settings.target_label and settings.target_label not in event.labels:
        return ReviewOutcome(OutcomeStatus.INELIGIBLE, "no target label attached")
    return None


def is_selected(path: str, settings: Settings) -> bool:
    """Apply the include/ignore rules to one path.

    A non-empty include list decides on its own; the ignore list and ignore
    patterns are not consulted at all in that case.
    """
    if settings.include_patterns:
        return matches(settings.include_patterns, path)
    if path in settings.ignore:
        return False
    if settings.ignore_patterns:
        return not matches(settings.ignore_patterns, path)
    return True


def select_files(files: Iterable[ChangedFile], settings: Settings) -> list[ChangedFile]:
    return [f for f in files if is_selected(f.path, settings)]


def skip_reason(file: ChangedFile, max_patch_length: int | None) -> str | None:
    """Why a selected file will not be sent to the engine, or None if it will."""
    if file.status not in _REVIEWABLE_STATUSES:
        return f"status is {file.status}"
    if not file.patch:
        return "no patch available"
    if max_patch_length is not None and len(file.patch) > max_patch_length:
        return f"patch is {len(file.patch)} chars, limit is {max_patch_length}"
    return None


class ScopeResolver:
    def __init__(self, repo, settings: Settings, store: BaseStore | None = None):
        self.repo = repo
        self.settings = settings
        self.store = store

    def resolve(self, event: PullRequestEvent, force_full: bool = False) -> Union[ReviewScope, ReviewOutcome]:
        """Return the files to review, or an outcome explaining why there are none."""
        ineligible = check_eligibility(event, self.settings)
        if ineligible is not None:
            logger.info("%s#%d: %s", event.repo, event.number, ineligible.message)
            return ineligible

        base, head = event.base_sha, event.head_sha
        window = WindowSource.FULL
        comparison = compare(self.repo, base, head)
        files = comparison.files
        commits = comparison.commit_shas

        if event.action == EventAction.SYNCHRONIZED and not force_full:
            try:
                marker = self._find_marker(event)
                if marker is not None:
                    # Same commit as last time: nothing new was pushed.
                    files = () if marker.commit_sha == head else compare(self.repo, marker.commit_sha, head).files
                    base, window = marker.commit_sha, marker.source
                elif len(commits) >= 2:
                    base, head, files = self._last_two_commits(commits)
                    window = WindowSource.LAST_TWO_COMMITS
            except (GithubException, OSError) as e:
                logger.debug("Failed to detect the previous review, falling back: %s", e)
                if len(commits) >= 2:
                    base, head, files = self._last_two_commits(commits)
                    window = WindowSource.LAST_TWO_COMMITS

        logger.debug("Diff window %s..%s (%s), %d file(s)", base[:7], head[:7], window.value, len(files))

        selected = select_files(files, self.settings)
        if not selected:
            logger.info("%s#%d: no change", event.repo, event.number)
            return ReviewOutcome(OutcomeStatus.NO_CHANGES, "no change")

        reviewable: list[ChangedFile] = []
        skipped: list[tuple[str, str]] = []
        for file in selected:
            reason = skip_reason(file, self.settings.max_patch_length)
            if reason:
                logger.info("%s skipped: %s", file.path, reason)
                skipped.append((file.path, reason))
            else:
                reviewable.append(file)

        return ReviewScope(
            base_sha=base,
            head_sha=head,
            window=window,
            files=tuple(reviewable),
            skipped=tuple(skipped),
        )

    def _find_marker(self, event: PullRequestEvent) -> PriorReviewMarker | None:
        """Find the commit the PR was last reviewed at.

        The PR's own reviews are authoritative. The store can lag behind them
        (a failed save, a stale CI cache), so its sha is used only when it
        agrees with the newest review or when the review scan has nothing.
        """
        stored = None
        if self.store is not None:
            stored = self.store.last_reviewed_sha(event.repo, event.number)

        try:
            posted = find_prior_review(get_pull(self.repo, event.number), author=self.settings.reviewer_login)
        except (GithubException, OSError) as e:
            if not stored:
                raise
            logger.debug("Review scan failed, using the stored commit %s: %s", stored[:7], e)
            return PriorReviewMarker(commit_sha=stored, source=WindowSource.STORE)

        if posted is None:
            return PriorReviewMarker(commit_sha=stored, source=WindowSource.STORE) if stored else None
        if stored == posted.commit_sha:
            return PriorReviewMarker(commit_sha=stored, source=WindowSource.STORE)
        if stored:
            logger.info(
                "Store has %s for %s#%d but the PR was last reviewed at %s; using the PR",
                stored[:7],
                event.repo,
                event.number,
                posted.commit_sha[:7],
            )
        return posted

    def _last_two_commits(self, commits: tuple[str, ...]) -> tuple[str, str, tuple[ChangedFile, ...]]:
        base, head = commits[-2], commits[-1]
        return base, head, compare(self.repo, base, head).files
