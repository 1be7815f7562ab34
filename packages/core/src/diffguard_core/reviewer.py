"""Core PR review orchestration."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Iterable, Sequence

from github import GithubException
from rich.console import Console

from diffguard_core.gh.pull_request import (
    create_issue_comment,
    create_review,
    get_pull,
    get_repo,
    has_issue_comment,
    read_repo_variable,
)
from diffguard_core.models import (
    ALL_CLEAR_MARKER,
    FINDINGS_HEADER,
    AggregatedReview,
    ChangedFile,
    Finding,
    OutcomeStatus,
    PullRequestEvent,
    ReviewOutcome,
    ReviewResult,
    ReviewSummary,
)
from diffguard_core.providers.anthropic import AnthropicReviewer
from diffguard_core.providers.openai import OpenAIReviewer
from diffguard_core.scope import ScopeResolver, check_eligibility

if TYPE_CHECKING:
    from diffguard_core.config import Settings
    from diffguard_core.providers.base import BaseReviewer
    from diffguard_store.base import BaseStore

console = Console()
logger = logging.getLogger(__name__)

API_KEY_VARIABLE = "ANTHROPIC_API_KEY"
MISSING_KEY_MARKER = "<!-- diffguard:missing-api-key -->"
MISSING_KEY_NOTICE = (
    "diffguard is enabled on this repository but no review engine key was found. "
    f"Set `{API_KEY_VARIABLE}` (or `OPENAI_API_KEY`) as a repository secret or variable "
    "to turn on automated reviews.\n" + MISSING_KEY_MARKER
)


def load_reviewer(settings: Settings, repo, pr_number: int) -> BaseReviewer | None:
    """Pick a review engine from the configured credentials.

    Resolution order: ANTHROPIC_API_KEY, OPENAI_API_KEY, then the repository's
    ANTHROPIC_API_KEY Actions variable. Returns None when no key is available;
    if the variable could not be read at all, a one-time notice is left on the PR.
    """
    if settings.anthropic_api_key:
        return AnthropicReviewer(api_key=settings.anthropic_api_key, settings=settings)
    if settings.openai_api_key:
        return OpenAIReviewer(api_key=settings.openai_api_key, settings=settings)

    try:
        value = read_repo_variable(repo, API_KEY_VARIABLE)
    except GithubException as e:
        logger.info("Could not read the %s repository variable: %s", API_KEY_VARIABLE, e)
        try:
            pr = get_pull(repo, pr_number)
            if not has_issue_comment(pr, MISSING_KEY_MARKER):
                create_issue_comment(pr, MISSING_KEY_NOTICE)
        except GithubException as comment_error:
            logger.warning("Could not post the missing-key notice: %s", comment_error)
        return None

    if not value:
        return None
    return AnthropicReviewer(api_key=value, settings=settings)


def build_review_body(reviewed: Iterable[tuple[ChangedFile, ReviewResult]]) -> tuple[str, list[Finding]]:
    """Merge per-file verdicts into one review body, in file order.

    Only rejecting verdicts with a comment produce output. Each file gets one
    ``## <path>`` block; hunk-level verdicts are prefixed with their header.
    With no findings the body is exactly ALL_CLEAR_MARKER.
    """
    blocks: list[str] = []
    findings: list[Finding] = []
    for file, result in reviewed:
        rejected = [v for v in result.verdicts if not v.is_acceptable and v.comment]
        if not rejected:
            continue
        parts = [f"## {file.path}\n\n"]
        for verdict in rejected:
            if verdict.hunk_header:
                parts.append(f"`{verdict.hunk_header}`\n\n")
            parts.append(f"{verdict.comment}\n\n")
            findings.append(Finding(path=file.path, comment=verdict.comment, hunk_header=verdict.hunk_header))
        blocks.append("".join(parts))

    if not blocks:
        return ALL_CLEAR_MARKER, []
    return f"{FINDINGS_HEADER}\n\n" + "".join(blocks), findings


def review_files(reviewer: BaseReviewer, files: Sequence[ChangedFile], concurrency: int = 1) -> list[ReviewResult]:
    """Review each file's patch and return results in the same order as files.

    The first failure aborts the run: remaining work is cancelled and the
    exception propagates, so a partial review is never posted.
    """
    if concurrency <= 1:
        results = []
        total = len(files)
        for i, file in enumerate(files, 1):
            console.print(f"[[{i}/{total}]] Reviewing: {file.path}")
            try:
                results.append(reviewer.review(file.patch or ""))
            except Exception:
                logger.error("Review of %s failed", file.path)
                raise
        return results

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        futures = [pool.submit(reviewer.review, file.patch or "") for file in files]
        results = []
        for file, future in zip(files, futures):
            try:
                results.append(future.result())
            except Exception:
                logger.error("Review of %s failed", file.path)
                for pending in futures:
                    pending.cancel()
                raise
        return results


def print_shadow_review(review: AggregatedReview) -> None:
    """Print the review that would be posted, without posting it."""
    if review.all_clear:
        console.print(f"[green]Shadow mode: {ALL_CLEAR_MARKER}[/green]")
        return
    console.print(f"\n[bold]Shadow review for {review.anchor_commit[:7]} (not posted)[/bold]\n")
    console.print(review.body, markup=False)


def run_review(
    event: PullRequestEvent,
    settings: Settings,
    repo_obj=None,
    store: BaseStore | None = None,
    reviewer: BaseReviewer | None = None,
    shadow: bool = False,
    force_full: bool = False,
) -> ReviewOutcome:
    """Run the full review pipeline for one pull-request event.

    Missing credentials, ineligible events and empty scopes come back as
    outcomes. Engine and submission failures raise; nothing is posted then.
    """
    ineligible = check_eligibility(event, settings)
    if ineligible is not None:
        console.print(f"[yellow]Skipping {event.repo}#{event.number}: {ineligible.message}[/yellow]")
        return ineligible

    timeout = max(1, settings.timeout_ms // 1000)
    this_repo = repo_obj if repo_obj is not None else get_repo(event.repo, settings.github_token, timeout=timeout)

    if reviewer is None:
        reviewer = load_reviewer(settings, this_repo, event.number)
        if reviewer is None:
            console.print("[yellow]No review engine credentials found. Nothing was reviewed.[/yellow]")
            return ReviewOutcome(OutcomeStatus.NO_ENGINE, "no engine")

    scope = ScopeResolver(this_repo, settings, store).resolve(event, force_full=force_full)
    if isinstance(scope, ReviewOutcome):
        console.print(f"[yellow]Skipping {event.repo}#{event.number}: {scope.message}[/yellow]")
        return scope

    console.print(
        f"[cyan]Reviewing {event.repo}#{event.number}: {scope.base_sha[:7]} → {scope.head_sha[:7]} "
        f"({len(scope.files)} file(s), {len(scope.skipped)} skipped)[/cyan]"
    )

    start = time.monotonic()
    results = review_files(reviewer, scope.files, settings.review_concurrency)
    body, findings = build_review_body(zip(scope.files, results))
    review = AggregatedReview(body=body, anchor_commit=event.head_sha)

    summary = ReviewSummary(
        repo=event.repo,
        pr_number=event.number,
        base_sha=scope.base_sha,
        head_sha=review.anchor_commit,
        window=scope.window,
        body=review.body,
        reviewed_files=[f.path for f in scope.files],
        skipped_files=[path for path, _ in scope.skipped],
        findings=findings,
    )

    if shadow:
        print_shadow_review(review)
        return ReviewOutcome(OutcomeStatus.SUCCESS, "success", summary)

    try:
        create_review(this_repo, get_pull(this_repo, event.number), review.body, review.anchor_commit)
    except GithubException:
        logger.error("Failed to create review on %s#%d", event.repo, event.number)
        raise
    summary.posted = True

    elapsed = time.monotonic() - start
    console.print(
        f"[green]Review posted on {event.repo}#{event.number}: "
        f"{len(findings)} finding(s) across {len(scope.files)} file(s) in {elapsed:.1f}s.[/green]"
    )
    logger.info("successfully reviewed %s", event.html_url or f"{event.repo}#{event.number}")
    return ReviewOutcome(OutcomeStatus.SUCCESS, "success", summary)
