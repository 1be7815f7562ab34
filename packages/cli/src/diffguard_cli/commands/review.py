"""review command — review the pull request named by a webhook event."""

from __future__ import annotations

import json
import logging

import click
from github import GithubException
from rich.console import Console

from diffguard_core.models import ALL_CLEAR_MARKER, ReviewSummary, UnsupportedEventError, parse_event
from diffguard_core.providers.base import ReviewEngineError
from diffguard_core.reviewer import run_review
from diffguard_store.models import FindingRecord, ReviewRecord

console = Console()
logger = logging.getLogger(__name__)


def _summary_to_record(summary: ReviewSummary) -> ReviewRecord:
    """Map a ReviewSummary returned by run_review() to a ReviewRecord for the store.

    The CLI owns this mapping: diffguard_core has no store knowledge and
    diffguard_store has no core knowledge.
    """
    return ReviewRecord(
        repo=summary.repo,
        pr_number=summary.pr_number,
        head_sha=summary.head_sha,
        base_sha=summary.base_sha,
        reviewed_at=summary.reviewed_at,
        verdict="ALL_CLEAR" if summary.body == ALL_CLEAR_MARKER else "FINDINGS",
        files_reviewed=len(summary.reviewed_files),
        findings=[FindingRecord(file=f.path, comment=f.comment, hunk_header=f.hunk_header) for f in summary.findings],
    )


@click.command("review")
@click.option(
    "--event",
    "event_path",
    envvar="GITHUB_EVENT_PATH",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to the pull_request webhook payload (defaults to $GITHUB_EVENT_PATH).",
)
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print the review without posting it to GitHub.",
)
@click.option(
    "--full-review",
    "full_review",
    is_flag=True,
    help="Review the whole PR diff even if a previous review exists.",
)
@click.pass_context
def review_cmd(ctx, event_path: str, shadow: bool, full_review: bool):
    """Review one pull_request opened/synchronize event and post a single review.

    \b
    Environment variables:
      GITHUB_TOKEN         GitHub token (or use gh CLI)
      ANTHROPIC_API_KEY    Preferred review engine key
      OPENAI_API_KEY       Used when no Anthropic key is set
    """
    settings = ctx.obj["settings"]
    store = ctx.obj.get("store")

    if not settings.github_token:
        raise click.UsageError("No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.")

    with open(event_path, encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as e:
            raise click.UsageError(f"{event_path} is not valid JSON: {e}")

    try:
        event = parse_event(payload)
    except UnsupportedEventError as e:
        console.print(f"[yellow]Ignoring event: {e}[/yellow]")
        return

    try:
        outcome = run_review(event, settings, store=store, shadow=shadow, force_full=full_review)
    except (ReviewEngineError, GithubException) as e:
        logger.exception("Review of %s#%d failed; no review was posted", event.repo, event.number)
        raise click.ClickException(f"Review failed: {e}")

    console.print(f"Outcome: {outcome.status.value} ({outcome.message})")

    # Persist only reviews that were actually posted. History write failures are non-fatal.
    if outcome.summary is not None and outcome.summary.posted and store is not None:
        try:
            store.save(_summary_to_record(outcome.summary))
        except Exception as e:
            logger.warning("Could not save review history for %s#%d: %s", event.repo, event.number, e)
