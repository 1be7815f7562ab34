"""Value types shared by the scope resolver, the reviewer and the providers.

Everything here is immutable. A PullRequestEvent is rebuilt from the webhook
payload on every invocation and nothing in this module is cached between runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Union

ALL_CLEAR_MARKER = "LGTM 👍"
FINDINGS_HEADER = "Code review by diffguard"


class UnsupportedEventError(ValueError):
    """Raised when a webhook payload is not a pull_request opened/synchronize event."""


class EventAction(str, Enum):
    OPENED = "opened"
    SYNCHRONIZED = "synchronized"


class WindowSource(str, Enum):
    """Where the base of the reviewed diff window came from."""

    FULL = "full"
    STORE = "store"
    MARKER = "marker"
    LAST_TWO_COMMITS = "last-two-commits"


class OutcomeStatus(str, Enum):
    NO_ENGINE = "no engine"
    INELIGIBLE = "ineligible"
    NO_CHANGES = "no change"
    SUCCESS = "success"


@dataclass(frozen=True)
class PullRequestEvent:
    action: EventAction
    repo: str  # owner/name
    number: int
    head_sha: str
    base_sha: str
    state: str = "open"
    locked: bool = False
    labels: frozenset[str] = frozenset()
    html_url: str = ""


@dataclass(frozen=True)
class ChangedFile:
    path: str
    status: str  # added | modified | removed | renamed | unchanged
    patch: str | None = None


@dataclass(frozen=True)
class ReviewVerdict:
    is_acceptable: bool
    comment: str = ""
    hunk_header: str | None = None


@dataclass(frozen=True)
class SingleVerdict:
    verdict: ReviewVerdict

    @property
    def verdicts(self) -> tuple[ReviewVerdict, ...]:
        return (self.verdict,)


@dataclass(frozen=True)
class PerHunkVerdicts:
    items: tuple[ReviewVerdict, ...]

    @property
    def verdicts(self) -> tuple[ReviewVerdict, ...]:
        return self.items


ReviewResult = Union[SingleVerdict, PerHunkVerdicts]


@dataclass(frozen=True)
class AggregatedReview:
    body: str
    anchor_commit: str

    @property
    def all_clear(self) -> bool:
        return self.body == ALL_CLEAR_MARKER


@dataclass(frozen=True)
class PriorReviewMarker:
    commit_sha: str
    source: WindowSource


@dataclass(frozen=True)
class ReviewScope:
    base_sha: str
    head_sha: str
    window: WindowSource
    files: tuple[ChangedFile, ...] = ()
    skipped: tuple[tuple[str, str], ...] = ()  # (path, reason)


@dataclass(frozen=True)
class Finding:
    path: str
    comment: str
    hunk_header: str | None = None


@dataclass
class ReviewSummary:
    """Result of a completed review, carrying enough data to persist history."""

    repo: str
    pr_number: int
    base_sha: str
    head_sha: str
    window: WindowSource
    body: str
    posted: bool = False
    reviewed_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    reviewed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass(frozen=True)
class ReviewOutcome:
    status: OutcomeStatus
    message: str
    summary: ReviewSummary | None = None


def parse_event(payload: dict) -> PullRequestEvent:
    """Build a PullRequestEvent from a GitHub ``pull_request`` webhook payload."""
    action = payload.get("action")
    if action == "opened":
        event_action = EventAction.OPENED
    elif action == "synchronize":
        event_action = EventAction.SYNCHRONIZED
    else:
        raise UnsupportedEventError(f"Unsupported pull_request action: {action!r}")

    pr = payload.get("pull_request")
    if not pr:
        raise UnsupportedEventError("Payload has no pull_request object.")

    repo = (payload.get("repository") or {}).get("full_name") or pr["base"]["repo"]["full_name"]
    return PullRequestEvent(
        action=event_action,
        repo=repo,
        number=int(pr.get("number") or payload.get("number")),
        head_sha=pr["head"]["sha"],
        base_sha=pr["base"]["sha"],
        state=pr.get("state", "open"),
        locked=bool(pr.get("locked", False)),
        labels=frozenset(label["name"] for label in pr.get("labels") or [] if label.get("name")),
        html_url=pr.get("html_url", ""),
    )
