"""Base reviewer implementing the Template Method pattern.

All providers share the same review algorithm:
    review() → _build_system_prompt() + _build_user_prompt()
             → _call_with_retry() → _call_api()   ← only this differs per provider
             → parse_result()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

Whatever shape the model answers in, review() hands back a ReviewResult, so
callers only ever iterate ``result.verdicts``.
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from diffguard_core.models import PerHunkVerdicts, ReviewVerdict, SingleVerdict

if TYPE_CHECKING:
    from diffguard_core.config import Settings
    from diffguard_core.models import ReviewResult

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3

DEFAULT_SYSTEM_PROMPT = (
    "Please review the following code patch. Focus on potential bugs, risks, and improvement suggestions."
)

_JSON_FORMAT = """
Provide your feedback in a strict JSON format with the following structure:
{
  "reviews": [
    {
      "hunk_header": string, // The @@ hunk header (e.g., "@@ -10,5 +10,7 @@"), optional
      "lgtm": boolean, // true if this hunk looks good, false if there are concerns
      "review_comment": string // Your detailed review comments for this hunk. Can use markdown syntax. Empty string if lgtm is true.
    }
  ]
}
Review each hunk (marked by @@) separately and provide feedback for hunks that need improvement.
Ensure your response is a valid JSON object with a reviews array.
"""  # noqa: E501


class ReviewEngineError(RuntimeError):
    """The review engine could not produce a verdict. Fatal for the invocation."""


class BaseReviewer(ABC):
    MODEL: str = ""
    MAX_RETRIES: int = _MAX_RETRIES
    BASE_URL_SETTING: str = ""  # Settings field holding this provider's endpoint override

    def __init__(self, settings: Settings | None = None):
        self.model = (settings.model if settings else None) or self.MODEL
        self.max_tokens = settings.max_tokens if settings else 4096
        self.timeout = (settings.timeout_ms if settings else 300000) / 1000
        self.base_url = getattr(settings, self.BASE_URL_SETTING, None) if settings and self.BASE_URL_SETTING else None
        self.system_prompt = (settings.prompt if settings else None) or DEFAULT_SYSTEM_PROMPT
        self.language = settings.language if settings else None

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def review(self, patch: str) -> ReviewResult:
        """Review one file's unified diff and return its verdict(s).

        An empty patch is acceptable by definition and makes no API call.
        Raises ReviewEngineError once retries are exhausted.
        """
        if not patch:
            return SingleVerdict(ReviewVerdict(is_acceptable=True))
        raw = self._call_with_retry(self._build_system_prompt(), self._build_user_prompt(patch))
        return self.parse_result(raw, patch)

    # ------------------------------------------------------------------ #
    # Abstract — implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        It should raise on failure; _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str) -> str:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(system_prompt, user_prompt)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    raise ReviewEngineError(f"{self.__class__.__name__} failed: {e}") from e
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
        raise ReviewEngineError(f"{self.__class__.__name__} made no attempts")

    def _build_system_prompt(self) -> str:
        return self.system_prompt

    def _build_user_prompt(self, patch: str) -> str:
        answer_language = f"Answer me in {self.language}," if self.language else ""
        return f"{_JSON_FORMAT} {answer_language}:\n{patch}"

    @staticmethod
    def parse_result(raw: str | None, patch: str = "") -> ReviewResult:
        """Normalize the model's text into a SingleVerdict or PerHunkVerdicts.

        Text that is not JSON becomes one rejecting verdict carrying the text,
        so a malformed answer is still surfaced to the author.
        """
        if not raw or not raw.strip():
            return SingleVerdict(ReviewVerdict(is_acceptable=True))

        # Strip only the outer ```json ... ``` fence, not backticks inside comments.
        cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            logger.warning("Review engine answered with non-JSON text: %s", raw[:200])
            first_line = patch.split("\n", 1)[0]
            return SingleVerdict(
                ReviewVerdict(
                    is_acceptable=False,
                    comment=raw,
                    hunk_header=first_line if first_line.startswith("@@") else None,
                )
            )

        if isinstance(data, dict) and isinstance(data.get("reviews"), list):
            data = data["reviews"]
        if isinstance(data, list):
            return PerHunkVerdicts(tuple(_to_verdict(item) for item in data if isinstance(item, dict)))
        if isinstance(data, dict):
            return SingleVerdict(_to_verdict(data))
        return SingleVerdict(ReviewVerdict(is_acceptable=False, comment=str(data)))


def _to_verdict(item: dict) -> ReviewVerdict:
    return ReviewVerdict(
        is_acceptable=bool(item.get("lgtm", False)),
        comment=str(item.get("review_comment") or ""),
        hunk_header=item.get("hunk_header") or None,
    )
