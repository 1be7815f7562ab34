from __future__ import annotations

from typing import TYPE_CHECKING

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from diffguard_core.providers.base import BaseReviewer

if TYPE_CHECKING:
    from diffguard_core.config import Settings


class OpenAIReviewer(BaseReviewer):
    MODEL = "gpt-4o"
    BASE_URL_SETTING = "openai_base_url"

    def __init__(self, api_key: str, settings: Settings | None = None):
        super().__init__(settings)
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. "
                "Install it with: pip install 'diffguard[openai]'"
            )
        # Retries are owned by BaseReviewer._call_with_retry.
        self.client = _OpenAI(api_key=api_key, base_url=self.base_url, timeout=self.timeout, max_retries=0)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=self.max_tokens,
        )
        return response.choices[0].message.content or ""
