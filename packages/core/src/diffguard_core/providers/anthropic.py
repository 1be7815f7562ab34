from __future__ import annotations

from typing import TYPE_CHECKING

from diffguard_core.providers.base import BaseReviewer

if TYPE_CHECKING:
    from diffguard_core.config import Settings


class AnthropicReviewer(BaseReviewer):
    MODEL = "claude-sonnet-4-20250514"
    BASE_URL_SETTING = "anthropic_base_url"

    def __init__(self, api_key: str, settings: Settings | None = None):
        super().__init__(settings)
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'diffguard[anthropic]'"
            )
        # Retries are owned by BaseReviewer._call_with_retry.
        kwargs = {"api_key": api_key, "timeout": self.timeout, "max_retries": 0}
        if self.base_url:
            kwargs["base_url"] = self.base_url
        self.client = Anthropic(**kwargs)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        # Imported inside the method because the anthropic package is optional;
        # __init__ already validated it is installed before we reach here.
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            max_tokens=self.max_tokens,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
