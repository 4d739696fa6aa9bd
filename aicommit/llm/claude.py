"""Claude (Anthropic) provider client"""

import os

from aicommit.llm.base import LLMClient, LLMResponse, ProviderError, RETRY_SUFFIX, SYSTEM_PROMPT, validate_commit_message


class ClaudeClient(LLMClient):
    """Claude API client. Requires ANTHROPIC_API_KEY env var."""

    key = "claude"

    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    MAX_TOKENS = 1000
    TEMPERATURE = 0.4
    MAX_RETRIES = 2

    def __init__(self, api_key: str | None = None, model: str | None = None, timeout: float | None = None):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or self.DEFAULT_MODEL

        if not self.api_key:
            raise ProviderError(
                "No API key found. Set ANTHROPIC_API_KEY environment variable:\n"
                "  export ANTHROPIC_API_KEY='your-key-here'"
            )

        from anthropic import Anthropic
        options = {"timeout": timeout} if timeout else {}
        self._client = Anthropic(api_key=self.api_key, **options)

    @property
    def name(self) -> str:
        return f"Claude ({self.model})"

    def generate(self, prompt: str) -> LLMResponse:
        from anthropic import APIError, AuthenticationError

        last_error = ""
        for attempt in range(self.MAX_RETRIES + 1):
            request_prompt = prompt if attempt == 0 else prompt + RETRY_SUFFIX.format(error=last_error)
            try:
                response = self._client.messages.create(
                    model=self.model,
                    max_tokens=self.MAX_TOKENS,
                    temperature=self.TEMPERATURE,
                    system=SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": request_prompt}]
                )
            except AuthenticationError:
                raise ProviderError("Invalid API key. Check your ANTHROPIC_API_KEY.")
            except APIError as e:
                raise ProviderError(f"Claude API error: {e.message}")

            content = next((block.text.strip() for block in response.content if block.type == "text"), "")

            is_valid, error = validate_commit_message(content)
            if not is_valid and attempt < self.MAX_RETRIES:
                last_error = error
                continue

            return LLMResponse(
                content=content,
                model=self.model,
                tokens_used=response.usage.input_tokens + response.usage.output_tokens
            )
