"""Shared fixtures: fake clock, fake provider clients, diff factory.

No network and no git: providers are in-process fakes and time only moves
when a test advances it.
"""

import time

import pytest

from aicommit.llm.base import LLMClient, LLMResponse, ProviderError


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeClient(LLMClient):
    """Provider double that returns canned text or raises."""

    def __init__(self, key: str, content: str = "feat(core): add dispatcher", error: Exception | None = None,
                 delay: float = 0.0):
        self.key = key
        self.content = content
        self.error = error
        self.delay = delay
        self.calls = 0

    @property
    def name(self) -> str:
        return f"Fake ({self.key})"

    def generate(self, prompt: str) -> LLMResponse:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.content, model="fake", tokens_used=12)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_client():
    def _make(key, content="feat(core): add dispatcher", error=None, delay=0.0):
        return FakeClient(key, content=content, error=error, delay=delay)
    return _make


@pytest.fixture
def failing_client():
    def _make(key, message="backend exploded"):
        return FakeClient(key, error=ProviderError(message))
    return _make


@pytest.fixture
def make_diff():
    """Return a factory for single-file unified diffs."""
    def _make(path="src/app.py", added=(), removed=(), index="1a2b3c4..5d6e7f8",
              hunk="@@ -10,6 +10,9 @@ def main():", context=("    return result",)):
        lines = [
            f"diff --git a/{path} b/{path}",
            f"index {index} 100644",
            f"--- a/{path}",
            f"+++ b/{path}",
            hunk,
            *(f" {line}" for line in context),
            *(f"-{line}" for line in removed),
            *(f"+{line}" for line in added),
        ]
        return "\n".join(lines)
    return _make
