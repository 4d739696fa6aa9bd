"""Provider base classes and shared response validation"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from aicommit import COMMIT_TYPE_NAMES


SYSTEM_PROMPT = """You are a senior software engineer who writes precise git commit messages.

- Use the conventional commit format: type(scope): subject, optional bullet body
- Identify the PRIMARY purpose of the change from the diff
- The diff shows WHAT changed; the message explains WHY
- Prefer specific verbs over "update", "change" or "modify"
- Output only the commit message(s), no preamble and no code fences"""

RETRY_SUFFIX = (
    "\n\nIMPORTANT: Your previous response was invalid ({error}). "
    "Start directly with the commit type, e.g., 'feat(scope):'"
)


def validate_commit_message(content: str) -> tuple[bool, str]:
    """Validate that response looks like a proper commit message."""
    if not content or len(content.strip()) < 10:
        return False, "Response too short"

    types_pattern = '|'.join(COMMIT_TYPE_NAMES)
    pattern = rf'^(\[Option \d+\]\s*)?({types_pattern})(\(.+\))?!?:'
    first_line = content.strip().split('\n')[0]

    if not re.match(pattern, first_line):
        return False, f"Missing conventional commit format. Got: {first_line[:50]}"

    return True, ""


@dataclass
class LLMResponse:
    """Structured response from any provider."""
    content: str
    model: str = ""
    tokens_used: int = 0


class ProviderError(Exception):
    """Raised when a provider call fails."""
    pass


class LLMClient(ABC):
    """Abstract base for provider clients.

    ``key`` is the stable provider name used by the circuit breaker
    registry, the interaction history and provider scoring.
    """

    key: str = ""

    @abstractmethod
    def generate(self, prompt: str) -> LLMResponse:
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass
