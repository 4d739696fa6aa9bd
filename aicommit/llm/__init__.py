"""Provider Client Package"""

import logging

from aicommit.llm.base import LLMClient, LLMResponse, ProviderError, SYSTEM_PROMPT, validate_commit_message
from aicommit.llm.claude import ClaudeClient
from aicommit.llm.ollama import OllamaClient

logger = logging.getLogger(__name__)

PROVIDERS = {
    "ollama": OllamaClient,
    "claude": ClaudeClient,
}


def create_clients(names: list[str], model: str | None = None,
                   timeout: float | None = None) -> dict[str, LLMClient]:
    """Build every client in ``names`` that can be constructed, in order.

    ``model`` only applies when a single backend is requested. ``timeout``
    bounds each HTTP request so an abandoned call cannot outlive the
    session by much. Unavailable backends (no API key, server down, SDK
    missing) are skipped. Raises ProviderError when none could be built.
    """
    if len(names) > 1:
        model = None
    clients: dict[str, LLMClient] = {}
    reasons = []
    for name in names:
        if name not in PROVIDERS:
            raise ProviderError(f"Unknown provider: {name}. Use one of: {', '.join(PROVIDERS)}.")
        try:
            clients[name] = PROVIDERS[name](model=model, timeout=timeout)
        except (ProviderError, ImportError) as e:
            logger.info("Provider %s unavailable: %s", name, e)
            reasons.append(f"  {name}: {str(e).splitlines()[0]}")

    if not clients:
        raise ProviderError(
            "No provider available.\n" + "\n".join(reasons) + "\n\n"
            "Option 1 - Use Ollama (free, local): ollama serve && ollama pull mistral:7b\n"
            "Option 2 - Use Claude API: export ANTHROPIC_API_KEY='your-key-here'"
        )
    return clients


__all__ = [
    "LLMClient",
    "LLMResponse",
    "ProviderError",
    "ClaudeClient",
    "OllamaClient",
    "PROVIDERS",
    "SYSTEM_PROMPT",
    "create_clients",
    "validate_commit_message",
]
