"""Commit Dispatcher - cache lookup, provider selection and guarded calls.

    cache hit?  -> return cached messages, no provider is called
    select      -> rank providers by composite score
    call        -> selected provider through its circuit breaker, then the
                   alternatives, then any remaining candidate
    store       -> cache the messages, record every outcome in the history
"""

import asyncio
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from aicommit import COMMIT_TYPE_NAMES
from aicommit.config import Config, ConfigurationError
from aicommit.core.cache_manager import CacheManager
from aicommit.core.circuit_breaker import BreakerRegistry, CircuitMetrics, CircuitOpenError
from aicommit.core.history import InteractionLog
from aicommit.core.provider_performance import ProviderPerformanceManager, SelectionContext
from aicommit.llm.base import LLMClient, ProviderError

logger = logging.getLogger(__name__)

TYPES_PATTERN = '|'.join(COMMIT_TYPE_NAMES)
_OPTION_RE = re.compile(r'\[Option \d+\]\s*')
_SUBJECT_SPLIT_RE = re.compile(rf'\n(?=\[?(?:{TYPES_PATTERN})[\(!:])')
_JUNK_RE = re.compile(r'^(diff --git |@@\s|[+-]{3}\s[ab]/|index [0-9a-f]|```)')

HISTORY_MAX_RECORDS = 5000


def clean_commit_message(text: str) -> str:
    """Cut provider chatter around a commit message.

    Drops preamble before the first conventional subject and anything from
    the first diff/code-fence line on.
    """
    lines = text.strip().split('\n')
    start = 0
    for i, line in enumerate(lines):
        if re.match(rf'^[`\s]*({TYPES_PATTERN})[\(!:]', line):
            start = i
            break

    end = len(lines)
    for i in range(start + 1, len(lines)):
        if _JUNK_RE.match(lines[i]):
            end = i
            break

    lines = '\n'.join(lines[start:end]).rstrip().split('\n')
    lines[0] = lines[0].strip('`').strip()
    return '\n'.join(lines)


def split_messages(text: str) -> list[str]:
    """Split a (possibly multi-option) response into clean messages."""
    parts = [p.strip() for p in _OPTION_RE.split(text) if p.strip()]
    if len(parts) <= 1:
        parts = [p.strip() for p in _SUBJECT_SPLIT_RE.split(text.strip()) if p.strip()]

    messages = []
    for part in parts:
        message = clean_commit_message(part)
        message = re.sub(rf'^\[({TYPES_PATTERN})', r'\1', message)
        if message:
            messages.append(message)
    return messages or ([clean_commit_message(text)] if text.strip() else [])


@dataclass
class DispatchResult:
    messages: list[str]
    provider: str | None
    from_cache: bool = False
    confidence: float | None = None
    reasoning: str = ""
    tokens_used: int = 0
    failures: dict[str, str] = field(default_factory=dict)


class CommitDispatcher:
    """Serves commit messages from the cache or the best live provider."""

    def __init__(
        self,
        clients: dict[str, LLMClient],
        cache: CacheManager | None,
        selector: ProviderPerformanceManager,
        registry: BreakerRegistry,
        history: InteractionLog | None = None,
        config: Config | None = None,
        metrics: CircuitMetrics | None = None,
    ):
        if not clients:
            raise ProviderError("No provider clients configured")
        unknown = [name for name in clients if name not in selector.providers]
        if unknown:
            raise ConfigurationError(f"Selector does not know providers: {', '.join(map(str, unknown))}")
        self.clients = clients
        self.cache = cache
        self.selector = selector
        self.registry = registry
        self.history = history
        self.config = config or Config()
        self.metrics = metrics
        # not the loop's default executor: asyncio.run joins that one on
        # exit, which would wait out every timed-out call
        self._executor = ThreadPoolExecutor(max_workers=max(4, len(clients)), thread_name_prefix="aicommit-provider")

    def close(self) -> None:
        """Release provider threads without waiting for abandoned calls."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    async def generate(
        self,
        diff: str,
        prompt: str,
        files: list[str] | None = None,
        context: SelectionContext | None = None,
        use_cache: bool = True,
    ) -> DispatchResult:
        use_cache = use_cache and self.cache is not None

        if use_cache:
            cached = await self.cache.get(diff, files)
            if cached is None and self.config.similarity_lookup:
                cached = await self.cache.find_similar(diff)
            if cached:
                logger.info("Cache hit, skipping providers")
                return DispatchResult(messages=cached, provider=None, from_cache=True)

        selection = await self.selector.select_best_provider(diff, context, candidates=list(self.clients))
        order = [selection.provider, *selection.alternatives]
        order += [name for name in self.clients if name not in order]

        failures: dict[str, str] = {}
        for name in order:
            try:
                response = await self._call(name, self.clients[name], prompt)
            except (ProviderError, TimeoutError) as e:
                logger.warning("Provider %s failed: %s", name, e)
                failures[name] = str(e)
                continue

            messages = split_messages(response.content)
            if not messages:
                failures[name] = "empty response"
                continue

            if use_cache:
                await self.cache.set(diff, messages, files)
            return DispatchResult(
                messages=messages,
                provider=name,
                confidence=selection.confidence if name == selection.provider else None,
                reasoning=selection.reasoning if name == selection.provider else f"fallback after {', '.join(failures)}",
                tokens_used=response.tokens_used,
                failures=failures,
            )

        details = "\n".join(f"  {name}: {reason}" for name, reason in failures.items())
        raise ProviderError(f"All providers failed:\n{details}")

    async def run(self, diff: str, prompt: str, files: list[str] | None = None,
                  context: SelectionContext | None = None, use_cache: bool = True) -> DispatchResult:
        """One session: adapt weights to recorded history, generate, then
        bound the history file."""
        await self.selector.update_provider_weights()
        try:
            return await self.generate(diff, prompt, files, context, use_cache)
        finally:
            if self.history is not None:
                await self.history.prune(HISTORY_MAX_RECORDS)

    async def _call(self, name: str, client: LLMClient, prompt: str):
        breaker = self.registry.get(name)
        loop = asyncio.get_running_loop()
        started = time.monotonic()
        try:
            response = await breaker.execute(lambda: loop.run_in_executor(self._executor, client.generate, prompt))
        except CircuitOpenError:
            # the provider was never called, so there is nothing to record
            raise
        except (ProviderError, TimeoutError):
            await self._record(name, False, time.monotonic() - started, "")
            raise
        except Exception as e:
            await self._record(name, False, time.monotonic() - started, "")
            raise ProviderError(f"{name} failed: {e}") from e
        await self._record(name, True, time.monotonic() - started, response.content)
        return response

    async def _record(self, name: str, success: bool, elapsed: float, text: str) -> None:
        if self.history is not None:
            await self.history.record(name, success, elapsed, text)
