"""Provider Performance Manager - adaptive, score-based provider selection.

For every cache miss each candidate provider gets a composite score from
its recent history and live circuit state:

    base  = speed * w.speed + reliability * w.reliability + quality * w.quality
    score = base * (1 + context/100 * 0.2) * (1 + cost/100 * 0.1), clamped to [0, 100]

Every component is on a 0-100 scale. The highest score wins; ties go to
the provider listed first. The constants live in ScoringPolicy and are
tuning knobs, not correctness requirements.
"""

import logging
import math
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Protocol

from aicommit import COMMIT_TYPE_NAMES
from aicommit.config import ConfigurationError
from aicommit.core.circuit_breaker import BreakerRegistry, CircuitPhase
from aicommit.core.history import InteractionRecord

logger = logging.getLogger(__name__)

_CONVENTIONAL_RE = re.compile(rf'^({"|".join(COMMIT_TYPE_NAMES)})(\(.+\))?!?:')
_GENERIC_RE = re.compile(r'^(update|add|fix|remove)\s+\w+$', re.IGNORECASE)


class InteractionHistory(Protocol):
    async def recent(self, provider: str, limit: int = 50) -> list[InteractionRecord]:
        ...


@dataclass
class ProviderWeights:
    speed: float
    reliability: float
    quality: float

    @property
    def total(self) -> float:
        return self.speed + self.reliability + self.quality

    def normalized(self, floor: float = 0.0) -> 'ProviderWeights':
        speed = max(floor, self.speed)
        reliability = max(floor, self.reliability)
        quality = max(floor, self.quality)
        total = speed + reliability + quality
        return ProviderWeights(speed / total, reliability / total, quality / total)


@dataclass
class ProviderMetrics:
    provider: str
    success_rate: float
    average_response_time: float
    average_message_quality: float
    circuit_phase: CircuitPhase = CircuitPhase.CLOSED
    total_requests: int = 0
    successful_requests: int = 0
    last_used: Optional[datetime] = None


@dataclass
class SelectionContext:
    """What is known about the change beyond its size."""
    has_semantic_context: bool = False
    primary_language: Optional[str] = None
    code_ratio: float = 0.0
    has_complex_logic: bool = False
    is_simple_change: bool = False
    time_sensitive: bool = False


@dataclass
class ProviderSelection:
    provider: str
    confidence: float
    alternatives: list[str]
    metrics: ProviderMetrics
    reasoning: str
    scores: dict[str, float] = field(default_factory=dict)


@dataclass
class ScoringPolicy:
    """Heuristic scoring constants. Times are in seconds."""
    history_limit: int = 50
    # (upper token bound, expected response time); the last bucket is open-ended
    expected_times: tuple = ((1000, 5.0), (3000, 15.0), (6000, 30.0), (None, 60.0))
    # (max ratio of actual/expected time, speed score)
    speed_steps: tuple = ((0.5, 100), (0.8, 90), (1.0, 80), (1.5, 60), (2.0, 40))
    slowest_speed_score: float = 20
    open_circuit_penalty: float = 0.3
    default_quality: float = 75
    semantic_context_bonus: float = 5
    language_bonus: dict = field(default_factory=lambda: {
        'javascript': 5, 'typescript': 5, 'python': 3, 'php': 2, 'java': 1,
    })
    cost_factors: dict = field(default_factory=lambda: {'ollama': 0.1, 'claude': 0.8})
    context_weight: float = 0.2
    cost_weight: float = 0.1
    # context and cost scores are 0-100; 1 applies them unscaled
    modifier_scale: float = 100
    weight_step: float = 0.05
    weight_floor: float = 0.01
    default_weights: dict = field(default_factory=lambda: {
        'ollama': (0.3, 0.4, 0.3),
        'claude': (0.4, 0.3, 0.3),
    })
    fallback_weights: tuple = (1 / 3, 1 / 3, 1 / 3)


# Assumed performance for providers without history: (success %, seconds, quality)
DEFAULT_METRICS = {
    'ollama': (85, 20.0, 80),
    'claude': (90, 8.0, 75),
}


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def message_quality(response: str) -> float:
    """Heuristic 0-100 quality of one generated message."""
    quality = 75
    first_line = response.strip().split('\n')[0] if response.strip() else ''
    if _CONVENTIONAL_RE.match(first_line):
        quality += 10
    if 20 < len(response) < 100:
        quality += 5
    if len(response) < 15 or _GENERIC_RE.match(first_line):
        quality -= 15
    return max(0, min(100, quality))


class ProviderPerformanceManager:
    """Scores and ranks candidate providers for each request."""

    def __init__(
        self,
        providers: list[str],
        history: InteractionHistory | None = None,
        registry: BreakerRegistry | None = None,
        weights: dict[str, ProviderWeights] | None = None,
        policy: ScoringPolicy | None = None,
    ):
        if not providers:
            raise ConfigurationError("At least one provider is required")
        self.providers = list(dict.fromkeys(providers))
        self.history = history
        self.registry = registry
        self.policy = policy or ScoringPolicy()

        self._weights: dict[str, ProviderWeights] = {}
        for provider in self.providers:
            if weights and provider in weights:
                self._weights[provider] = weights[provider].normalized()
            else:
                defaults = self.policy.default_weights.get(provider, self.policy.fallback_weights)
                self._weights[provider] = ProviderWeights(*defaults)

    def weights(self, provider: str) -> ProviderWeights:
        return replace(self._weights[provider])

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def select_best_provider(self, diff: str, context: SelectionContext | None = None,
                                   candidates: list[str] | None = None) -> ProviderSelection:
        """Pick the provider that should serve this diff.

        Never raises: metrics failures fall back to defaults and a candidate
        that cannot be scored gets zero. ``candidates`` narrows the
        configured providers, keeping their order.
        """
        context = context or SelectionContext()
        pool = [p for p in self.providers if candidates is None or p in candidates] or list(self.providers)
        diff_size = estimate_tokens(diff or '')

        ranked = []
        for provider in pool:
            metrics = await self.get_provider_metrics(provider)
            try:
                score = self.calculate_provider_score(provider, metrics, diff_size, context)
            except Exception:
                logger.exception("Scoring failed for %s, ranking it last", provider)
                score = 0.0
            ranked.append((provider, score, metrics))

        # stable sort keeps listing order among equal scores
        ranked.sort(key=lambda item: -item[1])
        provider, score, metrics = ranked[0]
        reasoning = self.score_reasoning(provider, metrics, diff_size)

        logger.info("Selected provider %s (score %.2f): %s", provider, score, reasoning)
        return ProviderSelection(
            provider=provider,
            confidence=round(score, 2),
            alternatives=[p for p, _, _ in ranked[1:2]],
            metrics=metrics,
            reasoning=reasoning,
            scores={p: round(s, 2) for p, s, _ in ranked},
        )

    def calculate_provider_score(self, provider: str, metrics: ProviderMetrics,
                                 diff_size: int, context: SelectionContext) -> float:
        weights = self._weights.get(provider) or ProviderWeights(*self.policy.fallback_weights)
        base = (
            self.speed_score(metrics.average_response_time, diff_size) * weights.speed
            + self.reliability_score(metrics.success_rate, metrics.circuit_phase) * weights.reliability
            + self.quality_score(metrics.average_message_quality, context) * weights.quality
        )
        scale = self.policy.modifier_scale
        score = (
            base
            * (1 + self.context_score(provider, diff_size, context) / scale * self.policy.context_weight)
            * (1 + self.cost_score(provider) / scale * self.policy.cost_weight)
        )
        return min(100.0, max(0.0, score))

    def expected_time(self, diff_size: int) -> float:
        for bound, seconds in self.policy.expected_times:
            if bound is None or diff_size < bound:
                return seconds
        return self.policy.expected_times[-1][1]

    def speed_score(self, average_response_time: float, diff_size: int) -> float:
        ratio = average_response_time / self.expected_time(diff_size)
        for max_ratio, score in self.policy.speed_steps:
            if ratio <= max_ratio:
                return score
        return self.policy.slowest_speed_score

    def reliability_score(self, success_rate: float, phase: CircuitPhase) -> float:
        score = success_rate
        if phase is not CircuitPhase.CLOSED:
            score *= self.policy.open_circuit_penalty
        if success_rate >= 95:
            score = min(100, score + 10)
        if success_rate >= 98:
            score = min(100, score + 5)
        return score

    def quality_score(self, average_quality: float, context: SelectionContext) -> float:
        score = average_quality or self.policy.default_quality
        if context.has_semantic_context:
            score += self.policy.semantic_context_bonus
        if context.primary_language:
            score += self.policy.language_bonus.get(context.primary_language.lower(), 0)
        return min(100, max(0, score))

    def context_score(self, provider: str, diff_size: int, context: SelectionContext) -> float:
        score = 50
        if provider == 'ollama':
            # local model: no per-token cost, tolerant of big code-heavy diffs
            if context.code_ratio > 0.7:
                score += 20
            if context.has_complex_logic:
                score += 15
            if diff_size > 4000:
                score += 10
        elif provider == 'claude':
            # hosted model: lowest latency on small changes
            if diff_size < 2000:
                score += 20
            if context.is_simple_change:
                score += 15
            if context.time_sensitive:
                score += 10
        return min(100, score)

    def cost_score(self, provider: str) -> float:
        factor = self.policy.cost_factors.get(provider, 1.0)
        return max(0.0, (1 - factor) * 100)

    def score_reasoning(self, provider: str, metrics: ProviderMetrics, diff_size: int) -> str:
        reasons = []
        if metrics.average_response_time < 10:
            reasons.append('fast response times')
        if metrics.success_rate >= 90:
            reasons.append('high reliability')
        if metrics.average_message_quality >= 80:
            reasons.append('high quality outputs')
        if provider == 'ollama' and diff_size > 3000:
            reasons.append('better with large diffs')
        if provider == 'claude' and diff_size < 2000:
            reasons.append('faster for small changes')
        if metrics.circuit_phase is CircuitPhase.CLOSED:
            reasons.append('currently stable')
        return ', '.join(reasons) or 'balanced performance'

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def get_provider_metrics(self, provider: str) -> ProviderMetrics:
        """Metrics from recent history, or documented defaults."""
        try:
            phase = self.registry.phase(provider) if self.registry else CircuitPhase.CLOSED
        except Exception as e:
            logger.warning("Could not read circuit state for %s: %s", provider, e)
            phase = CircuitPhase.CLOSED

        try:
            records = await self.history.recent(provider, self.policy.history_limit) if self.history else []
            if not records:
                return self.default_metrics(provider, phase)

            successful = [r for r in records if r.success]
            return ProviderMetrics(
                provider=provider,
                success_rate=round(len(successful) / len(records) * 100),
                average_response_time=sum(r.response_time for r in records) / len(records),
                average_message_quality=self.average_quality(successful),
                circuit_phase=phase,
                total_requests=len(records),
                successful_requests=len(successful),
                last_used=datetime.fromtimestamp(max(r.timestamp for r in records)),
            )
        except Exception as e:
            logger.warning("Failed to get metrics for %s, using defaults: %s", provider, e)
            return self.default_metrics(provider, phase)

    def default_metrics(self, provider: str, phase: CircuitPhase = CircuitPhase.CLOSED) -> ProviderMetrics:
        success_rate, response_time, quality = DEFAULT_METRICS.get(provider, DEFAULT_METRICS['ollama'])
        return ProviderMetrics(
            provider=provider,
            success_rate=success_rate,
            average_response_time=response_time,
            average_message_quality=quality,
            circuit_phase=phase,
        )

    def average_quality(self, records: list[InteractionRecord]) -> float:
        if not records:
            return self.policy.default_quality
        return round(sum(message_quality(r.response) for r in records) / len(records))

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    async def update_provider_weights(self) -> None:
        """Nudge speed/reliability weights toward recent performance.

        Background feedback; selection never calls this.
        """
        step = self.policy.weight_step
        for provider in self.providers:
            metrics = await self.get_provider_metrics(provider)
            weights = self._weights[provider]

            if metrics.success_rate > 95:
                weights.reliability += step
            elif metrics.success_rate < 80:
                weights.reliability -= step

            if metrics.average_response_time < 10:
                weights.speed += step
            elif metrics.average_response_time > 30:
                weights.speed -= step

            self._weights[provider] = weights.normalized(floor=self.policy.weight_floor)
            logger.debug("Updated weights for %s: %s", provider, self._weights[provider])
