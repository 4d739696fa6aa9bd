"""Resilient multi-provider dispatch core"""

from aicommit.core.cache_manager import CacheEntry, CacheManager, CacheStats, changed_paths
from aicommit.core.circuit_breaker import (
    BreakerRegistry,
    CircuitBreaker,
    CircuitEvent,
    CircuitEventLogger,
    CircuitMetrics,
    CircuitObserver,
    CircuitOpenError,
    CircuitPhase,
    CircuitState,
)
from aicommit.core.dispatcher import CommitDispatcher, DispatchResult, clean_commit_message, split_messages
from aicommit.core.history import InteractionLog, InteractionRecord
from aicommit.core.provider_performance import (
    ProviderMetrics,
    ProviderPerformanceManager,
    ProviderSelection,
    ProviderWeights,
    ScoringPolicy,
    SelectionContext,
    estimate_tokens,
)

__all__ = [
    "BreakerRegistry",
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    "CircuitBreaker",
    "CircuitEvent",
    "CircuitEventLogger",
    "CircuitMetrics",
    "CircuitObserver",
    "CircuitOpenError",
    "CircuitPhase",
    "CircuitState",
    "CommitDispatcher",
    "DispatchResult",
    "InteractionLog",
    "InteractionRecord",
    "ProviderMetrics",
    "ProviderPerformanceManager",
    "ProviderSelection",
    "ProviderWeights",
    "ScoringPolicy",
    "SelectionContext",
    "changed_paths",
    "clean_commit_message",
    "estimate_tokens",
    "split_messages",
]
