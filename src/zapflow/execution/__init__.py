"""zapflow execution -- resilience layer, action dispatch and the outbox worker.

Architecture::

    rate_limit.py        Sliding windows + ApiRateLimiter (requests + quota)
    circuit_breaker.py   CLOSED / OPEN / HALF_OPEN breaker
    retry.py             ExponentialBackoff + RetryContext
    classify.py          Raw failure → ClassifiedError
    resilience.py        ResilientClient / ResiliencePool
    actions.py           ActionRegistry, handlers, placeholder rendering
    filters.py           Workflow filter conditions
    outbox.py            RunCreator (Run + OutboxEntry in one transaction)
    executor.py          ActionExecutor + OutboxWorker
"""

from zapflow.execution.actions import ActionRegistry, default_registry
from zapflow.execution.circuit_breaker import CircuitBreaker, CircuitState
from zapflow.execution.classify import classify_error
from zapflow.execution.executor import ActionExecutor, ExecutionReport, OutboxWorker
from zapflow.execution.outbox import RunCreator
from zapflow.execution.rate_limit import ApiRateLimiter, RateDecision
from zapflow.execution.resilience import ResiliencePool, ResilientClient
from zapflow.execution.retry import ExponentialBackoff

__all__ = [
    "ActionExecutor",
    "ActionRegistry",
    "ApiRateLimiter",
    "CircuitBreaker",
    "CircuitState",
    "ExecutionReport",
    "ExponentialBackoff",
    "OutboxWorker",
    "RateDecision",
    "ResiliencePool",
    "ResilientClient",
    "RunCreator",
    "classify_error",
    "default_registry",
]
