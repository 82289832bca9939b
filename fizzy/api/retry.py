"""
Retry/backoff policy for the Fizzy API client.

The client's attempt loop is a thin driver around ``classify``: after each
attempt it hands over either the response or the transport exception and
gets back one of three decisions:

- ``Succeed``: the response is 2xx (or 304) and should be decoded.
- ``Retry``: the failure is retryable and budget remains; sleep ``delay_s``.
- ``Fail``: raise ``error``; the failure is permanent or the budget is spent.

Attempts are numbered from 0, so a policy with ``max_retries=3`` allows
four tries in total. ``classify`` has no side effects, which keeps the
policy testable without a network or a clock.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, Union

import httpx

from fizzy.api.errors import ApiError, error_from_response, network_error, parse_retry_after, read_error_body

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_S = 1.0
DEFAULT_MAX_DELAY_S = 32.0
DEFAULT_BACKOFF_FACTOR = 2.0
JITTER_RATIO = 0.1

_NEVER_RETRY = frozenset({401, 403, 404, 422})


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay_s: float = DEFAULT_INITIAL_DELAY_S
    max_delay_s: float = DEFAULT_MAX_DELAY_S
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay_s < 0 or self.max_delay_s < 0:
            raise ValueError("retry delays must be >= 0")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass(frozen=True)
class Succeed:
    response: httpx.Response


@dataclass(frozen=True)
class Retry:
    delay_s: float
    reason: str


@dataclass(frozen=True)
class Fail:
    error: ApiError


Decision = Union[Succeed, Retry, Fail]


def is_retryable_status(status: int) -> bool:
    if status in _NEVER_RETRY:
        return False
    return status == 429 or 500 <= status <= 599


def compute_delay(
    policy: RetryPolicy,
    attempt: int,
    retry_after: int | None = None,
    rng: Callable[[], float] = random.random,
) -> float:
    # Retry-After wins over backoff math and is not capped.
    if retry_after is not None:
        return float(retry_after)
    exponential = policy.initial_delay_s * (policy.backoff_factor ** attempt)
    jitter = rng() * exponential * JITTER_RATIO
    return min(exponential + jitter, policy.max_delay_s)


def _retry_reason(status: int) -> str:
    return "rate_limited" if status == 429 else "server_error"


def classify(
    outcome: httpx.Response | httpx.RequestError,
    attempt: int,
    policy: RetryPolicy,
    rng: Callable[[], float] = random.random,
) -> Decision:
    """Decide what the attempt loop does next for ``outcome``."""
    has_budget = attempt < policy.max_retries

    if isinstance(outcome, httpx.RequestError):
        if has_budget:
            return Retry(compute_delay(policy, attempt, rng=rng), "network_error")
        return Fail(network_error(outcome))

    status = outcome.status_code
    if status < 300 or status == 304:
        return Succeed(outcome)

    if is_retryable_status(status) and has_budget:
        retry_after = parse_retry_after(outcome.headers)
        return Retry(compute_delay(policy, attempt, retry_after, rng), _retry_reason(status))

    return Fail(
        error_from_response(
            status,
            outcome.reason_phrase,
            read_error_body(outcome),
            outcome.headers,
        )
    )
