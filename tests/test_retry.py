import httpx
import pytest

from fizzy.api.errors import ApiError, AuthenticationError, NotFoundError, RateLimitError, ValidationError
from fizzy.api.retry import (
    Fail,
    Retry,
    RetryPolicy,
    Succeed,
    classify,
    compute_delay,
    is_retryable_status,
)


def no_jitter() -> float:
    return 0.0


def full_jitter() -> float:
    return 0.999


def test_retryable_statuses() -> None:
    assert is_retryable_status(429)
    assert is_retryable_status(500)
    assert is_retryable_status(599)
    for status in (400, 401, 403, 404, 409, 422):
        assert not is_retryable_status(status)


def test_compute_delay_exponential_growth() -> None:
    policy = RetryPolicy(initial_delay_s=0.05, backoff_factor=2)

    delays = [compute_delay(policy, attempt, rng=no_jitter) for attempt in range(3)]

    assert delays == pytest.approx([0.05, 0.1, 0.2])


def test_compute_delay_jitter_only_adds() -> None:
    policy = RetryPolicy(initial_delay_s=1.0, backoff_factor=2)

    for attempt in range(4):
        base = 1.0 * 2**attempt
        delay = compute_delay(policy, attempt, rng=full_jitter)
        assert base <= delay <= base * 1.1


def test_compute_delay_never_exceeds_cap() -> None:
    policy = RetryPolicy(initial_delay_s=1.0, max_delay_s=5.0, backoff_factor=3)

    for attempt in range(10):
        assert compute_delay(policy, attempt, rng=full_jitter) <= 5.0 * 1.1


def test_retry_after_overrides_backoff_and_cap() -> None:
    policy = RetryPolicy(initial_delay_s=0.01, max_delay_s=2.0)

    assert compute_delay(policy, 0, retry_after=1, rng=full_jitter) == 1.0
    assert compute_delay(policy, 0, retry_after=60, rng=full_jitter) == 60.0


def test_policy_rejects_invalid_values() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=-1)
    with pytest.raises(ValueError):
        RetryPolicy(backoff_factor=0.5)


def test_classify_success_and_not_modified() -> None:
    policy = RetryPolicy()

    for status in (200, 201, 204, 304):
        decision = classify(httpx.Response(status), 0, policy, no_jitter)
        assert isinstance(decision, Succeed)
        assert decision.response.status_code == status


def test_classify_retry_while_budget_remains() -> None:
    policy = RetryPolicy(max_retries=2, initial_delay_s=1.0)

    decision = classify(httpx.Response(503), 1, policy, no_jitter)

    assert decision == Retry(delay_s=2.0, reason="server_error")


def test_classify_rate_limit_uses_retry_after() -> None:
    policy = RetryPolicy(max_retries=2)

    decision = classify(httpx.Response(429, headers={"Retry-After": "3"}), 0, policy, no_jitter)

    assert decision == Retry(delay_s=3.0, reason="rate_limited")


def test_classify_fails_when_budget_spent() -> None:
    policy = RetryPolicy(max_retries=2)

    decision = classify(httpx.Response(429, headers={"Retry-After": "3"}), 2, policy, no_jitter)

    assert isinstance(decision, Fail)
    assert isinstance(decision.error, RateLimitError)
    assert decision.error.retry_after == 3


def test_classify_terminal_statuses_fail_on_first_attempt() -> None:
    policy = RetryPolicy(max_retries=5)

    not_found = classify(httpx.Response(404), 0, policy, no_jitter)
    unauthorized = classify(httpx.Response(401), 0, policy, no_jitter)

    assert isinstance(not_found, Fail) and isinstance(not_found.error, NotFoundError)
    assert isinstance(unauthorized, Fail) and isinstance(unauthorized.error, AuthenticationError)


def test_classify_network_errors() -> None:
    policy = RetryPolicy(max_retries=1, initial_delay_s=0.5)
    request = httpx.Request("GET", "https://app.fizzy.do/acme/boards")
    exc = httpx.ConnectError("refused", request=request)

    first = classify(exc, 0, policy, no_jitter)
    last = classify(exc, 1, policy, no_jitter)

    assert first == Retry(delay_s=0.5, reason="network_error")
    assert isinstance(last, Fail)
    assert type(last.error) is ApiError
    assert last.error.status is None


def test_classification_is_stable_across_calls() -> None:
    policy = RetryPolicy(max_retries=0)

    first = classify(httpx.Response(422), 0, policy, no_jitter)
    second = classify(httpx.Response(422), 0, policy, no_jitter)

    assert isinstance(first, Fail) and isinstance(second, Fail)
    assert type(first.error) is type(second.error) is ValidationError
    assert first.error.message == second.error.message
