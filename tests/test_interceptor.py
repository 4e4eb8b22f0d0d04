"""Tests for the retrying connect wrapper"""

from __future__ import annotations

import asyncio
import inspect
from unittest.mock import Mock

import pytest

from retryconnect.domain.config import RetryConfig
from retryconnect.domain.models.call_context import CallContext
from retryconnect.infrastructure.interceptor import wrap_connect
from retryconnect.infrastructure.registry import ProviderRegistry, static_provider


class FixedRandom:
    def __init__(self, value: float = 0.0):
        self.value = value

    def random(self) -> float:
        return self.value


class FlakyConnect:
    """Connect primitive that fails a number of times before succeeding"""

    def __init__(self, failures: int, fail_with=None, handle="handle"):
        self.failures = failures
        self.fail_with = fail_with
        self.handle = handle
        self.calls = []

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        if len(self.calls) <= self.failures:
            if self.fail_with is not None:
                raise self.fail_with
            return None
        return self.handle


class EmptyHandle:
    """Connected handle whose truth value is False, like an empty pool"""

    def __len__(self) -> int:
        return 0


def _registry(config: RetryConfig | None = None) -> ProviderRegistry:
    registry = ProviderRegistry(verbose=0)
    registry.register("pg", static_provider(config or RetryConfig(total_delay=30)))
    return registry


class TestSuccessPath:
    """Tests for connects that succeed at once"""

    def test_no_state_created_on_success(self):
        provider = Mock(return_value=RetryConfig())
        registry = ProviderRegistry(verbose=0)
        registry.register("pg", provider)
        sleeps = []
        connect = FlakyConnect(failures=0)

        wrapped = wrap_connect(connect, registry, "pg", sleep=sleeps.append)

        assert wrapped("dbname=test") == "handle"
        provider.assert_not_called()
        assert sleeps == []

    @pytest.mark.parametrize("handle", [0, "", [], EmptyHandle()])
    def test_falsy_handle_is_success(self, handle):
        """Test only None counts as a failed connect"""
        provider = Mock(return_value=RetryConfig(total_delay=30))
        registry = ProviderRegistry(verbose=0)
        registry.register("pg", provider)
        sleeps = []
        connect = Mock(return_value=handle)
        wrapped = wrap_connect(connect, registry, "pg", sleep=sleeps.append)

        assert wrapped("dbname=test") is handle
        assert connect.call_count == 1
        provider.assert_not_called()
        assert sleeps == []

    def test_signature_metadata_preserved(self):
        def connect_db(dsn, user=None):
            """Open a database connection"""
            return object()

        wrapped = wrap_connect(connect_db, _registry(), "pg")
        assert wrapped.__name__ == "connect_db"
        assert wrapped.__doc__ == "Open a database connection"
        assert wrapped.__wrapped__ is connect_db


class TestRetries:
    """Tests for connects that fail before succeeding"""

    def test_fails_twice_then_succeeds_with_exceptions(self):
        sleeps = []
        connect = FlakyConnect(failures=2, fail_with=ConnectionRefusedError("refused"))
        wrapped = wrap_connect(connect, _registry(), "pg", sleep=sleeps.append, rng=FixedRandom())

        assert wrapped("dbname=test", password="x") == "handle"
        assert len(connect.calls) == 3
        assert len(sleeps) == 2
        assert all(call == (("dbname=test",), {"password": "x"}) for call in connect.calls)

    def test_fails_twice_then_succeeds_with_none_return(self):
        sleeps = []
        connect = FlakyConnect(failures=2)
        wrapped = wrap_connect(connect, _registry(), "pg", sleep=sleeps.append)

        assert wrapped("dbname=test") == "handle"
        assert len(sleeps) == 2

    def test_provider_consulted_once_per_invocation(self):
        provider = Mock(return_value=RetryConfig(total_delay=30))
        registry = ProviderRegistry(verbose=0)
        registry.register("pg", provider)
        wrapped = wrap_connect(FlakyConnect(failures=4), registry, "pg", sleep=lambda _: None)

        wrapped("dbname=test")

        provider.assert_called_once_with("dbname=test")

    def test_invocations_are_independent(self):
        provider = Mock(return_value=RetryConfig(total_delay=30))
        registry = ProviderRegistry(verbose=0)
        registry.register("pg", provider)
        connect = Mock(side_effect=[None, "first", None, "second"])
        wrapped = wrap_connect(connect, registry, "pg", sleep=lambda _: None)

        assert wrapped("a") == "first"
        assert wrapped("b") == "second"
        assert provider.call_count == 2

    def test_delays_follow_backoff_schedule(self):
        sleeps = []
        config = RetryConfig(total_delay=100, start_delay=1, backoff_factor=2, max_delay=50)
        wrapped = wrap_connect(
            FlakyConnect(failures=3), _registry(config), "pg", sleep=sleeps.append, rng=FixedRandom()
        )

        wrapped("dbname=test")

        assert sleeps == pytest.approx([0.5, 1.0, 2.0])


class TestFinalFailure:
    """Tests for connects that never succeed"""

    def test_last_exception_reraised_unchanged(self):
        errors = [ConnectionRefusedError(f"refused {i}") for i in range(10)]
        connect = Mock(side_effect=errors)
        config = RetryConfig(total_delay=1, start_delay=1, backoff_factor=3, max_delay=1)
        wrapped = wrap_connect(connect, _registry(config), "pg", sleep=lambda _: None, rng=FixedRandom())

        with pytest.raises(ConnectionRefusedError) as exc_info:
            wrapped("dbname=test")

        # two pauses, so three attempts
        assert connect.call_count == 3
        assert exc_info.value is errors[2]

    def test_budget_allows_at_most_two_pauses(self):
        sleeps = []
        config = RetryConfig(total_delay=1, start_delay=1, backoff_factor=3, max_delay=1)
        wrapped = wrap_connect(
            FlakyConnect(failures=100),
            _registry(config),
            "pg",
            sleep=sleeps.append,
            rng=FixedRandom(0.999999),
        )

        assert wrapped("dbname=test") is None
        assert 1 <= len(sleeps) <= 2

    def test_none_returned_after_exhaustion(self):
        connect = Mock(return_value=None)
        wrapped = wrap_connect(connect, _registry(RetryConfig(total_delay=0)), "pg")

        assert wrapped("dbname=test") is None
        assert connect.call_count == 1

    def test_zero_total_delay_disables_retry(self):
        sleeps = []
        connect = FlakyConnect(failures=1, fail_with=OSError("down"))
        wrapped = wrap_connect(connect, _registry(RetryConfig(total_delay=0)), "pg", sleep=sleeps.append)

        with pytest.raises(OSError, match="down"):
            wrapped("dbname=test")
        assert len(connect.calls) == 1
        assert sleeps == []

    def test_describe_error_used_for_none_failures(self):
        describe = Mock(return_value="FATAL: database is starting up")
        config = RetryConfig(total_delay=0.5, start_delay=1)
        wrapped = wrap_connect(
            FlakyConnect(failures=100), _registry(config), "pg", describe_error=describe, sleep=lambda _: None
        )

        wrapped("dbname=test", user="app")

        describe.assert_called_with("dbname=test", user="app")


class TestNoRetry:
    """Tests for calls retry does not apply to"""

    def test_no_providers_leaves_connect_untouched(self):
        error = ConnectionRefusedError("refused")
        connect = Mock(side_effect=error)
        wrapped = wrap_connect(connect, ProviderRegistry(verbose=0), "pg")

        with pytest.raises(ConnectionRefusedError) as exc_info:
            wrapped("dbname=test")

        assert connect.call_count == 1
        assert exc_info.value is error

    def test_no_providers_returns_none_result(self):
        connect = Mock(return_value=None)
        wrapped = wrap_connect(connect, ProviderRegistry(verbose=0), "pg")

        assert wrapped("dbname=test") is None
        assert connect.call_count == 1

    def test_provider_declines(self):
        registry = ProviderRegistry(verbose=0)
        registry.register("pg", lambda dsn: None)
        connect = Mock(return_value=None)
        sleeps = []

        assert wrap_connect(connect, registry, "pg", sleep=sleeps.append)("dbname=test") is None
        assert connect.call_count == 1
        assert sleeps == []

    def test_unlisted_exceptions_propagate(self):
        connect = Mock(side_effect=ValueError("bad dsn"))
        wrapped = wrap_connect(connect, _registry(), "pg", retry_on=(OSError,))

        with pytest.raises(ValueError, match="bad dsn"):
            wrapped("dbname=test")
        assert connect.call_count == 1


class TestRegistryDecorator:
    def test_wrap_decorator(self):
        registry = _registry()
        sleeps = []
        attempts = []

        @registry.wrap("pg", sleep=sleeps.append)
        def connect(dsn):
            attempts.append(dsn)
            return "handle" if len(attempts) > 1 else None

        assert connect("dbname=test") == "handle"
        assert len(sleeps) == 1


class TestAsync:
    """Tests for coroutine connects"""

    def test_async_retries_then_succeeds(self):
        sleeps = []
        attempts = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        async def connect(host, port):
            attempts.append((host, port))
            if len(attempts) < 3:
                raise ConnectionRefusedError("refused")
            return "stream"

        wrapped = wrap_connect(connect, _registry(), "pg", sleep=fake_sleep)

        assert inspect.iscoroutinefunction(wrapped)
        assert asyncio.run(wrapped("localhost", 5432)) == "stream"
        assert len(sleeps) == 2

    def test_async_exhaustion_reraises(self):
        async def connect(host):
            raise ConnectionRefusedError(host)

        async def fake_sleep(delay):
            pass

        wrapped = wrap_connect(connect, _registry(RetryConfig(total_delay=0)), "pg", sleep=fake_sleep)

        with pytest.raises(ConnectionRefusedError, match="db.internal"):
            asyncio.run(wrapped("db.internal"))


class TestCallContext:
    """Tests for the logged call identity"""

    def test_str_uses_target_and_endpoint(self):
        assert str(CallContext("pg", ("dbname=test", "app", "hunter2"))) == "pg:dbname=test"

    def test_endpoint_from_keywords(self):
        assert str(CallContext("pg", (), {"host": "db", "password": "x"})) == "pg:db"

    def test_target_only(self):
        assert str(CallContext("pg")) == "pg"

    def test_credentials_masked(self):
        context = CallContext("pg", (), {"user": "app", "password": "hunter2", "auth_token": "t"})
        assert context.safe_kwargs() == {"user": "app", "password": "***", "auth_token": "***"}
