"""Connect wrapper that retries failed connects with exponential backoff.

The wrapped callable keeps the signature and the failure signalling of the
original: a connect fails either by raising one of ``retry_on`` or by
returning ``None``. Any other value, falsy or not, is a handle. After the
last attempt the caller gets exactly what the final attempt produced, so
retries are invisible to it.
"""

from __future__ import annotations

import functools
import inspect
import logging
import random
from typing import Any, Callable, Optional, Tuple, Type

from retryconnect.domain.backoff import BackoffState
from retryconnect.domain.models.call_context import CallContext
from retryconnect.infrastructure.registry import ProviderRegistry

logger = logging.getLogger(__name__)


def wrap_connect(
    connect: Callable[..., Any],
    registry: ProviderRegistry,
    target: str,
    *,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    describe_error: Optional[Callable[..., str]] = None,
    sleep: Optional[Callable[[float], Any]] = None,
    rng: Optional[random.Random] = None,
) -> Callable[..., Any]:
    """Wrap a connect callable with retry

    Args:
        connect: Connect function or coroutine function
        registry: Registry holding the provider chain for target
        target: Target class name used to look up providers
        retry_on: Exception types treated as connect failures
        describe_error: Called with the connect arguments to describe a None return
        sleep: Sleep function (injectable for testing); awaited for coroutine connects
        rng: Random source for jitter (injectable for testing)

    Returns:
        Callable with the same signature and return contract as connect
    """

    def _describe(exc: Optional[BaseException], args: tuple, kwargs: dict) -> str:
        if exc is not None:
            return str(exc) or type(exc).__name__
        if describe_error is not None:
            return describe_error(*args, **kwargs)
        return "connect returned no handle"

    def _new_state(args: tuple, kwargs: dict) -> Optional[BackoffState]:
        config = registry.resolve(target, *args, **kwargs)
        if config is None:
            logger.debug(f"No retry config matched for {target}, returning failure")
            return None
        return BackoffState(
            config,
            CallContext(target, args, dict(kwargs)),
            default_verbose=registry.verbose,
            rng=rng,
            sleep=sleep,
            async_sleep=sleep,
        )

    if inspect.iscoroutinefunction(connect):

        @functools.wraps(connect)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            state: Optional[BackoffState] = None
            while True:
                try:
                    handle = await connect(*args, **kwargs)
                except retry_on as exc:
                    error: Optional[BaseException] = exc
                    handle = None
                else:
                    if handle is not None:
                        return handle
                    error = None

                if state is None:
                    state = _new_state(args, kwargs)
                if state is None or not await state.pause_async(_describe(error, args, kwargs)):
                    if error is not None:
                        raise error
                    return handle

        return async_wrapper

    @functools.wraps(connect)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        state: Optional[BackoffState] = None
        while True:
            try:
                handle = connect(*args, **kwargs)
            except retry_on as exc:
                error: Optional[BaseException] = exc
                handle = None
            else:
                if handle is not None:
                    return handle
                error = None

            if state is None:
                state = _new_state(args, kwargs)
            if state is None or not state.pause(_describe(error, args, kwargs)):
                if error is not None:
                    raise error
                return handle

    return wrapper

