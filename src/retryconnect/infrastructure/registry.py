"""Registry of retry configuration providers per target class"""

import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from retryconnect.domain.config import AppConfig, RetryConfig
from retryconnect.infrastructure.config.config_manager import (
    ConfigurationError,
    env_verbose,
    format_validation_error,
)

logger = logging.getLogger(__name__)

ProviderResult = Union[RetryConfig, Mapping[str, Any], None]
Provider = Callable[..., ProviderResult]


def default_provider(*args: Any, **kwargs: Any) -> RetryConfig:
    """Provider that enables retry with default settings for every call"""
    return RetryConfig()


def static_provider(config: RetryConfig) -> Provider:
    """Create a provider that always returns the same configuration"""

    def _provider(*args: Any, **kwargs: Any) -> RetryConfig:
        return config

    _provider.__name__ = f"static_provider({config!r})"
    return _provider


class ProviderRegistry:
    """Ordered provider chains, one per target class

    Providers registered for a target are consulted in registration order
    whenever a connect for that target fails; the first one returning a
    configuration decides how the call is retried. Registering again for the
    same target appends to its chain. Providers cannot be removed.
    """

    def __init__(self, verbose: Optional[int] = None):
        """Initialize registry

        Args:
            verbose: Process-wide verbosity (read from RETRYCONNECT_VERBOSE if None)
        """
        self.verbose = env_verbose() if verbose is None else verbose
        self._chains: Dict[str, Tuple[Provider, ...]] = {}
        self._lock = threading.Lock()

    def register(self, target: str, provider: Optional[Provider] = None) -> None:
        """Append a provider to the chain for a target class

        Args:
            target: Target class name (e.g. "tcp", "sqlite3")
            provider: Callable receiving the connect arguments (default_provider if None)

        Raises:
            ConfigurationError: If target is empty or provider is not callable
        """
        if not target:
            raise ConfigurationError("No target specified")
        if provider is None:
            provider = default_provider
        elif not callable(provider):
            raise ConfigurationError(
                f"Provider for {target} must be callable, not {provider!r}"
            )

        if self.verbose >= 1:
            name = getattr(provider, "__name__", repr(provider))
            logger.info(f"Installing {name} config for {target}")

        with self._lock:
            self._chains[target] = self._chains.get(target, ()) + (provider,)

    def register_many(self, providers: Mapping[str, Optional[Provider]]) -> None:
        """Register one provider for each target in the mapping"""
        if not providers:
            raise ConfigurationError("No targets specified")
        for target, provider in providers.items():
            self.register(target, provider)

    def register_config(self, app_config: AppConfig) -> None:
        """Register a static provider for every target section of a loaded config"""
        for target, config in app_config.targets.items():
            self.register(target, static_provider(config))

    def providers(self, target: str) -> Tuple[Provider, ...]:
        """Get the provider chain for a target (empty if none registered)"""
        return self._chains.get(target, ())

    def targets(self) -> Tuple[str, ...]:
        """Get all target classes with at least one provider"""
        return tuple(self._chains)

    def resolve(self, target: str, *args: Any, **kwargs: Any) -> Optional[RetryConfig]:
        """Pick the retry configuration for a failed connect

        Args:
            target: Target class of the connect
            *args, **kwargs: Exact arguments of the failed connect call

        Returns:
            Configuration from the first provider that returns one, or None

        Raises:
            ConfigurationError: If a provider returns something that is not a valid configuration
        """
        for provider in self.providers(target):
            result = provider(*args, **kwargs)
            if result is None:
                continue
            return self._coerce(target, result)
        return None

    def _coerce(self, target: str, result: Any) -> RetryConfig:
        if isinstance(result, RetryConfig):
            return result
        if isinstance(result, Mapping):
            try:
                return RetryConfig(**result)
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid retry configuration for {target}:\n" + format_validation_error(e)
                ) from e
        raise ConfigurationError(
            f"Provider for {target} returned {type(result).__name__}, expected a mapping or RetryConfig"
        )

    def wrap(self, target: str, **options: Any) -> Callable[[Callable], Callable]:
        """Decorator form of wrap_connect bound to this registry

        Args:
            target: Target class of the decorated connect
            **options: Passed to wrap_connect (retry_on, describe_error, sleep, rng)
        """
        from retryconnect.infrastructure.interceptor import wrap_connect

        def decorator(connect: Callable) -> Callable:
            return wrap_connect(connect, self, target, **options)

        return decorator
