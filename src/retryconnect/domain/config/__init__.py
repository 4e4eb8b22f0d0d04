"""Configuration models with Pydantic validation."""

from retryconnect.domain.config.app import AppConfig
from retryconnect.domain.config.retry import RetryConfig

__all__ = [
    "AppConfig",
    "RetryConfig",
]
