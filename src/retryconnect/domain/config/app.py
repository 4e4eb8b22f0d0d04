"""Main application configuration model."""

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field

from retryconnect.domain.config.retry import RetryConfig


class AppConfig(BaseModel):
    """Main application configuration.

    This is the root configuration model loaded from .retry-connect.yml.
    Validation is performed at load time to fail fast on configuration errors.

    Attributes:
        verbose: Process-wide logging detail level (0-4)
        default: Retry settings used when a target has no section of its own
        targets: Retry settings per target class (e.g. "tcp", "sqlite3")
    """

    verbose: int = Field(0, ge=0, le=4)
    default: RetryConfig = Field(default_factory=RetryConfig)
    targets: Dict[str, RetryConfig] = Field(default_factory=dict)

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
        json_schema_extra={
            "example": {
                "verbose": 2,
                "default": {"total_delay": 30.0},
                "targets": {
                    "tcp": {
                        "total_delay": 10.0,
                        "start_delay": 0.2,
                        "backoff_factor": 2.0,
                    },
                },
            }
        },
    )

    def for_target(self, target: str) -> RetryConfig:
        """Get retry settings for a target, falling back to the default section"""
        return self.targets.get(target, self.default)
