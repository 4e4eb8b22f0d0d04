"""Retry configuration model."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TOTAL_DELAY = 30.0
DEFAULT_START_DELAY = 0.1
DEFAULT_BACKOFF_FACTOR = 3.0


class RetryConfig(BaseModel):
    """Configuration for retrying a failed connect.

    Attributes:
        total_delay: Total time in seconds to spend retrying before giving up
        start_delay: Delay in seconds before the first retry
        backoff_factor: Multiplier applied to the delay after each retry
        max_delay: Cap on any single delay (None = total_delay / 4)
        verbose: Logging detail level 0-4 (None = registry default)
    """

    total_delay: float = Field(DEFAULT_TOTAL_DELAY, ge=0.0)
    start_delay: float = Field(DEFAULT_START_DELAY, ge=0.0)
    backoff_factor: float = Field(DEFAULT_BACKOFF_FACTOR, gt=1.0)
    max_delay: Optional[float] = Field(None, gt=0.0)
    verbose: Optional[int] = Field(None, ge=0, le=4)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def effective_max_delay(self) -> float:
        """Single-delay cap, defaulting to a quarter of the total budget"""
        if self.max_delay is not None:
            return self.max_delay
        return self.total_delay / 4
