"""Call context model - the arguments of an intercepted connect call"""

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

SECRET_KEYWORDS = ("password", "passwd", "pwd", "secret", "token")


@dataclass(frozen=True)
class CallContext:
    """Identifies a connect call for logging"""

    target: str  # Target class the connect belongs to (e.g. "tcp")
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)

    @property
    def endpoint(self) -> str:
        """First positional argument, usually the DSN or host"""
        if self.args:
            return str(self.args[0])
        for key in ("dsn", "database", "host", "address"):
            if key in self.kwargs:
                return str(self.kwargs[key])
        return ""

    def safe_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments with credential values masked"""
        return {
            key: "***" if any(word in key.lower() for word in SECRET_KEYWORDS) else value
            for key, value in self.kwargs.items()
        }

    def __str__(self) -> str:
        endpoint = self.endpoint
        return f"{self.target}:{endpoint}" if endpoint else self.target
