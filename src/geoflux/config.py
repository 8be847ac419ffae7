"""Configuration: frozen Config with the API key resolved from the environment."""

from __future__ import annotations

from dataclasses import dataclass, field
import os

from dotenv import load_dotenv

from geoflux._http import DEFAULT_API_BASE_URL, DEFAULT_TIMEOUT_S
from geoflux.errors import InvalidInputError
from geoflux.retry import RetryPolicy

load_dotenv()

API_KEY_ENV_VAR = "OPENCAGE_API_KEY"


@dataclass(frozen=True)
class Config:
    """Immutable configuration for a Geocoder.

    Example:
        config = Config()
        # API key is automatically resolved from OPENCAGE_API_KEY
    """

    #: Auto-resolved from ``OPENCAGE_API_KEY`` when *None*.
    api_key: str | None = None
    api_base_url: str = DEFAULT_API_BASE_URL
    #: Per-request timeout in seconds (connect and read).
    timeout: float = DEFAULT_TIMEOUT_S
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    #: Appended to the User-Agent header, e.g. ``"MyApp/1.0"``.
    user_agent_comment: str | None = None

    def __post_init__(self) -> None:
        """Auto-resolve API key and validate configuration."""
        if self.api_key is None:
            object.__setattr__(self, "api_key", os.environ.get(API_KEY_ENV_VAR))

        if not self.api_key or not self.api_key.strip():
            raise InvalidInputError(
                "API key not found or empty",
                hint=f"Set {API_KEY_ENV_VAR} environment variable or pass api_key=...",
            )
        if self.timeout <= 0:
            raise InvalidInputError(
                f"timeout must be > 0, got {self.timeout}",
                hint="This is the per-request timeout in seconds.",
            )
        if not self.api_base_url.startswith(("http://", "https://")):
            raise InvalidInputError(
                f"api_base_url must be an http(s) URL, got {self.api_base_url!r}"
            )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(api_base_url={self.api_base_url!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"timeout={self.timeout})"
        )

    __repr__ = __str__
