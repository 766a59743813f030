"""
deliverygraph settings.

Pydantic settings with environment variable support. Every value can be
overridden with a DELIVERYGRAPH__ prefixed variable or a .env file:

    DELIVERYGRAPH__DEFAULT_LOCALE=en-US
    DELIVERYGRAPH__DEFAULT_ENVIRONMENT=master
    DELIVERYGRAPH__FETCH_TIMEOUT=5.0
    DELIVERYGRAPH__MAX_FETCH_DEPTH=10
    DELIVERYGRAPH__FETCH_WORKERS=4
    DELIVERYGRAPH__RESOLVE_DEFERRED=true
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Resource graph builder settings.

    Environment variables:
        DELIVERYGRAPH__DEFAULT_LOCALE - Locale used when a lookup names none
        DELIVERYGRAPH__DEFAULT_ENVIRONMENT - Environment assumed for payloads without one
        DELIVERYGRAPH__FETCH_TIMEOUT - Seconds a deferred link fetch may take
        DELIVERYGRAPH__MAX_FETCH_DEPTH - Nesting limit for fetches triggered by fetched resources
        DELIVERYGRAPH__FETCH_WORKERS - Thread pool size for deferred fetches
        DELIVERYGRAPH__RESOLVE_DEFERRED - Fetch links missing from the session
    """

    model_config = SettingsConfigDict(
        env_prefix="DELIVERYGRAPH__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_locale: str = Field(
        default="en-US",
        description="Locale code used when neither the caller nor the resource names one",
    )

    default_environment: str = Field(
        default="master",
        description="Environment id assumed for payloads that carry a space but no environment",
    )

    fetch_timeout: float = Field(
        default=5.0,
        gt=0.0,
        description="Seconds to wait for a deferred fetch before the link is marked unresolvable",
    )

    max_fetch_depth: int = Field(
        default=10,
        ge=0,
        description="Maximum chain of fetches started while building fetched resources (0 disables fetching)",
    )

    fetch_workers: int = Field(
        default=4,
        ge=1,
        description="Worker threads used for deferred fetches",
    )

    resolve_deferred: bool = Field(
        default=True,
        description="Fetch link targets that are not present in the session",
    )


# Global settings singleton
settings = Settings()
