"""Unified configuration schema for journey_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the remote workflow API, rate limiting, sync behaviour and
logging.

Usage:
    from journey_sync.config_loader import load_hierarchical_config
    from journey_sync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://services.leadconnectorhq.com"
DEFAULT_API_VERSION = "2021-07-28"
DEFAULT_STORE_PATH = ".journey_sync/records.json"


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Remote workflow API connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str = Field(
        default=DEFAULT_API_URL, description="Workflow API base URL"
    )
    api_key: str | None = Field(default=None, description="Bearer token")
    location_id: str | None = Field(
        default=None, description="Location (account) the workflows live in"
    )
    api_version: str = Field(
        default=DEFAULT_API_VERSION, description="Value of the Version header"
    )
    timeout_seconds: float = Field(
        default=30, gt=0, description="Per-request timeout"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )

    model_config = {"frozen": True}


class RateLimitConfig(BaseModel):
    """Retry and pacing settings for remote calls.

    Attributes:
        base_delay_ms: Initial backoff unit.
        max_delay_ms: Backoff ceiling.
        max_retries: Total attempt cap per remote call (1-20).
        request_interval_ms: Minimum gap between successive requests.
    """

    base_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=60000, ge=0)
    max_retries: int = Field(default=5, ge=1, le=20)
    request_interval_ms: int = Field(default=250, ge=0)

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    store_path: str = Field(
        default=DEFAULT_STORE_PATH, description="Record store JSON file"
    )
    owner_id: str | None = Field(
        default=None, description="Default owner scope for sync runs"
    )
    dry_run: bool = False

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
