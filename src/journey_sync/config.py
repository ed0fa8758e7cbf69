"""Resolved runtime configuration.

Reads settings from CLI args, environment variables, .env files and the
YAML config.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    WORKFLOW_API_URL: Workflow API base URL (optional)
    WORKFLOW_API_KEY: API bearer token (required for remote access)
    WORKFLOW_LOCATION_ID: Location the workflows belong to (required for remote access)
    WORKFLOW_INSECURE: Skip SSL verification (optional, default: false)
    RATE_LIMIT_BASE_DELAY_MS: Initial backoff (optional, default: 1000)
    RATE_LIMIT_MAX_DELAY_MS: Backoff ceiling (optional, default: 60000)
    RATE_LIMIT_MAX_RETRIES: Attempt cap per call, 1-20 (optional, default: 5)
    SYNC_STORE_PATH: Record store file (optional)
    SYNC_DRY_RUN: Never write to the remote side (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from pydantic import ValidationError

from .config_schema import (
    DEFAULT_API_URL,
    DEFAULT_API_VERSION,
    DEFAULT_STORE_PATH,
    RateLimitConfig,
    UnifiedConfig,
)
from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class Config:
    api_url: str = DEFAULT_API_URL
    api_key: str = ""
    location_id: str = ""
    api_version: str = DEFAULT_API_VERSION
    timeout_seconds: float = 30
    insecure: bool = False
    debug: bool = False
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    store_path: str = DEFAULT_STORE_PATH
    owner_id: str | None = None
    dry_run: bool = False


def validate_config(config: Config, require_remote: bool = True) -> None:
    """Validate configuration values.

    Args:
        config: Config instance to validate.  ``api_url`` is normalised
            in place.
        require_remote: Whether API credentials must be present.

    Raises:
        ConfigError: If the URL is malformed or credentials are missing.
    """
    config.api_url = config.api_url.strip()
    if not config.api_url.startswith(("http://", "https://")):
        raise ConfigError(
            f"Invalid workflow API URL '{config.api_url}': "
            "must start with http:// or https://"
        )
    if not urlparse(config.api_url).hostname:
        raise ConfigError(
            f"Invalid workflow API URL '{config.api_url}': "
            "URL must include a hostname"
        )
    config.api_url = config.api_url.removesuffix("/")

    if require_remote:
        if not config.api_key.strip():
            raise ConfigError(
                "Workflow API key not found. Set WORKFLOW_API_KEY or add "
                "'remote.api_key' to config.yml."
            )
        if not config.location_id.strip():
            raise ConfigError(
                "Workflow location id not found. Set WORKFLOW_LOCATION_ID or "
                "add 'remote.location_id' to config.yml."
            )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_int_env(key: str) -> int | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"Invalid {key} '{raw}': must be an integer") from None


def _resolve_flag(cli_value: bool, env_key: str, fallback: bool) -> bool:
    if cli_value:
        return True
    env_value = _get_bool_env(env_key)
    return env_value if env_value is not None else fallback


def _resolve_rate_limit(base: RateLimitConfig) -> RateLimitConfig:
    overrides = {}
    for key, env_key in (
        ("base_delay_ms", "RATE_LIMIT_BASE_DELAY_MS"),
        ("max_delay_ms", "RATE_LIMIT_MAX_DELAY_MS"),
        ("max_retries", "RATE_LIMIT_MAX_RETRIES"),
    ):
        value = _get_int_env(env_key)
        if value is not None:
            overrides[key] = value
    if not overrides:
        return base
    try:
        return RateLimitConfig(**{**base.model_dump(), **overrides})
    except ValidationError as exc:
        raise ConfigError(f"Invalid rate limit settings: {exc}") from None


def load_config(
    api_url: str | None = None,
    api_key: str | None = None,
    location_id: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    store_path: str | None = None,
    owner_id: str | None = None,
    dry_run: bool = False,
    unified: UnifiedConfig | None = None,
    require_remote: bool = True,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > YAML (``unified``) > built-in default

    The caller is responsible for calling ``load_dotenv()`` first so that
    .env values are visible through ``os.getenv()``.

    Args:
        api_url: Override API URL.
        api_key: Override API key.
        location_id: Override location id.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        store_path: Override record store path.
        owner_id: Override default owner scope.
        dry_run: Force dry-run mode (CLI flag).
        unified: Parsed YAML config.
        require_remote: Whether remote credentials must be present.

    Returns:
        Validated Config instance.

    Raises:
        ConfigError: If a value is invalid or required credentials are
            missing.
    """
    unified = unified or UnifiedConfig()
    remote = unified.remote
    sync = unified.sync

    config = Config(
        api_url=api_url or os.getenv("WORKFLOW_API_URL") or remote.url,
        api_key=(api_key or os.getenv("WORKFLOW_API_KEY") or remote.api_key or "").strip(),
        location_id=(
            location_id
            or os.getenv("WORKFLOW_LOCATION_ID")
            or remote.location_id
            or ""
        ).strip(),
        api_version=remote.api_version,
        timeout_seconds=remote.timeout_seconds,
        insecure=_resolve_flag(insecure, "WORKFLOW_INSECURE", remote.insecure),
        debug=debug,
        rate_limit=_resolve_rate_limit(unified.rate_limit),
        store_path=store_path or os.getenv("SYNC_STORE_PATH") or sync.store_path,
        owner_id=owner_id or sync.owner_id,
        dry_run=_resolve_flag(dry_run, "SYNC_DRY_RUN", sync.dry_run),
    )

    validate_config(config, require_remote=require_remote)
    return config
