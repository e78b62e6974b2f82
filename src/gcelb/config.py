"""Configuration management for gcelb.

Settings are read once from ``GCELB_*`` environment variables; anything unset
keeps the dataclass default.
"""

import os
from dataclasses import dataclass

ENV_PREFIX = "GCELB_"


def _env(name: str) -> str | None:
    return os.getenv(f"{ENV_PREFIX}{name}")


def _env_int(name: str, default: int) -> int:
    value = _env(name)
    return int(value) if value is not None else default


def _env_float(name: str, default: float) -> float:
    value = _env(name)
    return float(value) if value is not None else default


def _env_bool(name: str, default: bool) -> bool:
    value = _env(name)
    return value.lower() == "true" if value is not None else default


@dataclass
class Config:
    """Runtime settings for provider calls, operation polling and logging.

    Every field maps to ``GCELB_<FIELD NAME IN UPPER CASE>``, e.g.
    ``GCELB_OPERATION_TIMEOUT`` or ``GCELB_GCLOUD_REGION``.
    """

    # Provider requests
    api_timeout: int = 30  # seconds per request
    api_max_retries: int = 3  # reads only
    api_retry_delay: float = 1.0  # seconds before the first retry
    api_retry_backoff: float = 2.0

    # Long-running operations
    operation_poll_interval: float = 2.0  # seconds
    operation_timeout: int = 300  # seconds

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None
    enable_credential_scrubbing: bool = True

    # Target project and region
    gcloud_project_id: str | None = None
    gcloud_region: str | None = None
    gcloud_quota_wait_time: int = 60  # seconds, suggested in quota errors

    @classmethod
    def from_env(cls) -> "Config":
        """Build a Config from the process environment."""
        defaults = cls()
        return cls(
            api_timeout=_env_int("API_TIMEOUT", defaults.api_timeout),
            api_max_retries=_env_int("API_MAX_RETRIES", defaults.api_max_retries),
            api_retry_delay=_env_float("API_RETRY_DELAY", defaults.api_retry_delay),
            api_retry_backoff=_env_float("API_RETRY_BACKOFF", defaults.api_retry_backoff),
            operation_poll_interval=_env_float(
                "OPERATION_POLL_INTERVAL", defaults.operation_poll_interval
            ),
            operation_timeout=_env_int("OPERATION_TIMEOUT", defaults.operation_timeout),
            log_level=(_env("LOG_LEVEL") or defaults.log_level).upper(),
            log_file=_env("LOG_FILE"),
            enable_credential_scrubbing=_env_bool(
                "ENABLE_CREDENTIAL_SCRUBBING", defaults.enable_credential_scrubbing
            ),
            gcloud_project_id=_env("GCLOUD_PROJECT_ID"),
            gcloud_region=_env("GCLOUD_REGION"),
            gcloud_quota_wait_time=_env_int(
                "GCLOUD_QUOTA_WAIT_TIME", defaults.gcloud_quota_wait_time
            ),
        )


_config: Config | None = None


def get_config() -> Config:
    """Get the process-wide Config, reading the environment on first use."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Forget the loaded Config so the next get_config() re-reads the environment."""
    global _config
    _config = None
