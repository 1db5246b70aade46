# tgsync/config.py
import json
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Dict, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict

from tgsync.exceptions import ConfigurationError


class Settings(BaseSettings):
    database_url: Optional[str] = None
    db_type: str = "postgresql+asyncpg"
    db_username: Optional[str] = None
    db_password: Optional[str] = None
    db_host: Optional[str] = None
    db_name: Optional[str] = None

    # Declarative extraction schemas, one per use case
    config_channel_info: Optional[Dict[str, Any]] = None
    config_channel_feed: Optional[Dict[str, Any]] = None

    # Batch tuning, run-time limits in milliseconds
    fetch_channels_count: int = 20
    overall_run_time_limit: int = 300000
    channel_run_time_limit: int = 300000
    look_back_days: int = 2

    last_published_scope: Literal["channel", "global"] = "channel"
    message_key_scope: Literal["channel", "global"] = "channel"

    timezone: Optional[str] = None
    request_timeout_seconds: float = 30.0
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def dsn(self) -> str:
        if self.database_url:
            return self.database_url
        return f"{self.db_type}://{self.db_username}:{self.db_password}@{self.db_host}/{self.db_name}"

    @property
    def tz(self) -> tzinfo:
        if self.timezone:
            return ZoneInfo(self.timezone)
        return datetime.now().astimezone().tzinfo


def require_parse_config(settings: Settings, name: str, config_dir: Path = Path(".")) -> Dict[str, Any]:
    """
    Return the extraction schema for a use case ("channel_info" or "channel_feed").

    A ``<name>.config.json`` file in ``config_dir`` wins over the
    ``CONFIG_<NAME>`` environment value carried by ``settings``.
    """
    path = config_dir / f"{name}.config.json"
    if path.exists():
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Config file {path} is not valid JSON: {e}") from e

    config = getattr(settings, f"config_{name}", None)
    if not config:
        raise ConfigurationError(f'Env var "CONFIG_{name.upper()}" was not found.')
    return config


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment once at process start."""
    try:
        settings = Settings(**overrides)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration:\n{e}") from e

    errors = []
    if not settings.database_url and not all(
        [settings.db_username, settings.db_password, settings.db_host, settings.db_name]
    ):
        errors.append("DATABASE_URL or DB_USERNAME, DB_PASSWORD, DB_HOST, DB_NAME are required")

    for name, value in [
        ("FETCH_CHANNELS_COUNT", settings.fetch_channels_count),
        ("OVERALL_RUN_TIME_LIMIT", settings.overall_run_time_limit),
        ("CHANNEL_RUN_TIME_LIMIT", settings.channel_run_time_limit),
    ]:
        if value <= 0:
            errors.append(f"{name} must be positive, got {value}")
    if settings.look_back_days < 0:
        errors.append(f"LOOK_BACK_DAYS must not be negative, got {settings.look_back_days}")

    if settings.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        errors.append(f"Unknown LOG_LEVEL: {settings.log_level}")

    if settings.timezone:
        try:
            ZoneInfo(settings.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"Unknown TIMEZONE: {settings.timezone}")

    if errors:
        raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors))
    return settings
