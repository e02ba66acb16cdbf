from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_SESSION_DB_PATH = "work_session.db"
DEFAULT_API_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    owner_user_id: int
    report_channel_id: int
    api_base_url: str
    api_token: str
    timezone: ZoneInfo
    session_db_path: Path
    api_timeout_seconds: float


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value or not value.strip():
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _required_int_env(name: str) -> int:
    value = _required_env(name)
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _timezone_from_env(name: str) -> ZoneInfo:
    tz_name = _required_env(name)
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def _api_url_from_env(name: str) -> str:
    url = _required_env(name)
    if not url.startswith(("http://", "https://")):
        raise ValueError(f"Environment variable {name} must be an http(s) URL")
    return url.rstrip("/")


def load_config() -> Config:
    timeout_raw = os.getenv("API_TIMEOUT_SECONDS", str(DEFAULT_API_TIMEOUT_SECONDS)).strip()
    try:
        timeout = float(timeout_raw)
    except ValueError as exc:
        raise ValueError("API_TIMEOUT_SECONDS must be a number") from exc

    if timeout <= 0:
        raise ValueError("API_TIMEOUT_SECONDS must be positive")

    db_path = os.getenv("SESSION_DB_PATH", "").strip() or DEFAULT_SESSION_DB_PATH

    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        owner_user_id=_required_int_env("OWNER_USER_ID"),
        report_channel_id=_required_int_env("REPORT_CHANNEL_ID"),
        api_base_url=_api_url_from_env("WORKFORCE_API_URL"),
        api_token=_required_env("WORKFORCE_API_TOKEN"),
        timezone=_timezone_from_env("TIMEZONE"),
        session_db_path=Path(db_path),
        api_timeout_seconds=timeout,
    )
