"""Configuration loading - env file plus process environment, with live reload"""
import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, Optional

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = "charge-monitor.env"
DEFAULT_POLLING_INTERVAL_MS = 5000
DEFAULT_HTTP_ADDRESS = ":8080"

OUTLETS = "CHARGE_MONITOR_OUTLETS"
POLLING_INTERVAL = "CHARGE_MONITOR_POLLING_INTERVAL"
HTTP_ADDRESS = "CHARGE_MONITOR_HTTP_ADDRESS"
SNAPSHOT_FILE = "CHARGE_MONITOR_SNAPSHOT_FILE"
API_URL = "CHARGE_MONITOR_API_URL"


class ConfigError(Exception):
    """Raised when required settings are missing or invalid."""


@dataclass
class Config:
    outlets: list[str]
    polling_interval_ms: int = DEFAULT_POLLING_INTERVAL_MS
    http_address: str = DEFAULT_HTTP_ADDRESS
    snapshot_file: Optional[str] = None
    api_url: Optional[str] = None


def parse_outlets(raw: Optional[str]) -> list[str]:
    """Split a comma separated outlet list, keeping order and dropping blanks."""
    if not raw:
        return []
    return [outlet.strip() for outlet in raw.split(",") if outlet.strip()]


def config_from_mapping(values: Mapping[str, Optional[str]]) -> Config:
    outlets = parse_outlets(values.get(OUTLETS))
    if not outlets:
        raise ConfigError(f"{OUTLETS} must list at least one outlet")

    raw_interval = values.get(POLLING_INTERVAL) or str(DEFAULT_POLLING_INTERVAL_MS)
    try:
        interval = int(raw_interval)
    except ValueError:
        raise ConfigError(f"{POLLING_INTERVAL} must be an integer, got {raw_interval!r}")
    if interval <= 0:
        raise ConfigError(f"{POLLING_INTERVAL} must be positive, got {interval}")

    return Config(
        outlets=outlets,
        polling_interval_ms=interval,
        http_address=values.get(HTTP_ADDRESS) or DEFAULT_HTTP_ADDRESS,
        snapshot_file=values.get(SNAPSHOT_FILE) or None,
        api_url=values.get(API_URL) or None
    )


def read_settings(env_file: str) -> dict[str, Optional[str]]:
    """Values from the env file, overridden by the process environment."""
    values = dict(dotenv_values(env_file)) if os.path.exists(env_file) else {}
    for key in (OUTLETS, POLLING_INTERVAL, HTTP_ADDRESS, SNAPSHOT_FILE, API_URL):
        if key in os.environ:
            values[key] = os.environ[key]
    return values


def load_config(env_file: str = DEFAULT_ENV_FILE) -> Config:
    config = config_from_mapping(read_settings(env_file))
    logger.info(f"Config: Outlets loaded ({len(config.outlets)})")
    return config


def _mtime(path: str) -> Optional[float]:
    try:
        return os.stat(path).st_mtime
    except FileNotFoundError:
        return None


async def watch_config(
    env_file: str,
    on_change: Callable[[list[str]], None],
    interval: float = 5.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    stop: Optional[asyncio.Event] = None
) -> None:
    """
    Watch the env file and report outlet list changes.

    The file's modification time is checked every `interval` seconds. When
    it changes the file is read again; a valid, different outlet list is
    passed to `on_change`. Invalid files are logged and ignored.
    """
    last_mtime = _mtime(env_file)
    outlets = parse_outlets(read_settings(env_file).get(OUTLETS))
    logger.debug(f"Config: Watching {env_file} for changes (every {interval}s)")

    while stop is None or not stop.is_set():
        await sleep(interval)

        mtime = _mtime(env_file)
        if mtime is None or mtime == last_mtime:
            continue
        last_mtime = mtime
        logger.info(f"Config: File changed: {env_file}")

        try:
            config = config_from_mapping(read_settings(env_file))
        except ConfigError as e:
            logger.error(f"Config: Failed to reload config: {e}")
            continue

        if config.outlets == outlets:
            logger.debug("Config: Outlet list unchanged")
            continue

        outlets = config.outlets
        logger.info(f"Config: Config reloaded successfully ({len(outlets)} outlets)")
        on_change(outlets)
