"""
Configuration for the dispatch client, retry queue and print queue scheduler.

Values come from the environment (a .env file is honoured) and are parsed once
into explicit config objects that are handed to each component.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from log_config import get_logger
from printer_selector import parse_endpoint_list

load_dotenv()

logger = get_logger("config")


class Config:
    """Centralized defaults"""

    PRINTER_API_TIMEOUT_MS = 5000
    RETRY_INTERVAL_SECONDS = 30.0
    RETRY_SPACING_SECONDS = 1.0
    RETRY_QUEUE_MAX_SIZE = 1000

    POLL_INTERVAL_SECONDS = 5.0
    BATCH_SIZE = 10
    JOB_RETRY_DELAY_SECONDS = 60.0
    SIMULATED_PRINT_CAP_SECONDS = 30.0
    DEFAULT_MAX_RETRIES = 3

    DATABASE_URL = "sqlite:///./print_dispatch.db"


@dataclass
class DispatchConfig:
    endpoints: List[str] = field(default_factory=list)
    api_key: str = ""
    timeout_ms: int = Config.PRINTER_API_TIMEOUT_MS
    retry_interval_seconds: float = Config.RETRY_INTERVAL_SECONDS
    retry_spacing_seconds: float = Config.RETRY_SPACING_SECONDS
    # 0 disables the cap
    retry_queue_max_size: int = Config.RETRY_QUEUE_MAX_SIZE

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass
class SchedulerConfig:
    poll_interval_seconds: float = Config.POLL_INTERVAL_SECONDS
    batch_size: int = Config.BATCH_SIZE
    retry_delay_seconds: float = Config.JOB_RETRY_DELAY_SECONDS
    simulated_print_cap_seconds: float = Config.SIMULATED_PRINT_CAP_SECONDS
    mixed_requires_color: bool = False
    reassign_within_tick: bool = True
    auto_start: bool = False


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(f"Invalid integer for {name}={raw!r}, using {default}")
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning(f"Invalid number for {name}={raw!r}, using {default}")
        return default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    logger.warning(f"Invalid boolean for {name}={raw!r}, using {default}")
    return default


def load_dispatch_config(env: Optional[Mapping[str, str]] = None) -> DispatchConfig:
    env = os.environ if env is None else env

    endpoints = parse_endpoint_list(env.get("PRINTER_API_URLS"))
    if not endpoints:
        logger.warning("PRINTER_API_URLS not configured")

    return DispatchConfig(
        endpoints=endpoints,
        api_key=env.get("PRINTER_API_KEY", ""),
        timeout_ms=_env_int(env, "PRINTER_API_TIMEOUT", Config.PRINTER_API_TIMEOUT_MS),
        retry_interval_seconds=_env_float(env, "PRINT_RETRY_INTERVAL", Config.RETRY_INTERVAL_SECONDS),
        retry_spacing_seconds=_env_float(env, "PRINT_RETRY_SPACING", Config.RETRY_SPACING_SECONDS),
        retry_queue_max_size=_env_int(env, "PRINT_RETRY_QUEUE_MAX", Config.RETRY_QUEUE_MAX_SIZE),
    )


def load_scheduler_config(env: Optional[Mapping[str, str]] = None) -> SchedulerConfig:
    env = os.environ if env is None else env

    return SchedulerConfig(
        poll_interval_seconds=_env_float(env, "PRINT_QUEUE_INTERVAL", Config.POLL_INTERVAL_SECONDS),
        batch_size=_env_int(env, "PRINT_QUEUE_BATCH_SIZE", Config.BATCH_SIZE),
        retry_delay_seconds=_env_float(env, "PRINT_JOB_RETRY_DELAY", Config.JOB_RETRY_DELAY_SECONDS),
        mixed_requires_color=_env_bool(env, "PRINT_MIXED_REQUIRES_COLOR", False),
        auto_start=_env_bool(env, "PRINT_QUEUE_AUTOSTART", False),
    )


def database_url(env: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if env is None else env
    return env.get("DATABASE_URL") or Config.DATABASE_URL
