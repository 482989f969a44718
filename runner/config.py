"""Configuration helpers for the adaptive-difficulty loop."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
from urllib.parse import urlparse

LOGGER = logging.getLogger(__name__)
DEFAULT_POLICY_BASE_URL = "http://127.0.0.1:5000"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_BATCH_TRIGGER = 5

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class LoopConfig:
    policy_base_url: str = DEFAULT_POLICY_BASE_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    training_mode: bool = True
    batch_trigger: int = DEFAULT_BATCH_TRIGGER
    session_logging: bool = True
    update_interval_seconds: float | None = None
    difficulty_config_path: Path | None = None
    debug: bool = False


def load_loop_config(env: Mapping[str, str] | None = None) -> LoopConfig:
    """Load environment variables into a LoopConfig; bad values fall back."""
    env = os.environ if env is None else env

    return LoopConfig(
        policy_base_url=_parse_base_url(env.get("POLICY_BASE_URL")),
        timeout_seconds=_parse_positive_float(
            env.get("POLICY_TIMEOUT_SECONDS"), DEFAULT_TIMEOUT_SECONDS, "POLICY_TIMEOUT_SECONDS"
        ) or DEFAULT_TIMEOUT_SECONDS,
        training_mode=_parse_bool(env.get("TRAINING_MODE"), True, "TRAINING_MODE"),
        batch_trigger=_parse_positive_int(env.get("BATCH_TRIGGER"), DEFAULT_BATCH_TRIGGER, "BATCH_TRIGGER"),
        session_logging=_parse_bool(env.get("SESSION_LOGGING"), True, "SESSION_LOGGING"),
        update_interval_seconds=_parse_positive_float(
            env.get("UPDATE_INTERVAL_SECONDS"), None, "UPDATE_INTERVAL_SECONDS"
        ),
        difficulty_config_path=_parse_optional_path(env.get("DIFFICULTY_CONFIG_PATH")),
        debug=_parse_bool(env.get("LOOP_DEBUG"), False, "LOOP_DEBUG"),
    )


def _parse_base_url(raw_value: str | None) -> str:
    if raw_value is None or not raw_value.strip():
        return DEFAULT_POLICY_BASE_URL
    base = raw_value.strip().rstrip("/")
    parsed = urlparse(base)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        LOGGER.warning("Invalid POLICY_BASE_URL '%s'; using %s", raw_value, DEFAULT_POLICY_BASE_URL)
        return DEFAULT_POLICY_BASE_URL
    return base


def _parse_positive_int(raw_value: str | None, default: int, env_name: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        value = int(raw_value)
    except ValueError:
        LOGGER.warning("Invalid value '%s' for %s; using %s", raw_value, env_name, default)
        return default
    if value <= 0:
        LOGGER.warning("%s must be greater than zero; using %s", env_name, default)
        return default
    return value


def _parse_positive_float(raw_value: str | None, default: float | None, env_name: str) -> float | None:
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        value = float(raw_value)
    except ValueError:
        LOGGER.warning("Invalid value '%s' for %s; using %s", raw_value, env_name, default)
        return default
    if not value > 0 or value == float("inf"):
        LOGGER.warning("%s must be a positive number; using %s", env_name, default)
        return default
    return value


def _parse_bool(raw_value: str | None, default: bool, env_name: str) -> bool:
    if raw_value is None or raw_value.strip() == "":
        return default
    normalized = raw_value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    LOGGER.warning("%s must be a boolean (0/1, true/false); using %s", env_name, default)
    return default


def _parse_optional_path(raw_value: str | None) -> Path | None:
    if raw_value is None or not raw_value.strip():
        return None
    candidate = Path(raw_value.strip()).expanduser()
    if not candidate.is_file():
        LOGGER.warning("DIFFICULTY_CONFIG_PATH does not point to a file: %s", candidate)
        return None
    return candidate
