"""Runtime configuration for the development policy service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5000


@dataclass
class Config:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    request_size_limit: int = 256 * 1024  # training batches carry full state vectors
    debug: bool = False


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        LOGGER.warning("Invalid value '%s' for %s; using %s", raw, name, default)
        return default
    if value <= 0:
        LOGGER.warning("%s must be positive; using %s", name, default)
        return default
    return value


def load_config() -> Config:
    """Read environment variables into a Config object."""
    return Config(
        host=(os.getenv("SERVICE_HOST") or DEFAULT_HOST).strip(),
        port=_int_from_env("SERVICE_PORT", DEFAULT_PORT),
        request_size_limit=_int_from_env("REQUEST_MAX_BYTES", Config.request_size_limit),
        debug=(os.getenv("SERVICE_DEBUG", "").strip().lower() in {"1", "true", "yes", "on"}),
    )
