"""Read-only difficulty bounds sourced from the session's game configuration."""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Protocol

LOGGER = logging.getLogger(__name__)

# camelCase therapist maxima in the session payload -> adjustable parameter name
MAXIMUM_FIELDS = {
    "spawnAreaMax": "spawn_area_size",
    "bubbleSpeedMax": "bubble_speed",
    "bubbleLifetimeMax": "bubble_lifetime",
    "spawnHeightMax": "spawn_height",
    "numBubblesMax": "num_bubbles",
    "bubbleSizeMax": "bubble_size",
}

DIFFICULTY_LEVELS = {"easy": 0.5, "medium": 1.0, "hard": 1.5}
DEFAULT_DIFFICULTY_LEVEL = 1.0


@dataclass(frozen=True)
class Bounds:
    minimum: float
    maximum: float

    def clamp(self, value: float) -> float:
        return max(self.minimum, min(self.maximum, value))

    def is_valid(self) -> bool:
        return (
            math.isfinite(self.minimum)
            and math.isfinite(self.maximum)
            and self.minimum <= self.maximum
        )


@dataclass(frozen=True)
class DifficultyConfig:
    game_name: str
    minimums: Mapping[str, float] = field(default_factory=dict)
    maximums: Mapping[str, float] = field(default_factory=dict)
    target_score: int | None = None
    time_limit: float | None = None
    difficulty: str | None = None
    guidance_enabled: bool = False
    enabled: bool = True

    def bounds(self, name: str, fallback: Bounds, floor: float | None = None) -> Bounds:
        return resolve_bounds(self, name, fallback, floor)

    def maximum(self, name: str) -> float | None:
        return self.maximums.get(name)

    def difficulty_level(self) -> float:
        key = (self.difficulty or "").strip().lower()
        return DIFFICULTY_LEVELS.get(key, DEFAULT_DIFFICULTY_LEVEL)


def resolve_bounds(
    config: DifficultyConfig | None,
    name: str,
    fallback: Bounds,
    floor: float | None = None,
) -> Bounds:
    """Combine configured limits with the fallback; invalid ranges use the fallback.

    ``floor`` raises a configured maximum that is set lower than the game can
    tolerate (e.g. a bubble lifetime cap below one second).
    """
    if config is None:
        return fallback
    maximum = float(config.maximums.get(name, fallback.maximum))
    if floor is not None and name in config.maximums and math.isfinite(maximum):
        maximum = max(maximum, floor)
    candidate = Bounds(
        minimum=float(config.minimums.get(name, fallback.minimum)),
        maximum=maximum,
    )
    if candidate.is_valid():
        return candidate
    LOGGER.warning(
        "Invalid bounds for %s.%s (%s..%s); using %s..%s",
        config.game_name,
        name,
        candidate.minimum,
        candidate.maximum,
        fallback.minimum,
        fallback.maximum,
    )
    return fallback


class DifficultyConfigProvider(Protocol):
    def get(self, game_name: str) -> DifficultyConfig | None:
        ...


class StaticConfigProvider:
    """Holds the configs parsed from one session response."""

    def __init__(self, configs: Mapping[str, DifficultyConfig] | None = None):
        self._configs: Dict[str, DifficultyConfig] = dict(configs or {})

    def get(self, game_name: str) -> DifficultyConfig | None:
        return self._configs.get(game_name)

    def names(self) -> list[str]:
        return sorted(self._configs)

    @classmethod
    def from_session_payload(cls, payload: Mapping[str, Any]) -> "StaticConfigProvider":
        raw_configs = payload.get("gameConfigs")
        if not isinstance(raw_configs, Mapping):
            LOGGER.warning("Session payload has no gameConfigs object; using fallbacks")
            return cls()
        configs: Dict[str, DifficultyConfig] = {}
        for name, raw in raw_configs.items():
            if not isinstance(raw, Mapping):
                LOGGER.warning("Ignoring non-object game config for %s", name)
                continue
            configs[str(name)] = parse_game_config(str(name), raw)
        return cls(configs)

    @classmethod
    def from_file(cls, path: Path) -> "StaticConfigProvider":
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Unable to read difficulty config %s: %s", path, exc)
            return cls()
        if not isinstance(payload, Mapping):
            LOGGER.warning("Difficulty config %s must be a JSON object", path)
            return cls()
        return cls.from_session_payload(payload)


def _optional_float(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def parse_game_config(game_name: str, raw: Mapping[str, Any]) -> DifficultyConfig:
    maximums: Dict[str, float] = {}
    for key, param in MAXIMUM_FIELDS.items():
        value = _optional_float(raw.get(key))
        if value is not None:
            maximums[param] = value

    minimums: Dict[str, float] = {}
    limits = raw.get("limits")
    if isinstance(limits, Mapping):
        for param, pair in limits.items():
            if not isinstance(pair, Mapping):
                continue
            low = _optional_float(pair.get("min"))
            high = _optional_float(pair.get("max"))
            if low is not None:
                minimums[str(param)] = low
            if high is not None:
                maximums[str(param)] = high

    target = _optional_float(raw.get("target_score"))
    time_limit = _optional_float(raw.get("time_limit"))
    return DifficultyConfig(
        game_name=game_name,
        minimums=minimums,
        maximums=maximums,
        target_score=int(target) if target and target > 0 else None,
        time_limit=time_limit if time_limit and time_limit > 0 else None,
        difficulty=raw.get("difficulty") if isinstance(raw.get("difficulty"), str) else None,
        guidance_enabled=bool(raw.get("guidanceEnabled", False)),
        enabled=bool(raw.get("enabled", True)),
    )
