"""Neutral policy responses and request validation for the dev service.

The service performs no learning: every action leaves the game unchanged
(zero deltas, no light overrides) so a loop can be exercised end to end.
"""
from __future__ import annotations

import math
from dataclasses import astuple
from typing import Any, Dict, List, Mapping

from games.bubbles import BubbleParameters
from games.lanterns import LIGHT_COUNT, NO_CHANGE

_TRANSITION_FIELDS = ("state", "action", "reward", "next_state", "done")


def _is_number(value: Any) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float)) and math.isfinite(value)


def validate_state_request(payload: Any, state_size: int) -> List[float]:
    if not isinstance(payload, Mapping):
        raise ValueError("Request body must be a JSON object")
    state = payload.get("state")
    if not isinstance(state, list) or not all(_is_number(v) for v in state):
        raise ValueError("state must be a list of numbers")
    if len(state) != state_size:
        raise ValueError(f"state must have {state_size} values, got {len(state)}")
    for name in ("fatigue", "engagement"):
        if name in payload and not _is_number(payload[name]):
            raise ValueError(f"{name} must be a number")
    return [float(v) for v in state]


def validate_transitions(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, Mapping):
        raise ValueError("Request body must be a JSON object")
    transitions = payload.get("transitions")
    if not isinstance(transitions, list) or not transitions:
        raise ValueError("transitions must be a non-empty list")
    for index, item in enumerate(transitions):
        if not isinstance(item, Mapping):
            raise ValueError(f"transitions[{index}] must be an object")
        missing = [name for name in _TRANSITION_FIELDS if name not in item]
        if missing:
            raise ValueError(f"transitions[{index}] missing: {', '.join(missing)}")
        if not _is_number(item["reward"]):
            raise ValueError(f"transitions[{index}].reward must be a number")
    return [dict(item) for item in transitions]


def neutral_bubble_action() -> Dict[str, Any]:
    defaults = BubbleParameters()
    values = [float(v) for v in astuple(defaults)[:6]] + [1.0 if defaults.guidance_on else 0.0]
    return {
        "action": values,
        "adjustments": {"bubble_size": 0.0, "positive_prob": 0.0, "negative_prob": 0.0, "spawn_rate": 0.0},
        "log_prob": 0.0,
    }


def neutral_mirror_action() -> Dict[str, Any]:
    return {
        "action": [0.0, 0.0, 0.0, 0.0],
        "adjustments": {
            "upper_threshold_change": 0.0,
            "lower_threshold_change": 0.0,
            "gap_change": 0.0,
            "difficulty_change": 0.0,
        },
        "log_prob": 0.0,
    }


def neutral_lantern_action(training: bool) -> Dict[str, Any]:
    return {
        "action_index": 0,
        "adjustments": {
            "light_states": [NO_CHANGE] * LIGHT_COUNT,
            "light_speed_change": 0.0,
            "spawn_rate_change": 0.0,
        },
        "q_value": 0.0,
        "epsilon": 1.0 if training else 0.0,
    }
