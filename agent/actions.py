"""Policy actions, typed adjustments and training transitions."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union


class PolicyError(Exception):
    """Raised when a policy exchange cannot produce a usable action."""


class MalformedResponseError(PolicyError):
    """Raised when the policy response body is missing required fields."""


@dataclass(frozen=True)
class BubbleAdjustments:
    bubble_size: float = 0.0
    positive_prob: float = 0.0
    negative_prob: float = 0.0
    spawn_rate: float = 0.0


@dataclass(frozen=True)
class MirrorAdjustments:
    upper_threshold_change: float = 0.0
    lower_threshold_change: float = 0.0
    gap_change: float = 0.0
    difficulty_change: float = 0.0


@dataclass(frozen=True)
class LanternAdjustments:
    light_states: Tuple[int, ...] = ()
    light_speed_change: float = 0.0
    spawn_rate_change: float = 0.0


Adjustments = Union[BubbleAdjustments, MirrorAdjustments, LanternAdjustments]


@dataclass(frozen=True)
class ContinuousAction:
    values: Tuple[float, ...]
    adjustments: Adjustments
    log_prob: float | None = None

    def payload(self) -> List[float]:
        return list(self.values)


@dataclass(frozen=True)
class DiscreteAction:
    index: int
    adjustments: Adjustments
    q_value: float | None = None
    epsilon: float | None = None

    def payload(self) -> int:
        return self.index


Action = Union[ContinuousAction, DiscreteAction]


@dataclass
class Transition:
    state: List[float]
    action: Action
    reward: float
    next_state: List[float]
    done: bool
    log_prob: float | None = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "state": list(self.state),
            "action": self.action.payload(),
            "reward": float(self.reward),
            "next_state": list(self.next_state),
            "done": bool(self.done),
        }
        if self.log_prob is not None:
            payload["log_prob"] = float(self.log_prob)
        return payload


def _require_object(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise MalformedResponseError("Policy response must be a JSON object")
    return payload


def _number(raw: Any, name: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise MalformedResponseError(f"{name} must be a number")
    value = float(raw)
    if not math.isfinite(value):
        raise MalformedResponseError(f"{name} must be finite")
    return value


def _optional_number(payload: Mapping[str, Any], name: str) -> float | None:
    raw = payload.get(name)
    if raw is None:
        return None
    try:
        return _number(raw, name)
    except MalformedResponseError:
        return None


def _float_list(raw: Any, name: str) -> Tuple[float, ...]:
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        raise MalformedResponseError(f"{name} must be a list of numbers")
    return tuple(_number(item, f"{name}[{i}]") for i, item in enumerate(raw))


def _adjustments_object(payload: Mapping[str, Any], required: bool) -> Optional[Mapping[str, Any]]:
    raw = payload.get("adjustments")
    if raw is None:
        if required:
            raise MalformedResponseError("Missing required field: adjustments")
        return None
    if not isinstance(raw, Mapping):
        raise MalformedResponseError("adjustments must be an object")
    return raw


def _delta(raw: Mapping[str, Any], name: str) -> float:
    if name not in raw or raw[name] is None:
        return 0.0
    return _number(raw[name], f"adjustments.{name}")


def decode_bubble_action(payload: Any, min_length: int = 7) -> ContinuousAction:
    body = _require_object(payload)
    if "action" not in body:
        raise MalformedResponseError("Missing required field: action")
    values = _float_list(body["action"], "action")
    if len(values) < min_length:
        raise MalformedResponseError(f"action must carry at least {min_length} values, got {len(values)}")
    raw = _adjustments_object(body, required=True)
    adjustments = BubbleAdjustments(
        bubble_size=_delta(raw, "bubble_size"),
        positive_prob=_delta(raw, "positive_prob"),
        negative_prob=_delta(raw, "negative_prob"),
        spawn_rate=_delta(raw, "spawn_rate"),
    )
    return ContinuousAction(values=values, adjustments=adjustments, log_prob=_optional_number(body, "log_prob"))


def decode_mirror_action(payload: Any) -> ContinuousAction:
    body = _require_object(payload)
    raw = _adjustments_object(body, required=True)
    adjustments = MirrorAdjustments(
        upper_threshold_change=_delta(raw, "upper_threshold_change"),
        lower_threshold_change=_delta(raw, "lower_threshold_change"),
        gap_change=_delta(raw, "gap_change"),
        difficulty_change=_delta(raw, "difficulty_change"),
    )
    values: Tuple[float, ...] = ()
    if body.get("action") is not None:
        values = _float_list(body["action"], "action")
    log_prob = _optional_number(body, "log_prob")
    return ContinuousAction(values=values, adjustments=adjustments, log_prob=0.0 if log_prob is None else log_prob)


def decode_lantern_action(payload: Any, light_count: int) -> DiscreteAction:
    body = _require_object(payload)
    raw_index = body.get("action_index")
    if isinstance(raw_index, bool) or not isinstance(raw_index, int):
        raise MalformedResponseError("action_index must be an integer")
    raw = _adjustments_object(body, required=True)
    states = raw.get("light_states")
    if not isinstance(states, Sequence) or isinstance(states, (str, bytes)):
        raise MalformedResponseError("adjustments.light_states must be a list")
    if len(states) < light_count:
        raise MalformedResponseError(
            f"adjustments.light_states needs {light_count} entries, got {len(states)}"
        )
    light_states = []
    for i, item in enumerate(states[:light_count]):
        if (
            isinstance(item, bool)
            or not isinstance(item, (int, float))
            or not math.isfinite(item)
            or int(item) != item
        ):
            raise MalformedResponseError(f"adjustments.light_states[{i}] must be an integer")
        light_states.append(int(item))
    adjustments = LanternAdjustments(
        light_states=tuple(light_states),
        light_speed_change=_delta(raw, "light_speed_change"),
        spawn_rate_change=_delta(raw, "spawn_rate_change"),
    )
    return DiscreteAction(
        index=raw_index,
        adjustments=adjustments,
        q_value=_optional_number(body, "q_value"),
        epsilon=_optional_number(body, "epsilon"),
    )
