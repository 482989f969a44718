"""State vector helpers shared by the per-game samplers."""
from __future__ import annotations

import math
from typing import Iterable, List, Sequence, Tuple

StateVector = List[float]
Vector3 = Tuple[float, float, float]


def fit_state(values: Iterable[float], length: int, truncate: bool = False) -> StateVector:
    """Pad with zeros up to ``length``; extra values are kept unless ``truncate``."""
    state = [_feature(v) for v in values]
    if len(state) < length:
        state.extend([0.0] * (length - len(state)))
    elif truncate and len(state) > length:
        del state[length:]
    return state


def _feature(value: float | int | bool | None) -> float:
    if value is None:
        return 0.0
    value = float(value)
    if not math.isfinite(value):
        return 0.0
    return value


def distance(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    if a is None or b is None:
        return 0.0
    return math.sqrt(sum((float(x) - float(y)) ** 2 for x, y in zip(a, b)))


class StateSampler:
    """Base sampler: subclasses return raw features, the base enforces the length."""

    length: int = 0

    def features(self) -> Sequence[float]:
        raise NotImplementedError

    def sample(self) -> StateVector:
        return fit_state(self.features(), self.length)
