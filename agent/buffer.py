"""Ordered experience buffer with batched flush bookkeeping."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Optional

from agent.actions import Transition

DEFAULT_BATCH_TRIGGER = 5


@dataclass(frozen=True)
class FlushBatch:
    transitions: List[Transition]


class ExperienceBuffer:
    """Transitions awaiting a training request.

    A flush takes a snapshot of the current contents; only a confirmed
    success removes those transitions. Anything appended while the request
    was in flight stays for the next trigger.
    """

    def __init__(self, batch_trigger: int = DEFAULT_BATCH_TRIGGER):
        if batch_trigger < 1:
            raise ValueError("batch_trigger must be at least 1")
        self.batch_trigger = batch_trigger
        self._items: List[Transition] = []
        self._in_flight: Optional[FlushBatch] = None
        self.flushes_succeeded = 0
        self.flushes_failed = 0

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Transition]:
        return iter(list(self._items))

    def append(self, transition: Transition) -> None:
        self._items.append(transition)

    @property
    def flush_in_flight(self) -> bool:
        return self._in_flight is not None

    def ready(self) -> bool:
        return len(self._items) >= self.batch_trigger and not self.flush_in_flight

    def begin_flush(self) -> FlushBatch:
        if self._in_flight is not None:
            raise RuntimeError("A flush is already in flight")
        self._in_flight = FlushBatch(list(self._items))
        return self._in_flight

    def complete_flush(self, batch: FlushBatch, success: bool) -> None:
        if batch is not self._in_flight:
            # buffer was cleared or the batch is stale
            return
        self._in_flight = None
        if success:
            del self._items[: len(batch.transitions)]
            self.flushes_succeeded += 1
        else:
            self.flushes_failed += 1

    def clear(self) -> None:
        self._items.clear()
        self._in_flight = None
