"""Feed recorded JSONL telemetry into a live mini-game."""
from __future__ import annotations

import asyncio
import json
import logging
import math
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List

from games.base import MiniGame

LOGGER = logging.getLogger(__name__)


class ReplayError(Exception):
    """Raised when a telemetry recording cannot be used at all."""


def parse_records(lines: Iterable[str], source: str = "<telemetry>") -> List[Dict[str, Any]]:
    """Parse JSONL frames; each needs a numeric ``t`` (seconds since start).

    Bad lines are skipped with a warning. Frames are returned in time order.
    """
    records: List[Dict[str, Any]] = []
    for lineno, line in enumerate(lines, start=1):
        text = line.strip()
        if not text:
            continue
        try:
            record = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Skipping %s:%d: invalid JSON (%s)", source, lineno, exc.msg)
            continue
        if not isinstance(record, dict):
            LOGGER.warning("Skipping %s:%d: frame must be an object", source, lineno)
            continue
        stamp = record.get("t")
        if isinstance(stamp, bool) or not isinstance(stamp, (int, float)):
            stamp = None
        if stamp is None or not math.isfinite(stamp) or stamp < 0:
            LOGGER.warning("Skipping %s:%d: missing or invalid 't'", source, lineno)
            continue
        records.append(record)
    records.sort(key=lambda item: item["t"])
    return records


def load_records(path: Path) -> List[Dict[str, Any]]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            records = parse_records(handle, source=str(path))
    except OSError as exc:
        raise ReplayError(f"Unable to read telemetry {path}: {exc}") from exc
    if not records:
        raise ReplayError(f"No usable telemetry frames in {path}")
    return records


async def replay(
    game: MiniGame,
    records: List[Dict[str, Any]],
    speed: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """Apply frames at their recorded offsets; returns the number ingested."""
    applied = 0
    previous = 0.0
    for record in records:
        stamp = float(record["t"])
        delay = max(0.0, stamp - previous) / max(speed, 1e-6)
        previous = stamp
        if delay:
            await sleep(delay)
        try:
            game.ingest(record)
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Ignoring telemetry frame at t=%s: %s", stamp, exc)
            continue
        applied += 1
    LOGGER.info("Telemetry replay finished after %d frames", applied)
    return applied
