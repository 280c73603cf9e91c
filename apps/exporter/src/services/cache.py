from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("daikin_exporter.cache")


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


@dataclass(frozen=True, slots=True)
class CacheEntry:
    data: List[Any]
    timestamp_ms: float
    update_interval: float

    def age_seconds(self, now: float) -> float:
        return now - (self.timestamp_ms / 1000.0)

    def is_fresh(self, now: float) -> bool:
        return self.age_seconds(now) < self.update_interval

    def to_payload(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "timestamp": self.timestamp_ms,
            "updateInterval": self.update_interval,
        }


@dataclass(frozen=True, slots=True)
class CacheInfo:
    exists: bool
    age: Optional[int] = None
    valid: Optional[bool] = None

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"exists": self.exists}
        if self.age is not None:
            payload["age"] = self.age
        if self.valid is not None:
            payload["valid"] = self.valid
        return payload


class DeviceDataCache:
    """Single-entry JSON snapshot of the last device fetch.

    The cache is only an optimization over the rate-limited cloud API: every
    read or write failure degrades to "no cached data" and is never raised.
    An entry is served only while it is younger than the interval it was
    stored under *and* that interval matches the one the caller polls with.
    """

    def __init__(self, path: str | Path, *, clock: Callable[[], float] = time.time) -> None:
        self._path = Path(path).expanduser().resolve()
        self._clock = clock
        self._lock = RLock()

    @property
    def path(self) -> Path:
        return self._path

    def save(self, data: List[Any], update_interval: int) -> None:
        entry = CacheEntry(
            data=list(data),
            timestamp_ms=int(self._clock() * 1000),
            update_interval=update_interval,
        )
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._path.write_text(json.dumps(entry.to_payload(), indent=2), encoding="utf-8")
            except (OSError, TypeError, ValueError) as exc:
                logger.warning("Failed to save data to cache %s: %s", self._path, exc)
                return
        logger.info("Cached %d device(s) to %s", len(entry.data), self._path)

    def load(self, update_interval: int) -> Optional[List[Any]]:
        entry = self._read_entry()
        if entry is None:
            logger.info("No valid cache found; will fetch fresh data")
            return None

        now = self._clock()
        age = int(entry.age_seconds(now))
        if not entry.is_fresh(now):
            logger.info(
                "Cached data is stale (%ss old, limit %ss); will fetch fresh data",
                age,
                entry.update_interval,
            )
            return None
        if entry.update_interval != update_interval:
            logger.info(
                "Cached data was stored for a %ss interval (now %ss); will fetch fresh data",
                entry.update_interval,
                update_interval,
            )
            return None

        logger.info("Loading cached data (%ss old, valid for %ss)", age, entry.update_interval)
        return entry.data

    def info(self) -> CacheInfo:
        entry = self._read_entry()
        if entry is None:
            return CacheInfo(exists=False)
        now = self._clock()
        return CacheInfo(exists=True, age=int(entry.age_seconds(now)), valid=entry.is_fresh(now))

    def clear(self) -> None:
        with self._lock:
            try:
                self._path.unlink()
            except FileNotFoundError:
                return
            except OSError as exc:
                logger.warning("Failed to clear cache %s: %s", self._path, exc)
                return
        logger.info("Cache cleared")

    def _read_entry(self) -> Optional[CacheEntry]:
        with self._lock:
            if not self._path.exists():
                return None
            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError, RecursionError) as exc:
                logger.warning("Failed to read cache %s: %s", self._path, exc)
                return None

        if not isinstance(raw, dict):
            return None
        data = raw.get("data")
        timestamp = raw.get("timestamp")
        interval = raw.get("updateInterval")
        if not isinstance(data, list):
            return None
        timestamp_ms = _finite_number(timestamp)
        update_interval = _finite_number(interval)
        if timestamp_ms is None or update_interval is None:
            logger.warning("Ignoring cache %s with invalid timestamp or interval", self._path)
            return None
        return CacheEntry(data=data, timestamp_ms=timestamp_ms, update_interval=update_interval)


__all__ = ["CacheEntry", "CacheInfo", "DeviceDataCache"]
