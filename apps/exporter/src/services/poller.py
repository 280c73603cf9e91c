"""Background task that keeps the published metrics in step with the cloud."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional

from .cache import DeviceDataCache
from .parser import DeviceDocumentError, parse_devices
from .publisher import MetricsPublisher

LOGGER = logging.getLogger("daikin_exporter.poller")

DeviceSource = Callable[[], Awaitable[List[Dict[str, Any]]]]
DataSource = Literal["cache", "upstream"]


def _now_iso() -> str:
    iso = datetime.now(timezone.utc).isoformat(timespec="seconds")
    if iso.endswith("+00:00"):
        return iso[:-6] + "Z"
    return iso


@dataclass(slots=True)
class PollerStatus:
    running: bool = False
    cycles_started: int = 0
    cycles_succeeded: int = 0
    cycles_failed: int = 0
    cycles_skipped: int = 0
    last_attempt_at: Optional[str] = None
    last_success_at: Optional[str] = None
    last_error: Optional[str] = None
    last_source: Optional[DataSource] = None
    device_count: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


class DevicePoller:
    """Runs update cycles every ``update_interval`` seconds.

    A cycle serves devices from the cache while it is fresh, otherwise fetches
    them from ``device_source`` and stores them. Failures end the cycle, never
    the loop. A cycle requested while another is in flight is skipped.
    """

    def __init__(
        self,
        *,
        cache: DeviceDataCache,
        publisher: MetricsPublisher,
        device_source: DeviceSource,
        update_interval: int,
        shutdown_grace_seconds: float = 10.0,
    ) -> None:
        self._cache = cache
        self._publisher = publisher
        self._device_source = device_source
        self._update_interval = max(1, int(update_interval))
        self._shutdown_grace = max(0.0, shutdown_grace_seconds)
        self._cycle_lock = asyncio.Lock()
        self._idle = asyncio.Event()
        self._idle.set()
        self._task: Optional[asyncio.Task[None]] = None
        self._running = False
        self._status = PollerStatus()

    @property
    def update_interval(self) -> int:
        return self._update_interval

    def status(self) -> PollerStatus:
        self._status.running = self._task is not None and not self._task.done()
        return self._status

    async def start(self) -> None:
        if self._task is not None:
            return
        info = self._cache.info()
        if info.exists:
            LOGGER.info(
                "Found existing cache: %ss old, %s",
                info.age,
                "valid" if info.valid else "stale",
            )
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="daikin-poller")
        LOGGER.info("Scheduling updates every %s seconds", self._update_interval)

    async def stop(self) -> None:
        self._running = False
        if self._task is None:
            return
        task = self._task
        self._task = None
        if self._cycle_lock.locked():
            LOGGER.info("Waiting up to %.1fs for the in-flight update cycle", self._shutdown_grace)
            try:
                await asyncio.wait_for(self._idle.wait(), timeout=self._shutdown_grace)
            except asyncio.TimeoutError:
                LOGGER.warning("Update cycle still running after %.1fs; cancelling it", self._shutdown_grace)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:  # pragma: no cover - defensive logging
            LOGGER.warning("Poller stopped with error: %s", exc)
        finally:
            LOGGER.info("Poller stopped")

    async def run_cycle(self) -> bool:
        """Run one update cycle. Returns ``True`` when metrics were published."""
        if self._cycle_lock.locked():
            self._status.cycles_skipped += 1
            LOGGER.warning("Previous update cycle still in flight; skipping this one")
            return False

        async with self._cycle_lock:
            self._idle.clear()
            try:
                return await self._cycle()
            finally:
                self._idle.set()

    async def _cycle(self) -> bool:
        self._status.cycles_started += 1
        self._status.last_attempt_at = _now_iso()
        try:
            devices, source = await self._obtain_devices()
            parsed = parse_devices(devices)
        except asyncio.CancelledError:
            raise
        except DeviceDocumentError as exc:
            self._fail(f"Malformed device document: {exc}")
            return False
        except Exception as exc:
            self._fail(f"{type(exc).__name__}: {exc}")
            return False

        if not self._publisher.update_devices(parsed):
            self._status.cycles_failed += 1
            self._status.last_error = "Publishing metrics failed"
            return False

        self._status.cycles_succeeded += 1
        self._status.last_success_at = _now_iso()
        self._status.last_error = None
        self._status.last_source = source
        self._status.device_count = len(parsed)
        return True

    async def _obtain_devices(self) -> tuple[List[Any], DataSource]:
        cached = self._cache.load(self._update_interval)
        if cached is not None:
            return cached, "cache"

        LOGGER.info("Fetching fresh data from Daikin Cloud...")
        devices = await self._device_source()
        self._cache.save(devices, self._update_interval)
        return devices, "upstream"

    def _fail(self, message: str) -> None:
        self._status.cycles_failed += 1
        self._status.last_error = message
        self._publisher.record_failure()
        LOGGER.error("Update cycle failed: %s", message)

    async def _loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time()
        while self._running:
            await self.run_cycle()
            next_run += self._update_interval
            delay = next_run - loop.time()
            if delay < 0:
                # Cycle overran the interval; realign instead of bursting.
                next_run = loop.time() + self._update_interval
                delay = float(self._update_interval)
            await asyncio.sleep(delay)


__all__ = ["DevicePoller", "DeviceSource", "PollerStatus"]
