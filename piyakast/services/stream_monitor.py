"""Heartbeat-based stream liveness.

Broadcasters send a heartbeat every few seconds while they are on air. The
registry remembers the last one per stream; the monitor sweeps it on a timer
and flips the persisted ``is_live`` flag off for streams that went quiet,
including streams the database still believes are live but that this
process never heard from (e.g. after a restart).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

from .storage import Storage


logger = logging.getLogger(__name__)

# Seconds without a heartbeat before a stream is considered offline
HEARTBEAT_TIMEOUT = 30.0

# Seconds between sweeps
SWEEP_INTERVAL = 15.0

# Warn this many seconds before the timeout expires
GRACE_PERIOD = 10.0


@dataclass
class StreamHeartbeat:
    stream_id: str
    last_heartbeat_at: float
    viewer_count: int = 0
    missed_heartbeats: int = 0
    warning_sent: bool = False


class LivenessRegistry:
    """In-memory ``stream_id -> StreamHeartbeat`` map.

    Only touched from the event loop and never awaits, so no lock is needed.
    """

    def __init__(
        self,
        timeout: float = HEARTBEAT_TIMEOUT,
        grace_period: float = GRACE_PERIOD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._timeout = timeout
        self._grace_period = min(grace_period, timeout)
        self._clock = clock
        self._streams: Dict[str, StreamHeartbeat] = {}

    @property
    def timeout(self) -> float:
        return self._timeout

    def __contains__(self, stream_id: str) -> bool:
        return stream_id in self._streams

    def __len__(self) -> int:
        return len(self._streams)

    def get(self, stream_id: str) -> Optional[StreamHeartbeat]:
        return self._streams.get(stream_id)

    def record_heartbeat(self, stream_id: str, viewer_count: int = 0) -> None:
        previous = self._streams.get(stream_id)
        self._streams[stream_id] = StreamHeartbeat(
            stream_id=stream_id,
            last_heartbeat_at=self._clock(),
            viewer_count=viewer_count,
        )
        if previous is not None and previous.missed_heartbeats > 0:
            logger.info(
                "Stream %s heartbeat recovered (was missing %d beats)",
                stream_id,
                previous.missed_heartbeats,
            )

    def seconds_since(self, beat: StreamHeartbeat) -> float:
        return self._clock() - beat.last_heartbeat_at

    def remove_stream(self, stream_id: str) -> None:
        self._streams.pop(stream_id, None)

    def list_active_stream_ids(self) -> List[str]:
        now = self._clock()
        return [
            stream_id
            for stream_id, beat in self._streams.items()
            if now - beat.last_heartbeat_at < self._timeout
        ]

    def collect_stale(self) -> Tuple[List[StreamHeartbeat], List[StreamHeartbeat]]:
        """Pop timed-out entries and flag entries entering the grace window.

        Returns ``(stale, warned)``. An entry is warned at most once per
        silence; the next heartbeat resets it.
        """
        now = self._clock()
        warn_after = self._timeout - self._grace_period
        stale: List[StreamHeartbeat] = []
        warned: List[StreamHeartbeat] = []
        for stream_id, beat in list(self._streams.items()):
            elapsed = now - beat.last_heartbeat_at
            if elapsed >= self._timeout:
                del self._streams[stream_id]
                stale.append(beat)
            elif elapsed >= warn_after and not beat.warning_sent:
                beat.warning_sent = True
                beat.missed_heartbeats += 1
                warned.append(beat)
        return stale, warned


class StreamMonitor:
    """Keeps persisted ``is_live`` in step with heartbeat activity."""

    def __init__(self, registry: LivenessRegistry, storage: Storage, interval: float = SWEEP_INTERVAL):
        self.registry = registry
        self.storage = storage
        self._interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self) -> List[str]:
        """Run one reconciliation pass; returns the ids marked offline.

        Never raises. A failed status write leaves the row live and the
        registry entry gone, so the next pass picks it up again through the
        database cross-check.
        """
        deactivated: List[str] = []
        attempted: Set[str] = set()

        stale, warned = self.registry.collect_stale()
        for beat in warned:
            logger.warning(
                "Stream %s has not sent a heartbeat recently; marking offline in %.0fs",
                beat.stream_id,
                self.registry.timeout - self.registry.seconds_since(beat),
            )

        for beat in stale:
            attempted.add(beat.stream_id)
            if await self._deactivate(beat.stream_id, "no heartbeat for %.0fs" % self.registry.timeout):
                deactivated.append(beat.stream_id)

        try:
            live_streams = await self.storage.get_live_streams()
        except Exception:
            logger.exception("Could not load live streams; retrying on next sweep")
            return deactivated

        for stream in live_streams:
            if stream.id in attempted or stream.id in self.registry:
                continue
            attempted.add(stream.id)
            if await self._deactivate(stream.id, "no active heartbeat"):
                deactivated.append(stream.id)

        return deactivated

    async def _deactivate(self, stream_id: str, reason: str) -> bool:
        try:
            await self.storage.update_stream_status(stream_id, False)
        except Exception:
            logger.exception("Failed to mark stream %s offline; retrying on next sweep", stream_id)
            return False
        logger.info("Stream %s marked offline (%s)", stream_id, reason)
        return True

    async def start_stream(self, stream_id: str) -> None:
        # Register first so a sweep running during the write sees a heartbeat
        self.registry.record_heartbeat(stream_id, 0)
        try:
            await self.storage.update_stream_status(stream_id, True, 0)
        except Exception:
            self.registry.remove_stream(stream_id)
            raise

    async def end_stream(self, stream_id: str) -> None:
        self.registry.remove_stream(stream_id)
        await self.storage.update_stream_status(stream_id, False)

    def start(self) -> None:
        if self.is_running:
            return
        logger.info(
            "Starting stream monitoring (timeout=%.0fs, interval=%.0fs)",
            self.registry.timeout,
            self._interval,
        )
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stream monitoring stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.sweep()
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Stream sweep error")
                await asyncio.sleep(self._interval)
