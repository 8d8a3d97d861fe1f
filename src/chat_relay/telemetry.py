# telemetry.py -- Periodic synthetic telemetry broadcast
# One publish loop at a time, started by a Poll command.
# Runs as an asyncio background task until stopped.

from __future__ import annotations

import asyncio
import logging

from .broadcast import Broadcaster
from .protocol import SampleKind, TelemetrySample, encode_samples

log = logging.getLogger(__name__)


def build_samples(count: int) -> list[TelemetrySample]:
    """Synthesize one batch: Tag0..Tag{count-1}, value taken from the index."""
    return [TelemetrySample(f"Tag{i}", "", SampleKind.FLOAT, float(i)) for i in range(count)]


class TelemetryPublisher:
    """Owns the publishing state (Idle -> Publishing -> Idle).

    Every start() bumps a generation counter. A loop checks both the running
    state and its own generation at the top of each tick, so a loop that was
    stopped, or superseded by a stop()+start() within one interval, exits
    instead of carrying on as if it had been restarted.
    """

    def __init__(
        self, broadcaster: Broadcaster, interval: float = 0.5, sample_count: int = 100
    ) -> None:
        self.broadcaster = broadcaster
        self.interval = interval
        self.sample_count = sample_count
        self._running = False
        self._generation = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._batches_sent = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def batches_sent(self) -> int:
        return self._batches_sent

    def start(self) -> bool:
        """Start publishing. No-op while already running; returns True if a loop started."""
        if self._running:
            return False
        self._running = True
        self._generation += 1
        task = asyncio.create_task(self._run(self._generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    def stop(self) -> None:
        if self._running:
            log.info("Telemetry publisher stopping (generation %d)", self._generation)
        self._running = False

    async def aclose(self, timeout: float = 5.0) -> None:
        """Stop and wait for every loop to exit, cancelling stragglers."""
        self.stop()
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for t in pending:
            t.cancel()

    def _active(self, generation: int) -> bool:
        return self._running and generation == self._generation

    async def _run(self, generation: int) -> None:
        log.info(
            "Telemetry publisher started (generation %d, interval=%.2fs, %d samples)",
            generation,
            self.interval,
            self.sample_count,
        )
        while self._active(generation):
            payload = encode_samples(build_samples(self.sample_count))
            try:
                delivered = await self.broadcaster.broadcast(payload)
                self._batches_sent += 1
                log.debug("Telemetry batch delivered to %d session(s)", delivered)
            except Exception as e:
                log.warning("Telemetry publish error: %s", e)

            await asyncio.sleep(self.interval)
        log.info("Telemetry publisher loop exited (generation %d)", generation)
