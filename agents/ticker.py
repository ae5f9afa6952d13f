"""
Ticker Agent — one-second clock for live durations.

Dispatches Tick() to the store every interval_s. The schedule is anchored to
the loop clock so sleep overshoot does not accumulate; if the loop stalls,
missed ticks are replayed (up to MAX_CATCH_UP) so durations stay close to wall
time.
"""

from __future__ import annotations
import asyncio
import logging

from live.store import LiveStore
from models.events import Tick

log = logging.getLogger(__name__)


class TickerAgent:
    MAX_CATCH_UP = 5

    def __init__(self, store: LiveStore, interval_s: float = 1.0) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self._store = store
        self._interval_s = interval_s
        self.ticks = 0

    async def run(self) -> None:
        log.info("Ticker agent running (interval=%.2fs)", self._interval_s)
        loop = asyncio.get_running_loop()
        next_at = loop.time() + self._interval_s
        while True:
            try:
                await asyncio.sleep(max(0.0, next_at - loop.time()))
                behind = int((loop.time() - next_at) // self._interval_s)
                if behind > self.MAX_CATCH_UP:
                    log.warning("Ticker fell %d ticks behind — skipping ahead", behind)
                    next_at = loop.time()
                    behind = 0
                for _ in range(behind + 1):
                    self._store.dispatch(Tick())
                    self.ticks += 1
                next_at += self._interval_s * (behind + 1)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                log.exception("Ticker unexpected error: %s", exc)
                next_at = loop.time() + self._interval_s
