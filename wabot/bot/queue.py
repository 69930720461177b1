"""Per-sender debounced buffer that coalesces bursts of chat messages.

A sender is *idle* when it has no buffered text and its last message is at
least one debounce window old. The first message from an idle sender is
flushed right away, so isolated messages get answered with no added delay.
Messages that follow inside the window are buffered and the flush timer
slides forward with each one. The buffer is flushed when the timer fires, or
at once when the burst (counting the message that went out on its own)
reaches ``max_messages``.

Flushing snapshots and clears the buffer synchronously, then hands the
combined text to ``on_flush`` in a background task. Anything arriving while
that task is running lands in a fresh buffer.

All methods must be called from the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from wabot.config import settings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

MESSAGE_SEPARATOR = "\n\n"


@dataclass
class SenderBuffer:
    """Messages buffered for one sender between flushes."""

    sender: str
    messages: list[str] = field(default_factory=list)
    last_activity_at: float = 0.0
    burst_count: int = 0
    timer: asyncio.TimerHandle | None = None

    @property
    def is_empty(self) -> bool:
        return not self.messages

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class AggregationQueue:
    """Debounces freeform messages per sender before generating a reply.

    Args:
        on_flush: Async callback receiving ``(sender, combined_prompt)``.
        window: Debounce window in seconds.
        max_messages: Buffer size that forces an immediate flush.
        reaper_interval: Seconds between sweeps of stale, empty entries.
        stale_after: Age in seconds after which an empty entry is dropped.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        on_flush: Callable[[str, str], Awaitable[None]],
        *,
        window: float | None = None,
        max_messages: int | None = None,
        reaper_interval: float | None = None,
        stale_after: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._on_flush = on_flush
        self._window = settings.aggregation_window_seconds if window is None else window
        self._max_messages = max_messages or settings.aggregation_max_messages
        self._reaper_interval = reaper_interval or settings.reaper_interval_seconds
        self._stale_after = settings.reaper_stale_seconds if stale_after is None else stale_after
        self._clock = clock
        self._buffers: dict[str, SenderBuffer] = {}
        self._inflight: set[asyncio.Task] = set()
        self._reaper: asyncio.Task | None = None
        self._closed = False

    # -- Intake ----------------------------------------------------------------

    def submit(self, sender: str, text: str) -> asyncio.Task | None:
        """Buffer a message. Returns the flush task if this message triggered one."""
        if self._closed:
            logger.warning("Queue stopped; dropping message from %s", sender)
            return None

        now = self._clock()
        buf = self._buffers.get(sender)
        if buf is None:
            buf = self._buffers[sender] = SenderBuffer(sender=sender)
            warm = False
        else:
            warm = not buf.is_empty or now - buf.last_activity_at < self._window

        buf.messages.append(text)
        buf.last_activity_at = now
        buf.cancel_timer()

        if not warm:
            buf.burst_count = 1
            return self.flush(sender)

        buf.burst_count += 1
        if buf.burst_count >= self._max_messages:
            logger.debug("Burst full for %s (%d messages)", sender, buf.burst_count)
            buf.burst_count = 0
            return self.flush(sender)

        loop = asyncio.get_running_loop()
        buf.timer = loop.call_later(self._window, self._on_timer, sender)
        logger.debug(
            "Buffered message %d for %s, flushing in %.1fs",
            len(buf.messages),
            sender,
            self._window,
        )
        return None

    def _on_timer(self, sender: str) -> None:
        buf = self._buffers.get(sender)
        if buf is not None:
            buf.timer = None
            buf.burst_count = 0
        self.flush(sender)

    # -- Flush -----------------------------------------------------------------

    def flush(self, sender: str) -> asyncio.Task | None:
        """Snapshot, clear and dispatch a sender's buffer.

        Returns the dispatch task, or None when there was nothing to flush.
        """
        buf = self._buffers.get(sender)
        if buf is None or buf.is_empty:
            return None

        buf.cancel_timer()
        messages = buf.messages
        buf.messages = []
        prompt = MESSAGE_SEPARATOR.join(messages)

        logger.info("Flushing %d message(s) from %s", len(messages), sender)
        task = asyncio.create_task(self._dispatch(sender, prompt), name=f"flush:{sender}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _dispatch(self, sender: str, prompt: str) -> None:
        try:
            await self._on_flush(sender, prompt)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Flush handler failed for %s", sender)

    async def drain(self) -> None:
        """Wait for every in-flight flush to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # -- Reaper ----------------------------------------------------------------

    def reap(self, now: float | None = None) -> int:
        """Drop empty, timer-free entries idle for longer than ``stale_after``.

        Returns the number of entries removed.
        """
        now = self._clock() if now is None else now
        stale = [
            sender
            for sender, buf in self._buffers.items()
            if buf.is_empty and buf.timer is None and now - buf.last_activity_at > self._stale_after
        ]
        for sender in stale:
            del self._buffers[sender]
        return len(stale)

    async def _reaper_loop(self) -> None:
        while True:
            await asyncio.sleep(self._reaper_interval)
            removed = self.reap()
            if removed:
                logger.info("Reaped %d idle sender buffer(s)", removed)

    # -- Lifecycle -------------------------------------------------------------

    def start(self) -> None:
        """Start the background reaper."""
        self._closed = False
        if self._reaper is None or self._reaper.done():
            self._reaper = asyncio.create_task(self._reaper_loop(), name="queue-reaper")
            logger.info(
                "Aggregation queue started (window=%.1fs, max=%d, reap every %.0fs)",
                self._window,
                self._max_messages,
                self._reaper_interval,
            )

    async def stop(self) -> None:
        """Stop intake, cancel timers, the reaper and in-flight flushes."""
        self._closed = True
        for buf in self._buffers.values():
            buf.cancel_timer()
        self._buffers.clear()

        tasks = list(self._inflight)
        if self._reaper is not None:
            tasks.append(self._reaper)
            self._reaper = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -- Inspection ------------------------------------------------------------

    def pending(self, sender: str) -> list[str]:
        """Messages currently buffered for a sender."""
        buf = self._buffers.get(sender)
        return list(buf.messages) if buf else []

    def has_timer(self, sender: str) -> bool:
        buf = self._buffers.get(sender)
        return buf is not None and buf.timer is not None

    def __len__(self) -> int:
        return len(self._buffers)

    def __contains__(self, sender: object) -> bool:
        return sender in self._buffers
