"""
In-process retry queue for failed print dispatches.

Failed requests are appended here and replayed on a fixed interval. Entries
live only as long as the process; the scheduler's persisted job retry is the
durable tier behind this one.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable, Deque, Optional

from log_config import EventLogger, get_logger
from models import utcnow

if TYPE_CHECKING:
    from config import DispatchConfig
    from printer_client import DispatchResult, PrintJobRequest

logger = get_logger("retry_queue")
events = EventLogger("retry_queue.events")

Sender = Callable[["PrintJobRequest"], Awaitable["DispatchResult"]]


def is_duplicate_error(error: Optional[str]) -> bool:
    """True when the backend reports it already holds the job"""
    if not error:
        return False
    text = error.lower()
    return "duplicate" in text or "already" in text


@dataclass
class RetryEntry:
    request: "PrintJobRequest"
    enqueued_at: datetime
    attempts: int = 0


@dataclass
class DrainReport:
    attempted: int = 0
    delivered: int = 0
    dropped_duplicates: int = 0
    requeued: int = 0
    skipped: bool = False


@dataclass
class RetryQueue:
    """Append-only queue drained by a single-flight background loop"""

    interval_seconds: float = 30.0
    spacing_seconds: float = 1.0
    max_size: int = 1000
    sender: Optional[Sender] = None
    duplicate_predicate: Callable[[Optional[str]], bool] = is_duplicate_error
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    clock: Callable[[], datetime] = utcnow

    _entries: Deque[RetryEntry] = field(default_factory=deque, init=False, repr=False)
    _draining: bool = field(default=False, init=False, repr=False)
    _task: Optional[asyncio.Task] = field(default=None, init=False, repr=False)

    @classmethod
    def from_config(cls, config: "DispatchConfig", **kwargs) -> "RetryQueue":
        return cls(
            interval_seconds=config.retry_interval_seconds,
            spacing_seconds=config.retry_spacing_seconds,
            max_size=config.retry_queue_max_size,
            **kwargs,
        )

    def attach(self, sender: Sender) -> None:
        self.sender = sender

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def is_draining(self) -> bool:
        return self._draining

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def enqueue(self, request: "PrintJobRequest") -> RetryEntry:
        entry = RetryEntry(request=request, enqueued_at=self.clock())
        events.log_event('retry_enqueued', {
            'order_id': request.order_id,
            'printer_index': request.printer_index
        })
        self._append(entry)
        return entry

    def _append(self, entry: RetryEntry) -> None:
        self._entries.append(entry)
        if self.max_size and len(self._entries) > self.max_size:
            evicted = self._entries.popleft()
            events.log_event('retry_evicted', {
                'order_id': evicted.request.order_id,
                'enqueued_at': evicted.enqueued_at,
                'attempts': evicted.attempts,
                'max_size': self.max_size
            }, level='warning')
        logger.info(f"📋 Added print job to retry queue (Total: {len(self._entries)})")

    def status(self) -> dict:
        return {
            "total": len(self._entries),
            "draining": self._draining,
            "jobs": [
                {
                    "order_id": entry.request.order_id,
                    "enqueued_at": entry.enqueued_at.isoformat(),
                    "attempts": entry.attempts,
                }
                for entry in self._entries
            ],
        }

    async def drain(self) -> DrainReport:
        """Replay every queued request once, sequentially"""
        if self._draining:
            return DrainReport(skipped=True)
        if not self._entries:
            return DrainReport()
        if self.sender is None:
            logger.warning("Retry queue has no sender attached; skipping drain")
            return DrainReport(skipped=True)

        self._draining = True
        report = DrainReport()
        # failures recorded while this batch runs land in the fresh deque
        batch = list(self._entries)
        self._entries = deque()
        unsettled = 0
        try:
            logger.info(f"🔄 Processing retry queue ({len(batch)} jobs)...")

            for position, entry in enumerate(batch):
                unsettled = position
                if position:
                    await self.sleep(self.spacing_seconds)

                entry.attempts += 1
                report.attempted += 1
                try:
                    result = await self.sender(entry.request)
                except Exception as e:
                    logger.error(f"Error processing retry queue job: {e}")
                    self._append(entry)
                    report.requeued += 1
                    continue

                if result.success:
                    report.delivered += 1
                elif self.duplicate_predicate(result.error):
                    events.log_event('retry_dropped_duplicate', {
                        'order_id': entry.request.order_id,
                        'error': result.error,
                        'attempts': entry.attempts
                    })
                    report.dropped_duplicates += 1
                else:
                    self._append(entry)
                    report.requeued += 1
            unsettled = len(batch)
        finally:
            if unsettled < len(batch):
                # interrupted (task cancelled): keep what was not settled
                self._entries = deque(batch[unsettled:]) + self._entries
                logger.warning(f"Retry queue drain interrupted, kept {len(batch) - unsettled} job(s)")
            self._draining = False

        return report

    def start(self) -> None:
        """Start the periodic drain loop on the running event loop"""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"🔄 Retry queue processor started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("⏹️ Retry queue processor stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.drain()
            except Exception as e:
                logger.error(f"Retry queue drain failed: {e}")
