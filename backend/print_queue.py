"""
Print Queue Scheduler
=====================
Polls pending print jobs, pairs them with idle eligible printers and drives
each job through pending -> printing -> completed | failed. Failed jobs are
put back to pending after a delay until their retry budget is spent.

The Printer rows (current job, queue length) are written only from here.
"""

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Set

from sqlalchemy import func, select

from capabilities import can_handle, capability_mismatches
from config import SchedulerConfig
from database import get_db_context
from errors import InvalidTransitionError, PrintExecutionError
from job_state import validate_transition
from log_config import EventLogger, get_logger
from models import Printer, PrinterStatusEnum, PrintJob, PrintJobStatusEnum, utcnow
from printer_client import PrintJobRequest
from retry_queue import is_duplicate_error

logger = get_logger("print_queue")
events = EventLogger("print_queue.events")

ASSIGNMENT_FAILED_MESSAGE = "Failed to assign to printer"
DEFAULT_MAX_RETRIES = 3

PrintProcedure = Callable[[PrintJob, Printer], Awaitable[None]]


@dataclass
class PrintQueueStatus:
    total_jobs: int
    pending_jobs: int
    printing_jobs: int
    completed_jobs: int
    failed_jobs: int
    cancelled_jobs: int
    available_printers: int
    busy_printers: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def has_retry_budget(job: PrintJob) -> bool:
    """
    Whether a failed job goes back to pending.

    retry_count is already incremented for the failure that put the job in
    failed, so a count up to max_retries means an earlier attempt failed and
    one more is allowed. Assignment failures are never retried.
    """
    max_retries = job.max_retries if job.max_retries is not None else DEFAULT_MAX_RETRIES
    if job.error_message == ASSIGNMENT_FAILED_MESSAGE:
        return False
    return (job.retry_count or 0) <= max_retries


def simulated_print_procedure(cap_seconds: float = 30.0,
                              sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> PrintProcedure:
    """Placeholder printing: wait for the job's estimated duration (capped)"""

    async def _print(job: PrintJob, printer: Printer) -> None:
        estimated_minutes = job.estimated_duration or 5
        await sleep(min(estimated_minutes * 60, cap_seconds))

    return _print


def request_from_job(job: PrintJob, printer: Optional[Printer] = None):
    """Build the dispatch request for a persisted job"""
    printer_index = job.printer_index or 1
    if printer is not None and printer.endpoint_index:
        printer_index = printer.endpoint_index

    return PrintJobRequest(
        file_url=job.file_url,
        file_name=job.file_name,
        file_type=job.file_type,
        printing_options=job.printing_options,
        printer_index=printer_index,
        order_id=job.order_id,
        customer_info={
            "name": job.customer_name,
            "email": job.customer_email,
            "phone": job.customer_phone,
        },
    )


def dispatch_print_procedure(client) -> PrintProcedure:
    """
    Print by sending the job to the printer API.

    The in-memory retry queue is bypassed: this job is tracked by id and the
    scheduler's own retry puts it back to pending.
    """

    async def _print(job: PrintJob, printer: Printer) -> None:
        result = await client.send(request_from_job(job, printer), enqueue_on_failure=False)
        if result.success:
            return
        if is_duplicate_error(result.error):
            # the backend already holds this job
            logger.info(f"Printer API already has {job.order_number}: {result.error}")
            return
        raise PrintExecutionError(result.error or result.message)

    return _print


class PrintQueueManager:
    """Polling scheduler with an explicit start()/stop() lifecycle"""

    def __init__(self, config: Optional[SchedulerConfig] = None, session_factory=None,
                 print_procedure: Optional[PrintProcedure] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 clock: Callable[[], datetime] = utcnow):
        self.config = config or SchedulerConfig()
        self.session_factory = session_factory
        self.print_procedure = print_procedure or simulated_print_procedure(
            self.config.simulated_print_cap_seconds, sleep
        )
        self.sleep = sleep
        self.clock = clock

        self._loop_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        # live print and retry-reset tasks per job id
        self._in_flight: Dict[str, Set[asyncio.Task]] = {}
        self._tick_in_progress = False

    # ==================== Lifecycle ====================

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self, interval_seconds: Optional[float] = None) -> bool:
        if self.is_running:
            logger.info("Print queue processor is already running")
            return False

        interval = interval_seconds or self.config.poll_interval_seconds
        recovered = self.recover_interrupted_jobs()
        if recovered:
            logger.info(f"✅ Recovered {recovered} interrupted print job(s)")

        self._loop_task = asyncio.get_running_loop().create_task(self._run(interval))
        logger.info(f"🔄 Starting print queue processor (every {interval}s)...")
        return True

    async def stop(self) -> None:
        task, self._loop_task = self._loop_task, None
        pending = [t for t in ([task] if task else []) + list(self._background) if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background.clear()
        self._in_flight.clear()
        logger.info("⏹️ Print queue processor stopped")

    async def wait_for_background(self) -> None:
        """Wait until every print and retry-reset task has finished"""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _spawn(self, job_id: str, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        self._in_flight.setdefault(job_id, set()).add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(lambda done: self._forget(job_id, done))
        return task

    def _forget(self, job_id: str, task: asyncio.Task) -> None:
        tasks = self._in_flight.get(job_id)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            del self._in_flight[job_id]

    async def _run(self, interval: float) -> None:
        while True:
            await self.process_queue()
            await asyncio.sleep(interval)

    def _session(self):
        return get_db_context(self.session_factory)

    # ==================== Polling ====================

    async def process_queue(self) -> int:
        """One scheduling tick; returns the number of jobs assigned"""
        if self._tick_in_progress:
            return 0

        self._tick_in_progress = True
        try:
            return await self._process_queue()
        except Exception as e:
            logger.error(f"Error in process_queue: {e}")
            return 0
        finally:
            self._tick_in_progress = False

    async def _process_queue(self) -> int:
        with self._session() as db:
            pending_jobs = db.execute(
                select(PrintJob)
                .where(PrintJob.status == PrintJobStatusEnum.PENDING)
                .order_by(PrintJob.priority.desc(), PrintJob.created_at.asc())
                .limit(self.config.batch_size)
            ).scalars().all()

            if not pending_jobs:
                return 0

            available_printers = db.execute(
                select(Printer)
                .where(
                    Printer.is_active.is_(True),
                    Printer.auto_print_enabled.is_(True),
                    Printer.status == PrinterStatusEnum.ONLINE,
                    Printer.current_job_id.is_(None),
                )
                .order_by(Printer.name.asc())
            ).scalars().all()

        if not available_printers:
            logger.info("⚠️ No available printers for auto-printing")
            return 0

        assigned = 0
        for job, printer in self._pair(list(pending_jobs), list(available_printers)):
            if await self.assign_job_to_printer(job, printer):
                assigned += 1
        return assigned

    def _pair(self, jobs: List[PrintJob], printers: List[Printer]):
        mixed = self.config.mixed_requires_color

        if not self.config.reassign_within_tick:
            for job, printer in zip(jobs, printers):
                if can_handle(printer, job, mixed):
                    yield job, printer
                else:
                    logger.info(
                        f"Skipping {job.order_number} on {printer.name}: "
                        f"{'; '.join(capability_mismatches(printer, job, mixed))}"
                    )
            return

        idle = list(printers)
        for job in jobs:
            if not idle:
                return
            match = next((p for p in idle if can_handle(p, job, mixed)), None)
            if match is None:
                logger.info(f"No idle printer can handle {job.order_number} this tick")
                continue
            idle.remove(match)
            yield job, match

    # ==================== Assignment ====================

    async def assign_job_to_printer(self, job: PrintJob, printer: Printer) -> bool:
        now = self.clock()
        try:
            with self._session() as db:
                db_job = db.get(PrintJob, job.id)
                db_printer = db.get(Printer, printer.id)
                if db_job is None or db_printer is None:
                    return False
                if db_job.status != PrintJobStatusEnum.PENDING or db_printer.current_job_id is not None:
                    # changed since the tick read it
                    return False

                validate_transition(db_job.status, PrintJobStatusEnum.PRINTING)
                db_job.status = PrintJobStatusEnum.PRINTING
                db_job.printer_id = db_printer.id
                db_job.printer_name = db_printer.name
                db_job.started_at = now

                db_printer.current_job_id = db_job.id
                db_printer.last_used = now
                db_printer.queue_length = (db_printer.queue_length or 0) + 1
        except Exception as e:
            logger.error(f"Error assigning job to printer: {e}")
            self._mark_assignment_failed(job.id)
            return False

        events.log_event('job_assigned', {
            'job_id': db_job.id,
            'order_number': db_job.order_number,
            'printer': db_printer.name
        })
        logger.info(f"🖨️ Assigned job {db_job.order_number} to printer {db_printer.name}")

        self._spawn(db_job.id, self._start_printing(db_job, db_printer))
        return True

    def _mark_assignment_failed(self, job_id: str) -> None:
        try:
            with self._session() as db:
                db_job = db.get(PrintJob, job_id)
                if db_job is None:
                    return
                db_job.status = PrintJobStatusEnum.FAILED
                db_job.error_message = ASSIGNMENT_FAILED_MESSAGE
        except Exception as e:
            logger.error(f"Could not mark job {job_id} as failed: {e}")

    async def _start_printing(self, job: PrintJob, printer: Printer) -> None:
        logger.info(f"🖨️ Starting print job: {job.order_number} on {printer.name}")
        try:
            await self.print_procedure(job, printer)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self.fail_print_job(job.id, str(e) or e.__class__.__name__)
            return
        await self.complete_print_job(job.id)

    # ==================== Completion / Failure ====================

    async def complete_print_job(self, job_id: str) -> bool:
        now = self.clock()
        try:
            with self._session() as db:
                job = db.get(PrintJob, job_id)
                if job is None:
                    return False
                validate_transition(job.status, PrintJobStatusEnum.COMPLETED)

                job.status = PrintJobStatusEnum.COMPLETED
                job.completed_at = now
                job.actual_duration = (
                    round((now - job.started_at).total_seconds() / 60) if job.started_at else 0
                )

                printer = db.get(Printer, job.printer_id) if job.printer_id else None
                if printer is not None:
                    self._release(printer, job.id)
                    printer.total_pages_printed = (
                        (printer.total_pages_printed or 0) + job.page_count * job.copies
                    )
                order_number = job.order_number
        except InvalidTransitionError as e:
            logger.warning(f"Not completing job {job_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Error completing print job: {e}")
            return False

        events.log_event('job_completed', {'job_id': job_id, 'order_number': order_number})
        logger.info(f"✅ Print job completed: {order_number}")
        return True

    async def fail_print_job(self, job_id: str, error_message: str) -> bool:
        try:
            with self._session() as db:
                job = db.get(PrintJob, job_id)
                if job is None:
                    return False
                validate_transition(job.status, PrintJobStatusEnum.FAILED)

                job.status = PrintJobStatusEnum.FAILED
                job.error_message = error_message
                job.retry_count = (job.retry_count or 0) + 1

                printer = db.get(Printer, job.printer_id) if job.printer_id else None
                if printer is not None:
                    self._release(printer, job.id)

                order_number = job.order_number
                retry_count = job.retry_count
                max_retries = job.max_retries if job.max_retries is not None else DEFAULT_MAX_RETRIES
                will_retry = has_retry_budget(job)
        except InvalidTransitionError as e:
            logger.warning(f"Not failing job {job_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Error failing print job: {e}")
            return False

        events.log_event('job_failed', {
            'job_id': job_id,
            'order_number': order_number,
            'error': error_message,
            'retry_count': retry_count,
            'max_retries': max_retries,
            'will_retry': will_retry
        }, level='error')
        logger.info(f"❌ Print job failed: {order_number} - {error_message}")

        if will_retry:
            self._spawn(job_id, self._reset_after_delay(job_id))
        return True

    @staticmethod
    def _release(printer: Printer, job_id: str) -> None:
        if printer.current_job_id == job_id:
            printer.current_job_id = None
        printer.queue_length = max(0, (printer.queue_length or 0) - 1)

    async def _reset_after_delay(self, job_id: str) -> None:
        await self.sleep(self.config.retry_delay_seconds)
        self.reset_job_for_retry(job_id)

    def reset_job_for_retry(self, job_id: str) -> bool:
        try:
            with self._session() as db:
                job = db.get(PrintJob, job_id)
                # cancelled or otherwise moved on while waiting
                if job is None or job.status != PrintJobStatusEnum.FAILED:
                    return False
                validate_transition(job.status, PrintJobStatusEnum.PENDING)
                self._clear_assignment(job)
                order_number = job.order_number
        except Exception as e:
            logger.error(f"Error resetting print job {job_id}: {e}")
            return False

        events.log_event('job_reset', {'job_id': job_id, 'order_number': order_number})
        logger.info(f"🔄 Retrying print job: {order_number}")
        return True

    @staticmethod
    def _clear_assignment(job: PrintJob) -> None:
        job.status = PrintJobStatusEnum.PENDING
        job.printer_id = None
        job.printer_name = None
        job.started_at = None
        job.error_message = None

    # ==================== Recovery / Cancellation ====================

    def recover_interrupted_jobs(self) -> int:
        """
        Put jobs orphaned by a previous run back to pending.

        Covers jobs left printing (their printers are freed) and failed jobs
        whose delayed reset was lost with the task that held it. Jobs this
        manager still has live tasks for are left alone.
        """
        try:
            with self._session() as db:
                orphaned = db.execute(
                    select(PrintJob).where(
                        PrintJob.status.in_([PrintJobStatusEnum.PRINTING, PrintJobStatusEnum.FAILED])
                    )
                ).scalars().all()

                recovered = 0
                for job in orphaned:
                    if job.id in self._in_flight:
                        continue
                    if job.status == PrintJobStatusEnum.FAILED:
                        if not has_retry_budget(job):
                            continue
                    else:
                        printer = db.get(Printer, job.printer_id) if job.printer_id else None
                        if printer is not None:
                            self._release(printer, job.id)
                    self._clear_assignment(job)
                    recovered += 1
                    logger.info(f"🔄 Recovered interrupted job: {job.order_number}")
                return recovered
        except Exception as e:
            logger.error(f"❌ Error in crash recovery: {e}")
            return 0

    def cancel_job(self, job_id: str) -> bool:
        """External cancellation of a pending or printing job"""
        with self._session() as db:
            job = db.get(PrintJob, job_id)
            if job is None:
                return False
            validate_transition(job.status, PrintJobStatusEnum.CANCELLED)

            if job.status == PrintJobStatusEnum.PRINTING and job.printer_id:
                printer = db.get(Printer, job.printer_id)
                if printer is not None:
                    self._release(printer, job.id)

            job.status = PrintJobStatusEnum.CANCELLED
            logger.info(f"🚫 Print job cancelled: {job.order_number}")
            return True

    # ==================== Status ====================

    def get_queue_status(self) -> PrintQueueStatus:
        with self._session() as db:
            counts = dict(
                db.execute(
                    select(PrintJob.status, func.count()).group_by(PrintJob.status)
                ).all()
            )

            available = db.execute(
                select(func.count()).select_from(Printer).where(
                    Printer.is_active.is_(True),
                    Printer.auto_print_enabled.is_(True),
                    Printer.status == PrinterStatusEnum.ONLINE,
                    Printer.current_job_id.is_(None),
                )
            ).scalar_one()

            busy = db.execute(
                select(func.count()).select_from(Printer).where(
                    Printer.is_active.is_(True),
                    Printer.status == PrinterStatusEnum.ONLINE,
                    Printer.current_job_id.is_not(None),
                )
            ).scalar_one()

        return PrintQueueStatus(
            total_jobs=sum(counts.values()),
            pending_jobs=counts.get(PrintJobStatusEnum.PENDING, 0),
            printing_jobs=counts.get(PrintJobStatusEnum.PRINTING, 0),
            completed_jobs=counts.get(PrintJobStatusEnum.COMPLETED, 0),
            failed_jobs=counts.get(PrintJobStatusEnum.FAILED, 0),
            cancelled_jobs=counts.get(PrintJobStatusEnum.CANCELLED, 0),
            available_printers=available,
            busy_printers=busy,
        )
