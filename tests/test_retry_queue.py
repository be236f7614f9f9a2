import asyncio

import pytest

from printer_client import DispatchResult, FailureKind, PrintJobRequest
from retry_queue import RetryQueue, is_duplicate_error


def make_request(order_id="ORD-1", printer_index=1):
    return PrintJobRequest(
        file_url="https://files.example.com/doc.pdf",
        printing_options={"pageSize": "A4", "color": "bw", "sided": "single", "copies": 1},
        printer_index=printer_index,
        order_id=order_id,
    )


async def no_sleep(seconds):
    return None


def failing_sender(error):
    calls = []

    async def _send(request):
        calls.append(request.order_id)
        return DispatchResult(success=False, error=error, failure_kind=FailureKind.REJECTED)

    _send.calls = calls
    return _send


@pytest.mark.parametrize("error, expected", [
    ("Duplicate order", True),
    ("Job already queued", True),
    ("ALREADY PRINTED", True),
    ("queue full", False),
    ("", False),
    (None, False),
])
def test_is_duplicate_error(error, expected):
    assert is_duplicate_error(error) is expected


def test_duplicate_entry_dropped_after_one_cycle():
    async def scenario():
        sender = failing_sender("duplicate job")
        queue = RetryQueue(sender=sender, sleep=no_sleep)
        queue.enqueue(make_request())

        first = await queue.drain()
        second = await queue.drain()
        return queue, sender, first, second

    queue, sender, first, second = asyncio.run(scenario())
    assert first.dropped_duplicates == 1
    assert len(queue) == 0
    assert second.attempted == 0
    assert sender.calls == ["ORD-1"]


def test_non_duplicate_failure_is_never_dropped():
    async def scenario():
        sender = failing_sender("queue full")
        queue = RetryQueue(sender=sender, sleep=no_sleep)
        queue.enqueue(make_request())
        for _ in range(5):
            await queue.drain()
        return queue, sender

    queue, sender = asyncio.run(scenario())
    assert len(queue) == 1
    assert len(sender.calls) == 5
    assert queue.status()["jobs"][0]["attempts"] == 5


def test_delivered_entries_leave_the_queue():
    async def scenario():
        async def sender(request):
            return DispatchResult(success=True, job_id="JOB-1")

        queue = RetryQueue(sender=sender, sleep=no_sleep)
        queue.enqueue(make_request("ORD-1"))
        queue.enqueue(make_request("ORD-2"))
        return queue, await queue.drain()

    queue, report = asyncio.run(scenario())
    assert report.delivered == 2
    assert len(queue) == 0


def test_sender_exception_requeues_entry():
    async def scenario():
        async def sender(request):
            raise RuntimeError("socket closed")

        queue = RetryQueue(sender=sender, sleep=no_sleep)
        queue.enqueue(make_request())
        return queue, await queue.drain()

    queue, report = asyncio.run(scenario())
    assert report.requeued == 1
    assert len(queue) == 1


def test_entries_are_spaced_within_a_drain():
    sleeps = []

    async def record_sleep(seconds):
        sleeps.append(seconds)

    async def scenario():
        queue = RetryQueue(sender=failing_sender("timeout"), spacing_seconds=1.5, sleep=record_sleep)
        for n in range(3):
            queue.enqueue(make_request(f"ORD-{n}"))
        await queue.drain()

    asyncio.run(scenario())
    assert sleeps == [1.5, 1.5]


def test_replay_order_is_fifo():
    async def scenario():
        sender = failing_sender("timeout")
        queue = RetryQueue(sender=sender, sleep=no_sleep)
        for n in range(3):
            queue.enqueue(make_request(f"ORD-{n}"))
        await queue.drain()
        return queue, sender

    queue, sender = asyncio.run(scenario())
    assert sender.calls == ["ORD-0", "ORD-1", "ORD-2"]
    assert [job["order_id"] for job in queue.status()["jobs"]] == ["ORD-0", "ORD-1", "ORD-2"]


def test_oldest_entry_evicted_when_full():
    queue = RetryQueue(max_size=2)
    for n in range(3):
        queue.enqueue(make_request(f"ORD-{n}"))

    assert len(queue) == 2
    assert [job["order_id"] for job in queue.status()["jobs"]] == ["ORD-1", "ORD-2"]


def test_zero_max_size_is_unbounded():
    queue = RetryQueue(max_size=0)
    for n in range(50):
        queue.enqueue(make_request(f"ORD-{n}"))
    assert len(queue) == 50


def test_overlapping_drain_is_skipped():
    async def scenario():
        queue = RetryQueue(sleep=no_sleep)
        nested = []

        async def sender(request):
            nested.append(await queue.drain())
            return DispatchResult(success=True)

        queue.attach(sender)
        queue.enqueue(make_request())
        report = await queue.drain()
        return queue, report, nested

    queue, report, nested = asyncio.run(scenario())
    assert nested[0].skipped is True
    assert report.delivered == 1
    assert not queue.is_draining


def test_failures_recorded_during_drain_are_kept():
    async def scenario():
        queue = RetryQueue(sleep=no_sleep)

        async def sender(request):
            queue.enqueue(make_request("ORD-new"))
            return DispatchResult(success=True)

        queue.attach(sender)
        queue.enqueue(make_request("ORD-old"))
        await queue.drain()
        return queue

    queue = asyncio.run(scenario())
    assert [job["order_id"] for job in queue.status()["jobs"]] == ["ORD-new"]


def test_drain_without_sender_is_skipped():
    async def scenario():
        queue = RetryQueue()
        queue.enqueue(make_request())
        return queue, await queue.drain()

    queue, report = asyncio.run(scenario())
    assert report.skipped
    assert len(queue) == 1


def test_cancelled_drain_keeps_entries_not_yet_replayed():
    async def scenario():
        queue = RetryQueue(sleep=no_sleep)
        reached = []

        async def sender(request):
            reached.append(request.order_id)
            if request.order_id == "ORD-1":
                return DispatchResult(success=False, error="timeout", failure_kind=FailureKind.TRANSPORT)
            await asyncio.Event().wait()

        queue.attach(sender)
        for n in range(1, 4):
            queue.enqueue(make_request(f"ORD-{n}"))

        task = asyncio.create_task(queue.drain())
        while len(reached) < 2:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return queue

    queue = asyncio.run(scenario())
    assert len(queue) == 3
    assert not queue.is_draining
    assert sorted(job["order_id"] for job in queue.status()["jobs"]) == ["ORD-1", "ORD-2", "ORD-3"]


def test_start_and_stop():
    async def scenario():
        queue = RetryQueue(interval_seconds=60, sender=failing_sender("x"))
        queue.start()
        running = queue.is_running
        await queue.stop()
        return running, queue.is_running

    assert asyncio.run(scenario()) == (True, False)
