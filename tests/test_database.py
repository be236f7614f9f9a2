from datetime import datetime, timedelta, timezone

import pytest

from database import get_db_context
from init_database import SAMPLE_PRINTERS, seed_printers
from models import JobPriority, Printer, PrinterStatusEnum, utcnow


def test_context_commits(session_factory):
    with get_db_context(session_factory) as db:
        db.add(Printer(name="p1"))

    with session_factory() as db:
        printer = db.query(Printer).one()
        assert printer.status == PrinterStatusEnum.OFFLINE
        assert printer.is_active is True
        assert printer.queue_length == 0


def test_context_rolls_back_on_error(session_factory):
    with pytest.raises(RuntimeError):
        with get_db_context(session_factory) as db:
            db.add(Printer(name="p1"))
            db.flush()
            raise RuntimeError("boom")

    with session_factory() as db:
        assert db.query(Printer).count() == 0


def test_seed_printers_is_idempotent(session_factory):
    with get_db_context(session_factory) as db:
        assert seed_printers(db) == len(SAMPLE_PRINTERS)
    with get_db_context(session_factory) as db:
        assert seed_printers(db) == 0
        assert all(p.status == PrinterStatusEnum.ONLINE for p in db.query(Printer))


def test_priority_names():
    assert JobPriority.from_name("urgent") == JobPriority.URGENT
    assert JobPriority.HIGH > JobPriority.NORMAL


def test_utcnow_is_naive_utc(session_factory):
    now = utcnow()
    assert now.tzinfo is None
    assert abs(datetime.now(timezone.utc).replace(tzinfo=None) - now) < timedelta(seconds=5)

    with get_db_context(session_factory) as db:
        db.add(Printer(name="p1"))
    with session_factory() as db:
        created = db.query(Printer).one().created_at
    assert created.tzinfo is None
    assert abs(created - now) < timedelta(seconds=5)
