import pytest

from database import Base, make_engine, make_session_factory
from models import Printer, PrinterStatusEnum, PrintJob, PrintJobStatusEnum
import models  # noqa: F401


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield make_session_factory(engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def add_printer(session_factory):
    def _add(name="printer-1", **overrides):
        values = dict(
            name=name,
            status=PrinterStatusEnum.ONLINE,
            is_active=True,
            auto_print_enabled=True,
            supported_page_sizes=["A4", "A3"],
            supports_color=True,
            supports_duplex=True,
            max_copies=10,
            supported_file_types=["application/pdf"],
            queue_length=0,
            total_pages_printed=0,
        )
        values.update(overrides)
        with session_factory() as db:
            printer = Printer(**values)
            db.add(printer)
            db.commit()
            return printer.id
    return _add


@pytest.fixture
def add_job(session_factory):
    counter = {"n": 0}

    def _add(page_size="A4", color="bw", sided="single", copies=1, page_count=1, **overrides):
        counter["n"] += 1
        values = dict(
            order_id=f"ORD-{counter['n']}",
            order_number=f"PJ-{counter['n']:04d}",
            file_url=f"https://files.example.com/{counter['n']}.pdf",
            file_name=f"{counter['n']}.pdf",
            file_type="application/pdf",
            printing_options={
                "page_size": page_size,
                "color": color,
                "sided": sided,
                "copies": copies,
                "page_count": page_count,
            },
            status=PrintJobStatusEnum.PENDING,
            retry_count=0,
            max_retries=3,
            estimated_duration=1,
        )
        values.update(overrides)
        with session_factory() as db:
            job = PrintJob(**values)
            db.add(job)
            db.commit()
            return job.id
    return _add


@pytest.fixture
def load(session_factory):
    def _load(model, pk):
        with session_factory() as db:
            return db.get(model, pk)
    return _load
