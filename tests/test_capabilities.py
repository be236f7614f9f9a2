from types import SimpleNamespace

import pytest
from hypothesis import given, strategies as st, settings, HealthCheck

from capabilities import can_handle, capability_mismatches
from models import Printer, PrinterCapabilities


def make_printer(**overrides):
    values = dict(
        supported_page_sizes=frozenset({"A4", "A3"}),
        supports_color=True,
        supports_duplex=True,
        max_copies=10,
        supported_file_types=frozenset({"application/pdf"}),
    )
    values.update(overrides)
    return SimpleNamespace(capabilities=PrinterCapabilities(**values))


def make_job(file_type="application/pdf", **options):
    printing_options = dict(page_size="A4", color="bw", sided="single", copies=1)
    printing_options.update(options)
    return SimpleNamespace(printing_options=printing_options, file_type=file_type)


def test_a4_only_printer_rejects_a3_job():
    printer = make_printer(supported_page_sizes=frozenset({"A4"}))
    job = make_job(page_size="A3")
    assert can_handle(printer, job) is False
    assert capability_mismatches(printer, job) == [
        "Page size A3 not supported. Supported sizes: A4"
    ]


def test_fully_capable_printer_accepts():
    assert can_handle(make_printer(), make_job(color="color", sided="double", copies=10))


@pytest.mark.parametrize("printer_overrides, job_kwargs", [
    ({"supported_page_sizes": frozenset({"A4"})}, {"page_size": "A3"}),
    ({"supports_color": False}, {"color": "color"}),
    ({"supports_duplex": False}, {"sided": "double"}),
    ({"supported_file_types": frozenset({"image/png"})}, {}),
    ({"max_copies": 2}, {"copies": 3}),
])
def test_any_single_failing_check_rejects(printer_overrides, job_kwargs):
    printer = make_printer(**printer_overrides)
    job = make_job(**job_kwargs)
    assert len(capability_mismatches(printer, job)) == 1
    assert can_handle(printer, job) is False


def test_every_failing_check_is_reported():
    printer = make_printer(
        supported_page_sizes=frozenset({"A4"}),
        supports_color=False,
        supports_duplex=False,
        max_copies=1,
        supported_file_types=frozenset(),
    )
    job = make_job(page_size="A3", color="color", sided="double", copies=5)
    assert len(capability_mismatches(printer, job)) == 5


def test_mixed_color_passes_through_by_default():
    printer = make_printer(supports_color=False)
    job = make_job(color="mixed")
    assert can_handle(printer, job)
    assert not can_handle(printer, job, mixed_requires_color=True)


def test_printer_without_capabilities_rejects_everything():
    assert not can_handle(SimpleNamespace(capabilities=None), make_job())


def test_mapping_capabilities_are_accepted():
    printer = SimpleNamespace(capabilities={
        "supported_page_sizes": ["A4"],
        "supports_color": False,
        "supports_duplex": False,
        "max_copies": 5,
        "supported_file_types": ["application/pdf"],
    })
    assert can_handle(printer, make_job())
    assert not can_handle(printer, make_job(color="color"))


def test_orm_printer_capabilities():
    printer = Printer(
        name="p",
        supported_page_sizes=["A4"],
        supports_color=False,
        supports_duplex=True,
        max_copies=3,
        supported_file_types=["application/pdf"],
    )
    assert can_handle(printer, make_job(sided="double", copies=3))
    assert not can_handle(printer, make_job(copies=4))


PAGE_SIZES = ["A4", "A3", "Letter"]
FILE_TYPES = ["application/pdf", "image/png", "image/jpeg"]


@given(
    page_sizes=st.frozensets(st.sampled_from(PAGE_SIZES)),
    supports_color=st.booleans(),
    supports_duplex=st.booleans(),
    max_copies=st.integers(min_value=1, max_value=50),
    file_types=st.frozensets(st.sampled_from(FILE_TYPES)),
    page_size=st.sampled_from(PAGE_SIZES),
    color=st.sampled_from(["color", "bw", "mixed"]),
    sided=st.sampled_from(["single", "double"]),
    copies=st.integers(min_value=1, max_value=60),
    file_type=st.sampled_from(FILE_TYPES),
    mixed_requires_color=st.booleans(),
)
@settings(max_examples=300, suppress_health_check=[HealthCheck.too_slow])
def test_can_handle_is_conjunction_of_checks(page_sizes, supports_color, supports_duplex, max_copies,
                                             file_types, page_size, color, sided, copies, file_type,
                                             mixed_requires_color):
    printer = make_printer(
        supported_page_sizes=page_sizes,
        supports_color=supports_color,
        supports_duplex=supports_duplex,
        max_copies=max_copies,
        supported_file_types=file_types,
    )
    job = make_job(file_type=file_type, page_size=page_size, color=color, sided=sided, copies=copies)

    needs_color = color == "color" or (mixed_requires_color and color == "mixed")
    checks = [
        page_size in page_sizes,
        supports_color or not needs_color,
        supports_duplex or sided != "double",
        file_type in file_types,
        copies <= max_copies,
    ]

    assert can_handle(printer, job, mixed_requires_color) == all(checks)
    assert len(capability_mismatches(printer, job, mixed_requires_color)) == checks.count(False)
