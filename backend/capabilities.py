"""
Printer capability matching.

A printer can service a job only if every check passes: page size, color,
duplex, file type and copy limit. Nothing here touches the database.
"""

from typing import Any, List, Mapping

from models import PrinterCapabilities


def _capabilities_of(printer) -> PrinterCapabilities:
    capabilities = getattr(printer, "capabilities", None)
    if isinstance(capabilities, PrinterCapabilities):
        return capabilities
    if isinstance(capabilities, Mapping):
        return PrinterCapabilities(
            supported_page_sizes=frozenset(capabilities.get("supported_page_sizes", ())),
            supports_color=bool(capabilities.get("supports_color", False)),
            supports_duplex=bool(capabilities.get("supports_duplex", False)),
            max_copies=int(capabilities.get("max_copies", 1)),
            supported_file_types=frozenset(capabilities.get("supported_file_types", ())),
        )
    return PrinterCapabilities()


def _options_of(job) -> Mapping[str, Any]:
    options = getattr(job, "printing_options", None) or {}
    if hasattr(options, "model_dump"):
        options = options.model_dump()
    return options


def capability_mismatches(printer, job, mixed_requires_color: bool = False) -> List[str]:
    """Return every reason the printer cannot take the job (empty list = match)"""
    caps = _capabilities_of(printer)
    options = _options_of(job)
    errors: List[str] = []

    page_size = options.get("page_size")
    if page_size not in caps.supported_page_sizes:
        supported = ", ".join(sorted(caps.supported_page_sizes)) or "none"
        errors.append(f"Page size {page_size} not supported. Supported sizes: {supported}")

    color = options.get("color")
    needs_color = color == "color" or (mixed_requires_color and color == "mixed")
    if needs_color and not caps.supports_color:
        errors.append(f"Job requires {color} printing but printer does not support color")

    if options.get("sided") == "double" and not caps.supports_duplex:
        errors.append("Job requires duplex printing but printer does not support duplex")

    file_type = getattr(job, "file_type", None)
    if file_type not in caps.supported_file_types:
        errors.append(f"File type {file_type} not supported")

    copies = options.get("copies") or 1
    if copies > caps.max_copies:
        errors.append(f"Job requires {copies} copies but printer maximum is {caps.max_copies}")

    return errors


def can_handle(printer, job, mixed_requires_color: bool = False) -> bool:
    return not capability_mismatches(printer, job, mixed_requires_color)
