"""
Printer endpoint selection

Maps a 1-based printer index onto the configured printer backend URLs and
parses the endpoint list from its environment representation.
"""

import json
import re
from typing import List, Optional

from log_config import get_logger

logger = get_logger("printer_selector")

_BRACKETED = re.compile(r"\[(.*?)\]")


def normalize_endpoint(url: str) -> str:
    """Strip whitespace and trailing slashes so paths can be appended safely"""
    return url.strip().rstrip("/")


def _split_urls(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def parse_endpoint_list(raw: Optional[str]) -> List[str]:
    """
    Parse the configured endpoint list.

    Accepted shapes, tried in this order:
    - a JSON array string: '["http://a", "http://b"]'
    - a bracket-wrapped value that is not valid JSON: '[http://a]'
    - a comma-separated list or a single bare URL: 'http://a, http://b'

    Never raises; unusable input yields an empty list.
    """
    if raw is None:
        return []

    trimmed = raw.strip()
    if not trimmed:
        return []

    urls: List[str] = []
    if trimmed.startswith("[") and trimmed.endswith("]"):
        try:
            parsed = json.loads(trimmed)
        except ValueError:
            match = _BRACKETED.match(trimmed)
            if match and match.group(1).strip():
                urls = _split_urls(match.group(1))
            else:
                logger.warning(f"Could not parse printer endpoint list: {trimmed!r}")
        else:
            if isinstance(parsed, list):
                urls = [str(item).strip() for item in parsed if str(item).strip()]
            else:
                logger.warning("Printer endpoint list is JSON but not an array")
    else:
        urls = _split_urls(trimmed)

    return [normalize_endpoint(url) for url in urls if normalize_endpoint(url)]


def resolve_endpoint(configured_endpoints: List[str], printer_index: int) -> Optional[str]:
    """
    Select the backend for a printer index by cycling through the endpoints.

    Indices past the configured count wrap around, so index i and i + N
    resolve to the same endpoint. Returns None when nothing is configured.
    """
    if not configured_endpoints:
        return None

    position = (printer_index - 1) % len(configured_endpoints)
    return normalize_endpoint(configured_endpoints[position])
