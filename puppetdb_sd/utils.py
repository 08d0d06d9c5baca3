"""prometheus-puppetdb-sd utility functions."""

from __future__ import annotations

import hashlib
import re

from .constants import TARGET_FILE_SUFFIX, TARGET_FILE_SUFFIXES
from .exceptions import ConfigError

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,  # U+00B5 micro sign
    "μs": 1e-6,  # U+03BC greek mu
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"^\+?(?:{_DURATION_PART})+$")
_DURATION_PART_RE = re.compile(_DURATION_PART)


def parse_duration(text: str) -> float:
    """Parse a Go-style duration string into seconds.

    Accepts a sequence of decimal numbers, each with a unit suffix, such as
    "60s", "1m30s", "1.5h" or "300ms". A bare "0" is also accepted.

    Args:
        text: Duration string

    Returns:
        Duration in seconds

    Raises:
        ConfigError: If the string is malformed or negative
    """
    value = text.strip()
    if value in ("0", "+0", "-0"):
        return 0.0
    if value.startswith("-"):
        raise ConfigError(f"time: negative duration {text!r} not allowed")
    if not _DURATION_RE.match(value):
        raise ConfigError(f"time: invalid duration {text!r}")

    return sum(
        float(number) * _DURATION_UNITS[unit]
        for number, unit in _DURATION_PART_RE.findall(value)
    )


def format_duration(seconds: float) -> str:
    """Format a duration in seconds for log output.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string like "300ms", "45s", "1m30s" or "1h05m00s"
    """
    if 0 < seconds < 1:
        return f"{round(seconds * 1000)}ms"

    total_seconds = int(seconds)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)

    if hours:
        return f"{hours}h{minutes:02d}m{secs:02d}s"
    if minutes:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"


def sha256_hex(data: bytes) -> str:
    """Return SHA256 hex digest of data."""
    return hashlib.sha256(data).hexdigest()


def target_file_name(exporter: str) -> str:
    """Return the target file name written for an exporter."""
    return f"{exporter}{TARGET_FILE_SUFFIX}"


def exporter_file_names(exporters: list[str]) -> set[str]:
    """Return every file name that belongs to one of the given exporters.

    Both the ".yml" and ".yaml" spellings are accepted so that a file
    placed by hand under either name is not removed.
    """
    return {f"{exporter}{suffix}" for exporter in exporters for suffix in TARGET_FILE_SUFFIXES}
