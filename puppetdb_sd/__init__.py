"""
prometheus-puppetdb-sd - Prometheus file-based service discovery from PuppetDB.

Design goals:
- One target file per exporter, rewritten in full every cycle.
- The targets directory always mirrors the current role mapping.
- A failing PuppetDB query only affects its own exporter, and only until the next cycle.
"""

from __future__ import annotations

from .cli import main
from .exceptions import PuppetDBSDError, QueryError, WriteError
from .loop import run_cycle, run_forever

__all__ = [
    "PuppetDBSDError",
    "QueryError",
    "WriteError",
    "main",
    "run_cycle",
    "run_forever",
]
