"""Poll loop: reconcile the targets directory with PuppetDB every cycle."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .constants import POLICY_PARTIAL
from .exceptions import QueryError, WriteError
from .mapping import load_role_mapping
from .targets import aggregate_nodes, reconcile_targets_dir, write_targets
from .utils import format_duration, parse_duration

if TYPE_CHECKING:
    from .config import Config
    from .mapping import RoleMapping
    from .puppetdb import PuppetDBClient

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Outcome of one reconciliation cycle."""

    written: dict[str, int] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    removed: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def process_exporter(
    config: Config,
    client: PuppetDBClient,
    mapping: RoleMapping,
    report: CycleReport,
) -> None:
    """Aggregate and write the target file of one exporter.

    Query and write failures are logged and recorded in report; they never
    propagate, so one exporter cannot stop the others.
    """
    result = aggregate_nodes(
        client,
        mapping,
        config.query,
        config.filter,
        workers=config.workers,
    )

    if not result.complete:
        logger.error("Exporter %s: %s", mapping.exporter, result.error)
        report.failed[mapping.exporter] = str(result.error)
        if config.on_query_error != POLICY_PARTIAL:
            logger.warning(
                "Exporter %s: keeping previous target file until the next cycle",
                mapping.exporter,
            )
            return
        logger.warning(
            "Exporter %s: writing %d node(s) collected before the failure",
            mapping.exporter,
            len(result.nodes),
        )

    try:
        write_targets(
            result.nodes,
            mapping.port,
            mapping.path,
            mapping.scheme,
            mapping.exporter,
            config.targets_path,
        )
    except WriteError as e:
        logger.error("Exporter %s: %s", mapping.exporter, e)
        report.failed[mapping.exporter] = str(e)
        return

    report.written[mapping.exporter] = len(result.nodes)


def run_cycle(config: Config, client: PuppetDBClient) -> CycleReport:
    """Run one reconciliation cycle.

    Raises:
        MappingError: If the role mapping cannot be loaded
        ReconcileError: If the targets directory cannot be cleaned up
    """
    mappings = load_role_mapping(config.role_mapping_path)

    report = CycleReport()
    report.removed = reconcile_targets_dir(config.targets_path, mappings)

    for mapping in mappings:
        process_exporter(config, client, mapping, report)

    logger.info(
        "Cycle done: %d exporter(s) written, %d failed, %d stale file(s) removed",
        len(report.written),
        len(report.failed),
        len(report.removed),
    )
    return report


def run_forever(
    config: Config,
    client: PuppetDBClient,
    *,
    sleep: Callable[[float], None] = time.sleep,
    once: bool = False,
) -> None:
    """Run reconciliation cycles until the process is stopped.

    The sleep interval is parsed after every cycle, so a malformed value
    only stops the loop once the first cycle has run.

    Args:
        config: Settings
        client: PuppetDB client
        sleep: Function used to wait between cycles
        once: Return after the first cycle instead of sleeping

    Raises:
        MappingError: If the role mapping cannot be loaded
        ReconcileError: If the targets directory cannot be cleaned up
        ConfigError: If the sleep interval is malformed
    """
    while True:
        run_cycle(config, client)
        if once:
            return

        interval = parse_duration(config.sleep)
        logger.info("Sleeping for %s", format_duration(interval))
        sleep(interval)
