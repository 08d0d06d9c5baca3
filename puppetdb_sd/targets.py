"""Prometheus file_sd target aggregation, writing and cleanup."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from .constants import (
    LABEL_CERTNAME,
    LABEL_JOB,
    LABEL_METRICS_PATH,
    LABEL_SCHEME,
    TARGET_FILE_MODE,
    TARGETS_DIR_MODE,
)
from .exceptions import QueryError, ReconcileError, WriteError
from .utils import exporter_file_names, sha256_hex, target_file_name

if TYPE_CHECKING:
    from .mapping import RoleMapping
    from .puppetdb import Node, PuppetDBClient

logger = logging.getLogger(__name__)


@dataclass
class AggregateResult:
    """Nodes collected for one exporter.

    When a role's query failed, nodes holds what the earlier roles returned
    and error holds the failure.
    """

    nodes: list[Node] = field(default_factory=list)
    error: QueryError | None = None

    @property
    def complete(self) -> bool:
        return self.error is None


def aggregate_nodes(
    client: PuppetDBClient,
    mapping: RoleMapping,
    base_query: str,
    filter_expr: str,
    *,
    workers: int = 1,
) -> AggregateResult:
    """Query PuppetDB once per role of an exporter and merge the results.

    Nodes are appended in role order and are not de-duplicated, so a node
    with two of the exporter's roles appears twice. Processing stops at the
    first failing role (in role order); later roles never contribute.

    Args:
        client: PuppetDB client
        mapping: Exporter definition
        base_query: Entity and projection for every query
        filter_expr: Conditions applied to every query
        workers: Number of role queries run concurrently

    Returns:
        AggregateResult
    """
    result = AggregateResult()

    if workers <= 1 or len(mapping.roles) <= 1:
        for role in mapping.roles:
            try:
                nodes = client.query(base_query, filter_expr, role)
            except QueryError as e:
                result.error = e
                break
            result.nodes.extend(nodes)
        return result

    # client.session is shared by the threads; build_session sizes its pool for them
    with ThreadPoolExecutor(max_workers=min(workers, len(mapping.roles))) as executor:
        futures = [
            executor.submit(client.query, base_query, filter_expr, role) for role in mapping.roles
        ]
        for future in futures:
            try:
                nodes = future.result()
            except QueryError as e:
                result.error = e
                for pending in futures:
                    pending.cancel()
                break
            result.nodes.extend(nodes)

    return result


def build_target_entries(
    nodes: list[Node], port: int, path: str, scheme: str, job: str
) -> list[dict[str, Any]]:
    """Build one file_sd entry per node."""
    entries = []
    for node in nodes:
        labels = {
            LABEL_CERTNAME: node.certname,
            LABEL_JOB: job,
            LABEL_METRICS_PATH: path,
            LABEL_SCHEME: scheme,
        }
        entries.append(
            {
                "targets": [f"{node.address}:{port}"],
                "labels": dict(sorted(labels.items())),
            }
        )
    return entries


def render_targets(entries: list[dict[str, Any]]) -> bytes:
    """Serialize file_sd entries as a YAML document."""
    return yaml.safe_dump(
        entries,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    ).encode("utf-8")


def write_targets(
    nodes: list[Node],
    port: int,
    path: str,
    scheme: str,
    job: str,
    targets_dir: Path,
) -> Path:
    """Write the target file for one exporter.

    The file is written to a temporary name in the same directory and then
    renamed over <targets_dir>/<job>.yml, so Prometheus never reads a
    partial file. An empty node list still produces a file.

    Args:
        nodes: Nodes to list
        port: Port appended to every node address
        path: metrics_path label
        scheme: scheme label
        job: Exporter name, used for the job label and the file name
        targets_dir: Directory holding the target files

    Returns:
        Path of the target file

    Raises:
        WriteError: If the file cannot be serialized or written
    """
    target_path = targets_dir / target_file_name(job)
    tmp_path = targets_dir / f".{target_path.name}.tmp"

    try:
        content = render_targets(build_target_entries(nodes, port, path, scheme, job))
    except yaml.YAMLError as e:
        raise WriteError(f"Failed to serialize targets for {job}: {e}")

    try:
        targets_dir.mkdir(mode=TARGETS_DIR_MODE, parents=True, exist_ok=True)

        if target_path.is_file() and sha256_hex(target_path.read_bytes()) == sha256_hex(content):
            logger.debug("%s unchanged, not rewriting", target_path)
            return target_path

        tmp_path.write_bytes(content)
        tmp_path.chmod(TARGET_FILE_MODE)
        os.replace(tmp_path, target_path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise WriteError(f"Failed to write {target_path}: {e}")

    logger.info("Wrote %d target(s) to %s", len(nodes), target_path)
    return target_path


def reconcile_targets_dir(targets_dir: Path, mappings: list[RoleMapping]) -> list[Path]:
    """Remove files that do not belong to an exporter in the current mapping.

    A file is kept only when its name is exactly <exporter>.yml or
    <exporter>.yaml. The directory is created if it does not exist yet.
    Subdirectories are left in place.

    Args:
        targets_dir: Directory holding the target files
        mappings: Current role mapping

    Returns:
        Paths that were removed

    Raises:
        ReconcileError: If the directory cannot be listed or a file cannot
            be removed
    """
    keep = exporter_file_names([m.exporter for m in mappings])
    removed: list[Path] = []

    try:
        targets_dir.mkdir(mode=TARGETS_DIR_MODE, parents=True, exist_ok=True)
        entries = sorted(targets_dir.iterdir())
    except OSError as e:
        raise ReconcileError(f"Failed to list targets directory {targets_dir}: {e}")

    for entry in entries:
        if entry.name in keep:
            continue
        if entry.is_dir() and not entry.is_symlink():
            logger.warning("Ignoring directory in targets dir: %s", entry)
            continue
        try:
            entry.unlink()
        except OSError as e:
            raise ReconcileError(f"Failed to remove {entry}: {e}")
        logger.info("Removed stale target file %s", entry)
        removed.append(entry)

    return removed
