"""Role-mapping file loading and validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .constants import DEFAULT_METRICS_PATH, DEFAULT_SCHEME
from .exceptions import MappingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleMapping:
    """One exporter (Prometheus job) and the roles whose nodes it scrapes."""

    exporter: str
    port: int
    path: str = DEFAULT_METRICS_PATH
    scheme: str = DEFAULT_SCHEME
    roles: list[str] = field(default_factory=list)


def _require_str(entry: dict[str, Any], key: str, index: int, default: str | None = None) -> str:
    value = entry.get(key, default)
    if not isinstance(value, str):
        raise MappingError(f"Entry {index}: '{key}' must be a string, got {value!r}")
    return value


def parse_mapping_entry(entry: Any, index: int) -> RoleMapping:
    """Validate one item of the role-mapping sequence.

    Args:
        entry: Decoded YAML item
        index: Position in the sequence, used in error messages

    Returns:
        RoleMapping

    Raises:
        MappingError: If a required key is missing or has the wrong type
    """
    if not isinstance(entry, dict):
        raise MappingError(f"Entry {index}: expected a mapping, got {entry!r}")

    exporter = _require_str(entry, "exporter", index)
    if not exporter.strip():
        raise MappingError(f"Entry {index}: 'exporter' cannot be empty")
    # The name becomes a file name inside the targets directory
    if "/" in exporter or "\\" in exporter or exporter in (".", ".."):
        raise MappingError(f"Entry {index}: invalid exporter name {exporter!r}")

    port = entry.get("port")
    # bool is a subclass of int; "port: yes" is a mistake, not port 1
    if not isinstance(port, int) or isinstance(port, bool) or port <= 0:
        raise MappingError(f"Exporter {exporter}: 'port' must be a positive integer, got {port!r}")

    roles = entry.get("roles") or []
    if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
        raise MappingError(f"Exporter {exporter}: 'roles' must be a list of strings")

    return RoleMapping(
        exporter=exporter,
        port=port,
        path=_require_str(entry, "path", index, DEFAULT_METRICS_PATH),
        scheme=_require_str(entry, "scheme", index, DEFAULT_SCHEME),
        roles=list(roles),
    )


def parse_role_mapping(data: Any) -> list[RoleMapping]:
    """Validate a decoded role-mapping document.

    An empty document is an empty mapping.

    Raises:
        MappingError: If the document is not a sequence of valid entries or
            an exporter name appears twice
    """
    if data is None:
        return []
    if not isinstance(data, list):
        raise MappingError(f"Role mapping must be a sequence, got {type(data).__name__}")

    mappings = [parse_mapping_entry(entry, i) for i, entry in enumerate(data)]

    seen: set[str] = set()
    for mapping in mappings:
        if mapping.exporter in seen:
            raise MappingError(f"Duplicate exporter in role mapping: {mapping.exporter}")
        seen.add(mapping.exporter)

    return mappings


def load_role_mapping(path: Path) -> list[RoleMapping]:
    """Read the role-mapping YAML file.

    Called at the start of every cycle so edits are picked up without a
    restart.

    Raises:
        MappingError: If the file cannot be read, parsed or validated
    """
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise MappingError(f"Failed to read role mapping {path}: {e}")
    except yaml.YAMLError as e:
        raise MappingError(f"Invalid YAML in {path}: {e}")

    try:
        mappings = parse_role_mapping(data)
    except MappingError as e:
        raise MappingError(f"{path}: {e}")

    logger.debug("Loaded %d exporter(s) from %s", len(mappings), path)
    return mappings
