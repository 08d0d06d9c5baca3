"""Shared pytest fixtures for prometheus-puppetdb-sd tests."""

from __future__ import annotations

import logging
import tempfile
import threading
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import yaml
from puppetdb_sd.config import Config
from puppetdb_sd.puppetdb import Node


class FakePuppetDBClient:
    """Stands in for PuppetDBClient; answers from a role -> nodes table.

    A value that is an exception instance is raised instead of returned.
    """

    def __init__(self, results: dict[str, Any]):
        self.results = results
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def query(self, base_query: str, filter_expr: str, role: str) -> list[Node]:
        with self._lock:
            self.calls.append(role)
        outcome = self.results.get(role, [])
        if isinstance(outcome, Exception):
            raise outcome
        return list(outcome)


@pytest.fixture(autouse=True)
def reset_package_logger() -> Generator[None, None, None]:
    """Drop handlers added by setup_logging so they don't outlive CliRunner streams."""
    yield
    logger = logging.getLogger("puppetdb_sd")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def tmp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def targets_dir(tmp_dir: Path) -> Path:
    """Path of the (not yet created) targets directory."""
    return tmp_dir / "targets"


@pytest.fixture
def mapping_file(tmp_dir: Path) -> Path:
    """Path of the role mapping file."""
    return tmp_dir / "role-mapping.yaml"


@pytest.fixture
def write_mapping(mapping_file: Path) -> Callable[[list[dict[str, Any]]], Path]:
    """Return a function that writes entries to the role mapping file."""

    def _write(entries: list[dict[str, Any]]) -> Path:
        mapping_file.write_text(yaml.safe_dump(entries))
        return mapping_file

    return _write


@pytest.fixture
def config(mapping_file: Path, targets_dir: Path) -> Config:
    """Config pointing at the temporary mapping file and targets dir."""
    return Config(
        puppetdb_url="http://puppetdb.example.com:8080",
        role_mapping_file=str(mapping_file),
        targets_dir=str(targets_dir),
        sleep="1s",
    )


@pytest.fixture
def make_client() -> Callable[[dict[str, Any]], FakePuppetDBClient]:
    """Return a factory for fake PuppetDB clients."""
    return FakePuppetDBClient


@pytest.fixture
def web_node() -> Node:
    return Node(certname="web1.example.com", address="10.0.0.1")


@pytest.fixture
def db_node() -> Node:
    return Node(certname="db1.example.com", address="10.0.0.2")


@pytest.fixture
def sample_mapping() -> list[dict[str, Any]]:
    """Two exporters sharing the web role."""
    return [
        {
            "exporter": "node",
            "port": 9100,
            "path": "/metrics",
            "scheme": "http",
            "roles": ["web", "db"],
        },
        {
            "exporter": "collectd",
            "port": 9103,
            "path": "/metrics",
            "scheme": "http",
            "roles": ["web"],
        },
    ]
