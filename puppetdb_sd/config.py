"""Runtime settings collected from the command line and environment."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .constants import (
    DEFAULT_CACERT_FILE,
    DEFAULT_CERT_FILE,
    DEFAULT_FILTER,
    DEFAULT_KEY_FILE,
    DEFAULT_PUPPETDB_URL,
    DEFAULT_QUERY,
    DEFAULT_ROLE_MAPPING_FILE,
    DEFAULT_SLEEP,
    DEFAULT_TARGETS_DIR,
    DEFAULT_TIMEOUT_S,
    DEFAULT_WORKERS,
    POLICY_SKIP,
)


@dataclass
class Config:
    """Settings for one run of the discovery daemon."""

    puppetdb_url: str = DEFAULT_PUPPETDB_URL
    cert_file: str = DEFAULT_CERT_FILE
    key_file: str = DEFAULT_KEY_FILE
    cacert_file: str = DEFAULT_CACERT_FILE
    ssl_skip_verify: bool = False
    query: str = DEFAULT_QUERY
    filter: str = DEFAULT_FILTER
    role_mapping_file: str = DEFAULT_ROLE_MAPPING_FILE
    targets_dir: str = DEFAULT_TARGETS_DIR
    sleep: str = DEFAULT_SLEEP
    timeout: float | None = DEFAULT_TIMEOUT_S
    on_query_error: str = POLICY_SKIP
    workers: int = DEFAULT_WORKERS
    once: bool = False

    @property
    def targets_path(self) -> Path:
        return Path(self.targets_dir)

    @property
    def role_mapping_path(self) -> Path:
        return Path(self.role_mapping_file).expanduser().absolute()
