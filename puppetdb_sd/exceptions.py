"""prometheus-puppetdb-sd exception classes."""

from __future__ import annotations


class PuppetDBSDError(RuntimeError):
    """Base exception for prometheus-puppetdb-sd errors.

    Anything derived from this that reaches main() ends the process with
    ``rc`` as the exit code.
    """

    rc = 1


class ConfigError(PuppetDBSDError):
    """Invalid settings: URL scheme, TLS material, sleep duration."""


class MappingError(PuppetDBSDError):
    """Role-mapping file could not be read, parsed or validated."""


class ReconcileError(PuppetDBSDError):
    """Targets directory could not be listed or cleaned up."""


class QueryError(PuppetDBSDError):
    """A single PuppetDB query failed.

    Recoverable: the poll loop logs it and retries on the next cycle.
    """

    def __init__(self, message: str, role: str | None = None):
        super().__init__(message)
        self.role = role


class WriteError(PuppetDBSDError):
    """A single target file could not be written.

    Recoverable: the poll loop logs it and retries on the next cycle.
    """
