"""PuppetDB API integration."""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter

from .constants import QUERY_API_PATH, ROLE_FACT_NAME, VALID_URL_SCHEMES
from .exceptions import ConfigError, QueryError

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Node:
    """A node returned by PuppetDB."""

    certname: str
    address: str


def build_query(base_query: str, filter_expr: str, role: str) -> str:
    """Combine the base query, filter and role condition into one PQL query.

    Args:
        base_query: Entity and projection, e.g. "facts[certname, value]"
        filter_expr: Conditions applied to every query
        role: Value the node's role fact must equal

    Returns:
        Query string, e.g.
        "facts[certname, value] {name='ipaddress' and facts { name='role' and value='web' } }"
    """
    quoted_role = role.replace("\\", "\\\\").replace("'", "\\'")
    return (
        f"{base_query} {{{filter_expr} and facts "
        f"{{ name='{ROLE_FACT_NAME}' and value='{quoted_role}' }} }}"
    )


def parse_nodes(data: Any) -> list[Node]:
    """Convert a decoded PuppetDB response into Node records.

    Raises:
        QueryError: If the response is not a list of objects with string
            certname and value fields
    """
    if not isinstance(data, list):
        raise QueryError(f"Expected a JSON array from PuppetDB, got {type(data).__name__}")

    nodes = []
    for record in data:
        if not isinstance(record, dict):
            raise QueryError(f"Unexpected record in PuppetDB response: {record!r}")
        certname = record.get("certname")
        value = record.get("value")
        if not isinstance(certname, str) or not isinstance(value, str):
            raise QueryError(f"Record is missing certname or value: {record!r}")
        nodes.append(Node(certname=certname, address=value))
    return nodes


def validate_url(url: str) -> str:
    """Check the PuppetDB base URL and return its scheme.

    Raises:
        ConfigError: If the URL cannot be parsed or is not http(s)
    """
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise ConfigError(f"Invalid PuppetDB URL {url!r}: {e}")

    if parsed.scheme not in VALID_URL_SCHEMES:
        raise ConfigError(f"{parsed.scheme} is not a valid http scheme")
    return parsed.scheme


def load_tls_material(cert_file: str, key_file: str, cacert_file: str) -> None:
    """Load the client certificate, key and CA file once to fail early.

    requests only reads these files when the first connection is made, which
    would turn a bad path into a per-query error instead of a startup error.

    Raises:
        ConfigError: If any of the files cannot be loaded
    """
    context = ssl.create_default_context()
    try:
        context.load_cert_chain(certfile=cert_file, keyfile=key_file)
    except (OSError, ssl.SSLError) as e:
        raise ConfigError(f"Failed to load client certificate {cert_file} / {key_file}: {e}")

    try:
        context.load_verify_locations(cafile=cacert_file)
    except (OSError, ssl.SSLError) as e:
        raise ConfigError(f"Failed to load CA certificate {cacert_file}: {e}")


def build_session(config: Config) -> requests.Session:
    """Create the HTTP session used for every PuppetDB query.

    For https URLs the session presents the client certificate and verifies
    the server against the CA file, unless ssl_skip_verify is set.

    Raises:
        ConfigError: If the URL scheme is invalid or TLS material fails to load
    """
    scheme = validate_url(config.puppetdb_url)
    session = requests.Session()
    # Role queries of one exporter may share the session across --workers threads;
    # only stateless POSTs go through it, and each thread needs its own connection.
    adapter = HTTPAdapter(pool_maxsize=max(config.workers, 1))
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    if scheme == "https":
        load_tls_material(config.cert_file, config.key_file, config.cacert_file)
        session.cert = (config.cert_file, config.key_file)
        session.verify = False if config.ssl_skip_verify else config.cacert_file
        if config.ssl_skip_verify:
            logger.warning("TLS verification of %s is disabled", config.puppetdb_url)

    return session


class PuppetDBClient:
    """Runs PQL queries against a PuppetDB query endpoint."""

    def __init__(
        self,
        base_url: str,
        session: requests.Session,
        timeout: float | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.timeout = timeout

    @property
    def query_url(self) -> str:
        return f"{self.base_url}{QUERY_API_PATH}"

    def query(self, base_query: str, filter_expr: str, role: str) -> list[Node]:
        """Fetch the nodes whose role fact equals role.

        Args:
            base_query: Entity and projection, e.g. "facts[certname, value]"
            filter_expr: Conditions applied to every query
            role: Role fact value to select

        Returns:
            List of Node records, in the order PuppetDB returned them

        Raises:
            QueryError: If the request fails, PuppetDB returns an error status,
                or the response body is not the expected JSON
        """
        pql = build_query(base_query, filter_expr, role)
        logger.debug("POST %s query=%s", self.query_url, pql)

        try:
            response = self.session.post(
                self.query_url,
                json={"query": pql},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise QueryError(f"PuppetDB query for role {role!r} failed: {e}", role=role)

        if not 200 <= response.status_code < 300:
            raise QueryError(
                f"PuppetDB returned {response.status_code} for role {role!r}: {response.text}",
                role=role,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise QueryError(f"Invalid JSON from PuppetDB for role {role!r}: {e}", role=role)

        try:
            nodes = parse_nodes(data)
        except QueryError as e:
            raise QueryError(f"Role {role!r}: {e}", role=role)

        logger.debug("Role %s: %d node(s)", role, len(nodes))
        return nodes
