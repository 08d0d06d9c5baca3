"""prometheus-puppetdb-sd constants."""

from __future__ import annotations

PROG_NAME = "prometheus-puppetdb-sd"

# Defaults (each can be overridden by a command-line flag or environment variable)
DEFAULT_PUPPETDB_URL = "http://puppetdb:8080"
DEFAULT_CERT_FILE = "certs/client.pem"
DEFAULT_KEY_FILE = "certs/client.key"
DEFAULT_CACERT_FILE = "certs/cacert.pem"
DEFAULT_QUERY = "facts[certname, value]"
DEFAULT_FILTER = "name='ipaddress' and nodes { deactivated is null }"
DEFAULT_ROLE_MAPPING_FILE = "role-mapping.yaml"
DEFAULT_TARGETS_DIR = "/etc/prometheus/targets"
DEFAULT_SLEEP = "60s"
DEFAULT_TIMEOUT_S = 30
DEFAULT_WORKERS = 1

# Environment variables
ENV_PUPPETDB_URL = "PROMETHEUS_PUPPETDB_URL"
ENV_CERT_FILE = "PROMETHEUS_CERT_FILE"
ENV_KEY_FILE = "PROMETHEUS_KEY_FILE"
ENV_CACERT_FILE = "PROMETHEUS_CACERT_FILE"
ENV_SSL_SKIP_VERIFY = "PROMETHEUS_SSL_SKIP_VERIFY"
ENV_QUERY = "PROMETHEUS_PUPPETDB_QUERY"
ENV_FILTER = "PROMETHEUS_PUPPETDB_FILTER"
ENV_ROLE_MAPPING_FILE = "PROMETHEUS_ROLE_MAPPING_FILE"
ENV_TARGETS_DIR = "PROMETHEUS_TARGETS_DIR"
ENV_SLEEP = "PROMETHEUS_PUPPETDB_SLEEP"
ENV_TIMEOUT = "PROMETHEUS_PUPPETDB_TIMEOUT"
ENV_ON_QUERY_ERROR = "PROMETHEUS_ON_QUERY_ERROR"
ENV_WORKERS = "PROMETHEUS_PUPPETDB_WORKERS"

# PuppetDB
QUERY_API_PATH = "/pdb/query/v4"
ROLE_FACT_NAME = "role"
VALID_URL_SCHEMES = ("http", "https")

# Mapping defaults for optional keys
DEFAULT_METRICS_PATH = "/metrics"
DEFAULT_SCHEME = "http"

# Target files
TARGET_FILE_SUFFIX = ".yml"
TARGET_FILE_SUFFIXES = (".yml", ".yaml")
TARGETS_DIR_MODE = 0o755
TARGET_FILE_MODE = 0o644
LABEL_JOB = "job"
LABEL_CERTNAME = "certname"
LABEL_METRICS_PATH = "metrics_path"
LABEL_SCHEME = "scheme"

# Behaviour when one role's query fails during aggregation
POLICY_SKIP = "skip"
POLICY_PARTIAL = "partial"
QUERY_ERROR_POLICIES = (POLICY_SKIP, POLICY_PARTIAL)
