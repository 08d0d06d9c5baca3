"""prometheus-puppetdb-sd CLI using Click."""

from __future__ import annotations

import logging
import sys
from importlib.metadata import version

import click

from .config import Config
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
    ENV_CACERT_FILE,
    ENV_CERT_FILE,
    ENV_FILTER,
    ENV_KEY_FILE,
    ENV_ON_QUERY_ERROR,
    ENV_PUPPETDB_URL,
    ENV_QUERY,
    ENV_ROLE_MAPPING_FILE,
    ENV_SLEEP,
    ENV_SSL_SKIP_VERIFY,
    ENV_TARGETS_DIR,
    ENV_TIMEOUT,
    ENV_WORKERS,
    POLICY_SKIP,
    PROG_NAME,
    QUERY_ERROR_POLICIES,
)
from .exceptions import PuppetDBSDError
from .loop import run_forever
from .puppetdb import PuppetDBClient, build_session

SHORT_DESCRIPTION = "Prometheus scrape lists based on PuppetDB"

# Package logger
logger = logging.getLogger("puppetdb_sd")


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the daemon."""
    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)
    if any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout
        for h in logger.handlers
    ):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)


def _roff_escape(text: str) -> str:
    text = text.replace("\\", "\\e").replace("-", "\\-")
    if text.startswith((".", "'")):
        text = "\\&" + text
    return text


def render_manpage(ctx: click.Context) -> str:
    """Render a troff manpage from the command's options."""
    command = ctx.command
    lines = [
        f'.TH {PROG_NAME.upper()} 1 "" "{PROG_NAME} {version(PROG_NAME)}"',
        ".SH NAME",
        f"{_roff_escape(PROG_NAME)} \\- {SHORT_DESCRIPTION}",
        ".SH SYNOPSIS",
        f".B {_roff_escape(PROG_NAME)}",
        "[OPTIONS]",
        ".SH DESCRIPTION",
        _roff_escape(" ".join((command.help or "").split())),
        ".SH OPTIONS",
    ]
    for param in command.get_params(ctx):
        record = param.get_help_record(ctx)
        if record is None:
            continue
        opts, help_text = record
        lines.extend([".TP", f"\\fB{_roff_escape(opts)}\\fP", _roff_escape(help_text)])
    return "\n".join(lines) + "\n"


def print_manpage(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
    """Eager callback for --manpage."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(render_manpage(ctx), nl=False)
    ctx.exit(0)


@click.command(
    context_settings={"help_option_names": ["-h", "--help"], "show_default": True},
)
@click.version_option(
    version("prometheus-puppetdb-sd"),
    "-V",
    "--version",
    prog_name=PROG_NAME,
    message="%(prog)s v%(version)s",
)
@click.option(
    "--manpage",
    "-m",
    is_flag=True,
    expose_value=False,
    is_eager=True,
    callback=print_manpage,
    help="Output manpage.",
)
@click.option(
    "--puppetdb-url",
    "-u",
    envvar=ENV_PUPPETDB_URL,
    show_envvar=True,
    default=DEFAULT_PUPPETDB_URL,
    help="PuppetDB base URL.",
)
@click.option(
    "--cert-file",
    "-x",
    envvar=ENV_CERT_FILE,
    show_envvar=True,
    default=DEFAULT_CERT_FILE,
    help="A PEM encoded certificate file.",
)
@click.option(
    "--key-file",
    "-y",
    envvar=ENV_KEY_FILE,
    show_envvar=True,
    default=DEFAULT_KEY_FILE,
    help="A PEM encoded private key file.",
)
@click.option(
    "--cacert-file",
    "-z",
    envvar=ENV_CACERT_FILE,
    show_envvar=True,
    default=DEFAULT_CACERT_FILE,
    help="A PEM encoded CA's certificate file.",
)
@click.option(
    "--ssl-skip-verify",
    "-k",
    is_flag=True,
    envvar=ENV_SSL_SKIP_VERIFY,
    show_envvar=True,
    help="Skip SSL verification.",
)
@click.option(
    "--puppetdb-query",
    "-q",
    "query",
    envvar=ENV_QUERY,
    show_envvar=True,
    default=DEFAULT_QUERY,
    help="PuppetDB query.",
)
@click.option(
    "--puppetdb-filter",
    "-f",
    "filter_expr",
    envvar=ENV_FILTER,
    show_envvar=True,
    default=DEFAULT_FILTER,
    help="PuppetDB filter.",
)
@click.option(
    "--role-mapping-file",
    "-r",
    envvar=ENV_ROLE_MAPPING_FILE,
    show_envvar=True,
    default=DEFAULT_ROLE_MAPPING_FILE,
    help="Role mapping configuration file.",
)
@click.option(
    "--targets-dir",
    "-c",
    envvar=ENV_TARGETS_DIR,
    show_envvar=True,
    default=DEFAULT_TARGETS_DIR,
    help="Directory to store File SD targets files.",
)
@click.option(
    "--sleep",
    "-s",
    envvar=ENV_SLEEP,
    show_envvar=True,
    default=DEFAULT_SLEEP,
    help="Sleep time between queries, e.g. 60s, 5m, 1h30m.",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0),
    envvar=ENV_TIMEOUT,
    show_envvar=True,
    default=DEFAULT_TIMEOUT_S,
    help="PuppetDB request timeout in seconds (0 waits forever).",
)
@click.option(
    "--on-query-error",
    type=click.Choice(QUERY_ERROR_POLICIES, case_sensitive=False),
    envvar=ENV_ON_QUERY_ERROR,
    show_envvar=True,
    default=POLICY_SKIP,
    help="When a role query fails: 'skip' keeps the previous target file, "
    "'partial' writes the nodes collected so far.",
)
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    envvar=ENV_WORKERS,
    show_envvar=True,
    default=DEFAULT_WORKERS,
    help="Number of role queries run in parallel per exporter.",
)
@click.option(
    "--once",
    is_flag=True,
    help="Run a single cycle and exit.",
)
@click.option(
    "--debug",
    "-d",
    is_flag=True,
    help="Enable debug logging.",
)
def cli(
    puppetdb_url: str,
    cert_file: str,
    key_file: str,
    cacert_file: str,
    ssl_skip_verify: bool,
    query: str,
    filter_expr: str,
    role_mapping_file: str,
    targets_dir: str,
    sleep: str,
    timeout: float,
    on_query_error: str,
    workers: int,
    once: bool,
    debug: bool,
):
    """Write Prometheus file_sd target files from PuppetDB.

    Every cycle the role mapping file is read, target files of exporters no
    longer in the mapping are removed, and one <exporter>.yml file is written
    per exporter listing the nodes whose role fact matches one of its roles.
    """
    setup_logging(debug=debug)

    config = Config(
        puppetdb_url=puppetdb_url,
        cert_file=cert_file,
        key_file=key_file,
        cacert_file=cacert_file,
        ssl_skip_verify=ssl_skip_verify,
        query=query,
        filter=filter_expr,
        role_mapping_file=role_mapping_file,
        targets_dir=targets_dir,
        sleep=sleep,
        timeout=timeout or None,
        on_query_error=on_query_error.lower(),
        workers=workers,
        once=once,
    )

    try:
        session = build_session(config)
        client = PuppetDBClient(config.puppetdb_url, session, timeout=config.timeout)
        with session:
            run_forever(config, client, once=config.once)
    except PuppetDBSDError as e:
        click.echo(f"ERROR: {e}")
        sys.exit(e.rc)


def main():
    """Main entry point for the CLI.

    Click runs outside standalone mode so that bad options exit 1 like every
    other configuration error, and Ctrl-C exits 130. Errors raised while
    running are reported by the command itself.
    """
    try:
        cli.main(prog_name=PROG_NAME, standalone_mode=False)
    except click.ClickException as e:
        click.echo(f"ERROR: {e.format_message()}")
        sys.exit(1)
    except (click.exceptions.Abort, KeyboardInterrupt):
        click.echo("ERROR: Interrupted")
        sys.exit(130)
