"""Tests for puppetdb_sd/cli.py - CLI integration tests using Click's CliRunner."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from unittest.mock import MagicMock, Mock

import pytest
import yaml
from click.testing import CliRunner
from puppetdb_sd.cli import cli, main, setup_logging


@pytest.fixture
def runner() -> CliRunner:
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def mock_session(mocker) -> MagicMock:
    """Patch build_session to return a session answering one node per query."""
    response = Mock()
    response.status_code = 200
    response.json.return_value = [{"certname": "n1", "value": "10.0.0.1"}]
    session = MagicMock()
    session.post.return_value = response
    mocker.patch("puppetdb_sd.cli.build_session", return_value=session)
    return session


class TestCliHelp:
    """Tests for CLI help output."""

    def test_help(self, runner: CliRunner):
        """--help lists options and their environment variables."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "--puppetdb-url" in result.output
        assert "--role-mapping-file" in result.output
        assert "--targets-dir" in result.output
        assert "--on-query-error" in result.output
        assert "PROMETHEUS_PUPPETDB_URL" in result.output

    def test_short_help_flag(self, runner: CliRunner):
        result = runner.invoke(cli, ["-h"])
        assert result.exit_code == 0


class TestCliVersion:
    """Tests for CLI version output."""

    def test_version_flag(self, runner: CliRunner):
        """--version shows version information."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("prometheus-puppetdb-sd v")

    def test_short_version_flag(self, runner: CliRunner):
        result = runner.invoke(cli, ["-V"])
        assert result.exit_code == 0
        assert "prometheus-puppetdb-sd" in result.output


class TestCliManpage:
    """Tests for --manpage output."""

    def test_manpage(self, runner: CliRunner):
        """--manpage prints troff and exits 0 without running."""
        result = runner.invoke(cli, ["--manpage"])
        assert result.exit_code == 0
        assert result.output.startswith(".TH PROMETHEUS-PUPPETDB-SD 1")
        assert ".SH OPTIONS" in result.output
        assert "puppetdb\\-url" in result.output

    def test_short_manpage_flag(self, runner: CliRunner):
        result = runner.invoke(cli, ["-m"])
        assert result.exit_code == 0
        assert ".SH NAME" in result.output


class TestCliRun:
    """Tests for running cycles from the CLI."""

    def test_once_writes_targets(self, runner: CliRunner, mock_session, tmp_dir: Path):
        """--once runs one cycle and exits 0."""
        mapping = tmp_dir / "role-mapping.yaml"
        mapping.write_text(
            yaml.safe_dump([{"exporter": "collectd", "port": 9103, "roles": ["web"]}])
        )
        targets = tmp_dir / "targets"

        result = runner.invoke(
            cli,
            ["--once", "-r", str(mapping), "-c", str(targets), "-u", "http://puppetdb:8080"],
        )

        assert result.exit_code == 0, result.output
        assert yaml.safe_load((targets / "collectd.yml").read_text()) == [
            {
                "targets": ["10.0.0.1:9103"],
                "labels": {
                    "job": "collectd",
                    "certname": "n1",
                    "metrics_path": "/metrics",
                    "scheme": "http",
                },
            }
        ]
        assert mock_session.post.call_args[0][0] == "http://puppetdb:8080/pdb/query/v4"

    def test_options_from_environment(self, runner: CliRunner, mock_session, tmp_dir: Path):
        """Every setting can come from PROMETHEUS_* variables."""
        mapping = tmp_dir / "role-mapping.yaml"
        mapping.write_text(yaml.safe_dump([{"exporter": "node", "port": 9100, "roles": ["web"]}]))
        targets = tmp_dir / "targets"

        result = runner.invoke(
            cli,
            ["--once"],
            env={
                "PROMETHEUS_ROLE_MAPPING_FILE": str(mapping),
                "PROMETHEUS_TARGETS_DIR": str(targets),
                "PROMETHEUS_PUPPETDB_URL": "http://inventory:8080",
                "PROMETHEUS_PUPPETDB_QUERY": "inventory[certname, facts.networking.ip]",
            },
        )

        assert result.exit_code == 0, result.output
        assert (targets / "node.yml").exists()
        args, kwargs = mock_session.post.call_args
        assert args[0] == "http://inventory:8080/pdb/query/v4"
        assert kwargs["json"]["query"].startswith("inventory[certname, facts.networking.ip] {")

    def test_timeout_zero_disables(self, runner: CliRunner, mock_session, tmp_dir: Path):
        """--timeout 0 means no request timeout."""
        mapping = tmp_dir / "role-mapping.yaml"
        mapping.write_text(yaml.safe_dump([{"exporter": "node", "port": 9100, "roles": ["web"]}]))

        result = runner.invoke(
            cli,
            ["--once", "--timeout", "0", "-r", str(mapping), "-c", str(tmp_dir / "t")],
        )

        assert result.exit_code == 0, result.output
        assert mock_session.post.call_args[1]["timeout"] is None

    def test_invalid_scheme_exits_1(self, runner: CliRunner, tmp_dir: Path):
        """A non-http(s) PuppetDB URL is fatal."""
        result = runner.invoke(cli, ["--once", "-u", "ftp://puppetdb", "-c", str(tmp_dir)])

        assert result.exit_code == 1
        assert "ERROR: ftp is not a valid http scheme" in result.output

    def test_missing_mapping_exits_1(self, runner: CliRunner, mock_session, tmp_dir: Path):
        """An unreadable role mapping is fatal."""
        result = runner.invoke(
            cli,
            ["--once", "-r", str(tmp_dir / "missing.yaml"), "-c", str(tmp_dir / "targets")],
        )

        assert result.exit_code == 1
        assert "ERROR: Failed to read role mapping" in result.output

    def test_malformed_sleep_exits_1(self, runner: CliRunner, mock_session, tmp_dir: Path):
        """A bad --sleep ends the process after the first cycle."""
        mapping = tmp_dir / "role-mapping.yaml"
        mapping.write_text(yaml.safe_dump([{"exporter": "node", "port": 9100, "roles": ["web"]}]))

        result = runner.invoke(
            cli,
            ["-s", "forever", "-r", str(mapping), "-c", str(tmp_dir / "targets")],
        )

        assert result.exit_code == 1
        assert "invalid duration" in result.output
        assert (tmp_dir / "targets" / "node.yml").exists()

    def test_invalid_policy_exits_1(self, mocker, capsys):
        """Bad option values are reported like other configuration errors."""
        mocker.patch.object(sys, "argv", ["prometheus-puppetdb-sd", "--on-query-error", "retry"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
        out = capsys.readouterr().out
        assert out.startswith("ERROR: ")
        assert "--on-query-error" in out

    def test_invalid_workers_exits_1(self, mocker, capsys):
        mocker.patch.object(sys, "argv", ["prometheus-puppetdb-sd", "--workers", "0"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
        assert "ERROR: " in capsys.readouterr().out

    def test_invalid_workers_from_environment_exits_1(self, mocker, monkeypatch, capsys):
        monkeypatch.setenv("PROMETHEUS_PUPPETDB_WORKERS", "abc")
        mocker.patch.object(sys, "argv", ["prometheus-puppetdb-sd"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
        out = capsys.readouterr().out
        assert "ERROR: " in out
        assert "abc" in out


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_default_level_info(self):
        setup_logging()
        assert logging.getLogger("puppetdb_sd").level == logging.INFO

    def test_debug_level(self):
        setup_logging(debug=True)
        assert logging.getLogger("puppetdb_sd").level == logging.DEBUG

    def test_handler_added_once(self):
        """Repeated calls don't stack handlers."""
        setup_logging()
        setup_logging()
        handlers = [
            h
            for h in logging.getLogger("puppetdb_sd").handlers
            if getattr(h, "stream", None) is sys.stdout
        ]
        assert len(handlers) == 1


class TestMain:
    """Tests for main() exit codes."""

    def test_keyboard_interrupt_exits_130(self, mocker, tmp_dir: Path, capsys):
        """Ctrl-C while polling exits 130."""
        mocker.patch("puppetdb_sd.cli.run_forever", side_effect=KeyboardInterrupt)
        mocker.patch.object(sys, "argv", ["prometheus-puppetdb-sd", "-c", str(tmp_dir)])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 130
        assert "ERROR: Interrupted" in capsys.readouterr().out

    def test_version_exits_0(self, mocker, capsys):
        """--version through main() is not treated as an error."""
        mocker.patch.object(sys, "argv", ["prometheus-puppetdb-sd", "--version"])

        try:
            main()
        except SystemExit as e:
            assert e.code in (0, None)

        out = capsys.readouterr().out
        assert out.startswith("prometheus-puppetdb-sd v")
        assert "ERROR" not in out

    def test_fatal_error_exits_1(self, mocker, tmp_dir: Path, capsys):
        """main() prints fatal errors to stdout and exits 1."""
        mocker.patch.object(
            sys, "argv", ["prometheus-puppetdb-sd", "--once", "-u", "ftp://x", "-c", str(tmp_dir)]
        )

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
        assert "ERROR: ftp is not a valid http scheme" in capsys.readouterr().out
