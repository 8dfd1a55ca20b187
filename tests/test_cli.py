"""Tests for zinstall.cli — Typer CLI commands."""

from __future__ import annotations

import socket
from pathlib import Path
from unittest.mock import patch

import yaml
from typer.testing import CliRunner

from zinstall.cli import app
from zinstall.installer import InstallError, InstallReport
from zinstall.system.identity import HostIdentity

runner = CliRunner()


class TestCLI:
    """Test the Typer sub-commands."""

    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "zinstall" in result.output.lower()

    def test_no_args_shows_help(self) -> None:
        result = runner.invoke(app, [])
        # Typer/Click may return 0 or 2 when displaying help
        assert result.exit_code in (0, 2)
        assert "usage" in result.output.lower()

    def test_info_command(self) -> None:
        result = runner.invoke(app, ["info"])
        assert result.exit_code == 0
        assert "Server" in result.output

    def test_identity_command(self) -> None:
        with patch(
            "zinstall.system.identity.resolve_host_identity",
            return_value=HostIdentity("pve01.lab.local"),
        ):
            result = runner.invoke(app, ["identity"])
        assert result.exit_code == 0
        assert "pve01.lab.local" in result.output
        assert "NOIP" in result.output


class TestProbeCommand:
    def test_reachable(self) -> None:
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        try:
            port = server.getsockname()[1]
            result = runner.invoke(app, ["probe", "127.0.0.1", str(port), "--timeout", "2"])
        finally:
            server.close()
        assert result.exit_code == 0
        assert "reachable" in result.output

    def test_unreachable_exits_one(self) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]
        result = runner.invoke(app, ["probe", "127.0.0.1", str(port), "-t", "1"])
        assert result.exit_code == 1
        assert "unreachable" in result.output


class TestSetCommand:
    def test_set_activates_commented_key(self, tmp_path: Path) -> None:
        conf = tmp_path / "agent.conf"
        conf.write_text("# Server=\nOther=1\n", encoding="utf-8")
        result = runner.invoke(app, ["set", "Server", "10.0.0.1", "--file", str(conf)])
        assert result.exit_code == 0
        assert conf.read_text(encoding="utf-8") == "Server=10.0.0.1\nOther=1\n"
        assert list(tmp_path.glob("agent.conf.bak.*"))

    def test_set_unchanged(self, tmp_path: Path) -> None:
        conf = tmp_path / "agent.conf"
        conf.write_text("Server=10.0.0.1\n", encoding="utf-8")
        result = runner.invoke(
            app, ["set", "Server", "10.0.0.1", "-f", str(conf), "--no-backup"]
        )
        assert result.exit_code == 0
        assert "already set" in result.output
        assert not list(tmp_path.glob("agent.conf.bak.*"))

    def test_set_missing_file_fails(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["set", "Server", "x", "-f", str(tmp_path / "missing.conf"), "--no-backup"]
        )
        assert result.exit_code == 1
        assert "Error" in result.output


class TestInstallCommand:
    def test_install_passes_overrides(self, tmp_path: Path) -> None:
        report = InstallReport(HostIdentity("h"), tmp_path / "run.log")
        with patch("zinstall.installer.run_install", return_value=report) as run:
            result = runner.invoke(
                app,
                ["install", "--server", "10.1.1.1", "--log-dir", str(tmp_path), "--dry-run"],
            )
        assert result.exit_code == 0, result.output
        settings = run.call_args.args[0]
        assert settings.server == "10.1.1.1"
        assert settings.log_dir == tmp_path
        assert run.call_args.kwargs == {"dry_run": True}
        assert "Evidence log" in result.output

    def test_install_error_exits_one(self) -> None:
        with patch("zinstall.installer.run_install", side_effect=InstallError("must run as root")):
            result = runner.invoke(app, ["install"])
        assert result.exit_code == 1
        assert "must run as root" in result.output


class TestBrokenSettings:
    """A malformed config file is reported, not dumped as a traceback."""

    def test_info_reports_bad_yaml(self) -> None:
        broken = yaml.YAMLError("mapping values not allowed")
        with patch("zinstall.cli.get_settings", side_effect=broken):
            result = runner.invoke(app, ["info"])
        assert result.exit_code == 1
        assert "Error" in result.output
        assert "mapping values not allowed" in result.output

    def test_identity_reports_unreadable_config(self) -> None:
        with patch("zinstall.cli.get_settings", side_effect=PermissionError("config.yaml")):
            result = runner.invoke(app, ["identity"])
        assert result.exit_code == 1
        assert "PermissionError" in result.output
