"""Tests for zinstall.ops and zinstall.tools — external command backends."""

from __future__ import annotations

import hashlib
import sys
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from zinstall.ops.packages import AptPackageManager, download
from zinstall.ops.service import SystemdController, agent_version
from zinstall.tools.shell_exec import CommandError, CommandResult, run_command


class TestRunCommand:
    """Subprocess wrapper behaviour."""

    def test_captures_output(self) -> None:
        result = run_command([sys.executable, "-c", "print('hello agent')"])
        assert result.ok
        assert "hello agent" in result.output

    def test_stderr_is_merged(self) -> None:
        result = run_command([sys.executable, "-c", "import sys; sys.stderr.write('oops')"])
        assert "oops" in result.output

    def test_nonzero_exit(self) -> None:
        result = run_command([sys.executable, "-c", "import sys; sys.exit(42)"])
        assert result.returncode == 42
        assert not result.ok

    def test_check_raises(self) -> None:
        with pytest.raises(CommandError) as excinfo:
            run_command([sys.executable, "-c", "import sys; sys.exit(3)"], check=True)
        assert excinfo.value.returncode == 3

    def test_missing_binary(self) -> None:
        result = run_command(["this_tool_does_not_exist_12345"])
        assert result.returncode == 127
        assert "not found" in result.output

    def test_env_is_merged(self) -> None:
        result = run_command(
            [sys.executable, "-c", "import os; print(os.environ['DEBIAN_FRONTEND'])"],
            env={"DEBIAN_FRONTEND": "noninteractive"},
        )
        assert result.output.strip() == "noninteractive"

    def test_timeout(self) -> None:
        result = run_command([sys.executable, "-c", "import time; time.sleep(5)"], timeout=1)
        assert result.returncode == 124


class TestAptPackageManager:
    """apt-get / dpkg argv construction (commands are not executed)."""

    def setup_method(self) -> None:
        self.apt = AptPackageManager()

    def test_update(self) -> None:
        with patch("zinstall.ops.packages.run_command") as run:
            self.apt.update()
        run.assert_called_once_with(["apt-get", "update", "-y"], check=True)

    def test_install_is_noninteractive(self) -> None:
        with patch("zinstall.ops.packages.run_command") as run:
            self.apt.install("curl", "gnupg")
        run.assert_called_once_with(
            ["apt-get", "install", "-y", "curl", "gnupg"],
            env={"DEBIAN_FRONTEND": "noninteractive"},
            check=True,
        )

    def test_install_file(self) -> None:
        with patch("zinstall.ops.packages.run_command") as run:
            self.apt.install_file(Path("/tmp/x/zabbix-release.deb"))
        argv = run.call_args.args[0]
        assert argv == ["dpkg", "-i", "/tmp/x/zabbix-release.deb"]

    def test_installed_filters_dpkg_listing(self) -> None:
        listing = (
            "ii  curl            8.5.0   amd64  command line tool\n"
            "ii  zabbix-agent2   1:7.4.0 amd64  Zabbix network monitoring\n"
            "ii  zabbix-release  1:7.4-1 all    Zabbix official repository\n"
        )
        with patch(
            "zinstall.ops.packages.run_command",
            return_value=CommandResult(["dpkg", "-l"], 0, listing),
        ):
            lines = self.apt.installed(["zabbix-agent2", "ZABBIX-RELEASE"])
        assert len(lines) == 2
        assert all("zabbix" in line for line in lines)

    def test_installed_empty_when_dpkg_fails(self) -> None:
        with patch(
            "zinstall.ops.packages.run_command",
            return_value=CommandResult(["dpkg", "-l"], 127, "command not found"),
        ):
            assert self.apt.installed(["zabbix"]) == []


class TestSystemdController:
    def test_enable_now(self) -> None:
        with patch("zinstall.ops.service.run_command") as run:
            SystemdController().enable_now("zabbix-agent2")
        run.assert_called_once_with(["systemctl", "enable", "--now", "zabbix-agent2"], check=True)

    def test_status_does_not_check(self) -> None:
        with patch("zinstall.ops.service.run_command") as run:
            SystemdController().status("zabbix-agent2")
        run.assert_called_once_with(["systemctl", "status", "zabbix-agent2", "--no-pager"])

    def test_agent_version_missing_binary(self) -> None:
        assert agent_version("this_tool_does_not_exist_12345").returncode == 127


class TestDownload:
    """Vendor package download through httpx."""

    def test_writes_file_and_returns_sha256(self, tmp_path: Path) -> None:
        payload = b"!<arch>\ndebian-binary"
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=payload))
        dest = tmp_path / "work" / "zabbix-release.deb"

        digest = download("https://repo.example/zabbix-release.deb", dest, transport=transport)

        assert dest.read_bytes() == payload
        assert digest == hashlib.sha256(payload).hexdigest()

    def test_http_error_raises(self, tmp_path: Path) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        with pytest.raises(httpx.HTTPStatusError):
            download("https://repo.example/missing.deb", tmp_path / "x.deb", transport=transport)
