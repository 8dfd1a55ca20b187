"""
zinstall.ops.service — Service lifecycle through systemd.
"""

from __future__ import annotations

from typing import Protocol

from zinstall.tools.shell_exec import CommandResult, run_command


class ServiceController(Protocol):
    def enable_now(self, name: str) -> CommandResult: ...

    def status(self, name: str) -> CommandResult: ...


class SystemdController:
    """``systemctl`` backend."""

    def enable_now(self, name: str) -> CommandResult:
        """Enable *name* at boot and start it immediately (raises on failure)."""
        return run_command(["systemctl", "enable", "--now", name], check=True)

    def status(self, name: str) -> CommandResult:
        # non-zero for inactive units; callers only log it
        return run_command(["systemctl", "status", name, "--no-pager"])


def agent_version(binary: str) -> CommandResult:
    """Output of ``<binary> -V``; a missing binary yields exit code 127."""
    return run_command([binary, "-V"], timeout=30)
