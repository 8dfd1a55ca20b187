"""
zinstall.system.fingerprint — Operating system evidence.

Collects what the installer needs to know (and record) about the host
before it touches anything: the ``/etc/os-release`` contents, whether we
run as root, and which of the external tools the flow shells out to are
present.
"""

from __future__ import annotations

import os
import platform
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

OS_RELEASE_PATH = Path("/etc/os-release")

# Tools to probe: (display_name, command)
_TOOL_PROBES: list[tuple[str, list[str]]] = [
    ("apt-get",   ["apt-get", "--version"]),
    ("dpkg",      ["dpkg", "--version"]),
    ("systemctl", ["systemctl", "--version"]),
    ("curl",      ["curl", "--version"]),
    ("ss",        ["ss", "--version"]),
    ("timeout",   ["timeout", "--version"]),
]


def _probe_tool(command: list[str]) -> str | None:
    """Run a command and return the first line of output, or None if not found."""
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=5,
            stdin=subprocess.DEVNULL,
        )
        output = (result.stdout or result.stderr).strip()
        return output.split("\n")[0].strip() if output else None
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError):
        return None


def parse_os_release(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` / ``KEY="value"`` lines into a dict."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def is_root() -> bool:
    """True when running with effective uid 0."""
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


@dataclass
class SystemFingerprint:
    """Snapshot of the host, recorded at the start of an install."""

    kernel: str = ""
    machine: str = ""
    os_release_raw: str | None = None
    os_release: dict[str, str] = field(default_factory=dict)
    installed_tools: dict[str, str] = field(default_factory=dict)
    missing_tools: list[str] = field(default_factory=list)

    @classmethod
    def detect(cls, os_release_path: Path = OS_RELEASE_PATH) -> SystemFingerprint:
        """Probe the system and return a populated fingerprint."""
        fp = cls()
        fp.kernel = f"{platform.system()} {platform.release()}"
        fp.machine = platform.machine()

        if os_release_path.is_file():
            fp.os_release_raw = os_release_path.read_text(encoding="utf-8", errors="replace")
            fp.os_release = parse_os_release(fp.os_release_raw)

        for name, cmd in _TOOL_PROBES:
            version = _probe_tool(cmd)
            if version:
                fp.installed_tools[name] = version
            else:
                fp.missing_tools.append(name)

        return fp

    @property
    def pretty_name(self) -> str:
        return self.os_release.get("PRETTY_NAME", self.kernel)

    @property
    def is_debian_family(self) -> bool:
        ids = {self.os_release.get("ID", "")}
        ids.update(self.os_release.get("ID_LIKE", "").split())
        return bool(ids & {"debian", "ubuntu"})
