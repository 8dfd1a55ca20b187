"""
zinstall.ops.packages — Debian package management and vendor downloads.

``AptPackageManager`` drives ``apt-get`` and ``dpkg``; anything that
matches the ``PackageManager`` protocol can replace it (the tests use a
recording fake).  ``download`` fetches the vendor repository package
with ``httpx`` and returns its SHA-256 so it can be logged as evidence.
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Iterable, Protocol

import httpx

from zinstall.tools.shell_exec import CommandResult, run_command

_NONINTERACTIVE = {"DEBIAN_FRONTEND": "noninteractive"}


class PackageManager(Protocol):
    def update(self) -> CommandResult: ...

    def install(self, *packages: str) -> CommandResult: ...

    def install_file(self, path: Path) -> CommandResult: ...

    def installed(self, patterns: Iterable[str]) -> list[str]: ...


class AptPackageManager:
    """``apt-get`` / ``dpkg`` backend.  Failures raise ``CommandError``."""

    def update(self) -> CommandResult:
        return run_command(["apt-get", "update", "-y"], check=True)

    def install(self, *packages: str) -> CommandResult:
        return run_command(
            ["apt-get", "install", "-y", *packages],
            env=_NONINTERACTIVE,
            check=True,
        )

    def install_file(self, path: Path) -> CommandResult:
        return run_command(["dpkg", "-i", str(path)], env=_NONINTERACTIVE, check=True)

    def installed(self, patterns: Iterable[str]) -> list[str]:
        """``dpkg -l`` lines whose text matches any of *patterns* (case-insensitive)."""
        result = run_command(["dpkg", "-l"])
        if not result.ok:
            return []
        regex = re.compile("|".join(re.escape(p) for p in patterns), re.IGNORECASE)
        return [line for line in result.output.splitlines() if regex.search(line)]


# ---------------------------------------------------------------------------
# Downloads
# ---------------------------------------------------------------------------


def download(
    url: str,
    dest: Path,
    timeout: float = 60.0,
    transport: httpx.BaseTransport | None = None,
) -> str:
    """Stream *url* into *dest* and return the file's SHA-256 hex digest.

    Raises ``httpx.HTTPError`` on connection problems or non-2xx status.
    """
    digest = hashlib.sha256()
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)

    with httpx.Client(timeout=timeout, follow_redirects=True, transport=transport) as client:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            with open(dest, "wb") as fh:
                for chunk in response.iter_bytes():
                    fh.write(chunk)
                    digest.update(chunk)

    return digest.hexdigest()
