"""
zinstall.tools.shell_exec — Run external commands.

Package and service management are done by the OS tools themselves
(``apt-get``, ``dpkg``, ``systemctl``).  This module is the single place
that spawns them: argv lists only, never a shell, combined output
captured so it can be copied into the evidence log.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass

# Maximum output length kept per command (apt can be chatty)
_MAX_OUTPUT_CHARS = 64000
DEFAULT_TIMEOUT = 600


class CommandError(RuntimeError):
    """A command exited non-zero (or could not be started) with ``check=True``."""

    def __init__(self, argv: list[str], returncode: int, output: str = "") -> None:
        self.argv = argv
        self.returncode = returncode
        self.output = output
        super().__init__(f"'{' '.join(argv)}' failed with exit code {returncode}")


@dataclass
class CommandResult:
    argv: list[str]
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def run_command(
    argv: list[str],
    env: dict[str, str] | None = None,
    timeout: int = DEFAULT_TIMEOUT,
    check: bool = False,
) -> CommandResult:
    """Run *argv* and return its exit code and combined stdout/stderr.

    Parameters
    ----------
    argv : list[str]
        Program and arguments.
    env : dict[str, str] | None
        Extra environment variables, merged over the current environment.
    timeout : int
        Seconds before the command is killed.
    check : bool
        Raise ``CommandError`` instead of returning a failed result.
    """
    full_env = {**os.environ, **env} if env else None
    try:
        proc = subprocess.run(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            env=full_env,
            timeout=timeout,
        )
        result = CommandResult(argv, proc.returncode, proc.stdout or "")
    except FileNotFoundError:
        result = CommandResult(argv, 127, f"command not found: {argv[0]}")
    except subprocess.TimeoutExpired:
        result = CommandResult(argv, 124, f"timed out after {timeout} seconds")

    if len(result.output) > _MAX_OUTPUT_CHARS:
        result.output = result.output[:_MAX_OUTPUT_CHARS] + "\n... (output truncated)"

    if check and not result.ok:
        raise CommandError(argv, result.returncode, result.output)
    return result
