"""
zinstall.evidence — Timestamped install log.

Everything the installer reports goes to the terminal *and* to a log
file under the configured log directory, one ``[YYYY-mm-dd HH:MM:SS]``
prefixed line per message.  Raw command output is copied through
unprefixed.  When the log is closed the terminal console's recording is
saved as a plain-text transcript next to the log.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, TextIO

from rich.console import Console
from rich.text import Text

from zinstall.system.identity import HostIdentity

_TS_FORMAT = "%Y-%m-%d %H:%M:%S"
_STAMP_FORMAT = "%Y%m%d-%H%M%S"
_LOG_PREFIX = "ZabbixAgent2"


def run_stamp(now: datetime | None = None) -> str:
    """Compact timestamp used in file names and config backups."""
    return (now or datetime.now()).strftime(_STAMP_FORMAT)


def log_paths(log_dir: Path, identity: HostIdentity, stamp: str) -> tuple[Path, Path]:
    """Return ``(log_file, transcript_file)`` for this host and run."""
    base = f"{_LOG_PREFIX}_{identity.safe_hostname}_{identity.ip_label}_{stamp}"
    return log_dir / f"{base}.log", log_dir / f"{base}.transcript.txt"


class EvidenceLog:
    """Tee-style logger: terminal console plus an append-only log file.

    Parameters
    ----------
    log_path : Path | None
        File to append to.  ``None`` logs to the terminal only.
    transcript_path : Path | None
        Where ``close()`` saves the terminal recording.
    console : Console | None
        Terminal console (a recording one is created when omitted).
    clock : Callable[[], datetime]
        Time source for line prefixes.
    """

    def __init__(
        self,
        log_path: Path | None = None,
        transcript_path: Path | None = None,
        console: Console | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.log_path = log_path
        self.transcript_path = transcript_path
        self.console = console or Console(record=True, highlight=False)
        self._clock = clock
        self._fh: TextIO | None = None
        self._file_console: Console | None = None

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(log_path, "a", encoding="utf-8")
            self._file_console = Console(
                file=self._fh,
                no_color=True,
                highlight=False,
                soft_wrap=True,
                width=200,
            )

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def _emit(self, message: str, style: str = "") -> None:
        line = f"[{self._clock().strftime(_TS_FORMAT)}] {message}"
        self.console.print(Text(line, style=style), soft_wrap=True)
        if self._file_console is not None:
            self._file_console.print(Text(line))
            self._fh.flush()  # type: ignore[union-attr]

    def info(self, message: str) -> None:
        self._emit(message)

    def ok(self, message: str) -> None:
        self._emit(f"OK: {message}", style="green")

    def warn(self, message: str) -> None:
        self._emit(f"WARN: {message}", style="yellow")

    def error(self, message: str) -> None:
        self._emit(f"ERROR: {message}", style="bold red")

    def step(self, number: int, title: str) -> None:
        self._emit(f"STEP {number} - {title}", style="bold cyan")

    def banner(self, title: str) -> None:
        self._emit(f"==== {title} ====", style="bold")

    def block(self, text: str) -> None:
        """Copy raw command output through, without timestamps."""
        text = text.rstrip("\n")
        if not text:
            return
        self.console.print(Text(text), soft_wrap=True)
        if self._file_console is not None:
            self._file_console.print(Text(text))
            self._fh.flush()  # type: ignore[union-attr]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self.transcript_path is not None and self.console.record:
            self.console.save_text(str(self.transcript_path))
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._file_console = None

    def __enter__(self) -> EvidenceLog:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
