"""
zinstall.net.probe — TCP reachability checks.

``probe_tcp`` makes one connection attempt under a single deadline that
covers name resolution as well as the connect.  Every failure (refused,
timed out, unresolvable, unroutable) comes back as ``reachable=False``;
nothing is raised to the caller.

``listening_sockets`` answers the opposite question for the local host:
is anything listening on a given TCP port?
"""

from __future__ import annotations

import socket
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass

import psutil

DEFAULT_TIMEOUT = 3.0


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single connection attempt."""

    host: str
    port: int
    reachable: bool
    elapsed_ms: int = 0
    error: str | None = None

    def __bool__(self) -> bool:
        return self.reachable

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"


def _resolve(host: str, port: int, timeout_seconds: float) -> list[tuple]:
    """``getaddrinfo`` bounded by *timeout_seconds*.

    The lookup runs in a worker thread; the worker is abandoned (not
    joined) when the deadline passes.
    """
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="zinstall-resolve")
    try:
        future = pool.submit(socket.getaddrinfo, host, port, 0, socket.SOCK_STREAM)
        return future.result(timeout=timeout_seconds)
    finally:
        pool.shutdown(wait=False)


def _connect(host: str, port: int, timeout_seconds: float) -> None:
    """Connect to the first address of *host* that accepts, within one deadline."""
    deadline = time.monotonic() + timeout_seconds
    last_error: OSError | None = None
    for family, kind, proto, _, address in _resolve(host, port, timeout_seconds):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise socket.timeout("timed out")
        sock = socket.socket(family, kind, proto)
        try:
            sock.settimeout(remaining)
            sock.connect(address)
            return
        except OSError as exc:
            last_error = exc
        finally:
            sock.close()
    if last_error is not None:
        raise last_error
    raise OSError(f"no addresses for {host}")


def probe_tcp(host: str, port: int, timeout_seconds: float = DEFAULT_TIMEOUT) -> ProbeResult:
    """Try to open a TCP connection to ``host:port`` within *timeout_seconds*.

    Parameters
    ----------
    host : str
        Hostname or IP address of the remote end.
    port : int
        TCP port (1-65535).
    timeout_seconds : float
        One deadline shared by name resolution and every connect attempt.

    Returns
    -------
    ProbeResult
        ``reachable`` is True as soon as the TCP handshake completes.
    """
    if not host:
        return ProbeResult(host, port, False, error="empty host")
    if not 0 < port < 65536:
        return ProbeResult(host, port, False, error=f"invalid port {port}")

    started = time.monotonic()
    try:
        _connect(host, port, timeout_seconds)
    except (FutureTimeout, socket.timeout):
        error: str | None = f"timed out after {timeout_seconds:g}s"
    except socket.gaierror as exc:
        error = f"name resolution failed: {exc}"
    except OSError as exc:
        error = exc.strerror or str(exc) or type(exc).__name__
    except UnicodeError as exc:
        error = f"invalid host name: {exc}"
    else:
        error = None

    elapsed_ms = int((time.monotonic() - started) * 1000)
    return ProbeResult(host, port, error is None, elapsed_ms, error)


# ---------------------------------------------------------------------------
# Local listeners
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ListeningSocket:
    address: str
    port: int
    pid: int | None = None
    process: str | None = None

    def describe(self) -> str:
        owner = f" users:(({self.process!r},pid={self.pid}))" if self.pid else ""
        return f"LISTEN {self.address}:{self.port}{owner}"


def _process_name(pid: int | None) -> str | None:
    if pid is None:
        return None
    try:
        return psutil.Process(pid).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None


def listening_sockets(port: int) -> list[ListeningSocket]:
    """TCP sockets in LISTEN state on *port* (empty when not permitted)."""
    try:
        connections = psutil.net_connections(kind="tcp")
    except psutil.AccessDenied:
        return []

    found: list[ListeningSocket] = []
    for conn in connections:
        if conn.status != psutil.CONN_LISTEN or not conn.laddr:
            continue
        if conn.laddr.port != port:
            continue
        found.append(
            ListeningSocket(conn.laddr.ip, conn.laddr.port, conn.pid, _process_name(conn.pid))
        )
    return found
