"""
zinstall.system.identity — Host name and primary IPv4 discovery.

The primary address is the source address the kernel would pick to reach
an external destination.  It is read with an unconnected UDP socket:
``connect()`` on a datagram socket only performs the route lookup, no
packet leaves the machine.  When that fails the first global-scope IPv4
bound to any interface is used instead.

Each OS capability sits behind a small Protocol so the resolver can be
exercised with fakes.
"""

from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass
from typing import Iterable, Protocol

import psutil
from rich.console import Console

console = Console(stderr=True)

NO_IP = "NOIP"
UNKNOWN_HOST = "unknown-host"
DEFAULT_ROUTE_TARGET = "1.1.1.1"


# ---------------------------------------------------------------------------
# Data type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HostIdentity:
    """Who this machine is, as far as the monitoring server is concerned.

    Attributes
    ----------
    hostname : str
        FQDN when the resolver knows one, otherwise the short name.
    primary_ipv4 : str | None
        Outbound source address, or None when nothing could be found.
    """

    hostname: str
    primary_ipv4: str | None = None

    @property
    def ip_label(self) -> str:
        return self.primary_ipv4 or NO_IP

    @property
    def safe_hostname(self) -> str:
        """Hostname usable inside file names (dots become underscores)."""
        return self.hostname.replace(".", "_")


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


class HostnameSource(Protocol):
    def fqdn(self) -> str: ...

    def short_name(self) -> str: ...


class RouteTableQuery(Protocol):
    def source_for(self, destination: str) -> str | None:
        """Return the preferred source IPv4 for *destination*, or None."""
        ...


class InterfaceLister(Protocol):
    def ipv4_addresses(self) -> Iterable[str]:
        """Yield IPv4 addresses in interface-enumeration order."""
        ...


class SocketHostnames:
    """Hostnames as reported by the resolver library."""

    def fqdn(self) -> str:
        try:
            return socket.getfqdn()
        except OSError:
            return ""

    def short_name(self) -> str:
        try:
            return socket.gethostname()
        except OSError:
            return ""


class SocketRouteQuery:
    """Route lookup through a connected UDP socket (no traffic is sent)."""

    def source_for(self, destination: str) -> str | None:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
                sock.connect((destination, 80))
                address = sock.getsockname()[0]
        except OSError:
            return None
        if not address or address == "0.0.0.0":
            return None
        return address


class PsutilInterfaces:
    """IPv4 addresses of all interfaces, via ``psutil.net_if_addrs``."""

    def ipv4_addresses(self) -> Iterable[str]:
        for addrs in psutil.net_if_addrs().values():
            for addr in addrs:
                if addr.family == socket.AF_INET:
                    yield addr.address


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


def is_global_scope(address: str) -> bool:
    """True for addresses the kernel would list with ``scope global``.

    Private ranges count as global here; only loopback, link-local and
    unspecified addresses are excluded.
    """
    try:
        ip = ipaddress.IPv4Address(address)
    except ValueError:
        return False
    return not (ip.is_loopback or ip.is_link_local or ip.is_unspecified)


def resolve_hostname(source: HostnameSource | None = None) -> str:
    """FQDN, then short name, then a fixed placeholder."""
    source = source or SocketHostnames()
    name = source.fqdn().strip() or source.short_name().strip()
    if not name:
        console.print(
            f"[yellow]WARN: could not determine hostname, using '{UNKNOWN_HOST}'[/yellow]"
        )
        return UNKNOWN_HOST
    return name


def resolve_primary_ipv4(
    routes: RouteTableQuery | None = None,
    interfaces: InterfaceLister | None = None,
    target: str = DEFAULT_ROUTE_TARGET,
) -> str | None:
    """Best-effort primary IPv4; never raises."""
    routes = routes or SocketRouteQuery()
    interfaces = interfaces or PsutilInterfaces()

    address = routes.source_for(target)
    if address:
        return address

    try:
        for candidate in interfaces.ipv4_addresses():
            if is_global_scope(candidate):
                return candidate
    except OSError:
        return None
    return None


def resolve_host_identity(
    hostnames: HostnameSource | None = None,
    routes: RouteTableQuery | None = None,
    interfaces: InterfaceLister | None = None,
    target: str = DEFAULT_ROUTE_TARGET,
) -> HostIdentity:
    """Detect the hostname and primary IPv4 of this machine."""
    return HostIdentity(
        hostname=resolve_hostname(hostnames),
        primary_ipv4=resolve_primary_ipv4(routes, interfaces, target),
    )
