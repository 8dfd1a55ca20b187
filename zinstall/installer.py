"""
zinstall.installer — The provisioning flow.

``Installer.run()`` walks the steps in order, logging each one as
``STEP n``.  Package, service and download operations are injected so
the whole flow can run against fakes; the defaults talk to apt, dpkg and
systemd.

Fatal conditions raise ``InstallError`` (or let ``CommandError`` from a
failed package/service command propagate).  Advisory checks only log.
"""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

import httpx

from zinstall.conf.upsert import backup_file, read_document, upsert_file
from zinstall.config import InstallSettings
from zinstall.evidence import EvidenceLog, log_paths, run_stamp
from zinstall.net.probe import ListeningSocket, ProbeResult, listening_sockets, probe_tcp
from zinstall.ops.packages import AptPackageManager, PackageManager, download
from zinstall.ops.service import ServiceController, SystemdController, agent_version
from zinstall.system.fingerprint import SystemFingerprint, is_root
from zinstall.system.identity import HostIdentity, resolve_host_identity
from zinstall.tools.shell_exec import CommandError, CommandResult

CONFIG_KEYS = ("Server", "ServerActive", "Hostname")


class InstallError(RuntimeError):
    """A condition that makes continuing the install pointless."""


@dataclass
class InstallReport:
    """What a finished run produced."""

    identity: HostIdentity
    log_path: Path | None
    backup_path: Path | None = None
    changed_keys: tuple[str, ...] = ()
    active_check: ProbeResult | None = None


class Installer:
    """One provisioning run on the local host."""

    def __init__(
        self,
        settings: InstallSettings,
        log: EvidenceLog,
        identity: HostIdentity,
        packages: PackageManager | None = None,
        services: ServiceController | None = None,
        downloader: Callable[[str, Path], str] = download,
        prober: Callable[[str, int, float], ProbeResult] = probe_tcp,
        listeners: Callable[[int], list[ListeningSocket]] = listening_sockets,
        version_probe: Callable[[str], CommandResult] = agent_version,
        fingerprint: SystemFingerprint | None = None,
        stamp: str | None = None,
        dry_run: bool = False,
        require_root: bool = True,
    ) -> None:
        self.settings = settings
        self.log = log
        self.identity = identity
        self.packages = packages or AptPackageManager()
        self.services = services or SystemdController()
        self.downloader = downloader
        self.prober = prober
        self.listeners = listeners
        self.version_probe = version_probe
        self.fingerprint = fingerprint
        self.stamp = stamp or run_stamp()
        self.dry_run = dry_run
        self.require_root = require_root
        self.work_dir: Path | None = None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self) -> InstallReport:
        if self.require_root and not self.dry_run and not is_root():
            self.log.error("must be run as root.")
            raise InstallError("must run as root")

        report = InstallReport(identity=self.identity, log_path=self.log.log_path)
        self.settings.work_dir.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix="azenity-zabbix.", dir=self.settings.work_dir))
        self.work_dir = work_dir
        try:
            self._header()
            self._os_evidence()
            self._prerequisites()
            self._add_repository(work_dir)
            self._install_agent()
            self._configure(report)
            self._enable_service()
            self._local_port_evidence()
            report.active_check = self._connectivity()
            self._version_evidence()
        except CommandError as exc:
            self.log.block(exc.output)
            self.log.error(str(exc))
            raise
        finally:
            self.log.info("Cleaning up temporary files")
            shutil.rmtree(work_dir, ignore_errors=True)

        self.log.banner("ZABBIX AGENT 2 INSTALL - END (SUCCESS)")
        if self.log.log_path is not None:
            self.log.info(f"LOG FINAL: {self.log.log_path}")
        return report

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _header(self) -> None:
        s = self.settings
        self.log.banner("ZABBIX AGENT 2 INSTALL - START")
        self.log.info(f"Host: {self.identity.hostname}")
        self.log.info(f"IP:   {self.identity.ip_label}")
        self.log.info(f"Date: {datetime.now():%Y-%m-%d %H:%M:%S}")
        self.log.info(f"Zabbix Server: {s.server}")
        self.log.info(f"Zabbix Repo Version: {s.version}")
        if self.log.log_path is not None:
            self.log.info(f"Log: {self.log.log_path}")
        if self.dry_run:
            self.log.warn("dry-run: no changes will be made to the system.")

    def _os_evidence(self) -> None:
        self.log.step(1, "OS evidence (/etc/os-release)")
        fp = self.fingerprint or SystemFingerprint.detect()
        self.fingerprint = fp
        if fp.os_release_raw is None:
            self.log.warn("/etc/os-release not found.")
        else:
            self.log.block(fp.os_release_raw)
        if fp.missing_tools:
            self.log.warn(f"Missing tools: {', '.join(fp.missing_tools)}")

    def _prerequisites(self) -> None:
        prereqs = self.settings.prerequisites
        self.log.step(2, f"Prerequisites ({'/'.join(prereqs)})")
        if self.dry_run:
            self.log.info("dry-run: skipping apt-get update / install.")
            return
        self.log.block(self.packages.update().output)
        self.log.block(self.packages.install(*prereqs).output)

    def _add_repository(self, work_dir: Path) -> None:
        self.log.step(
            3,
            f"Add the official Zabbix repository (zabbix-release for Debian "
            f"{self.settings.debian_release})",
        )
        url = self.settings.release_url
        if self.dry_run:
            self.log.info(f"dry-run: skipping download of {url}")
            return

        deb_path = work_dir / "zabbix-release.deb"
        self.log.info(f"Downloading: {url}")
        try:
            sha256 = self.downloader(url, deb_path)
        except (httpx.HTTPError, OSError) as exc:
            self.log.error(f"download failed: {exc}")
            raise InstallError(f"could not download {url}: {exc}") from exc
        self.log.info(f"Downloaded: {deb_path} (sha256 below)")
        self.log.block(f"{sha256}  {deb_path}")

        self.log.info("Installing repository package (dpkg -i)")
        self.log.block(self.packages.install_file(deb_path).output)
        self.log.info("apt-get update after adding the repository")
        self.log.block(self.packages.update().output)

    def _install_agent(self) -> None:
        self.log.step(4, f"Install {self.settings.package}")
        if self.dry_run:
            self.log.info(f"dry-run: skipping install of {self.settings.package}.")
            return
        self.log.block(self.packages.install(self.settings.package).output)

    def _configure(self, report: InstallReport) -> None:
        conf = self.settings.conf_path
        self.log.step(5, "Configure Agent 2 (Server/ServerActive/Hostname)")
        pairs = [
            ("Server", self.settings.server),
            ("ServerActive", self.settings.server),
            ("Hostname", self.identity.hostname),
        ]

        if not conf.is_file():
            if self.dry_run:
                self.log.warn(f"{conf} not found (dry-run).")
                return
            self.log.error(f"{conf} not found after install.")
            raise InstallError(f"{conf} not found after install")

        if self.dry_run:
            for key, value in pairs:
                self.log.info(f"dry-run: {key}={value}")
            return

        report.backup_path = backup_file(conf, self.stamp)
        self.log.info(f"Backup: {report.backup_path}")

        report.changed_keys = tuple(upsert_file(conf, pairs))

        self.log.info("Evidence (Server/ServerActive/Hostname lines):")
        evidence = read_document(conf).evidence(CONFIG_KEYS)
        self.log.block("\n".join(f"{number}:{text}" for number, text in evidence))

    def _enable_service(self) -> None:
        name = self.settings.service
        self.log.step(6, "Enable and start the service")
        if self.dry_run:
            self.log.info(f"dry-run: skipping systemctl enable --now {name}.")
            return
        self.log.block(self.services.enable_now(name).output)

        self.log.info("Evidence - service status")
        status = self.services.status(name)
        self.log.block(status.output)
        if not status.ok:
            self.log.warn(f"systemctl status {name} returned {status.returncode}.")

    def _local_port_evidence(self) -> None:
        port = self.settings.passive_port
        self.log.step(7, f"Local port evidence ({port}/tcp)")
        found = self.listeners(port)
        if found:
            self.log.block("\n".join(sock.describe() for sock in found))
        else:
            self.log.warn(f"nothing is listening on {port}/tcp.")

    def _connectivity(self) -> ProbeResult:
        s = self.settings
        self.log.step(8, "Connectivity test to the Zabbix server")
        self.log.info(f" - Active checks use TCP/{s.active_port} (agent -> server).")

        result = self.prober(s.server, s.active_port, s.probe_timeout)
        if result.reachable:
            self.log.ok(f"TCP connectivity {result.target} (active) = SUCCESS")
        else:
            reason = f" ({result.error})" if result.error else ""
            self.log.warn(
                f"TCP failure {result.target} (active){reason}. "
                "Check routing/firewall/network."
            )

        self.log.info(f" - Passive checks use TCP/{s.passive_port} (server -> agent).")
        self.log.info(
            "   NOTE: this must be validated from the server side "
            "(zabbix_get or a passive item)."
        )
        return result

    def _version_evidence(self) -> None:
        self.log.step(9, "Version / package evidence")
        lines = self.packages.installed([self.settings.package, "zabbix-release"])
        if lines:
            self.log.block("\n".join(lines))
        else:
            self.log.warn("no zabbix packages found by dpkg.")

        version = self.version_probe(self.settings.agent_binary)
        if version.ok:
            self.log.block(version.output)
        else:
            self.log.warn(f"{self.settings.agent_binary} -V unavailable.")


# ---------------------------------------------------------------------------
# Convenience
# ---------------------------------------------------------------------------


def run_install(settings: InstallSettings, dry_run: bool = False) -> InstallReport:
    """Resolve identity, open the evidence log and run the installer."""
    # checked before the log directory is created
    if not dry_run and not is_root():
        raise InstallError("must run as root")

    identity = resolve_host_identity(target=settings.route_probe_target)
    stamp = run_stamp()
    # dry runs log to the terminal only
    log_file: Path | None = None
    transcript: Path | None = None
    if not dry_run:
        log_file, transcript = log_paths(settings.log_dir, identity, stamp)

    with EvidenceLog(log_file, transcript) as log:
        installer = Installer(settings, log, identity, stamp=stamp, dry_run=dry_run)
        return installer.run()
