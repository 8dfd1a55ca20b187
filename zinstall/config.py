"""
zinstall.config — Load, validate, and expose installer configuration.

Config search order (first found wins):
1. ``--config PATH``              (explicit, from the CLI)
2. ``/etc/zinstall/config.yaml``  (system-level)
3. ``./config.yaml``              (working directory, for development)
4. Built-in Pydantic defaults

Environment variables override the YAML file (``ZBX_SERVER``,
``ZBX_VERSION``, ``LOG_DIR``); CLI options override everything.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

SYSTEM_CONFIG_PATH = Path("/etc/zinstall/config.yaml")
LOCAL_CONFIG_PATH = Path("config.yaml")

# Environment variable → settings field
ENV_OVERRIDES: dict[str, str] = {
    "ZBX_SERVER": "server",
    "ZBX_VERSION": "version",
    "LOG_DIR": "log_dir",
}

_RELEASE_URL = (
    "https://repo.zabbix.com/zabbix/{version}/release/debian/pool/main/z/"
    "zabbix-release/zabbix-release_latest_{version}+debian{debian}_all.deb"
)


# ---------------------------------------------------------------------------
# Pydantic schema
# ---------------------------------------------------------------------------


class InstallSettings(BaseModel):
    """Top-level settings for one provisioning run."""

    server: str = "172.20.7.58"
    version: str = "7.4"                 # Zabbix repository series
    debian_release: str = "13"
    log_dir: Path = Path("/var/log/azenity")
    work_dir: Path = Path("/tmp")

    conf_path: Path = Path("/etc/zabbix/zabbix_agent2.conf")
    package: str = "zabbix-agent2"
    service: str = "zabbix-agent2"
    agent_binary: str = "zabbix_agent2"
    prerequisites: list[str] = Field(
        default_factory=lambda: ["ca-certificates", "gnupg", "lsb-release", "curl"]
    )

    active_port: int = 10051
    passive_port: int = 10050
    probe_timeout: float = 3.0
    route_probe_target: str = "1.1.1.1"

    @field_validator("version", "debian_release", mode="before")
    @classmethod
    def _numbers_as_text(cls, value: Any) -> Any:
        # YAML reads an unquoted 7.4 as a float
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator("server", "version")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("active_port", "passive_port")
    @classmethod
    def _valid_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError(f"port out of range: {value}")
        return value

    @field_validator("probe_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("probe_timeout must be positive")
        return value

    @property
    def release_url(self) -> str:
        """URL of the ``zabbix-release`` package that adds the vendor repo."""
        return _RELEASE_URL.format(version=self.version, debian=self.debian_release)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def _load_yaml(path: Path) -> dict[str, Any]:
    """Read and parse a YAML file.  Returns {} if not found."""
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def find_config_file(explicit: Path | None = None) -> Path | None:
    """Return the first config file that exists, or None.

    An explicit path that does not exist is an error rather than a miss.
    """
    if explicit is not None:
        if not explicit.exists():
            raise FileNotFoundError(f"Config file not found: {explicit}")
        return explicit
    for path in (SYSTEM_CONFIG_PATH, LOCAL_CONFIG_PATH):
        if path.exists():
            return path
    return None


def load_settings(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> InstallSettings:
    """Build settings from defaults, YAML, environment and *overrides*.

    Each layer overrides the previous one.  ``None`` values in *overrides*
    are ignored so CLI options can be passed through unconditionally.
    """
    load_dotenv()

    path = find_config_file(config_path)
    raw: dict[str, Any] = _load_yaml(path) if path else {}

    for env_name, field_name in ENV_OVERRIDES.items():
        if value := os.getenv(env_name):
            raw[field_name] = value

    for key, value in (overrides or {}).items():
        if value is not None:
            raw[key] = value

    return InstallSettings(**raw)


@lru_cache(maxsize=1)
def get_settings() -> InstallSettings:
    """Return the cached settings for commands that take no overrides."""
    return load_settings()
