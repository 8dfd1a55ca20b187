"""zinstall — Zabbix Agent 2 installer and baseline configurator."""

__version__ = "0.3.0"
