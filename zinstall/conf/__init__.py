"""zinstall.conf — agent configuration file editing."""
