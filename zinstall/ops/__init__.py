"""zinstall.ops — package and service management backends."""
