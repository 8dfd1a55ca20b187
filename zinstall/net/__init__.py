"""zinstall.net — network reachability checks."""
