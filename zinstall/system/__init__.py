"""zinstall.system — host identity and OS evidence."""
