"""zinstall.tools — helpers for running external commands."""
