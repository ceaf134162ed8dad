"""Command line interface for recovery-tools."""
