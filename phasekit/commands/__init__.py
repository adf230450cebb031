"""Subcommand implementations for the phasekit CLI."""
