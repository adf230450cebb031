"""Shared helpers: config, validation, locking, prompts, dependency graphs."""
