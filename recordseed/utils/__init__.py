"""Shared utilities: logging setup and lightweight profiling."""
