"""Parsing, resolution, configuration and logging helpers."""
