"""Prompt text builders."""
