# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Shared helpers for REST endpoint query parameter parsing."""

from __future__ import annotations


def parse_int(value: str | None, default: int, maximum: int = 1000) -> int:
    """Parse a positive integer query parameter with a max cap."""
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    if parsed < 1:
        return default
    return min(parsed, maximum)


def parse_list(value: str | None) -> list[str] | None:
    """Parse a comma-separated query parameter. Missing or blank gives None."""
    if not value:
        return None
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or None
