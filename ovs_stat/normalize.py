# Copyright 2025 ovs-stat contributors
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.
"""Normalization utilities."""

from __future__ import annotations

import re

# Tap devices of qemu guests carry fe:16 where the guest itself uses fa:16.
ADDRESS_PREFIX_ALIASES: tuple[tuple[str, str], ...] = (("fa:16", "fe:16"),)

_FLOW_STAT_PATTERNS: tuple[str, ...] = (
    r"cookie=\w+,\s+",
    r"duration=[\d.]+s,\s+",
    r"n_\w+=\d+,\s+",
    r"\w+_age=\d+,\s+",
)

_MAC_PATTERN = re.compile(r"^[0-9a-f]{2}(:[0-9a-f]{2}){5}$")


def normalize_mac(raw_mac: str | None) -> str | None:
    """Normalize a hardware address for comparison."""

    if not raw_mac:
        return None
    cleaned = raw_mac.strip().strip('"').lower()
    if not _MAC_PATTERN.match(cleaned):
        return None
    return cleaned


def mac_aliases(mac: str) -> list[str]:
    """Return alternate spellings of a hardware address under known prefix aliases."""

    normalized = normalize_mac(mac)
    if normalized is None:
        return []
    aliases: list[str] = []
    for prefix, alias in ADDRESS_PREFIX_ALIASES:
        if normalized.startswith(prefix):
            aliases.append(alias + normalized[len(prefix) :])
    return aliases


def hex_to_int(raw_value: str) -> int | None:
    """Convert a register value such as 0x1a to an integer."""

    value = raw_value.strip().lower()
    if value.startswith("0x"):
        value = value[2:]
    if not value:
        return None
    try:
        return int(value, 16)
    except ValueError:
        return None


def strip_flow_stats(line: str) -> str:
    """Remove volatile counters from a flow line, keeping match and actions."""

    stripped = line.strip()
    for pattern in _FLOW_STAT_PATTERNS:
        stripped = re.sub(pattern, "", stripped)
    return stripped


def strip_tap_prefix(port_name: str) -> str:
    """Return the port name without a leading tap prefix."""

    if port_name.startswith("tap"):
        return port_name[len("tap") :]
    return port_name
