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
"""Run settings and YAML config file loading."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

_LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 32

# Config file keys, snake_case or camelCase.
_KEY_ALIASES = {
    "check_flow_vlans": "check_flow_vlans",
    "checkFlowVlans": "check_flow_vlans",
    "attempt_address_prefix_fallback": "attempt_address_prefix_fallback",
    "attemptAddressPrefixFallback": "attempt_address_prefix_fallback",
    "max_concurrency": "max_concurrency",
    "maxConcurrency": "max_concurrency",
}


@dataclass(frozen=True)
class Settings:
    """Options consumed by the dataset builder."""

    check_flow_vlans: bool = False
    attempt_address_prefix_fallback: bool = False
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-None override applied."""

        values = {key: value for key, value in overrides.items() if value is not None}
        return dataclasses.replace(self, **values)


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file, or defaults when no path is given."""

    if path is None:
        return Settings()
    config_path = Path(path)
    if not config_path.is_file():
        raise ValueError(f"config file not found: {config_path}")

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"{config_path} is not valid YAML: {exc}") from exc

    if raw is None:
        return Settings()
    if not isinstance(raw, dict):
        raise ValueError(f"{config_path} root must be a mapping")
    return settings_from_mapping(raw, source=str(config_path))


def settings_from_mapping(raw: dict[str, Any], source: str = "config") -> Settings:
    """Build settings from a mapping of option names to values."""

    values: dict[str, Any] = {}
    for key, value in raw.items():
        name = _KEY_ALIASES.get(str(key))
        if name is None:
            _LOGGER.warning("Ignoring unknown option %s in %s", key, source)
            continue
        values[name] = value

    for name in ("check_flow_vlans", "attempt_address_prefix_fallback"):
        if name in values and not isinstance(values[name], bool):
            raise ValueError(f"{source}: {name} must be true or false")

    if "max_concurrency" in values:
        values["max_concurrency"] = _parse_concurrency(values["max_concurrency"], source)

    return Settings(**values)


def _parse_concurrency(raw: Any, source: str) -> int:
    if isinstance(raw, bool):
        raise ValueError(f"{source}: max_concurrency must be an integer")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{source}: max_concurrency must be an integer") from exc
    if value < 1:
        raise ValueError(f"{source}: max_concurrency must be at least 1")
    return value
