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
"""Output rendering for reports."""

from __future__ import annotations

import csv
import dataclasses
import json
from pathlib import Path
from typing import Any

from ovs_stat.consistency import (
    FINDING_DANGLING_REFERENCE,
    FINDING_MISSING_TARGET,
    FINDING_UNATTACHED_VLAN,
    format_key,
)
from ovs_stat.models import BRIDGE, ENTITY_KINDS, PORT, REGISTER, Finding
from ovs_stat.pipeline import PipelineResult
from ovs_stat.store import EntityStore

SUMMARY_COLUMNS = (
    "bridge",
    "tables",
    "rules",
    "cookies",
    "registers",
    "ports",
    "vlans",
    "ports_at_vlan",
    "ports_at_ns",
    "ports_at_veth_peer",
)

FINDING_COLUMNS = (
    "kind",
    "entity_kind",
    "key",
    "relation",
    "target_kind",
    "target_key",
    "detail",
)


def build_bridge_summary(store: EntityStore) -> list[dict[str, Any]]:
    """Count per-bridge tables, rules and port attachments."""

    rows: list[dict[str, Any]] = []
    for bridge in store.all(BRIDGE):
        ports = [store.get(PORT, name) for name in bridge.ports.values()]
        ports = [port for port in ports if port is not None]
        registers = {register.name for register in store.children(REGISTER, bridge.name)}
        rows.append(
            {
                "bridge": bridge.name,
                "tables": len(bridge.tables),
                "rules": len(bridge.flows),
                "cookies": len(bridge.cookies),
                "registers": len(registers),
                "ports": len(bridge.ports),
                "vlans": len({port.vlan for port in ports if port.vlan is not None}),
                "ports_at_vlan": sum(1 for port in ports if port.vlan is not None),
                "ports_at_ns": sum(1 for port in ports if port.namespace is not None),
                "ports_at_veth_peer": sum(1 for port in ports if port.veth_peer is not None),
            }
        )
    return rows


def write_bridge_summary(path: str | Path, rows: list[dict[str, Any]]) -> None:
    """Write per-bridge summary CSV."""

    with Path(path).open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(SUMMARY_COLUMNS)
        for row in rows:
            writer.writerow([row[column] for column in SUMMARY_COLUMNS])


def write_bridge_summary_json(path: str | Path, rows: list[dict[str, Any]]) -> None:
    """Write per-bridge summary JSON."""

    _write_json(path, rows)


def write_findings(path: str | Path, findings: list[Finding]) -> None:
    """Write findings CSV."""

    with Path(path).open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(FINDING_COLUMNS)
        for finding in findings:
            writer.writerow([getattr(finding, column) for column in FINDING_COLUMNS])


def write_findings_json(path: str | Path, findings: list[Finding]) -> None:
    """Write findings JSON."""

    _write_json(path, [dataclasses.asdict(finding) for finding in findings])


def summarize_run(pipeline: PipelineResult, findings: list[Finding]) -> dict[str, Any]:
    """Return the run summary: stage outcomes and finding counts."""

    return {
        "failed_stages": [stage.name for stage in pipeline.failed_stages],
        "skipped_stages": [stage.name for stage in pipeline.skipped_stages],
        "unit_failures": [f"{failure.stage}/{failure.unit}" for failure in pipeline.unit_failures],
        "dangling_references": _count(findings, FINDING_DANGLING_REFERENCE),
        "missing_targets": _count(findings, FINDING_MISSING_TARGET),
        "unattached_vlans": _count(findings, FINDING_UNATTACHED_VLAN),
    }


def write_summary(path: str | Path, pipeline: PipelineResult, findings: list[Finding]) -> None:
    """Write summary report."""

    summary = summarize_run(pipeline, findings)
    with Path(path).open("w", encoding="utf-8") as handle:
        for key, value in summary.items():
            if isinstance(value, list):
                value = ", ".join(value)
            handle.write(f"{key}: {value}\n")


def write_summary_json(path: str | Path, pipeline: PipelineResult, findings: list[Finding]) -> None:
    """Write summary report JSON."""

    _write_json(path, summarize_run(pipeline, findings))


def serialize_dataset(store: EntityStore) -> dict[str, dict[str, Any]]:
    """Render every entity as plain JSON-compatible data, keyed by kind."""

    return {
        kind: {
            format_key(key): _plain(dataclasses.asdict(store.get(kind, key)))
            for key in store.keys(kind)
        }
        for kind in ENTITY_KINDS
    }


def write_dataset_json(path: str | Path, store: EntityStore) -> None:
    """Write the full dataset JSON."""

    _write_json(path, serialize_dataset(store))


def _plain(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, (set, frozenset)):
        return [_plain(item) for item in sorted(value)]
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _count(findings: list[Finding], kind: str) -> int:
    return sum(1 for finding in findings if finding.kind == kind)


def _write_json(path: str | Path, data: Any) -> None:
    with Path(path).open("w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=2, ensure_ascii=False)
        handle.write("\n")
