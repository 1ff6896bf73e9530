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
"""Reference consistency checks and Neutron error scans."""

from __future__ import annotations

import re
from typing import Hashable

from ovs_stat.models import (
    BRIDGE,
    ENTITY_KINDS,
    REGISTER,
    TARGET_LITERAL,
    VLAN,
    ZONE,
    Finding,
)
from ovs_stat.store import EntityStore

FINDING_DANGLING_REFERENCE = "dangling_reference"
FINDING_MISSING_TARGET = "missing_target"
FINDING_UNATTACHED_VLAN = "unattached_vlan"

NEUTRON_DEAD_VLAN = "neutron_dead_vlan"
NEUTRON_MULTIPLE_COOKIES = "neutron_multiple_cookies"
NEUTRON_CONNTRACK_MARK = "neutron_conntrack_mark"

# Neutron parks ports it failed to wire up on this VLAN.
DEAD_VLAN = 4095

_CONNTRACK_MARK = re.compile(r"(?<![\w])mark=1(?!\d)")


def check_consistency(store: EntityStore, check_flow_vlans: bool = False) -> list[Finding]:
    """Check every reference in the store.

    A reference whose target is absent is a missing target. A bidirectional
    reference whose target does not point back is dangling. Findings are
    returned sorted so repeated runs compare equal.
    """

    findings: list[Finding] = []
    for kind in ENTITY_KINDS:
        for key in store.keys(kind):
            entity = store.get(kind, key)
            for relation, ref in entity.relations():
                target = store.get(ref.kind, ref.key)
                if target is None:
                    findings.append(
                        Finding(
                            kind=FINDING_MISSING_TARGET,
                            entity_kind=kind,
                            key=format_key(key),
                            relation=relation,
                            target_kind=ref.kind,
                            target_key=format_key(ref.key),
                            detail=f"{ref.kind} {format_key(ref.key)} does not exist",
                        )
                    )
                    continue
                if ref.bidirectional and not _points_back(target, kind, key):
                    findings.append(
                        Finding(
                            kind=FINDING_DANGLING_REFERENCE,
                            entity_kind=kind,
                            key=format_key(key),
                            relation=relation,
                            target_kind=ref.kind,
                            target_key=format_key(ref.key),
                            detail=f"{ref.kind} {format_key(ref.key)} has no link back",
                        )
                    )

    for register in store.all(REGISTER):
        if register.target_kind != TARGET_LITERAL and register.target is None:
            findings.append(
                Finding(
                    kind=FINDING_MISSING_TARGET,
                    entity_kind=REGISTER,
                    key=format_key(register.key),
                    relation="target",
                    target_kind=register.target_kind,
                    target_key=str(register.target_id),
                    detail=f"{register.name}={register.value} matches no {register.target_kind}",
                )
            )

    if check_flow_vlans:
        for vlan in store.all(VLAN):
            if vlan.flows and not vlan.ports:
                findings.append(
                    Finding(
                        kind=FINDING_UNATTACHED_VLAN,
                        entity_kind=VLAN,
                        key=str(vlan.id),
                        relation="ports",
                        target_kind=BRIDGE,
                        target_key=",".join(sorted(vlan.flows)),
                        detail="vlan used in flows but not tagged on any port",
                    )
                )

    return sorted(findings, key=_finding_sort_key)


def scan_neutron_issues(store: EntityStore) -> list[Finding]:
    """Scan the dataset for known Neutron agent failure signatures."""

    issues: list[Finding] = []
    if store.contains(VLAN, DEAD_VLAN):
        vlan = store.get(VLAN, DEAD_VLAN)
        for port in sorted(vlan.ports):
            issues.append(
                Finding(
                    kind=NEUTRON_DEAD_VLAN,
                    entity_kind=VLAN,
                    key=str(DEAD_VLAN),
                    relation=f"ports/{port}",
                    target_kind="port",
                    target_key=port,
                    detail="port is on the dead vlan and is not wired up",
                )
            )

    for bridge in store.all(BRIDGE):
        if len(bridge.cookies) > 1:
            issues.append(
                Finding(
                    kind=NEUTRON_MULTIPLE_COOKIES,
                    entity_kind=BRIDGE,
                    key=bridge.name,
                    relation="cookies",
                    target_kind=BRIDGE,
                    target_key=bridge.name,
                    detail=f"{len(bridge.cookies)} cookies in use: {', '.join(sorted(bridge.cookies))}",
                )
            )

    for zone in store.all(ZONE):
        marked = [entry for entry in zone.entries if _CONNTRACK_MARK.search(entry)]
        if marked:
            issues.append(
                Finding(
                    kind=NEUTRON_CONNTRACK_MARK,
                    entity_kind=ZONE,
                    key=str(zone.zone),
                    relation="entries",
                    target_kind=ZONE,
                    target_key=str(zone.zone),
                    detail=f"{len(marked)} connections marked for deletion",
                )
            )

    return sorted(issues, key=_finding_sort_key)


def format_key(key: Hashable) -> str:
    """Render an entity key as a single string."""

    if isinstance(key, tuple):
        return "/".join(str(part) for part in key)
    return str(key)


def _points_back(target: object, kind: str, key: Hashable) -> bool:
    return any(ref.kind == kind and ref.key == key for _, ref in target.relations())


def _finding_sort_key(finding: Finding) -> tuple[str, str, str, str, str, str]:
    return (
        finding.kind,
        finding.entity_kind,
        finding.key,
        finding.relation,
        finding.target_kind,
        finding.target_key,
    )
