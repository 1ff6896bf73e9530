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
"""Filtering and grouping utilities for flows and findings."""

from __future__ import annotations

import re
from typing import Sequence

from ovs_stat.extract import flow_conj_ids, flow_field
from ovs_stat.models import Finding, Flow

_DHCP_PORTS = re.compile(r"tp_(?:src|dst)=(?:67|68)(?!\d)")
_DNS_PORT = re.compile(r"tp_dst=53(?!\d)")

PROTOCOLS = ("dhcp", "dns", "arp", "icmp6", "icmp", "udp6", "udp")


def flows_for_port(flows: list[Flow], port_id: int, hwaddr: str | None = None) -> list[Flow]:
    """Select flows that match, output to, or tag traffic of a port.

    Args:
        flows: Flows of the bridge the port sits on
        port_id: OpenFlow port number
        hwaddr: Hardware address of the port, matched case-insensitively

    Returns:
        Matching flows in dump order
    """

    patterns = [
        re.compile(rf"(?<![\w])in_port={port_id}(?!\d)"),
        re.compile(rf"output:{port_id}(?!\d)"),
        re.compile(rf"(?<![\w])reg5=0x{port_id:x}(?![0-9A-Fa-f])", re.IGNORECASE),
    ]
    address = hwaddr.lower() if hwaddr else None

    selected: list[Flow] = []
    for flow in flows:
        if any(pattern.search(flow.text) for pattern in patterns):
            selected.append(flow)
            continue
        if address and address in flow.text.lower():
            selected.append(flow)
    return selected


def group_by_table(flows: list[Flow]) -> dict[int, list[Flow]]:
    """Group flows by table id."""

    groups: dict[int, list[Flow]] = {}
    for flow in flows:
        groups.setdefault(flow.table, []).append(flow)
    return dict(sorted(groups.items()))


def group_by_cookie(flows: list[Flow]) -> dict[str, list[Flow]]:
    """Group flows by cookie, skipping flows without one."""

    groups: dict[str, list[Flow]] = {}
    for flow in flows:
        if flow.cookie:
            groups.setdefault(flow.cookie, []).append(flow)
    return dict(sorted(groups.items()))


def flow_protocols(text: str) -> list[str]:
    """Return the protocol groups a flow belongs to."""

    protocols: list[str] = []
    if "udp" in text and _DHCP_PORTS.search(text):
        protocols.append("dhcp")
    if _DNS_PORT.search(text):
        protocols.append("dns")
    if "arp" in text:
        protocols.append("arp")
    if "icmp6" in text:
        protocols.append("icmp6")
    elif "icmp" in text:
        protocols.append("icmp")
    if "udp6" in text:
        protocols.append("udp6")
    elif "udp" in text:
        protocols.append("udp")
    return protocols


def group_by_protocol(flows: list[Flow]) -> dict[str, list[Flow]]:
    """Group flows by protocol, omitting protocols with no flows."""

    groups: dict[str, list[Flow]] = {}
    for flow in flows:
        for protocol in flow_protocols(flow.text):
            groups.setdefault(protocol, []).append(flow)
    return {protocol: groups[protocol] for protocol in PROTOCOLS if protocol in groups}


def group_by_field(flows: list[Flow], name: str) -> dict[str, list[Flow]]:
    """Group flows by the value of a match field, skipping flows without it."""

    groups: dict[str, list[Flow]] = {}
    for flow in flows:
        value = flow_field(flow.text, name)
        if value is not None:
            groups.setdefault(value, []).append(flow)
    return dict(sorted(groups.items()))


def group_by_conj_id(flows: list[Flow]) -> dict[int, list[Flow]]:
    """Group flows by the conjunction ids they use or define."""

    groups: dict[int, list[Flow]] = {}
    for flow in flows:
        for conj_id in flow_conj_ids(flow.text):
            groups.setdefault(conj_id, []).append(flow)
    return dict(sorted(groups.items()))


def filter_findings(
    findings: list[Finding],
    kind_filter: Sequence[str] | None = None,
    entity_regex: str | None = None,
) -> list[Finding]:
    """Filter findings by kind and/or entity key.

    Args:
        findings: Findings to filter
        kind_filter: Finding kinds to include (e.g., ["dangling_reference"])
        entity_regex: Regular expression matched against either end's key

    Returns:
        Filtered list of findings
    """

    if not kind_filter and not entity_regex:
        return findings

    pattern = re.compile(entity_regex) if entity_regex else None
    filtered: list[Finding] = []
    for finding in findings:
        if kind_filter and finding.kind not in kind_filter:
            continue
        if pattern and not (pattern.search(finding.key) or pattern.search(finding.target_key)):
            continue
        filtered.append(finding)
    return filtered
