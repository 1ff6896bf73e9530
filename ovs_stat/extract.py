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
"""Entity extraction from raw switch and host networking output.

Every parser takes the raw text of one query and returns typed records.
Parsers never touch the entity store, return nothing for empty input and
skip lines that do not have the expected shape.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from ovs_stat.models import Flow, HostInterface
from ovs_stat.normalize import normalize_mac, strip_flow_stats

_MAC = r"[0-9A-Fa-f]{2}(?::[0-9A-Fa-f]{2}){5}"
_IPV4 = r"\d{1,3}(?:\.\d{1,3}){3}"

_BRIDGE_LINE = re.compile(r"^\s*Bridge\s+\"?(?P<name>[\w.\-]+)\"?\s*$")
_PORT_LINE = re.compile(r"^\s*Port\s+\"?(?P<name>[^\"\s]+)\"?\s*$")
_TAG_LINE = re.compile(r"^\s*tag:\s*(?P<tag>\d+)\s*$")
_SWITCH_PORT_LINE = re.compile(
    r"^\s+(?P<id>\d+)\((?P<name>[^)]+)\):\s+addr:\s*(?P<addr>\S+)"
)
_INTERFACE_LINE = re.compile(
    r"^(?P<index>\d+):\s+(?P<name>[^:@\s]+)(?:@(?P<peer>[^:\s]+))?:\s+<"
)
_LINK_ADDR = re.compile(r"^\s+link/\w+\s+(?P<addr>" + _MAC + r")")
_LINK_NETNSID = re.compile(r"\slink-netnsid\s+(?P<netnsid>\d+)")
_PEER_INDEX = re.compile(r"^if(?P<index>\d+)$")
_NAMESPACE_LINE = re.compile(r"^(?P<name>\S+)(?:\s+\(id:\s*(?P<netnsid>\d+)\))?\s*$")
_TABLE_HEADER = re.compile(r"^(?P<table>\w+) table$")
_COLUMN_LINE = re.compile(r"^(?P<column>\w+)\s*:\s*(?P<value>.*)$")
_OPTION_PAIR = re.compile(r"(?P<key>\w+)=(?P<value>\"[^\"]*\"|[^,}\s]+)")
_CONNTRACK_LINE = re.compile(r"^\w+,orig=\(")

_FLOW_COOKIE = re.compile(r"cookie=0x(?P<cookie>[0-9A-Fa-f]+)")
_FLOW_TABLE = re.compile(r"(?:^|[\s,])table=(?P<table>\d+)")
_FLOW_REGISTER = re.compile(r"(?<![\w])(?P<name>reg\d+)=(?P<value>0x[0-9A-Fa-f]+)")
_FLOW_CONJ_ID = re.compile(r"conj_id=(?P<id>\d+)")
_FLOW_CONJUNCTION = re.compile(r"conjunction\((?P<id>\d+),")
_FLOW_OUTPUT = re.compile(r"output:(?P<port>\d+)")

_FLOW_FIELDS: dict[str, re.Pattern[str]] = {
    "in_port": re.compile(r"(?<![\w])in_port=(?P<value>\d+)"),
    "dl_src": re.compile(r"(?<![\w])dl_src=(?P<value>" + _MAC + r")"),
    "dl_dst": re.compile(r"(?<![\w])dl_dst=(?P<value>" + _MAC + r")"),
    "nw_src": re.compile(r"(?<![\w])nw_src=(?P<value>" + _IPV4 + r")(?:/\d+)?"),
    "arp_spa": re.compile(r"(?<![\w])arp_spa=(?P<value>" + _IPV4 + r")(?:/\d+)?"),
    "dl_vlan": re.compile(r"(?<![\w])dl_vlan=(?P<value>\d+)"),
    "mod_dl_src": re.compile(r"mod_dl_src:(?P<value>" + _MAC + r")"),
}

# Direct tag assignment takes priority over the legacy vlan id match.
_FLOW_VLAN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"mod_vlan_vid:(?P<value>\d+)"),
    re.compile(r"(?<![\w])dl_vlan=(?P<value>\d+)"),
)

FLOW_ADDRESS_FIELDS = ("nw_src", "arp_spa", "dl_src", "dl_dst")
TUNNEL_TYPES = ("vxlan", "gre")


@dataclass(frozen=True)
class PortTag:
    """VLAN tag configured on a switch port."""

    bridge: str
    port: str
    tag: int


@dataclass(frozen=True)
class SwitchPortRecord:
    """Port row of a bridge's OpenFlow port table."""

    id: int
    name: str
    hwaddr: str | None


@dataclass(frozen=True)
class NamespaceRecord:
    """Network namespace listing entry."""

    name: str
    netnsid: int | None


@dataclass(frozen=True)
class InterfaceMetadata:
    """Interface row of the switch database dump."""

    name: str
    mac_in_use: str | None
    type: str
    options: dict[str, str] = field(default_factory=dict)


def parse_bridges(text: str) -> list[str]:
    """Parse bridge names from switch configuration output."""

    bridges: list[str] = []
    for line in text.splitlines():
        match = _BRIDGE_LINE.match(line)
        if match and match.group("name") not in bridges:
            bridges.append(match.group("name"))
    return bridges


def parse_port_tags(text: str) -> list[PortTag]:
    """Parse port VLAN tags from switch configuration output."""

    tags: list[PortTag] = []
    bridge: str | None = None
    port: str | None = None
    for line in text.splitlines():
        bridge_match = _BRIDGE_LINE.match(line)
        if bridge_match:
            bridge = bridge_match.group("name")
            port = None
            continue
        port_match = _PORT_LINE.match(line)
        if port_match:
            port = port_match.group("name")
            continue
        tag_match = _TAG_LINE.match(line)
        if tag_match and bridge and port:
            tags.append(PortTag(bridge=bridge, port=port, tag=int(tag_match.group("tag"))))
    return tags


def parse_switch_ports(text: str) -> list[SwitchPortRecord]:
    """Parse numbered ports from a bridge's OpenFlow port table.

    The LOCAL port has no number and is not returned.
    """

    records: list[SwitchPortRecord] = []
    for line in text.splitlines():
        match = _SWITCH_PORT_LINE.match(line)
        if match:
            records.append(
                SwitchPortRecord(
                    id=int(match.group("id")),
                    name=match.group("name"),
                    hwaddr=normalize_mac(match.group("addr")),
                )
            )
    return records


def parse_interfaces(text: str) -> list[HostInterface]:
    """Parse interfaces from ip link or ip address output."""

    interfaces: list[HostInterface] = []
    current: HostInterface | None = None
    for line in text.splitlines():
        header = _INTERFACE_LINE.match(line)
        if header:
            peer_index = None
            peer = header.group("peer")
            if peer:
                peer_match = _PEER_INDEX.match(peer)
                if peer_match:
                    peer_index = int(peer_match.group("index"))
            current = HostInterface(
                name=header.group("name"),
                index=int(header.group("index")),
                peer_index=peer_index,
            )
            interfaces.append(current)
            continue
        if current is None:
            continue
        addr_match = _LINK_ADDR.match(line)
        if addr_match and current.hwaddr is None:
            current.hwaddr = normalize_mac(addr_match.group("addr"))
        netnsid_match = _LINK_NETNSID.search(line)
        if netnsid_match and current.netnsid is None:
            current.netnsid = int(netnsid_match.group("netnsid"))
    return interfaces


def parse_namespaces(text: str) -> list[NamespaceRecord]:
    """Parse network namespace names.

    The listing shows an ``(id: N)`` suffix only for namespaces that have a
    peer id assigned.
    """

    records: list[NamespaceRecord] = []
    for line in text.splitlines():
        match = _NAMESPACE_LINE.match(line.strip())
        if not match:
            continue
        netnsid = match.group("netnsid")
        records.append(
            NamespaceRecord(
                name=match.group("name"),
                netnsid=int(netnsid) if netnsid is not None else None,
            )
        )
    return records


def parse_interface_metadata(text: str) -> list[InterfaceMetadata]:
    """Parse Interface table rows from a switch database list dump."""

    rows: list[dict[str, str]] = []
    in_interface_table = False
    row: dict[str, str] | None = None
    for line in text.splitlines():
        header = _TABLE_HEADER.match(line.strip())
        if header:
            in_interface_table = header.group("table") == "Interface"
            row = None
            continue
        if not in_interface_table:
            continue
        if not line.strip():
            row = None
            continue
        column = _COLUMN_LINE.match(line)
        if not column:
            continue
        if column.group("column") == "_uuid" or row is None:
            row = {}
            rows.append(row)
        row[column.group("column")] = column.group("value").strip()

    records: list[InterfaceMetadata] = []
    for values in rows:
        name = _unquote(values.get("name", ""))
        if not name:
            continue
        records.append(
            InterfaceMetadata(
                name=name,
                mac_in_use=normalize_mac(values.get("mac_in_use")),
                type=_unquote(values.get("type", "")),
                options=_parse_options(values.get("options", "")),
            )
        )
    return records


def parse_flows(text: str, bridge: str) -> list[Flow]:
    """Parse flow entries from a bridge flow dump."""

    flows: list[Flow] = []
    for line in text.splitlines():
        cleaned = line.strip()
        if "actions=" not in cleaned:
            continue
        table = flow_table(cleaned)
        flows.append(
            Flow(
                bridge=bridge,
                table=table if table is not None else 0,
                cookie=flow_cookie(cleaned) or "",
                text=cleaned,
                stripped=strip_flow_stats(cleaned),
            )
        )
    return flows


def parse_registers(text: str) -> list[tuple[str, str]]:
    """Parse distinct register name/value pairs from a register dump."""

    pairs: set[tuple[str, str]] = set()
    for line in text.splitlines():
        pairs.update(flow_registers(line))
    return sorted(pairs, key=lambda pair: (_register_number(pair[0]), pair[0], pair[1]))


def parse_conntrack(text: str, zone: int | None = None) -> list[str]:
    """Parse connection tracking entries, optionally keeping a single zone."""

    entries: list[str] = []
    for line in text.splitlines():
        cleaned = line.strip()
        if not _CONNTRACK_LINE.match(cleaned):
            continue
        if zone is not None and not _in_zone(cleaned, zone):
            continue
        entries.append(cleaned)
    return entries


def flow_cookie(text: str) -> str | None:
    """Return the hex cookie of a flow without its 0x prefix."""

    match = _FLOW_COOKIE.search(text)
    return match.group("cookie").lower() if match else None


def flow_table(text: str) -> int | None:
    """Return the table id of a flow."""

    match = _FLOW_TABLE.search(text)
    return int(match.group("table")) if match else None


def flow_field(text: str, name: str) -> str | None:
    """Return the first value of a named match or action field."""

    pattern = _FLOW_FIELDS.get(name)
    if pattern is None:
        raise ValueError(f"unsupported flow field: {name}")
    match = pattern.search(text)
    return match.group("value") if match else None


def flow_vlan(text: str) -> int | None:
    """Return the VLAN a flow tags or matches, first recognised encoding wins."""

    for pattern in _FLOW_VLAN_PATTERNS:
        match = pattern.search(text)
        if match:
            return int(match.group("value"))
    return None


def flow_registers(text: str) -> list[tuple[str, str]]:
    """Return register name/value pairs matched by a flow."""

    pairs: list[tuple[str, str]] = []
    for match in _FLOW_REGISTER.finditer(text):
        pair = (match.group("name"), match.group("value").lower())
        if pair not in pairs:
            pairs.append(pair)
    return pairs


def flow_conj_ids(text: str) -> list[int]:
    """Return conjunction ids a flow matches on or contributes to."""

    ids = {int(match.group("id")) for match in _FLOW_CONJ_ID.finditer(text)}
    ids.update(int(match.group("id")) for match in _FLOW_CONJUNCTION.finditer(text))
    return sorted(ids)


def flow_outputs(text: str) -> list[int]:
    """Return the port numbers a flow outputs to."""

    return [int(match.group("port")) for match in _FLOW_OUTPUT.finditer(text)]


def tunnel_options(metadata: InterfaceMetadata) -> tuple[str | None, str | None]:
    """Return local and remote endpoint addresses of a tunnel interface."""

    return metadata.options.get("local_ip"), metadata.options.get("remote_ip")


def _parse_options(raw: str) -> dict[str, str]:
    """Parse an options column such as {local_ip="10.0.0.1", out_key=flow}."""

    return {
        match.group("key"): _unquote(match.group("value"))
        for match in _OPTION_PAIR.finditer(raw)
    }


def _unquote(raw: str) -> str:
    return raw.strip().strip('"')


def _register_number(name: str) -> int:
    digits = name[len("reg") :]
    return int(digits) if digits.isdigit() else -1


def _in_zone(entry: str, zone: int) -> bool:
    match = re.search(r"zone=(\d+)", entry)
    if match is None:
        return zone == 0
    return int(match.group(1)) == zone
