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
"""Data models for ovs-stat."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Hashable, Iterator

BRIDGE = "bridge"
PORT = "port"
HOSTIF = "hostif"
VLAN = "vlan"
NAMESPACE = "namespace"
REGISTER = "register"
ZONE = "zone"

ENTITY_KINDS = (BRIDGE, PORT, HOSTIF, VLAN, NAMESPACE, REGISTER, ZONE)

DIRECTION_INGRESS = "ingress"
DIRECTION_EGRESS = "egress"

TARGET_PORT = "port"
TARGET_VLAN = "vlan"
TARGET_LITERAL = "literal"


def namespace_port_key(namespace: str, ifname: str) -> str:
    """Key of the port an interface inside a namespace is stored under.

    Interface names cannot contain a slash, so the key never matches a
    switch port and two namespaces may hold the same interface name.
    """

    return f"{namespace}/{ifname}"


@dataclass(frozen=True)
class Ref:
    """Typed edge from one entity to another."""

    kind: str
    key: Hashable
    bidirectional: bool = True


@dataclass(frozen=True)
class Flow:
    """Single flow table entry of a bridge."""

    bridge: str
    table: int
    cookie: str
    text: str
    stripped: str


@dataclass(frozen=True)
class TunnelInfo:
    """Tunnel endpoint descriptor of a port."""

    type: str
    local_ip: str | None
    remote_ip: str | None


@dataclass(frozen=True)
class AddressMapping:
    """Source address rewrite observed in a bridge's flows."""

    direction: str
    target: str
    local: str
    port: str | None = None


@dataclass
class Bridge:
    """Switch instance grouping ports and flow tables."""

    name: str
    ports: dict[int, str] = field(default_factory=dict)
    tables: set[int] = field(default_factory=set)
    cookies: set[str] = field(default_factory=set)
    raw_flows: str = ""
    flows: list[Flow] = field(default_factory=list)
    table_flows: dict[int, list[Flow]] = field(default_factory=dict)
    cookie_flows: dict[str, list[Flow]] = field(default_factory=dict)
    flow_vlans: dict[int, list[Flow]] = field(default_factory=dict)
    linked_vlans: set[int] = field(default_factory=set)
    conj_ids: dict[int, list[Flow]] = field(default_factory=dict)
    addresses: dict[str, dict[str, list[Flow]]] = field(default_factory=dict)
    mod_dl_src: list[AddressMapping] = field(default_factory=list)
    flood_ports: dict[int, set[int]] = field(default_factory=dict)

    def relations(self) -> Iterator[tuple[str, Ref]]:
        for port_id in sorted(self.ports):
            yield f"ports/{port_id}", Ref(PORT, self.ports[port_id])
        for vlan in sorted(self.linked_vlans):
            yield f"flow_vlans/{vlan}", Ref(VLAN, vlan)
        for mapping in self.mod_dl_src:
            if mapping.port is not None:
                relation = f"mod_dl_src/{mapping.direction}/{mapping.target}/{mapping.local}"
                yield relation, Ref(PORT, mapping.port, bidirectional=False)
        for vlan in sorted(self.flood_ports):
            for port_id in sorted(self.flood_ports[vlan]):
                port_name = self.ports.get(port_id, f"{self.name}:{port_id}")
                yield f"flood_ports/{vlan}/{port_id}", Ref(PORT, port_name, bidirectional=False)


@dataclass
class Port:
    """Attachment point on a bridge or the namespace end of a veth pair."""

    name: str
    id: int | None = None
    bridge: str | None = None
    hwaddr: str | None = None
    vlan: int | None = None
    hostnet: str | None = None
    namespace: str | None = None
    veth_peer: str | None = None
    tunnel: TunnelInfo | None = None
    flows: list[Flow] = field(default_factory=list)
    flows_by_table: dict[int, list[Flow]] = field(default_factory=dict)
    flows_by_protocol: dict[str, list[Flow]] = field(default_factory=dict)

    def relations(self) -> Iterator[tuple[str, Ref]]:
        if self.bridge is not None:
            yield "bridge", Ref(BRIDGE, self.bridge)
        if self.hostnet is not None:
            yield "hostnet", Ref(HOSTIF, self.hostnet)
        if self.vlan is not None:
            yield "vlan", Ref(VLAN, self.vlan)
        if self.namespace is not None:
            yield "namespace", Ref(NAMESPACE, self.namespace)
        if self.veth_peer is not None:
            yield "veth_peer", Ref(PORT, self.veth_peer)


@dataclass
class HostInterface:
    """Linux network interface as listed by ip link/address."""

    name: str
    index: int
    hwaddr: str | None = None
    peer_index: int | None = None
    netnsid: int | None = None
    port: str | None = None

    def relations(self) -> Iterator[tuple[str, Ref]]:
        if self.port is not None:
            yield "port", Ref(PORT, self.port)


@dataclass
class Vlan:
    """VLAN tag seen on ports and, optionally, in flows."""

    id: int
    ports: set[str] = field(default_factory=set)
    flows: dict[str, list[Flow]] = field(default_factory=dict)

    def relations(self) -> Iterator[tuple[str, Ref]]:
        for port in sorted(self.ports):
            yield f"ports/{port}", Ref(PORT, port)
        for bridge in sorted(self.flows):
            yield f"flows/{bridge}", Ref(BRIDGE, bridge)


@dataclass
class Namespace:
    """Network namespace and the ports found inside it."""

    name: str
    netnsid: int | None = None
    interfaces: list[HostInterface] = field(default_factory=list)
    ports: set[str] = field(default_factory=set)

    def relations(self) -> Iterator[tuple[str, Ref]]:
        for port in sorted(self.ports):
            yield f"ports/{port}", Ref(PORT, port)


@dataclass
class Register:
    """Firewall register value used by a bridge's flows."""

    bridge: str
    name: str
    value: str
    target_kind: str
    target_id: int | str
    target: Hashable | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        return self.bridge, self.name, self.value

    def relations(self) -> Iterator[tuple[str, Ref]]:
        if self.target_kind == TARGET_PORT and self.target is not None:
            yield "target", Ref(PORT, self.target, bidirectional=False)
        elif self.target_kind == TARGET_VLAN and self.target is not None:
            yield "target", Ref(VLAN, self.target, bidirectional=False)


@dataclass
class ConntrackZone:
    """Connection tracking entries of one zone."""

    zone: int
    entries: list[str] = field(default_factory=list)

    def relations(self) -> Iterator[tuple[str, Ref]]:
        return iter(())


@dataclass(frozen=True)
class Finding:
    """Consistency problem detected in the dataset."""

    kind: str
    entity_kind: str
    key: str
    relation: str
    target_kind: str
    target_key: str
    detail: str
