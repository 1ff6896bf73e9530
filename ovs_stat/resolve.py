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
"""Stage plans that load entities and cross-reference them.

Each ``plan_*`` function reads what earlier stages left in the store and
returns independent units of work. Units only write keys they own. VLAN and
veth peer creation goes through ``EntityStore.setdefault`` and additions to the
port sets of VLANs and namespaces go through ``EntityStore.update``.
When several candidates match, the lowest key wins.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from functools import partial
from typing import Iterable

from ovs_stat.config import Settings
from ovs_stat.extract import (
    FLOW_ADDRESS_FIELDS,
    TUNNEL_TYPES,
    InterfaceMetadata,
    flow_field,
    flow_outputs,
    flow_vlan,
    parse_bridges,
    parse_conntrack,
    parse_flows,
    parse_interface_metadata,
    parse_interfaces,
    parse_namespaces,
    parse_port_tags,
    parse_registers,
    parse_switch_ports,
    tunnel_options,
)
from ovs_stat.filters import (
    flows_for_port,
    group_by_conj_id,
    group_by_cookie,
    group_by_field,
    group_by_protocol,
    group_by_table,
)
from ovs_stat.models import (
    BRIDGE,
    DIRECTION_EGRESS,
    DIRECTION_INGRESS,
    HOSTIF,
    NAMESPACE,
    PORT,
    REGISTER,
    TARGET_LITERAL,
    TARGET_PORT,
    TARGET_VLAN,
    VLAN,
    ZONE,
    AddressMapping,
    Bridge,
    ConntrackZone,
    Flow,
    HostInterface,
    Namespace,
    Port,
    Register,
    TunnelInfo,
    Vlan,
    namespace_port_key,
)
from ovs_stat.normalize import hex_to_int, mac_aliases, normalize_mac, strip_tap_prefix
from ovs_stat.pipeline import WorkUnit
from ovs_stat.query import (
    BRIDGE_LIST,
    BRIDGE_PORT_MAP,
    CONNTRACK_DUMP,
    FLOW_DUMP,
    INTERFACE_LIST,
    NAMESPACE_INTERFACES,
    NAMESPACE_LIST,
    REGISTER_DUMP,
    TUNNEL_METADATA,
    QueryError,
    QuerySource,
)
from ovs_stat.store import EntityStore

_LOGGER = logging.getLogger(__name__)

# Registers set by the Neutron openvswitch firewall driver.
REG_PORT = "reg5"
REG_NET = "reg6"


@dataclass
class BuildContext:
    """State shared by the stages of one dataset build."""

    store: EntityStore
    query: QuerySource
    settings: Settings = field(default_factory=Settings)
    switch_config: str = ""
    interface_metadata: list[InterfaceMetadata] = field(default_factory=list)


def plan_namespaces(ctx: BuildContext) -> list[WorkUnit]:
    """Load network namespaces and the interfaces inside each."""

    records = parse_namespaces(ctx.query(NAMESPACE_LIST))
    return [(record.name, partial(_load_namespace, ctx, record.name, record.netnsid)) for record in records]


def _load_namespace(ctx: BuildContext, name: str, netnsid: int | None) -> None:
    namespace = ctx.store.setdefault(NAMESPACE, name, partial(Namespace, name=name))
    namespace.netnsid = netnsid
    namespace.interfaces = parse_interfaces(ctx.query(NAMESPACE_INTERFACES, name))


def plan_bridges(ctx: BuildContext) -> list[WorkUnit]:
    """Load bridges from the switch configuration."""

    ctx.switch_config = ctx.query(BRIDGE_LIST)
    return [(name, partial(_load_bridge, ctx, name)) for name in parse_bridges(ctx.switch_config)]


def _load_bridge(ctx: BuildContext, name: str) -> None:
    ctx.store.setdefault(BRIDGE, name, partial(Bridge, name=name))


def plan_host_interfaces(ctx: BuildContext) -> list[WorkUnit]:
    """Load interfaces of the host network namespace."""

    interfaces = parse_interfaces(ctx.query(INTERFACE_LIST))
    return [(iface.name, partial(_load_host_interface, ctx, iface)) for iface in interfaces]


def _load_host_interface(ctx: BuildContext, iface: HostInterface) -> None:
    existing = ctx.store.get(HOSTIF, iface.name)
    if existing is not None:
        iface.port = existing.port
    ctx.store.put(HOSTIF, iface.name, iface)


def plan_bridge_flows(ctx: BuildContext) -> list[WorkUnit]:
    """Load each bridge's flow dump, tables and cookies."""

    return [(name, partial(_load_bridge_flows, ctx, name)) for name in ctx.store.keys(BRIDGE)]


def _load_bridge_flows(ctx: BuildContext, name: str) -> None:
    bridge = ctx.store.get(BRIDGE, name)
    bridge.raw_flows = ctx.query(FLOW_DUMP, name)
    bridge.flows = parse_flows(bridge.raw_flows, name)
    bridge.table_flows = group_by_table(bridge.flows)
    bridge.cookie_flows = group_by_cookie(bridge.flows)
    bridge.tables = set(bridge.table_flows)
    bridge.cookies = set(bridge.cookie_flows)


def plan_bridge_ports(ctx: BuildContext) -> list[WorkUnit]:
    """Attach the ports of each bridge's port table."""

    return [(name, partial(_load_bridge_ports, ctx, name)) for name in ctx.store.keys(BRIDGE)]


def _load_bridge_ports(ctx: BuildContext, name: str) -> None:
    bridge = ctx.store.get(BRIDGE, name)
    records = parse_switch_ports(ctx.query(BRIDGE_PORT_MAP, name))
    ports: dict[int, str] = {}
    for record in records:
        port = ctx.store.setdefault(PORT, record.name, partial(Port, name=record.name))
        port.id = record.id
        port.bridge = name
        if record.hwaddr:
            port.hwaddr = record.hwaddr
        ctx.store.put(PORT, record.name, port, parent=name)
        ports[record.id] = record.name
    bridge.ports = ports


def plan_port_hostnet(ctx: BuildContext) -> list[WorkUnit]:
    """Merge switch ports with host interfaces of the same name."""

    return [(name, partial(_link_hostnet, ctx, name)) for name in _switch_port_names(ctx.store)]


def _link_hostnet(ctx: BuildContext, name: str) -> None:
    port = ctx.store.get(PORT, name)
    iface = ctx.store.get(HOSTIF, name)
    if iface is None:
        return
    port.hostnet = iface.name
    iface.port = port.name


def plan_port_vlans(ctx: BuildContext) -> list[WorkUnit]:
    """Link ports to the VLANs they are tagged with."""

    tags: dict[str, int] = {}
    for record in parse_port_tags(ctx.switch_config):
        current = tags.get(record.port)
        if current is None or record.tag < current:
            tags[record.port] = record.tag
    return [(name, partial(_link_port_vlans, ctx, name, tags)) for name in ctx.store.keys(BRIDGE)]


def _link_port_vlans(ctx: BuildContext, bridge_name: str, tags: dict[str, int]) -> None:
    bridge = ctx.store.get(BRIDGE, bridge_name)
    for port_name in sorted(bridge.ports.values()):
        tag = tags.get(port_name)
        if tag is None:
            continue
        ctx.store.setdefault(VLAN, tag, partial(Vlan, id=tag))
        ctx.store.update(VLAN, tag, partial(_add_port, port_name))
        ctx.store.get(PORT, port_name).vlan = tag


def plan_flow_vlans(ctx: BuildContext) -> list[WorkUnit]:
    """Group each bridge's flows by VLAN, cross-linking when enabled."""

    return [(name, partial(_group_flow_vlans, ctx, name)) for name in ctx.store.keys(BRIDGE)]


def _group_flow_vlans(ctx: BuildContext, bridge_name: str) -> None:
    bridge = ctx.store.get(BRIDGE, bridge_name)
    groups: dict[int, list[Flow]] = defaultdict(list)
    for flow in bridge.flows:
        vlan_id = flow_vlan(flow.text)
        if vlan_id is not None:
            groups[vlan_id].append(flow)
    bridge.flow_vlans = dict(sorted(groups.items()))

    # Flows may tag egress traffic for VLANs no port carries.
    if not ctx.settings.check_flow_vlans:
        return
    for vlan_id, flows in bridge.flow_vlans.items():
        ctx.store.setdefault(VLAN, vlan_id, partial(Vlan, id=vlan_id))
        ctx.store.update(VLAN, vlan_id, partial(_set_vlan_flows, bridge_name, flows))
    bridge.linked_vlans = set(bridge.flow_vlans)


def _add_port(port_name: str, entity: Vlan | Namespace) -> None:
    entity.ports.add(port_name)


def _set_vlan_flows(bridge_name: str, flows: list[Flow], vlan: Vlan) -> None:
    vlan.flows[bridge_name] = flows


def plan_port_macs(ctx: BuildContext) -> list[WorkUnit]:
    """Fill in port hardware addresses and tunnel endpoints."""

    ctx.interface_metadata = parse_interface_metadata(ctx.query(TUNNEL_METADATA))
    return [(name, partial(_resolve_port_mac, ctx, name)) for name in _switch_port_names(ctx.store)]


def _resolve_port_mac(ctx: BuildContext, name: str) -> None:
    port = ctx.store.get(PORT, name)
    if port.hwaddr is None and port.hostnet is not None:
        iface = ctx.store.get(HOSTIF, port.hostnet)
        if iface is not None:
            port.hwaddr = iface.hwaddr
    if port.hwaddr is None:
        by_name = [meta for meta in ctx.interface_metadata if meta.name == name]
        if by_name and by_name[0].mac_in_use:
            port.hwaddr = by_name[0].mac_in_use
    if port.hwaddr is None:
        return

    candidates = sorted(
        (meta for meta in ctx.interface_metadata if meta.mac_in_use == port.hwaddr),
        key=lambda meta: (meta.name != name, meta.name),
    )
    if not candidates or candidates[0].type not in TUNNEL_TYPES:
        return
    metadata = candidates[0]
    local_ip, remote_ip = tunnel_options(metadata)
    port.tunnel = TunnelInfo(type=metadata.type, local_ip=local_ip, remote_ip=remote_ip)


def plan_port_namespaces(ctx: BuildContext) -> list[WorkUnit]:
    """Attach ports to namespaces directly or through veth peers."""

    namespaces = ctx.store.all(NAMESPACE)
    return [
        (name, partial(_attach_namespace, ctx, name, namespaces))
        for name in _switch_port_names(ctx.store)
    ]


def _attach_namespace(ctx: BuildContext, name: str, namespaces: list[Namespace]) -> None:
    port = ctx.store.get(PORT, name)
    suffix = strip_tap_prefix(name)
    host_iface = ctx.store.get(HOSTIF, name)
    if host_iface is not None and host_iface.netnsid is None and host_iface.peer_index is None:
        # Plain host interface, it lives in the host namespace.
        return

    namespace: Namespace | None = None
    if host_iface is not None and host_iface.netnsid is not None:
        namespace = next((ns for ns in namespaces if ns.netnsid == host_iface.netnsid), None)
    elif suffix:
        # Nothing on the switch side says which namespace holds the port.
        namespace = next(
            (ns for ns in namespaces if any(suffix in iface.name for iface in ns.interfaces)),
            None,
        )
    if namespace is None:
        return

    ns_iface: HostInterface | None = None
    if host_iface is not None and host_iface.peer_index is not None:
        ns_iface = next(
            (iface for iface in namespace.interfaces if iface.index == host_iface.peer_index),
            None,
        )
    elif suffix:
        matches = sorted(
            (iface for iface in namespace.interfaces if iface.name.endswith(suffix)),
            key=lambda iface: (iface.name != name, iface.name),
        )
        ns_iface = matches[0] if matches else None
    if ns_iface is None:
        return

    if ns_iface.name == name:
        port.namespace = namespace.name
        ctx.store.update(NAMESPACE, namespace.name, partial(_add_port, name))
        if port.hwaddr is None:
            port.hwaddr = ns_iface.hwaddr
        return

    if port.hostnet is None:
        _LOGGER.warning("ns veth pair peer (host) port %s not found", name)
        return
    peer_key = namespace_port_key(namespace.name, ns_iface.name)
    peer = ctx.store.setdefault(PORT, peer_key, partial(Port, name=peer_key))
    peer.namespace = namespace.name
    peer.veth_peer = name
    if peer.hwaddr is None:
        peer.hwaddr = ns_iface.hwaddr
    ctx.store.update(NAMESPACE, namespace.name, partial(_add_port, peer_key))
    port.veth_peer = peer_key


def plan_flow_registers(ctx: BuildContext) -> list[WorkUnit]:
    """Resolve firewall register values to ports and VLANs."""

    return [(name, partial(_load_registers, ctx, name)) for name in ctx.store.keys(BRIDGE)]


def resolve_register_target(name: str, value: str) -> tuple[str, int | str]:
    """Return the target kind and id a register value refers to."""

    if name in (REG_PORT, REG_NET):
        decimal = hex_to_int(value)
        if decimal is not None:
            return (TARGET_PORT if name == REG_PORT else TARGET_VLAN), decimal
    return TARGET_LITERAL, value


def _load_registers(ctx: BuildContext, bridge_name: str) -> None:
    bridge = ctx.store.get(BRIDGE, bridge_name)
    for name, value in parse_registers(ctx.query(REGISTER_DUMP, bridge_name)):
        target_kind, target_id = resolve_register_target(name, value)
        register = Register(
            bridge=bridge_name,
            name=name,
            value=value,
            target_kind=target_kind,
            target_id=target_id,
        )
        if target_kind == TARGET_PORT:
            register.target = bridge.ports.get(target_id)
        elif target_kind == TARGET_VLAN:
            register.target = target_id if ctx.store.contains(VLAN, target_id) else None
        else:
            register.target = value
        ctx.store.put(REGISTER, register.key, register, parent=bridge_name)


def plan_port_flows(ctx: BuildContext) -> list[WorkUnit]:
    """Collect the flows of each bridge port."""

    return [(name, partial(_load_port_flows, ctx, name)) for name in _switch_port_names(ctx.store)]


def _load_port_flows(ctx: BuildContext, name: str) -> None:
    port = ctx.store.get(PORT, name)
    bridge = ctx.store.get(BRIDGE, port.bridge)
    if bridge is None or port.id is None:
        return
    port.flows = flows_for_port(bridge.flows, port.id, port.hwaddr)
    port.flows_by_table = group_by_table(port.flows)
    port.flows_by_protocol = group_by_protocol(port.flows)


def plan_flow_addresses(ctx: BuildContext) -> list[WorkUnit]:
    """Group each bridge's flows by address fields and conjunction ids."""

    return [(name, partial(_group_flow_addresses, ctx, name)) for name in ctx.store.keys(BRIDGE)]


def _group_flow_addresses(ctx: BuildContext, bridge_name: str) -> None:
    bridge = ctx.store.get(BRIDGE, bridge_name)
    bridge.addresses = {name: group_by_field(bridge.flows, name) for name in FLOW_ADDRESS_FIELDS}
    bridge.conj_ids = group_by_conj_id(bridge.flows)


def plan_mod_dl_src(ctx: BuildContext) -> list[WorkUnit]:
    """Classify source address rewrites and resolve their local ports."""

    ports = ctx.store.all(PORT)
    if not ports:
        return []
    index: dict[str, list[str]] = defaultdict(list)
    for port in ports:
        if port.hwaddr:
            index[port.hwaddr].append(port.name)
    return [
        (name, partial(_load_mod_dl_src, ctx, name, dict(index)))
        for name in ctx.store.keys(BRIDGE)
    ]


def classify_mod_dl_src(text: str) -> AddressMapping | None:
    """Classify a source address rewrite flow as ingress or egress.

    A flow that also matches a destination address is ingress: the matched
    destination is the local endpoint and the rewrite target the external
    address. Otherwise the matched source is local and the flow is egress.
    """

    target = flow_field(text, "mod_dl_src")
    if target is None:
        return None
    destination = flow_field(text, "dl_dst")
    if destination is not None:
        return AddressMapping(direction=DIRECTION_INGRESS, target=target, local=destination)
    source = flow_field(text, "dl_src")
    if source is not None:
        return AddressMapping(direction=DIRECTION_EGRESS, target=target, local=source)
    return None


def resolve_local_port(
    address: str,
    index: dict[str, list[str]],
    attempt_prefix_fallback: bool = False,
) -> str | None:
    """Find the port owning a hardware address, optionally via prefix aliases."""

    normalized = normalize_mac(address)
    if normalized is None:
        return None
    candidates = index.get(normalized, [])
    if not candidates and attempt_prefix_fallback:
        for alias in mac_aliases(normalized):
            candidates = index.get(alias, [])
            if candidates:
                break
    return min(candidates) if candidates else None


def _load_mod_dl_src(ctx: BuildContext, bridge_name: str, index: dict[str, list[str]]) -> None:
    bridge = ctx.store.get(BRIDGE, bridge_name)
    triples: set[tuple[str, str, str]] = set()
    for flow in bridge.flows:
        if "mod_dl_src" not in flow.text:
            continue
        mapping = classify_mod_dl_src(flow.text)
        if mapping is not None:
            triples.add((mapping.direction, mapping.target, mapping.local))

    mappings: list[AddressMapping] = []
    for direction, target, local in sorted(triples):
        port = resolve_local_port(local, index, ctx.settings.attempt_address_prefix_fallback)
        mappings.append(AddressMapping(direction=direction, target=target, local=local, port=port))
    bridge.mod_dl_src = mappings


def plan_l2pop(ctx: BuildContext) -> list[WorkUnit]:
    """Find tunnel ports each VLAN's flood flows output to."""

    return [(name, partial(_load_flood_ports, ctx, name)) for name in ctx.store.keys(BRIDGE)]


def _load_flood_ports(ctx: BuildContext, bridge_name: str) -> None:
    bridge = ctx.store.get(BRIDGE, bridge_name)
    tunnel_ids = {
        port_id
        for port_id, port_name in bridge.ports.items()
        if getattr(ctx.store.get(PORT, port_name), "tunnel", None) is not None
    }
    flood: dict[int, set[int]] = defaultdict(set)
    for flow in bridge.flows:
        vlan = flow_field(flow.stripped, "dl_vlan")
        if vlan is None:
            continue
        outputs = tunnel_ids.intersection(flow_outputs(flow.stripped))
        if outputs:
            flood[int(vlan)].update(outputs)
    bridge.flood_ports = dict(sorted(flood.items()))


def plan_conntrack_zones(ctx: BuildContext) -> list[WorkUnit]:
    """Load conntrack entries for the unzoned context and every VLAN."""

    try:
        unzoned = ctx.query(CONNTRACK_DUMP, "0")
    except QueryError as exc:
        # Older snap confinement cannot read conntrack at all.
        _LOGGER.info("Conntrack information unavailable: %s", exc)
        return []

    units: list[WorkUnit] = [("0", partial(_store_zone, ctx, 0, unzoned))]
    for vlan_id in ctx.store.keys(VLAN):
        if vlan_id != 0:
            units.append((str(vlan_id), partial(_load_zone, ctx, vlan_id)))
    return units


def _load_zone(ctx: BuildContext, zone: int) -> None:
    _store_zone(ctx, zone, ctx.query(CONNTRACK_DUMP, str(zone)))


def _store_zone(ctx: BuildContext, zone: int, text: str) -> None:
    ctx.store.put(ZONE, zone, ConntrackZone(zone=zone, entries=parse_conntrack(text, zone)))


def _switch_port_names(store: EntityStore) -> Iterable[str]:
    """Return names of ports that sit on a bridge."""

    return [port.name for port in store.all(PORT) if port.bridge is not None]
