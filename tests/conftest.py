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
"""Shared tool output fixtures for a small compute node."""

from __future__ import annotations

import pytest

from ovs_stat.query import QueryError

VSCTL_SHOW = """\
a1b2c3d4-0000-0000-0000-000000000000
    Manager "ptcp:6640:127.0.0.1"
        is_connected: true
    Bridge br-int
        Controller "tcp:127.0.0.1:6633"
            is_connected: true
        fail_mode: secure
        Port tapvm01
            tag: 1
            Interface tapvm01
        Port qr-aaaa
            tag: 2
            Interface qr-aaaa
                type: internal
        Port tap2
            tag: 1
            Interface tap2
        Port patch-tun
            Interface patch-tun
                type: patch
                options: {peer=patch-int}
        Port br-int
            Interface br-int
                type: internal
    Bridge br-tun
        Port vxlan-0a000002
            Interface vxlan-0a000002
                type: vxlan
                options: {df_default="true", in_key=flow, local_ip="10.0.0.1", out_key=flow, remote_ip="10.0.0.2"}
        Port patch-int
            Interface patch-int
                type: patch
                options: {peer=patch-tun}
    ovs_version: "2.13.0"
"""

OFCTL_SHOW_BR_INT = """\
OFPT_FEATURES_REPLY (xid=0x2): dpid:0000aabbccddeeff
n_tables:254, n_buffers:0
capabilities: FLOW_STATS TABLE_STATS PORT_STATS QUEUE_STATS ARP_MATCH_IP
actions: output enqueue set_vlan_vid set_vlan_pcp strip_vlan mod_dl_src mod_dl_dst
 1(patch-tun): addr:12:34:56:78:9a:bc
     config:     0
     state:      0
     speed: 0 Mbps now, 0 Mbps max
 2(tapvm01): addr:FE:16:3E:11:22:33
     config:     0
     state:      0
 3(qr-aaaa): addr:fa:16:3e:44:55:66
     config:     PORT_DOWN
     state:      LINK_DOWN
 4(tap2): addr:fe:16:3e:77:77:77
     config:     0
 LOCAL(br-int): addr:aa:bb:cc:dd:ee:ff
     config:     PORT_DOWN
OFPT_GET_CONFIG_REPLY (xid=0x4): frags=normal miss_send_len=0
"""

OFCTL_SHOW_BR_TUN = """\
OFPT_FEATURES_REPLY (xid=0x2): dpid:0000deadbeef0003
 1(patch-int): addr:de:ad:be:ef:00:01
 2(vxlan-0a000002): addr:de:ad:be:ef:00:02
 LOCAL(br-tun): addr:de:ad:be:ef:00:03
"""

FLOWS_BR_INT = """\
NXST_FLOW reply (xid=0x4):
 cookie=0xabc, duration=10.5s, table=0, n_packets=5, n_bytes=300, idle_age=1, priority=10,in_port=2 actions=mod_vlan_vid:1,resubmit(,60)
 cookie=0xabc, duration=10.5s, table=60, n_packets=0, n_bytes=0, idle_age=1, priority=100,in_port=2 actions=load:0x2->NXM_NX_REG5[],load:0x1->NXM_NX_REG6[],resubmit(,71)
 cookie=0xabc, duration=10.5s, table=71, n_packets=0, n_bytes=0, idle_age=1, priority=95,udp,reg5=0x2,in_port=2,tp_src=68,tp_dst=67 actions=resubmit(,73)
 cookie=0xabc, duration=10.5s, table=82, n_packets=0, n_bytes=0, idle_age=1, priority=70,ct_state=+est-rel-rpl,ip,reg6=0x1,nw_src=10.1.0.5 actions=conjunction(7,1/2)
 cookie=0xabc, duration=10.5s, table=1, n_packets=0, n_bytes=0, idle_age=1, priority=4,dl_vlan=2,dl_dst=fa:16:3e:44:55:66 actions=mod_dl_src:fa:16:3e:99:88:77,output:3
 cookie=0xabc, duration=10.5s, table=1, n_packets=0, n_bytes=0, idle_age=1, priority=4,dl_vlan=1,dl_src=fa:16:3e:11:22:33 actions=mod_dl_src:fa:16:3e:aa:aa:aa,output:1
 cookie=0xabc, duration=10.5s, table=0, n_packets=9, n_bytes=540, idle_age=1, priority=0 actions=NORMAL
"""

FLOWS_BR_TUN = """\
NXST_FLOW reply (xid=0x4):
 cookie=0xdef, duration=5.0s, table=0, n_packets=0, n_bytes=0, idle_age=1, priority=1,in_port=1 actions=resubmit(,2)
 cookie=0x123, duration=5.0s, table=22, n_packets=0, n_bytes=0, idle_age=1, priority=1,dl_vlan=1 actions=strip_vlan,load:0x64->NXM_NX_TUN_ID[],output:2
"""

IP_LINK = """\
1: lo: <LOOPBACK,UP,LOWER_UP> mtu 65536 qdisc noqueue state UNKNOWN mode DEFAULT group default qlen 1000
    link/loopback 00:00:00:00:00:00 brd 00:00:00:00:00:00 promiscuity 0
2: eth0: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc fq_codel state UP mode DEFAULT group default qlen 1000
    link/ether 52:54:00:12:34:56 brd ff:ff:ff:ff:ff:ff promiscuity 0
10: tapvm01: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1450 qdisc fq_codel master ovs-system state UNKNOWN mode DEFAULT group default qlen 1000
    link/ether fe:16:3e:11:22:33 brd ff:ff:ff:ff:ff:ff promiscuity 1
11: tap2@if3: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc noqueue master ovs-system state UP mode DEFAULT group default qlen 1000
    link/ether fe:16:3e:77:77:77 brd ff:ff:ff:ff:ff:ff link-netnsid 0
"""

IP_NETNS = """\
qdhcp-1234 (id: 0)
qrouter-5678
"""

NS_QDHCP_ADDRESSES = """\
1: lo: <LOOPBACK,UP,LOWER_UP> mtu 65536 qdisc noqueue state UNKNOWN group default qlen 1000
    link/loopback 00:00:00:00:00:00 brd 00:00:00:00:00:00
    inet 127.0.0.1/8 scope host lo
       valid_lft forever preferred_lft forever
3: ns-2@if11: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc noqueue state UP group default qlen 1000
    link/ether fa:16:3e:77:77:77 brd ff:ff:ff:ff:ff:ff link-netnsid 0
    inet 10.1.0.2/24 brd 10.1.0.255 scope global ns-2
       valid_lft forever preferred_lft forever
"""

NS_QROUTER_ADDRESSES = """\
1: lo: <LOOPBACK,UP,LOWER_UP> mtu 65536 qdisc noqueue state UNKNOWN group default qlen 1000
    link/loopback 00:00:00:00:00:00 brd 00:00:00:00:00:00
12: qr-aaaa: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1450 qdisc noqueue state UNKNOWN group default qlen 1000
    link/ether fa:16:3e:44:55:66 brd ff:ff:ff:ff:ff:ff
    inet 10.1.0.1/24 brd 10.1.0.255 scope global qr-aaaa
"""

OVSDB_LIST_DUMP = """\
Bridge table
_uuid               : 33333333-3333-3333-3333-333333333333
name                : br-int

Interface table
_uuid               : 11111111-1111-1111-1111-111111111111
admin_state         : up
mac_in_use          : "de:ad:be:ef:00:02"
name                : vxlan-0a000002
options             : {df_default="true", in_key=flow, local_ip="10.0.0.1", out_key=flow, remote_ip="10.0.0.2"}
type                : vxlan

_uuid               : 22222222-2222-2222-2222-222222222222
mac_in_use          : "fe:16:3e:11:22:33"
name                : tapvm01
options             : {}
type                : ""
"""

CONNTRACK = """\
tcp,orig=(src=10.1.0.5,dst=10.1.0.2,sport=5000,dport=22),reply=(src=10.1.0.2,dst=10.1.0.5,sport=22,dport=5000),zone=1,mark=1,protoinfo=(state=ESTABLISHED)
udp,orig=(src=10.1.0.5,dst=10.1.0.1,sport=68,dport=67),reply=(src=10.1.0.1,dst=10.1.0.5,sport=67,dport=68)
"""

OUTPUTS: dict[tuple[str, str | None], str] = {
    ("bridge-list", None): VSCTL_SHOW,
    ("bridge-port-map", "br-int"): OFCTL_SHOW_BR_INT,
    ("bridge-port-map", "br-tun"): OFCTL_SHOW_BR_TUN,
    ("flow-dump", "br-int"): FLOWS_BR_INT,
    ("flow-dump", "br-tun"): FLOWS_BR_TUN,
    ("register-dump", "br-int"): FLOWS_BR_INT,
    ("register-dump", "br-tun"): FLOWS_BR_TUN,
    ("interface-list", None): IP_LINK,
    ("namespace-list", None): IP_NETNS,
    ("namespace-interfaces", "qdhcp-1234"): NS_QDHCP_ADDRESSES,
    ("namespace-interfaces", "qrouter-5678"): NS_QROUTER_ADDRESSES,
    ("tunnel-metadata", None): OVSDB_LIST_DUMP,
    ("conntrack-dump", "0"): CONNTRACK,
    ("conntrack-dump", "1"): CONNTRACK,
    ("conntrack-dump", "2"): CONNTRACK,
    ("hostname", None): "compute-0\n",
}


class FakeQuery:
    """Query source answering from a fixed mapping of (kind, scope) to text."""

    def __init__(self, outputs: dict[tuple[str, str | None], str]) -> None:
        self.outputs = dict(outputs)
        self.calls: list[tuple[str, str | None]] = []

    def __call__(self, kind: str, scope: str | None = None) -> str:
        self.calls.append((kind, scope))
        try:
            return self.outputs[(kind, scope)]
        except KeyError:
            raise QueryError(kind, scope, "QUERY_SOURCE_MISSING") from None


@pytest.fixture
def fake_query() -> FakeQuery:
    return FakeQuery(OUTPUTS)
