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
"""Tests for the entity store."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from ovs_stat.models import BRIDGE, PORT, REGISTER, VLAN, Bridge, Port, Vlan
from ovs_stat.store import EntityStore


def test_put_overwrites_and_tracks_parent() -> None:
    store = EntityStore()
    store.put(PORT, "tap1", Port(name="tap1", id=1), parent="br-int")
    store.put(PORT, "tap1", Port(name="tap1", id=2), parent="br-int")

    assert store.count(PORT) == 1
    assert store.get(PORT, "tap1").id == 2
    assert store.parent_of(PORT, "tap1") == "br-int"


def test_keys_sorted_numerically_and_children() -> None:
    store = EntityStore()
    for vlan_id in (10, 2, 1):
        store.put(VLAN, vlan_id, Vlan(id=vlan_id))
    store.put(BRIDGE, "br-int", Bridge(name="br-int"))
    store.put(PORT, "b", Port(name="b"), parent="br-int")
    store.put(PORT, "a", Port(name="a"), parent="br-int")
    store.put(PORT, "c", Port(name="c"), parent="br-tun")

    assert store.keys(VLAN) == [1, 2, 10]
    assert [port.name for port in store.children(PORT, "br-int")] == ["a", "b"]
    assert store.children(REGISTER, "br-int") == []


def test_setdefault_creates_once_under_concurrency() -> None:
    store = EntityStore()

    def attach(port: str) -> None:
        store.setdefault(VLAN, 1, lambda: Vlan(id=1))
        store.update(VLAN, 1, lambda vlan: vlan.ports.add(port))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(attach, [f"tap{index}" for index in range(50)]))

    assert store.count(VLAN) == 1
    assert len(store.get(VLAN, 1).ports) == 50



def test_update_requires_existing_entity() -> None:
    store = EntityStore()

    with pytest.raises(KeyError):
        store.update(VLAN, 5, lambda vlan: vlan.ports.add("tap1"))
    assert store.count(VLAN) == 0

def test_snapshot_is_a_copy() -> None:
    store = EntityStore()
    store.put(VLAN, 1, Vlan(id=1, ports={"tap1"}))
    snapshot = store.snapshot()

    store.get(VLAN, 1).ports.add("tap2")

    assert snapshot[VLAN][1].ports == {"tap1"}


def test_unknown_kind_rejected() -> None:
    store = EntityStore()

    with pytest.raises(ValueError):
        store.put("switch", "x", object())
