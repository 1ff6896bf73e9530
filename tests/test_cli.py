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
"""Tests for the command line entrypoint."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import (
    CONNTRACK,
    FLOWS_BR_INT,
    FLOWS_BR_TUN,
    IP_LINK,
    IP_NETNS,
    NS_QDHCP_ADDRESSES,
    NS_QROUTER_ADDRESSES,
    OFCTL_SHOW_BR_INT,
    OFCTL_SHOW_BR_TUN,
    OVSDB_LIST_DUMP,
    VSCTL_SHOW,
)

from ovs_stat.cli import build_parser, main

SOSREPORT_FILES = {
    "sos_commands/openvswitch/ovs-vsctl_-t_5_show": VSCTL_SHOW,
    "sos_commands/openvswitch/ovs-ofctl_show_br-int": OFCTL_SHOW_BR_INT,
    "sos_commands/openvswitch/ovs-ofctl_show_br-tun": OFCTL_SHOW_BR_TUN,
    "sos_commands/openvswitch/ovs-ofctl_dump-flows_br-int": FLOWS_BR_INT,
    "sos_commands/openvswitch/ovs-ofctl_dump-flows_br-tun": FLOWS_BR_TUN,
    "sos_commands/openvswitch/ovsdb-client_-f_list_dump": OVSDB_LIST_DUMP,
    "sos_commands/openvswitch/ovs-appctl_dpctl.dump-conntrack_-m": CONNTRACK,
    "sos_commands/networking/ip_-d_link": IP_LINK,
    "sos_commands/networking/ip_netns": IP_NETNS,
    "sos_commands/networking/ip_netns_exec_qdhcp-1234_ip_address_show": NS_QDHCP_ADDRESSES,
    "sos_commands/networking/ip_netns_exec_qrouter-5678_ip_address_show": NS_QROUTER_ADDRESSES,
    "hostname": "compute-0\n",
}


def _write_sosreport(root: Path, skip: tuple[str, ...] = ()) -> Path:
    for relative, content in SOSREPORT_FILES.items():
        if relative in skip:
            continue
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def test_parser_flags() -> None:
    args = build_parser().parse_args(
        ["sos", "--out-dir", "out", "--attempt-vm-mac-conversion", "-j", "4"]
    )

    assert args.attempt_address_prefix_fallback is True
    assert args.check_flow_vlans is None
    assert args.max_concurrency == 4
    assert args.finding_kind is None

    args = build_parser().parse_args(
        ["--out-dir", "out", "--finding-kind", "missing_target", "--finding-kind", "unattached_vlan"]
    )

    assert args.sosreport is None
    assert args.finding_kind == ["missing_target", "unattached_vlan"]


def test_main_writes_reports(tmp_path: Path) -> None:
    sosreport = _write_sosreport(tmp_path / "sos")
    out_dir = tmp_path / "out"

    code = main(
        [
            str(sosreport),
            "--out-dir",
            str(out_dir),
            "--output-format",
            "both",
            "--show-neutron-errors",
        ]
    )

    assert code == 0
    host_dir = out_dir / "compute-0"
    for name in (
        "bridges.csv",
        "findings.csv",
        "summary.txt",
        "bridges.json",
        "findings.json",
        "summary.json",
        "dataset.json",
        "neutron_errors.csv",
        "neutron_errors.json",
    ):
        assert (host_dir / name).is_file(), name

    assert json.loads((host_dir / "findings.json").read_text(encoding="utf-8")) == []
    issues = json.loads((host_dir / "neutron_errors.json").read_text(encoding="utf-8"))
    assert sorted(issue["kind"] for issue in issues) == [
        "neutron_conntrack_mark",
        "neutron_multiple_cookies",
    ]


def test_main_host_override_and_csv_only(tmp_path: Path) -> None:
    sosreport = _write_sosreport(tmp_path / "sos")

    code = main([str(sosreport), "--out-dir", str(tmp_path / "out"), "--host", "node-1"])

    assert code == 0
    assert (tmp_path / "out" / "node-1" / "bridges.csv").is_file()
    assert not (tmp_path / "out" / "node-1" / "dataset.json").exists()


def test_main_failed_stage_exits_1(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    sosreport = _write_sosreport(
        tmp_path / "sos",
        skip=("sos_commands/openvswitch/ovsdb-client_-f_list_dump",),
    )

    code = main([str(sosreport), "--out-dir", str(tmp_path / "out")])

    assert code == 1
    assert "unable to load port_macs" in caplog.text


def test_main_invalid_input_exits_3(tmp_path: Path) -> None:
    sosreport = _write_sosreport(tmp_path / "sos")

    assert main([str(tmp_path / "empty"), "--out-dir", str(tmp_path / "out")]) == 3
    assert (
        main(
            [
                str(sosreport),
                "--out-dir",
                str(tmp_path / "out"),
                "--config",
                str(tmp_path / "missing.yaml"),
            ]
        )
        == 3
    )


def test_main_filters_written_findings(tmp_path: Path) -> None:
    sosreport = _write_sosreport(tmp_path / "sos")
    out_dir = tmp_path / "out"

    code = main(
        [
            str(sosreport),
            "--out-dir",
            str(out_dir),
            "--output-format",
            "json",
            "--show-neutron-errors",
            "--finding-kind",
            "neutron_multiple_cookies",
        ]
    )

    assert code == 0
    issues = json.loads((out_dir / "compute-0" / "neutron_errors.json").read_text(encoding="utf-8"))
    assert [issue["kind"] for issue in issues] == ["neutron_multiple_cookies"]


def test_main_invalid_entity_regex_exits_3(tmp_path: Path) -> None:
    sosreport = _write_sosreport(tmp_path / "sos")

    code = main([str(sosreport), "--out-dir", str(tmp_path / "out"), "--entity-regex", "["])

    assert code == 3
    assert not (tmp_path / "out").exists()
