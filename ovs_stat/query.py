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
"""Raw switch and host networking queries, live or from a captured sosreport."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Protocol

_LOGGER = logging.getLogger(__name__)

BRIDGE_LIST = "bridge-list"
BRIDGE_PORT_MAP = "bridge-port-map"
FLOW_DUMP = "flow-dump"
INTERFACE_LIST = "interface-list"
NAMESPACE_LIST = "namespace-list"
NAMESPACE_INTERFACES = "namespace-interfaces"
TUNNEL_METADATA = "tunnel-metadata"
REGISTER_DUMP = "register-dump"
CONNTRACK_DUMP = "conntrack-dump"
HOSTNAME = "hostname"

QUERY_KINDS = (
    BRIDGE_LIST,
    BRIDGE_PORT_MAP,
    FLOW_DUMP,
    INTERFACE_LIST,
    NAMESPACE_LIST,
    NAMESPACE_INTERFACES,
    TUNNEL_METADATA,
    REGISTER_DUMP,
    CONNTRACK_DUMP,
    HOSTNAME,
)

_SCOPED_KINDS = {BRIDGE_PORT_MAP, FLOW_DUMP, NAMESPACE_INTERFACES, REGISTER_DUMP, CONNTRACK_DUMP}

_OVS_DIR = "sos_commands/openvswitch"
_NET_DIR = "sos_commands/networking"

# Candidate sosreport paths per query kind, first existing file wins.
_SNAPSHOT_PATHS: dict[str, tuple[str, ...]] = {
    BRIDGE_LIST: (f"{_OVS_DIR}/ovs-vsctl_-t_5_show", f"{_OVS_DIR}/ovs-vsctl_show"),
    BRIDGE_PORT_MAP: (
        f"{_OVS_DIR}/ovs-ofctl_show_{{scope}}",
        f"{_OVS_DIR}/ovs-ofctl_-O_OpenFlow13_show_{{scope}}",
    ),
    FLOW_DUMP: (
        f"{_OVS_DIR}/ovs-ofctl_dump-flows_{{scope}}",
        f"{_OVS_DIR}/ovs-ofctl_-O_OpenFlow13_dump-flows_{{scope}}",
    ),
    REGISTER_DUMP: (
        f"{_OVS_DIR}/ovs-ofctl_dump-flows_{{scope}}",
        f"{_OVS_DIR}/ovs-ofctl_-O_OpenFlow13_dump-flows_{{scope}}",
    ),
    INTERFACE_LIST: (
        f"{_NET_DIR}/ip_-d_link",
        f"{_NET_DIR}/ip_-d_address",
        f"{_NET_DIR}/ip_link",
        f"{_NET_DIR}/ip_address",
    ),
    NAMESPACE_LIST: (f"{_NET_DIR}/ip_netns",),
    NAMESPACE_INTERFACES: (
        f"{_NET_DIR}/namespaces/{{scope}}/ip_netns_exec_{{scope}}_ip_-d_address_show",
        f"{_NET_DIR}/namespaces/{{scope}}/ip_netns_exec_{{scope}}_ip_address_show",
        f"{_NET_DIR}/ip_netns_exec_{{scope}}_ip_address_show",
        f"{_NET_DIR}/ip_netns_exec_{{scope}}_ip_-d_address_show",
    ),
    TUNNEL_METADATA: (f"{_OVS_DIR}/ovsdb-client_-f_list_dump",),
    CONNTRACK_DUMP: (
        f"{_OVS_DIR}/ovs-appctl_dpctl.dump-conntrack_-m_zone={{scope}}",
        f"{_OVS_DIR}/ovs-appctl_dpctl.dump-conntrack_-m",
    ),
    HOSTNAME: ("hostname", "etc/hostname"),
}


class QueryError(Exception):
    """Raised when a raw query cannot be answered."""

    def __init__(self, kind: str, scope: str | None, code: str, message: str = "") -> None:
        self.kind = kind
        self.scope = scope
        self.code = code
        self.message = message
        target = f"{kind}({scope})" if scope else kind
        detail = f": {message}" if message else ""
        super().__init__(f"{target} failed with {code}{detail}")


class QuerySource(Protocol):
    """Callable answering raw queries."""

    def __call__(self, kind: str, scope: str | None = None) -> str:
        ...


class SnapshotQuery:
    """Answer queries from a captured sosreport directory."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        if not (self._root / _OVS_DIR).is_dir():
            raise ValueError(f"{self._root} does not contain {_OVS_DIR}")

    @property
    def root(self) -> Path:
        return self._root

    def __call__(self, kind: str, scope: str | None = None) -> str:
        _validate_query(kind, scope)
        for candidate in _SNAPSHOT_PATHS[kind]:
            path = self._root / candidate.format(scope=scope)
            if path.is_file():
                _LOGGER.debug("Reading %s from %s", kind, path)
                try:
                    return path.read_text(encoding="utf-8", errors="replace")
                except OSError as exc:
                    raise QueryError(kind, scope, "QUERY_READ_FAILED", str(exc)) from exc
        raise QueryError(kind, scope, "QUERY_SOURCE_MISSING", f"no capture under {self._root}")


class LiveQuery:
    """Answer queries by running switch and ip tooling on this host."""

    def __init__(self, timeout: int = 30, ovs_timeout: int = 5) -> None:
        self._timeout = timeout
        self._ovs_timeout = ovs_timeout

    def __call__(self, kind: str, scope: str | None = None) -> str:
        _validate_query(kind, scope)
        command = self.build_command(kind, scope)
        if not _command_exists(command[0]):
            raise QueryError(kind, scope, "QUERY_COMMAND_MISSING", command[0])
        _LOGGER.debug("Running %s", " ".join(command))
        try:
            result = subprocess.run(
                command,
                check=False,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise QueryError(kind, scope, "QUERY_TIMEOUT", " ".join(command)) from exc
        except OSError as exc:
            raise QueryError(kind, scope, "QUERY_COMMAND_FAILED", str(exc)) from exc

        if result.returncode != 0:
            combined_output = "\n".join([result.stdout, result.stderr]).strip()
            error_code = classify_query_error(combined_output)
            _LOGGER.debug("%s exited %s: %s", command[0], result.returncode, combined_output)
            raise QueryError(kind, scope, error_code, result.stderr.strip())
        return result.stdout

    def build_command(self, kind: str, scope: str | None = None) -> list[str]:
        """Build the command line answering a query."""

        vsctl_timeout = str(self._ovs_timeout)
        commands: dict[str, list[str]] = {
            BRIDGE_LIST: ["ovs-vsctl", "-t", vsctl_timeout, "show"],
            BRIDGE_PORT_MAP: ["ovs-ofctl", "show", scope or ""],
            FLOW_DUMP: ["ovs-ofctl", "dump-flows", scope or ""],
            REGISTER_DUMP: ["ovs-ofctl", "dump-flows", scope or ""],
            INTERFACE_LIST: ["ip", "-d", "link", "show"],
            NAMESPACE_LIST: ["ip", "netns"],
            NAMESPACE_INTERFACES: ["ip", "netns", "exec", scope or "", "ip", "address", "show"],
            TUNNEL_METADATA: ["ovsdb-client", "-f", "list", "dump"],
            CONNTRACK_DUMP: ["ovs-appctl", "dpctl/dump-conntrack", "-m", f"zone={scope}"],
            HOSTNAME: ["hostname"],
        }
        return commands[kind]


def classify_query_error(output: str) -> str:
    """Classify tool error output into a stable error code."""

    lowered = output.lower()
    permission_markers = (
        "permission denied",
        "operation not permitted",
        "not authorized",
    )
    if any(marker in lowered for marker in permission_markers):
        return "QUERY_PERMISSION_DENIED"

    missing_markers = (
        "no such file or directory",
        "is not a bridge or a socket",
        "no such device",
        "cannot open network namespace",
    )
    if any(marker in lowered for marker in missing_markers):
        return "QUERY_SOURCE_MISSING"

    unreachable_markers = (
        "database connection failed",
        "connection refused",
        "failed to connect",
        "timeout",
    )
    if any(marker in lowered for marker in unreachable_markers):
        return "QUERY_UNREACHABLE"

    return "QUERY_UNKNOWN_ERROR"


def _validate_query(kind: str, scope: str | None) -> None:
    if kind not in QUERY_KINDS:
        raise ValueError(f"unknown query kind: {kind}")
    if kind in _SCOPED_KINDS and not scope:
        raise ValueError(f"query {kind} requires a scope")


def _command_exists(command: str) -> bool:
    """Check if a command exists on PATH."""

    return Path(command).is_file() or bool(shutil.which(command))
