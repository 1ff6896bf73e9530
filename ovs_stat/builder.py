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
"""Dataset build: the ordered stage list and its entry point."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ovs_stat import resolve
from ovs_stat.config import Settings
from ovs_stat.consistency import check_consistency
from ovs_stat.models import Finding
from ovs_stat.pipeline import PipelineResult, Stage, StageReport, run_stages
from ovs_stat.query import QuerySource
from ovs_stat.store import EntityStore

_LOGGER = logging.getLogger(__name__)

STAGES: tuple[Stage, ...] = (
    Stage("namespaces", resolve.plan_namespaces),
    Stage("bridges", resolve.plan_bridges),
    Stage("host_interfaces", resolve.plan_host_interfaces),
    Stage("bridge_flows", resolve.plan_bridge_flows, requires=("bridges",)),
    Stage("bridge_ports", resolve.plan_bridge_ports, requires=("bridges",)),
    Stage("port_hostnet", resolve.plan_port_hostnet, requires=("bridge_ports", "host_interfaces")),
    Stage("port_vlans", resolve.plan_port_vlans, requires=("bridge_ports",)),
    Stage("flow_vlans", resolve.plan_flow_vlans, requires=("bridge_flows", "port_vlans")),
    Stage("port_macs", resolve.plan_port_macs, requires=("bridge_ports",)),
    Stage(
        "port_namespaces",
        resolve.plan_port_namespaces,
        requires=("namespaces", "bridge_ports", "port_hostnet"),
    ),
    Stage("flow_registers", resolve.plan_flow_registers, requires=("bridge_ports",)),
    Stage("port_flows", resolve.plan_port_flows, requires=("bridge_flows", "bridge_ports")),
    Stage("flow_addresses", resolve.plan_flow_addresses, requires=("bridge_flows",)),
    Stage("mod_dl_src", resolve.plan_mod_dl_src, requires=("bridge_flows", "bridge_ports")),
    Stage("l2pop", resolve.plan_l2pop, requires=("bridge_flows", "port_macs")),
    Stage("conntrack_zones", resolve.plan_conntrack_zones),
)


@dataclass
class BuildResult:
    """Populated store plus the pipeline outcome and reference findings."""

    store: EntityStore
    pipeline: PipelineResult
    findings: list[Finding] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.pipeline.failed_stages


def build_dataset(
    query: QuerySource,
    settings: Settings | None = None,
    store: EntityStore | None = None,
) -> BuildResult:
    """Run every stage against a query source and check the result.

    Passing an existing store re-runs the build on top of it; inserts
    overwrite so the result matches a fresh build.
    """

    settings = settings or Settings()
    context = resolve.BuildContext(
        store=store if store is not None else EntityStore(),
        query=query,
        settings=settings,
    )

    def _after_stage(report: StageReport) -> None:
        if _LOGGER.isEnabledFor(logging.DEBUG):
            findings = check_consistency(context.store, settings.check_flow_vlans)
            _LOGGER.debug("After stage %s: %s reference findings", report.name, len(findings))

    pipeline = run_stages(STAGES, context, settings.max_concurrency, after_stage=_after_stage)
    findings = check_consistency(context.store, settings.check_flow_vlans)
    if findings:
        _LOGGER.warning("Dataset contains %s broken references", len(findings))
    return BuildResult(store=context.store, pipeline=pipeline, findings=findings)
