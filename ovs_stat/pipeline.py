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
"""Stage orchestration with a bounded worker pool and join barriers."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

_LOGGER = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"

WorkUnit = tuple[str, Callable[[], None]]


@dataclass(frozen=True)
class Stage:
    """Named pipeline stage.

    ``plan`` receives the shared context and returns the independent units of
    work for the stage as (unit name, callable) pairs.
    """

    name: str
    plan: Callable[[Any], Iterable[WorkUnit]]
    requires: tuple[str, ...] = ()


@dataclass(frozen=True)
class UnitFailure:
    """Work unit that raised while its siblings carried on."""

    stage: str
    unit: str
    error: str


@dataclass
class StageReport:
    """Outcome of one stage."""

    name: str
    status: str
    units: int = 0
    error: str | None = None
    failures: list[UnitFailure] = field(default_factory=list)


@dataclass
class PipelineResult:
    """Outcome of a pipeline run."""

    stages: list[StageReport] = field(default_factory=list)

    @property
    def failed_stages(self) -> list[StageReport]:
        return [stage for stage in self.stages if stage.status == STATUS_FAILED]

    @property
    def skipped_stages(self) -> list[StageReport]:
        return [stage for stage in self.stages if stage.status == STATUS_SKIPPED]

    @property
    def unit_failures(self) -> list[UnitFailure]:
        return [failure for stage in self.stages for failure in stage.failures]

    @property
    def ok(self) -> bool:
        return not self.failed_stages and not self.skipped_stages

    def status_of(self, name: str) -> str | None:
        for stage in self.stages:
            if stage.name == name:
                return stage.status
        return None


def run_stages(
    stages: Sequence[Stage],
    context: Any,
    max_concurrency: int,
    after_stage: Callable[[StageReport], None] | None = None,
) -> PipelineResult:
    """Run stages in order, fanning out each stage's units to a worker pool.

    A stage starts only after every unit of the previous stage finished. A
    stage whose plan raises is failed and the stages requiring it are
    skipped; a unit that raises is recorded without stopping its siblings.
    """

    workers = max(1, max_concurrency)
    result = PipelineResult()
    unavailable: set[str] = set()
    for stage in stages:
        missing = [name for name in stage.requires if name in unavailable]
        if missing:
            _LOGGER.warning(
                "Skipping stage %s: required stage %s did not complete",
                stage.name,
                ", ".join(missing),
            )
            report = StageReport(
                name=stage.name,
                status=STATUS_SKIPPED,
                error=f"requires {', '.join(missing)}",
            )
            unavailable.add(stage.name)
            result.stages.append(report)
            continue

        report = _run_stage(stage, context, workers)
        if report.status != STATUS_COMPLETED:
            unavailable.add(stage.name)
        result.stages.append(report)
        if after_stage is not None:
            after_stage(report)
    return result


def _run_stage(stage: Stage, context: Any, workers: int) -> StageReport:
    _LOGGER.debug("Planning stage %s", stage.name)
    try:
        units = list(stage.plan(context))
    except Exception as exc:  # noqa: BLE001
        _LOGGER.error("unable to load %s: %s", stage.name, exc)
        return StageReport(name=stage.name, status=STATUS_FAILED, error=str(exc))

    report = StageReport(name=stage.name, status=STATUS_COMPLETED, units=len(units))
    if not units:
        return report

    with ThreadPoolExecutor(max_workers=min(workers, len(units))) as pool:
        futures = {pool.submit(work): unit_name for unit_name, work in units}
        for future in as_completed(futures):
            unit_name = futures[future]
            exc = future.exception()
            if exc is not None:
                _LOGGER.warning("Stage %s unit %s failed: %s", stage.name, unit_name, exc)
                report.failures.append(UnitFailure(stage.name, unit_name, str(exc)))

    report.failures.sort(key=lambda failure: failure.unit)
    _LOGGER.info(
        "Stage %s done (%s units, %s failed)",
        stage.name,
        report.units,
        len(report.failures),
    )
    return report
