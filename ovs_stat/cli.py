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
"""CLI entrypoint."""

from __future__ import annotations

import argparse
import logging
import re
from pathlib import Path

from ovs_stat.builder import build_dataset
from ovs_stat.config import load_settings
from ovs_stat.consistency import scan_neutron_issues
from ovs_stat.filters import filter_findings
from ovs_stat.output import (
    build_bridge_summary,
    write_bridge_summary,
    write_bridge_summary_json,
    write_dataset_json,
    write_findings,
    write_findings_json,
    write_summary,
    write_summary_json,
)
from ovs_stat.query import HOSTNAME, LiveQuery, QueryError, QuerySource, SnapshotQuery

_LOGGER = logging.getLogger(__name__)

UNKNOWN_HOST = "unknown"


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser."""

    parser = argparse.ArgumentParser(description="ovs-stat")
    parser.add_argument(
        "sosreport",
        nargs="?",
        help="path to a sosreport; the local host is queried when omitted",
    )
    parser.add_argument("--out-dir", required=True, help="output directory")
    parser.add_argument("--config", help="path to YAML settings file")
    parser.add_argument("--host", help="hostname to file results under")
    parser.add_argument(
        "--check-flow-vlans",
        action="store_true",
        default=None,
        help="cross-reference vlans found in flows with port vlans",
    )
    parser.add_argument(
        "--attempt-vm-mac-conversion",
        "--attempt-address-prefix-fallback",
        dest="attempt_address_prefix_fallback",
        action="store_true",
        default=None,
        help="retry unresolved mod_dl_src addresses with the fa:16 -> fe:16 prefix",
    )
    parser.add_argument(
        "-j",
        "--max-parallel-jobs",
        dest="max_concurrency",
        type=int,
        help="maximum concurrent work units per stage",
    )
    parser.add_argument(
        "--show-neutron-errors",
        action="store_true",
        help="scan the dataset for Neutron agent errors",
    )
    parser.add_argument(
        "--finding-kind",
        action="append",
        help="only write findings of this kind (repeatable)",
    )
    parser.add_argument(
        "--entity-regex",
        help="only write findings whose entity or target key matches this regex",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["INFO", "DEBUG", "WARN"],
        help="log level",
    )
    parser.add_argument(
        "--output-format",
        default="csv",
        choices=["csv", "json", "both"],
        help="output format (default: csv)",
    )
    return parser


def configure_logging(level: str) -> None:
    """Configure logging."""

    logging.basicConfig(level=getattr(logging, level), format="%(levelname)s %(message)s")


def main(argv: list[str] | None = None) -> int:
    """Run ovs-stat."""

    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        settings = load_settings(args.config).with_overrides(
            check_flow_vlans=args.check_flow_vlans,
            attempt_address_prefix_fallback=args.attempt_address_prefix_fallback,
            max_concurrency=args.max_concurrency,
        )
        query: QuerySource = SnapshotQuery(args.sosreport) if args.sosreport else LiveQuery()
        if args.entity_regex:
            re.compile(args.entity_regex)
    except (ValueError, re.error) as exc:
        _LOGGER.error("Invalid input: %s", exc)
        return 3

    host = args.host or _resolve_hostname(query)
    out_dir = Path(args.out_dir) / host
    out_dir.mkdir(parents=True, exist_ok=True)
    _LOGGER.info("Building dataset for %s in %s", host, out_dir)

    result = build_dataset(query, settings)
    if result.pipeline.failed_stages:
        for stage in result.pipeline.failed_stages:
            _LOGGER.error("unable to load %s: %s", stage.name, stage.error)
        return 1

    findings = filter_findings(result.findings, args.finding_kind, args.entity_regex)
    rows = build_bridge_summary(result.store)
    if args.output_format in ("csv", "both"):
        write_bridge_summary(out_dir / "bridges.csv", rows)
        write_findings(out_dir / "findings.csv", findings)
        write_summary(out_dir / "summary.txt", result.pipeline, result.findings)

    if args.output_format in ("json", "both"):
        write_bridge_summary_json(out_dir / "bridges.json", rows)
        write_findings_json(out_dir / "findings.json", findings)
        write_summary_json(out_dir / "summary.json", result.pipeline, result.findings)
        write_dataset_json(out_dir / "dataset.json", result.store)

    if args.show_neutron_errors:
        issues = filter_findings(
            scan_neutron_issues(result.store), args.finding_kind, args.entity_regex
        )
        for issue in issues:
            _LOGGER.warning("%s %s: %s", issue.kind, issue.key, issue.detail)
        if not issues:
            _LOGGER.info("No Neutron errors found")
        if args.output_format in ("csv", "both"):
            write_findings(out_dir / "neutron_errors.csv", issues)
        if args.output_format in ("json", "both"):
            write_findings_json(out_dir / "neutron_errors.json", issues)

    return 0


def _resolve_hostname(query: QuerySource) -> str:
    try:
        host = query(HOSTNAME).strip()
    except QueryError as exc:
        _LOGGER.warning("Unable to determine hostname: %s", exc)
        return UNKNOWN_HOST
    return host.splitlines()[0] if host else UNKNOWN_HOST


if __name__ == "__main__":
    raise SystemExit(main())
