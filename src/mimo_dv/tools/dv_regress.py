# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/tools/dv_regress.py

"""MIMO DV: YAML-driven regression runner.

Every job is one VerificationSession run in process. All jobs share a single
MimoCoverage model, so the closing coverage report is the merged coverage of
the whole regression (identity is (tag, seq) and each job has its own tag).

Features:
- Global defaults merged into every job (job keys take precedence)
- Per-job expectation (PASS or FAIL)
- Colored pass/fail report and merged coverage summary

YAML Schema:
    defaults:
      config: {tx_antennas: 4, rx_antennas: 4}     # Optional
      options: {transaction_count: 100}            # Optional
      dut: {latency: 3.0}                          # Optional

    jobs:
      - name: <job_name>
        config: {num_data_streams: 2, modulation_scheme: QPSK}
        options: {seed: 42}
        expect: PASS
      - name: lost_output
        dut: {drop_seqs: [57]}
        expect: FAIL

Usage:
    mimo-dv-regress --file=path/to/regress.yaml [--outdir=out_mimo_dv]
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from mimo_dv import utils
from mimo_dv.mimo.mimo_config import Configuration, SessionOptions
from mimo_dv.mimo.mimo_coverage import MimoCoverage
from mimo_dv.mimo.mimo_dut import SoftwarePipeline
from mimo_dv.mimo.mimo_session import VerificationSession
from mimo_dv.shared.base_session import SessionReport
from mimo_dv.shared.errors import ConfigKeyError, MimoDvError

DEFAULT_OUT_DIR = "out_mimo_dv"
_DUT_KEYS = {"latency", "reorder_depth", "drop_seqs", "corrupt_seqs", "corrupt_offset"}


@dataclass(frozen=True)
class Job:
    """A single regression job."""

    name: str
    config: Configuration
    options: SessionOptions
    dut: Mapping[str, Any] = field(default_factory=dict)
    expect: str = "PASS"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for regression runner.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:].

    Returns:
        Parsed argument namespace containing file path and output directory.
    """
    ap = argparse.ArgumentParser(
        description="MIMO DV YAML regression",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    ap.add_argument("--file", type=Path, required=True, help="Path to regress YAML")
    ap.add_argument("--outdir", default=DEFAULT_OUT_DIR, help="output directory")
    ap.add_argument(
        "--verbosity",
        choices=["critical", "error", "warning", "info", "debug", "notset"],
        default="warning",
        help="logging level",
    )
    return ap.parse_args(argv)


def _section(raw: Mapping[str, Any], key: str, where: str) -> dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigKeyError(f"{where}: '{key}' must be a mapping")
    return value


def load_jobs(path: Path) -> list[Job]:
    """Load and validate the regression file.

    Raises:
        ConfigKeyError: If the YAML structure is invalid or jobs is empty.
        ConfigurationInvalid: If a job's configuration or options are invalid.
    """
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ConfigKeyError(f"{path}: top level must be a mapping")

    defaults = data.get("defaults") or {}
    if not isinstance(defaults, dict):
        raise ConfigKeyError(f"{path}: 'defaults' must be a mapping")
    jobs_raw = data.get("jobs")
    if not isinstance(jobs_raw, list) or not jobs_raw:
        raise ConfigKeyError(f"{path}: 'jobs' must be a non-empty list")

    jobs: list[Job] = []
    for idx, j in enumerate(jobs_raw):
        if not isinstance(j, dict):
            raise ConfigKeyError(f"{path}: jobs[{idx}] must be a mapping")
        name = str(j.get("name") or f"job{idx}")
        where = f"{path}: job {name}"
        merged = {
            key: {**_section(defaults, key, f"{path}: defaults"), **_section(j, key, where)}
            for key in ("config", "options", "dut")
        }
        unknown = set(merged["dut"]) - _DUT_KEYS
        if unknown:
            raise ConfigKeyError(f"{where}: unknown dut keys {sorted(unknown)}")
        expect = str(j.get("expect", defaults.get("expect", "PASS"))).upper()
        if expect not in ("PASS", "FAIL"):
            raise ConfigKeyError(f"{where}: expect must be PASS or FAIL")
        jobs.append(
            Job(
                name=name,
                config=Configuration.from_mapping(merged["config"]),
                options=SessionOptions.from_mapping(merged["options"]),
                dut=merged["dut"],
                expect=expect,
            )
        )
    return jobs


def run_job(job: Job, coverage: MimoCoverage, outdir: Path) -> SessionReport:
    """Run one job against the shared coverage model."""
    dut = SoftwarePipeline(seed=job.options.seed, stages=job.options.stages, **job.dut)
    session = VerificationSession(
        job.config, job.options, dut=dut, coverage=coverage, tag=job.name
    )
    report = session.run()
    job_dir = utils.ensure_dir(outdir / "jobs" / job.name, True)
    report.save(job_dir)
    return report


def run_regress(args: argparse.Namespace) -> int:
    """Execute all regression jobs defined in the YAML file.

    Returns:
        0 if every job matches its expectation, 1 otherwise (or if the
        file is missing or invalid).
    """
    yaml_path = args.file.resolve()
    if not yaml_path.is_file():
        print(f"\n[mimo-dv-regress] No file found at {yaml_path}", file=sys.stderr)
        return 1
    print(f"\n[mimo-dv-regress] file: {yaml_path}")

    try:
        jobs = load_jobs(yaml_path)
    except MimoDvError as exc:
        print(f"[mimo-dv-regress] {utils.red('ERROR')}: {exc}", file=sys.stderr)
        return 1

    outdir = utils.ensure_dir(args.outdir, True)
    coverage = MimoCoverage(name="regress_cov")
    passes: list[str] = []
    fails: list[str] = []

    for job in jobs:
        print(f"\n[mimo-dv-regress] job: {job.name} ({job.config.mimo_mode})")
        try:
            report = run_job(job, coverage, outdir)
        except MimoDvError as exc:
            fails.append(f"{job.name}: {exc}")
            continue
        status = "PASS" if report.passed else "FAIL"
        line = (
            f"{job.name}: {report.status.value} agreement={report.agreement_rate:.4f} "
            f"(expect {job.expect})"
        )
        if status == job.expect:
            passes.append(line)
        else:
            fails.append(line)

    print("\n[mimo-dv-regress] JOBS REPORT\n")
    for c in passes:
        print(f"{utils.green('PASS')}: {c}")
    for c in fails:
        print(f"{utils.red('FAIL')}: {c}")

    print("\n[mimo-dv-regress] MERGED COVERAGE\n")
    for category, pct in coverage.category_coverage().items():
        print(f"  {category:32s} {pct:6.1f}%")
    print(f"  {'overall':32s} {coverage.overall_coverage():6.1f}%")
    missing = coverage.uncovered_required()
    if missing:
        print(f"  uncovered corner cases: {utils.yellow(', '.join(missing))}")
    coverage.export_yaml(outdir / "coverage.yml")

    if fails:
        print(f"\n[mimo-dv-regress] SUMMARY: {utils.red('FAIL')}")
        return 1
    print(f"\n[mimo-dv-regress] SUMMARY: {utils.green('PASS')}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point for regression runner.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:].

    Returns:
        0 if regression passes, non-zero otherwise.
    """
    args = parse_args(argv)
    utils.configure_logger(args.verbosity)
    return run_regress(args)


if __name__ == "__main__":
    raise SystemExit(main())
