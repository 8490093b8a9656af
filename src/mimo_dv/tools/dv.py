# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/tools/dv.py

"""Run MIMO verification sessions against the software pipeline.

Each seed runs one VerificationSession and writes, under
<outdir>/tests/<tag>/:
- report.json: the SessionReport
- coverage.yml: coverage_db export
- manifest.json: status, expectation, duration and a replay command

Command-line interface:
    mimo-dv [--scenario=<yaml>] [CONFIG FLAGS] [SESSION FLAGS] [OPTIONS]

Typical usage:
    # Nominal 4x4 QPSK session
    mimo-dv --tx=4 --rx=4 --streams=2 --modulation=QPSK --seeds 42

    # From a scenario file, 5 random seeds
    mimo-dv --scenario=scenarios/mmse_16qam.yaml --nseeds=5

    # A lost output must fail the session
    mimo-dv --drop-seq=57 --expect=FAIL

Settings precedence (session options): env (NAME or MIMO_NAME) > plusargs
(PLUSARGS / MIMO_PLUSARGS) > command line / scenario file > default, for
TRANSACTION_COUNT, MODE, CORNER_CASE_WEIGHT, AGREEMENT_THRESHOLD and
COVERAGE_TARGET.
"""

from __future__ import annotations

import argparse
import json
import random
import shlex
import sys
import time
from pathlib import Path
from typing import Any, Sequence

from mimo_dv import utils
from mimo_dv.mimo.mimo_config import (
    DETECTIONS,
    MODULATIONS,
    NOISE_CLASSES,
    PILOT_PATTERNS,
    Configuration,
    SessionOptions,
    load_scenario,
)
from mimo_dv.mimo.mimo_dut import SoftwarePipeline
from mimo_dv.mimo.mimo_session import VerificationSession
from mimo_dv.shared import utils_cli
from mimo_dv.shared.base_session import SessionReport
from mimo_dv.shared.errors import MimoDvError

DEFAULT_OUT_DIR = "out_mimo_dv"
DEFAULT_TESTS_SUBDIR = "tests"

# CLI dest -> Configuration field
_CONFIG_FLAGS: dict[str, str] = {
    "tx": "tx_antennas",
    "rx": "rx_antennas",
    "streams": "num_data_streams",
    "symbol_width": "symbol_width",
    "data_width": "data_width",
    "modulation": "modulation_scheme",
    "detection": "detection_algorithm",
    "pilot": "pilot_pattern",
    "noise": "noise_level_class",
    "error_injection": "error_injection_enabled",
}


# === CLI ===


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        argv: Command-line arguments to parse. If None, uses sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    ap = argparse.ArgumentParser(
        description="Run MIMO pipeline verification sessions",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # Global
    ap.add_argument("--outdir", default=DEFAULT_OUT_DIR, help="output directory")
    ap.add_argument(
        "--verbosity",
        choices=["critical", "error", "warning", "info", "debug", "notset"],
        default="info",
        help="logging level",
    )
    ap.add_argument("--log-file", type=Path, default=None, help="also log to this file")
    ap.add_argument("--scenario", type=Path, default=None, help="scenario YAML")
    ap.add_argument(
        "--expect",
        choices=["PASS", "FAIL"],
        default="PASS",
        help="expected result for this run",
    )

    # Configuration (None keeps the scenario file / model default)
    cfg = ap.add_argument_group("configuration")
    cfg.add_argument("--tx", type=int, choices=[1, 2, 4, 8], help="transmit antennas")
    cfg.add_argument("--rx", type=int, choices=[1, 2, 4, 8], help="receive antennas")
    cfg.add_argument("--streams", type=int, help="data streams")
    cfg.add_argument("--symbol-width", type=int, help="output I/Q word width")
    cfg.add_argument("--data-width", type=int, help="payload bits per stream")
    cfg.add_argument("--modulation", choices=MODULATIONS)
    cfg.add_argument("--detection", choices=DETECTIONS)
    cfg.add_argument("--pilot", choices=PILOT_PATTERNS)
    cfg.add_argument("--noise", choices=NOISE_CLASSES)
    cfg.add_argument(
        "--error-injection", choices=["0", "1"], help="enable error-injection scenarios"
    )

    # Session
    ses = ap.add_argument_group("session")
    ses.add_argument("--transactions", type=int, help="transactions per session")
    ses.add_argument("--mode", choices=["random", "directed", "mixed"])
    ses.add_argument(
        "--directed", nargs="+", metavar="SCENARIO", help="name or name@index entries"
    )
    ses.add_argument("--corner-weight", type=float, help="corner_case_weight")
    ses.add_argument("--whitelist", type=int, action="append", help="expected drop seq")
    ses.add_argument(
        "--seeds",
        nargs="+",
        metavar="SEED",
        help="Explicit seed list (decimal or 0x...). Overrides --nseeds.",
    )
    ses.add_argument(
        "--nseeds", type=int, default=0, help="Generate N seeds if --seeds not given."
    )
    ses.add_argument(
        "--seed-base",
        type=int,
        default=1999,
        help="Base seed for generating additional seeds.",
    )

    # Software DUT
    dut = ap.add_argument_group("software DUT")
    dut.add_argument("--latency", type=float, default=3.0, help="output latency")
    dut.add_argument("--reorder-depth", type=int, default=0, help="reorder pool depth")
    dut.add_argument(
        "--drop-seq", type=int, action="append", default=[], help="lose this seq"
    )
    dut.add_argument(
        "--corrupt-seq", type=int, action="append", default=[], help="corrupt this seq"
    )
    return ap.parse_args(argv)


def _strip_seed_args(argv: list[str]) -> list[str]:
    """Remove --nseeds / --seeds (both '--opt val' and '--opt=val' forms)."""
    out: list[str] = []
    i = 0
    while i < len(argv):
        tok = argv[i]
        if tok == "--nseeds":
            i += 2
            continue
        if tok == "--seeds":
            i += 1
            while i < len(argv) and not argv[i].startswith("-"):
                i += 1
            continue
        if tok.startswith(("--nseeds=", "--seeds=")):
            i += 1
            continue
        out.append(tok)
        i += 1
    return out


def _pretty(argv: list[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


# === Seeds ===


def derive_seeds(args: argparse.Namespace, default: int) -> list[int]:
    """Seeds from --seeds, --nseeds or the scenario default."""
    rng = random.Random(args.seed_base & 0xFFFF_FFFF)
    if args.seeds:
        return [utils.normalize_seed(rng, s) for s in args.seeds]
    if args.nseeds > 0:
        return [utils.normalize_seed(rng, "random") for _ in range(args.nseeds)]
    return [default]


# === Config ===


def build_config(args: argparse.Namespace) -> tuple[Configuration, SessionOptions]:
    """Merge the scenario file, command-line flags and env/plusarg overrides."""
    cfg_map: dict[str, Any] = {}
    opt_map: dict[str, Any] = {}
    if args.scenario is not None:
        cfg0, opt0 = load_scenario(args.scenario)
        cfg_map = cfg0.model_dump()
        opt_map = opt0.model_dump()

    for flag, fld in _CONFIG_FLAGS.items():
        value = getattr(args, flag)
        if value is not None:
            cfg_map[fld] = value == "1" if flag == "error_injection" else value

    cli_opts = {
        "transaction_count": args.transactions,
        "mode": args.mode,
        "directed": args.directed,
        "corner_case_weight": args.corner_weight,
        "drop_whitelist": args.whitelist,
    }
    opt_map.update({k: v for k, v in cli_opts.items() if v is not None})

    base = SessionOptions.from_mapping(opt_map)
    opt_map["transaction_count"] = utils_cli.get_int_setting(
        "TRANSACTION_COUNT", base.transaction_count
    )
    opt_map["mode"] = utils_cli.get_str_setting("MODE", base.mode)
    opt_map["corner_case_weight"] = utils_cli.get_float_setting(
        "CORNER_CASE_WEIGHT", base.corner_case_weight
    )
    opt_map["agreement_threshold"] = utils_cli.get_float_setting(
        "AGREEMENT_THRESHOLD", base.agreement_threshold
    )
    opt_map["coverage_target"] = utils_cli.get_float_setting(
        "COVERAGE_TARGET", base.coverage_target
    )
    return Configuration.from_mapping(cfg_map), SessionOptions.from_mapping(opt_map)


# === Actions ===


def run_one(
    cfg: Configuration,
    opts: SessionOptions,
    args: argparse.Namespace,
    test_dir: Path,
) -> SessionReport:
    """Run one session and write its artifacts into test_dir."""
    utils.ensure_dir(test_dir, True)
    dut = SoftwarePipeline(
        latency=args.latency,
        reorder_depth=args.reorder_depth,
        seed=opts.seed,
        drop_seqs=args.drop_seq,
        corrupt_seqs=args.corrupt_seq,
        stages=opts.stages,
    )
    session = VerificationSession(cfg, opts, dut=dut, tag=test_dir.name)
    report = session.run()
    report.save(test_dir)
    session.coverage.export_yaml(test_dir / "coverage.yml")
    return report


def _run_seed(
    seed: int,
    cfg: Configuration,
    opts: SessionOptions,
    args: argparse.Namespace,
    orig_argv: list[str],
) -> int:
    opts = opts.model_copy(update={"seed": seed})
    tag = f"{cfg.mimo_mode}.{cfg.modulation_scheme}.{cfg.detection_algorithm}.{seed}"
    test_dir = (Path(args.outdir) / DEFAULT_TESTS_SUBDIR / tag).resolve()
    print(f"\n[mimo-dv] running {tag} -> {test_dir}\n")

    t0 = time.time()
    report = run_one(cfg, opts, args, test_dir)
    t1 = time.time()

    status = "PASS" if report.passed else "FAIL"
    expect = args.expect
    replay_argv = _strip_seed_args(orig_argv) + ["--seeds", str(seed)]
    replay_cmd_str = _pretty(["mimo-dv", *replay_argv])

    manifest = {
        "status": status,
        "session_status": report.status.value,
        "expect": expect,
        "duration_s": round(t1 - t0, 3),
        "updated_at": utils.iso_utc(),
        "replay_cmd": replay_cmd_str,
        "test_dir": str(test_dir),
        "config": cfg.model_dump(),
        "options": opts.model_dump(mode="json"),
    }
    (test_dir / "manifest.json").write_text(
        json.dumps(manifest, indent=2), encoding="utf-8"
    )

    print(f"\n[mimo-dv] result: test_dir: {test_dir}")
    print(f"[mimo-dv] result: duration: {t1 - t0:.2f}s")
    print(
        f"[mimo-dv] result: agreement: {report.agreement_rate:.4f} "
        f"coverage: {report.overall_coverage:.1f}%"
    )
    print(f"[mimo-dv] result: expect: {expect}")
    print(f"[mimo-dv] result: status: {status} ({report.status.value})\n")

    if status == expect:
        print(f"{utils.green(f'{status} (EXPECTED)')}: {replay_cmd_str}")
        return 0
    print(f"{utils.red(f'{status} (UNEXPECTED)')}: {replay_cmd_str}")
    return 1


# === Main ===


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:].

    Returns:
        0 if every seed's result matches --expect, 1 otherwise, 2 on a
        configuration error.
    """
    orig_argv = list(sys.argv[1:] if argv is None else argv)
    args = parse_args(argv)
    utils.configure_logger(args.verbosity, args.log_file)

    try:
        cfg, opts = build_config(args)
    except (MimoDvError, OSError) as exc:
        print(f"[mimo-dv] {utils.red('ERROR')}: {exc}", file=sys.stderr)
        return 2

    seeds = derive_seeds(args, opts.seed)
    print(f"[mimo-dv] using seeds: {seeds}")
    rc = 0
    for seed in seeds:
        try:
            rc |= _run_seed(seed, cfg, opts, args, orig_argv)
        except MimoDvError as exc:
            print(f"[mimo-dv] {utils.red('ERROR')}: {exc}", file=sys.stderr)
            return 2
    return rc


if __name__ == "__main__":
    raise SystemExit(main())
