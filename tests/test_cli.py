# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: tests/test_cli.py

"""Tests for the mimo-dv and mimo-dv-regress command-line tools."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mimo_dv.tools import dv, dv_regress


def _dv(tmp_path: Path, *args: str) -> int:
    return dv.main(["--outdir", str(tmp_path), "--verbosity", "warning", *args])


class TestDv:
    """Single-session runner."""

    def test_nominal_run_writes_artifacts(self, tmp_path: Path) -> None:
        assert _dv(tmp_path, "--transactions", "20", "--seeds", "42") == 0
        test_dir = tmp_path / "tests" / "4x4.QPSK.ZF.42"
        report = json.loads((test_dir / "report.json").read_text(encoding="utf-8"))
        manifest = json.loads((test_dir / "manifest.json").read_text(encoding="utf-8"))
        assert report["status"] == "PASSED"
        assert report["total_transactions"] == 20
        assert manifest["status"] == "PASS"
        assert manifest["replay_cmd"].endswith("--seeds 42")
        assert (test_dir / "coverage.yml").is_file()

    def test_lost_output_expected_to_fail(self, tmp_path: Path) -> None:
        assert _dv(tmp_path, "--seeds", "42", "--drop-seq", "57", "--expect", "FAIL") == 0
        assert _dv(tmp_path, "--seeds", "42", "--drop-seq", "57") == 1

    def test_invalid_configuration(self, tmp_path: Path) -> None:
        assert _dv(tmp_path, "--tx", "1", "--streams", "2") == 2

    def test_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MIMO_TRANSACTION_COUNT", "7")
        assert _dv(tmp_path, "--transactions", "20", "--seeds", "1") == 0
        report = json.loads(
            (tmp_path / "tests" / "4x4.QPSK.ZF.1" / "report.json").read_text(encoding="utf-8")
        )
        assert report["total_transactions"] == 7

    def test_scenario_file_and_seeds(self, tmp_path: Path) -> None:
        scenario = tmp_path / "scenario.yaml"
        scenario.write_text(
            "config:\n"
            "  tx_antennas: 2\n"
            "  rx_antennas: 2\n"
            "  num_data_streams: 1\n"
            "  modulation_scheme: BPSK\n"
            "options:\n"
            "  transaction_count: 10\n",
            encoding="utf-8",
        )
        rc = _dv(tmp_path, "--scenario", str(scenario), "--nseeds", "2", "--detection", "MMSE")
        assert rc == 0
        dirs = sorted(p.name for p in (tmp_path / "tests").iterdir())
        assert len(dirs) == 2
        assert all(d.startswith("2x2.BPSK.MMSE.") for d in dirs)


class TestDvRegress:
    """YAML regression runner."""

    def test_regression(self, tmp_path: Path) -> None:
        regress_yaml = tmp_path / "regress.yaml"
        regress_yaml.write_text(
            "defaults:\n"
            "  options: {transaction_count: 20, seed: 5}\n"
            "jobs:\n"
            "  - name: qpsk_4x4\n"
            "    config: {tx_antennas: 4, rx_antennas: 4, num_data_streams: 2}\n"
            "  - name: mmse_2x2\n"
            "    config: {tx_antennas: 2, rx_antennas: 2, detection_algorithm: MMSE}\n"
            "    options: {seed: 9}\n"
            "  - name: lost_output\n"
            "    dut: {drop_seqs: [5]}\n"
            "    expect: FAIL\n",
            encoding="utf-8",
        )
        outdir = tmp_path / "out"
        rc = dv_regress.main(["--file", str(regress_yaml), "--outdir", str(outdir)])
        assert rc == 0
        assert (outdir / "coverage.yml").is_file()
        report = json.loads((outdir / "jobs" / "mmse_2x2" / "report.json").read_text(encoding="utf-8"))
        assert report["seed"] == 9
        assert report["tag"] == "mmse_2x2"

    def test_unexpected_result_fails(self, tmp_path: Path) -> None:
        regress_yaml = tmp_path / "regress.yaml"
        regress_yaml.write_text(
            "jobs:\n"
            "  - name: should_pass\n"
            "    options: {transaction_count: 20}\n"
            "    dut: {drop_seqs: [3]}\n",
            encoding="utf-8",
        )
        assert dv_regress.main(["--file", str(regress_yaml), "--outdir", str(tmp_path)]) == 1

    def test_load_jobs_merges_defaults(self, tmp_path: Path) -> None:
        regress_yaml = tmp_path / "regress.yaml"
        regress_yaml.write_text(
            "defaults:\n"
            "  config: {modulation_scheme: 16QAM}\n"
            "  options: {transaction_count: 5}\n"
            "jobs:\n"
            "  - config: {detection_algorithm: MMSE}\n",
            encoding="utf-8",
        )
        (job,) = dv_regress.load_jobs(regress_yaml)
        assert job.name == "job0"
        assert job.config.modulation_scheme == "16QAM"
        assert job.config.detection_algorithm == "MMSE"
        assert job.options.transaction_count == 5
        assert job.expect == "PASS"

    @pytest.mark.parametrize(
        "body",
        [
            "jobs: []\n",
            "- not a mapping\n",
            "jobs:\n  - dut: {wires: 3}\n",
            "jobs:\n  - expect: MAYBE\n",
            "jobs:\n  - config: {tx_antennas: 3}\n",
        ],
    )
    def test_bad_files(self, tmp_path: Path, body: str) -> None:
        regress_yaml = tmp_path / "regress.yaml"
        regress_yaml.write_text(body, encoding="utf-8")
        assert dv_regress.main(["--file", str(regress_yaml), "--outdir", str(tmp_path)]) == 1

    def test_missing_file(self, tmp_path: Path) -> None:
        assert dv_regress.main(["--file", str(tmp_path / "nope.yaml")]) == 1
