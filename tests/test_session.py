# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: tests/test_session.py

"""End-to-end verification sessions against the software pipeline."""

from __future__ import annotations

from pathlib import Path

import pytest

from mimo_dv.mimo.mimo_config import Configuration, SessionOptions
from mimo_dv.mimo.mimo_coverage import MimoCoverage
from mimo_dv.mimo.mimo_dut import SoftwarePipeline
from mimo_dv.mimo.mimo_session import VerificationSession, run_session
from mimo_dv.shared.base_session import SessionReport, SessionStatus
from mimo_dv.shared.errors import ConfigurationInvalid


class TestNominal:
    """Clean sessions pass."""

    def test_seed_42(self, cfg4x4: Configuration) -> None:
        session = VerificationSession(cfg4x4, SessionOptions(transaction_count=100, seed=42))
        report = session.run()
        assert report.status is SessionStatus.PASSED
        assert report.total_transactions == 100
        assert report.pass_count == 300
        assert report.agreement_rate >= 0.999
        assert report.coverage["tx_antennas"] == 25.0
        assert session.coverage.bin_hits("tx_antennas")[4] == 100
        assert session.coverage.bin_hits("rx_antennas")[4] == 100
        assert report.seed == 42

    def test_mapping_inputs(self) -> None:
        report = run_session(
            {"tx_antennas": 2, "rx_antennas": 2, "num_data_streams": 2,
             "modulation_scheme": "16QAM", "detection_algorithm": "MMSE"},
            {"transaction_count": 30, "seed": 3},
        )
        assert report.passed

    def test_reordering_dut(self, cfg4x4: Configuration) -> None:
        opts = SessionOptions(transaction_count=60, seed=7, reorder_window=16, max_in_flight=32)
        dut = SoftwarePipeline(seed=7, reorder_depth=2)
        report = VerificationSession(cfg4x4, opts, dut=dut).run()
        assert report.status is SessionStatus.PASSED
        assert report.dropped_count == 0

    def test_stage_subset(self, cfg4x4: Configuration) -> None:
        opts = SessionOptions(transaction_count=10, stages=("decoder_output",))
        report = VerificationSession(cfg4x4, opts).run()
        assert report.passed
        assert report.pass_count == 10

    def test_deterministic(self, cfg4x4: Configuration) -> None:
        opts = SessionOptions(transaction_count=40, seed=11, corner_case_weight=0.5)
        a = VerificationSession(cfg4x4, opts).run()
        b = VerificationSession(cfg4x4, opts).run()
        assert a.model_dump() == b.model_dump()

    def test_report_save(self, cfg4x4: Configuration, tmp_path: Path) -> None:
        report = VerificationSession(cfg4x4, SessionOptions(transaction_count=5)).run()
        path = report.save(tmp_path)
        loaded = SessionReport.model_validate_json(path.read_text(encoding="utf-8"))
        assert loaded.status is SessionStatus.PASSED
        assert loaded.total_transactions == 5


class TestCornerCases:
    """Directed corner scenarios."""

    def test_singular_channel(self, cfg4x4: Configuration) -> None:
        opts = SessionOptions(transaction_count=10, mode="directed", directed=("singular_channel",))
        report = VerificationSession(cfg4x4, opts).run()
        assert report.status is SessionStatus.PASSED
        assert report.annotated_count == 30
        assert report.corner_case_hits["corner.singular_channel"] == 10
        assert "corner.singular_channel" not in report.uncovered_required_bins

    def test_error_injection_drops_are_expected(self) -> None:
        cfg = Configuration(error_injection_enabled=True)
        opts = SessionOptions(transaction_count=40, seed=3, mode="mixed", directed=("error_drop@10",))
        session = VerificationSession(cfg, opts)
        report = session.run()
        injected = sum(bool(tr.attrs["inject_drop"]) for tr in session.sequence)
        assert injected >= 1
        assert report.status is SessionStatus.PASSED
        assert report.dropped_expected_count == 3 * injected
        assert report.dropped_count == 0

    def test_unavailable_directed_scenario(self, cfg4x4: Configuration) -> None:
        opts = SessionOptions(mode="directed", directed=("error_drop",))
        with pytest.raises(ConfigurationInvalid):
            VerificationSession(cfg4x4, opts)

    def test_unknown_tolerance_field(self, cfg4x4: Configuration) -> None:
        opts = SessionOptions(tolerance_profile={"decoded.colour": (1.0, 0.0)})
        with pytest.raises(ConfigurationInvalid):
            VerificationSession(cfg4x4, opts)


class TestFaults:
    """Lost and corrupted outputs."""

    def test_lost_output_fails(self, cfg4x4: Configuration) -> None:
        opts = SessionOptions(transaction_count=100, seed=42)
        dut = SoftwarePipeline(seed=42, drop_seqs={57})
        report = VerificationSession(cfg4x4, opts, dut=dut).run()
        assert report.status is SessionStatus.FAILED
        assert report.dropped_count == 3
        assert {v["seq"] for v in report.failing_verdicts} == {57}
        assert {v["status"] for v in report.failing_verdicts} == {"DROPPED"}
        assert report.agreement_rate == pytest.approx(297 / 300)

    def test_lost_output_times_out(self, cfg4x4: Configuration) -> None:
        # Window wider than the run: only the logical timeout can drop seq 57.
        opts = SessionOptions(
            transaction_count=100,
            seed=42,
            reorder_window=64,
            max_in_flight=128,
            pairing_timeout=5.0,
        )
        dut = SoftwarePipeline(seed=42, drop_seqs={57})
        report = VerificationSession(cfg4x4, opts, dut=dut).run()
        assert report.status is SessionStatus.FAILED
        assert report.dropped_count == 3
        assert {v["seq"] for v in report.failing_verdicts} == {57}
        assert all(v["reason"].startswith("PairingTimeout") for v in report.failing_verdicts)
        assert report.pass_count == 297

    def test_whitelisted_lost_output_passes(self, cfg4x4: Configuration) -> None:
        opts = SessionOptions(transaction_count=100, seed=42, drop_whitelist=(57,))
        dut = SoftwarePipeline(seed=42, drop_seqs={57})
        report = VerificationSession(cfg4x4, opts, dut=dut).run()
        assert report.status is SessionStatus.PASSED
        assert report.dropped_expected_count == 3
        assert report.dropped_count == 0

    def test_corrupted_output_fails(self, cfg4x4: Configuration) -> None:
        opts = SessionOptions(transaction_count=20, seed=1)
        dut = SoftwarePipeline(seed=1, corrupt_seqs={5})
        report = VerificationSession(cfg4x4, opts, dut=dut).run()
        assert report.status is SessionStatus.FAILED
        assert report.fail_count == 3
        assert {v["seq"] for v in report.failing_verdicts} == {5}


class TestControl:
    """Cancellation, backpressure and events."""

    def test_cancel_from_subscriber(self, cfg4x4: Configuration) -> None:
        session = VerificationSession(cfg4x4, SessionOptions(transaction_count=100, seed=5))
        verdicts = []

        def on_event(event) -> None:
            if event.kind == "verdict_recorded":
                verdicts.append(event)
                if len(verdicts) == 30:
                    session.cancel()

        session.subscribe(on_event)
        report = session.run()
        assert report.status is SessionStatus.CANCELLED
        assert report.total_transactions < 100
        assert report.fail_count == 0
        assert report.dropped_count == 0
        # Every issued transaction already had its outputs: nothing discarded.
        assert report.pass_count == 3 * report.total_transactions
        assert report.discarded_in_flight == 0

    def test_stalled_dut_aborts(self, cfg4x4: Configuration) -> None:
        opts = SessionOptions(transaction_count=50, stall_timeout_s=0.05)
        dut = SoftwarePipeline(drop_seqs=range(50))
        report = VerificationSession(cfg4x4, opts, dut=dut).run()
        assert report.status is SessionStatus.ABORTED
        assert report.error
        assert report.total_transactions == opts.max_in_flight
        assert report.discarded_in_flight == 3 * opts.max_in_flight
        assert report.pass_count == 0

    def test_run_once(self, cfg4x4: Configuration) -> None:
        session = VerificationSession(cfg4x4, SessionOptions(transaction_count=3))
        session.run()
        with pytest.raises(RuntimeError):
            session.run()

    def test_event_stream(self, cfg4x4: Configuration) -> None:
        session = VerificationSession(cfg4x4, SessionOptions(transaction_count=4))
        kinds = []
        session.subscribe(lambda e: kinds.append(e.kind))
        session.run()
        assert kinds[0] == "session_started"
        assert kinds[-1] == "session_finished"
        assert kinds.count("transaction_generated") == 4
        assert kinds.count("verdict_recorded") == 12
        assert "coverage_bin_hit" in kinds

    def test_shared_coverage(self) -> None:
        cov = MimoCoverage(name="shared_cov")
        for tx in (2, 4):
            cfg = Configuration(tx_antennas=tx, rx_antennas=4, num_data_streams=2)
            opts = SessionOptions(transaction_count=10)
            VerificationSession(cfg, opts, coverage=cov, tag=f"{tx}x4").run()
        assert cov.sampled_cnt == 20
        assert cov.bin_hits("tx_antennas")[2] == 10
        assert cov.bin_hits("tx_antennas")[4] == 10
        assert len(cov.configs) == 2
