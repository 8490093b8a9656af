# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: tests/test_coverage.py

"""Tests for the functional coverage models."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pytest
from cocotb_coverage.coverage import coverage_db
from helpers import directed, generate

from mimo_dv.mimo.mimo_config import Configuration
from mimo_dv.mimo.mimo_coverage import MimoCoverage
from mimo_dv.shared import utils_dv
from mimo_dv.shared.base_coverage import BaseCoverage, Dimension
from mimo_dv.shared.base_item import Stage, Transaction


class ModCoverage(BaseCoverage):
    """One dimension read from attrs['mod']."""

    def dimensions(self) -> list[Dimension]:
        return [Dimension("mod", lambda tr: tr.attrs["mod"], ("QPSK", "16QAM"))]


def _mod_item(seq: int, mod: str) -> Transaction:
    return Transaction(seq, Stage.ENCODER_INPUT, 0.0, {"symbols": np.zeros(1)}, attrs={"mod": mod})


class TestBaseCoverage:
    """Generic sampling behavior."""

    def test_category_coverage(self) -> None:
        cov = ModCoverage("mod_cov")
        assert cov.write(_mod_item(0, "QPSK"))
        assert cov.category_coverage() == {"mod": 50.0}
        assert cov.bin_hits("mod") == {"QPSK": 1, "16QAM": 0}

    def test_undefined_bin_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        cov = ModCoverage("mod_cov")
        with caplog.at_level(logging.WARNING):
            assert cov.write(_mod_item(0, "8PSK"))
        assert cov.undefined_cnt == 1
        assert cov.sampled_cnt == 1
        assert "CoverageBinUndefined" in caplog.text
        assert cov.overall_coverage() == 0.0

    def test_disabled(self) -> None:
        cov = ModCoverage("mod_cov", coverage_en=False)
        assert not cov.write(_mod_item(0, "QPSK"))
        assert cov.sampled_cnt == 0

    def test_bad_cross(self) -> None:
        class BadCross(ModCoverage):
            def crosses(self) -> dict[str, tuple[str, ...]]:
                return {"mod_x_nothing": ("mod", "nothing")}

        with pytest.raises(ValueError):
            BadCross("bad_cov")

    def test_cross_stores_only_realized_bins(self) -> None:
        class WideCross(BaseCoverage):
            def dimensions(self) -> list[Dimension]:
                return [
                    Dimension(n, lambda tr, n=n: tr.attrs[n], tuple(range(60)))
                    for n in ("a", "b", "c")
                ]

            def crosses(self) -> dict[str, tuple[str, ...]]:
                return {"a_x_b_x_c": ("a", "b", "c")}

        cov = WideCross("wide_cov")
        for seq in range(3):
            tr = Transaction(
                seq,
                Stage.ENCODER_INPUT,
                0.0,
                {"symbols": np.zeros(1)},
                attrs={"a": seq, "b": 2 * seq, "c": 1},
            )
            cov.write(tr)
        assert cov.bin_count("a_x_b_x_c") == 60**3
        assert cov.bin_hits("a_x_b_x_c") == {(0, 0, 1): 1, (1, 2, 1): 1, (2, 4, 1): 1}
        assert len(coverage_db[f"{cov.prefix}.a_x_b_x_c"].detailed_coverage) == 3
        assert cov.category_coverage()["a_x_b_x_c"] == 100.0 * 3 / 60**3
        assert coverage_db[f"{cov.prefix}.a_x_b_x_c"].size == 60**3

    def test_models_do_not_share_counters(self) -> None:
        a, b = ModCoverage("mod_cov"), ModCoverage("mod_cov")
        a.write(_mod_item(0, "QPSK"))
        assert a.prefix != b.prefix
        assert b.bin_hits("mod")["QPSK"] == 0


class TestMimoCoverage:
    """Coverage of generated MIMO transactions."""

    def test_dimension_hits(self, cfg4x4: Configuration) -> None:
        cov = MimoCoverage(cfg4x4)
        trs = generate(cfg4x4, transaction_count=20, seed=4)
        for tr in trs:
            cov.write(tr)
        assert cov.sampled_cnt == 20
        assert cov.bin_hits("tx_antennas")[4] == 20
        assert cov.bin_hits("rx_antennas")[4] == 20
        assert cov.category_coverage()["tx_antennas"] == 25.0
        assert cov.category_coverage()["mimo_mode"] == 100.0 / 16
        assert cov.hits()[("modulation_x_detection", "QPSK", "ZF")] == 20
        assert cov.max_bin_hits() <= cov.sampled_cnt

    def test_replay_is_idempotent(self, cfg4x4: Configuration) -> None:
        cov = MimoCoverage(cfg4x4)
        (tr,) = generate(cfg4x4, transaction_count=1)
        assert cov.write(tr)
        before = cov.hits()
        assert not cov.write(tr)
        assert cov.hits() == before
        assert cov.replay_cnt == 1

    def test_identity_includes_tag(self, cfg4x4: Configuration) -> None:
        cov = MimoCoverage(cfg4x4)
        (a,) = generate(cfg4x4, tag="a", transaction_count=1)
        (b,) = generate(cfg4x4, tag="b", transaction_count=1)
        assert cov.write(a) and cov.write(b)
        assert cov.sampled_cnt == 2

    def test_monotonic(self, cfg4x4: Configuration) -> None:
        cov = MimoCoverage(cfg4x4)
        previous: dict = {}
        for tr in generate(cfg4x4, transaction_count=15, seed=6, corner_case_weight=0.5):
            cov.write(tr)
            now = cov.hits()
            assert all(now.get(k, 0) >= n for k, n in previous.items())
            previous = now

    def test_corner_cases(self, cfg4x4: Configuration) -> None:
        cov = MimoCoverage(cfg4x4)
        for tr in directed(cfg4x4, "singular_channel", count=3):
            cov.write(tr)
        assert cov.corner_hits()["corner.singular_channel"] == 3
        assert "corner.singular_channel" not in cov.uncovered_required()
        assert "corner.ill_conditioned_channel" in cov.uncovered_required()
        assert cov.bin_hits("channel_condition")["singular"] == 3

    def test_unreachable_corners_not_required(self) -> None:
        cfg = Configuration(tx_antennas=1, rx_antennas=2, num_data_streams=1)
        cov = MimoCoverage(cfg)
        assert not cov.is_required("corner.ill_conditioned_channel")
        assert not cov.is_required("corner.error_injection")
        assert not cov.is_required("corner.max_antennas")
        cov.register(Configuration(tx_antennas=8, rx_antennas=8, error_injection_enabled=True))
        assert cov.is_required("corner.ill_conditioned_channel")
        assert cov.is_required("corner.error_injection")

    def test_custom_crosses(self, cfg4x4: Configuration) -> None:
        cov = MimoCoverage(cfg4x4, crosses={"pilot_x_noise": ("pilot_pattern", "noise_class")})
        for tr in generate(cfg4x4, transaction_count=5, corner_case_weight=0.0):
            cov.write(tr)
        assert cov.bin_hits("pilot_x_noise")[("block", "noiseless")] == 5
        assert "mimo_mode_x_modulation" not in cov.category_coverage()

    def test_hit_events(self, cfg4x4: Configuration) -> None:
        cov = MimoCoverage(cfg4x4)
        events = []
        utils_dv.subscribe(cov.events, events.append)
        (tr,) = generate(cfg4x4, transaction_count=1)
        cov.write(tr)
        hits = {(e.payload["category"], e.payload["bin"]) for e in events}
        assert all(e.kind == "coverage_bin_hit" for e in events)
        assert ("tx_antennas", 4) in hits
        assert ("modulation_x_detection", ("QPSK", "ZF")) in hits

    def test_export_yaml(self, cfg4x4: Configuration, tmp_path: Path) -> None:
        cov = MimoCoverage(cfg4x4)
        (tr,) = generate(cfg4x4, transaction_count=1)
        cov.write(tr)
        path = tmp_path / "coverage.yml"
        cov.export_yaml(path)
        assert cov.prefix in path.read_text(encoding="utf-8")
