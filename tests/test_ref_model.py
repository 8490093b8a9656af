# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: tests/test_ref_model.py

"""Tests for the MIMO reference model."""

from __future__ import annotations

import math

import numpy as np
import pytest
from helpers import directed

from mimo_dv.mimo import mimo_ref_model as ref
from mimo_dv.mimo.mimo_config import MODULATIONS, Configuration
from mimo_dv.shared.base_item import OUTPUT_STAGES, Transaction
from mimo_dv.shared.errors import ModelInputShapeMismatch


class TestConstellation:
    """Gray-mapped unit-energy constellations."""

    @pytest.mark.parametrize("scheme", MODULATIONS)
    def test_unit_energy_and_distinct(self, scheme: str) -> None:
        points = ref.constellation(scheme)
        assert points.size == 2 ** {"BPSK": 1, "QPSK": 2, "16QAM": 4, "64QAM": 6}[scheme]
        assert math.isclose(float(np.mean(np.abs(points) ** 2)), 1.0)
        assert len({complex(p) for p in np.round(points, 12)}) == points.size

    def test_qpsk_label_zero(self) -> None:
        assert np.isclose(ref.constellation("QPSK")[0], (1 + 1j) / math.sqrt(2))

    def test_read_only(self) -> None:
        with pytest.raises(ValueError):
            ref.constellation("BPSK")[0] = 0

    def test_hard_decision_recovers_bits(self) -> None:
        rng = np.random.default_rng(3)
        bits = rng.integers(0, 2, size=(2, 24), dtype=np.uint8)
        symbols = ref.modulate(bits, "16QAM")
        assert symbols.shape == (2, 6)
        np.testing.assert_array_equal(ref.demodulate(symbols, "16QAM"), bits)

    def test_modulate_rejects_partial_symbol(self) -> None:
        with pytest.raises(ModelInputShapeMismatch):
            ref.modulate(np.zeros((1, 5), dtype=np.uint8), "QPSK")


class TestChannel:
    """Channel conditioning, pilots and estimation."""

    def test_condition_number(self) -> None:
        assert ref.condition_number(np.eye(4)) == 1.0
        assert ref.condition_number(np.zeros((2, 2))) == math.inf
        assert ref.classify_channel(1.0) == "well_conditioned"
        assert ref.classify_channel(1e3) == "ill_conditioned"
        assert ref.classify_channel(1e9) == "singular"
        assert ref.classify_channel(math.inf) == "singular"

    def test_pilot_patterns(self) -> None:
        block = ref.pilot_matrix("block", 4)
        np.testing.assert_allclose(block @ block.conj().T, 4 * np.eye(4), atol=1e-12)
        np.testing.assert_array_equal(ref.pilot_matrix("comb", 2), np.eye(2))
        assert ref.pilot_length("scattered", 4) == 8
        with pytest.raises(ValueError):
            ref.pilot_matrix("diagonal", 4)

    @pytest.mark.parametrize("pattern", ["block", "comb", "scattered"])
    def test_noiseless_estimate_is_exact(self, pattern: str) -> None:
        rng = np.random.default_rng(7)
        h = rng.standard_normal((4, 2)) + 1j * rng.standard_normal((4, 2))
        pilots = ref.pilot_matrix(pattern, 2)
        h_est, cond = ref.estimate_channel(h, pilots, np.zeros((4, pilots.shape[1])))
        np.testing.assert_allclose(h_est, h, atol=1e-12)
        assert math.isclose(cond, ref.condition_number(h), rel_tol=1e-9)


class TestDetection:
    """Encoder and linear detectors."""

    def test_encode_maps_streams_to_antennas(self, cfg4x4: Configuration) -> None:
        symbols = ref.modulate(np.ones((2, 24), dtype=np.uint8), "QPSK")
        x = ref.encode(symbols, cfg4x4)
        assert x.shape == (4, 12)
        np.testing.assert_array_equal(x[:2], symbols)
        assert not np.any(x[2:])

    def test_encode_rejects_too_many_streams(self, cfg4x4: Configuration) -> None:
        with pytest.raises(ModelInputShapeMismatch):
            ref.encode(np.zeros((3, 12), dtype=np.complex128), cfg4x4)

    @pytest.mark.parametrize("algorithm", ["ZF", "MMSE"])
    def test_noiseless_detection_recovers_symbols(self, algorithm: str) -> None:
        rng = np.random.default_rng(11)
        g = rng.standard_normal((4, 2)) + 1j * rng.standard_normal((4, 2))
        s = ref.modulate(rng.integers(0, 2, size=(2, 24)), "QPSK")
        s_hat = ref.detect(g @ s, g, algorithm, 0.0)
        np.testing.assert_allclose(s_hat, s, atol=1e-9)


class TestMimoRefModel:
    """calc_exp on generated transactions."""

    def test_prediction_covers_every_stage(self, cfg4x4: Configuration) -> None:
        (tr,) = directed(cfg4x4, "nominal")
        pred = ref.MimoRefModel().calc_exp(tr)
        assert set(pred.fields) == set(OUTPUT_STAGES)
        assert pred.annotations == ()
        # Noiseless: the detected bits are the transmitted bits.
        bits = pred.fields[OUTPUT_STAGES[1]]["bits"]
        np.testing.assert_array_equal(bits, tr.data["bits"])

    def test_pure(self, cfg4x4: Configuration) -> None:
        (tr,) = directed(cfg4x4, "ill_conditioned_channel")
        model = ref.MimoRefModel()
        a, b = model.calc_exp(tr), model.calc_exp(tr)
        for stage in OUTPUT_STAGES:
            for key, arr in a.fields[stage].items():
                np.testing.assert_array_equal(arr, b.fields[stage][key])

    def test_singular_channel_is_annotated(self, cfg4x4: Configuration) -> None:
        (tr,) = directed(cfg4x4, "singular_channel")
        pred = ref.MimoRefModel().calc_exp(tr)
        assert pred.annotation_names() == ("SingularChannelMatrix",)
        assert all(np.all(np.isfinite(a)) for f in pred.fields.values() for a in f.values())

    def test_shape_mismatch(self, cfg4x4: Configuration) -> None:
        (tr,) = directed(cfg4x4, "nominal")
        bad = Transaction(
            tr.seq,
            tr.stage,
            tr.timestamp,
            {**tr.data, "channel": np.eye(2)},
            config=cfg4x4,
            attrs=tr.attrs,
        )
        with pytest.raises(ModelInputShapeMismatch):
            ref.MimoRefModel().calc_exp(bad)

    def test_missing_configuration(self, cfg4x4: Configuration) -> None:
        (tr,) = directed(cfg4x4, "nominal")
        bare = Transaction(tr.seq, tr.stage, tr.timestamp, tr.data)
        with pytest.raises(ModelInputShapeMismatch):
            ref.MimoRefModel().calc_exp(bare)
