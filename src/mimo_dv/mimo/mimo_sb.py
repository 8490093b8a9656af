# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/mimo/mimo_sb.py

"""Scoreboard of the MIMO pipeline: field checks and tolerance profile."""

from __future__ import annotations

from typing import Iterable, Mapping

from ..shared.base_item import OUTPUT_STAGES, Stage
from ..shared.base_sb_comparator import FieldCheck, FieldTolerance, Scoreboard
from ..shared.base_sb_predictor import SbPredictor
from ..shared.errors import ConfigurationInvalid
from .mimo_config import Configuration
from .mimo_ref_model import MimoRefModel

# Phase is only compared where |expected| >= PHASE_FLOOR_LSB output LSBs.
PHASE_FLOOR_LSB = 64
DEFAULT_PHASE_TOL_RAD = 0.02


def field_checks(cfg: Configuration) -> dict[Stage, tuple[FieldCheck, ...]]:
    """Compared fields per output stage."""
    floor = PHASE_FLOOR_LSB * cfg.lsb
    return {
        Stage.ENCODER_OUTPUT: (
            FieldCheck("encoded.magnitude", "encoded", "magnitude"),
            FieldCheck("encoded.phase", "encoded", "phase", floor),
        ),
        Stage.DECODER_OUTPUT: (
            FieldCheck("decoded.magnitude", "decoded", "magnitude"),
            FieldCheck("decoded.phase", "decoded", "phase", floor),
            FieldCheck("bits.ber", "bits", "ber"),
        ),
        Stage.CHANNEL_ESTIMATE: (
            FieldCheck("channel_estimate.magnitude", "channel_estimate", "magnitude"),
            FieldCheck("channel_estimate.phase", "channel_estimate", "phase", floor),
        ),
    }


def field_names(cfg: Configuration) -> list[str]:
    """Every compared field name."""
    return [c.name for checks in field_checks(cfg).values() for c in checks]


def default_tolerance_profile(cfg: Configuration) -> dict[str, FieldTolerance]:
    """1 LSB on magnitudes, 0.02 rad on phases, bit-exact BER."""
    profile: dict[str, FieldTolerance] = {}
    for name in field_names(cfg):
        if name.endswith(".magnitude"):
            profile[name] = FieldTolerance(abs_tol=cfg.lsb)
        elif name.endswith(".phase"):
            profile[name] = FieldTolerance(abs_tol=DEFAULT_PHASE_TOL_RAD)
        else:
            profile[name] = FieldTolerance()
    return profile


def resolve_tolerances(
    cfg: Configuration, overrides: Mapping[str, tuple[float, float]] | None = None
) -> dict[str, FieldTolerance]:
    """Defaults for cfg with per-field (abs_tol, rel_tol) overrides applied."""
    profile = default_tolerance_profile(cfg)
    unknown = sorted(set(overrides or {}) - set(profile))
    if unknown:
        raise ConfigurationInvalid(
            f"tolerance_profile: unknown fields {unknown} (known: {sorted(profile)})"
        )
    for name, (abs_tol, rel_tol) in (overrides or {}).items():
        profile[name] = FieldTolerance(float(abs_tol), float(rel_tol))
    return profile


class MimoScoreboard(Scoreboard):
    """Scoreboard wired to the MIMO reference model.

    Checks (per stage):
        encoder_output     encoded.magnitude, encoded.phase
        decoder_output     decoded.magnitude, decoded.phase, bits.ber
        channel_estimate   channel_estimate.magnitude, channel_estimate.phase

    Magnitude tolerances are in output units (default one LSB of
    symbol_width), phase tolerances in radians, BER as a fraction of bits
    (0 = bit-exact).
    """

    def __init__(
        self,
        cfg: Configuration,
        tolerance_profile: Mapping[str, tuple[float, float]] | None = None,
        *,
        stages: Iterable[Stage] = OUTPUT_STAGES,
        agreement_threshold: float = 0.999,
        name: str = "scoreboard",
    ) -> None:
        stages = tuple(stages)
        checks = {s: c for s, c in field_checks(cfg).items() if s in stages}
        predictor = SbPredictor(MimoRefModel(f"{name}.ref_model"), stages, f"{name}.predictor")
        super().__init__(
            predictor,
            checks,
            resolve_tolerances(cfg, tolerance_profile),
            agreement_threshold=agreement_threshold,
            name=name,
        )
        self.cfg = cfg
