# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/mimo/mimo_coverage.py

"""Coverage model of the MIMO scenario space."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from ..shared.base_coverage import BaseCoverage, Dimension
from ..shared.base_item import Transaction
from .mimo_config import (
    ANTENNA_COUNTS,
    CHANNEL_CONDITIONS,
    DEFAULT_CROSSES,
    DETECTIONS,
    MODULATIONS,
    NOISE_CLASSES,
    PILOT_PATTERNS,
    Configuration,
)

CORNER_CASES: tuple[str, ...] = (
    "singular_channel",
    "ill_conditioned_channel",
    "max_streams",
    "max_antennas",
    "extreme_noise",
    "error_injection",
)


def _cfg(tr: Transaction) -> Configuration:
    return tr.config


def _flag(cond: bool) -> bool | None:
    # Corner points only have the bin True; None is a plain miss.
    return True if cond else None


def corner_reachable(name: str, cfg: Configuration) -> bool:
    """Whether the corner case can occur under cfg."""
    if name == "ill_conditioned_channel":
        return cfg.max_streams >= 2
    if name == "max_antennas":
        return max(cfg.tx_antennas, cfg.rx_antennas) == max(ANTENNA_COUNTS)
    if name == "error_injection":
        return cfg.error_injection_enabled
    return True


class MimoCoverage(BaseCoverage):
    """Functional coverage of antenna modes, modulation, detection, pilots,
    noise and channel condition, with crosses and corner cases.

    Dimensions:
        tx_antennas, rx_antennas     {1, 2, 4, 8}
        mimo_mode                    'TxR', all 16 combinations
        num_streams                  1..8
        modulation, detection, pilot_pattern, noise_class, channel_condition

    Crosses (default, replaceable per session):
        mimo_mode x modulation, modulation x detection,
        detection x channel_condition, modulation x noise_class

    Corner cases (tracked individually, excluded from the overall %):
        corner.singular_channel, corner.ill_conditioned_channel,
        corner.max_streams, corner.max_antennas, corner.extreme_noise,
        corner.error_injection

    A corner case is required when it is reachable under at least one
    registered Configuration; one model can be shared by every session of
    a regression (register() each Configuration).
    """

    def __init__(
        self,
        cfg: Configuration | None = None,
        crosses: Mapping[str, Sequence[str]] | None = None,
        name: str = "mimo_cov",
        coverage_en: bool = True,
    ) -> None:
        self.configs: list[Configuration] = []
        self._cross_decl = dict(DEFAULT_CROSSES if crosses is None else crosses)
        super().__init__(name, coverage_en)
        if cfg is not None:
            self.register(cfg)

    def register(self, cfg: Configuration) -> None:
        """Add a Configuration whose reachable corner cases become required."""
        if cfg not in self.configs:
            self.configs.append(cfg)

    def dimensions(self) -> list[Dimension]:
        modes = tuple(f"{t}x{r}" for t in ANTENNA_COUNTS for r in ANTENNA_COUNTS)
        dims = [
            Dimension("tx_antennas", lambda tr: _cfg(tr).tx_antennas, ANTENNA_COUNTS),
            Dimension("rx_antennas", lambda tr: _cfg(tr).rx_antennas, ANTENNA_COUNTS),
            Dimension("mimo_mode", lambda tr: _cfg(tr).mimo_mode, modes),
            Dimension("num_streams", lambda tr: tr.attrs.get("num_streams"), tuple(range(1, 9))),
            Dimension("modulation", lambda tr: _cfg(tr).modulation_scheme, MODULATIONS),
            Dimension("detection", lambda tr: _cfg(tr).detection_algorithm, DETECTIONS),
            Dimension("pilot_pattern", lambda tr: _cfg(tr).pilot_pattern, PILOT_PATTERNS),
            Dimension("noise_class", lambda tr: tr.attrs.get("noise_class"), NOISE_CLASSES),
            Dimension(
                "channel_condition",
                lambda tr: tr.attrs.get("channel_condition"),
                CHANNEL_CONDITIONS,
            ),
        ]
        dims += [
            Dimension(f"corner.{name}", self._corner_xf(name), (True,), corner=True)
            for name in CORNER_CASES
        ]
        return dims

    def crosses(self) -> dict[str, tuple[str, ...]]:
        return {k: tuple(v) for k, v in self._cross_decl.items()}

    @staticmethod
    def _corner_xf(name: str) -> Any:
        predicates = {
            "singular_channel": lambda tr: tr.attrs.get("channel_condition") == "singular",
            "ill_conditioned_channel": (
                lambda tr: tr.attrs.get("channel_condition") == "ill_conditioned"
            ),
            "max_streams": (
                lambda tr: tr.attrs.get("num_streams") == _cfg(tr).num_data_streams
            ),
            "max_antennas": (
                lambda tr: max(_cfg(tr).tx_antennas, _cfg(tr).rx_antennas)
                == max(ANTENNA_COUNTS)
            ),
            "extreme_noise": lambda tr: tr.attrs.get("noise_class") == "extreme",
            "error_injection": lambda tr: bool(tr.attrs.get("inject_drop")),
        }
        pred = predicates[name]
        return lambda tr: _flag(pred(tr))

    def is_required(self, name: str) -> bool:
        case = name.removeprefix("corner.")
        return any(corner_reachable(case, cfg) for cfg in self.configs)
