# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/mimo/mimo_sequence.py

"""Constrained-random / directed stimulus for the MIMO pipeline."""

from __future__ import annotations

import itertools
from typing import Any, Callable

import numpy as np

from ..shared.base_item import Stage, Transaction
from ..shared.base_sequence import BaseSequence
from . import mimo_ref_model as ref
from .mimo_config import (
    CORNER_SCENARIOS,
    NOMINAL_SCENARIOS,
    Configuration,
    SessionOptions,
    noise_std,
    parse_directed,
)

MAX_ATTEMPTS = 8

Payload = tuple[dict[str, np.ndarray], dict[str, Any]]


def available_scenarios(cfg: Configuration) -> tuple[list[str], list[str]]:
    """(nominal, corner) scenarios that can be produced under cfg."""
    corners = [
        s
        for s in CORNER_SCENARIOS
        if not (s == "error_drop" and not cfg.error_injection_enabled)
        and not (s == "ill_conditioned_channel" and cfg.max_streams < 2)
    ]
    return list(NOMINAL_SCENARIOS), corners


class StimulusGenerator(BaseSequence):  # pylint: disable=too-many-instance-attributes
    """Lazy, finite stream of encoder-input transactions.

    Scenario selection is a prioritized-sampling policy: corner scenarios
    (singular_channel, ill_conditioned_channel, max_streams, extreme_noise,
    and error_drop when error injection is enabled) share
    corner_case_weight of the probability mass, the nominal scenarios share
    the rest. Each drawn transaction is validated against the Configuration
    before it is emitted; an invalid draw is resampled, and after
    MAX_ATTEMPTS the generator falls back to the nominal scenario, which is
    valid by construction, so generation time is bounded.

    Modes:
        random: every slot drawn by the weighted policy
        directed: the 'directed' list, cycled to transaction_count
        mixed: 'name@index' entries pinned to their index, plain 'name'
            entries in the earliest free slots, everything else random

    Payload (Transaction.data):
        bits (streams x data_width), symbols (streams x n),
        channel (rx x tx), noise (rx x n), pilot_noise (rx x L)

    Scenario metadata (Transaction.attrs):
        scenario, corner, num_streams, noise_class, noise_std,
        channel_condition, condition_number, inject_drop

    The numpy Generator is re-seeded in body_pre, so iterating the
    sequence again reproduces it exactly.
    """

    def __init__(
        self,
        cfg: Configuration,
        options: SessionOptions | None = None,
        *,
        tag: str = "",
        name: str = "stimulus",
    ) -> None:
        options = options or SessionOptions()
        super().__init__(name, seq_len=options.transaction_count)
        self.cfg = cfg
        self.options = options
        self.tag = tag
        self.rng = np.random.default_rng(options.seed)
        self.nominal, self.corners = available_scenarios(cfg)
        self.resample_cnt: int = 0
        self.fallback_cnt: int = 0
        self._plan: list[str | None] = []
        self._builders: dict[str, Callable[[], Payload]] = {
            "nominal": self._nominal,
            "identity_channel": self._identity_channel,
            "min_streams": self._min_streams,
            "singular_channel": self._singular_channel,
            "ill_conditioned_channel": self._ill_conditioned_channel,
            "max_streams": self._max_streams,
            "extreme_noise": self._extreme_noise,
            "error_drop": self._error_drop,
        }

    # ------------------------------------------------------------------
    # Sequence hooks
    # ------------------------------------------------------------------

    def body_pre(self) -> None:
        self.logger.debug("body_pre begin")
        self.rng = np.random.default_rng(self.options.seed)
        self.resample_cnt = 0
        self.fallback_cnt = 0
        self._plan = self.build_plan()
        self.logger.debug("body_pre end")

    def build_plan(self) -> list[str | None]:
        """Forced scenario per slot (None = weighted random)."""
        n = self.seq_len
        mode = self.options.mode
        entries = [parse_directed(e) for e in self.options.directed]
        if mode == "random" or not entries:
            return [None] * n
        if mode == "directed":
            names = itertools.cycle(name for name, _ in entries)
            return [next(names) for _ in range(n)]
        plan: list[str | None] = [None] * n
        for name, idx in entries:
            if idx is not None:
                if idx >= n:
                    self.logger.warning("directed %s@%d beyond %d transactions", name, idx, n)
                    continue
                plan[idx] = name
        free = (i for i, s in enumerate(plan) if s is None)
        for name, idx in entries:
            if idx is None:
                slot = next(free, None)
                if slot is None:
                    self.logger.warning("directed %s: no free slot left", name)
                    break
                plan[slot] = name
        return plan

    def make_item(self, index: int) -> Transaction:
        scenario = self._plan[index] if index < len(self._plan) else None
        if scenario is None:
            scenario = self.pick_scenario()
        elif scenario not in self.nominal + self.corners:
            self.logger.warning(
                "seq=%d: %s not available for %s, using nominal",
                index, scenario, self.cfg.mimo_mode,
            )
            scenario = "nominal"

        for _ in range(MAX_ATTEMPTS):
            data, attrs = self._builders[scenario]()
            if self.is_valid(scenario, data, attrs):
                break
            self.resample_cnt += 1
        else:
            self.fallback_cnt += 1
            self.logger.debug("seq=%d: %s fell back to nominal", index, scenario)
            scenario = "nominal"
            data, attrs = self._nominal()

        attrs["scenario"] = scenario
        attrs["corner"] = scenario in CORNER_SCENARIOS
        return Transaction(
            seq=index,
            stage=Stage.ENCODER_INPUT,
            timestamp=index * self.options.issue_interval,
            data=data,
            config=self.cfg,
            attrs=attrs,
            tag=self.tag,
        )

    def pick_scenario(self) -> str:
        """Weighted draw: corners share corner_case_weight, nominals the rest."""
        w = self.options.corner_case_weight if self.corners else 0.0
        names = self.nominal + self.corners
        probs = [(1.0 - w) / len(self.nominal)] * len(self.nominal)
        probs += [w / len(self.corners)] * len(self.corners) if self.corners else []
        return str(self.rng.choice(names, p=probs))

    def is_valid(self, scenario: str, data: dict[str, np.ndarray], attrs: dict[str, Any]) -> bool:
        """Configuration invariants plus the scenario's own promise."""
        cfg = self.cfg
        streams = attrs["num_streams"]
        if not 1 <= streams <= cfg.num_data_streams <= cfg.max_streams:
            return False
        try:
            ref.check_shapes(data, cfg)
        except ValueError:
            return False
        condition = attrs["channel_condition"]
        if scenario == "singular_channel":
            return condition == "singular"
        if scenario == "ill_conditioned_channel":
            return condition == "ill_conditioned"
        return True

    # ------------------------------------------------------------------
    # Draws
    # ------------------------------------------------------------------

    def _cn(self, *shape: int) -> np.ndarray:
        """Circularly-symmetric unit-variance complex Gaussian samples."""
        return (
            self.rng.standard_normal(shape) + 1j * self.rng.standard_normal(shape)
        ) / np.sqrt(2.0)

    def _draw_streams(self) -> int:
        """Stream count over the antenna limit, resampled above the configured count."""
        for _ in range(MAX_ATTEMPTS):
            s = int(self.rng.integers(1, self.cfg.max_streams + 1))
            if s <= self.cfg.num_data_streams:
                return s
            self.resample_cnt += 1
        return int(self.rng.integers(1, self.cfg.num_data_streams + 1))

    def _payload(
        self,
        streams: int,
        channel: np.ndarray,
        noise_class: str | None = None,
        inject_drop: bool = False,
    ) -> Payload:
        cfg = self.cfg
        noise_class = noise_class or cfg.noise_level_class
        std = noise_std(noise_class)
        n = cfg.symbols_per_stream
        bits = self.rng.integers(0, 2, size=(streams, cfg.data_width), dtype=np.uint8)
        pilots = ref.pilot_length(cfg.pilot_pattern, cfg.tx_antennas)
        noise = np.sqrt(2.0) * std * self._cn(cfg.rx_antennas, n)
        pilot_noise = np.sqrt(2.0) * std * self._cn(cfg.rx_antennas, pilots)
        cond = ref.condition_number(channel)
        data = {
            "bits": bits,
            "symbols": ref.modulate(bits, cfg.modulation_scheme),
            "channel": channel,
            "noise": noise,
            "pilot_noise": pilot_noise,
        }
        attrs: dict[str, Any] = {
            "num_streams": streams,
            "noise_class": noise_class,
            "noise_std": std,
            "channel_condition": ref.classify_channel(cond),
            "condition_number": cond,
            "inject_drop": inject_drop,
        }
        return data, attrs

    def _rayleigh(self) -> np.ndarray:
        return self._cn(self.cfg.rx_antennas, self.cfg.tx_antennas)

    def _nominal(self) -> Payload:
        return self._payload(self._draw_streams(), self._rayleigh())

    def _identity_channel(self) -> Payload:
        h = np.eye(self.cfg.rx_antennas, self.cfg.tx_antennas, dtype=np.complex128)
        return self._payload(self._draw_streams(), h)

    def _min_streams(self) -> Payload:
        return self._payload(1, self._rayleigh())

    def _max_streams(self) -> Payload:
        return self._payload(self.cfg.num_data_streams, self._rayleigh())

    def _extreme_noise(self) -> Payload:
        return self._payload(self._draw_streams(), self._rayleigh(), "extreme")

    def _error_drop(self) -> Payload:
        return self._payload(self._draw_streams(), self._rayleigh(), inject_drop=True)

    def _singular_channel(self) -> Payload:
        """Rank-deficient channel (all-zero when one side has one antenna)."""
        rx, tx = self.cfg.rx_antennas, self.cfg.tx_antennas
        k = min(rx, tx)
        if k == 1:
            h = np.zeros((rx, tx), dtype=np.complex128)
        else:
            rank = int(self.rng.integers(1, k))
            h = self._cn(rx, rank) @ self._cn(rank, tx) / np.sqrt(rank)
        return self._payload(self._draw_streams(), h)

    def _ill_conditioned_channel(self) -> Payload:
        """H = U diag(s) V^H with condition number drawn in [1e3, 1e6]."""
        rx, tx = self.cfg.rx_antennas, self.cfg.tx_antennas
        k = min(rx, tx)
        u, _ = np.linalg.qr(self._cn(rx, k))
        v, _ = np.linalg.qr(self._cn(tx, k))
        kappa = 10.0 ** self.rng.uniform(3.0, 6.0)
        s = np.geomspace(1.0, 1.0 / kappa, k) if k > 1 else np.ones(1)
        h = (u * s) @ v.conj().T
        return self._payload(self._draw_streams(), h)
