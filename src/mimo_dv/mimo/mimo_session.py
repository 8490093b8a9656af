# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/mimo/mimo_session.py

"""Verification session for the MIMO pipeline."""

from __future__ import annotations

from typing import Any, Mapping

from ..shared.base_item import Transaction
from ..shared.base_session import BaseSession, Dut
from ..shared.errors import ConfigurationInvalid
from .mimo_config import Configuration, SessionOptions, parse_directed
from .mimo_coverage import MimoCoverage
from .mimo_dut import SoftwarePipeline
from .mimo_sb import MimoScoreboard, resolve_tolerances
from .mimo_sequence import StimulusGenerator, available_scenarios


class VerificationSession(BaseSession):
    """One MIMO verification scenario, from stimulus to report.

    Configuration problems (an invalid Configuration mapping, a tolerance
    profile naming an unknown field, a directed scenario the Configuration
    cannot produce) raise ConfigurationInvalid here, before any
    transaction is generated.

    Components:
        sequence (StimulusGenerator), dut (SoftwarePipeline unless one is
        given), scoreboard (MimoScoreboard), coverage (MimoCoverage, or a
        shared model given by the caller)

    Example:
        >>> cfg = Configuration(tx_antennas=4, rx_antennas=4,
        ...                     num_data_streams=2, modulation_scheme="QPSK")
        >>> report = VerificationSession(cfg, SessionOptions(seed=42)).run()
        >>> report.status.value
        'PASSED'
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        config: Configuration | Mapping[str, Any],
        options: SessionOptions | Mapping[str, Any] | None = None,
        *,
        dut: Dut | None = None,
        coverage: MimoCoverage | None = None,
        tag: str = "",
        name: str = "session",
    ) -> None:
        self.config = (
            config
            if isinstance(config, Configuration)
            else Configuration.from_mapping(config)
        )
        if options is None:
            options = SessionOptions()
        elif not isinstance(options, SessionOptions):
            options = SessionOptions.from_mapping(options)
        self.options = options
        self._dut = dut
        self._coverage = coverage
        self.check_options()

        super().__init__(
            name,
            tag=tag or f"{name}:{options.seed}",
            stages=options.stages,
            reorder_window=options.reorder_window,
            max_in_flight=options.max_in_flight,
            pairing_timeout=options.pairing_timeout,
            drop_whitelist=options.drop_whitelist,
            stall_timeout_s=options.stall_timeout_s,
            coverage_target=options.coverage_target,
        )
        self.logger.info("%s", self.config)

    def check_options(self) -> None:
        """Cross-check options against the Configuration."""
        resolve_tolerances(self.config, self.options.tolerance_profile)
        nominal, corners = available_scenarios(self.config)
        for entry in self.options.directed:
            scenario, _ = parse_directed(entry)
            if scenario not in nominal + corners:
                raise ConfigurationInvalid(
                    f"directed scenario {scenario!r} not available for "
                    f"{self.config.mimo_mode} (error_injection_enabled="
                    f"{self.config.error_injection_enabled})"
                )

    @property
    def seed(self) -> int:
        return self.options.seed

    def build_sequence(self) -> StimulusGenerator:
        return StimulusGenerator(
            self.config, self.options, tag=self.tag, name=f"{self.name}.stimulus"
        )

    def build_dut(self) -> Dut:
        if self._dut is not None:
            return self._dut
        return SoftwarePipeline(
            seed=self.options.seed, stages=self.stages, name=f"{self.name}.dut"
        )

    def build_scoreboard(self) -> MimoScoreboard:
        return MimoScoreboard(
            self.config,
            self.options.tolerance_profile,
            stages=self.stages,
            agreement_threshold=self.options.agreement_threshold,
            name=f"{self.name}.scoreboard",
        )

    def build_coverage(self) -> MimoCoverage:
        if self._coverage is not None:
            self._coverage.register(self.config)
            return self._coverage
        return MimoCoverage(
            self.config, self.options.crosses, name=f"{self.name.replace('.', '_')}_cov"
        )

    def expects_drop(self, tr: Transaction) -> bool:
        return super().expects_drop(tr) or bool(tr.attrs.get("inject_drop"))


def run_session(
    config: Configuration | Mapping[str, Any],
    options: SessionOptions | Mapping[str, Any] | None = None,
    **kwargs: Any,
):
    """Build and run one VerificationSession; return its SessionReport."""
    return VerificationSession(config, options, **kwargs).run()
