# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/mimo/mimo_config.py

"""Scenario configuration and session options for the MIMO pipeline.

Both models are frozen pydantic models: a Configuration is fixed for the
whole session, and SessionOptions carry the session-level knobs (seed,
mode, tolerances, pairing and backpressure limits).

Example:
    >>> cfg = Configuration(tx_antennas=4, rx_antennas=4, num_data_streams=2,
    ...                     modulation_scheme="QPSK")
    >>> cfg.mimo_mode, cfg.bits_per_symbol, cfg.symbols_per_stream
    ('4x4', 2, 12)
    >>> opts = SessionOptions(transaction_count=100, seed=42)
"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeFloat,
    NonNegativeInt,
    PositiveInt,
    ValidationError,
    field_validator,
    model_validator,
)

from ..shared.base_item import OUTPUT_STAGES, Stage
from ..shared.errors import ConfigKeyError, ConfigurationInvalid

Antennas = Literal[1, 2, 4, 8]
Modulation = Literal["BPSK", "QPSK", "16QAM", "64QAM"]
Detection = Literal["ZF", "MMSE"]
PilotPattern = Literal["block", "comb", "scattered"]
NoiseClass = Literal["noiseless", "low", "medium", "high", "extreme"]
Mode = Literal["random", "directed", "mixed"]

ANTENNA_COUNTS: tuple[int, ...] = (1, 2, 4, 8)
MODULATIONS: tuple[str, ...] = ("BPSK", "QPSK", "16QAM", "64QAM")
DETECTIONS: tuple[str, ...] = ("ZF", "MMSE")
PILOT_PATTERNS: tuple[str, ...] = ("block", "comb", "scattered")
NOISE_CLASSES: tuple[str, ...] = ("noiseless", "low", "medium", "high", "extreme")
CHANNEL_CONDITIONS: tuple[str, ...] = ("well_conditioned", "ill_conditioned", "singular")

BITS_PER_SYMBOL: dict[str, int] = {"BPSK": 1, "QPSK": 2, "16QAM": 4, "64QAM": 6}

# Per-antenna SNR in dB for unit-energy symbols; None is noiseless.
NOISE_SNR_DB: dict[str, float | None] = {
    "noiseless": None,
    "low": 30.0,
    "medium": 20.0,
    "high": 10.0,
    "extreme": 0.0,
}

NOMINAL_SCENARIOS: tuple[str, ...] = ("nominal", "identity_channel", "min_streams")
CORNER_SCENARIOS: tuple[str, ...] = (
    "singular_channel",
    "ill_conditioned_channel",
    "max_streams",
    "extreme_noise",
    "error_drop",
)
SCENARIOS: tuple[str, ...] = NOMINAL_SCENARIOS + CORNER_SCENARIOS

DIMENSIONS: tuple[str, ...] = (
    "tx_antennas",
    "rx_antennas",
    "mimo_mode",
    "num_streams",
    "modulation",
    "detection",
    "pilot_pattern",
    "noise_class",
    "channel_condition",
)

DEFAULT_CROSSES: dict[str, tuple[str, ...]] = {
    "mimo_mode_x_modulation": ("mimo_mode", "modulation"),
    "modulation_x_detection": ("modulation", "detection"),
    "detection_x_channel_condition": ("detection", "channel_condition"),
    "modulation_x_noise_class": ("modulation", "noise_class"),
}


def noise_std(noise_class: str) -> float:
    """Per-component (I or Q) noise standard deviation of a noise class."""
    snr_db = NOISE_SNR_DB[noise_class]
    if snr_db is None:
        return 0.0
    return math.sqrt(10.0 ** (-snr_db / 10.0) / 2.0)


def _invalid(exc: ValidationError, what: str) -> ConfigurationInvalid:
    errs = "; ".join(
        f"{'.'.join(str(p) for p in e['loc']) or what}: {e['msg']}" for e in exc.errors()
    )
    return ConfigurationInvalid(f"invalid {what}: {errs}")


class Configuration(BaseModel):
    """Immutable description of one test scenario.

    Invariants:
        - 1 <= num_data_streams <= min(tx_antennas, rx_antennas)
        - antenna counts in {1, 2, 4, 8}
        - data_width is a positive multiple of the modulation's bits/symbol

    symbol_width is the signed fixed-point width of each I and Q output
    component with 4 integer bits (sign included), so one output LSB is
    2**-(symbol_width - 4).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tx_antennas: Antennas = 4
    rx_antennas: Antennas = 4
    num_data_streams: PositiveInt = 2
    symbol_width: int = Field(default=16, ge=8, le=32)
    data_width: PositiveInt = 24
    modulation_scheme: Modulation = "QPSK"
    detection_algorithm: Detection = "ZF"
    pilot_pattern: PilotPattern = "block"
    noise_level_class: NoiseClass = "noiseless"
    error_injection_enabled: bool = False

    @model_validator(mode="after")
    def _check_invariants(self) -> "Configuration":
        limit = min(self.tx_antennas, self.rx_antennas)
        if self.num_data_streams > limit:
            raise ValueError(
                f"num_data_streams={self.num_data_streams} exceeds "
                f"min(tx_antennas, rx_antennas)={limit}"
            )
        bps = BITS_PER_SYMBOL[self.modulation_scheme]
        if self.data_width % bps:
            raise ValueError(
                f"data_width={self.data_width} is not a multiple of "
                f"{bps} bits/symbol ({self.modulation_scheme})"
            )
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Configuration":
        """Validate a plain mapping, raising ConfigurationInvalid on failure."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise _invalid(exc, "configuration") from exc

    @property
    def bits_per_symbol(self) -> int:
        """Bits carried by one constellation symbol."""
        return BITS_PER_SYMBOL[self.modulation_scheme]

    @property
    def symbols_per_stream(self) -> int:
        """Constellation symbols per stream per transaction."""
        return self.data_width // self.bits_per_symbol

    @property
    def max_streams(self) -> int:
        """Antenna-limited stream count min(tx, rx)."""
        return min(self.tx_antennas, self.rx_antennas)

    @property
    def lsb(self) -> float:
        """Weight of one output LSB."""
        return 2.0 ** -(self.symbol_width - 4)

    @property
    def mimo_mode(self) -> str:
        """Antenna configuration as 'TxR'."""
        return f"{self.tx_antennas}x{self.rx_antennas}"

    def __str__(self) -> str:
        """Return JSON-formatted string representation of the model."""
        return f"{self.__class__.__name__}:\n" + json.dumps(self.model_dump(), indent=2)


class SessionOptions(BaseModel):
    """Session-level options.

    directed entries are scenario names, optionally pinned to a transaction
    index as 'name@index'. tolerance_profile maps a compared field name
    (e.g. 'decoded.magnitude') to (abs_tol, rel_tol); fields not listed use
    the defaults derived from the Configuration.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    transaction_count: PositiveInt = 100
    seed: NonNegativeInt = 1
    mode: Mode = "random"
    directed: tuple[str, ...] = ()
    tolerance_profile: dict[str, tuple[NonNegativeFloat, NonNegativeFloat]] = Field(
        default_factory=dict
    )
    coverage_target: float = Field(default=100.0, ge=0.0, le=100.0)
    corner_case_weight: float = Field(default=0.2, ge=0.0, le=1.0)
    agreement_threshold: float = Field(default=0.999, ge=0.0, le=1.0)
    reorder_window: NonNegativeInt = 4
    max_in_flight: PositiveInt = 16
    pairing_timeout: NonNegativeFloat | None = None
    issue_interval: float = Field(default=1.0, gt=0.0)
    stages: tuple[Stage, ...] = OUTPUT_STAGES
    drop_whitelist: tuple[NonNegativeInt, ...] = ()
    crosses: dict[str, tuple[str, ...]] | None = None
    stall_timeout_s: float = Field(default=5.0, gt=0.0)

    @field_validator("directed")
    @classmethod
    def _check_directed(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for entry in value:
            parse_directed(entry)
        return value

    @field_validator("stages")
    @classmethod
    def _check_stages(cls, value: tuple[Stage, ...]) -> tuple[Stage, ...]:
        if Stage.ENCODER_INPUT in value:
            raise ValueError("encoder_input is an input stage, not a checked output")
        if len(set(value)) != len(value):
            raise ValueError(f"duplicate stages {[s.value for s in value]}")
        return value

    @field_validator("crosses")
    @classmethod
    def _check_crosses(
        cls, value: dict[str, tuple[str, ...]] | None
    ) -> dict[str, tuple[str, ...]] | None:
        for name, items in (value or {}).items():
            unknown = [i for i in items if i not in DIMENSIONS]
            if unknown or len(items) < 2:
                raise ValueError(
                    f"cross {name}: needs two or more of {list(DIMENSIONS)}, got {list(items)}"
                )
        return value

    @model_validator(mode="after")
    def _check_limits(self) -> "SessionOptions":
        if self.max_in_flight <= self.reorder_window:
            raise ValueError(
                f"max_in_flight={self.max_in_flight} must exceed "
                f"reorder_window={self.reorder_window}"
            )
        if self.mode != "random" and not self.directed:
            raise ValueError(f"mode={self.mode} needs a directed scenario list")
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SessionOptions":
        """Validate a plain mapping, raising ConfigurationInvalid on failure."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise _invalid(exc, "session options") from exc

    def __str__(self) -> str:
        """Return JSON-formatted string representation of the model."""
        return f"{self.__class__.__name__}:\n" + json.dumps(
            self.model_dump(mode="json"), indent=2
        )


def parse_directed(entry: str) -> tuple[str, int | None]:
    """Split 'name' or 'name@index' into (name, index)."""
    name, sep, idx = entry.partition("@")
    if name not in SCENARIOS:
        raise ValueError(f"unknown scenario {name!r} (known: {list(SCENARIOS)})")
    if not sep:
        return name, None
    try:
        index = int(idx, 0)
    except ValueError as exc:
        raise ValueError(f"bad index in directed entry {entry!r}") from exc
    if index < 0:
        raise ValueError(f"negative index in directed entry {entry!r}")
    return name, index


def load_scenario(path: str | Path) -> tuple[Configuration, SessionOptions]:
    """Load a scenario YAML with a 'config' section and an optional 'options' section."""
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigurationInvalid(f"{path}: top level must be a mapping")
    if "config" not in raw:
        raise ConfigKeyError(f"{path}: missing 'config' section")
    cfg = Configuration.from_mapping(raw["config"] or {})
    opts = SessionOptions.from_mapping(raw.get("options") or {})
    return cfg, opts
