# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: tests/helpers.py

"""Transaction builders shared by the tests."""

from __future__ import annotations

import numpy as np

from mimo_dv.mimo.mimo_config import Configuration, SessionOptions
from mimo_dv.mimo.mimo_sequence import StimulusGenerator
from mimo_dv.shared.base_item import Stage, Transaction


def generate(cfg: Configuration, tag: str = "t", **options: object) -> list[Transaction]:
    """All transactions of one StimulusGenerator run."""
    opts = SessionOptions(**options)  # type: ignore[arg-type]
    return list(StimulusGenerator(cfg, opts, tag=tag))


def directed(
    cfg: Configuration, scenario: str, count: int = 1, seed: int = 1, tag: str = "t"
) -> list[Transaction]:
    """count transactions of one forced scenario."""
    return generate(
        cfg, tag, transaction_count=count, seed=seed, mode="directed", directed=(scenario,)
    )


def simple_input(seq: int, timestamp: float | None = None, tag: str = "") -> Transaction:
    """Minimal encoder-input transaction for pairing tests."""
    return Transaction(
        seq,
        Stage.ENCODER_INPUT,
        float(seq) if timestamp is None else timestamp,
        {"symbols": np.array([[seq + 1j]])},
        tag=tag,
    )


def simple_output(
    inp: Transaction, stage: Stage = Stage.ENCODER_OUTPUT, delay: float = 3.0
) -> Transaction:
    """Output correlated with inp, observed delay time units later."""
    return inp.derive(stage, {"encoded": inp.data["symbols"]}, inp.timestamp + delay)
