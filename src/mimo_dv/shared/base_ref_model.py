# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/shared/base_ref_model.py

"""Reference model of DUT."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

import numpy as np

from . import utils_dv
from .base_item import Stage, Transaction
from .errors import MimoDvWarning


@dataclass(frozen=True)
class Prediction:
    """Expected outputs for one input transaction.

    fields maps each output stage to its named expected arrays; annotations
    carries non-fatal conditions (e.g. SingularChannelMatrix) found while
    computing them.
    """

    seq: int
    fields: Mapping[Stage, Mapping[str, np.ndarray]]
    annotations: tuple[MimoDvWarning, ...] = field(default_factory=tuple)

    def annotation_names(self) -> tuple[str, ...]:
        """Sorted unique annotation class names."""
        return tuple(sorted({type(a).__name__ for a in self.annotations}))


class BaseRefModel:
    """Reference model for computing expected DUT behavior.

    The reference model is the golden source for DUT outputs. Unlike a
    cycle-level model it keeps no hidden state: calc_exp must be a pure
    function of the input transaction (and its Configuration), so repeated
    calls with identical inputs are bit-reproducible and predictions can be
    computed in any order.

    Subclasses must implement:
        calc_exp(tr): Return the Prediction for an input transaction

    Design Pattern:
        This follows the UVM predictor/refmodel separation pattern where:
        - The predictor (SbPredictor) receives input transactions
        - The reference model computes expected outputs
        - The comparator (Scoreboard) checks expected vs actual

    Reference:
        C.E. Cummings, "OVM/UVM Scoreboards - Fundamental Architectures,"
        SNUG 2013

    Example:
        >>> class Passthrough(BaseRefModel):
        ...     def calc_exp(self, tr):
        ...         return Prediction(
        ...             tr.seq, {Stage.ENCODER_OUTPUT: {"encoded": tr.data["symbols"]}}
        ...         )
    """

    def __init__(self, name: str = "ref_model") -> None:
        self.name = name
        self._logger: logging.Logger = utils_dv.component_logger(name)

    @property
    def logger(self) -> logging.Logger:
        """Logger with a familiar .info/.debug/.warning interface."""
        return self._logger

    def calc_exp(self, tr: Transaction) -> Prediction:
        """Calculate expected output."""
        raise NotImplementedError
