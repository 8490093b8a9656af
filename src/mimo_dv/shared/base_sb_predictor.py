# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/shared/base_sb_predictor.py

"""Reusable predictor."""

from __future__ import annotations

from typing import Iterable

from . import utils_dv
from .base_item import OUTPUT_STAGES, Stage, Transaction
from .base_ref_model import BaseRefModel, Prediction


class SbPredictor:
    """Predictor that computes expected outputs using a reference model.

    One input transaction is checked at several output stages. The predictor
    runs the reference model once per input and keeps the Prediction until
    every checked stage of that input has been released, so the cache stays
    bounded by the number of inputs in flight.

    Flow:
        Input Transaction -> Reference Model -> Prediction (cached)
                                                    |
                                  Scoreboard (one lookup per stage)

    Errors raised by the reference model (ModelInputShapeMismatch) propagate
    to the caller and nothing is cached, so every stage of that input sees
    the same error.
    """

    def __init__(
        self,
        ref_model: BaseRefModel,
        stages: Iterable[Stage] = OUTPUT_STAGES,
        name: str = "predictor",
    ) -> None:
        self.logger = utils_dv.component_logger(name)
        self.ref_model = ref_model
        self.stages: frozenset[Stage] = frozenset(stages)
        self._cache: dict[tuple[str, int], Prediction] = {}
        self._remaining: dict[tuple[str, int], set[Stage]] = {}
        self._released: dict[tuple[str, int], set[Stage]] = {}

    def write(self, tr: Transaction) -> Prediction:
        """Return the (cached) Prediction for an input transaction."""
        key = tr.identity
        pred = self._cache.get(key)
        if pred is None:
            pred = self.ref_model.calc_exp(tr)
            remaining = set(self.stages) - self._released.pop(key, set())
            if remaining:
                self._cache[key] = pred
                self._remaining[key] = remaining
            self.logger.debug("predicted seq=%d %s", tr.seq, pred.annotation_names())
        return pred

    def release(self, tr: Transaction, stage: Stage) -> None:
        """Mark a stage of an input as scored; drop the cache entry when done.

        A stage released before the input was ever predicted (a drop scored
        ahead of its sibling stages) is remembered until the first write.
        """
        if stage not in self.stages:
            return
        key = tr.identity
        remaining = self._remaining.get(key)
        if remaining is None:
            released = self._released.setdefault(key, set())
            released.add(stage)
            if released >= self.stages:
                del self._released[key]
            return
        remaining.discard(stage)
        if not remaining:
            del self._remaining[key]
            del self._cache[key]

    def __len__(self) -> int:
        return len(self._cache) + len(self._released)
