# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/shared/base_sequence.py

"""Unified base for lazy, finite transaction sequences."""

from __future__ import annotations

import logging
from typing import Iterator

from . import utils_dv
from .base_item import Transaction


class BaseSequence:
    """Base class for transaction-generating sequences.

    A sequence is a lazy, finite iterable: items are built one at a time as
    the consumer pulls them, so a bounded in-flight window upstream
    naturally throttles generation. Iterating twice restarts the sequence
    (body_pre is responsible for resetting any per-run state such as the
    random generator), which is what makes seeded runs reproducible.

    Execution Flow:
        1. body_pre() - Optional pre-sequence hook (reset state)
        2. For each item (seq_len times):
           a. make_item(index) - Build, validate and return one Transaction
        3. body_post() - Optional post-sequence hook

    Subclasses must implement:
        make_item(index): Return the Transaction for slot index

    Optional hooks:
        body_pre(): Called before generating items
        body_post(): Called after all items generated

    Attributes:
        seq_len (int): Number of items to generate (default: 100)
        logger: Logger for debug output

    Example:
        >>> class Ramp(BaseSequence):
        ...     def make_item(self, index):
        ...         return Transaction(index, Stage.ENCODER_INPUT, float(index),
        ...                            {"symbols": [[index]]})
        >>> [tr.seq for tr in Ramp(seq_len=3)]
        [0, 1, 2]
    """

    def __init__(self, name: str = "seq", seq_len: int = 100) -> None:
        self.name = name
        self.logger: logging.Logger = utils_dv.component_logger(name)
        self.seq_len: int = max(1, int(seq_len))

    def __iter__(self) -> Iterator[Transaction]:
        self.logger.debug("BaseSequence body begin: length = %d", self.seq_len)
        self.body_pre()
        make = self.make_item
        for i in range(self.seq_len):
            yield make(i)
        self.body_post()
        self.logger.debug("BaseSequence body end")

    def __len__(self) -> int:
        return self.seq_len

    def body_pre(self) -> None:
        """Placeholder."""
        self.logger.debug("BaseSequence body_pre begin")
        self.logger.debug("BaseSequence body_pre end")

    def make_item(self, index: int) -> Transaction:
        """Must be implemented in subclasses: build the item for slot index."""
        raise NotImplementedError

    def body_post(self) -> None:
        """Placeholder."""
        self.logger.debug("BaseSequence body_post begin")
        self.logger.debug("BaseSequence body_post end")
