# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/shared/base_pairing.py

"""Correlate applied-input and observed-output streams into matched pairs."""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from typing import Iterable

from . import utils_dv
from .base_item import Stage, Transaction
from .errors import PairingBufferExhausted, PairingTimeout


@dataclass(frozen=True)
class MatchedPair:
    """An input transaction and the output observed for it at one stage.

    output is None when the pair was dropped (no output within the timeout
    or the reordering window). expected_drop marks drops the session asked
    for (error injection), which are flagged but not scored.
    """

    input: Transaction
    output: Transaction | None
    stage: Stage
    dropped: bool = False
    expected_drop: bool = False
    reason: str = ""

    @property
    def seq(self) -> int:
        """Sequence number of the pair."""
        return self.input.seq


class PairingBuffer:  # pylint: disable=too-many-instance-attributes
    """Sequence-number pairing with a bounded out-of-order window.

    The buffer is an arena + index: pending inputs are kept in application
    order (a deque of sequence numbers) and indexed by sequence number, and
    outputs are parked in an index until their input reaches the head of
    the arena. MatchedPairs are therefore emitted strictly in input order
    whatever order the outputs arrive in.

    Drop rules (checked only for the head of the arena):
        window: an output more than reorder_window sequence numbers newer
            than the head has already arrived, so the head output cannot
            still be in flight through a reordering stage
        timeout: the latest observed time exceeds the head's timestamp
            plus timeout (logical time units, same clock as timestamps)
        end of stream: flush() drops everything still pending

    No transaction is matched twice: an output for a sequence number that
    is already matched or dropped is counted (duplicates / late) and
    discarded. Outputs that arrive before their input are held as early
    outputs. Both the arena and the early index are bounded by capacity;
    overflowing either raises PairingBufferExhausted.

    Example:
        >>> buf = PairingBuffer(Stage.ENCODER_OUTPUT, reorder_window=2)
        >>> buf.push_input(tr0); buf.push_input(tr1)
        >>> buf.push_output(out1)    # reordered: seq 1 before seq 0
        >>> buf.pop_ready()          # nothing yet, seq 0 still in window
        []
        >>> buf.push_output(out0)
        >>> [p.seq for p in buf.pop_ready()]
        [0, 1]
    """

    def __init__(
        self,
        stage: Stage,
        *,
        reorder_window: int = 4,
        timeout: float | None = None,
        capacity: int = 64,
        whitelist: Iterable[int] = (),
        name: str | None = None,
    ) -> None:
        if reorder_window < 0:
            raise ValueError(f"{reorder_window=}")
        if capacity < 1:
            raise ValueError(f"{capacity=}")
        self.stage = Stage(stage)
        self.logger = utils_dv.component_logger(name or f"pairing.{self.stage.value}")
        self.reorder_window = reorder_window
        self.timeout = timeout
        self.capacity = capacity
        self._whitelist: set[int] = set(whitelist)

        self._order: deque[int] = deque()
        self._pending: dict[int, Transaction] = {}
        self._outputs: dict[int, Transaction] = {}
        self._early: dict[int, Transaction] = {}
        self._last_input_seq: int = -1
        self._max_output_seq: int = -1
        self._now: float = -math.inf

        self.matched_cnt: int = 0
        self.dropped_cnt: int = 0
        self.duplicate_cnt: int = 0
        self.late_cnt: int = 0

    @property
    def in_flight(self) -> int:
        """Number of inputs not yet resolved."""
        return len(self._order)

    def expect_drop(self, seq: int) -> None:
        """Whitelist a sequence number whose output is deliberately dropped."""
        self._whitelist.add(seq)

    def push_input(self, tr: Transaction) -> None:
        """Record an applied input (sequence numbers strictly increasing)."""
        if tr.seq <= self._last_input_seq:
            raise ValueError(
                f"{self.stage.value}: input seq {tr.seq} not increasing "
                f"(last {self._last_input_seq})"
            )
        if len(self._order) >= self.capacity:
            raise PairingBufferExhausted(
                f"{self.stage.value}: {len(self._order)} inputs pending "
                f"(capacity {self.capacity})"
            )
        self._last_input_seq = tr.seq
        self._pending[tr.seq] = tr
        self._order.append(tr.seq)
        early = self._early.pop(tr.seq, None)
        if early is not None:
            self._outputs[tr.seq] = early

    def push_output(self, tr: Transaction) -> None:
        """Record an observed output and advance the observed time."""
        if tr.stage != self.stage:
            raise ValueError(f"{self.stage.value}: got output for {tr.stage.value}")
        seq = tr.seq
        self._now = max(self._now, tr.timestamp)
        self._max_output_seq = max(self._max_output_seq, seq)

        if seq in self._pending:
            if seq in self._outputs:
                self.duplicate_cnt += 1
                self.logger.warning("duplicate output seq=%d discarded", seq)
                return
            self._outputs[seq] = tr
        elif seq <= self._last_input_seq:
            self.late_cnt += 1
            self.logger.warning("late output seq=%d discarded (already resolved)", seq)
        elif seq in self._early:
            self.duplicate_cnt += 1
            self.logger.warning("duplicate early output seq=%d discarded", seq)
        else:
            if len(self._early) >= self.capacity:
                raise PairingBufferExhausted(
                    f"{self.stage.value}: {len(self._early)} outputs without input"
                )
            self._early[seq] = tr

    def advance(self, now: float) -> None:
        """Advance the observed time without an output (e.g. idle clock)."""
        self._now = max(self._now, now)

    def pop_ready(self) -> list[MatchedPair]:
        """Return the pairs resolvable now, in input order."""
        ready: list[MatchedPair] = []
        while self._order:
            seq = self._order[0]
            out = self._outputs.pop(seq, None)
            if out is not None:
                ready.append(self._resolve(seq, out))
                continue
            reason = self._expired(seq)
            if reason is None:
                break
            ready.append(self._resolve(seq, None, reason))
        return ready

    def flush(self) -> list[MatchedPair]:
        """End of stream: resolve everything pending, dropping missing outputs."""
        ready: list[MatchedPair] = []
        while self._order:
            seq = self._order[0]
            out = self._outputs.pop(seq, None)
            reason = "" if out is not None else "end of output stream"
            ready.append(self._resolve(seq, out, reason))
        return ready

    def cancel(self) -> tuple[list[MatchedPair], list[Transaction]]:
        """Cancellation: drain pairs that have outputs, hand back the rest.

        Inputs still waiting for an output are not dropped (they would count
        as failures); they are returned so the session can report them as
        discarded in flight.
        """
        ready: list[MatchedPair] = []
        discarded: list[Transaction] = []
        while self._order:
            seq = self._order[0]
            out = self._outputs.pop(seq, None)
            if out is not None:
                ready.append(self._resolve(seq, out))
            else:
                self._order.popleft()
                discarded.append(self._pending.pop(seq))
        self._early.clear()
        return ready, discarded

    def _expired(self, seq: int) -> str | None:
        if self._max_output_seq - seq > self.reorder_window:
            return (
                f"output overtaken by seq {self._max_output_seq} "
                f"beyond reorder window {self.reorder_window}"
            )
        if self.timeout is not None:
            age = self._now - self._pending[seq].timestamp
            if age > self.timeout:
                return (
                    f"{PairingTimeout.__name__}: no output after {age:g} "
                    f"(timeout {self.timeout:g})"
                )
        return None

    def _resolve(
        self, seq: int, out: Transaction | None, reason: str = ""
    ) -> MatchedPair:
        self._order.popleft()
        inp = self._pending.pop(seq)
        if out is not None:
            self.matched_cnt += 1
            return MatchedPair(inp, out, self.stage)
        self.dropped_cnt += 1
        expected = seq in self._whitelist
        if expected:
            self.logger.info("seq=%d dropped as expected: %s", seq, reason)
        else:
            self.logger.warning("seq=%d DROPPED: %s", seq, reason)
        return MatchedPair(inp, None, self.stage, True, expected, reason)
