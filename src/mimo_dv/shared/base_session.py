# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/shared/base_session.py

"""Session scaffold: build components, run the async pipeline, report."""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Iterable, Protocol

import pyuvm
from pydantic import BaseModel, Field

from . import utils_dv
from .base_coverage import BaseCoverage
from .base_item import OUTPUT_STAGES, Stage, Transaction
from .base_pairing import MatchedPair, PairingBuffer
from .base_sb_comparator import Scoreboard
from .base_sequence import BaseSequence
from .errors import PairingBufferExhausted


class Dut(Protocol):
    """DUT boundary: applied-input sink plus observed-output stream."""

    async def apply(self, tr: Transaction) -> None:
        """Apply one input transaction."""

    async def close(self) -> None:
        """No more inputs; flush pending outputs and end outputs()."""

    def outputs(self) -> AsyncIterator[Transaction]:
        """Observed output transactions, any stage, until closed."""


class SessionStatus(str, Enum):
    """Final session status."""

    PASSED = "PASSED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    ABORTED = "ABORTED"


class SessionReport(BaseModel):
    """Structured end-of-session report (rendering is up to the caller)."""

    status: SessionStatus
    tag: str = ""
    seed: int | None = None
    total_transactions: int = 0
    pass_count: int = 0
    fail_count: int = 0
    dropped_count: int = 0
    dropped_expected_count: int = 0
    error_count: int = 0
    agreement_rate: float = 0.0
    agreement_threshold: float = 0.999
    coverage: dict[str, float] = Field(default_factory=dict)
    overall_coverage: float = 0.0
    coverage_target: float = 100.0
    coverage_target_met: bool = False
    uncovered_required_bins: list[str] = Field(default_factory=list)
    corner_case_hits: dict[str, int] = Field(default_factory=dict)
    failing_verdicts: list[dict[str, Any]] = Field(default_factory=list)
    annotated_count: int = 0
    duplicate_outputs: int = 0
    late_outputs: int = 0
    discarded_in_flight: int = 0
    error: str | None = None

    @property
    def passed(self) -> bool:
        """True for PASSED sessions."""
        return self.status is SessionStatus.PASSED

    def __str__(self) -> str:
        """Return JSON-formatted string representation of the report."""
        return f"{self.__class__.__name__}:\n" + json.dumps(
            self.model_dump(), indent=2, default=str
        )

    def save(self, outdir: Path, name: str = "report") -> Path:
        """Save the report to <outdir>/<name>.json and return the path."""
        path = outdir / f"{name}.json"
        path.write_text(json.dumps(self.model_dump(), indent=2, default=str) + "\n")
        return path


class EventSink(pyuvm.uvm_subscriber):
    """Subscriber republishing component events on a session port."""

    def __init__(self, name: str, port: pyuvm.uvm_analysis_port) -> None:
        super().__init__(utils_dv.unique_name(name), None)
        self.target = port

    def write(self, tt: utils_dv.EngineEvent) -> None:
        self.target.write(tt)


class BaseSession:  # pylint: disable=too-many-instance-attributes
    """One verification session: stimulus -> DUT -> pairing -> scoring.

    The session builds its components through overridable hooks (like a
    UVM test's build_phase), wires their analysis ports to its own events
    port, and runs three asyncio tasks connected by single-consumer
    handoffs:

    Flow:
        producer:  sequence --> pairing buffers (inputs) --> coverage
                                                        --> dut.apply()
        collector: dut.outputs() --> pairing buffers --> scoring queue
        scorer:    scoring queue --> scoreboard.score()

    Backpressure:
        An asyncio.Semaphore of max_in_flight permits is taken per issued
        transaction and returned once every checked stage of that sequence
        number is resolved (matched or dropped). If no permit frees up for
        stall_timeout_s seconds the session raises PairingBufferExhausted
        and ends ABORTED with the results gathered so far.

    Cancellation:
        cancel() stops issuance; the DUT is closed and drained, every pair
        that still gets its output is scored, and inputs left without
        output are counted as discarded in flight. Status is CANCELLED.

    Subclasses must implement:
        build_sequence(), build_dut(), build_scoreboard(), build_coverage()

    Optional overrides:
        expects_drop(tr): whether an input's outputs are deliberately dropped
        seed: reported seed (None by default)

    Events (self.events, a uvm_analysis_port):
        session_started, transaction_generated, verdict_recorded,
        coverage_bin_hit, session_finished

        Scoreboard and coverage ports feed an EventSink subscriber that
        republishes on self.events. Use subscribe(fn) to attach a callable.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        name: str = "session",
        *,
        tag: str = "",
        stages: Iterable[Stage] = OUTPUT_STAGES,
        reorder_window: int = 4,
        max_in_flight: int = 16,
        pairing_timeout: float | None = None,
        drop_whitelist: Iterable[int] = (),
        stall_timeout_s: float = 5.0,
        coverage_target: float = 100.0,
    ) -> None:
        self.logger: logging.Logger = utils_dv.component_logger(name)
        self.name = name
        self.tag = tag or name
        self.stages: tuple[Stage, ...] = tuple(Stage(s) for s in stages)
        self.reorder_window = reorder_window
        self.max_in_flight = max_in_flight
        self.pairing_timeout = pairing_timeout
        self.drop_whitelist: frozenset[int] = frozenset(drop_whitelist)
        self.stall_timeout_s = stall_timeout_s
        self.coverage_target = coverage_target
        self.events = utils_dv.analysis_port(f"{name}_events")
        self.sink = EventSink(f"{name}_sink", self.events)

        self.issued_cnt: int = 0
        self.discarded_cnt: int = 0
        self.report_: SessionReport | None = None
        self._cancelled = False
        self._aborted: str | None = None
        self._outstanding: dict[int, int] = {}
        self._sem: asyncio.Semaphore | None = None
        self._queue: asyncio.Queue[MatchedPair | None] | None = None

        self.build_phase()

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build_phase(self) -> None:
        """Create components and connect their analysis ports."""
        self.logger.debug("build_phase begin")
        self.sequence: BaseSequence = self.build_sequence()
        self.dut: Dut = self.build_dut()
        self.scoreboard: Scoreboard = self.build_scoreboard()
        self.coverage: BaseCoverage = self.build_coverage()
        self.buffers: dict[Stage, PairingBuffer] = {
            stage: PairingBuffer(
                stage,
                reorder_window=self.reorder_window,
                timeout=self.pairing_timeout,
                capacity=max(self.max_in_flight, 1),
                whitelist=self.drop_whitelist,
                name=f"{self.name}.pairing.{stage.value}",
            )
            for stage in self.stages
        }
        self.scoreboard.results_ap.connect(self.sink.analysis_export)
        self.coverage.events.connect(self.sink.analysis_export)
        self.logger.debug("build_phase end")

    def build_sequence(self) -> BaseSequence:
        """Override in subclasses: stimulus sequence."""
        raise NotImplementedError("Implement build_sequence here")

    def build_dut(self) -> Dut:
        """Override in subclasses: DUT boundary."""
        raise NotImplementedError("Implement build_dut here")

    def build_scoreboard(self) -> Scoreboard:
        """Override in subclasses: scoreboard with its predictor."""
        raise NotImplementedError("Implement build_scoreboard here")

    def build_coverage(self) -> BaseCoverage:
        """Override in subclasses: coverage model."""
        raise NotImplementedError("Implement build_coverage here")

    def expects_drop(self, tr: Transaction) -> bool:
        """True when the outputs of tr are deliberately dropped."""
        return tr.seq in self.drop_whitelist

    @property
    def seed(self) -> int | None:
        """Seed reported in the session report."""
        return None

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def subscribe(
        self, fn: Callable[[utils_dv.EngineEvent], None]
    ) -> utils_dv.CallbackSubscriber:
        """Deliver every session event to fn."""
        return utils_dv.subscribe(self.events, fn)

    def cancel(self) -> None:
        """Request cancellation (safe to call from an event subscriber)."""
        if not self._cancelled:
            self.logger.warning("cancellation requested")
        self._cancelled = True

    def run(self) -> SessionReport:
        """Run the session to completion on a fresh event loop."""
        return asyncio.run(self.run_async())

    async def run_async(self) -> SessionReport:
        """Run the session inside an existing event loop."""
        self.logger.debug("run_phase begin")
        if self.report_ is not None:
            raise RuntimeError(f"{self.name}: session already ran")
        self._sem = asyncio.Semaphore(self.max_in_flight)
        self._queue = asyncio.Queue()
        self.events.write(
            utils_dv.EngineEvent(
                "session_started",
                {"tag": self.tag, "seed": self.seed, "transactions": len(self.sequence)},
            )
        )

        scorer = asyncio.create_task(self._score(), name=f"{self.name}.scorer")
        workers = [
            asyncio.create_task(self._produce(), name=f"{self.name}.producer"),
            asyncio.create_task(self._collect(), name=f"{self.name}.collector"),
        ]
        try:
            await asyncio.gather(*workers)
        except PairingBufferExhausted as exc:
            self._aborted = str(exc)
            self.logger.error("session aborted: %s", exc)
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            self._drain_cancelled()
        finally:
            self._queue.put_nowait(None)
            await scorer

        report = self.build_report()
        self.report_ = report
        self.report_phase(report)
        self.events.write(
            utils_dv.EngineEvent(
                "session_finished",
                {"tag": self.tag, "status": report.status.value,
                 "agreement_rate": report.agreement_rate},
            )
        )
        self.logger.debug("run_phase end")
        return report

    async def _produce(self) -> None:
        assert self._sem is not None
        try:
            for tr in self.sequence:
                if self._cancelled:
                    break
                await self._acquire()
                if self._cancelled:
                    self._sem.release()
                    break
                expected = self.expects_drop(tr)
                for buf in self.buffers.values():
                    if expected:
                        buf.expect_drop(tr.seq)
                    buf.push_input(tr)
                self._outstanding[tr.seq] = len(self.buffers)
                self.issued_cnt += 1
                self.events.write(
                    utils_dv.EngineEvent("transaction_generated", tr.to_dict())
                )
                self.coverage.write(tr)
                await self.dut.apply(tr)
                if not self.buffers:
                    self._sem.release()
                # Let the collector run between issues.
                await asyncio.sleep(0)
        finally:
            await self.dut.close()

    async def _acquire(self) -> None:
        assert self._sem is not None
        try:
            await asyncio.wait_for(self._sem.acquire(), self.stall_timeout_s)
        except asyncio.TimeoutError as exc:
            self._aborted = (
                f"no pair resolved for {self.stall_timeout_s:g}s with "
                f"{len(self._outstanding)} transactions in flight"
            )
            raise PairingBufferExhausted(self._aborted) from exc

    async def _collect(self) -> None:
        async for out in self.dut.outputs():
            buf = self.buffers.get(out.stage)
            if buf is None:
                self.logger.debug("unchecked stage %s seq=%d", out.stage.value, out.seq)
                continue
            buf.push_output(out)
            self._dispatch(buf.pop_ready())
        if self._cancelled or self._aborted is not None:
            self._drain_cancelled()
        else:
            for buf in self.buffers.values():
                self._dispatch(buf.flush())

    def _drain_cancelled(self) -> None:
        for buf in self.buffers.values():
            ready, discarded = buf.cancel()
            self._dispatch(ready)
            for tr in discarded:
                self.discarded_cnt += 1
                self.logger.info("seq=%d %s discarded in flight", tr.seq, buf.stage.value)

    def _dispatch(self, pairs: list[MatchedPair]) -> None:
        assert self._queue is not None and self._sem is not None
        for pair in pairs:
            self._queue.put_nowait(pair)
            left = self._outstanding.get(pair.seq)
            if left is None:
                continue
            if left > 1:
                self._outstanding[pair.seq] = left - 1
            else:
                del self._outstanding[pair.seq]
                self._sem.release()

    async def _score(self) -> None:
        assert self._queue is not None
        while True:
            pair = await self._queue.get()
            if pair is None:
                break
            self.scoreboard.score(pair)

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def status(self) -> SessionStatus:
        """Status derived from run state and scoreboard."""
        if self._aborted is not None:
            return SessionStatus.ABORTED
        if self._cancelled:
            return SessionStatus.CANCELLED
        return SessionStatus.PASSED if self.scoreboard.passed() else SessionStatus.FAILED

    def build_report(self) -> SessionReport:
        """Assemble the SessionReport from scoreboard, coverage and buffers."""
        sb = self.scoreboard
        cov = self.coverage
        overall = cov.overall_coverage()
        return SessionReport(
            status=self.status(),
            tag=self.tag,
            seed=self.seed,
            total_transactions=self.issued_cnt,
            pass_count=sb.pass_cnt,
            fail_count=sb.err_cnt,
            dropped_count=sb.drop_cnt,
            dropped_expected_count=sb.drop_exp_cnt,
            error_count=sb.model_err_cnt,
            agreement_rate=sb.agreement_rate,
            agreement_threshold=sb.agreement_threshold,
            coverage=cov.category_coverage(),
            overall_coverage=overall,
            coverage_target=self.coverage_target,
            coverage_target_met=overall >= self.coverage_target,
            uncovered_required_bins=cov.uncovered_required(),
            corner_case_hits=cov.corner_hits(),
            failing_verdicts=[v.to_dict() for v in sb.failing_verdicts()],
            annotated_count=sb.annotated_cnt,
            duplicate_outputs=sum(b.duplicate_cnt for b in self.buffers.values()),
            late_outputs=sum(b.late_cnt for b in self.buffers.values()),
            discarded_in_flight=self.discarded_cnt,
            error=self._aborted,
        )

    def report_phase(self, report: SessionReport) -> None:
        """Log the component reports and the session verdict."""
        self.logger.debug("report_phase begin")
        self.scoreboard.report()
        self.coverage.report()
        if report.passed:
            self.logger.info("*** SESSION PASSED ***")
        else:
            self.logger.error(
                "*** SESSION %s *** (%d failing verdicts)",
                report.status.value,
                len(report.failing_verdicts),
            )
        self.logger.debug("report_phase end")
