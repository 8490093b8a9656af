# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/shared/base_sb_comparator.py

"""Tolerance-based comparator and verdict bookkeeping."""

from __future__ import annotations

import json
import math
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Mapping, Sequence

import numpy as np

from . import utils_dv
from .base_item import Stage
from .base_pairing import MatchedPair
from .base_sb_predictor import SbPredictor
from .errors import ModelInputShapeMismatch

CheckKind = Literal["magnitude", "phase", "ber", "value"]


class VerdictStatus(str, Enum):
    """Verdict categories."""

    PASS = "PASS"
    FAIL = "FAIL"
    DROPPED = "DROPPED"
    DROPPED_EXPECTED = "DROPPED_EXPECTED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class FieldTolerance:
    """Absolute and relative tolerance of one compared field.

    The effective limit is abs_tol + rel_tol * scale, where scale is the
    largest expected value of the field (in the field's own units).
    """

    abs_tol: float = 0.0
    rel_tol: float = 0.0

    def limit(self, scale: float) -> float:
        """Effective tolerance for a field whose expected values peak at scale."""
        return self.abs_tol + self.rel_tol * scale


@dataclass(frozen=True)
class FieldCheck:
    """How one output array is projected and compared.

    kinds:
        magnitude: max | |actual| - |expected| |
        phase: max wrapped angle(actual) - angle(expected), only over
            elements with |expected| >= floor (phase is meaningless near 0)
        ber: fraction of mismatching elements (bit error rate)
        value: max |actual - expected|
    """

    name: str
    key: str
    kind: CheckKind
    floor: float = 0.0

    def measure(self, actual: np.ndarray, expected: np.ndarray) -> tuple[float, float]:
        """Return (deviation, scale) of actual against expected."""
        if actual.shape != expected.shape:
            return math.inf, 0.0
        if expected.size == 0:
            return 0.0, 0.0
        if self.kind == "ber":
            return float(np.mean(actual != expected)), 1.0
        if self.kind == "magnitude":
            ref = np.abs(expected)
            dev = np.abs(np.abs(actual) - ref)
        elif self.kind == "phase":
            mask = np.abs(expected) >= self.floor
            if not np.any(mask):
                return 0.0, 0.0
            ref = np.abs(np.angle(expected[mask]))
            dev = np.abs(np.angle(actual[mask] * np.conj(expected[mask])))
        else:
            ref = np.abs(expected)
            dev = np.abs(actual - expected)
        d = float(np.max(dev))
        return (math.inf if math.isnan(d) else d), float(np.max(ref))


@dataclass(frozen=True)
class Verdict:  # pylint: disable=too-many-instance-attributes
    """Outcome of scoring one MatchedPair."""

    seq: int
    stage: Stage
    status: VerdictStatus
    deviation: float = 0.0
    tolerance: float = 0.0
    worst_field: str = ""
    reason: str = ""
    annotations: tuple[str, ...] = ()
    deviations: Mapping[str, float] = field(default_factory=dict)
    tag: str = ""

    @property
    def passed(self) -> bool:
        """True for PASS verdicts."""
        return self.status is VerdictStatus.PASS

    def to_dict(self) -> dict[str, object]:
        """Structured view for logging/JSON."""
        return {
            "seq": self.seq,
            "stage": self.stage.value,
            "status": self.status.value,
            "deviation": self.deviation,
            "tolerance": self.tolerance,
            "worst_field": self.worst_field,
            "reason": self.reason,
            "annotations": list(self.annotations),
            "deviations": dict(self.deviations),
            "tag": self.tag,
        }

    def __str__(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, default=str)


def _ratio(dev: float, lim: float) -> float:
    if lim > 0:
        return dev / lim
    return math.inf if dev > 0 else 0.0


class Scoreboard:  # pylint: disable=too-many-instance-attributes
    """Scoreboard adjudicating MatchedPairs against reference predictions.

    For each pair the predictor supplies the expected arrays; every
    FieldCheck of the pair's stage is measured and compared with its
    tolerance. A pair passes iff every deviation <= its tolerance (equality
    passes); otherwise the verdict records the field with the largest
    deviation relative to its tolerance.

    Architecture:
        MatchedPair --> SbPredictor --> expected --+
                    |                              +--> FieldChecks --> Verdict
                    +--> output ------------------+

    Statistics:
        vect_cnt: Total verdicts recorded
        pass_cnt / err_cnt: PASS / FAIL verdicts
        drop_cnt: DROPPED verdicts (unexpected drops, scored as failures)
        drop_exp_cnt: DROPPED_EXPECTED verdicts (not scored)
        model_err_cnt: ERROR verdicts (reference model rejected the input)

    Agreement rate:
        pass_cnt / (pass_cnt + err_cnt + drop_cnt + model_err_cnt), 0.0 when
        nothing was scored. passed() compares the final rate with
        agreement_threshold.

    Every verdict is published on results_ap (a uvm_analysis_port) as a
    'verdict_recorded'
    EngineEvent. Counters are updated under a lock so scoring from worker
    threads cannot lose updates.

    Reference:
        C.E. Cummings, "OVM/UVM Scoreboards - Fundamental Architectures,"
        SNUG 2013 (Silicon Valley)
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        predictor: SbPredictor,
        checks: Mapping[Stage, Sequence[FieldCheck]],
        tolerances: Mapping[str, FieldTolerance],
        *,
        agreement_threshold: float = 0.999,
        name: str = "scoreboard",
    ) -> None:
        self.logger = utils_dv.component_logger(name)
        self.predictor = predictor
        self.checks = {Stage(k): tuple(v) for k, v in checks.items()}
        self.tolerances = dict(tolerances)
        self.agreement_threshold = agreement_threshold
        self.results_ap = utils_dv.analysis_port(f"{name}_results_ap")
        missing = [
            c.name
            for cs in self.checks.values()
            for c in cs
            if c.name not in self.tolerances
        ]
        if missing:
            raise KeyError(f"no tolerance for fields {missing}")

        self._lock = threading.Lock()
        self.verdicts: list[Verdict] = []
        self.vect_cnt: int = 0
        self.pass_cnt: int = 0
        self.err_cnt: int = 0
        self.drop_cnt: int = 0
        self.drop_exp_cnt: int = 0
        self.model_err_cnt: int = 0
        self.annotated_cnt: int = 0

    @property
    def scored_cnt(self) -> int:
        """Verdicts that count toward the agreement rate."""
        return self.pass_cnt + self.err_cnt + self.drop_cnt + self.model_err_cnt

    @property
    def agreement_rate(self) -> float:
        """Running agreement rate."""
        scored = self.scored_cnt
        return self.pass_cnt / scored if scored else 0.0

    def passed(self) -> bool:
        """True when something was scored and the rate meets the threshold."""
        return self.scored_cnt > 0 and self.agreement_rate >= self.agreement_threshold

    def failing_verdicts(self) -> list[Verdict]:
        """Every verdict that counts as a failure."""
        bad = (VerdictStatus.FAIL, VerdictStatus.DROPPED, VerdictStatus.ERROR)
        return [v for v in self.verdicts if v.status in bad]

    def score(self, pair: MatchedPair) -> Verdict:
        """Adjudicate one pair, record and publish the verdict."""
        try:
            verdict = self._adjudicate(pair)
        finally:
            self.predictor.release(pair.input, pair.stage)
        self._record(verdict)
        return verdict

    def _adjudicate(self, pair: MatchedPair) -> Verdict:
        base = {"seq": pair.seq, "stage": pair.stage, "tag": pair.input.tag}
        if pair.dropped or pair.output is None:
            status = (
                VerdictStatus.DROPPED_EXPECTED
                if pair.expected_drop
                else VerdictStatus.DROPPED
            )
            return Verdict(status=status, reason=pair.reason or "no output", **base)

        try:
            pred = self.predictor.write(pair.input)
        except ModelInputShapeMismatch as exc:
            return Verdict(status=VerdictStatus.ERROR, reason=str(exc), **base)
        annotations = pred.annotation_names()

        src = pair.output.source_fingerprint
        if src is not None and src != pair.input.fingerprint():
            return Verdict(
                status=VerdictStatus.FAIL,
                deviation=math.inf,
                reason="fingerprint mismatch",
                annotations=annotations,
                **base,
            )

        expected = pred.fields.get(pair.stage, {})
        deviations: dict[str, float] = {}
        limits: dict[str, float] = {}
        reasons: list[str] = []
        for check in self.checks.get(pair.stage, ()):
            act = pair.output.data.get(check.key)
            exp = expected.get(check.key)
            if act is None or exp is None:
                deviations[check.name] = math.inf
                limits[check.name] = 0.0
                reasons.append(f"{check.key} missing")
                continue
            dev, scale = check.measure(np.asarray(act), np.asarray(exp))
            if dev == math.inf and act.shape != exp.shape:
                reasons.append(f"{check.key} shape {act.shape} != {exp.shape}")
            deviations[check.name] = dev
            limits[check.name] = self.tolerances[check.name].limit(scale)

        if not deviations:
            return Verdict(status=VerdictStatus.PASS, annotations=annotations, **base)

        failing = [f for f in deviations if deviations[f] > limits[f]]
        pool = failing or list(deviations)
        worst = max(pool, key=lambda f: _ratio(deviations[f], limits[f]))
        return Verdict(
            status=VerdictStatus.FAIL if failing else VerdictStatus.PASS,
            deviation=deviations[worst],
            tolerance=limits[worst],
            worst_field=worst,
            reason="; ".join(reasons) if failing and reasons else "",
            annotations=annotations,
            deviations=deviations,
            **base,
        )

    def _record(self, v: Verdict) -> None:
        with self._lock:
            self.verdicts.append(v)
            self.vect_cnt += 1
            if v.status is VerdictStatus.PASS:
                self.pass_cnt += 1
            elif v.status is VerdictStatus.FAIL:
                self.err_cnt += 1
            elif v.status is VerdictStatus.DROPPED:
                self.drop_cnt += 1
            elif v.status is VerdictStatus.DROPPED_EXPECTED:
                self.drop_exp_cnt += 1
            else:
                self.model_err_cnt += 1
            if v.annotations:
                self.annotated_cnt += 1
            rate = self.agreement_rate

        if v.status is VerdictStatus.PASS:
            self.logger.debug("PASS %s", v)
        elif v.status is VerdictStatus.DROPPED_EXPECTED:
            self.logger.info("EXPECTED DROP %s", v)
        else:
            self.logger.error("%s %s", v.status.value, v)
        self.results_ap.write(
            utils_dv.EngineEvent(
                "verdict_recorded",
                {
                    "seq": v.seq,
                    "stage": v.stage.value,
                    "status": v.status.value,
                    "worst_field": v.worst_field,
                    "deviation": v.deviation,
                    "annotations": list(v.annotations),
                    "agreement_rate": rate,
                },
            )
        )

    def report(self) -> None:
        """Log the end-of-session summary."""
        self.logger.debug("report begin")
        if self.passed():
            self.logger.info(
                "*** SCOREBOARD PASSED - %d ran, %d passed, agreement %.4f ***",
                self.vect_cnt,
                self.pass_cnt,
                self.agreement_rate,
            )
        else:
            self.logger.error(
                "*** SCOREBOARD FAILED - %d ran, %d passed, %d failed, %d dropped, "
                "%d errors, agreement %.4f (threshold %.4f) ***",
                self.vect_cnt,
                self.pass_cnt,
                self.err_cnt,
                self.drop_cnt,
                self.model_err_cnt,
                self.agreement_rate,
                self.agreement_threshold,
            )
        self.logger.debug("report end")
