# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/shared/base_coverage.py

"""Base functional coverage model (cocotb-coverage)."""

from __future__ import annotations

import functools
import itertools
import math
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Mapping, Sequence

from cocotb_coverage.coverage import (
    CoverCross,
    CoverItem,
    CoverPoint,
    coverage_db,
    coverage_section,
)

from . import utils_dv
from .base_item import Transaction
from .errors import CoverageBinUndefined

_instance_ids = itertools.count()


class SparseCoverCross(CoverCross):
    """CoverCross that stores only the cross bins actually hit.

    cocotb-coverage's CoverCross enumerates the Cartesian product of its
    points' bins up front. Here the size is the product of the bin counts
    and detailed_coverage holds realized combinations only, so memory grows
    with what was observed rather than with the product.
    """

    def __init__(
        self, name: str, items: Sequence[str], weight: int = 1, at_least: int = 1
    ) -> None:
        if name in coverage_db:
            return
        CoverItem.__init__(self, name)  # pylint: disable=non-parent-init-called
        if self._parent is None:
            raise ValueError(f"CoverCross {name} must have a parent")
        self._weight = weight
        self._at_least = at_least
        self._items = list(items)
        self._hits: dict[tuple[Hashable, ...], int] = {}
        self._size = self._weight * math.prod(
            len(coverage_db[i].detailed_coverage) for i in self._items
        )
        self._parent._update_size(self._size)

    def __call__(self, f: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(f)
        def _wrapped_function(*cb_args: Any) -> Any:
            current_coverage = self.coverage
            self._new_hits = []
            hit_lists = [coverage_db[i]._new_hits for i in self._items]
            for x_bin_hit in itertools.product(*hit_lists):
                self._hits[x_bin_hit] = self._hits.get(x_bin_hit, 0) + 1
                self._new_hits.append(x_bin_hit)
            self._parent._update_coverage(self.coverage - current_coverage)
            return f(*cb_args)

        return _wrapped_function

    @property
    def coverage(self) -> int:
        return self._weight * sum(1 for n in self._hits.values() if n >= self._at_least)

    @property
    def detailed_coverage(self) -> dict[tuple[Hashable, ...], int]:
        return self._hits


@dataclass(frozen=True)
class Dimension:
    """One coverage dimension: a transform of the transaction plus its bins.

    corner dimensions are boolean predicates with the single bin True; a
    miss is normal for them and is not reported as CoverageBinUndefined.
    required marks corner cases that must be hit for the session to report
    full corner-case closure (subclasses may refine it with is_required).
    """

    name: str
    xf: Callable[[Transaction], Any]
    bins: tuple[Hashable, ...]
    corner: bool = False
    required: bool = True


class BaseCoverage:  # pylint: disable=too-many-instance-attributes
    """Functional coverage model built on cocotb-coverage.

    Bins are declared once, at construction, from the dimensions() and
    crosses() hooks and registered in cocotb-coverage's coverage_db as
    CoverPoint / SparseCoverCross items under a unique prefix, so two models
    (two sessions in one process) never share counters. Sampling goes
    through a coverage_section-decorated function, crosses listed after the
    points they combine. Cross totals are the product of the point bin
    counts; only realized cross bins are stored.

    Usage Pattern:
        1. Subclass BaseCoverage
        2. Override dimensions() (and optionally crosses())
        3. Call write(tr) for every observed transaction

    Guarantees:
        - write() deduplicates on transaction identity (tag, seq): replaying
          an already-counted transaction changes nothing
        - hit counts are monotonic and never exceed transactions sampled
        - a non-corner value that matches no declared bin is logged as a
          CoverageBinUndefined warning and counted, never raised

    Environment Variables:
        COV_YAML: Path to write coverage YAML report (optional)

    Example:
        >>> class ModCoverage(BaseCoverage):
        ...     def dimensions(self):
        ...         return [Dimension("mod", lambda tr: tr.attrs["mod"], ("QPSK", "16QAM"))]
        >>> cov = ModCoverage("cov")
        >>> cov.write(tr)
        >>> cov.category_coverage()["mod"]
        50.0
    """

    def __init__(self, name: str = "coverage", coverage_en: bool = True) -> None:
        self.logger = utils_dv.component_logger(name)
        self.prefix: str = f"{name}_{next(_instance_ids)}"
        self.yaml_path: str | None = os.getenv("COV_YAML")
        self.coverage_en = coverage_en
        self.events = utils_dv.analysis_port(f"{name}_events")

        self._lock = threading.Lock()
        self._seen: set[tuple[str, int]] = set()
        self.sampled_cnt: int = 0
        self.replay_cnt: int = 0
        self.undefined_cnt: int = 0

        self._dims: dict[str, Dimension] = {d.name: d for d in self.dimensions()}
        self._crosses: dict[str, tuple[str, ...]] = {
            n: tuple(items) for n, items in self.crosses().items()
        }
        for cname, items in self._crosses.items():
            unknown = [i for i in items if i not in self._dims]
            if len(items) < 2 or unknown:
                raise ValueError(f"cross {cname}: bad items {items}")
        self._sample = self._build()

    def dimensions(self) -> Sequence[Dimension]:  # pragma: no cover - abstract hook
        """Override in subclasses: declared dimensions."""
        raise NotImplementedError("Override in subclass to declare dimensions")

    def crosses(self) -> Mapping[str, Sequence[str]]:
        """Override in subclasses: cross name -> dimension names."""
        return {}

    def _full(self, name: str) -> str:
        return f"{self.prefix}.{name}"

    def _build(self) -> Callable[[Transaction], None]:
        self.logger.debug("build begin: %s", self.prefix)
        items: list[Any] = [
            CoverPoint(self._full(d.name), xf=d.xf, bins=list(d.bins))
            for d in self._dims.values()
        ]
        items += [
            SparseCoverCross(self._full(c), items=[self._full(i) for i in dims])
            for c, dims in self._crosses.items()
        ]

        @coverage_section(*items)
        def sample(tr: Transaction) -> None:  # pylint: disable=unused-argument
            return None

        self.logger.debug(
            "build end: %d points, %d crosses", len(self._dims), len(self._crosses)
        )
        return sample

    def write(self, tr: Transaction) -> bool:
        """Sample one transaction; return False if it was already counted."""
        if not self.coverage_en:
            return False
        with self._lock:
            if tr.identity in self._seen:
                self.replay_cnt += 1
                self.logger.debug("replay of %s ignored", tr.identity)
                return False
            self._seen.add(tr.identity)
            values = {n: d.xf(tr) for n, d in self._dims.items()}
            self._sample(tr)
            self.sampled_cnt += 1

        for n, d in self._dims.items():
            if values[n] in d.bins:
                self._hit(n, values[n], tr)
            elif not d.corner:
                self.undefined_cnt += 1
                self.logger.warning(
                    "%s: seq=%d value %r of %s matches no bin",
                    CoverageBinUndefined.__name__,
                    tr.seq,
                    values[n],
                    n,
                )
        for c, dims in self._crosses.items():
            key = tuple(values[i] for i in dims)
            if all(values[i] in self._dims[i].bins for i in dims):
                self._hit(c, key, tr)
        return True

    def _hit(self, category: str, key: Any, tr: Transaction) -> None:
        self.events.write(
            utils_dv.EngineEvent(
                "coverage_bin_hit",
                {"category": category, "bin": key, "seq": tr.seq, "tag": tr.tag},
            )
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def bin_count(self, category: str) -> int:
        """Number of declared bins of a dimension or cross."""
        if category in self._dims:
            return len(self._dims[category].bins)
        return math.prod(len(self._dims[d].bins) for d in self._crosses[category])

    def bin_hits(self, category: str) -> dict[Hashable, int]:
        """Hit counts of a category.

        Dimensions list every declared bin (zero hits included); crosses
        list only the realized combinations, keyed by tuple.
        """
        detailed = coverage_db[self._full(category)].detailed_coverage
        if category in self._crosses:
            return {b: int(n) for b, n in detailed.items()}
        return {b: int(detailed.get(b, 0)) for b in self._dims[category].bins}

    def hits(self) -> dict[tuple[Hashable, ...], int]:
        """Flat view {(category, bin...): hits} of every realized bin."""
        flat: dict[tuple[Hashable, ...], int] = {}
        for category in itertools.chain(self._dims, self._crosses):
            for b, n in self.bin_hits(category).items():
                if n:
                    key = b if isinstance(b, tuple) else (b,)
                    flat[(category, *key)] = n
        return flat

    def category_coverage(self, include_corners: bool = False) -> dict[str, float]:
        """Percentage of hit bins per category (dimensions then crosses)."""
        out: dict[str, float] = {}
        for category in itertools.chain(self._dims, self._crosses):
            dim = self._dims.get(category)
            if dim is not None and dim.corner and not include_corners:
                continue
            total = self.bin_count(category)
            covered = sum(1 for n in self.bin_hits(category).values() if n > 0)
            out[category] = 100.0 * covered / total if total else 0.0
        return out

    def overall_coverage(self) -> float:
        """hit_bins / total_bins over all non-corner dimensions and crosses."""
        covered = total = 0
        for category in itertools.chain(self._dims, self._crosses):
            dim = self._dims.get(category)
            if dim is not None and dim.corner:
                continue
            total += self.bin_count(category)
            covered += sum(1 for n in self.bin_hits(category).values() if n > 0)
        return 100.0 * covered / total if total else 0.0

    def corner_hits(self) -> dict[str, int]:
        """Hit count of every corner-case dimension."""
        return {
            n: self.bin_hits(n).get(True, 0)
            for n, d in self._dims.items()
            if d.corner
        }

    def is_required(self, name: str) -> bool:
        """Whether corner case name must be hit."""
        return self._dims[name].required

    def uncovered_required(self) -> list[str]:
        """Required corner cases never hit."""
        hits = self.corner_hits()
        return [n for n in hits if self.is_required(n) and not hits[n]]

    def max_bin_hits(self) -> int:
        """Largest single-bin hit count (never exceeds sampled_cnt)."""
        flat = self.hits()
        return max(flat.values()) if flat else 0

    def report(self) -> None:
        """Emit coverage report (and optional YAML)."""
        self.logger.debug("report begin")
        if not self.coverage_en:
            return
        coverage_db.report_coverage(self.logger.debug, bins=False, node=self.prefix)
        overall = self.overall_coverage()
        self.logger.info(
            "%s summary: sampled=%d replays=%d undefined=%d overall=%.1f%%",
            self.prefix,
            self.sampled_cnt,
            self.replay_cnt,
            self.undefined_cnt,
            0.0 if math.isnan(overall) else overall,
        )
        if self.yaml_path:
            self.export_yaml(self.yaml_path)
        self.logger.debug("report end")

    def export_yaml(self, path: str | os.PathLike[str]) -> None:
        """Write coverage_db to a YAML file."""
        coverage_db.export_to_yaml(str(path))
        self.logger.debug("Coverage YAML written to %s", path)
