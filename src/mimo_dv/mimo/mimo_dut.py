# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/mimo/mimo_dut.py

"""Software model of the MIMO pipeline, driven through the DUT boundary."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Iterable

import numpy as np

from ..shared import utils_dv
from ..shared.base_item import OUTPUT_STAGES, Stage, Transaction
from . import mimo_ref_model as ref


def quantize(a: np.ndarray, lsb: float) -> np.ndarray:
    """Round I and Q to the nearest multiple of lsb (no saturation)."""
    a = np.asarray(a, dtype=np.complex128)
    return np.round(a.real / lsb) * lsb + 1j * np.round(a.imag / lsb) * lsb


class SoftwarePipeline:  # pylint: disable=too-many-instance-attributes
    """Encoder / estimator / decoder model with a transaction interface.

    Each applied input produces one output transaction per stage, computed
    with the reference arithmetic and rounded to the fixed-point output
    grid (LSB = 2**-(symbol_width-4)). Outputs are stamped
    timestamp + latency and can be held in a reorder pool of
    reorder_depth entries, released in seeded random order, to model a
    reordering stage.

    Fault injection:
        drop_seqs: sequence numbers whose outputs never appear
        inject drops: inputs with attrs['inject_drop'] are dropped too
            (honor_inject_drop=False disables this)
        corrupt_seqs: sequence numbers whose outputs are offset by
            corrupt_offset (and whose first decoded bit is flipped)

    Interface:
        await apply(tr), await close(), async for out in outputs()
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        *,
        latency: float = 3.0,
        reorder_depth: int = 0,
        seed: int = 0,
        drop_seqs: Iterable[int] = (),
        corrupt_seqs: Iterable[int] = (),
        corrupt_offset: float = 0.25,
        honor_inject_drop: bool = True,
        stages: Iterable[Stage] = OUTPUT_STAGES,
        name: str = "dut",
    ) -> None:
        if reorder_depth < 0:
            raise ValueError(f"{reorder_depth=}")
        self.logger = utils_dv.component_logger(name)
        self.latency = latency
        self.reorder_depth = reorder_depth
        self.rng = np.random.default_rng(seed)
        self.drop_seqs = frozenset(drop_seqs)
        self.corrupt_seqs = frozenset(corrupt_seqs)
        self.corrupt_offset = corrupt_offset
        self.honor_inject_drop = honor_inject_drop
        self.stages = tuple(Stage(s) for s in stages)
        self.applied_cnt: int = 0
        self.emitted_cnt: int = 0
        self.dropped_cnt: int = 0
        self._pool: list[Transaction] = []
        self._queue: asyncio.Queue[Transaction | None] = asyncio.Queue()
        self._closed = False

    async def apply(self, tr: Transaction) -> None:
        """Process one encoder-input transaction."""
        if self._closed:
            raise RuntimeError(f"{self.logger.name}: apply() after close()")
        self.applied_cnt += 1
        if tr.seq in self.drop_seqs or (
            self.honor_inject_drop and tr.attrs.get("inject_drop")
        ):
            self.dropped_cnt += 1
            self.logger.debug("seq=%d outputs dropped", tr.seq)
            return
        for out in self.compute(tr):
            self._pool.append(out)
        while len(self._pool) > self.reorder_depth:
            self._emit(self._take())

    def compute(self, tr: Transaction) -> list[Transaction]:
        """Output transactions of one input, in stage order."""
        cfg = tr.config
        res = ref.run_pipeline(tr.data, cfg, ref.noise_variance(tr))
        lsb = cfg.lsb
        payload = {
            Stage.ENCODER_OUTPUT: {"encoded": quantize(res["encoded"], lsb)},
            Stage.DECODER_OUTPUT: {
                "decoded": quantize(res["decoded"], lsb),
                "bits": res["bits"],
            },
            Stage.CHANNEL_ESTIMATE: {
                "channel_estimate": quantize(res["channel_estimate"], lsb)
            },
        }
        if tr.seq in self.corrupt_seqs:
            payload = {s: self._corrupt(d) for s, d in payload.items()}
        ts = tr.timestamp + self.latency
        return [tr.derive(stage, payload[stage], ts) for stage in self.stages]

    def _corrupt(self, data: dict[str, np.ndarray]) -> dict[str, np.ndarray]:
        out: dict[str, np.ndarray] = {}
        for key, arr in data.items():
            if key == "bits":
                flipped = np.array(arr, copy=True)
                flipped.flat[0] ^= 1
                out[key] = flipped
            else:
                out[key] = arr + self.corrupt_offset
        return out

    def _take(self) -> Transaction:
        idx = int(self.rng.integers(len(self._pool))) if self.reorder_depth else 0
        return self._pool.pop(idx)

    def _emit(self, out: Transaction) -> None:
        self.emitted_cnt += 1
        self._queue.put_nowait(out)

    async def close(self) -> None:
        """Drain the reorder pool and end the output stream."""
        if self._closed:
            return
        self._closed = True
        while self._pool:
            self._emit(self._take())
        self._queue.put_nowait(None)
        self.logger.debug(
            "closed: applied=%d emitted=%d dropped=%d",
            self.applied_cnt, self.emitted_cnt, self.dropped_cnt,
        )

    async def outputs(self) -> AsyncIterator[Transaction]:
        """Observed outputs until close()."""
        while True:
            out = await self._queue.get()
            if out is None:
                return
            yield out
