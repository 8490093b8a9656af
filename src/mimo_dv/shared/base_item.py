# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/shared/base_item.py

"""Immutable transaction item flowing through one pipeline interface point."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

import numpy as np

from . import utils_dv


class Stage(str, Enum):
    """Interface points of the encoder / decoder / estimator pipeline."""

    ENCODER_INPUT = "encoder_input"
    ENCODER_OUTPUT = "encoder_output"
    DECODER_OUTPUT = "decoder_output"
    CHANNEL_ESTIMATE = "channel_estimate"


OUTPUT_STAGES: tuple[Stage, ...] = (
    Stage.ENCODER_OUTPUT,
    Stage.DECODER_OUTPUT,
    Stage.CHANNEL_ESTIMATE,
)


@dataclass(frozen=True, eq=False)
class Transaction:
    """Timestamped, sequence-numbered record of symbol data at one stage.

    Transactions are immutable: the payload arrays are copied and frozen
    (write-protected) on construction and the mapping itself is read-only,
    so a transaction can be handed from the generator to the pairing buffer
    and then to the scoreboard and coverage model without copying.

    Fields:
        seq: Sequence number, strictly increasing on each input stream
        stage: Interface point the data was captured at
        timestamp: Logical time of issue (inputs) or observation (outputs)
        data: Named payload arrays (symbols, channel matrix, bits...)
        config: Back-reference to the Configuration active at generation
        attrs: Scenario metadata (scenario name, noise class, flags...)
        tag: Session tag; (tag, seq) is the transaction identity
        source_fingerprint: For outputs, the content fingerprint of the input
            they were computed from (optional, used for pairing checks)

    Example:
        >>> tr = Transaction(0, Stage.ENCODER_INPUT, 0.0, {"symbols": [[1 + 1j]]})
        >>> out = tr.derive(Stage.ENCODER_OUTPUT, {"encoded": [[1 + 1j]]}, 3.0)
        >>> out.source_fingerprint == tr.fingerprint()
        True
    """

    seq: int
    stage: Stage
    timestamp: float
    data: Mapping[str, np.ndarray]
    config: Any = None
    attrs: Mapping[str, Any] = field(default_factory=dict)
    tag: str = ""
    source_fingerprint: str | None = None

    def __post_init__(self) -> None:
        frozen = {k: utils_dv.freeze(v) for k, v in self.data.items()}
        object.__setattr__(self, "data", MappingProxyType(frozen))
        object.__setattr__(self, "attrs", MappingProxyType(dict(self.attrs)))
        object.__setattr__(self, "stage", Stage(self.stage))

    @property
    def identity(self) -> tuple[str, int]:
        """Identity used for deduplication: (session tag, seq)."""
        return (self.tag, self.seq)

    def fingerprint(self) -> str:
        """Content fingerprint of the payload arrays."""
        return utils_dv.fingerprint(self.data)

    def derive(
        self,
        stage: Stage,
        data: Mapping[str, Any],
        timestamp: float | None = None,
        *,
        echo_fingerprint: bool = True,
    ) -> Transaction:
        """Build an output transaction correlated with this input."""
        return Transaction(
            seq=self.seq,
            stage=stage,
            timestamp=self.timestamp if timestamp is None else timestamp,
            data=data,
            config=self.config,
            tag=self.tag,
            source_fingerprint=self.fingerprint() if echo_fingerprint else None,
        )

    def to_dict(self) -> dict[str, object]:
        """Structured view for logging/JSON (payload summarized by shape)."""
        return {
            "seq": self.seq,
            "stage": self.stage.value,
            "timestamp": self.timestamp,
            "tag": self.tag,
            "attrs": dict(self.attrs),
            "shapes": {k: list(v.shape) for k, v in self.data.items()},
            "fingerprint": self.fingerprint(),
        }

    def __str__(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, default=str)
