# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/shared/__init__.py

"""DUT-agnostic verification engine infrastructure.

Base Classes:
- Transaction: Immutable, sequence-numbered item at one pipeline stage
- BaseRefModel / Prediction: Golden model and its per-stage expectations
- BaseSequence: Lazy, finite stimulus sequence
- PairingBuffer / MatchedPair: Input/output correlation with a bounded
  reorder window
- SbPredictor: Per-input prediction cache shared by every checked stage
- Scoreboard / Verdict: Tolerance-based comparison and verdict bookkeeping
- BaseCoverage / Dimension: Functional coverage on cocotb-coverage
- BaseSession / SessionReport: Async orchestration and final report

Utilities:
- utils_dv: Logging helpers, analysis ports, array freezing/fingerprints
- utils_cli: Environment / plusarg setting resolution
- errors: Error and warning taxonomy
"""

from __future__ import annotations

from mimo_dv import __version__

from . import errors, utils_cli, utils_dv
from .base_coverage import BaseCoverage, Dimension
from .base_item import OUTPUT_STAGES, Stage, Transaction
from .base_pairing import MatchedPair, PairingBuffer
from .base_ref_model import BaseRefModel, Prediction
from .base_sb_comparator import (
    FieldCheck,
    FieldTolerance,
    Scoreboard,
    Verdict,
    VerdictStatus,
)
from .base_sb_predictor import SbPredictor
from .base_sequence import BaseSequence
from .base_session import BaseSession, Dut, SessionReport, SessionStatus

__all__ = (
    "BaseCoverage",
    "BaseRefModel",
    "BaseSequence",
    "BaseSession",
    "Dimension",
    "Dut",
    "FieldCheck",
    "FieldTolerance",
    "MatchedPair",
    "OUTPUT_STAGES",
    "PairingBuffer",
    "Prediction",
    "SbPredictor",
    "Scoreboard",
    "SessionReport",
    "SessionStatus",
    "Stage",
    "Transaction",
    "Verdict",
    "VerdictStatus",
    "errors",
    "utils_cli",
    "utils_dv",
    "__version__",
)
