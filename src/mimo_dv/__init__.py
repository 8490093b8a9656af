# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/__init__.py

"""mimo-dv: a simulator-agnostic verification engine for MIMO pipelines.

The engine drives an encoder / decoder / channel-estimator pipeline with
constrained-random and directed transactions, predicts the expected outputs
with a golden reference model, scores observed outputs within per-field
numeric tolerance and tracks functional coverage of the scenario space.

Main Components:

shared:
    DUT-agnostic verification infrastructure:
    - Transaction items and pipeline stages
    - Reference model, predictor and sequence base classes
    - Transaction pairing buffer with bounded reordering window
    - Tolerance-based scoreboard and agreement-rate tracking
    - cocotb-coverage based coverage base class
    - Asyncio session orchestration with cancellation and backpressure

mimo:
    MIMO pipeline specifics: configuration model, linear-algebra reference
    model, weighted scenario generator, coverage definition, scoreboard field
    checks, a software model of the pipeline and the verification session.

tools:
    Command-line entry points (mimo-dv, mimo-dv-regress).

utils:
    Common utilities used across the framework

For more information, see the individual module docstrings.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

try:
    __version__ = pkg_version("mimo-dv")
except PackageNotFoundError:
    __version__ = "0+local"
