# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/mimo/__init__.py

"""MIMO encoder / decoder / channel-estimator verification.

Modules:
- mimo_config: Configuration and SessionOptions (pydantic), scenario YAML
- mimo_ref_model: Golden model (constellations, LS estimate, ZF/MMSE)
- mimo_sequence: Weighted constrained-random / directed stimulus
- mimo_coverage: Dimensions, crosses and corner cases
- mimo_sb: Field checks and tolerance profile
- mimo_dut: Software pipeline usable as the DUT
- mimo_session: VerificationSession tying everything together
"""

from __future__ import annotations

from .mimo_config import Configuration, SessionOptions, load_scenario
from .mimo_coverage import MimoCoverage
from .mimo_dut import SoftwarePipeline
from .mimo_ref_model import MimoRefModel
from .mimo_sb import MimoScoreboard, default_tolerance_profile
from .mimo_sequence import StimulusGenerator
from .mimo_session import VerificationSession, run_session

__all__ = (
    "Configuration",
    "MimoCoverage",
    "MimoRefModel",
    "MimoScoreboard",
    "SessionOptions",
    "SoftwarePipeline",
    "StimulusGenerator",
    "VerificationSession",
    "default_tolerance_profile",
    "load_scenario",
    "run_session",
)
