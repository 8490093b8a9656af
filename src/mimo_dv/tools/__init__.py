# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/tools/__init__.py

"""MIMO DV tools package.

Command-line tools:
- mimo-dv: Run verification sessions against the software pipeline
- mimo-dv-regress: Run YAML-defined regression suites with merged coverage
"""
