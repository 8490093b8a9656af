# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: tests/conftest.py

"""Shared fixtures for the mimo-dv tests."""

from __future__ import annotations

from typing import Iterator

import pytest
import pyuvm

from mimo_dv.mimo.mimo_config import Configuration

# Session settings that utils_cli resolves from the environment.
_CLI_ENV = (
    "TRANSACTION_COUNT",
    "MODE",
    "CORNER_CASE_WEIGHT",
    "AGREEMENT_THRESHOLD",
    "COVERAGE_TARGET",
    "PLUSARGS",
    "COV_YAML",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _CLI_ENV:
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(f"MIMO_{name}", raising=False)


@pytest.fixture(autouse=True)
def _clear_uvm_hierarchy() -> Iterator[None]:
    yield
    pyuvm.uvm_root().clear_children()
    pyuvm.uvm_component.clear_components()


@pytest.fixture
def cfg4x4() -> Configuration:
    return Configuration(
        tx_antennas=4, rx_antennas=4, num_data_streams=2, modulation_scheme="QPSK"
    )
