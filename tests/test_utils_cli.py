# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: tests/test_utils_cli.py

"""Tests for env / plusarg setting resolution."""

from __future__ import annotations

import pytest

from mimo_dv.shared import utils_cli


class TestSettings:
    """Precedence: env > plusargs > default."""

    def test_default(self) -> None:
        assert utils_cli.get_int_setting("TRANSACTION_COUNT", 7) == 7
        assert utils_cli.get_str_setting("MODE", "random") == "random"

    def test_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRANSACTION_COUNT", "0x10")
        monkeypatch.setenv("MIMO_CORNER_CASE_WEIGHT", "0.5")
        assert utils_cli.get_int_setting("TRANSACTION_COUNT", 7) == 16
        assert utils_cli.get_float_setting("CORNER_CASE_WEIGHT", 0.2) == 0.5

    def test_plusargs(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("VERBOSE", raising=False)
        monkeypatch.setenv("PLUSARGS", "+MODE=directed +COVERAGE_TARGET=90 +VERBOSE")
        assert utils_cli.get_str_setting("MODE", "random") == "directed"
        assert utils_cli.get_float_setting("COVERAGE_TARGET", 100.0) == 90.0
        assert utils_cli.get_bool_setting("VERBOSE", False) is True

    def test_env_beats_plusargs(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLUSARGS", "+MODE=mixed")
        monkeypatch.setenv("MODE", "directed")
        assert utils_cli.get_str_setting("MODE", "random") == "directed"

    def test_unparsable_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRANSACTION_COUNT", "lots")
        monkeypatch.setenv("PLUSARGS", "+AGREEMENT_THRESHOLD=high")
        assert utils_cli.get_int_setting("TRANSACTION_COUNT", 7) == 7
        assert utils_cli.get_float_setting("AGREEMENT_THRESHOLD", 0.999) == 0.999

    def test_bool_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("COV_EN", raising=False)
        monkeypatch.setenv("MIMO_COV_EN", "off")
        assert utils_cli.get_bool_setting("COV_EN", True) is False
