# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: tests/test_utils_dv.py

"""Tests for the engine's analysis ports and array helpers."""

from __future__ import annotations

import numpy as np
import pytest
import pyuvm

from mimo_dv.shared import utils_dv


class TestAnalysisPorts:
    """Event fan-out over pyuvm analysis ports."""

    def test_broadcast_in_connection_order(self) -> None:
        port = utils_dv.analysis_port("events")
        seen: list[tuple[str, str]] = []
        utils_dv.subscribe(port, lambda e: seen.append(("first", e.kind)))
        utils_dv.subscribe(port, lambda e: seen.append(("second", e.kind)))
        port.write(utils_dv.EngineEvent("session_started"))
        assert seen == [("first", "session_started"), ("second", "session_started")]

    def test_write_without_subscribers(self) -> None:
        port = utils_dv.analysis_port("events")
        port.write(utils_dv.EngineEvent("session_started"))

    def test_ports_are_uvm_components(self) -> None:
        a = utils_dv.analysis_port("events")
        b = utils_dv.analysis_port("events")
        assert isinstance(a, pyuvm.uvm_analysis_port)
        assert a.get_name() != b.get_name()

    def test_subscriber_is_uvm_subscriber(self) -> None:
        sub = utils_dv.subscribe(utils_dv.analysis_port("events"), lambda e: None)
        assert isinstance(sub, pyuvm.uvm_subscriber)

    def test_rejects_non_export(self) -> None:
        port = utils_dv.analysis_port("events")
        with pytest.raises(pyuvm.UVMTLMConnectionError):
            port.connect(print)


class TestArrays:
    """Read-only arrays and fingerprints."""

    def test_freeze(self) -> None:
        src = [1.0, 2.0]
        arr = utils_dv.freeze(src)
        assert not arr.flags.writeable
        with pytest.raises(ValueError):
            arr[0] = 3.0

    def test_fingerprint(self) -> None:
        a = {"symbols": np.arange(4), "noise": np.zeros(2)}
        b = {"noise": np.zeros(2), "symbols": np.arange(4)}
        assert utils_dv.fingerprint(a) == utils_dv.fingerprint(b)
        assert len(utils_dv.fingerprint(a)) == 16
        assert utils_dv.fingerprint(a) != utils_dv.fingerprint({"symbols": np.arange(5)})
