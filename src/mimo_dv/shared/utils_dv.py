# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/shared/utils_dv.py

"""Design verification utilities shared by engine components.

Key Features:
    - Centralized log level management
    - Per-component logger construction
    - pyuvm analysis ports broadcasting structured engine events
    - Read-only array freezing and content fingerprints for transactions

Functions:
    Logging:
        desired_log_level(): Get log level from MIMO_LOG_LEVEL env var
        component_logger(): Return a configured logger for a named component
        configure_non_component_logger(): Configure logger for non-component

    Analysis ports:
        analysis_port(): Create a uvm_analysis_port with a unique name
        subscribe(): Connect a callable to a port via a uvm_subscriber

    Arrays:
        freeze(): Return a read-only copy of an array
        fingerprint(): Stable short hash of a mapping of arrays

Classes:
    EngineEvent: A structured event (kind + payload)
    CallbackSubscriber: uvm_subscriber forwarding writes to a callable

Example:
    >>> port = analysis_port("session_events")
    >>> seen = []
    >>> sub = subscribe(port, seen.append)
    >>> port.write(EngineEvent("verdict_recorded", {"seq": 3, "status": "PASS"}))
    >>> seen[0].kind
    'verdict_recorded'
"""

from __future__ import annotations

import hashlib
import itertools
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import numpy as np
import pyuvm


def desired_log_level(default: int = logging.INFO) -> int:
    """Return desired log level from env vars or default."""
    name = (os.getenv("MIMO_LOG_LEVEL") or "INFO").upper()
    return getattr(logging, name, default)


def configure_non_component_logger(logger: logging.Logger) -> None:
    """Configure logger for a non-component"""
    logger.setLevel(desired_log_level())
    # Bubble up to the root handlers (don't add new handlers)
    logger.propagate = True


def component_logger(name: str) -> logging.Logger:
    """Return the logger for an engine component ('mimo.<name>')."""
    logger = logging.getLogger(f"mimo.{name}")
    configure_non_component_logger(logger)
    return logger


def freeze(a: Any, dtype: Any = None) -> np.ndarray:
    """Return a read-only array copy of a."""
    arr = np.array(a, dtype=dtype, copy=True)
    arr.setflags(write=False)
    return arr


def fingerprint(data: Mapping[str, np.ndarray]) -> str:
    """Stable 16-hex-digit content hash of a mapping of arrays."""
    h = hashlib.blake2b(digest_size=8)
    for key in sorted(data):
        arr = np.ascontiguousarray(data[key])
        h.update(key.encode())
        h.update(str(arr.dtype).encode())
        h.update(str(arr.shape).encode())
        h.update(arr.tobytes())
    return h.hexdigest()


@dataclass(frozen=True)
class EngineEvent:
    """Structured event for an external transaction/waveform logger."""

    kind: str
    payload: Mapping[str, Any] = field(default_factory=dict)


_component_ids = itertools.count()


def unique_name(name: str) -> str:
    """Return name with a process-wide suffix, unique under uvm_root."""
    return f"{name}_{next(_component_ids)}"


def analysis_port(name: str) -> pyuvm.uvm_analysis_port:
    """Create a free-standing analysis port (parented to uvm_root)."""
    return pyuvm.uvm_analysis_port(unique_name(name), None)


class CallbackSubscriber(pyuvm.uvm_subscriber):
    """Subscriber forwarding every written event to a callable."""

    def __init__(self, name: str, fn: Callable[[EngineEvent], None]) -> None:
        super().__init__(unique_name(name), None)
        self.fn = fn

    def write(self, tt: EngineEvent) -> None:
        self.fn(tt)


def subscribe(
    port: pyuvm.uvm_analysis_port, fn: Callable[[EngineEvent], None]
) -> CallbackSubscriber:
    """Connect fn to port through a CallbackSubscriber's analysis_export."""
    sub = CallbackSubscriber("subscriber", fn)
    port.connect(sub.analysis_export)
    return sub
