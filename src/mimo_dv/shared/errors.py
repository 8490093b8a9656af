# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/shared/errors.py

"""Error taxonomy for the verification engine.

Fatal to a single computation:
    ModelInputShapeMismatch: the reference model was given arrays whose
        shapes disagree with the Configuration. Only the affected pair is
        aborted (it receives an ERROR verdict).

Fatal at session start:
    ConfigurationInvalid: a Configuration or session option violates an
        invariant. Raised before any transaction is generated.

Catastrophic:
    PairingBufferExhausted: the pairing buffer or the in-flight window
        cannot make progress. The session ends early and still reports the
        results collected so far.

Non-fatal (warnings / annotations):
    SingularChannelMatrix: attached to verdicts whose channel is singular.
    CoverageBinUndefined: a sampled value matched no declared bin.

Recorded as verdicts:
    PairingTimeout: an output never arrived; the pair is Dropped.
"""

from __future__ import annotations


class MimoDvError(Exception):
    """Base class for engine errors."""


class MimoDvWarning(UserWarning):
    """Base class for engine warnings and verdict annotations."""


class ConfigurationInvalid(MimoDvError, ValueError):
    """Raised when a Configuration or SessionOptions fails validation."""


class ModelInputShapeMismatch(MimoDvError, ValueError):
    """Raised when reference-model inputs disagree with the Configuration."""


class PairingTimeout(MimoDvError):
    """An expected output did not arrive within the pairing timeout."""


class PairingBufferExhausted(MimoDvError, RuntimeError):
    """The pairing buffer or in-flight window overflowed or stalled."""


class ConfigKeyError(MimoDvError, KeyError):
    """Raised when a required key is missing from a job or scenario file."""


class SingularChannelMatrix(MimoDvWarning):
    """Channel matrix is singular; the estimate used a fallback."""

    def __init__(self, condition_number: float, where: str = "channel") -> None:
        super().__init__(f"{where} matrix is singular (cond={condition_number:.3g})")
        self.condition_number = condition_number
        self.where = where


class CoverageBinUndefined(MimoDvWarning):
    """A sampled value matched no declared coverage bin."""
