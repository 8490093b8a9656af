# SPDX-FileCopyrightText: 2026 Hugh Walsh
#
# SPDX-License-Identifier: MIT

# This file: src/mimo_dv/mimo/mimo_ref_model.py

"""Golden reference model of the MIMO encoder / channel estimator / decoder.

Every function here is pure: outputs depend only on the arguments, so two
calls with identical inputs are bit-reproducible and the software DUT can
reuse the same arithmetic.

Signal model:
    x = W s                       encoder: stream k drives antenna k
    y = H x + n                   channel
    Yp = H P + Np                 pilots through the same channel
    H_est = Yp P^H (P P^H)^-1     least-squares channel estimate
    s_hat = D(G) y, G = H_est W   ZF or MMSE linear detection

Channel condition (from the 2-norm condition number):
    singular          cond >= 1e8, or an all-zero matrix
    ill_conditioned   cond >= 1e2
    well_conditioned  otherwise

Reference:
    3GPP TS 38.211, section 5.1 (Gray-mapped BPSK/QPSK/16QAM/64QAM)
"""

from __future__ import annotations

import functools
import math
from typing import Mapping

import numpy as np

from ..shared.base_item import Stage, Transaction
from ..shared.base_ref_model import BaseRefModel, Prediction
from ..shared.errors import ModelInputShapeMismatch, SingularChannelMatrix
from .mimo_config import BITS_PER_SYMBOL, Configuration

SINGULAR_COND = 1e8
ILL_COND = 1e2
PINV_RCOND = 1e-8


# ----------------------------------------------------------------------
# Constellations
# ----------------------------------------------------------------------


def _pam_level(bits: tuple[int, ...]) -> int:
    """Gray PAM amplitude of one rail: (1-2b0)(2^(m-1) - level(b1..))."""
    sign = 1 - 2 * bits[0]
    if len(bits) == 1:
        return sign
    return sign * (2 ** (len(bits) - 1) - _pam_level(bits[1:]))


@functools.lru_cache(maxsize=None)
def constellation(scheme: str) -> np.ndarray:
    """Unit-energy Gray constellation indexed by the MSB-first bit label."""
    m = BITS_PER_SYMBOL[scheme]
    points = np.empty(2**m, dtype=np.complex128)
    for label in range(2**m):
        bits = tuple((label >> (m - 1 - i)) & 1 for i in range(m))
        if m == 1:
            points[label] = 1 - 2 * bits[0]
        else:
            points[label] = complex(_pam_level(bits[0::2]), _pam_level(bits[1::2]))
    points /= math.sqrt(float(np.mean(np.abs(points) ** 2)))
    points.setflags(write=False)
    return points


def modulate(bits: np.ndarray, scheme: str) -> np.ndarray:
    """Map a (streams, data_width) bit array to (streams, data_width/m) symbols."""
    m = BITS_PER_SYMBOL[scheme]
    bits = np.asarray(bits, dtype=np.int64)
    if bits.ndim != 2 or bits.shape[1] % m:
        raise ModelInputShapeMismatch(
            f"bits shape {bits.shape} not (streams, k*{m}) for {scheme}"
        )
    weights = 1 << np.arange(m - 1, -1, -1)
    labels = bits.reshape(bits.shape[0], -1, m) @ weights
    return constellation(scheme)[labels]


def demodulate(symbols: np.ndarray, scheme: str) -> np.ndarray:
    """Nearest-point hard decision back to a (streams, data_width) bit array."""
    m = BITS_PER_SYMBOL[scheme]
    points = constellation(scheme)
    symbols = np.asarray(symbols, dtype=np.complex128)
    labels = np.argmin(np.abs(symbols[..., None] - points) ** 2, axis=-1)
    shifts = np.arange(m - 1, -1, -1)
    bits = (labels[..., None] >> shifts) & 1
    return bits.reshape(symbols.shape[0], -1).astype(np.uint8)


# ----------------------------------------------------------------------
# Channel
# ----------------------------------------------------------------------


def condition_number(h: np.ndarray) -> float:
    """2-norm condition number; inf for rank-0 or exactly rank-deficient."""
    s = np.linalg.svd(np.asarray(h, dtype=np.complex128), compute_uv=False)
    if s.size == 0 or s[0] == 0.0 or s[-1] == 0.0:
        return math.inf
    return float(s[0] / s[-1])


def classify_channel(cond: float) -> str:
    """Map a condition number onto a channel-condition class."""
    if cond >= SINGULAR_COND:
        return "singular"
    if cond >= ILL_COND:
        return "ill_conditioned"
    return "well_conditioned"


@functools.lru_cache(maxsize=None)
def pilot_matrix(pattern: str, tx: int) -> np.ndarray:
    """Known pilot matrix P (tx x L) for a pilot pattern.

    block: one full DFT block, every antenna on every pilot slot
    comb: one antenna per slot (identity)
    scattered: identity followed by a DFT block (L = 2 * tx)
    """
    k = np.arange(tx)
    dft = np.exp(-2j * np.pi * np.outer(k, k) / tx)
    if pattern == "block":
        p = dft
    elif pattern == "comb":
        p = np.eye(tx, dtype=np.complex128)
    elif pattern == "scattered":
        p = np.concatenate([np.eye(tx, dtype=np.complex128), dft], axis=1)
    else:
        raise ValueError(f"unknown pilot pattern {pattern!r}")
    p = np.ascontiguousarray(p, dtype=np.complex128)
    p.setflags(write=False)
    return p


def pilot_length(pattern: str, tx: int) -> int:
    """Number of pilot slots L of a pattern."""
    return pilot_matrix(pattern, tx).shape[1]


def encode(symbols: np.ndarray, cfg: Configuration) -> np.ndarray:
    """Spatial multiplexing: stream k on antenna k, idle antennas send zero."""
    symbols = np.asarray(symbols, dtype=np.complex128)
    streams = symbols.shape[0] if symbols.ndim == 2 else 0
    if symbols.ndim != 2 or not 1 <= streams <= cfg.num_data_streams:
        raise ModelInputShapeMismatch(
            f"symbols shape {symbols.shape}: need (1..{cfg.num_data_streams}, n)"
        )
    if symbols.shape[1] != cfg.symbols_per_stream:
        raise ModelInputShapeMismatch(
            f"symbols shape {symbols.shape}: need {cfg.symbols_per_stream} per stream"
        )
    x = np.zeros((cfg.tx_antennas, symbols.shape[1]), dtype=np.complex128)
    x[:streams] = symbols
    return x


def transmit(h: np.ndarray, x: np.ndarray, noise: np.ndarray) -> np.ndarray:
    """Received samples y = H x + n."""
    return h @ x + noise


def estimate_channel(
    h: np.ndarray, pilots: np.ndarray, pilot_noise: np.ndarray
) -> tuple[np.ndarray, float]:
    """Least-squares estimate of H from pilots; returns (H_est, cond(H_est))."""
    yp = h @ pilots + pilot_noise
    ph = pilots.conj().T
    h_est = yp @ ph @ np.linalg.inv(pilots @ ph)
    return h_est, condition_number(h_est)


def detect(y: np.ndarray, g: np.ndarray, algorithm: str, noise_var: float) -> np.ndarray:
    """Linear detection of the streams carried by effective channel G.

    ZF is the truncated pseudo-inverse. MMSE solves
    (G^H G + s2 I) s = G^H y and falls back to the pseudo-inverse when the
    regularized Gram matrix is itself singular (noiseless and rank-deficient).
    """
    if algorithm == "ZF":
        return np.linalg.pinv(g, rcond=PINV_RCOND) @ y
    gh = g.conj().T
    gram = gh @ g + noise_var * np.eye(g.shape[1])
    if condition_number(gram) >= SINGULAR_COND:
        return np.linalg.pinv(g, rcond=PINV_RCOND) @ y
    return np.linalg.solve(gram, gh @ y)


# ----------------------------------------------------------------------
# Whole pipeline
# ----------------------------------------------------------------------


def check_shapes(data: Mapping[str, np.ndarray], cfg: Configuration) -> int:
    """Validate payload shapes against cfg; return the stream count."""
    for key in ("bits", "symbols", "channel", "noise", "pilot_noise"):
        if key not in data:
            raise ModelInputShapeMismatch(f"payload has no {key!r} array")
    symbols = data["symbols"]
    streams = symbols.shape[0] if symbols.ndim == 2 else 0
    n = cfg.symbols_per_stream
    want = {
        "bits": (streams, cfg.data_width),
        "symbols": (streams, n),
        "channel": (cfg.rx_antennas, cfg.tx_antennas),
        "noise": (cfg.rx_antennas, n),
        "pilot_noise": (
            cfg.rx_antennas,
            pilot_length(cfg.pilot_pattern, cfg.tx_antennas),
        ),
    }
    for key, shape in want.items():
        if data[key].shape != shape:
            raise ModelInputShapeMismatch(
                f"{key} shape {data[key].shape} != {shape} for {cfg.mimo_mode}"
            )
    if not 1 <= streams <= cfg.num_data_streams:
        raise ModelInputShapeMismatch(
            f"{streams} streams outside 1..{cfg.num_data_streams}"
        )
    return streams


def run_pipeline(
    data: Mapping[str, np.ndarray], cfg: Configuration, noise_var: float
) -> dict[str, np.ndarray | float]:
    """Compute every pipeline output for one payload.

    Returns encoded, decoded, bits, channel_estimate plus the condition
    numbers of the true channel (cond) and of the estimate (cond_est).
    """
    streams = check_shapes(data, cfg)
    h = np.asarray(data["channel"], dtype=np.complex128)
    x = encode(data["symbols"], cfg)
    y = transmit(h, x, data["noise"])
    h_est, cond_est = estimate_channel(
        h, pilot_matrix(cfg.pilot_pattern, cfg.tx_antennas), data["pilot_noise"]
    )
    soft = detect(y, h_est[:, :streams], cfg.detection_algorithm, noise_var)
    return {
        "encoded": x,
        "decoded": soft,
        "bits": demodulate(soft, cfg.modulation_scheme),
        "channel_estimate": h_est,
        "cond": condition_number(h),
        "cond_est": cond_est,
    }


def noise_variance(tr: Transaction) -> float:
    """Complex noise variance of a transaction (2 * per-component std^2)."""
    std = float(tr.attrs.get("noise_std", 0.0))
    return 2.0 * std * std


class MimoRefModel(BaseRefModel):
    """Reference model: expected encoder, decoder and estimator outputs.

    calc_exp(tr) runs the whole pipeline on an encoder-input transaction
    and returns one Prediction with the fields of every output stage:

        encoder_output    {"encoded": x}
        decoder_output    {"decoded": s_hat, "bits": b_hat}
        channel_estimate  {"channel_estimate": H_est}

    A singular true channel is not an error: the prediction is still
    computed (pseudo-inverse fallback) and carries a SingularChannelMatrix
    annotation. Payload shapes that disagree with the Configuration raise
    ModelInputShapeMismatch.
    """

    def calc_exp(self, tr: Transaction) -> Prediction:
        cfg = tr.config
        if not isinstance(cfg, Configuration):
            raise ModelInputShapeMismatch(f"seq {tr.seq}: transaction has no Configuration")
        out = run_pipeline(tr.data, cfg, noise_variance(tr))
        cond = float(out["cond"])
        annotations: tuple[SingularChannelMatrix, ...] = ()
        if classify_channel(cond) == "singular":
            annotations = (SingularChannelMatrix(cond),)
            self.logger.info("seq=%d %s", tr.seq, annotations[0])
        return Prediction(
            seq=tr.seq,
            fields={
                Stage.ENCODER_OUTPUT: {"encoded": out["encoded"]},
                Stage.DECODER_OUTPUT: {"decoded": out["decoded"], "bits": out["bits"]},
                Stage.CHANNEL_ESTIMATE: {"channel_estimate": out["channel_estimate"]},
            },
            annotations=annotations,
        )
