"""
OPTRAN Water Vapor Line Optical Depth

For channels whose trained significance flag selects it, the water vapor
line component is computed with the OPTRAN model instead of the ODPS
regression:

    b[k, i]   = c[i, 0] + sum_j c[i, j] * Ap[k, j-1]       i = 0..np
    ln_chi[k] = b[k, 0] + sum_i b[k, i] * OX[k, idx[i-1]]
    OD[k]    += chi[k] * dA[k]

where chi = exp(ln_chi), saturated to LIMIT_LOG above LIMIT_EXP and to 0
below -LIMIT_EXP. The TL and AD contributions through chi vanish in both
saturated branches.
"""

import numpy as np
from typing import Optional, Tuple

from ..coefficients import ODPSCoefficients
from ..constants import LIMIT_EXP, LIMIT_LOG
from ..predictor import ChannelCache, Predictor


def saturate(ln_chi: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Exponentiate with saturation.

    Returns:
        chi: Saturated exp(ln_chi)
        active: True where chi is differentiable (not saturated)
    """
    ln_chi = np.asarray(ln_chi, dtype=np.float64)
    high = ln_chi > LIMIT_EXP
    low = ln_chi < -LIMIT_EXP
    active = ~(high | low)
    chi = np.zeros_like(ln_chi)
    chi[high] = LIMIT_LOG
    chi[active] = np.exp(ln_chi[active])
    return chi, active


def _channel_terms(coefficients: ODPSCoefficients, channel_index: int):
    optran = coefficients.optran
    block = optran.block(channel_index)
    return block, block.shape[1] - 1, optran.used_predictors(channel_index)


def _require_optran_cache(channel_cache: Optional[ChannelCache], channel_index: int):
    if channel_cache is None or channel_cache.ln_chi is None:
        raise RuntimeError(
            f"No OPTRAN forward values cached for channel {channel_index}"
        )
    return channel_cache


def add_optran_wlo_od(coefficients: ODPSCoefficients, channel_index: int,
                      predictor: Predictor, od: np.ndarray,
                      channel_cache: Optional[ChannelCache] = None):
    """
    Add the OPTRAN water vapor line optical depth of a channel.

    Args:
        coefficients: Coefficient table with an OPTRAN block
        channel_index: Channel (0-based)
        predictor: Forward predictors (Ap, OX, dA)
        od: Layer optical depth, shape (n_layers,). Updated in place.
        channel_cache: If given, b, ln_chi and chi are stored for TL/AD
    """
    if coefficients.optran.n_predictors[channel_index] <= 0:
        return
    block, order, idx = _channel_terms(coefficients, channel_index)

    b = block[:, 0] + predictor.Ap[:, :order] @ block[:, 1:].T
    ln_chi = b[:, 0] + np.sum(b[:, 1:] * predictor.OX[:, idx], axis=1)
    chi, _ = saturate(ln_chi)
    od += chi * predictor.dA

    if channel_cache is not None:
        channel_cache.b = b
        channel_cache.ln_chi = ln_chi
        channel_cache.chi = chi


def add_optran_wlo_od_tl(coefficients: ODPSCoefficients, channel_index: int,
                         predictor: Predictor, predictor_tl: Predictor,
                         od_tl: np.ndarray, channel_cache: ChannelCache):
    """
    Tangent-linear of add_optran_wlo_od; od_tl is updated in place.

    Raises:
        RuntimeError: If the forward OPTRAN values were not cached.
    """
    if coefficients.optran.n_predictors[channel_index] <= 0:
        return
    cache = _require_optran_cache(channel_cache, channel_index)
    block, order, idx = _channel_terms(coefficients, channel_index)
    _, active = saturate(cache.ln_chi)

    b_tl = predictor_tl.Ap[:, :order] @ block[:, 1:].T
    ln_chi_tl = b_tl[:, 0] + np.sum(b_tl[:, 1:] * predictor.OX[:, idx]
                                    + cache.b[:, 1:] * predictor_tl.OX[:, idx], axis=1)
    chi_tl = np.where(active, cache.chi * ln_chi_tl, 0.0)
    od_tl += chi_tl * predictor.dA + cache.chi * predictor_tl.dA


def add_optran_wlo_od_ad(coefficients: ODPSCoefficients, channel_index: int,
                         predictor: Predictor, od_ad: np.ndarray,
                         predictor_ad: Predictor, channel_cache: ChannelCache):
    """
    Adjoint of add_optran_wlo_od_tl.

    od_ad is read but not zeroed, since the other components of the
    channel consume the same layer optical depth adjoint. Ap, OX and dA
    adjoints are accumulated into predictor_ad.

    Raises:
        RuntimeError: If the forward OPTRAN values were not cached.
    """
    if coefficients.optran.n_predictors[channel_index] <= 0:
        return
    cache = _require_optran_cache(channel_cache, channel_index)
    block, order, idx = _channel_terms(coefficients, channel_index)
    _, active = saturate(cache.ln_chi)

    chi_ad = od_ad * predictor.dA
    predictor_ad.dA += od_ad * cache.chi
    ln_chi_ad = np.where(active, cache.chi * chi_ad, 0.0)

    for i, ii in enumerate(idx):
        predictor_ad.OX[:, ii] += ln_chi_ad * cache.b[:, i + 1]
    b_ad = np.column_stack((ln_chi_ad, ln_chi_ad[:, np.newaxis] * predictor.OX[:, idx]))
    predictor_ad.Ap[:, :order] += b_ad @ block[:, 1:]
