"""
Layer Averaging Operator

Builds a weight matrix that maps layer values on a source grid onto the
layers of a target grid, accounting for the fractional overlap between
the two sets of layers. Both grids are given as layer abscissas (usually
ln-pressure at layer centers), ascending.

Each target layer k is represented by its center z2 and its neighbours
z1 (above) and z3 (below); the half-layers [z1, z2] and [z2, z3] are
intersected with each source interval and the overlap is distributed
onto the two bracketing source points with linear weights. The weights
of every target layer are normalized to sum to one.

The operator depends only on the grids, so it is built once per profile
and reused by the TL and AD passes.
"""

import logging
import numpy as np
from typing import Tuple

from ..constants import SMALLDIFF

logger = logging.getLogger(__name__)


def _checked_inverse(value: float, name: str, z: Tuple[float, float, float],
                     bracket: Tuple[float, float]) -> float:
    """Return 1/value, raising on a degenerate (coincident) width."""
    if abs(value) < SMALLDIFF:
        raise FloatingPointError(
            f"Layer averaging failed: {name} = {value!r} is below {SMALLDIFF} "
            f"(z1, z2, z3 = {z}, source interval = {bracket})"
        )
    return 1.0 / value


def _half_layer_weights(z_outer: float, z_center: float, z_other: float,
                        x_top: float, x_bot: float,
                        z: Tuple[float, float, float]) -> Tuple[float, float]:
    """
    Overlap weights of one half-layer [z_outer, z_center] with the source
    interval [x_top, x_bot], distributed onto the two interval points.
    """
    itop = False
    ibot = False
    if z_outer < z_other:
        y1 = z_outer
        if x_top > z_outer:
            y1 = x_top
            itop = True
        y2 = z_center
        if x_bot < z_center:
            y2 = x_bot
            ibot = True
    else:
        y1 = z_center
        if x_top > z_center:
            y1 = x_top
            itop = True
        y2 = z_outer
        if x_bot < z_outer:
            y2 = x_bot
            ibot = True

    dy = y2 - y1
    dzd = _checked_inverse(z_outer - z_center, 'dz', z, (x_top, x_bot))
    zw1 = (z_outer - y1) * dzd * dy
    zw2 = (z_outer - y2) * dzd * dy

    dxd = _checked_inverse(x_bot - x_top, 'dx', z, (x_top, x_bot))
    d = (x_bot - z_center) * dxd
    if z_outer < z_other and not ibot:
        zw1 = zw1 + zw2 * d
        zw2 = zw2 * (1.0 - d)
    elif z_outer > z_other and not itop:
        zw2 = zw2 + zw1 * (1.0 - d)
        zw1 = zw1 * d
    return zw1, zw2


def layer_avg(target: np.ndarray, source: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute layer averaging weights from a source grid onto a target grid.

    Args:
        target: Target layer abscissas, ascending, shape (n_target,)
        source: Source layer abscissas, ascending, shape (n_source,). A
            single source layer is mapped onto every target layer.

    Returns:
        weights: Array of shape (n_source, n_target). Column k holds the
            normalized weights of the source layers for target layer k.
        index: Integer array of shape (n_target, 2). Row k holds the
            inclusive range (first, last) of source layers with nonzero
            weight for target layer k.

    Raises:
        ValueError: If the target grid has fewer than two points or the
            source grid is empty.
        FloatingPointError: If a layer or interval width is below
            SMALLDIFF, or a target layer receives no weight.
    """
    px1 = np.asarray(target, dtype=np.float64)
    px2 = np.asarray(source, dtype=np.float64)
    kn1 = px1.size
    kn2 = px2.size
    if kn1 < 2 or kn2 < 1:
        raise ValueError(
            f"layer_avg needs at least two target layers and one source layer, "
            f"got target={kn1}, source={kn2}"
        )

    weights = np.zeros((kn2, kn1), dtype=np.float64)
    index = np.zeros((kn1, 2), dtype=int)
    bottom = px2[-1]
    istart = 0

    for ki in range(kn1):
        z2 = px1[ki]
        z1 = 2.0 * z2 - px1[ki + 1] if ki == 0 else px1[ki - 1]
        z3 = 2.0 * z2 - z1 if ki == kn1 - 1 else px1[ki + 1]
        if z3 > bottom:
            z3 = bottom
        skip_lower = False
        if z2 >= bottom:
            z3 = bottom
            z2 = bottom
            skip_lower = True
        z = (z1, z2, z3)

        contributed = False
        j = kn2 - 1
        for jj in range(istart, kn2 - 1):
            if px2[jj] > z3:
                j = jj
                break
            x_top, x_bot = px2[jj], px2[jj + 1]

            # Upper half-layer [z1, z2]
            if x_top <= z2 and x_bot > z1:
                zw1, zw2 = _half_layer_weights(z1, z2, z3, x_top, x_bot, z)
                weights[jj, ki] += zw1
                weights[jj + 1, ki] += zw2
                contributed = True

            # Lower half-layer [z2, z3]
            if x_top < z3 and x_bot >= z2 and not skip_lower:
                zw1, zw2 = _half_layer_weights(z3, z2, z1, x_top, x_bot, z)
                weights[jj, ki] += zw1
                weights[jj + 1, ki] += zw2
                contributed = True

        if not contributed:
            weights[j, ki] = 1.0

        nonzero = np.nonzero(weights[istart:, ki])[0]
        if nonzero.size == 0:
            raise FloatingPointError(
                f"Layer averaging failed: target layer {ki} (z = {z}) "
                f"received no weight from the source grid"
            )
        first = istart + nonzero[0]
        zeros = np.nonzero(weights[first + 1:, ki] == 0.0)[0]
        last = first + zeros[0] if zeros.size else kn2 - 1
        index[ki] = (first, last)
        istart = first

        total = weights[first:last + 1, ki].sum()
        weights[first:last + 1, ki] /= total

    logger.debug(f"Layer averaging weights built: {kn2} source -> {kn1} target layers")
    return weights, index


def apply_layer_avg(weights: np.ndarray, index: np.ndarray,
                    values: np.ndarray) -> np.ndarray:
    """
    Apply layer averaging weights to a source profile.

    Args:
        weights: Weights from layer_avg, shape (n_source, n_target)
        index: Index ranges from layer_avg, shape (n_target, 2)
        values: Source profile, shape (n_source,) or (n_source, n_species)

    Returns:
        Target profile, shape (n_target,) or (n_target, n_species)
    """
    values = np.asarray(values, dtype=np.float64)
    n_target = index.shape[0]
    out = np.zeros((n_target,) + values.shape[1:], dtype=np.float64)
    for k in range(n_target):
        k1, k2 = index[k]
        w = weights[k1:k2 + 1, k]
        out[k] = np.tensordot(w, values[k1:k2 + 1], axes=(0, 0))
    return out


def apply_layer_avg_ad(weights: np.ndarray, index: np.ndarray,
                       out_ad: np.ndarray, values_ad: np.ndarray) -> None:
    """
    Adjoint of apply_layer_avg.

    out_ad is zeroed and values_ad is accumulated in place.
    """
    n_target = index.shape[0]
    for k in range(n_target - 1, -1, -1):
        k1, k2 = index[k]
        w = weights[k1:k2 + 1, k]
        values_ad[k1:k2 + 1] += np.multiply.outer(w, out_ad[k])
    out_ad[...] = 0.0
