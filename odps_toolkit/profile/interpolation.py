"""
Piecewise-Linear Profile Interpolation

Maps a profile given on one monotonically ascending grid onto another,
together with the tangent-linear (TL) and adjoint (AD) forms needed for
variational use.

Interpolation between bracketing points (x1, y1) and (x2, y2):

    y(u) = y1 + (y2 - y1) * (u - x1) / (x2 - x1)

Target points outside the source range are clamped to the nearest
boundary value; there is no extrapolation.

Three linearizations are provided, one per kind of call site:
    - w.r.t. y only                  (interpolate_profile_tl)
    - w.r.t. y and the target grid u (interpolate_profile_tl_with_target)
    - w.r.t. y and the source grid x (interpolate_profile_tl_with_source)

Adjoint routines follow the reverse-mode convention used across the
package: the incoming cotangent (y_int_ad) is consumed and zeroed, and
the outgoing adjoints are accumulated (+=) into caller-owned arrays.
"""

import numpy as np
from typing import Tuple


def compute_interp_index(x: np.ndarray, u: np.ndarray) -> np.ndarray:
    """
    Find the bracketing source indices for each target abscissa.

    Both grids must be ascending. This is a precondition and is not
    checked.

    Args:
        x: Source abscissas, shape (n,)
        u: Target abscissas, shape (m,)

    Returns:
        Integer array of shape (m, 2). Row i holds (k1, k2) with
        x[k1] <= u[i] <= x[k2] and k2 == k1 + 1, or k1 == k2 == 0 when
        u[i] < x[0] and k1 == k2 == n-1 when u[i] > x[n-1].
    """
    x = np.asarray(x, dtype=np.float64)
    u = np.asarray(u, dtype=np.float64)
    nx = x.size

    index = np.zeros((u.size, 2), dtype=int)
    if nx < 2:
        return index

    k2 = np.clip(np.searchsorted(x, u, side='left'), 1, nx - 1)
    index[:, 0] = k2 - 1
    index[:, 1] = k2
    index[u < x[0]] = 0
    index[u > x[-1]] = nx - 1
    return index


def _bracket(index: np.ndarray, x: np.ndarray, u: np.ndarray
             ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Bracketing indices, interpolation fraction and grid spacing."""
    index = np.asarray(index, dtype=int)
    x = np.asarray(x, dtype=np.float64)
    u = np.asarray(u, dtype=np.float64)
    k1 = index[:, 0]
    k2 = index[:, 1]
    inside = k1 != k2
    dx = np.where(inside, x[k2] - x[k1], 1.0)
    fac = np.where(inside, (u - x[k1]) / dx, 0.0)
    return k1, k2, inside, fac, dx


def interpolate_profile(index: np.ndarray, y: np.ndarray,
                        x: np.ndarray, u: np.ndarray) -> np.ndarray:
    """
    Interpolate y(x) onto u using precomputed bracketing indices.

    Args:
        index: Index pairs from compute_interp_index, shape (m, 2)
        y: Source values, shape (n,)
        x: Source abscissas, shape (n,)
        u: Target abscissas, shape (m,)

    Returns:
        Interpolated values, shape (m,). Where k1 == k2 the result is
        exactly y[k1]; where u coincides with a source point the result
        is exactly the source value.
    """
    y = np.asarray(y, dtype=np.float64)
    k1, k2, _, fac, _ = _bracket(index, x, u)
    return (1.0 - fac) * y[k1] + fac * y[k2]


def interpolate_profile_tl(index: np.ndarray, y: np.ndarray, x: np.ndarray,
                           u: np.ndarray, y_tl: np.ndarray) -> np.ndarray:
    """
    Tangent-linear of interpolate_profile w.r.t. y.

    Returns:
        y_int_tl, shape (m,)
    """
    y_tl = np.asarray(y_tl, dtype=np.float64)
    k1, k2, _, fac, _ = _bracket(index, x, u)
    return (1.0 - fac) * y_tl[k1] + fac * y_tl[k2]


def interpolate_profile_tl_with_target(index: np.ndarray, y: np.ndarray,
                                       x: np.ndarray, u: np.ndarray,
                                       y_tl: np.ndarray,
                                       u_tl: np.ndarray) -> np.ndarray:
    """
    Tangent-linear of interpolate_profile w.r.t. y and the target grid u.

    Returns:
        y_int_tl, shape (m,)
    """
    y = np.asarray(y, dtype=np.float64)
    y_tl = np.asarray(y_tl, dtype=np.float64)
    u_tl = np.asarray(u_tl, dtype=np.float64)
    k1, k2, inside, fac, dx = _bracket(index, x, u)
    slope = np.where(inside, (y[k2] - y[k1]) / dx, 0.0)
    return (1.0 - fac) * y_tl[k1] + fac * y_tl[k2] + slope * u_tl


def interpolate_profile_tl_with_source(index: np.ndarray, y: np.ndarray,
                                       x: np.ndarray, u: np.ndarray,
                                       y_tl: np.ndarray,
                                       x_tl: np.ndarray) -> np.ndarray:
    """
    Tangent-linear of interpolate_profile w.r.t. y and the source grid x.

    Returns:
        y_int_tl, shape (m,)
    """
    y = np.asarray(y, dtype=np.float64)
    y_tl = np.asarray(y_tl, dtype=np.float64)
    x_tl = np.asarray(x_tl, dtype=np.float64)
    k1, k2, inside, fac, dx = _bracket(index, x, u)
    slope = np.where(inside, (y[k2] - y[k1]) / dx, 0.0)
    return ((1.0 - fac) * y_tl[k1] + fac * y_tl[k2]
            + slope * (fac - 1.0) * x_tl[k1] - slope * fac * x_tl[k2])


def interpolate_profile_ad(index: np.ndarray, y: np.ndarray, x: np.ndarray,
                           u: np.ndarray, y_int_ad: np.ndarray,
                           y_ad: np.ndarray) -> None:
    """
    Adjoint of interpolate_profile_tl.

    Args:
        index, y, x, u: Forward inputs
        y_int_ad: Cotangent of the interpolated profile, shape (m,).
            Zeroed on return.
        y_ad: Adjoint of y, shape (n,). Accumulated in place.
    """
    k1, k2, _, fac, _ = _bracket(index, x, u)
    g = np.array(y_int_ad, dtype=np.float64)
    np.add.at(y_ad, k1, (1.0 - fac) * g)
    np.add.at(y_ad, k2, fac * g)
    y_int_ad[...] = 0.0


def interpolate_profile_ad_with_target(index: np.ndarray, y: np.ndarray,
                                       x: np.ndarray, u: np.ndarray,
                                       y_int_ad: np.ndarray, y_ad: np.ndarray,
                                       u_ad: np.ndarray) -> None:
    """
    Adjoint of interpolate_profile_tl_with_target.

    y_int_ad is zeroed; y_ad (n,) and u_ad (m,) are accumulated in place.
    """
    y = np.asarray(y, dtype=np.float64)
    k1, k2, inside, fac, dx = _bracket(index, x, u)
    slope = np.where(inside, (y[k2] - y[k1]) / dx, 0.0)
    g = np.array(y_int_ad, dtype=np.float64)
    np.add.at(y_ad, k1, (1.0 - fac) * g)
    np.add.at(y_ad, k2, fac * g)
    u_ad += slope * g
    y_int_ad[...] = 0.0


def interpolate_profile_ad_with_source(index: np.ndarray, y: np.ndarray,
                                       x: np.ndarray, u: np.ndarray,
                                       y_int_ad: np.ndarray, y_ad: np.ndarray,
                                       x_ad: np.ndarray) -> None:
    """
    Adjoint of interpolate_profile_tl_with_source.

    y_int_ad is zeroed; y_ad (n,) and x_ad (n,) are accumulated in place.
    """
    y = np.asarray(y, dtype=np.float64)
    k1, k2, inside, fac, dx = _bracket(index, x, u)
    slope = np.where(inside, (y[k2] - y[k1]) / dx, 0.0)
    g = np.array(y_int_ad, dtype=np.float64)
    np.add.at(y_ad, k1, (1.0 - fac) * g)
    np.add.at(y_ad, k2, fac * g)
    np.add.at(x_ad, k1, slope * (fac - 1.0) * g)
    np.add.at(x_ad, k2, -slope * fac * g)
    y_int_ad[...] = 0.0
