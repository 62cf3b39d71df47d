"""
Geopotential Height

Hypsometric integration of level heights from the surface upward:

    Tv       = T * (1 + C*w)
    H        = CC * Tv
    Z[k-1]   = Z[k] + H * ln(p[k] / p[k-1])

Levels are indexed 0 (top) .. n (surface); layer k-1 lies between levels
k-1 and k. Heights are in km, water vapor mixing ratio in g/kg.
"""

import numpy as np

from ..constants import C, CC


def _log_pressure_ratio(level_pressure: np.ndarray) -> np.ndarray:
    p = np.asarray(level_pressure, dtype=np.float64)
    return np.log(p[1:] / p[:-1])


def geopotential_height(level_pressure: np.ndarray,
                        temperature: np.ndarray,
                        water_vapor: np.ndarray,
                        surface_height: float) -> np.ndarray:
    """
    Compute geopotential heights of pressure levels.

    Args:
        level_pressure: Level pressures, top to surface, shape (n+1,)
        temperature: Layer temperatures (K), shape (n,)
        water_vapor: Layer water vapor mixing ratios (g/kg), shape (n,)
        surface_height: Height of level n (km)

    Returns:
        Level heights (km), shape (n+1,)
    """
    temperature = np.asarray(temperature, dtype=np.float64)
    water_vapor = np.asarray(water_vapor, dtype=np.float64)
    dz = CC * temperature * (1.0 + C * water_vapor) * _log_pressure_ratio(level_pressure)

    height = np.empty(temperature.size + 1, dtype=np.float64)
    height[-1] = surface_height
    height[:-1] = surface_height + np.cumsum(dz[::-1])[::-1]
    return height


def geopotential_height_tl(level_pressure: np.ndarray,
                           temperature: np.ndarray,
                           water_vapor: np.ndarray,
                           temperature_tl: np.ndarray,
                           water_vapor_tl: np.ndarray) -> np.ndarray:
    """
    Tangent-linear of geopotential_height.

    The surface height is not perturbed, so the surface level TL is zero.

    Returns:
        Level height perturbations, shape (n+1,)
    """
    temperature = np.asarray(temperature, dtype=np.float64)
    water_vapor = np.asarray(water_vapor, dtype=np.float64)
    tv_tl = (np.asarray(temperature_tl) * (1.0 + C * water_vapor)
             + temperature * C * np.asarray(water_vapor_tl))
    dz_tl = CC * tv_tl * _log_pressure_ratio(level_pressure)

    height_tl = np.zeros(temperature.size + 1, dtype=np.float64)
    height_tl[:-1] = np.cumsum(dz_tl[::-1])[::-1]
    return height_tl


def geopotential_height_ad(level_pressure: np.ndarray,
                           temperature: np.ndarray,
                           water_vapor: np.ndarray,
                           height_ad: np.ndarray,
                           temperature_ad: np.ndarray,
                           water_vapor_ad: np.ndarray) -> None:
    """
    Adjoint of geopotential_height_tl.

    Walking the layers from the top down, the height adjoint of each
    level is passed on to the level below it and converted into a scale
    height adjoint for the layer in between. The adjoint reaching the
    surface level is discarded since the surface height is a fixed
    anchor.

    Args:
        level_pressure, temperature, water_vapor: Forward inputs
        height_ad: Level height adjoints, shape (n+1,). Zeroed on return.
        temperature_ad: Accumulated in place, shape (n,)
        water_vapor_ad: Accumulated in place, shape (n,)
    """
    temperature = np.asarray(temperature, dtype=np.float64)
    water_vapor = np.asarray(water_vapor, dtype=np.float64)

    # Adjoint arriving at level k-1 when layer k is processed
    carried = np.cumsum(np.asarray(height_ad, dtype=np.float64)[:-1])
    h_ad = carried * _log_pressure_ratio(level_pressure)
    tv_ad = CC * h_ad
    temperature_ad += tv_ad * (1.0 + C * water_vapor)
    water_vapor_ad += temperature * C * tv_ad
    height_ad[...] = 0.0
