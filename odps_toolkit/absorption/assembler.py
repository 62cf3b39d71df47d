"""
ODPS Optical Depth Assembler

Computes the per-layer optical depth of one channel on the user grid.

Processing chain:
    1. Optical path on the reference grid, from the algorithm selected by
       the sensor group (generic ODPS component loop, or a Zeeman model
       for the SSMIS upper-air channels).
    2. Interpolation of the level optical path onto the user levels in
       ln-pressure.
    3. Layer optical depth from level differences, converted to the
       vertical by dividing by the surface secant zenith.

In the generic loop each layer's accumulated optical depth is clamped to
[0, MAX_OD] before it is added to the path, so the path starts at zero at
the top of the atmosphere and never decreases. The TL and AD passes treat
clamped layers as having zero derivative.
"""

import logging
import numpy as np
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from ..atmosphere import SSMISInput
from ..coefficients import ODPSCoefficients
from ..constants import GROUP_ZSSMIS, MAX_OD
from ..predictor import ChannelCache, Predictor
from ..profile import (
    compute_interp_index,
    interpolate_profile,
    interpolate_profile_ad,
    interpolate_profile_tl,
)
from .optran import add_optran_wlo_od, add_optran_wlo_od_ad, add_optran_wlo_od_tl

logger = logging.getLogger(__name__)


class OpticalPathAlgorithm(ABC):
    """Computes the level optical path of a channel on the reference grid."""

    @abstractmethod
    def compute_od_path(self, channel_index: int, predictor: Predictor,
                        channel_cache: Optional[ChannelCache] = None) -> np.ndarray:
        """
        Returns:
            Optical path, shape (n_layers+1,), zero at the top level.
            If channel_cache is given it is filled with the forward
            values the TL and AD passes need.
        """

    @abstractmethod
    def compute_od_path_tl(self, channel_index: int, predictor: Predictor,
                           predictor_tl: Predictor,
                           channel_cache: ChannelCache) -> np.ndarray:
        """Returns the optical path perturbation, shape (n_layers+1,)."""

    @abstractmethod
    def compute_od_path_ad(self, channel_index: int, predictor: Predictor,
                           od_path_ad: np.ndarray, predictor_ad: Predictor,
                           channel_cache: ChannelCache):
        """Accumulate into predictor_ad and zero od_path_ad."""


class ZeemanPathModel(OpticalPathAlgorithm):
    """
    Optical path and predictors for Zeeman-split channels (SSMIS).

    Implementations own both the predictors and the optical path of the
    sensor family; the driver calls the predictor hooks in place of the
    generic predictor model.
    """

    @abstractmethod
    def predictor_shape(self) -> Tuple[int, int]:
        """Return (n_components, max_n_predictors)."""

    @abstractmethod
    def compute_predictors(self, temperature: np.ndarray, ssmis: SSMISInput,
                           secant_zenith: np.ndarray, predictor: Predictor):
        """Fill predictor.X."""

    @abstractmethod
    def compute_predictors_tl(self, temperature: np.ndarray, ssmis: SSMISInput,
                              secant_zenith: np.ndarray, temperature_tl: np.ndarray,
                              predictor_tl: Predictor):
        """Fill predictor_tl.X."""

    @abstractmethod
    def compute_predictors_ad(self, temperature: np.ndarray, ssmis: SSMISInput,
                              secant_zenith: np.ndarray, predictor_ad: Predictor,
                              temperature_ad: np.ndarray):
        """Accumulate temperature_ad and zero predictor_ad.X."""


class ODPSOpticalPath(OpticalPathAlgorithm):
    """Generic ODPS component loop with optional OPTRAN water vapor lines."""

    def __init__(self, coefficients: ODPSCoefficients):
        self.coefficients = coefficients

    def _uses_optran(self, predictor: Predictor, component: int, channel_index: int) -> bool:
        return predictor.optran and self.coefficients.uses_optran(component, channel_index)

    def _active_components(self, channel_index: int):
        n_predictors = self.coefficients.n_predictors[:, channel_index]
        return [j for j in range(n_predictors.size) if n_predictors[j] > 0]

    def compute_od_path(self, channel_index, predictor, channel_cache=None):
        coefficients = self.coefficients
        od = np.zeros(predictor.n_layers)

        for j in self._active_components(channel_index):
            if self._uses_optran(predictor, j, channel_index):
                logger.debug(f"Channel {channel_index}: OPTRAN water vapor line component")
                add_optran_wlo_od(coefficients, channel_index, predictor, od, channel_cache)
            else:
                c = coefficients.component_coefficients(j, channel_index)
                od += np.sum(c.T * predictor.X[:, :c.shape[0], j], axis=1)

        od_path = np.zeros(predictor.n_layers + 1)
        od_path[1:] = np.cumsum(np.clip(od, 0.0, MAX_OD))

        if channel_cache is not None:
            channel_cache.od = od
            channel_cache.od_path = od_path
        return od_path

    def compute_od_path_tl(self, channel_index, predictor, predictor_tl, channel_cache):
        coefficients = self.coefficients
        od_tl = np.zeros(predictor.n_layers)

        for j in self._active_components(channel_index):
            if self._uses_optran(predictor, j, channel_index):
                add_optran_wlo_od_tl(coefficients, channel_index, predictor, predictor_tl,
                                     od_tl, channel_cache)
            else:
                c = coefficients.component_coefficients(j, channel_index)
                od_tl += np.sum(c.T * predictor_tl.X[:, :c.shape[0], j], axis=1)

        od_tl[_clamped(channel_cache.od)] = 0.0
        od_path_tl = np.zeros(predictor.n_layers + 1)
        od_path_tl[1:] = np.cumsum(od_tl)
        return od_path_tl

    def compute_od_path_ad(self, channel_index, predictor, od_path_ad, predictor_ad,
                           channel_cache):
        coefficients = self.coefficients

        # od_path[k] = sum(od[:k]) for k >= 1
        od_ad = np.cumsum(od_path_ad[:0:-1])[::-1]
        od_ad[_clamped(channel_cache.od)] = 0.0
        od_path_ad[...] = 0.0

        for j in self._active_components(channel_index):
            if self._uses_optran(predictor, j, channel_index):
                add_optran_wlo_od_ad(coefficients, channel_index, predictor, od_ad,
                                     predictor_ad, channel_cache)
            else:
                c = coefficients.component_coefficients(j, channel_index)
                predictor_ad.X[:, :c.shape[0], j] += c.T * od_ad[:, np.newaxis]


def _clamped(od: np.ndarray) -> np.ndarray:
    return (od < 0.0) | (od > MAX_OD)


def select_path_algorithm(coefficients: ODPSCoefficients,
                          zeeman: Optional[ZeemanPathModel] = None) -> OpticalPathAlgorithm:
    """
    Choose the optical path algorithm for a coefficient table.

    Raises:
        ValueError: If the table is for the ZSSMIS group and no Zeeman
            model is supplied.
    """
    if coefficients.group_index == GROUP_ZSSMIS:
        if zeeman is None:
            raise ValueError(
                f"Coefficient table '{coefficients.sensor_id}' is in the ZSSMIS group; "
                f"a ZeemanPathModel is required"
            )
        return zeeman
    return ODPSOpticalPath(coefficients)


def _check_channel(coefficients: ODPSCoefficients, channel_index: int):
    if not 0 <= channel_index < coefficients.n_channels:
        raise ValueError(
            f"channel_index = {channel_index} outside 0..{coefficients.n_channels - 1}"
        )


def compute_atm_absorption(coefficients: ODPSCoefficients, channel_index: int,
                           predictor: Predictor,
                           zeeman: Optional[ZeemanPathModel] = None) -> np.ndarray:
    """
    Compute the layer optical depth of a channel on the user grid.

    In persistent mode (predictor.cache set) the forward values of the
    channel are cached for the TL and AD passes and the cached
    reference-to-user interpolation indices are reused.

    Args:
        coefficients: Coefficient table
        channel_index: Channel (0-based)
        predictor: Forward predictors from compute_predictors
        zeeman: Zeeman model, required for the ZSSMIS group

    Returns:
        Optical depth per user layer, shape (n_user_layers,)
    """
    _check_channel(coefficients, channel_index)
    algorithm = select_path_algorithm(coefficients, zeeman)

    cache = predictor.cache
    channel_cache = None
    if cache is not None:
        channel_cache = ChannelCache(od=np.zeros(predictor.n_layers),
                                     od_path=np.zeros(predictor.n_layers + 1))
    od_path = algorithm.compute_od_path(channel_index, predictor, channel_cache)

    if cache is not None:
        channel_cache.od_path = od_path
        cache.channels[channel_index] = channel_cache
        index = cache.odps2user_idx
    else:
        index = compute_interp_index(predictor.ref_level_ln_pressure,
                                     predictor.user_level_ln_pressure)
    user_od_path = interpolate_profile(index, od_path, predictor.ref_level_ln_pressure,
                                       predictor.user_level_ln_pressure)
    return np.diff(user_od_path) / predictor.secant_zenith_surface


def compute_atm_absorption_tl(coefficients: ODPSCoefficients, channel_index: int,
                              predictor: Predictor, predictor_tl: Predictor,
                              zeeman: Optional[ZeemanPathModel] = None) -> np.ndarray:
    """
    Tangent-linear of compute_atm_absorption.

    Returns:
        Optical depth perturbation per user layer, shape (n_user_layers,)

    Raises:
        RuntimeError: If the forward values of the channel were not cached.
    """
    _check_channel(coefficients, channel_index)
    predictor.check_mirror(predictor_tl, 'predictor_tl')
    algorithm = select_path_algorithm(coefficients, zeeman)
    cache = predictor.require_cache()
    channel_cache = cache.channel(channel_index)

    od_path_tl = algorithm.compute_od_path_tl(channel_index, predictor, predictor_tl,
                                              channel_cache)
    user_od_path_tl = interpolate_profile_tl(cache.odps2user_idx, channel_cache.od_path,
                                             predictor.ref_level_ln_pressure,
                                             predictor.user_level_ln_pressure, od_path_tl)
    return np.diff(user_od_path_tl) / predictor.secant_zenith_surface


def compute_atm_absorption_ad(coefficients: ODPSCoefficients, channel_index: int,
                              predictor: Predictor, optical_depth_ad: np.ndarray,
                              predictor_ad: Predictor,
                              zeeman: Optional[ZeemanPathModel] = None):
    """
    Adjoint of compute_atm_absorption_tl.

    Args:
        coefficients: Coefficient table
        channel_index: Channel (0-based)
        predictor: Forward predictors with cached channel values
        optical_depth_ad: Optical depth adjoint per user layer. Zeroed on return.
        predictor_ad: Predictor adjoints, accumulated in place
        zeeman: Zeeman model, required for the ZSSMIS group

    Raises:
        RuntimeError: If the forward values of the channel were not cached.
    """
    _check_channel(coefficients, channel_index)
    predictor.check_mirror(predictor_ad, 'predictor_ad')
    if optical_depth_ad.shape != (predictor.n_user_layers,):
        raise ValueError(
            f"optical_depth_ad: expected shape {(predictor.n_user_layers,)}, "
            f"got {optical_depth_ad.shape}"
        )
    algorithm = select_path_algorithm(coefficients, zeeman)
    cache = predictor.require_cache()
    channel_cache = cache.channel(channel_index)

    scaled = optical_depth_ad / predictor.secant_zenith_surface
    user_od_path_ad = np.zeros(predictor.n_user_layers + 1)
    user_od_path_ad[1:] += scaled
    user_od_path_ad[:-1] -= scaled
    optical_depth_ad[...] = 0.0

    od_path_ad = np.zeros(predictor.n_layers + 1)
    interpolate_profile_ad(cache.odps2user_idx, channel_cache.od_path,
                           predictor.ref_level_ln_pressure,
                           predictor.user_level_ln_pressure, user_od_path_ad, od_path_ad)

    algorithm.compute_od_path_ad(channel_index, predictor, od_path_ad, predictor_ad,
                                 channel_cache)
