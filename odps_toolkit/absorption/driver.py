"""
ODPS Predictor Driver

Maps a user profile onto the internal reference grid and fills the
predictor state used by the optical depth assembler.

Processing chain (forward):
    1. Layer-average user temperature and absorbers onto the reference
       layers in ln-pressure; clamp absorbers to the trained bounds and
       use the reference profile for absorbers the user did not supply.
    2. Locate the user surface within the reference levels.
    3. Geopotential heights of the reference levels from the reference
       atmosphere, shifted so the user surface sits at the surface
       altitude.
    4. Local secant of the zenith angle at each layer for a spherical
       Earth without refraction:

           sec(k) = 1 / sqrt(1 - (s / (R + Z(k)))^2)
           s      = (R + surface_altitude) * sin(zenith)

    5. Predictors from the predictor model (or the Zeeman model for the
       ZSSMIS group), plus OPTRAN predictors when enabled.

The TL and AD passes repeat steps 1 and 5 only; the geometry does not
depend on the user profile.
"""

import logging
import numpy as np
from typing import Optional, Tuple

from ..atmosphere import Atmosphere, GeometryInfo, SensorInput, SSMISInput
from ..coefficients import ODPSCoefficients
from ..constants import (
    CC,
    DEGREES_TO_RADIANS,
    EARTH_RADIUS,
    GROUP_ZSSMIS,
    REFERENCE_SURFACE_PRESSURE,
    TOLERANCE,
)
from ..predictor import ForwardCache, Predictor, PredictorModel, RatioPredictorModel
from ..profile import (
    apply_layer_avg,
    apply_layer_avg_ad,
    compute_interp_index,
    geopotential_height,
    layer_avg,
)
from ..utils.config import get_config
from .assembler import ZeemanPathModel

logger = logging.getLogger(__name__)


def _is_zssmis(coefficients: ODPSCoefficients) -> bool:
    return coefficients.group_index == GROUP_ZSSMIS


def _zeeman_inputs(coefficients: ODPSCoefficients,
                   zeeman: Optional[ZeemanPathModel],
                   sensor_input: Optional[SensorInput]) -> Tuple[ZeemanPathModel, SSMISInput]:
    if zeeman is None:
        raise ValueError(
            f"Coefficient table '{coefficients.sensor_id}' is in the ZSSMIS group; "
            f"a ZeemanPathModel is required"
        )
    if sensor_input is None or sensor_input.ssmis is None:
        raise ValueError("ZSSMIS predictors require sensor_input.ssmis")
    return zeeman, sensor_input.ssmis


def _predictor_shape(coefficients: ODPSCoefficients, model: PredictorModel,
                     zeeman: Optional[ZeemanPathModel]) -> Tuple[int, int]:
    if _is_zssmis(coefficients):
        n_components, max_np = zeeman.predictor_shape()
    else:
        n_components, max_np = model.predictor_shape(coefficients.group_index)
    if coefficients.n_components != n_components:
        raise ValueError(
            f"n_components: coefficient table has {coefficients.n_components}, "
            f"predictor model provides {n_components}"
        )
    if coefficients.n_predictors.max(initial=0) > max_np:
        raise ValueError(
            f"n_predictors: coefficient table uses up to "
            f"{coefficients.n_predictors.max()}, predictor model provides {max_np}"
        )
    return n_components, max_np


def _user_level_ln_pressure(atmosphere: Atmosphere) -> np.ndarray:
    level_pressure = atmosphere.level_pressure
    ln_p = np.empty(level_pressure.size)
    if level_pressure[0] <= 0.0:
        ln_p[0] = np.log(level_pressure[1] / 2.0)
    else:
        ln_p[0] = np.log(level_pressure[0])
    ln_p[1:] = np.log(level_pressure[1:])
    return ln_p


def _surface_position(ref_level_pressure: np.ndarray, ref_level_ln_pressure: np.ndarray,
                      surface_pressure: float, surface_ln_pressure: float) -> Tuple[int, float]:
    """
    Reference level just below the user surface and the fractional
    (ln-pressure) distance of the surface above it.
    """
    n = ref_level_pressure.size - 1
    sfc_idx = n
    fraction = 0.0
    if ref_level_pressure[n] > surface_pressure:
        for k in range(n, -1, -1):
            if ref_level_pressure[k] < surface_pressure:
                sfc_idx = k + 1
                fraction = ((ref_level_ln_pressure[sfc_idx] - surface_ln_pressure)
                            / (ref_level_ln_pressure[sfc_idx] - ref_level_ln_pressure[k]))
                break
    return sfc_idx, fraction


def _map_absorbers(coefficients: ODPSCoefficients, atmosphere: Atmosphere,
                   weights: np.ndarray, interp_index: np.ndarray):
    """
    Layer-averaged, clamped absorbers on the reference grid.

    The returned mask flags layers clamped at the TOLERANCE floor and
    also, deliberately, layers clamped at the table's min/max bounds. The
    TL/AD zero the absorber derivative on every flagged layer, not only
    at the floor.
    """
    n = coefficients.n_layers
    absorber = np.empty((n, coefficients.n_absorbers))
    clamped = np.zeros((n, coefficients.n_absorbers), dtype=bool)
    idx_map = np.full(coefficients.n_absorbers, -1, dtype=int)

    for j, absorber_id in enumerate(coefficients.absorber_id):
        column = atmosphere.absorber_index(absorber_id)
        if column is None:
            logger.debug(f"Absorber {absorber_id} missing from profile, using reference profile")
            absorber[:, j] = coefficients.ref_absorber[:, j]
            clamped[:, j] = True
            continue

        idx_map[j] = column
        amount = apply_layer_avg(weights, interp_index, atmosphere.absorber[:, column])
        low = amount <= TOLERANCE
        amount[low] = TOLERANCE
        below = amount < coefficients.min_absorber[:, j]
        amount[below] = coefficients.min_absorber[below, j]
        above = amount > coefficients.max_absorber[:, j]
        amount[above] = coefficients.max_absorber[above, j]
        absorber[:, j] = amount
        clamped[:, j] = low | below | above

    return absorber, clamped, idx_map


def _height_offset(coefficients: ODPSCoefficients, height: np.ndarray,
                   surface_pressure: float, sfc_idx: int, fraction: float,
                   surface_altitude: float) -> float:
    n = coefficients.n_layers
    if coefficients.ref_level_pressure[n] >= surface_pressure:
        surface_height = height[sfc_idx] + fraction * (height[sfc_idx - 1] - height[sfc_idx])
        return surface_altitude - surface_height
    # User surface below the deepest reference level: anchor the grid to
    # a synthetic surface at REFERENCE_SURFACE_PRESSURE.
    # TODO: review the physical basis of this anchor with the coefficient
    # training team; the offset ignores the user surface altitude.
    return (CC * coefficients.ref_temperature[n - 1]
            * np.log(REFERENCE_SURFACE_PRESSURE / coefficients.ref_level_pressure[n]))


def secant_zenith_profile(level_height: np.ndarray, geometry: GeometryInfo) -> np.ndarray:
    """
    Local secant of the zenith angle at the bottom level of each layer.

    Args:
        level_height: Level heights (km), top to surface, shape (n+1,)
        geometry: Viewing geometry

    Returns:
        Secant per layer, shape (n,)
    """
    s = ((EARTH_RADIUS + geometry.surface_altitude)
         * np.sin(geometry.sensor_zenith_angle * DEGREES_TO_RADIANS))
    sine = s / (EARTH_RADIUS + np.asarray(level_height)[1:])
    return 1.0 / np.sqrt(1.0 - sine * sine)


def compute_predictors(coefficients: ODPSCoefficients,
                       atmosphere: Atmosphere,
                       geometry: GeometryInfo,
                       sensor_input: Optional[SensorInput] = None,
                       model: Optional[PredictorModel] = None,
                       zeeman: Optional[ZeemanPathModel] = None,
                       allow_optran: Optional[bool] = None,
                       save_forward_variables: Optional[bool] = None) -> Predictor:
    """
    Compute the predictor state of one profile.

    Args:
        coefficients: Coefficient table
        atmosphere: User profile
        geometry: Viewing geometry
        sensor_input: Sensor-specific inputs (SSMIS Zeeman inputs)
        model: Predictor model (default RatioPredictorModel)
        zeeman: Zeeman model, required for the ZSSMIS group
        allow_optran: Compute OPTRAN predictors (default from config)
        save_forward_variables: Keep forward values for TL/AD (default
            from config)

    Returns:
        Predictor, with a ForwardCache when save_forward_variables is set

    Raises:
        ValueError: On inconsistent inputs
        FloatingPointError: If the grids are degenerate for layer averaging
    """
    config = get_config()
    if allow_optran is None:
        allow_optran = config.allow_optran
    if save_forward_variables is None:
        save_forward_variables = config.save_forward_variables
    if model is None:
        model = RatioPredictorModel()
    atmosphere.validate_profile()
    ssmis = None
    if _is_zssmis(coefficients):
        zeeman, ssmis = _zeeman_inputs(coefficients, zeeman, sensor_input)
    n_components, max_np = _predictor_shape(coefficients, model, zeeman)

    n = coefficients.n_layers
    n_user = atmosphere.n_layers
    ref_ln_pressure = np.log(coefficients.ref_pressure)
    user_ln_pressure = np.log(atmosphere.pressure)
    ref_level_ln_pressure = np.log(coefficients.ref_level_pressure)
    user_level_ln_pressure = _user_level_ln_pressure(atmosphere)

    surface_pressure = atmosphere.level_pressure[n_user]
    sfc_idx, fraction = _surface_position(coefficients.ref_level_pressure,
                                          ref_level_ln_pressure, surface_pressure,
                                          user_level_ln_pressure[n_user])
    logger.debug(f"User surface {surface_pressure} hPa: reference level {sfc_idx}, "
                 f"fraction {fraction:.4f}")

    weights, interp_index = layer_avg(ref_ln_pressure, user_ln_pressure)
    temperature = apply_layer_avg(weights, interp_index, atmosphere.temperature)
    absorber, clamped, idx_map = _map_absorbers(coefficients, atmosphere, weights,
                                                interp_index)

    h2o_index = coefficients.h2o_index
    if h2o_index is None:
        ref_water_vapor = np.zeros(n)
    else:
        ref_water_vapor = coefficients.ref_absorber[:, h2o_index]
    height = geopotential_height(coefficients.ref_level_pressure,
                                 coefficients.ref_temperature, ref_water_vapor, 0.0)
    height += _height_offset(coefficients, height, surface_pressure, sfc_idx, fraction,
                             geometry.surface_altitude)

    predictor = Predictor(n_layers=n,
                          n_user_layers=n_user,
                          n_components=n_components,
                          max_n_predictors=max_np,
                          secant_zenith=secant_zenith_profile(height, geometry),
                          secant_zenith_surface=geometry.secant_sensor_zenith,
                          ref_level_ln_pressure=ref_level_ln_pressure,
                          user_level_ln_pressure=user_level_ln_pressure)

    if ssmis is not None:
        zeeman.compute_predictors(temperature, ssmis, predictor.secant_zenith, predictor)
    else:
        model.compute(coefficients, temperature, absorber, predictor.secant_zenith, predictor)
        if allow_optran and coefficients.n_ocoeffs > 0:
            model.compute_optran(coefficients, temperature, absorber[:, h2o_index],
                                 predictor.secant_zenith, predictor)
            predictor.optran = True

    if save_forward_variables:
        predictor.cache = ForwardCache(
            temperature=temperature,
            absorber=absorber,
            absorber_clamped=clamped,
            weights=weights,
            interp_index=interp_index,
            idx_map=idx_map,
            h2o_index=h2o_index,
            ref_ln_pressure=ref_ln_pressure,
            user_ln_pressure=user_ln_pressure,
            odps2user_idx=compute_interp_index(ref_level_ln_pressure, user_level_ln_pressure),
        )
    return predictor


def compute_predictors_tl(coefficients: ODPSCoefficients,
                          atmosphere: Atmosphere,
                          predictor: Predictor,
                          atmosphere_tl: Atmosphere,
                          sensor_input: Optional[SensorInput] = None,
                          model: Optional[PredictorModel] = None,
                          zeeman: Optional[ZeemanPathModel] = None) -> Predictor:
    """
    Tangent-linear of compute_predictors.

    Args:
        coefficients: Coefficient table
        atmosphere: User profile of the forward call
        predictor: Forward predictor state with its cache
        atmosphere_tl: Profile perturbation
        sensor_input, model, zeeman: As passed to compute_predictors

    Returns:
        Predictor perturbations

    Raises:
        RuntimeError: If the forward call did not save its variables.
    """
    if model is None:
        model = RatioPredictorModel()
    cache = predictor.require_cache()
    atmosphere.check_mirror(atmosphere_tl, 'atmosphere_tl')

    temperature_tl = apply_layer_avg(cache.weights, cache.interp_index,
                                     atmosphere_tl.temperature)
    absorber_tl = np.zeros_like(cache.absorber)
    for j, column in enumerate(cache.idx_map):
        if column >= 0:
            absorber_tl[:, j] = apply_layer_avg(cache.weights, cache.interp_index,
                                                atmosphere_tl.absorber[:, column])
    absorber_tl[cache.absorber_clamped] = 0.0

    predictor_tl = predictor.zeros_like()
    if _is_zssmis(coefficients):
        zeeman, ssmis = _zeeman_inputs(coefficients, zeeman, sensor_input)
        zeeman.compute_predictors_tl(cache.temperature, ssmis, predictor.secant_zenith,
                                     temperature_tl, predictor_tl)
    else:
        model.compute_tl(coefficients, cache.temperature, cache.absorber,
                         predictor.secant_zenith, temperature_tl, absorber_tl, predictor_tl)
        if predictor.optran:
            h2o = cache.h2o_index
            model.compute_optran_tl(coefficients, cache.temperature, cache.absorber[:, h2o],
                                    predictor.secant_zenith, temperature_tl,
                                    absorber_tl[:, h2o], predictor_tl)
    return predictor_tl


def compute_predictors_ad(coefficients: ODPSCoefficients,
                          atmosphere: Atmosphere,
                          predictor: Predictor,
                          predictor_ad: Predictor,
                          atmosphere_ad: Atmosphere,
                          sensor_input: Optional[SensorInput] = None,
                          model: Optional[PredictorModel] = None,
                          zeeman: Optional[ZeemanPathModel] = None):
    """
    Adjoint of compute_predictors_tl.

    Args:
        coefficients: Coefficient table
        atmosphere: User profile of the forward call
        predictor: Forward predictor state with its cache
        predictor_ad: Predictor adjoints. Zeroed on return.
        atmosphere_ad: Profile adjoints, accumulated in place
        sensor_input, model, zeeman: As passed to compute_predictors

    Raises:
        RuntimeError: If the forward call did not save its variables.
    """
    if model is None:
        model = RatioPredictorModel()
    cache = predictor.require_cache()
    predictor.check_mirror(predictor_ad, 'predictor_ad')
    atmosphere.check_mirror(atmosphere_ad, 'atmosphere_ad')

    temperature_ad = np.zeros_like(cache.temperature)
    absorber_ad = np.zeros_like(cache.absorber)

    if _is_zssmis(coefficients):
        zeeman, ssmis = _zeeman_inputs(coefficients, zeeman, sensor_input)
        zeeman.compute_predictors_ad(cache.temperature, ssmis, predictor.secant_zenith,
                                     predictor_ad, temperature_ad)
    else:
        if predictor.optran:
            h2o = cache.h2o_index
            model.compute_optran_ad(coefficients, cache.temperature, cache.absorber[:, h2o],
                                    predictor.secant_zenith, predictor_ad,
                                    temperature_ad, absorber_ad[:, h2o])
        model.compute_ad(coefficients, cache.temperature, cache.absorber,
                         predictor.secant_zenith, predictor_ad, temperature_ad, absorber_ad)
    predictor_ad.zero()

    absorber_ad[cache.absorber_clamped] = 0.0
    for j in range(coefficients.n_absorbers - 1, -1, -1):
        column = cache.idx_map[j]
        if column >= 0:
            apply_layer_avg_ad(cache.weights, cache.interp_index, absorber_ad[:, j],
                               atmosphere_ad.absorber[:, column])

    apply_layer_avg_ad(cache.weights, cache.interp_index, temperature_ad,
                       atmosphere_ad.temperature)
