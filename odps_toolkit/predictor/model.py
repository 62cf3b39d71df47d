"""
Predictor Models

A predictor model turns temperature and absorber profiles on the
reference grid into the regression predictors consumed by the optical
depth assembler. The driver only depends on the PredictorModel interface;
RatioPredictorModel is the reference implementation shipped with the
package.

Physics Background:
    ODPS regresses the layer optical depth of each absorption component
    on a small set of predictors built from the slant path secant s, the
    temperature ratio t = T/T_ref and the absorber ratio a = A/A_ref with
    respect to the reference atmosphere the coefficients were trained on.

    The OPTRAN water vapor line model works in absorber space instead:
    its coefficients are polynomials in the log of the layer-mean slant
    water vapor amount, evaluated with thermodynamic predictors OX.

Adjoint convention:
    compute_ad and compute_optran_ad accumulate (+=) into the temperature
    and absorber adjoints and zero the predictor adjoint fields they
    consume.
"""

import logging
import numpy as np
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from ..constants import (
    CH4_ID,
    CO2_ID,
    CO_ID,
    G0,
    GROUP_1,
    GROUP_2,
    GROUP_3,
    H2O_ID,
    MAX_OPTRAN_ORDER,
    N2O_ID,
    O3_ID,
    TOLERANCE,
)
from ..coefficients import ODPSCoefficients
from .state import Predictor

logger = logging.getLogger(__name__)


class PredictorModel(ABC):
    """Interface between the predictor driver and a predictor scheme."""

    @abstractmethod
    def predictor_shape(self, group_index: int) -> Tuple[int, int]:
        """Return (n_components, max_n_predictors) for a sensor group."""

    @abstractmethod
    def compute(self, coefficients: ODPSCoefficients, temperature: np.ndarray,
                absorber: np.ndarray, secant_zenith: np.ndarray,
                predictor: Predictor):
        """Fill predictor.X from forward profiles on the reference grid."""

    @abstractmethod
    def compute_tl(self, coefficients: ODPSCoefficients, temperature: np.ndarray,
                   absorber: np.ndarray, secant_zenith: np.ndarray,
                   temperature_tl: np.ndarray, absorber_tl: np.ndarray,
                   predictor_tl: Predictor):
        """Fill predictor_tl.X with the predictor perturbations."""

    @abstractmethod
    def compute_ad(self, coefficients: ODPSCoefficients, temperature: np.ndarray,
                   absorber: np.ndarray, secant_zenith: np.ndarray,
                   predictor_ad: Predictor, temperature_ad: np.ndarray,
                   absorber_ad: np.ndarray):
        """Accumulate temperature/absorber adjoints; zero predictor_ad.X."""

    @abstractmethod
    def compute_optran(self, coefficients: ODPSCoefficients, temperature: np.ndarray,
                       water_vapor: np.ndarray, secant_zenith: np.ndarray,
                       predictor: Predictor):
        """Fill predictor.OX, Ap and dA."""

    @abstractmethod
    def compute_optran_tl(self, coefficients: ODPSCoefficients, temperature: np.ndarray,
                          water_vapor: np.ndarray, secant_zenith: np.ndarray,
                          temperature_tl: np.ndarray, water_vapor_tl: np.ndarray,
                          predictor_tl: Predictor):
        """Fill predictor_tl.OX, Ap and dA."""

    @abstractmethod
    def compute_optran_ad(self, coefficients: ODPSCoefficients, temperature: np.ndarray,
                          water_vapor: np.ndarray, secant_zenith: np.ndarray,
                          predictor_ad: Predictor, temperature_ad: np.ndarray,
                          water_vapor_ad: np.ndarray):
        """Accumulate temperature/water vapor adjoints; zero predictor_ad.OX, Ap, dA."""


# Absorber driving each component; None for the dry (fixed gases) component.
# The two water vapor components (line and continuum) share H2O.
COMPONENT_ABSORBERS: Dict[int, List[Optional[int]]] = {
    GROUP_1: [None, H2O_ID, H2O_ID, CO2_ID, O3_ID, CH4_ID, N2O_ID, CO_ID],
    GROUP_2: [None, H2O_ID, H2O_ID, CO2_ID, O3_ID],
    GROUP_3: [None, H2O_ID, H2O_ID],
}

N_RATIO_PREDICTORS = 3

# OPTRAN thermodynamic scaling
OPTRAN_T0 = 273.15      # K
OPTRAN_P0 = 1013.25     # hPa
# kg/m^2 per (g/kg * hPa)
WATER_PATH_FACTOR = 0.1 / G0


class RatioPredictorModel(PredictorModel):
    """
    Secant-scaled temperature and absorber ratio predictors.

    Dry component:       [s, s*t, s*t^2]
    Absorber components: [s*a, s*a*t, (s*a)^2]
    """

    def predictor_shape(self, group_index: int) -> Tuple[int, int]:
        return len(self._components(group_index)), N_RATIO_PREDICTORS

    def _components(self, group_index: int) -> List[Optional[int]]:
        try:
            return COMPONENT_ABSORBERS[group_index]
        except KeyError:
            raise ValueError(
                f"RatioPredictorModel has no components for sensor group {group_index}"
            ) from None

    def _columns(self, coefficients: ODPSCoefficients) -> List[Optional[int]]:
        """Absorber column of each component in the coefficient table."""
        columns = []
        for absorber_id in self._components(coefficients.group_index):
            column = None
            if absorber_id is not None:
                found = np.nonzero(coefficients.absorber_id == absorber_id)[0]
                if found.size:
                    column = int(found[0])
                else:
                    logger.debug(f"Absorber {absorber_id} not in coefficient table, "
                                 f"component predictors left at zero")
            columns.append(column)
        return columns

    @staticmethod
    def _ratios(coefficients: ODPSCoefficients, temperature: np.ndarray):
        t = np.asarray(temperature, dtype=np.float64) / coefficients.ref_temperature
        ref_absorber = np.maximum(coefficients.ref_absorber, TOLERANCE)
        return t, ref_absorber

    def compute(self, coefficients, temperature, absorber, secant_zenith, predictor):
        s = np.asarray(secant_zenith, dtype=np.float64)
        t, ref_absorber = self._ratios(coefficients, temperature)
        X = predictor.X
        X[...] = 0.0

        for j, column in enumerate(self._columns(coefficients)):
            if j == 0:
                X[:, 0, j] = s
                X[:, 1, j] = s * t
                X[:, 2, j] = s * t * t
            elif column is not None:
                sa = s * absorber[:, column] / ref_absorber[:, column]
                X[:, 0, j] = sa
                X[:, 1, j] = sa * t
                X[:, 2, j] = sa * sa

    def compute_tl(self, coefficients, temperature, absorber, secant_zenith,
                   temperature_tl, absorber_tl, predictor_tl):
        s = np.asarray(secant_zenith, dtype=np.float64)
        t, ref_absorber = self._ratios(coefficients, temperature)
        t_tl = np.asarray(temperature_tl) / coefficients.ref_temperature
        X_tl = predictor_tl.X
        X_tl[...] = 0.0

        for j, column in enumerate(self._columns(coefficients)):
            if j == 0:
                X_tl[:, 1, j] = s * t_tl
                X_tl[:, 2, j] = 2.0 * s * t * t_tl
            elif column is not None:
                sa = s * absorber[:, column] / ref_absorber[:, column]
                sa_tl = s * absorber_tl[:, column] / ref_absorber[:, column]
                X_tl[:, 0, j] = sa_tl
                X_tl[:, 1, j] = sa_tl * t + sa * t_tl
                X_tl[:, 2, j] = 2.0 * sa * sa_tl

    def compute_ad(self, coefficients, temperature, absorber, secant_zenith,
                   predictor_ad, temperature_ad, absorber_ad):
        s = np.asarray(secant_zenith, dtype=np.float64)
        t, ref_absorber = self._ratios(coefficients, temperature)
        X_ad = predictor_ad.X
        t_ad = np.zeros_like(t)

        for j, column in reversed(list(enumerate(self._columns(coefficients)))):
            if j == 0:
                t_ad += s * X_ad[:, 1, j] + 2.0 * s * t * X_ad[:, 2, j]
            elif column is not None:
                sa = s * absorber[:, column] / ref_absorber[:, column]
                sa_ad = X_ad[:, 0, j] + X_ad[:, 1, j] * t + 2.0 * sa * X_ad[:, 2, j]
                t_ad += X_ad[:, 1, j] * sa
                absorber_ad[:, column] += s * sa_ad / ref_absorber[:, column]

        temperature_ad += t_ad / coefficients.ref_temperature
        X_ad[...] = 0.0

    # OPTRAN

    @staticmethod
    def _optran_forward(coefficients: ODPSCoefficients, water_vapor: np.ndarray,
                        secant_zenith: np.ndarray):
        """Slant water amounts and the first absorber-space predictor."""
        dp = np.diff(coefficients.ref_level_pressure)
        scale = np.asarray(secant_zenith) * dp * WATER_PATH_FACTOR
        dA = scale * np.asarray(water_vapor, dtype=np.float64)
        level_path = np.concatenate(([0.0], np.cumsum(dA)))
        mean_path = 0.5 * (level_path[:-1] + level_path[1:])
        optran = coefficients.optran
        ap0 = (np.log(mean_path) - optran.alpha_c2) / optran.alpha_c1
        return scale, dA, mean_path, ap0

    @staticmethod
    def _optran_thermo(coefficients: ODPSCoefficients, temperature: np.ndarray):
        t = np.asarray(temperature, dtype=np.float64) / OPTRAN_T0
        p = coefficients.ref_pressure / OPTRAN_P0
        return t, p

    def compute_optran(self, coefficients, temperature, water_vapor, secant_zenith,
                       predictor):
        _, dA, _, ap0 = self._optran_forward(coefficients, water_vapor, secant_zenith)
        predictor.dA[:] = dA
        Ap = predictor.Ap
        Ap[:, 0] = ap0
        for j in range(1, MAX_OPTRAN_ORDER):
            Ap[:, j] = ap0 * Ap[:, j - 1]

        t, p = self._optran_thermo(coefficients, temperature)
        predictor.OX[:] = np.column_stack((t, p, t * t, p * p, t * p, t * t * p, t * p * p))

    def compute_optran_tl(self, coefficients, temperature, water_vapor, secant_zenith,
                          temperature_tl, water_vapor_tl, predictor_tl):
        scale, _, mean_path, ap0 = self._optran_forward(coefficients, water_vapor,
                                                        secant_zenith)
        dA_tl = scale * np.asarray(water_vapor_tl, dtype=np.float64)
        predictor_tl.dA[:] = dA_tl
        level_path_tl = np.concatenate(([0.0], np.cumsum(dA_tl)))
        mean_path_tl = 0.5 * (level_path_tl[:-1] + level_path_tl[1:])

        ap0_tl = mean_path_tl / (mean_path * coefficients.optran.alpha_c1)
        Ap_tl = predictor_tl.Ap
        Ap_tl[:, 0] = ap0_tl
        ap_prev = ap0
        for j in range(1, MAX_OPTRAN_ORDER):
            Ap_tl[:, j] = ap0_tl * ap_prev + ap0 * Ap_tl[:, j - 1]
            ap_prev = ap0 * ap_prev

        t, p = self._optran_thermo(coefficients, temperature)
        t_tl = np.asarray(temperature_tl, dtype=np.float64) / OPTRAN_T0
        zero = np.zeros_like(t)
        predictor_tl.OX[:] = np.column_stack((t_tl, zero, 2.0 * t * t_tl, zero,
                                              t_tl * p, 2.0 * t * t_tl * p,
                                              t_tl * p * p))

    def compute_optran_ad(self, coefficients, temperature, water_vapor, secant_zenith,
                          predictor_ad, temperature_ad, water_vapor_ad):
        scale, _, mean_path, ap0 = self._optran_forward(coefficients, water_vapor,
                                                        secant_zenith)

        # OX
        t, p = self._optran_thermo(coefficients, temperature)
        OX_ad = predictor_ad.OX
        t_ad = (OX_ad[:, 0] + 2.0 * t * OX_ad[:, 2] + p * OX_ad[:, 4]
                + 2.0 * t * p * OX_ad[:, 5] + p * p * OX_ad[:, 6])
        temperature_ad += t_ad / OPTRAN_T0
        OX_ad[...] = 0.0

        # Ap, highest order first
        powers = np.empty((ap0.size, MAX_OPTRAN_ORDER))
        powers[:, 0] = ap0
        for j in range(1, MAX_OPTRAN_ORDER):
            powers[:, j] = ap0 * powers[:, j - 1]
        g = predictor_ad.Ap.copy()
        for j in range(MAX_OPTRAN_ORDER - 1, 0, -1):
            g[:, 0] += g[:, j] * powers[:, j - 1]
            g[:, j - 1] += ap0 * g[:, j]
        predictor_ad.Ap[...] = 0.0

        mean_path_ad = g[:, 0] / (mean_path * coefficients.optran.alpha_c1)
        level_path_ad = np.zeros(mean_path.size + 1)
        level_path_ad[:-1] += 0.5 * mean_path_ad
        level_path_ad[1:] += 0.5 * mean_path_ad

        # level_path[k] = sum(dA[:k])
        dA_ad = predictor_ad.dA + np.cumsum(level_path_ad[:0:-1])[::-1]
        water_vapor_ad += scale * dA_ad
        predictor_ad.dA[...] = 0.0
