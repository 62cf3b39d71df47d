"""
Gaseous Absorption Module

ODPS optical depth computation with forward, tangent-linear (TL) and
adjoint (AD) entry points.

Physics Background:
    ODPS (Optical Depth in Pressure Space) regresses the optical depth of
    each atmospheric layer on a fixed internal pressure grid, one
    absorption component at a time (dry gases, water vapor lines and
    continuum, trace gases). The layer optical depths are accumulated
    into a level-to-space optical path, which is interpolated onto the
    user's pressure levels and differenced back into user layer optical
    depths.

Typical call sequence per profile:
    predictor = compute_predictors(coefficients, atmosphere, geometry)
    for channel in channels:
        od = compute_atm_absorption(coefficients, channel, predictor)
"""

from .optran import saturate, add_optran_wlo_od, add_optran_wlo_od_tl, add_optran_wlo_od_ad
from .assembler import (
    OpticalPathAlgorithm,
    ODPSOpticalPath,
    ZeemanPathModel,
    select_path_algorithm,
    compute_atm_absorption,
    compute_atm_absorption_tl,
    compute_atm_absorption_ad,
)
from .driver import (
    compute_predictors,
    compute_predictors_tl,
    compute_predictors_ad,
    secant_zenith_profile,
)

__all__ = [
    'saturate',
    'add_optran_wlo_od',
    'add_optran_wlo_od_tl',
    'add_optran_wlo_od_ad',
    'OpticalPathAlgorithm',
    'ODPSOpticalPath',
    'ZeemanPathModel',
    'select_path_algorithm',
    'compute_atm_absorption',
    'compute_atm_absorption_tl',
    'compute_atm_absorption_ad',
    'compute_predictors',
    'compute_predictors_tl',
    'compute_predictors_ad',
    'secant_zenith_profile',
]
