"""
ODPS Toolkit: Gaseous Absorption for Variational Radiative Transfer

Optical Depth in Pressure Space (ODPS) absorption model with forward,
tangent-linear (TL) and adjoint (AD) evaluation, for use inside
variational data assimilation.

Modules:
    profile: Vertical interpolation, layer averaging, geopotential height
    coefficients: Immutable ODPS/OPTRAN coefficient tables
    atmosphere: User profile, geometry and sensor inputs
    predictor: Predictor state and predictor models
    absorption: Predictor driver, OPTRAN and optical depth assembly
    utils: Configuration

Example:
    >>> from odps_toolkit import compute_predictors, compute_atm_absorption
    >>> predictor = compute_predictors(coefficients, atmosphere, geometry)
    >>> od = compute_atm_absorption(coefficients, 0, predictor)
    >>> # TL/AD reuse the forward values cached in predictor
    >>> predictor_tl = compute_predictors_tl(coefficients, atmosphere, predictor, atmosphere_tl)
    >>> od_tl = compute_atm_absorption_tl(coefficients, 0, predictor, predictor_tl)
"""

__version__ = "0.1.0"

# Inputs
from .atmosphere import Atmosphere, GeometryInfo, SSMISInput, SensorInput
from .coefficients import ODPSCoefficients, OPTRANCoefficients

# Predictors
from .predictor import (
    Predictor,
    ForwardCache,
    ChannelCache,
    PredictorModel,
    RatioPredictorModel,
)

# Absorption
from .absorption import (
    OpticalPathAlgorithm,
    ODPSOpticalPath,
    ZeemanPathModel,
    compute_atm_absorption,
    compute_atm_absorption_tl,
    compute_atm_absorption_ad,
    compute_predictors,
    compute_predictors_tl,
    compute_predictors_ad,
)

from .utils import Config, get_config

__all__ = [
    # Inputs
    'Atmosphere',
    'GeometryInfo',
    'SSMISInput',
    'SensorInput',
    'ODPSCoefficients',
    'OPTRANCoefficients',
    # Predictors
    'Predictor',
    'ForwardCache',
    'ChannelCache',
    'PredictorModel',
    'RatioPredictorModel',
    # Absorption
    'OpticalPathAlgorithm',
    'ODPSOpticalPath',
    'ZeemanPathModel',
    'compute_atm_absorption',
    'compute_atm_absorption_tl',
    'compute_atm_absorption_ad',
    'compute_predictors',
    'compute_predictors_tl',
    'compute_predictors_ad',
    # Config
    'Config',
    'get_config',
]
