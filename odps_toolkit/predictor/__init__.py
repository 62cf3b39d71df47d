"""
Predictor Module

Per-profile predictor state and the schemes that fill it.

Components:
    - Predictor: predictors, geometry and optional forward cache
    - ForwardCache / ChannelCache: values retained for TL and AD passes
    - PredictorModel: interface used by the predictor driver
    - RatioPredictorModel: reference temperature/absorber ratio scheme
"""

from .state import Predictor, ForwardCache, ChannelCache
from .model import PredictorModel, RatioPredictorModel, COMPONENT_ABSORBERS

__all__ = [
    'Predictor',
    'ForwardCache',
    'ChannelCache',
    'PredictorModel',
    'RatioPredictorModel',
    'COMPONENT_ABSORBERS',
]
