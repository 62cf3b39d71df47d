"""
Atmosphere Inputs

Caller-supplied profile, geometry and sensor records consumed by the
predictor driver.
"""

from .profile import Atmosphere, GeometryInfo, SSMISInput, SensorInput

__all__ = [
    'Atmosphere',
    'GeometryInfo',
    'SSMISInput',
    'SensorInput',
]
