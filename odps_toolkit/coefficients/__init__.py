"""
ODPS Coefficient Tables

Immutable regression coefficient tables and the reference atmosphere on
which they were trained. A table is loaded once and shared read-only by
all profile and channel computations.
"""

from .tau_coeff import ODPSCoefficients, OPTRANCoefficients

__all__ = [
    'ODPSCoefficients',
    'OPTRANCoefficients',
]
