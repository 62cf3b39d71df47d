"""
Physical and numerical constants for the ODPS gaseous absorption model.

Heights are in km, pressures in hPa, temperatures in K and water vapor
mixing ratios in g/kg throughout the package.
"""

import numpy as np

# Numerical limits
TOLERANCE = float(np.finfo(np.float64).eps)
LIMIT_EXP = 36.0436          # |ln(TOLERANCE)|
LIMIT_LOG = 4.5e+15          # exp(LIMIT_EXP)

# Maximum allowed layer optical depth
MAX_OD = 20.0

# Minimum grid spacing accepted by the layer averaging operator
SMALLDIFF = 1.0e-20

# Geometry
EARTH_RADIUS = 6370.0        # km
DEGREES_TO_RADIANS = np.pi / 180.0

# Thermodynamics
G0 = 9.80665                 # m/s^2
R0 = 8.314472                # J/mol/K
MW_DRYAIR = 28.9648          # g/mol
MW_H2O = 18.01528            # g/mol
EPS = MW_H2O / MW_DRYAIR
R_DRYAIR = 1000.0 * R0 / MW_DRYAIR

# Virtual temperature factor, Tv = T*(1 + C*w) with w in g/kg
C = (1.0 / EPS - 1.0) / 1000.0
# Scale height factor, H = CC*Tv in km
CC = 0.001 * R_DRYAIR / G0

# Surface pressure used to anchor heights when the user surface lies
# below the deepest reference level
REFERENCE_SURFACE_PRESSURE = 1013.0

# Absorber identifiers
H2O_ID = 1
CO2_ID = 2
O3_ID = 3
N2O_ID = 4
CO_ID = 5
CH4_ID = 6

# Sensor groups
GROUP_1 = 1
GROUP_2 = 2
GROUP_3 = 3
GROUP_ZSSMIS = 4

# OPTRAN water vapor line model
SIGNIFICANCE_OPTRAN = 1
MAX_OPTRAN_ORDER = 10
MAX_OPTRAN_USED_PREDICTORS = 6
MAX_OPTRAN_PREDICTORS = 7
