"""
Shared fixtures: a small synthetic reference atmosphere, coefficient
tables built from it, and a user profile on a different grid.
"""

import numpy as np
import pytest

from odps_toolkit.absorption import ZeemanPathModel
from odps_toolkit.atmosphere import Atmosphere, GeometryInfo, SensorInput, SSMISInput
from odps_toolkit.coefficients import ODPSCoefficients
from odps_toolkit.constants import CO2_ID, GROUP_2, GROUP_ZSSMIS, H2O_ID, O3_ID
from odps_toolkit.predictor import ForwardCache, Predictor
from odps_toolkit.profile import compute_interp_index
from odps_toolkit.utils.config import get_config


REF_LEVEL_PRESSURE = np.array([50.0, 100.0, 200.0, 350.0, 500.0, 700.0, 1100.0])
REF_PRESSURE = 0.5 * (REF_LEVEL_PRESSURE[:-1] + REF_LEVEL_PRESSURE[1:])
REF_TEMPERATURE = np.array([220.0, 215.0, 230.0, 250.0, 265.0, 280.0])
REF_H2O = np.array([0.005, 0.01, 0.1, 0.8, 2.5, 8.0])
REF_CO2 = np.full(6, 400.0)
REF_O3 = np.array([5.0, 4.0, 1.0, 0.2, 0.08, 0.04])


@pytest.fixture(autouse=True)
def fresh_config():
    """Drop runtime config overrides after every test."""
    yield
    get_config().reset()


@pytest.fixture
def rng():
    return np.random.default_rng(20240611)


@pytest.fixture
def reference_grid():
    """Reference atmosphere keyword arguments for ODPSCoefficients.from_blocks."""
    return dict(
        ref_level_pressure=REF_LEVEL_PRESSURE,
        ref_pressure=REF_PRESSURE,
        ref_temperature=REF_TEMPERATURE,
        ref_absorber=np.column_stack((REF_H2O, REF_CO2, REF_O3)),
        absorber_id=[H2O_ID, CO2_ID, O3_ID],
    )


@pytest.fixture
def group2_coefficients(reference_grid, rng):
    """
    GROUP_2 table (dry, water line, water continuum, CO2, O3) with two
    channels. Channel 1 uses OPTRAN for the water line component.
    All regression coefficients are positive so no layer is clamped.
    """
    n_layers = REF_PRESSURE.size
    blocks = {}
    for channel in range(2):
        for component in range(5):
            blocks[component, channel] = rng.uniform(0.001, 0.02, size=(3, n_layers))
    optran_block = np.array([
        [-4.0, 0.10, 0.010],
        [0.50, 0.02, 0.001],
        [0.20, 0.01, 0.002],
    ])
    return ODPSCoefficients.from_blocks(
        group_index=GROUP_2,
        blocks=blocks,
        n_components=5,
        n_channels=2,
        ocomponent_index=1,
        optran_blocks={1: ([0, 2], optran_block)},
        sensor_id='synthetic_g2',
        **reference_grid,
    )


@pytest.fixture
def user_atmosphere():
    """Five-layer user profile with H2O and O3 but no CO2."""
    return Atmosphere(
        level_pressure=[0.0, 80.0, 150.0, 300.0, 600.0, 1000.0],
        pressure=[40.0, 115.0, 225.0, 450.0, 800.0],
        temperature=[215.0, 225.0, 240.0, 260.0, 285.0],
        absorber=np.column_stack((
            [0.004, 0.02, 0.2, 1.5, 9.0],
            [4.5, 2.0, 0.5, 0.1, 0.05],
        )),
        absorber_id=[H2O_ID, O3_ID],
    )


@pytest.fixture
def geometry():
    return GeometryInfo(sensor_zenith_angle=30.0, surface_altitude=0.2)


def attach_cache(predictor: Predictor) -> Predictor:
    """Give a hand-built predictor the minimal forward cache the assembler needs."""
    n = predictor.n_layers
    n_user = predictor.n_user_layers
    predictor.cache = ForwardCache(
        temperature=np.zeros(n),
        absorber=np.zeros((n, 1)),
        absorber_clamped=np.zeros((n, 1), dtype=bool),
        weights=np.zeros((n_user, n)),
        interp_index=np.zeros((n, 2), dtype=int),
        idx_map=np.zeros(1, dtype=int),
        h2o_index=0,
        ref_ln_pressure=np.zeros(n),
        user_ln_pressure=np.zeros(n_user),
        odps2user_idx=compute_interp_index(predictor.ref_level_ln_pressure,
                                           predictor.user_level_ln_pressure),
    )
    return predictor


@pytest.fixture
def with_cache():
    return attach_cache


class LinearZeemanModel(ZeemanPathModel):
    """
    Minimal Zeeman model: two predictors, [sec, sec * cos_theta_b * T / 250],
    regressed with fixed per-channel coefficients.
    """

    T_SCALE = 250.0

    def __init__(self, c):
        self.c = np.asarray(c, dtype=np.float64)

    def predictor_shape(self):
        return 1, 2

    def compute_predictors(self, temperature, ssmis, secant_zenith, predictor):
        predictor.X[:, 0, 0] = secant_zenith
        predictor.X[:, 1, 0] = secant_zenith * ssmis.cos_theta_b * temperature / self.T_SCALE

    def compute_predictors_tl(self, temperature, ssmis, secant_zenith, temperature_tl,
                              predictor_tl):
        predictor_tl.X[:, 1, 0] = (secant_zenith * ssmis.cos_theta_b * temperature_tl
                                   / self.T_SCALE)

    def compute_predictors_ad(self, temperature, ssmis, secant_zenith, predictor_ad,
                              temperature_ad):
        temperature_ad += (secant_zenith * ssmis.cos_theta_b * predictor_ad.X[:, 1, 0]
                           / self.T_SCALE)
        predictor_ad.X[...] = 0.0

    def _od(self, channel_index, X):
        return self.c[channel_index, 0] * X[:, 0, 0] + self.c[channel_index, 1] * X[:, 1, 0]

    def compute_od_path(self, channel_index, predictor, channel_cache=None):
        od = self._od(channel_index, predictor.X)
        od_path = np.concatenate(([0.0], np.cumsum(od)))
        if channel_cache is not None:
            channel_cache.od = od
            channel_cache.od_path = od_path
        return od_path

    def compute_od_path_tl(self, channel_index, predictor, predictor_tl, channel_cache):
        return np.concatenate(([0.0], np.cumsum(self._od(channel_index, predictor_tl.X))))

    def compute_od_path_ad(self, channel_index, predictor, od_path_ad, predictor_ad,
                           channel_cache):
        od_ad = np.cumsum(od_path_ad[:0:-1])[::-1]
        od_path_ad[...] = 0.0
        predictor_ad.X[:, 0, 0] += self.c[channel_index, 0] * od_ad
        predictor_ad.X[:, 1, 0] += self.c[channel_index, 1] * od_ad


@pytest.fixture
def zeeman_model():
    return LinearZeemanModel([[0.02, 0.05]])


@pytest.fixture
def zssmis_coefficients(reference_grid):
    """Single-channel ZSSMIS table; the optical path comes from the Zeeman model."""
    return ODPSCoefficients.from_blocks(
        group_index=GROUP_ZSSMIS,
        blocks={(0, 0): np.zeros((2, REF_PRESSURE.size))},
        n_components=1,
        n_channels=1,
        sensor_id='synthetic_zssmis',
        **reference_grid,
    )


@pytest.fixture
def ssmis_input():
    return SensorInput(ssmis=SSMISInput(field_strength=0.5, cos_theta_b=0.6))
