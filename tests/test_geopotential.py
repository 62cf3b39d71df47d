"""
Tests for hypsometric geopotential heights.

Run with: pytest tests/test_geopotential.py -v
"""

import numpy as np
import pytest

from odps_toolkit.constants import C, CC
from odps_toolkit.profile import (
    geopotential_height,
    geopotential_height_tl,
    geopotential_height_ad,
)


class TestGeopotentialHeight:
    """Test the forward integration."""

    def test_isothermal_dry_scenario(self):
        """p=[100,500,1000] hPa, T=250 K, w=0, surface at 0 km."""
        p = np.array([100.0, 500.0, 1000.0])
        T = np.array([250.0, 250.0])
        w = np.zeros(2)
        Z = geopotential_height(p, T, w, 0.0)

        assert Z[2] == 0.0
        assert Z[1] > Z[2]
        assert Z[0] > Z[1]
        assert Z[1] == pytest.approx(CC * 250.0 * np.log(1000.0 / 500.0), rel=1e-12)
        assert Z[0] - Z[1] == pytest.approx(CC * 250.0 * np.log(500.0 / 100.0), rel=1e-12)

    def test_scale_height_magnitude(self):
        """A 250 K isothermal scale height is roughly 7.3 km."""
        assert CC * 250.0 == pytest.approx(7.32, abs=0.05)

    def test_surface_height_offset(self):
        """The surface height shifts every level equally."""
        p = np.array([100.0, 500.0, 1000.0])
        T = np.array([230.0, 270.0])
        w = np.array([0.1, 5.0])
        Z0 = geopotential_height(p, T, w, 0.0)
        Z1 = geopotential_height(p, T, w, 1.5)
        np.testing.assert_allclose(Z1 - Z0, 1.5, rtol=1e-12)

    def test_water_vapor_raises_levels(self):
        """Moist air is lighter, so layers get thicker."""
        p = np.array([100.0, 500.0, 1000.0])
        T = np.array([250.0, 250.0])
        dry = geopotential_height(p, T, np.zeros(2), 0.0)
        moist = geopotential_height(p, T, np.array([1.0, 10.0]), 0.0)
        assert np.all(moist[:-1] > dry[:-1])
        assert moist[1] == pytest.approx(dry[1] * (1.0 + C * 10.0), rel=1e-12)


class TestGeopotentialLinearizations:
    """TL against finite differences and AD against TL."""

    @pytest.fixture
    def profile(self):
        p = np.array([50.0, 100.0, 200.0, 350.0, 500.0, 700.0, 1000.0])
        T = np.array([220.0, 215.0, 230.0, 250.0, 265.0, 285.0])
        w = np.array([0.005, 0.01, 0.1, 0.8, 2.5, 8.0])
        return p, T, w

    def test_tangent_linear(self, profile, rng):
        p, T, w = profile
        T_tl = rng.normal(size=T.size)
        w_tl = rng.normal(size=w.size) * 0.1

        h = 1e-5
        fd = (geopotential_height(p, T + h * T_tl, w + h * w_tl, 0.0)
              - geopotential_height(p, T - h * T_tl, w - h * w_tl, 0.0)) / (2.0 * h)
        Z_tl = geopotential_height_tl(p, T, w, T_tl, w_tl)

        assert Z_tl[-1] == 0.0
        np.testing.assert_allclose(Z_tl, fd, rtol=1e-7, atol=1e-10)

    def test_adjoint_symmetry(self, profile, rng):
        p, T, w = profile
        T_tl = rng.normal(size=T.size)
        w_tl = rng.normal(size=w.size)
        seed = rng.normal(size=p.size)

        Z_tl = geopotential_height_tl(p, T, w, T_tl, w_tl)
        Z_ad = seed.copy()
        T_ad = np.zeros_like(T)
        w_ad = np.zeros_like(w)
        geopotential_height_ad(p, T, w, Z_ad, T_ad, w_ad)

        lhs = np.dot(Z_tl, seed)
        rhs = np.dot(T_ad, T_tl) + np.dot(w_ad, w_tl)
        assert lhs == pytest.approx(rhs, rel=1e-12)
        assert np.all(Z_ad == 0.0)
