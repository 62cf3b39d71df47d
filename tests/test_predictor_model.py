"""
Tests for the ratio predictor model.

Run with: pytest tests/test_predictor_model.py -v
"""

import numpy as np
import pytest

from odps_toolkit.constants import GROUP_1, GROUP_2, GROUP_3, GROUP_ZSSMIS
from odps_toolkit.predictor import Predictor, RatioPredictorModel


@pytest.fixture
def model():
    return RatioPredictorModel()


@pytest.fixture
def state(group2_coefficients, rng):
    """Perturbed reference state and an empty predictor for the GROUP_2 table."""
    tc = group2_coefficients
    temperature = tc.ref_temperature * rng.uniform(0.9, 1.1, size=tc.n_layers)
    absorber = tc.ref_absorber * rng.uniform(0.5, 1.5, size=tc.ref_absorber.shape)
    secant = rng.uniform(1.0, 1.5, size=tc.n_layers)
    predictor = Predictor(n_layers=tc.n_layers, n_user_layers=5, n_components=5,
                          max_n_predictors=3)
    return temperature, absorber, secant, predictor


class TestPredictorShape:
    """Component layout per sensor group."""

    @pytest.mark.parametrize("group, n_components", [
        (GROUP_1, 8),
        (GROUP_2, 5),
        (GROUP_3, 3),
    ])
    def test_groups(self, model, group, n_components):
        assert model.predictor_shape(group) == (n_components, 3)

    def test_unknown_group(self, model):
        with pytest.raises(ValueError, match="sensor group"):
            model.predictor_shape(GROUP_ZSSMIS)


class TestRatioPredictors:
    """Forward predictor values."""

    def test_reference_state(self, model, group2_coefficients):
        """At the reference state t = a = 1, so predictors reduce to powers of s."""
        tc = group2_coefficients
        s = np.linspace(1.0, 1.4, tc.n_layers)
        predictor = Predictor(n_layers=tc.n_layers, n_user_layers=5, n_components=5,
                              max_n_predictors=3)
        model.compute(tc, tc.ref_temperature, tc.ref_absorber, s, predictor)

        X = predictor.X
        for j in range(5):
            np.testing.assert_allclose(X[:, 0, j], s, rtol=1e-12)
            np.testing.assert_allclose(X[:, 1, j], s, rtol=1e-12)
        np.testing.assert_allclose(X[:, 2, 0], s, rtol=1e-12)
        for j in range(1, 5):
            np.testing.assert_allclose(X[:, 2, j], s * s, rtol=1e-12)

    def test_water_components_share_absorber(self, model, group2_coefficients, state):
        temperature, absorber, secant, predictor = state
        model.compute(group2_coefficients, temperature, absorber, secant, predictor)
        np.testing.assert_array_equal(predictor.X[:, :, 1], predictor.X[:, :, 2])

    def test_absorber_missing_from_table(self, model, reference_grid):
        """A component whose absorber the table lacks keeps zero predictors."""
        from odps_toolkit.coefficients import ODPSCoefficients
        from odps_toolkit.constants import CO2_ID, H2O_ID

        reference_grid['ref_absorber'] = reference_grid['ref_absorber'][:, :2]
        reference_grid['absorber_id'] = [H2O_ID, CO2_ID]
        tc = ODPSCoefficients.from_blocks(group_index=GROUP_2, blocks={}, n_components=5,
                                          n_channels=1, **reference_grid)
        predictor = Predictor(n_layers=tc.n_layers, n_user_layers=5, n_components=5,
                              max_n_predictors=3)
        model.compute(tc, tc.ref_temperature, tc.ref_absorber, np.ones(tc.n_layers),
                      predictor)
        assert np.all(predictor.X[:, :, 4] == 0.0)
        assert np.all(predictor.X[:, 0, 3] == 1.0)


class TestRatioLinearizations:
    """TL against finite differences and AD against TL."""

    def test_tangent_linear(self, model, group2_coefficients, state, rng):
        tc = group2_coefficients
        temperature, absorber, secant, predictor = state
        T_tl = rng.normal(size=temperature.size)
        A_tl = rng.normal(size=absorber.shape) * absorber * 0.1

        predictor_tl = predictor.zeros_like()
        model.compute_tl(tc, temperature, absorber, secant, T_tl, A_tl, predictor_tl)

        h = 1e-5
        plus, minus = predictor.zeros_like(), predictor.zeros_like()
        model.compute(tc, temperature + h * T_tl, absorber + h * A_tl, secant, plus)
        model.compute(tc, temperature - h * T_tl, absorber - h * A_tl, secant, minus)
        fd = (plus.X - minus.X) / (2.0 * h)
        np.testing.assert_allclose(predictor_tl.X, fd, rtol=1e-6, atol=1e-10)

    def test_adjoint_symmetry(self, model, group2_coefficients, state, rng):
        tc = group2_coefficients
        temperature, absorber, secant, predictor = state
        T_tl = rng.normal(size=temperature.size)
        A_tl = rng.normal(size=absorber.shape)

        predictor_tl = predictor.zeros_like()
        model.compute_tl(tc, temperature, absorber, secant, T_tl, A_tl, predictor_tl)

        predictor_ad = predictor.zeros_like()
        predictor_ad.X[:] = rng.normal(size=predictor.X.shape)
        seed = predictor_ad.X.copy()
        T_ad = np.zeros_like(temperature)
        A_ad = np.zeros_like(absorber)
        model.compute_ad(tc, temperature, absorber, secant, predictor_ad, T_ad, A_ad)

        lhs = np.sum(predictor_tl.X * seed)
        rhs = np.dot(T_ad, T_tl) + np.sum(A_ad * A_tl)
        assert lhs == pytest.approx(rhs, rel=1e-12)
        assert np.all(predictor_ad.X == 0.0)


class TestOptranPredictors:
    """OPTRAN absorber-space and thermodynamic predictors."""

    def test_absorber_space_powers(self, model, group2_coefficients, state):
        tc = group2_coefficients
        temperature, absorber, secant, predictor = state
        model.compute_optran(tc, temperature, absorber[:, 0], secant, predictor)
        Ap = predictor.Ap
        for j in range(1, Ap.shape[1]):
            np.testing.assert_allclose(Ap[:, j], Ap[:, 0] ** (j + 1), rtol=1e-10)
        assert np.all(predictor.dA > 0.0)

    def test_tangent_linear(self, model, group2_coefficients, state, rng):
        tc = group2_coefficients
        temperature, absorber, secant, predictor = state
        w = absorber[:, 0]
        T_tl = rng.normal(size=temperature.size)
        w_tl = rng.normal(size=w.size) * w * 0.1

        predictor_tl = predictor.zeros_like()
        model.compute_optran_tl(tc, temperature, w, secant, T_tl, w_tl, predictor_tl)

        h = 1e-6
        plus, minus = predictor.zeros_like(), predictor.zeros_like()
        model.compute_optran(tc, temperature + h * T_tl, w + h * w_tl, secant, plus)
        model.compute_optran(tc, temperature - h * T_tl, w - h * w_tl, secant, minus)
        for attr in ('Ap', 'OX', 'dA'):
            fd = (getattr(plus, attr) - getattr(minus, attr)) / (2.0 * h)
            np.testing.assert_allclose(getattr(predictor_tl, attr), fd, rtol=1e-5, atol=1e-9,
                                       err_msg=attr)

    def test_adjoint_symmetry(self, model, group2_coefficients, state, rng):
        tc = group2_coefficients
        temperature, absorber, secant, predictor = state
        w = absorber[:, 0]
        T_tl = rng.normal(size=temperature.size)
        w_tl = rng.normal(size=w.size)

        predictor_tl = predictor.zeros_like()
        model.compute_optran_tl(tc, temperature, w, secant, T_tl, w_tl, predictor_tl)

        predictor_ad = predictor.zeros_like()
        predictor_ad.Ap[:] = rng.normal(size=predictor.Ap.shape)
        predictor_ad.OX[:] = rng.normal(size=predictor.OX.shape)
        predictor_ad.dA[:] = rng.normal(size=predictor.dA.shape)
        lhs = (np.sum(predictor_tl.Ap * predictor_ad.Ap)
               + np.sum(predictor_tl.OX * predictor_ad.OX)
               + np.dot(predictor_tl.dA, predictor_ad.dA))

        T_ad = np.zeros_like(temperature)
        w_ad = np.zeros_like(w)
        model.compute_optran_ad(tc, temperature, w, secant, predictor_ad, T_ad, w_ad)

        rhs = np.dot(T_ad, T_tl) + np.dot(w_ad, w_tl)
        assert lhs == pytest.approx(rhs, rel=1e-10)
        assert np.all(predictor_ad.Ap == 0.0)
        assert np.all(predictor_ad.OX == 0.0)
        assert np.all(predictor_ad.dA == 0.0)
