"""Tests for the periodic / square exponential covariance functions."""

import numpy as np
import pytest

from gpguiding.gp import (
    CovarianceFunction,
    HyperParameterSizeError,
    PeriodicSquareExponential,
    PeriodicSquareExponential2,
    SquareExponentialPeriodic,
    create_covariance_function,
)
from gpguiding.gp.math_tools import generate_normal_random_matrix

LOCATIONS = np.array([0.0, 50.0, 100.0, 150.0, 200.0])
X = np.array([0.0, 100.0, 200.0])

# Reference matrices from an independent implementation
KXX_PERIODIC_SE = np.array(
    [
        [403.4288, 234.9952, 57.6856, 7.7574, 0.4862],
        [234.9952, 403.4288, 234.9952, 57.6856, 7.7574],
        [57.6856, 234.9952, 403.4288, 234.9952, 57.6856],
        [7.7574, 57.6856, 234.9952, 403.4288, 234.9952],
        [0.4862, 7.7574, 57.6856, 234.9952, 403.4288],
    ]
)
KXX_PERIODIC_SE2 = np.array(
    [
        [3.00000, 1.06389, 0.97441, 1.07075, 0.27067],
        [1.06389, 3.00000, 1.06389, 0.97441, 1.07075],
        [0.97441, 1.06389, 3.00000, 1.06389, 0.97441],
        [1.07075, 0.97441, 1.06389, 3.00000, 1.06389],
        [0.27067, 1.07075, 0.97441, 1.06389, 3.00000],
    ]
)
KXX_SE_PERIODIC = np.array(
    [
        [2.00000, 1.82258, 1.45783, 1.17242, 1.04394],
        [1.82258, 2.00000, 1.82258, 1.45783, 1.17242],
        [1.45783, 1.82258, 2.00000, 1.82258, 1.45783],
        [1.17242, 1.45783, 1.82258, 2.00000, 1.82258],
        [1.04394, 1.17242, 1.45783, 1.82258, 2.00000],
    ]
)
# X holds every other entry of LOCATIONS
X_COLUMNS = [0, 2, 4]


def periodic_se():
    return PeriodicSquareExponential(np.array([1.0, 2.0, 3.0, 4.0]))


def periodic_se2():
    cov = PeriodicSquareExponential2(np.log([10.0, 1.0, 1.0, 1.0, 100.0, 1.0]))
    cov.set_extra_parameters(np.array([np.log(80.0)]))
    return cov


def se_periodic():
    return SquareExponentialPeriodic(np.log([10.0, 1.0, 1.0, 80.0, 1.0]))


ALL_KERNELS = [periodic_se, periodic_se2, se_periodic]


@pytest.mark.parametrize(
    "make_kernel, reference, tol",
    [
        (periodic_se, KXX_PERIODIC_SE, 0.003),
        (periodic_se2, KXX_PERIODIC_SE2, 0.01),
        (se_periodic, KXX_SE_PERIODIC, 0.01),
    ],
)
def test_covariance_reference_values(make_kernel, reference, tol):
    cov = make_kernel()
    kxx = cov.evaluate(LOCATIONS, LOCATIONS)[0]
    kxX = cov.evaluate(LOCATIONS, X)[0]
    kXX = cov.evaluate(X, X)[0]

    np.testing.assert_allclose(kxx, reference, atol=tol, rtol=0)
    np.testing.assert_allclose(kxX, reference[:, X_COLUMNS], atol=tol, rtol=0)
    np.testing.assert_allclose(kXX, reference[np.ix_(X_COLUMNS, X_COLUMNS)], atol=tol, rtol=0)


def test_periodic_se_fixture_entries():
    K = periodic_se().evaluate(LOCATIONS, LOCATIONS)[0]
    assert K[0, 0] == pytest.approx(403.4288, abs=1e-3)
    assert K[0, 1] == pytest.approx(234.9952, abs=1e-3)


@pytest.mark.parametrize("make_kernel", ALL_KERNELS)
def test_covariance_symmetry(make_kernel):
    cov = make_kernel()
    x = 10 * generate_normal_random_matrix(7, 1)
    y = 10 * generate_normal_random_matrix(4, 1)

    K = cov.evaluate(x, x)[0]
    np.testing.assert_allclose(K, K.T, rtol=1e-12)
    np.testing.assert_allclose(cov.evaluate(x, y)[0], cov.evaluate(y, x)[0].T, rtol=1e-12)


@pytest.mark.parametrize("make_kernel", ALL_KERNELS)
def test_covariance_positive_semidefinite(make_kernel):
    x = 20 * generate_normal_random_matrix(15, 1)
    K = make_kernel().evaluate(x, x)[0]
    assert np.linalg.eigvalsh(K).min() > -1e-8 * np.abs(K).max()


@pytest.mark.parametrize("make_kernel", ALL_KERNELS)
def test_covariance_derivatives_match_finite_differences(make_kernel):
    eps = 1e-6
    cov = make_kernel()
    hyperparameters = cov.get_hyperparameters()

    for h in range(cov.get_parameter_count()):
        hyper_plus = hyperparameters.copy()
        hyper_minus = hyperparameters.copy()
        hyper_plus[h] += eps
        hyper_minus[h] -= eps

        for _ in range(10):
            location = generate_normal_random_matrix(5, 1)

            cov.set_hyperparameters(hyperparameters)
            analytic = cov.evaluate(location, location)[1][h]

            cov.set_hyperparameters(hyper_plus)
            cov_plus = cov.evaluate(location, location)[0]
            cov.set_hyperparameters(hyper_minus)
            cov_minus = cov.evaluate(location, location)[0]

            numeric = (cov_plus - cov_minus) / (2 * eps)
            assert np.abs(numeric - analytic).max() < 1e-6, f"derivative {h}"


@pytest.mark.parametrize("make_kernel", ALL_KERNELS)
def test_derivatives_are_lazy_sequence(make_kernel):
    cov = make_kernel()
    K, dK = cov.evaluate(X, LOCATIONS)
    assert len(dK) == cov.get_parameter_count()
    for matrix in dK:
        assert matrix.shape == K.shape
    assert dK[-1] is dK[len(dK) - 1]
    with pytest.raises(IndexError):
        dK[len(dK)]


def test_signal_std_derivative_is_twice_covariance():
    cov = periodic_se()
    K, dK = cov.evaluate(LOCATIONS, LOCATIONS)
    np.testing.assert_allclose(dK[2], 2 * K)


@pytest.mark.parametrize(
    "cls, count, extra",
    [
        (PeriodicSquareExponential, 4, 0),
        (PeriodicSquareExponential2, 6, 1),
        (SquareExponentialPeriodic, 5, 0),
    ],
)
def test_parameter_counts(cls, count, extra):
    cov = cls()
    assert cov.get_parameter_count() == count
    assert cov.n_params == count
    assert len(cov.param_names) == count
    assert cov.get_extra_parameter_count() == extra
    np.testing.assert_array_equal(cov.get_hyperparameters(), np.zeros(count))


@pytest.mark.parametrize("cls", [PeriodicSquareExponential, PeriodicSquareExponential2, SquareExponentialPeriodic])
def test_wrong_hyperparameter_count(cls):
    cov = cls()
    with pytest.raises(HyperParameterSizeError):
        cov.set_hyperparameters(np.zeros(cov.get_parameter_count() + 1))
    with pytest.raises(HyperParameterSizeError):
        cov.set_hyperparameters(np.zeros(cov.get_parameter_count() - 1))
    with pytest.raises(HyperParameterSizeError):
        cls(np.zeros(cov.get_parameter_count() + 2))
    np.testing.assert_array_equal(cov.get_hyperparameters(), np.zeros(cov.get_parameter_count()))


def test_extra_parameters():
    cov = PeriodicSquareExponential2()
    cov.set_extra_parameters(np.array([np.log(80.0)]))
    assert cov.period == pytest.approx(80.0)
    np.testing.assert_allclose(cov.get_extra_parameters(), [np.log(80.0)])

    with pytest.raises(HyperParameterSizeError):
        cov.set_extra_parameters(np.zeros(2))
    with pytest.raises(HyperParameterSizeError):
        PeriodicSquareExponential().set_extra_parameters(np.zeros(1))
    PeriodicSquareExponential().set_extra_parameters(np.zeros(0))


def test_default_period_is_effectively_aperiodic():
    cov = PeriodicSquareExponential2(np.zeros(6))
    K = cov.evaluate(LOCATIONS, LOCATIONS)[0]
    # periodic component stays at its variance at any distance
    far = np.exp(-0.5 * 200.0**2)
    assert K[0, 4] == pytest.approx(1.0 + 2 * far)


def test_get_hyperparameters_returns_copy():
    cov = periodic_se()
    values = cov.get_hyperparameters()
    values[0] = 100.0
    assert cov.get_hyperparameters()[0] == 1.0


def test_diagonal_is_prior_variance():
    cov = periodic_se()
    np.testing.assert_allclose(cov.diagonal(LOCATIONS), np.diag(cov.evaluate(LOCATIONS, LOCATIONS)[0]))


def test_multidimensional_locations():
    cov = periodic_se()
    points = generate_normal_random_matrix(6, 2)
    K = cov.evaluate(points, points)[0]
    assert K.shape == (6, 6)
    np.testing.assert_allclose(np.diag(K), np.exp(6.0))


def test_clone_is_independent():
    cov = periodic_se()
    copy = cov.clone()
    copy.set_hyperparameters(np.zeros(4))
    np.testing.assert_array_equal(cov.get_hyperparameters(), [1.0, 2.0, 3.0, 4.0])


def test_factory():
    cov = create_covariance_function("square_exponential_periodic", np.log([10.0, 1.0, 1.0, 80.0, 1.0]))
    assert isinstance(cov, SquareExponentialPeriodic)
    assert isinstance(cov, CovarianceFunction)
    np.testing.assert_allclose(cov.evaluate(LOCATIONS, LOCATIONS)[0], KXX_SE_PERIODIC, atol=0.01)

    with pytest.raises(ValueError):
        create_covariance_function("matern")
