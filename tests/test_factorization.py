"""Tests for the pivoted Cholesky factorization."""

import numpy as np
import pytest

from gpguiding.gp import FactorizationError, PivotedCholesky
from gpguiding.gp.math_tools import generate_normal_random_matrix


@pytest.fixture
def spd_matrix():
    X = generate_normal_random_matrix(6, 6)
    return X @ X.T + 0.5 * np.eye(6)


def test_solve_matches_dense_solve(spd_matrix):
    b = generate_normal_random_matrix(6, 2)
    factor = PivotedCholesky(spd_matrix)
    np.testing.assert_allclose(factor.solve(b), np.linalg.solve(spd_matrix, b), rtol=1e-10, atol=1e-10)
    np.testing.assert_allclose(factor.solve(b[:, 0]), np.linalg.solve(spd_matrix, b[:, 0]), rtol=1e-10, atol=1e-10)


def test_factor_reconstructs_permuted_matrix(spd_matrix):
    factor = PivotedCholesky(spd_matrix)
    p = factor.permutation
    np.testing.assert_allclose(factor.L @ factor.L.T, spd_matrix[np.ix_(p, p)], atol=1e-10)
    assert sorted(p) == list(range(6))


def test_log_determinant(spd_matrix):
    factor = PivotedCholesky(spd_matrix)
    sign, logdet = np.linalg.slogdet(spd_matrix)
    assert sign > 0
    assert factor.log_determinant() == pytest.approx(logdet, rel=1e-10)
    assert np.sum(np.log(factor.vector_d())) == pytest.approx(logdet, rel=1e-10)


def test_quadratic_form_from_half_solve(spd_matrix):
    y = generate_normal_random_matrix(6, 1)[:, 0]
    v = PivotedCholesky(spd_matrix).half_solve(y)
    assert v @ v == pytest.approx(y @ np.linalg.solve(spd_matrix, y), rel=1e-10)


def test_not_positive_definite():
    with pytest.raises(FactorizationError):
        PivotedCholesky(np.array([[1.0, 2.0], [2.0, 1.0]]))


def test_rank_deficient():
    v = np.array([[1.0], [2.0], [3.0]])
    with pytest.raises(FactorizationError):
        PivotedCholesky(v @ v.T)


def test_non_finite():
    with pytest.raises(FactorizationError):
        PivotedCholesky(np.array([[1.0, np.nan], [np.nan, 1.0]]))


def test_factorization_error_is_linalg_error():
    assert issubclass(FactorizationError, np.linalg.LinAlgError)


def test_non_square():
    with pytest.raises(ValueError):
        PivotedCholesky(np.ones((2, 3)))
