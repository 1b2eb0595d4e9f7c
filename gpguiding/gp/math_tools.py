"""
Math Tools for Gaussian Processes

Small numerical helpers shared by the covariance functions and the GP engine:
- Pairwise squared distances between point sets
- Random matrix generation (uniform and standard normal)

Point sets follow the column convention: a matrix of shape (D, N) holds N
points of dimension D.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
from numpy.typing import NDArray

_rng = np.random.default_rng()


def seed_random_generator(seed: Optional[int] = None) -> None:
    """
    Reseed the generator behind the random matrix functions.

    Args:
        seed: Seed for numpy's default generator. None draws fresh entropy.
    """
    global _rng
    _rng = np.random.default_rng(seed)


def square_distance(
    A: NDArray,
    B: Optional[NDArray] = None,
) -> NDArray:
    """
    Compute pairwise squared Euclidean distances.

    D[i, j] = Σₖ (A[k, i] - B[k, j])²

    Args:
        A: First point set (D, N1)
        B: Second point set (D, N2). If None, uses B = A.

    Returns:
        Squared distances (N1, N2)
    """
    A = np.atleast_2d(np.asarray(A, dtype=float))
    B = A if B is None else np.atleast_2d(np.asarray(B, dtype=float))

    if A.shape[0] != B.shape[0]:
        raise ValueError(f"Point sets have different dimensions: {A.shape[0]} and {B.shape[0]}")

    # Broadcast differences rather than expanding |a|² + |b|² - 2ab, which
    # loses exactness and symmetry under rounding.
    diff = A[:, :, None] - B[:, None, :]  # (D, N1, N2)
    return np.sum(diff**2, axis=0)


def generate_uniform_random_matrix_0_1(rows: int, cols: int) -> NDArray:
    """Matrix (rows, cols) with entries drawn uniformly from [0, 1)."""
    return _rng.random((rows, cols))


def generate_normal_random_matrix(rows: int, cols: int) -> NDArray:
    """Matrix (rows, cols) with standard normal entries."""
    return _rng.standard_normal((rows, cols))
