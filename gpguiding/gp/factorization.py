"""
Pivoted Cholesky Factorization

Symmetric factorization used by the GP engine for the training covariance:

    Pᵀ K P = L Lᵀ

with P a permutation that brings the largest remaining diagonal element to the
front at every step (LAPACK ?pstrf). Pivoting keeps the factorization stable
for the badly conditioned Gram matrices produced by densely sampled, smooth
time series, and the computed rank tells a near-singular matrix apart from a
usable one.

Everything the engine needs is derived from the factor: solves, the
log-determinant and the diagonal D of the equivalent LDLᵀ form (D = diag(L)²).
"""

from __future__ import annotations

from typing import Optional

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import lapack, solve_triangular

from .errors import FactorizationError


class PivotedCholesky:
    """
    Pivoted Cholesky factorization of a symmetric positive definite matrix.

    Example:
        >>> factor = PivotedCholesky(K)
        >>> alpha = factor.solve(y)       # K⁻¹ y
        >>> logdet = factor.log_determinant()
    """

    def __init__(self, matrix: NDArray, tol: Optional[float] = None):
        """
        Factor a matrix.

        Args:
            matrix: Symmetric matrix (N, N)
            tol: Pivot tolerance below which the matrix counts as rank
                 deficient. None uses LAPACK's default N·eps·max(diag).

        Raises:
            FactorizationError: if the matrix is not numerically positive definite
        """
        matrix = np.asarray(matrix, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ValueError(f"Expected a square matrix, got shape {matrix.shape}")
        if not np.all(np.isfinite(matrix)):
            raise FactorizationError("Matrix contains non-finite entries")

        n = matrix.shape[0]
        self.size = n

        if n == 0:
            self._L = np.zeros((0, 0))
            self._perm = np.zeros(0, dtype=int)
            return

        c, piv, rank, info = lapack.dpstrf(matrix, tol=-1.0 if tol is None else tol, lower=1)

        if info < 0:
            raise ValueError(f"Illegal argument {-info} in dpstrf")
        if info > 0 or rank < n:
            raise FactorizationError(f"Matrix is not positive definite (numerical rank {rank} of {n})")

        L = np.tril(c)
        if np.any(np.diag(L) <= 0.0) or not np.all(np.isfinite(L)):
            raise FactorizationError("Factorization produced non-positive pivots")

        self._L = L
        self._perm = np.asarray(piv, dtype=int) - 1  # LAPACK pivots are 1-based

    @property
    def L(self) -> NDArray:
        """Lower triangular factor of the permuted matrix."""
        return self._L

    @property
    def permutation(self) -> NDArray:
        """Index array p with (Pᵀ K P)[i, j] = K[p[i], p[j]]."""
        return self._perm

    def vector_d(self) -> NDArray:
        """Diagonal D of the equivalent LDLᵀ factorization."""
        return np.square(np.diag(self._L))

    def log_determinant(self) -> float:
        """log |K| = 2 Σ log Lᵢᵢ."""
        return float(2.0 * np.sum(np.log(np.diag(self._L))))

    def half_solve(self, b: NDArray) -> NDArray:
        """
        Solve L v = Pᵀ b.

        vᵀv equals bᵀ K⁻¹ b, which is how quadratic forms are evaluated
        without forming K⁻¹.
        """
        b = np.asarray(b, dtype=float)
        return solve_triangular(self._L, b[self._perm], lower=True)

    def solve(self, b: NDArray) -> NDArray:
        """
        Solve K x = b.

        Args:
            b: Right-hand side (N,) or (N, M)

        Returns:
            x with the shape of b
        """
        b = np.asarray(b, dtype=float)
        if self.size == 0:
            return np.zeros_like(b)
        v = self.half_solve(b)
        w = solve_triangular(self._L, v, lower=True, trans="T")
        x = np.empty_like(w)
        x[self._perm] = w
        return x

    def __repr__(self) -> str:
        return f"PivotedCholesky(size={self.size})"
