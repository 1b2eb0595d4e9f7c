"""
Covariance Functions for Periodic Error Modelling

Implements the covariance (kernel) functions used to model the quasi-periodic
tracking error of a telescope mount:
- PeriodicSquareExponential: periodic kernel damped by a square exponential
- PeriodicSquareExponential2: long-range SE + periodic + short-range SE, with
  the period held fixed as an extra parameter
- SquareExponentialPeriodic: periodic kernel plus a square exponential

All hyperparameters live in log space. Length scales and periods are stored as
their logarithm, signal variances as the log of the standard deviation, so the
variance is exp(2θ). Each evaluate() returns the covariance matrix together
with the derivatives w.r.t. every hyperparameter, in that same log space.

With τ = |t - t'| the building blocks are:
    Square exponential:  σ² exp(-τ² / (2ℓ²))
    Periodic:            σ² exp(-2 sin²(π τ / p) / ℓ²)

Reference:
    Rasmussen, C. E., & Williams, C. K. I. (2006). Gaussian Processes
    for Machine Learning. MIT Press. Chapter 4.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Callable, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from .errors import HyperParameterSizeError
from .math_tools import square_distance

# Default for the fixed period: practically infinite, i.e. no periodicity.
NO_PERIOD = np.log(np.finfo(float).max)


def as_locations(x: NDArray) -> NDArray:
    """
    Bring locations into (N, D) form.

    A 1-D array is a scalar time series and becomes (N, 1).
    """
    x = np.asarray(x, dtype=float)
    if x.ndim == 0:
        return x.reshape(1, 1)
    if x.ndim == 1:
        return x[:, None]
    return x


class CovarianceDerivatives(Sequence):
    """
    Lazy sequence of derivative matrices ∂K/∂θᵢ.

    Each matrix is computed on first access and cached, so callers that only
    need K pay nothing for the derivatives.
    """

    def __init__(self, factories: List[Callable[[], NDArray]]):
        self._factories = factories
        self._cache: List[Optional[NDArray]] = [None] * len(factories)

    def __len__(self) -> int:
        return len(self._factories)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]
        if index < 0:
            index += len(self)
        if not 0 <= index < len(self):
            raise IndexError("derivative index out of range")
        if self._cache[index] is None:
            self._cache[index] = self._factories[index]()
        return self._cache[index]


# =============================================================================
# Base Covariance Function
# =============================================================================


class CovarianceFunction(ABC):
    """
    Abstract base class for covariance functions.

    Subclasses declare the number of hyperparameters and extra parameters and
    implement evaluate(). Hyperparameters are optimised by gradient methods,
    extra parameters (e.g. a known period) are held fixed.
    """

    #: Names of the hyperparameters, in storage order
    PARAM_NAMES: Tuple[str, ...] = ()
    #: Names of the extra (fixed) parameters
    EXTRA_PARAM_NAMES: Tuple[str, ...] = ()

    def __init__(self, hyperparameters: Optional[NDArray] = None):
        if hyperparameters is None:
            hyperparameters = np.zeros(self.n_params)
        self._hyperparameters = np.zeros(self.n_params)
        self._extra_parameters = self._default_extra_parameters()
        self.set_hyperparameters(hyperparameters)

    def _default_extra_parameters(self) -> NDArray:
        return np.zeros(len(self.EXTRA_PARAM_NAMES))

    @abstractmethod
    def evaluate(self, x: NDArray, y: NDArray) -> Tuple[NDArray, CovarianceDerivatives]:
        """
        Compute the covariance matrix and its hyperparameter derivatives.

        Args:
            x: First set of locations (N1,) or (N1, D)
            y: Second set of locations (N2,) or (N2, D)

        Returns:
            K: Covariance matrix (N1, N2)
            dK: Lazy sequence of n_params matrices (N1, N2), ∂K/∂θᵢ
        """

    def diagonal(self, x: NDArray) -> NDArray:
        """
        Prior variance k(xᵢ, xᵢ) at each location.

        The kernels here are stationary, so this is k(0) everywhere.
        """
        x = as_locations(x)
        zero = np.zeros((1, x.shape[1]))
        return np.full(x.shape[0], self.evaluate(zero, zero)[0][0, 0])

    @property
    def n_params(self) -> int:
        """Number of hyperparameters."""
        return len(self.PARAM_NAMES)

    @property
    def param_names(self) -> List[str]:
        """Names of hyperparameters."""
        return list(self.PARAM_NAMES)

    def get_parameter_count(self) -> int:
        return self.n_params

    def get_extra_parameter_count(self) -> int:
        return len(self.EXTRA_PARAM_NAMES)

    def get_hyperparameters(self) -> NDArray:
        """Get hyperparameters (log space)."""
        return self._hyperparameters.copy()

    def set_hyperparameters(self, hyperparameters: NDArray) -> None:
        """
        Set hyperparameters (log space).

        Raises:
            HyperParameterSizeError: if the length differs from n_params
        """
        hyperparameters = np.atleast_1d(np.asarray(hyperparameters, dtype=float)).flatten()
        if hyperparameters.size != self.n_params:
            raise HyperParameterSizeError(self.n_params, hyperparameters.size)
        self._hyperparameters = hyperparameters.copy()

    def get_extra_parameters(self) -> NDArray:
        return self._extra_parameters.copy()

    def set_extra_parameters(self, extra_parameters: NDArray) -> None:
        """
        Set the parameters held fixed during optimisation (log space).

        Raises:
            HyperParameterSizeError: if the length differs from the extra count
        """
        extra_parameters = np.atleast_1d(np.asarray(extra_parameters, dtype=float)).flatten()
        if extra_parameters.size != self.get_extra_parameter_count():
            raise HyperParameterSizeError(
                self.get_extra_parameter_count(), extra_parameters.size, what="extra parameters"
            )
        self._extra_parameters = extra_parameters.copy()

    def clone(self) -> "CovarianceFunction":
        return copy.deepcopy(self)

    def __repr__(self) -> str:
        params = ", ".join(
            f"{name}={value:.4g}" for name, value in zip(self.PARAM_NAMES, self._hyperparameters)
        )
        return f"{type(self).__name__}({params})"


# =============================================================================
# Kernel building blocks
# =============================================================================


def _distances(x: NDArray, y: NDArray) -> Tuple[NDArray, NDArray]:
    """Squared and plain distances between (N1, D) and (N2, D) locations."""
    sqdist = square_distance(as_locations(x).T, as_locations(y).T)
    return sqdist, np.sqrt(sqdist)


def _square_exponential_exponent(sqdist: NDArray, length_scale: float) -> NDArray:
    # E = -τ² / (2ℓ²); ∂E/∂(log ℓ) = -2E
    return -0.5 * sqdist / (length_scale * length_scale)


def _periodic_exponent(dist: NDArray, length_scale: float, period: float) -> NDArray:
    # P = -2 sin²(πτ/p) / ℓ²; ∂P/∂(log ℓ) = -2P
    return -2.0 * np.square(np.sin(np.pi / period * dist) / length_scale)


def _periodic_exponent_period_derivative(dist: NDArray, length_scale: float, period: float) -> NDArray:
    """∂P/∂(log p) = 2 sin(2πτ/p) (πτ/p) / ℓ²."""
    phase = np.pi / period * dist
    return 2.0 * np.sin(2.0 * phase) * phase / (length_scale * length_scale)


# =============================================================================
# Periodic kernel damped by a Square Exponential
# =============================================================================


class PeriodicSquareExponential(CovarianceFunction):
    """
    Periodic kernel multiplied by a square exponential envelope.

    k(t, t') = σ² exp(-2 sin²(π τ / p) / ℓ_P² - τ² / (2 ℓ_SE²))

    The periodic part captures the repeating gear error, the envelope lets the
    shape of the period drift slowly over time.

    Hyperparameters (log space):
        0: ℓ_P   periodic length scale
        1: p     period length
        2: σ     signal standard deviation
        3: ℓ_SE  square exponential length scale

    Example:
        >>> cov = PeriodicSquareExponential(np.array([1.0, 2.0, 3.0, 4.0]))
        >>> t = np.array([0.0, 50.0, 100.0])
        >>> K, dK = cov.evaluate(t, t)  # (3, 3) and 4 derivative matrices
    """

    PARAM_NAMES = ("log_periodic_lengthscale", "log_period", "log_signal_std", "log_se_lengthscale")

    def evaluate(self, x: NDArray, y: NDArray) -> Tuple[NDArray, CovarianceDerivatives]:
        ls_p, period, sd, ls_se = np.exp(self._hyperparameters)
        sv = sd * sd

        sqdist, dist = _distances(x, y)

        P = _periodic_exponent(dist, ls_p, period)
        E = _square_exponential_exponent(sqdist, ls_se)
        K = sv * np.exp(P + E)

        derivatives = CovarianceDerivatives(
            [
                lambda: -2.0 * P * K,
                lambda: _periodic_exponent_period_derivative(dist, ls_p, period) * K,
                lambda: 2.0 * K,
                lambda: -2.0 * E * K,
            ]
        )
        return K, derivatives


# =============================================================================
# Long-range SE + Periodic + short-range SE, fixed period
# =============================================================================


class PeriodicSquareExponential2(CovarianceFunction):
    """
    Sum of a long-range square exponential, a periodic kernel and a
    short-range square exponential.

    k(t, t') = σ_SE0² exp(-τ² / (2ℓ_SE0²))
             + σ_P² exp(-2 sin²(π τ / p) / ℓ_P²)
             + σ_SE1² exp(-τ² / (2ℓ_SE1²))

    The period p is an extra parameter: it is usually known from the mount's
    worm period (or estimated by a periodogram) and kept out of the
    likelihood optimisation.

    Hyperparameters (log space):
        0: ℓ_SE0  long-range SE length scale
        1: σ_SE0  long-range SE signal standard deviation
        2: ℓ_P    periodic length scale
        3: σ_P    periodic signal standard deviation
        4: ℓ_SE1  short-range SE length scale
        5: σ_SE1  short-range SE signal standard deviation

    Extra parameters (log space):
        0: p      period length
    """

    PARAM_NAMES = (
        "log_se0_lengthscale",
        "log_se0_signal_std",
        "log_periodic_lengthscale",
        "log_periodic_signal_std",
        "log_se1_lengthscale",
        "log_se1_signal_std",
    )
    EXTRA_PARAM_NAMES = ("log_period",)

    def _default_extra_parameters(self) -> NDArray:
        return np.array([NO_PERIOD])

    def evaluate(self, x: NDArray, y: NDArray) -> Tuple[NDArray, CovarianceDerivatives]:
        ls_se0, sd_se0, ls_p, sd_p, ls_se1, sd_se1 = np.exp(self._hyperparameters)
        period = np.exp(self._extra_parameters[0])

        sqdist, dist = _distances(x, y)

        E0 = _square_exponential_exponent(sqdist, ls_se0)
        K0 = sd_se0 * sd_se0 * np.exp(E0)

        P = _periodic_exponent(dist, ls_p, period)
        K1 = sd_p * sd_p * np.exp(P)

        E1 = _square_exponential_exponent(sqdist, ls_se1)
        K2 = sd_se1 * sd_se1 * np.exp(E1)

        K = K0 + K1 + K2

        derivatives = CovarianceDerivatives(
            [
                lambda: -2.0 * E0 * K0,
                lambda: 2.0 * K0,
                lambda: -2.0 * P * K1,
                lambda: 2.0 * K1,
                lambda: -2.0 * E1 * K2,
                lambda: 2.0 * K2,
            ]
        )
        return K, derivatives

    @property
    def period(self) -> float:
        return float(np.exp(self._extra_parameters[0]))


# =============================================================================
# Periodic + Square Exponential
# =============================================================================


class SquareExponentialPeriodic(CovarianceFunction):
    """
    Periodic kernel plus an independent square exponential.

    k(t, t') = σ_P² exp(-2 sin²(π τ / p) / ℓ_P²) + σ_SE² exp(-τ² / (2ℓ_SE²))

    Hyperparameters (log space):
        0: ℓ_P   periodic length scale
        1: p     period length
        2: σ_P   periodic signal standard deviation
        3: ℓ_SE  square exponential length scale
        4: σ_SE  square exponential signal standard deviation
    """

    PARAM_NAMES = (
        "log_periodic_lengthscale",
        "log_period",
        "log_periodic_signal_std",
        "log_se_lengthscale",
        "log_se_signal_std",
    )

    def evaluate(self, x: NDArray, y: NDArray) -> Tuple[NDArray, CovarianceDerivatives]:
        ls_p, period, sd_p, ls_se, sd_se = np.exp(self._hyperparameters)

        sqdist, dist = _distances(x, y)

        P = _periodic_exponent(dist, ls_p, period)
        K_p = sd_p * sd_p * np.exp(P)

        E = _square_exponential_exponent(sqdist, ls_se)
        K_se = sd_se * sd_se * np.exp(E)

        K = K_p + K_se

        derivatives = CovarianceDerivatives(
            [
                lambda: -2.0 * P * K_p,
                lambda: _periodic_exponent_period_derivative(dist, ls_p, period) * K_p,
                lambda: 2.0 * K_p,
                lambda: -2.0 * E * K_se,
                lambda: 2.0 * K_se,
            ]
        )
        return K, derivatives


# =============================================================================
# Factory Functions
# =============================================================================

COVARIANCE_FUNCTIONS = {
    "periodic_square_exponential": PeriodicSquareExponential,
    "periodic_square_exponential2": PeriodicSquareExponential2,
    "square_exponential_periodic": SquareExponentialPeriodic,
}


def create_covariance_function(
    name: str,
    hyperparameters: Optional[NDArray] = None,
) -> CovarianceFunction:
    """
    Create a covariance function by name.

    Args:
        name: One of the keys of COVARIANCE_FUNCTIONS
        hyperparameters: Initial hyperparameters (log space). Zeros if None.

    Returns:
        Covariance function instance
    """
    try:
        cls = COVARIANCE_FUNCTIONS[name]
    except KeyError:
        raise ValueError(
            f"Unknown covariance function {name!r}. Use one of {sorted(COVARIANCE_FUNCTIONS)}"
        ) from None
    return cls(hyperparameters)
