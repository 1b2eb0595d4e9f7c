"""
Gaussian Process Module for GP Guiding

This module provides the GP regression engine used to predict the periodic
tracking error of a telescope mount:

- math_tools: Pairwise squared distances and random matrices
- covariance_functions: Periodic / square exponential kernels with analytic
  hyperparameter derivatives
- factorization: Pivoted Cholesky factorization of the training covariance
- gaussian_process: GP inference, prediction, sampling and likelihood
- errors: Exceptions raised by the engine

Usage:
    >>> from gpguiding.gp import GaussianProcess, PeriodicSquareExponential
    >>>
    >>> cov = PeriodicSquareExponential(np.array([1.0, 2.0, 3.0, 4.0]))
    >>> gp = GaussianProcess(cov, noise_variance=0.01)
    >>>
    >>> # Condition on measured tracking error (time, error)
    >>> gp.infer(t, y)
    >>>
    >>> # Predict the error with uncertainty
    >>> mean, variance = gp.predict(t_future)
"""

from .covariance_functions import (
    COVARIANCE_FUNCTIONS,
    CovarianceDerivatives,
    # Base class
    CovarianceFunction,
    # Kernels
    PeriodicSquareExponential,
    PeriodicSquareExponential2,
    SquareExponentialPeriodic,
    # Factory functions
    create_covariance_function,
)
from .errors import (
    EmptyGPError,
    FactorizationError,
    GPError,
    HyperParameterSizeError,
)
from .factorization import PivotedCholesky
from .gaussian_process import (
    GP,
    GaussianProcess,
    GPConfig,
    GPState,
)
from .math_tools import (
    generate_normal_random_matrix,
    generate_uniform_random_matrix_0_1,
    seed_random_generator,
    square_distance,
)

__all__ = [
    "COVARIANCE_FUNCTIONS",
    "GP",
    "CovarianceDerivatives",
    # Covariance functions
    "CovarianceFunction",
    "EmptyGPError",
    "FactorizationError",
    "GPConfig",
    # Errors
    "GPError",
    "GPState",
    # Gaussian process
    "GaussianProcess",
    "HyperParameterSizeError",
    "PeriodicSquareExponential",
    "PeriodicSquareExponential2",
    "PivotedCholesky",
    "SquareExponentialPeriodic",
    "create_covariance_function",
    "generate_normal_random_matrix",
    "generate_uniform_random_matrix_0_1",
    "seed_random_generator",
    # Math tools
    "square_distance",
]
