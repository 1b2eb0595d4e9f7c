"""
Gaussian Process Regression for Periodic Error Prediction

Exact GP regression on a scalar time series (the tracking error of a mount),
with O(N³) inference and cached factorization for cheap repeated predictions.

The GP models:
    y = f(t) + ε,  ε ~ N(0, σ²_n)
    f ~ GP(0, k(t, t'))

Posterior predictive:
    μ(t*) = k(t*, T) [K + σ²_n I]^{-1} y
    σ²(t*) = k(t*, t*) - k(t*, T) [K + σ²_n I]^{-1} k(T, t*)

The engine is either EMPTY (no data; predictions come from the zero-mean
prior) or FITTED (training data plus a factorization of K + σ²_n I). Data
and factorization are kept in a single immutable record that is replaced
wholesale, so a factorization is never paired with another kernel or dataset.
The engine does no locking: callers sharing it between threads must
serialise every public call.

Hyperparameter vector layout (log space):
    [log σ_n, kernel hyperparameters..., kernel extra parameters...]

Reference:
    Rasmussen, C. E., & Williams, C. K. I. (2006). Gaussian Processes
    for Machine Learning. MIT Press. Chapter 2 and Section 5.4.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from ..config import get_logger
from .covariance_functions import (
    CovarianceDerivatives,
    CovarianceFunction,
    PeriodicSquareExponential,
    as_locations,
)
from .errors import EmptyGPError, FactorizationError, HyperParameterSizeError
from .factorization import PivotedCholesky
from .math_tools import generate_normal_random_matrix

logger = get_logger("gp")


@dataclass
class GPConfig:
    """Numerical settings for the GP engine."""

    # Added to the diagonal of the training covariance before factoring (0 = exact)
    jitter: float = 0.0

    # Initial and maximum jitter for the covariance factor used in sampling
    sampling_jitter: float = 1e-6
    max_sampling_jitter: float = 1.0

    # Log noise standard deviation when none is given (practically no noise)
    default_log_noise_sd: float = -1e20

    # Pivot tolerance of the factorization. None uses the LAPACK default.
    factorization_tol: Optional[float] = None


class GPState(Enum):
    """Lifecycle state of a GaussianProcess."""

    EMPTY = auto()
    FITTED = auto()


@dataclass(frozen=True)
class _Posterior:
    """Training data and everything derived from it for one kernel setting."""

    locations: NDArray  # (N, D)
    outputs: NDArray  # (N,) as given to infer()
    residuals: NDArray  # (N,) outputs minus explicit trend
    factor: PivotedCholesky  # of K + σ²_n I (+ config jitter)
    alpha: NDArray  # (K + σ²_n I)^{-1} residuals
    gram_derivatives: CovarianceDerivatives
    trend: Optional[NDArray]  # least-squares coefficients, if enabled


def _trend_features(locations: NDArray) -> NDArray:
    """Design matrix [1, t] of the explicit linear trend."""
    return np.hstack([np.ones((locations.shape[0], 1)), locations])


def _training_data(locations: NDArray, outputs: NDArray) -> Tuple[NDArray, NDArray]:
    """Validated copies of training data as (N, D) locations and (N,) outputs."""
    locations = np.array(as_locations(locations), dtype=float)
    outputs = np.array(outputs, dtype=float).flatten()

    if locations.shape[0] != outputs.size:
        raise ValueError(
            f"Locations and outputs must have the same length ({locations.shape[0]} != {outputs.size})"
        )
    if not (np.all(np.isfinite(locations)) and np.all(np.isfinite(outputs))):
        raise ValueError("Training data contains non-finite values")
    return locations, outputs


class GaussianProcess:
    """
    Exact Gaussian Process regression with a replaceable covariance function.

    Provides:
    - Posterior (or prior) mean and variance prediction
    - Prior and posterior sampling
    - Negative log marginal likelihood and its gradient, for fitting the
      hyperparameters

    Complexity: O(N³) for inference, O(N²) for prediction

    Example:
        >>> cov = PeriodicSquareExponential(np.array([1.0, 2.0, 3.0, 4.0]))
        >>> gp = GaussianProcess(cov, noise_variance=0.01)
        >>> gp.infer(t_train, y_train)
        >>> mean, variance = gp.predict(t_test)
    """

    def __init__(
        self,
        covariance_function: Optional[CovarianceFunction] = None,
        noise_variance: Optional[float] = None,
        config: Optional[GPConfig] = None,
    ):
        """
        Initialize an EMPTY GP.

        Args:
            covariance_function: Kernel, stored as a copy. Defaults to a
                                 PeriodicSquareExponential with zero hyperparameters.
            noise_variance: Observation noise σ²_n. If None, practically zero.
            config: Numerical settings
        """
        self.config = config or GPConfig()

        if covariance_function is None:
            covariance_function = PeriodicSquareExponential()
        self._covariance_function = covariance_function.clone()

        if noise_variance is None:
            self._log_noise_sd = self.config.default_log_noise_sd
        else:
            if noise_variance <= 0:
                raise ValueError("Noise variance must be positive")
            self._log_noise_sd = 0.5 * float(np.log(noise_variance))

        self._use_explicit_trend = False
        self._posterior: Optional[_Posterior] = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> GPState:
        return GPState.EMPTY if self._posterior is None else GPState.FITTED

    @property
    def is_fitted(self) -> bool:
        return self._posterior is not None

    @property
    def n_train(self) -> int:
        """Number of training points (0 while EMPTY)."""
        return 0 if self._posterior is None else self._posterior.locations.shape[0]

    @property
    def covariance_function(self) -> CovarianceFunction:
        """Copy of the active covariance function."""
        return self._covariance_function.clone()

    @property
    def noise_variance(self) -> float:
        """Observation noise variance σ²_n = exp(2 log σ_n)."""
        return float(np.exp(2 * self._log_noise_sd))

    def _require_posterior(self) -> _Posterior:
        if self._posterior is None:
            raise EmptyGPError("No training data: call infer() first")
        return self._posterior

    # -------------------------------------------------------------------------
    # Covariance function and hyperparameters
    # -------------------------------------------------------------------------

    def set_covariance_function(self, covariance_function: CovarianceFunction) -> bool:
        """
        Replace the covariance function.

        Only allowed while EMPTY, since the cached factorization belongs to the
        current kernel. Call clear() first to swap kernels on a fitted GP.

        Returns:
            True if the kernel was replaced, False if the GP holds data
        """
        if self._posterior is not None:
            logger.warning("Refusing to change the covariance function of a GP with training data")
            return False
        self._covariance_function = covariance_function.clone()
        logger.debug(f"Covariance function set to {self._covariance_function}")
        return True

    def get_hyperparameters(self) -> NDArray:
        """
        Get all hyperparameters (log space).

        Returns:
            Array of [log σ_n, kernel hyperparameters..., kernel extra parameters...]
        """
        return np.concatenate(
            [
                [self._log_noise_sd],
                self._covariance_function.get_hyperparameters(),
                self._covariance_function.get_extra_parameters(),
            ]
        )

    def set_hyperparameters(self, hyperparameters: NDArray) -> None:
        """
        Set all hyperparameters (log space).

        If the GP holds data, inference is redone so the factorization keeps
        matching the kernel. Nothing changes if that inference fails.

        Args:
            hyperparameters: [log σ_n, kernel hyperparameters..., kernel extras...]

        Raises:
            HyperParameterSizeError: on a length mismatch
            FactorizationError: if the new covariance cannot be factored
        """
        hyperparameters = np.atleast_1d(np.asarray(hyperparameters, dtype=float)).flatten()
        cov = self._covariance_function.clone()
        n_params = cov.get_parameter_count()
        expected = 1 + n_params + cov.get_extra_parameter_count()
        if hyperparameters.size != expected:
            raise HyperParameterSizeError(expected, hyperparameters.size)

        cov.set_hyperparameters(hyperparameters[1 : 1 + n_params])
        cov.set_extra_parameters(hyperparameters[1 + n_params :])
        log_noise_sd = float(hyperparameters[0])

        posterior = self._posterior
        if posterior is not None:
            posterior = self._build_posterior(
                posterior.locations, posterior.outputs, cov, log_noise_sd, self._use_explicit_trend
            )

        self._covariance_function = cov
        self._log_noise_sd = log_noise_sd
        self._posterior = posterior

    def enable_explicit_trend(self) -> None:
        """Model a least-squares linear trend explicitly; the GP fits the residual."""
        self._set_explicit_trend(True)

    def disable_explicit_trend(self) -> None:
        self._set_explicit_trend(False)

    def _set_explicit_trend(self, enabled: bool) -> None:
        posterior = self._posterior
        if posterior is not None and enabled != self._use_explicit_trend:
            posterior = self._build_posterior(
                posterior.locations, posterior.outputs, self._covariance_function, self._log_noise_sd, enabled
            )
        self._use_explicit_trend = enabled
        self._posterior = posterior

    # -------------------------------------------------------------------------
    # Inference
    # -------------------------------------------------------------------------

    def _build_posterior(
        self,
        locations: NDArray,
        outputs: NDArray,
        covariance_function: CovarianceFunction,
        log_noise_sd: float,
        use_explicit_trend: bool,
    ) -> _Posterior:
        """Compute the posterior record without touching the GP's state."""
        n = locations.shape[0]

        trend = None
        residuals = outputs
        if use_explicit_trend:
            features = _trend_features(locations)
            trend = np.linalg.lstsq(features, outputs, rcond=None)[0]
            residuals = outputs - features @ trend

        K, dK = covariance_function.evaluate(locations, locations)

        # Gram matrix K + σ²_n I
        gram = K + (np.exp(2 * log_noise_sd) + self.config.jitter) * np.eye(n)

        try:
            factor = PivotedCholesky(gram, tol=self.config.factorization_tol)
        except FactorizationError:
            logger.warning(f"Factorization of the {n}x{n} training covariance failed")
            raise

        alpha = factor.solve(residuals)

        return _Posterior(
            locations=locations,
            outputs=outputs,
            residuals=residuals,
            factor=factor,
            alpha=alpha,
            gram_derivatives=dK,
            trend=trend,
        )

    def infer(self, locations: NDArray, outputs: NDArray) -> "GaussianProcess":
        """
        Condition the GP on training data.

        Replaces any previous data. On failure the GP keeps its previous state.

        Args:
            locations: Training locations (N,) or (N, D)
            outputs: Training outputs (N,)

        Returns:
            self (for chaining)

        Raises:
            ValueError: if the shapes do not match or data is not finite
            FactorizationError: if the training covariance cannot be factored
        """
        locations, outputs = _training_data(locations, outputs)

        self._posterior = self._build_posterior(
            locations, outputs, self._covariance_function, self._log_noise_sd, self._use_explicit_trend
        )
        logger.debug(f"Inference done on {outputs.size} points")
        return self

    def infer_sd(
        self,
        locations: NDArray,
        outputs: NDArray,
        n: int,
        prediction_point: Optional[NDArray] = None,
    ) -> "GaussianProcess":
        """
        Subset-of-data inference on the n most relevant points.

        Keeps the n training points with the largest prior covariance to the
        prediction point, which bounds the cubic cost of inference on long
        guiding sessions.

        Args:
            locations: Training locations (N,) or (N, D)
            outputs: Training outputs (N,)
            n: Number of points to keep
            prediction_point: Location the subset should serve. Defaults to
                              the last training location.

        Returns:
            self (for chaining)

        Raises:
            ValueError: if n is not positive, or on invalid data as in infer()
        """
        locations, outputs = _training_data(locations, outputs)

        if n <= 0:
            raise ValueError("Subset size must be positive")
        if n >= locations.shape[0]:
            return self.infer(locations, outputs)

        point = locations[-1:] if prediction_point is None else as_locations(prediction_point)
        relevance = self._covariance_function.evaluate(locations, point)[0][:, 0]

        # Keep the chosen points in their original order
        keep = np.sort(np.argsort(-relevance, kind="stable")[:n])
        return self.infer(locations[keep], outputs[keep])

    def clear(self) -> None:
        """Discard training data and factorization (back to EMPTY)."""
        if self._posterior is not None:
            logger.debug("Clearing GP training data")
        self._posterior = None

    # -------------------------------------------------------------------------
    # Prediction and sampling
    # -------------------------------------------------------------------------

    def predict(
        self,
        locations: NDArray,
        return_cov: bool = False,
    ) -> Tuple[NDArray, NDArray]:
        """
        Predict at test locations.

        While EMPTY this is the prior: zero mean and the kernel's covariance.

        Args:
            locations: Test locations (M,) or (M, D)
            return_cov: Return the full covariance matrix instead of variances

        Returns:
            mean: Posterior mean (M,)
            variance: Posterior variance (M,), or covariance (M, M) if return_cov
        """
        x = as_locations(locations)
        cov_fn = self._covariance_function
        posterior = self._posterior

        if return_cov:
            prior = cov_fn.evaluate(x, x)[0]
        else:
            prior = cov_fn.diagonal(x)

        if posterior is None:
            return np.zeros(x.shape[0]), prior

        # Cross-covariance k(X*, X)
        mixed = cov_fn.evaluate(x, posterior.locations)[0]  # (M, N)

        mean = mixed @ posterior.alpha
        if posterior.trend is not None:
            mean = mean + _trend_features(x) @ posterior.trend

        # v = L^{-1} Pᵀ k(X, X*), so vᵀv = k(X*, X) K^{-1} k(X, X*)
        v = posterior.factor.half_solve(mixed.T)  # (N, M)

        if return_cov:
            return mean, prior - v.T @ v
        return mean, prior - np.sum(v**2, axis=0)

    def _sampling_factor(self, covariance: NDArray) -> NDArray:
        """Cholesky factor of a covariance, with escalating jitter."""
        covariance = 0.5 * (covariance + covariance.T)
        eye = np.eye(covariance.shape[0])

        jitter = self.config.sampling_jitter
        while jitter <= self.config.max_sampling_jitter:
            try:
                return np.linalg.cholesky(covariance + jitter * eye)
            except np.linalg.LinAlgError:
                logger.warning(f"Sampling covariance not positive definite with jitter {jitter:.1e}")
                jitter *= 10
        raise FactorizationError("Sampling covariance is not positive definite even with jitter")

    def draw_sample(
        self,
        locations: NDArray,
        random_vector: Optional[NDArray] = None,
    ) -> NDArray:
        """
        Draw a function sample from the prior (EMPTY) or posterior (FITTED).

        s = μ + L z with L Lᵀ the full covariance at the locations.

        Args:
            locations: Sample locations (M,) or (M, D)
            random_vector: Standard normal vector z (M,). Drawn fresh if None;
                           pass one for reproducible samples.

        Returns:
            Sample (M,)
        """
        x = as_locations(locations)
        m = x.shape[0]

        if random_vector is None:
            z = generate_normal_random_matrix(m, 1)[:, 0]
        else:
            z = np.asarray(random_vector, dtype=float).flatten()
            if z.size != m:
                raise ValueError(f"Random vector must have {m} entries, got {z.size}")

        mean, covariance = self.predict(x, return_cov=True)
        return mean + self._sampling_factor(covariance) @ z

    # -------------------------------------------------------------------------
    # Likelihood
    # -------------------------------------------------------------------------

    def neg_log_likelihood(self) -> float:
        """
        Negative log marginal likelihood of the training data.

        -log p(y|T) = 0.5 yᵀ K⁻¹ y + 0.5 log|K| + n/2 log(2π)

        Both the quadratic form and the log-determinant come from the cached
        factor.

        Raises:
            EmptyGPError: while EMPTY
        """
        posterior = self._require_posterior()
        n = posterior.residuals.size

        v = posterior.factor.half_solve(posterior.residuals)
        data_fit = float(v @ v)
        complexity = posterior.factor.log_determinant()

        return 0.5 * (data_fit + complexity + n * np.log(2 * np.pi))

    def neg_log_likelihood_gradient(self) -> NDArray:
        """
        Gradient of the negative log marginal likelihood.

        ∂/∂θᵢ = -0.5 tr((ααᵀ - K⁻¹) ∂K/∂θᵢ),  α = K⁻¹ y

        evaluated as -0.5 (αᵀ ∂K α - tr(K⁻¹ ∂K)) with factor solves.

        Returns:
            Gradient (1 + n_params,), noise first, in log space. Kernel extra
            parameters are fixed and have no entry, so for kernels with extras
            the gradient is shorter than get_hyperparameters() and lines up
            with its first 1 + n_params entries only.

        Raises:
            EmptyGPError: while EMPTY
        """
        posterior = self._require_posterior()
        n = posterior.residuals.size
        alpha = posterior.alpha

        derivatives: List[NDArray] = [2 * np.exp(2 * self._log_noise_sd) * np.eye(n)]
        derivatives.extend(posterior.gram_derivatives)

        gradient = np.empty(len(derivatives))
        for i, dK in enumerate(derivatives):
            gradient[i] = -0.5 * (alpha @ dK @ alpha - np.trace(posterior.factor.solve(dK)))
        return gradient

    def __repr__(self) -> str:
        return (
            f"GaussianProcess(covariance_function={self._covariance_function}, "
            f"noise_variance={self.noise_variance:.6g}, n_train={self.n_train})"
        )


GP = GaussianProcess
