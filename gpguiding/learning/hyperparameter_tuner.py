"""
GP Hyperparameter Optimisation for Online Guiding

Periodically re-fits the GP hyperparameters as new tracking-error
measurements arrive, so the model follows changes in the mount's behaviour.

Methods:
1. Maximum Likelihood Estimation (MLE)
2. Maximum A Posteriori (MAP) with Gaussian priors in log space

Both minimise the engine's negative log likelihood with its analytic gradient
(L-BFGS-B). A mask selects which hyperparameters move; the guider typically
keeps the period fixed once it is known. Kernel extra parameters are never
optimised.

Reference:
    Rasmussen, C. E., & Williams, C. K. I. (2006). Gaussian Processes
    for Machine Learning. MIT Press. Section 5.4.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import minimize

from ..config import get_logger
from ..gp.errors import EmptyGPError, FactorizationError
from ..gp.gaussian_process import GaussianProcess

logger = get_logger("learning")

# Objective value reported for hyperparameters whose covariance cannot be factored
FAILED_NLL = 1e10


@dataclass
class HyperparameterConfig:
    """Configuration for hyperparameter tuning."""

    # Optimization method
    method: str = "mle"  # "mle", "map"

    # Optimization settings
    max_iter: int = 100
    tol: float = 1e-6

    # Which of [noise, kernel hyperparameters...] to optimise. None = all.
    optimization_mask: Optional[Sequence[bool]] = None

    # Bounds for every optimised hyperparameter (log space)
    log_bounds: Tuple[float, float] = (-20.0, 20.0)

    # Gaussian prior in log space (MAP only)
    prior_mean: float = 0.0
    prior_std: float = 10.0

    # Retraining triggers
    min_data_for_retrain: int = 10
    retrain_interval: int = 500  # Points between retraining


class HyperparameterTuner:
    """
    Tunes GP hyperparameters by minimising the negative log likelihood.

    Example:
        >>> tuner = HyperparameterTuner(HyperparameterConfig(optimization_mask=[True, True, False, True, True]))
        >>> gp.infer(t, y)
        >>> result = tuner.tune(gp)  # gp now holds the optimised hyperparameters
    """

    def __init__(self, config: Optional[HyperparameterConfig] = None):
        """
        Initialize hyperparameter tuner.

        Args:
            config: Configuration parameters
        """
        self.config = config or HyperparameterConfig()

        if self.config.method not in ("mle", "map"):
            raise ValueError(f"Unknown tuning method {self.config.method!r}. Use 'mle' or 'map'")

        # Tracking
        self._tuning_history: List[Dict] = []
        self._points_since_tune = 0

    def should_retrain(self, n_new_points: int) -> bool:
        """
        Check if retraining should be triggered.

        Args:
            n_new_points: Number of new data points

        Returns:
            True if retraining should occur
        """
        self._points_since_tune += n_new_points

        return self._points_since_tune >= self.config.retrain_interval

    def _free_indices(self, n_gradient: int) -> NDArray:
        """Indices of the optimised entries among the first n_gradient."""
        mask = self.config.optimization_mask
        if mask is None:
            return np.arange(n_gradient)
        mask = np.asarray(mask, dtype=bool)
        if mask.size != n_gradient:
            raise ValueError(f"Optimization mask must have {n_gradient} entries, got {mask.size}")
        return np.flatnonzero(mask)

    def _log_prior(self, theta: NDArray) -> Tuple[float, NDArray]:
        """Negative log Gaussian prior and its gradient."""
        z = (theta - self.config.prior_mean) / self.config.prior_std
        return 0.5 * float(z @ z), z / self.config.prior_std

    def tune(self, gp_model: GaussianProcess) -> Dict[str, Any]:
        """
        Tune the hyperparameters of a fitted GP in place.

        Args:
            gp_model: GP holding training data

        Returns:
            Dictionary with the hyperparameters, objective value and
            optimiser status

        Raises:
            EmptyGPError: if the GP has no training data
        """
        if not gp_model.is_fitted:
            raise EmptyGPError("Hyperparameter tuning needs training data: call infer() first")

        theta0 = gp_model.get_hyperparameters()
        nll0 = gp_model.neg_log_likelihood()

        if gp_model.n_train < self.config.min_data_for_retrain:
            return {
                "hyperparameters": theta0,
                "neg_log_likelihood": nll0,
                "success": False,
                "n_iterations": 0,
            }

        start_time = time.time()

        n_gradient = 1 + gp_model.covariance_function.get_parameter_count()
        free = self._free_indices(n_gradient)
        use_prior = self.config.method == "map"

        def objective(x: NDArray) -> Tuple[float, NDArray]:
            theta = theta0.copy()
            theta[free] = x
            try:
                gp_model.set_hyperparameters(theta)
            except FactorizationError:
                return FAILED_NLL, np.zeros_like(x)

            nll = gp_model.neg_log_likelihood()
            grad = gp_model.neg_log_likelihood_gradient()[free]
            if use_prior:
                penalty, penalty_grad = self._log_prior(x)
                nll += penalty
                grad = grad + penalty_grad
            return nll, grad

        low, high = self.config.log_bounds
        x0 = np.clip(theta0[free], low, high)

        try:
            result = minimize(
                objective,
                x0,
                jac=True,
                method="L-BFGS-B",
                bounds=[(low, high)] * free.size,
                options={"maxiter": self.config.max_iter, "gtol": self.config.tol},
            )
        except Exception:
            # Do not leave the GP at the last trial point
            gp_model.set_hyperparameters(theta0)
            raise

        theta = theta0.copy()
        theta[free] = result.x
        try:
            gp_model.set_hyperparameters(theta)
            nll = gp_model.neg_log_likelihood()
        except FactorizationError:
            nll = np.inf

        objective0, objective_final = nll0, nll
        if use_prior:
            objective0 += self._log_prior(theta0[free])[0]
            objective_final += self._log_prior(theta[free])[0]

        if not objective_final <= objective0:
            # Never leave the GP worse off than before
            logger.warning("Hyperparameter optimisation did not improve the likelihood, keeping previous values")
            gp_model.set_hyperparameters(theta0)
            theta, nll = theta0, nll0

        tune_time = time.time() - start_time
        logger.info(f"Hyperparameters tuned in {tune_time:.3f}s: nll {nll0:.4f} -> {nll:.4f}")

        # Record history
        self._tuning_history.append(
            {
                "params": theta.copy(),
                "n_data": gp_model.n_train,
                "time": tune_time,
                "method": self.config.method,
                "neg_log_likelihood": nll,
            }
        )

        self._points_since_tune = 0

        return {
            "hyperparameters": theta,
            "neg_log_likelihood": nll,
            "success": bool(result.success),
            "n_iterations": int(result.nit),
        }

    def get_tuning_history(self) -> List[Dict]:
        """Get hyperparameter tuning history."""
        return self._tuning_history
