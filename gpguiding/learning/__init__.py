"""
Online Learning Module for GP Guiding

Keeps the GP hyperparameters matched to the mount as guiding goes on:

    hyperparameter_tuner: Likelihood-based hyperparameter optimisation

Usage:
    >>> from gpguiding.learning import HyperparameterTuner, HyperparameterConfig
    >>>
    >>> tuner = HyperparameterTuner(HyperparameterConfig(method="map"))
    >>> if tuner.should_retrain(n_new_points):
    >>>     tuner.tune(gp)
"""

from .hyperparameter_tuner import (
    HyperparameterConfig,
    HyperparameterTuner,
)

__all__ = [
    # Hyperparameter Tuning
    "HyperparameterConfig",
    "HyperparameterTuner",
]
