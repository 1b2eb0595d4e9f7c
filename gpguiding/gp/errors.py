"""
Error Types for the GP Engine

Each failure mode of the engine has its own exception so the guiding loop can
tell a programming error (wrong hyperparameter count) from a numerical one
(covariance matrix that cannot be factored) or a call made too early (no
training data yet).
"""

from __future__ import annotations

import numpy as np


class GPError(Exception):
    """Base class for all errors raised by the GP engine."""


class HyperParameterSizeError(GPError, ValueError):
    """Hyperparameter vector length does not match the expected count."""

    def __init__(self, expected: int, received: int, what: str = "hyperparameters"):
        self.expected = expected
        self.received = received
        super().__init__(f"Wrong number of {what}: expected {expected}, got {received}")


class FactorizationError(GPError, np.linalg.LinAlgError):
    """Covariance matrix is not (numerically) positive definite."""


class EmptyGPError(GPError, RuntimeError):
    """Operation needs training data, but infer() has not been called."""
