"""Shared fixtures for the GP guiding tests."""

import numpy as np
import pytest

from gpguiding.gp import GaussianProcess, PeriodicSquareExponential, seed_random_generator


@pytest.fixture(autouse=True)
def seeded_generator():
    """Make every test draw the same random matrices."""
    seed_random_generator(1234)
    yield
    seed_random_generator(None)


@pytest.fixture
def hyperparameters():
    return np.array([1.0, 2.0, 3.0, 4.0])


@pytest.fixture
def covariance_function(hyperparameters):
    return PeriodicSquareExponential(hyperparameters)


@pytest.fixture
def gp(covariance_function):
    return GaussianProcess(covariance_function)
