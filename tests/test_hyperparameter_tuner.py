"""Tests for GP hyperparameter tuning."""

import numpy as np
import pytest

from gpguiding.gp import EmptyGPError, GaussianProcess, PeriodicSquareExponential
from gpguiding.learning import HyperparameterConfig, HyperparameterTuner


@pytest.fixture
def periodic_data():
    """Noisy periodic error with a period of 20 time units."""
    rng = np.random.default_rng(42)
    t = np.linspace(0.0, 100.0, 60)
    y = np.sin(2 * np.pi * t / 20.0) + 0.05 * rng.standard_normal(t.size)
    return t, y


@pytest.fixture
def fitted_gp(periodic_data):
    t, y = periodic_data
    cov = PeriodicSquareExponential(np.log([2.0, 20.0, 0.5, 20.0]))
    gp = GaussianProcess(cov, noise_variance=0.1)
    return gp.infer(t, y)


def test_tuning_lowers_likelihood(fitted_gp):
    nll_before = fitted_gp.neg_log_likelihood()

    tuner = HyperparameterTuner(HyperparameterConfig(max_iter=50))
    result = tuner.tune(fitted_gp)

    assert result["neg_log_likelihood"] <= nll_before
    assert fitted_gp.neg_log_likelihood() == pytest.approx(result["neg_log_likelihood"])
    np.testing.assert_array_equal(fitted_gp.get_hyperparameters(), result["hyperparameters"])
    assert fitted_gp.is_fitted


def test_mask_keeps_fixed_hyperparameters(fitted_gp):
    before = fitted_gp.get_hyperparameters()

    # keep the period fixed
    mask = [True, True, False, True, True]
    tuner = HyperparameterTuner(HyperparameterConfig(optimization_mask=mask, max_iter=30))
    result = tuner.tune(fitted_gp)

    assert result["hyperparameters"][2] == before[2]
    assert fitted_gp.get_hyperparameters()[2] == before[2]


def test_mask_length_is_checked(fitted_gp):
    tuner = HyperparameterTuner(HyperparameterConfig(optimization_mask=[True, False]))
    with pytest.raises(ValueError):
        tuner.tune(fitted_gp)


def test_map_tuning(fitted_gp):
    tuner = HyperparameterTuner(HyperparameterConfig(method="map", prior_std=2.0, max_iter=30))
    result = tuner.tune(fitted_gp)

    assert np.all(np.isfinite(result["hyperparameters"]))
    assert tuner.get_tuning_history()[-1]["method"] == "map"


def test_optimiser_error_restores_hyperparameters(fitted_gp, monkeypatch):
    before = fitted_gp.get_hyperparameters()
    nll_before = fitted_gp.neg_log_likelihood()

    def failing_minimize(fun, x0, **kwargs):
        fun(x0 + 0.5)
        raise RuntimeError("optimiser crashed")

    monkeypatch.setattr("gpguiding.learning.hyperparameter_tuner.minimize", failing_minimize)

    tuner = HyperparameterTuner()
    with pytest.raises(RuntimeError):
        tuner.tune(fitted_gp)

    np.testing.assert_array_equal(fitted_gp.get_hyperparameters(), before)
    assert fitted_gp.neg_log_likelihood() == pytest.approx(nll_before, rel=1e-12)
    assert tuner.get_tuning_history() == []


def test_tuning_requires_data():
    tuner = HyperparameterTuner()
    with pytest.raises(EmptyGPError):
        tuner.tune(GaussianProcess())


def test_too_little_data_leaves_gp_unchanged():
    gp = GaussianProcess(noise_variance=0.1)
    gp.infer(np.arange(5.0), np.zeros(5))
    before = gp.get_hyperparameters()

    tuner = HyperparameterTuner(HyperparameterConfig(min_data_for_retrain=10))
    result = tuner.tune(gp)

    assert result["n_iterations"] == 0
    assert not result["success"]
    np.testing.assert_array_equal(gp.get_hyperparameters(), before)
    assert tuner.get_tuning_history() == []


def test_unknown_method():
    with pytest.raises(ValueError):
        HyperparameterTuner(HyperparameterConfig(method="bayes"))


def test_should_retrain_and_history(fitted_gp):
    tuner = HyperparameterTuner(HyperparameterConfig(retrain_interval=100, max_iter=5))

    assert not tuner.should_retrain(60)
    assert tuner.should_retrain(40)

    tuner.tune(fitted_gp)
    history = tuner.get_tuning_history()
    assert len(history) == 1
    assert history[0]["n_data"] == 60

    # the counter restarts after tuning
    assert not tuner.should_retrain(50)
