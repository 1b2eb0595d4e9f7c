#!/usr/bin/env python3
"""
Demo: Predicting Periodic Gear Error with a Gaussian Process

Simulates the tracking error of a mount with a worm gear (a periodic error
whose shape drifts slowly, plus measurement noise), fits the GP
hyperparameters on the first part of the session and predicts the rest.

Usage:
    python scripts/demo_gear_error_prediction.py
    python scripts/demo_gear_error_prediction.py --period 480 --points 150
    python scripts/demo_gear_error_prediction.py --output outputs/gear_error.png
"""

import argparse
import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from gpguiding.config import set_log_level
from gpguiding.gp import GaussianProcess, PeriodicSquareExponential, seed_random_generator
from gpguiding.learning import HyperparameterConfig, HyperparameterTuner


def simulate_gear_error(t, period, amplitude, noise_sd, rng):
    """Quasi-periodic error: two harmonics with a slow amplitude drift."""
    drift = 1.0 + 0.2 * np.sin(2 * np.pi * t / (5 * period))
    signal = amplitude * drift * (np.sin(2 * np.pi * t / period) + 0.3 * np.sin(4 * np.pi * t / period))
    return signal + noise_sd * rng.standard_normal(t.size)


def run_demo(args):
    rng = np.random.default_rng(args.seed)
    seed_random_generator(args.seed)

    # Guiding exposures every ~3 s over several worm periods
    t = np.sort(rng.uniform(0, 4 * args.period, args.points))
    y = simulate_gear_error(t, args.period, args.amplitude, args.noise, rng)

    t_train, y_train = t[t < 3 * args.period], y[t < 3 * args.period]
    t_test = np.linspace(0, 4 * args.period, 400)

    # [log ℓ_P, log p, log σ, log ℓ_SE], period started near the true value
    cov = PeriodicSquareExponential(np.log([1.0, args.period, args.amplitude, 5 * args.period]))
    gp = GaussianProcess(cov, noise_variance=args.noise**2)
    gp.infer(t_train, y_train)

    tuner = HyperparameterTuner(HyperparameterConfig(min_data_for_retrain=10))
    result = tuner.tune(gp)
    print(f"Negative log likelihood after tuning: {result['neg_log_likelihood']:.3f}")
    print(f"Hyperparameters (log): {np.array2string(result['hyperparameters'], precision=3)}")
    print(f"Estimated period: {np.exp(result['hyperparameters'][2]):.1f} s (true {args.period:.1f} s)")

    mean, variance = gp.predict(t_test)
    std = np.sqrt(np.maximum(variance, 0.0))
    samples = [gp.draw_sample(t_test) for _ in range(3)]

    fig, ax = plt.subplots(figsize=(10, 4))
    ax.fill_between(t_test, mean - 2 * std, mean + 2 * std, color="tab:blue", alpha=0.2, label="±2σ")
    ax.plot(t_test, mean, color="tab:blue", label="GP mean")
    for sample in samples:
        ax.plot(t_test, sample, color="tab:blue", lw=0.5, alpha=0.5)
    ax.plot(t_train, y_train, "k.", ms=3, label="training")
    ax.plot(t[t >= 3 * args.period], y[t >= 3 * args.period], "r.", ms=3, label="held out")
    ax.axvline(3 * args.period, color="gray", ls="--")
    ax.set_xlabel("time [s]")
    ax.set_ylabel("tracking error [arcsec]")
    ax.legend(loc="upper left")
    fig.tight_layout()

    if args.output:
        Path(args.output).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(args.output, dpi=150, bbox_inches="tight")
        print(f"Saved figure to {args.output}")
    else:
        plt.show()


def main():
    parser = argparse.ArgumentParser(description="GP prediction of periodic gear error")
    parser.add_argument("--period", type=float, default=480.0, help="Worm period in seconds")
    parser.add_argument("--amplitude", type=float, default=5.0, help="Error amplitude in arcsec")
    parser.add_argument("--noise", type=float, default=0.5, help="Measurement noise sd in arcsec")
    parser.add_argument("--points", type=int, default=200, help="Number of measurements")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")
    parser.add_argument("--output", type=str, default=None, help="Save the figure instead of showing it")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    if args.verbose:
        set_log_level(logging.DEBUG)

    run_demo(args)


if __name__ == "__main__":
    main()
