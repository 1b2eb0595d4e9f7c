"""
GP Guiding

Gaussian Process prediction of the periodic tracking error of telescope
mounts, for use inside a real-time guiding loop.

Modules:
    gp: Covariance functions and the GP regression engine
    learning: Hyperparameter optimisation during guiding
    config: Package logger
"""

__version__ = "0.1.0"
__author__ = "GP Guiding Team"

# Convenience imports
from . import config, gp, learning

__all__ = [
    "config",
    "gp",
    "learning",
]
