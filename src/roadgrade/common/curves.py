"""
Blend curves mapping t in [0, 1] to a blend weight in [0, 1].

All curves return exactly 0 at t=0 and exactly 1 at t=1; inputs are clipped.
"""

import numpy as np

from .config import BlendFunction


def linear(t):
    return np.clip(t, 0.0, 1.0)


def cosine(t):
    """0.5 - 0.5 cos(pi t): zero slope at both ends."""
    t = np.clip(t, 0.0, 1.0)
    return 0.5 - 0.5 * np.cos(np.pi * t)


def cubic(t):
    """Smoothstep t^2 (3 - 2t)."""
    t = np.clip(t, 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def quintic(t):
    """Smootherstep t^3 (t (6t - 15) + 10)."""
    t = np.clip(t, 0.0, 1.0)
    return t * t * t * (t * (6.0 * t - 15.0) + 10.0)


_CURVES = {
    BlendFunction.LINEAR: linear,
    BlendFunction.COSINE: cosine,
    BlendFunction.CUBIC: cubic,
    BlendFunction.QUINTIC: quintic,
}


def get_curve(function: BlendFunction):
    """Look up the curve implementation for a BlendFunction."""
    return _CURVES[BlendFunction(function)]
