"""
Reproductive allocation schedules.

A schedule maps relative size D / dmat to the fraction of available
assimilate diverted to seed production. All schedules share one rule:
below reproductive maturity (D < dmat) the fraction is exactly zero, and
at dmat it jumps to a strictly positive value. The jump is a genuine
discontinuity; integrators have to treat the crossing as an event.

Available schedules:

1. sigmoid: a_f1 / (1 + exp(a_f2 (1 - D/dmat)))  (starts at a_f1 / 2)
2. linear: ramps from a_f1 / 2 at dmat to a_f1 at 2 dmat, then flat
3. constant: a_f1 from dmat onwards
"""

from collections.abc import Callable

import jax.numpy as jnp
from jax import Array

from plantfate.allometry import Scalar
from plantfate.errors import ConfigError


# (relative size D / dmat, a_f1, a_f2) -> fraction above maturity
ScheduleFn = Callable[[Scalar, float, float], Array]


def sigmoid_schedule(relative_size: Scalar, a_f1: float, a_f2: float) -> Array:
    """
    Logistic rise towards a_f1.

    Args:
        relative_size: D / dmat
        a_f1: Maximum reproductive fraction
        a_f2: Steepness of the rise

    Returns:
        Reproductive fraction
    """
    return a_f1 / (1.0 + jnp.exp(a_f2 * (1.0 - relative_size)))


def linear_schedule(
    relative_size: Scalar,
    a_f1: float,
    a_f2: float,  # noqa: ARG001
) -> Array:
    """Linear ramp from a_f1/2 at maturity to a_f1 one dmat later."""
    progress = jnp.clip(relative_size - 1.0, 0.0, 1.0)
    return a_f1 * (0.5 + 0.5 * progress)


def constant_schedule(
    relative_size: Scalar,
    a_f1: float,
    a_f2: float,  # noqa: ARG001
) -> Array:
    """Fixed fraction a_f1 once mature."""
    return jnp.full_like(jnp.asarray(relative_size, dtype=float), a_f1)


SCHEDULES: dict[str, ScheduleFn] = {
    "sigmoid": sigmoid_schedule,
    "linear": linear_schedule,
    "constant": constant_schedule,
}


def get_schedule(name: str) -> ScheduleFn:
    """Look up a schedule by name."""
    try:
        return SCHEDULES[name]
    except KeyError:
        raise ConfigError(
            "reproduction_schedule",
            f"unknown schedule '{name}', expected one of {sorted(SCHEDULES)}",
        ) from None


def reproductive_fraction(
    diameter: Scalar,
    dmat: Scalar,
    a_f1: float,
    a_f2: float,
    schedule: str = "sigmoid",
) -> Array:
    """
    Fraction of assimilate allocated to reproduction.

    Exactly zero below dmat, strictly positive at and above it.

    Args:
        diameter: Basal diameter (m)
        dmat: Diameter at reproductive maturity (m)
        a_f1: Maximum reproductive fraction, in (0, 1]
        a_f2: Steepness (used by the sigmoid schedule)
        schedule: Schedule name

    Returns:
        Reproductive fraction in [0, a_f1]
    """
    if not 0 < a_f1 <= 1:
        raise ConfigError("a_f1", f"must lie in (0, 1], got {a_f1}")
    fn = get_schedule(schedule)
    relative_size = diameter / dmat
    return jnp.where(diameter < dmat, 0.0, fn(relative_size, a_f1, a_f2))
