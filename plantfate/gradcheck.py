"""
Derivative checks for the growth law.

Growth converts structural mass into diameter through dsize_dmass, an
analytic chain-rule expression kept in PlantGeometry. This module checks
it against automatic differentiation of the structural mass closed form:

    dsize_dmass(D) == 1 / (d structural_mass / dD)

A mismatch means the analytic derivative and the mass pools have drifted
apart, so allocated carbon would no longer show up as biomass.
"""

import jax
import jax.numpy as jnp
import jax.random as jr
from jax import Array

from plantfate import allometry
from plantfate.config import PlantParameters, PlantTraits
from plantfate.errors import ConsistencyError
from plantfate.geometry import PlantGeometry


def sample_plant_sizes(
    key: Array,
    traits: PlantTraits,
    params: PlantParameters,
    num_samples: int = 50,
) -> dict[str, Array]:
    """
    Sample diameters and LAI values covering the life of a plant.

    Diameters are log-uniform from seedling size to 1.5 times the
    diameter at which height reaches 99% of hmat.

    Returns:
        Dictionary with "diameter" and "lai" arrays
    """
    keys = jr.split(key, 2)
    d_max = 1.5 * allometry.maturity_diameter(traits.hmat, params.a, 0.99)
    log_d = jr.uniform(
        keys[0],
        (num_samples,),
        minval=jnp.log(params.seedling_diameter),
        maxval=jnp.log(d_max),
    )
    lai = jr.uniform(keys[1], (num_samples,), minval=0.5, maxval=2.0 * params.lai_target)
    return {"diameter": jnp.exp(log_d), "lai": lai}


def autodiff_dsize_dmass(
    diameter: float, lai: float, traits: PlantTraits, params: PlantParameters
) -> Array:
    """Inverse of the diameter gradient of structural mass, by jax.grad."""

    def mass_fn(d: float) -> Array:
        return allometry.structural_mass(
            d,
            lai,
            traits.hmat,
            traits.lma,
            traits.wood_density,
            traits.zeta,
            params.a,
            params.c,
            params.n,
            params.cr_rs,
        )

    return 1.0 / jax.grad(mass_fn)(diameter)


def dsize_dmass_report(
    key: Array,
    traits: PlantTraits,
    params: PlantParameters | None = None,
    num_samples: int = 50,
) -> dict[str, float]:
    """
    Compare analytic and autodiff dsize_dmass over sampled plant sizes.

    Returns:
        Relative error statistics: "max", "mean", and "worst_diameter"
    """
    if params is None:
        params = PlantParameters()

    samples = sample_plant_sizes(key, traits, params, num_samples)
    geometry = PlantGeometry(params, traits)

    errors = []
    for d, lai in zip(samples["diameter"].tolist(), samples["lai"].tolist(), strict=True):
        geometry.set_lai(lai)
        geometry.set_size(d, traits)
        analytic = geometry.dsize_dmass(traits)
        reference = float(autodiff_dsize_dmass(d, lai, traits, params))
        errors.append(abs(analytic - reference) / abs(reference))

    errors = jnp.asarray(errors)
    worst = int(jnp.argmax(errors))
    return {
        "max": float(jnp.max(errors)),
        "mean": float(jnp.mean(errors)),
        "worst_diameter": float(samples["diameter"][worst]),
    }


def check_dsize_dmass(
    key: Array,
    traits: PlantTraits,
    params: PlantParameters | None = None,
    num_samples: int = 50,
    rtol: float = 1e-8,
) -> dict[str, float]:
    """
    Raise ConsistencyError if the analytic derivative is off by more than rtol.

    Returns:
        The report from dsize_dmass_report when the check passes
    """
    report = dsize_dmass_report(key, traits, params, num_samples)
    if report["max"] > rtol:
        raise ConsistencyError(
            f"dsize_dmass at D = {report['worst_diameter']:.4g} m",
            f"relative error <= {rtol}",
            report["max"],
        )
    return report
