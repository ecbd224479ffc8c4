"""
Light environment under the perfect-plasticity approximation.

Crowns are assumed to fill gaps perfectly, so the canopy forms discrete
layers. The boundary z*_k of layer k is the height above which the
community holds exactly k m2 of crown area per m2 of ground:

    sum_i u_i * crown_area_above_i(z*_k) = k

Layer boundaries are found by bisection for k = 1, 2, ... up to
max_layers, while the total crown area at the ground still reaches k.
Light reaching layer j is attenuated by the leaf area of the layers
above it: openness_j = exp(-k_light * sum_{l < j} LAI_l).
"""

import logging

import jax.numpy as jnp
import numpy as np
from jax import Array

from plantfate import allometry
from plantfate.climate import ClimateProvider, ClimateState

logger = logging.getLogger(__name__)


def total_crown_area_above(
    z: Array,
    heights: Array,
    areas: Array,
    u: Array,
    m: Array,
    n: Array,
    fg: Array,
) -> Array:
    """
    Community crown area above each height in z.

    Args:
        z: Heights, shape (K,)
        heights, areas, u, m, n, fg: Per-cohort arrays, shape (N,)

    Returns:
        Crown area per ground area above each z, shape (K,)
    """
    per_cohort = allometry.crown_area_above(
        z[:, None], heights[None, :], areas[None, :], m[None, :], n[None, :], fg[None, :]
    )
    return jnp.sum(u[None, :] * per_cohort, axis=1)


class Environment:
    """Climate plus canopy light for the current solver time."""

    def __init__(
        self,
        climate: ClimateProvider | None = None,
        use_ppa: bool = True,
        k_light: float = 0.5,
        max_layers: int = 5,
        bisection_iters: int = 60,
    ):
        self.climate = climate
        self.use_ppa = use_ppa
        self.k_light = k_light
        self.max_layers = max_layers
        self.bisection_iters = bisection_iters

        self.clim = ClimateState() if climate is None else climate.clim
        self.z_star: list[float] = []
        self.layer_lai: list[float] = []
        self.canopy_openness: list[float] = [1.0]

    def update(self, t: float, solver) -> None:
        """Refresh climate at t and, with PPA, the canopy layers."""
        if self.climate is not None:
            self.clim = self.climate.state_at(t)
        if self.use_ppa:
            self.compute_canopy(solver)

    def _gather(self, solver) -> dict[str, Array]:
        cols: dict[str, list[float]] = {
            k: [] for k in ("heights", "areas", "u", "lai", "m", "n", "fg")
        }
        for spp in solver.species:
            p = spp.params
            for c in spp:
                cols["heights"].append(c.geometry.height)
                cols["areas"].append(c.geometry.crown_area)
                cols["u"].append(c.u)
                cols["lai"].append(c.geometry.lai)
                cols["m"].append(p.m)
                cols["n"].append(p.n)
                cols["fg"].append(p.fg)
        return {k: jnp.asarray(v, dtype=float) for k, v in cols.items()}

    def compute_canopy(self, solver) -> None:
        """Layer heights z_star, per-layer LAI and canopy openness."""
        cohorts = self._gather(solver)
        self.z_star = []
        self.layer_lai = []
        self.canopy_openness = [1.0]
        if cohorts["u"].shape[0] == 0:
            return

        args = (
            cohorts["heights"],
            cohorts["areas"],
            cohorts["u"],
            cohorts["m"],
            cohorts["n"],
            cohorts["fg"],
        )
        ground_area = float(total_crown_area_above(jnp.zeros(1), *args)[0])
        n_layers = min(int(np.floor(ground_area)), self.max_layers)
        if n_layers == 0:
            return

        # total crown area above z is non-increasing, so bisect all layers at once
        targets = jnp.arange(1, n_layers + 1, dtype=float)
        lo = jnp.zeros(n_layers)
        hi = jnp.full(n_layers, float(jnp.max(cohorts["heights"])))
        for _ in range(self.bisection_iters):
            mid = 0.5 * (lo + hi)
            above = total_crown_area_above(mid, *args) >= targets
            lo = jnp.where(above, mid, lo)
            hi = jnp.where(above, hi, mid)
        self.z_star = [float(z) for z in 0.5 * (lo + hi)]

        # leaf area per layer, from the top down
        bounds = jnp.asarray([float(jnp.max(cohorts["heights"]))] + self.z_star + [0.0])
        leaf_area_above = jnp.sum(
            cohorts["u"][None, :]
            * cohorts["lai"][None, :]
            * allometry.crown_area_above(
                bounds[:, None],
                cohorts["heights"][None, :],
                cohorts["areas"][None, :],
                cohorts["m"][None, :],
                cohorts["n"][None, :],
                cohorts["fg"][None, :],
            ),
            axis=1,
        )
        self.layer_lai = [float(v) for v in jnp.diff(leaf_area_above)]

        cumulative = 0.0
        for lai in self.layer_lai[:-1]:
            cumulative += lai
            self.canopy_openness.append(float(np.exp(-self.k_light * cumulative)))

        logger.debug(
            "PPA: %d layers, z* = %s, openness = %s",
            len(self.z_star),
            self.z_star,
            self.canopy_openness,
        )

    def layer_of(self, height: float) -> int:
        """Index of the canopy layer containing a plant of this height."""
        return sum(1 for z in self.z_star if z >= height)

    def light_fraction(self, height: float) -> float:
        """Fraction of top-of-canopy light reaching a crown top at this height."""
        if not self.use_ppa:
            return 1.0
        return self.canopy_openness[self.layer_of(height)]
