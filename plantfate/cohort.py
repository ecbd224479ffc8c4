"""
Cohorts: groups of same-age plants of one species.

A Cohort couples a PlantGeometry with the species traits, its latest
physiology and demographic rates, and a density weight u (individuals per
m2). The density is owned by the solver; the cohort only writes it to set
initial conditions.
"""

import math
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from plantfate.config import PlantParameters, PlantTraits
from plantfate.errors import ConsistencyError
from plantfate.geometry import GrowthRates, PlantGeometry
from plantfate.physiology import PhysiologyModel, PhysiologyResult


@dataclass
class CohortRates:
    """Per-plant rates of the cohort state variables."""

    dx_dt: float = 0.0  # diameter growth, m/yr
    dlai_dt: float = 0.0
    dcroot_dt: float = 0.0
    mortality_rate: float = 0.0  # 1/yr
    fecundity: float = 0.0  # seeds/yr
    rgr: float = 0.0  # relative diameter growth rate, 1/yr
    growth: GrowthRates | None = field(default=None, repr=False)


class Cohort:
    """One size class of a species."""

    STATE_FIELDS = PlantGeometry.STATE_FIELDS + ("mortality", "seed_pool")

    def __init__(
        self,
        traits: PlantTraits,
        params: PlantParameters,
        size: float | None = None,
        u: float = 0.0,
    ):
        self.traits = traits
        self.params = params
        self.geometry = PlantGeometry(params, traits)
        self.u = u

        self.mortality = 0.0  # cumulative mortality hazard
        self.seed_pool = 0.0  # cumulative seed output per plant
        self.res = PhysiologyResult()
        self.rates = CohortRates()

        self.set_size(params.seedling_diameter if size is None else size)

    @property
    def x(self) -> float:
        return self.geometry.diameter

    def set_size(self, size: float) -> None:
        self.geometry.set_size(size, self.traits)

    def init_state(self) -> None:
        """Initial values of STATE_FIELDS for a newly created cohort."""
        self.geometry.set_lai(self.params.lai0)
        self.geometry.set_coarse_root_mass(
            self.params.cr_rs * self.geometry.stem_mass(self.traits), self.traits
        )
        self.mortality = 0.0
        self.seed_pool = 0.0

    def set_state(self, x: float, values: Iterable[float]) -> Iterator[float]:
        """
        Load size and STATE_FIELDS from the solver.

        A change of size is treated as growth, so the tracked wood pools
        follow it.

        Returns:
            The iterator positioned after this cohort's fields
        """
        if x != self.geometry.diameter:
            self.geometry.update_size(x, self.traits)
        it = self.geometry.set_state(values, self.traits)
        try:
            self.mortality = float(next(it))
            self.seed_pool = float(next(it))
        except StopIteration:
            raise ConsistencyError(
                "cohort state width", len(self.STATE_FIELDS), "fewer values"
            ) from None
        return it

    def get_state(self) -> tuple[float, ...]:
        return self.geometry.get_state() + (self.mortality, self.seed_pool)

    def get_biomass(self) -> float:
        return self.geometry.total_mass(self.traits)

    def compute_rates(self, environment, physiology: PhysiologyModel) -> CohortRates:
        """
        Physiology, growth, mortality and fecundity in the current environment.

        Args:
            environment: Provides `clim` and `light_fraction(height)`
            physiology: Physiology model

        Returns:
            The updated CohortRates (also stored on the cohort)
        """
        g = self.geometry
        p = self.params
        light = environment.light_fraction(g.height)
        self.res = physiology.compute(g, self.traits, environment.clim, light)
        growth = g.growth_rates(self.res.gpp, self.traits)

        carbon_deficit = max(-growth.net_production, 0.0)
        total = g.total_mass(self.traits)
        mortality_rate = (
            p.mort_background
            + p.mort_juvenile * math.exp(-p.mort_juvenile_decay * g.diameter)
            + p.mort_starvation * carbon_deficit / total
        )

        self.rates = CohortRates(
            dx_dt=growth.dsize_dt,
            dlai_dt=growth.dlai_dt,
            dcroot_dt=growth.dcroot_dt,
            mortality_rate=mortality_rate,
            fecundity=growth.reproduction / self.traits.seed_mass,
            rgr=growth.dsize_dt / g.diameter,
            growth=growth,
        )
        return self.rates

    def step(self, dt: float) -> float:
        """
        Advance this cohort by dt with its current rates.

        Growth runs through PlantGeometry.grow_for, which splits the step at
        reproductive maturity. Density decays with the mortality rate.

        Returns:
            Seeds produced per plant during the step
        """
        increment = self.geometry.grow_for(dt, self.res.gpp, self.traits)
        seeds = increment.reproduction / self.traits.seed_mass
        self.seed_pool += seeds
        self.mortality += self.rates.mortality_rate * dt
        self.u = max(self.u * (1.0 - self.rates.mortality_rate * dt), 0.0)
        return seeds

    def __repr__(self) -> str:
        return (
            f"Cohort({self.traits.species_name!r}, D={self.x:.4f}, u={self.u:.4g}, "
            f"H={self.geometry.height:.2f}, lai={self.geometry.lai:.2f})"
        )
