"""
Fixed-step cohort solver.

Advances every cohort of every species with explicit Euler steps:

    dx/dt = growth rate     (split at reproductive maturity)
    du/dt = -mortality * u

Recruits enter the boundary cohort (index 0) at the species' input birth
flux. A fresh boundary cohort is inserted every new_cohort_interval and
cohorts whose density falls below the extinction threshold are removed.

The solver owns one flat numpy vector holding all cohorts. Each species
occupies a StateView into it; cohorts are loaded from the vector before a
step and written back after it, so callers may edit either side as long
as they synchronise with copy_cohorts_to_state / copy_state_to_cohorts.
"""

import logging
from collections.abc import Callable

import numpy as np

from plantfate.cohort import Cohort
from plantfate.environment import Environment
from plantfate.errors import ConfigError, PreconditionViolation
from plantfate.physiology import PhysiologyModel
from plantfate.species import Species
from plantfate.state import StateView

logger = logging.getLogger(__name__)

# time comparisons within this tolerance count as equal
TIME_EPS = 1e-9


class CohortSolver:
    """Integrates the size-structured populations of all species."""

    def __init__(
        self,
        environment: Environment,
        physiology: PhysiologyModel,
        step_size: float = 1.0 / 12.0,
        new_cohort_interval: float = 1.0,
    ):
        if step_size <= 0 or new_cohort_interval <= 0:
            raise ConfigError(
                "step_size, new_cohort_interval", "must both be positive"
            )
        self.environment = environment
        self.physiology = physiology
        self.step_size = step_size
        self.new_cohort_interval = new_cohort_interval

        self.species: list[Species] = []
        self.state = np.zeros(0)
        self.views: list[StateView] = []
        self.current_time = 0.0

        self._newborns: list[float] = []
        self._newborns_since = 0.0
        self._last_insertion = 0.0

    def add_species(self, species: Species, initial_density: float = 0.0) -> int:
        """
        Register a species, seeding it with one boundary cohort if empty.

        Returns:
            Index of the species
        """
        if len(species) == 0:
            species.add_cohort(species.params.seedling_diameter, initial_density)
        self.species.append(species)
        self._newborns.append(0.0)
        logger.info(
            "Added species %d (%s) with %d cohorts",
            len(self.species) - 1,
            species.name or "unnamed",
            len(species),
        )
        return len(self.species) - 1

    def n_species(self) -> int:
        return len(self.species)

    def get_species(self, k: int) -> Species:
        return self.species[k]

    def reset_state(self, t0: float) -> None:
        """Set the solver clock to t0 and lay out the state vector."""
        self.current_time = t0
        self._newborns = [0.0] * len(self.species)
        self._newborns_since = t0
        self._last_insertion = t0
        self.copy_cohorts_to_state()

    def copy_cohorts_to_state(self) -> None:
        """Rebuild the state vector from the cohorts."""
        width = Species.layout.width
        size = sum(width * len(spp) for spp in self.species)
        self.state = np.zeros(size)
        self.views = []
        offset = 0
        for spp in self.species:
            view = StateView(self.state, offset, Species.layout, len(spp))
            spp.write_state(view)
            self.views.append(view)
            offset = view.end

    def copy_state_to_cohorts(self) -> None:
        """Load the cohorts from the state vector."""
        for spp, view in zip(self.species, self.views, strict=True):
            spp.read_state(view)

    def compute_rates(self) -> None:
        """Environment and per-cohort rates at the current time."""
        self.environment.update(self.current_time, self)
        for spp in self.species:
            for cohort in spp:
                cohort.compute_rates(self.environment, self.physiology)

    def _step(self, h: float) -> None:
        self.copy_state_to_cohorts()
        self.compute_rates()

        for k, spp in enumerate(self.species):
            newborns = 0.0
            for cohort in spp:
                u = cohort.u
                seeds = cohort.step(h)
                newborns += u * seeds * spp.params.seed_establishment
            self._newborns[k] += newborns
            spp.boundary_cohort().u += spp.input_birth_flux * h

        self.current_time += h

        if self.current_time - self._last_insertion >= self.new_cohort_interval - TIME_EPS:
            for spp in self.species:
                spp.add_cohort(spp.params.seedling_diameter, 0.0)
            self._last_insertion = self.current_time
            logger.info(
                "t = %.3f: inserted boundary cohorts (%s cohorts per species)",
                self.current_time,
                [len(spp) for spp in self.species],
            )

        for spp in self.species:
            spp.remove_extinct()
        self.copy_cohorts_to_state()

    def step_to(self, t: float, after_step: Callable[[float], None] | None = None) -> None:
        """
        Advance to time t in steps of at most step_size.

        Args:
            t: Target time, not earlier than the current time
            after_step: Called with the new time after every step
        """
        if t < self.current_time - TIME_EPS:
            raise PreconditionViolation(
                "CohortSolver.step_to",
                f"target {t} precedes current time {self.current_time}",
            )
        while self.current_time < t - TIME_EPS:
            h = min(self.step_size, t - self.current_time)
            self._step(h)
            logger.debug("t = %.4f, state size %d", self.current_time, self.state.shape[0])
            if after_step is not None:
                after_step(self.current_time)

    def newborns_out(self, t: float) -> list[float]:
        """
        Mean newborn flux per species since the previous call.

        Returns:
            Recruits per m2 per year for each species
        """
        dt = t - self._newborns_since
        if dt <= 0:
            return [0.0] * len(self.species)
        flux = [n / dt for n in self._newborns]
        self._newborns = [0.0] * len(self.species)
        self._newborns_since = t
        return flux

    def integrate_x(self, fn: Callable[[Cohort], float], k: int) -> float:
        """Density-weighted sum of fn over the cohorts of species k."""
        return sum(c.u * fn(c) for c in self.species[k])

    def integrate_wudx_above(
        self, fn: Callable[[Cohort], float], xlow: float, k: int
    ) -> float:
        """Density-weighted sum of fn over cohorts of species k with size >= xlow."""
        return sum(c.u * fn(c) for c in self.species[k] if c.x >= xlow)
