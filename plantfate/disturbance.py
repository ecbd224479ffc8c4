"""
Stand-clearing disturbance.

At each clearing every cohort except the boundary cohort (index 0) loses
its coarse roots, has its LAI reset to the initial value and its density
set to zero. The solver vector is then rebuilt from the cohorts. The next
clearing is drawn uniformly from interval +/- jitter after the current
one.
"""

import logging

import numpy as np

from plantfate.errors import ConfigError
from plantfate.solver import CohortSolver
from plantfate.species import Species

logger = logging.getLogger(__name__)


class PatchClearing:
    """Schedule and apply patch-clearing events."""

    def __init__(
        self,
        first_clearing: float,
        interval: float = 100.0,
        jitter: float = 50.0,
        rng: np.random.Generator | None = None,
    ):
        if jitter > interval:
            raise ConfigError("jitter", f"must not exceed interval ({jitter} > {interval})")
        self.next_clearing = first_clearing
        self.interval = interval
        self.jitter = jitter
        self.rng = rng if rng is not None else np.random.default_rng()
        self.history: list[float] = []

    def due(self, t: float) -> bool:
        return t >= self.next_clearing

    @staticmethod
    def clear_species(species: Species) -> None:
        """Clear every cohort but the boundary cohort."""
        for i in range(1, species.xsize()):
            cohort = species.get_cohort(i)
            cohort.geometry.set_coarse_root_mass(0.0, species.traits)
            cohort.geometry.set_lai(species.params.lai0)
            species.set_u(i, 0.0)

    def apply(self, t: float, solver: CohortSolver) -> bool:
        """
        Clear the patch if a clearing is due at t.

        Returns:
            True if a clearing happened
        """
        if not self.due(t):
            return False
        for spp in solver.species:
            self.clear_species(spp)
        solver.copy_cohorts_to_state()

        self.history.append(t)
        self.next_clearing = t + self.interval + self.jitter * self.rng.uniform(-1.0, 1.0)
        logger.info("t = %.3f: patch cleared, next clearing at %.3f", t, self.next_clearing)
        return True
