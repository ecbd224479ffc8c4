"""
Species: an ordered collection of cohorts sharing one trait record.

Index 0 is always the newest cohort, the boundary cohort that receives
recruits. New cohorts are inserted at the front, so cohorts are ordered
from youngest to oldest.
"""

import logging
from collections.abc import Iterator

from plantfate.cohort import Cohort
from plantfate.config import PlantParameters, PlantTraits
from plantfate.errors import ConsistencyError
from plantfate.state import StateLayout, StateView

logger = logging.getLogger(__name__)


class Species:
    """Size-structured population of one species."""

    layout = StateLayout(("x", "u") + Cohort.STATE_FIELDS)

    def __init__(
        self,
        traits: PlantTraits,
        params: PlantParameters | None = None,
        extinction_threshold: float = 1e-6,
    ):
        self._traits = traits
        self.params = params if params is not None else PlantParameters()
        self.extinction_threshold = extinction_threshold
        self.input_birth_flux = 0.0
        self.cohorts: list[Cohort] = []

    @property
    def traits(self) -> PlantTraits:
        return self._traits

    @property
    def name(self) -> str:
        return self._traits.species_name

    def __len__(self) -> int:
        return len(self.cohorts)

    def __iter__(self) -> Iterator[Cohort]:
        return iter(self.cohorts)

    def xsize(self) -> int:
        """Number of cohorts."""
        return len(self.cohorts)

    def add_cohort(self, size: float | None = None, density: float = 0.0) -> Cohort:
        """Insert a new boundary cohort at index 0."""
        cohort = Cohort(self._traits, self.params, size=size, u=density)
        cohort.init_state()
        self.cohorts.insert(0, cohort)
        logger.debug(
            "Species %s: new cohort D = %.4f, u = %.4g (%d cohorts)",
            self.name,
            cohort.x,
            density,
            len(self.cohorts),
        )
        return cohort

    def get_cohort(self, i: int) -> Cohort:
        return self.cohorts[i]

    def boundary_cohort(self) -> Cohort:
        return self.cohorts[0]

    def get_u(self, i: int) -> float:
        return self.cohorts[i].u

    def set_u(self, i: int, u: float) -> None:
        self.cohorts[i].u = u

    def set_input_birth_flux(self, flux: float) -> None:
        self.input_birth_flux = flux

    def remove_extinct(self) -> int:
        """
        Drop cohorts whose density fell below the extinction threshold.

        The boundary cohort is never removed.

        Returns:
            Number of cohorts removed
        """
        if not self.cohorts:
            return 0
        kept = [self.cohorts[0]] + [
            c for c in self.cohorts[1:] if c.u >= self.extinction_threshold
        ]
        removed = len(self.cohorts) - len(kept)
        self.cohorts = kept
        if removed:
            logger.debug("Species %s: removed %d extinct cohorts", self.name, removed)
        return removed

    def write_state(self, view: StateView) -> None:
        """Copy every cohort into its row of the solver vector."""
        self._check_view(view)
        for i, cohort in enumerate(self.cohorts):
            view.write_row(i, (cohort.x, cohort.u) + cohort.get_state())

    def read_state(self, view: StateView) -> None:
        """Load every cohort from its row of the solver vector."""
        self._check_view(view)
        for i, cohort in enumerate(self.cohorts):
            row = view.row(i)
            it = cohort.set_state(float(row[0]), row[2:].tolist())
            if next(it, None) is not None:
                raise ConsistencyError("cohort state width", self.layout.width, "more values")
            cohort.u = float(row[1])

    def _check_view(self, view: StateView) -> None:
        if view.layout != self.layout:
            raise ConsistencyError("species layout", self.layout.fields, view.layout.fields)
        if len(view) != len(self.cohorts):
            raise ConsistencyError("species cohort count", len(self.cohorts), len(view))
