"""
Tests for patch clearing.
"""

import numpy as np
import pytest

from plantfate.config import PlantParameters, PlantTraits
from plantfate.disturbance import PatchClearing
from plantfate.environment import Environment
from plantfate.errors import ConfigError
from plantfate.physiology import PhysiologyModel
from plantfate.solver import CohortSolver
from plantfate.species import Species


def make_test_solver() -> CohortSolver:
    """Two species with three populated cohorts each."""
    solver = CohortSolver(Environment(use_ppa=False), PhysiologyModel())
    for k in range(2):
        spp = Species(PlantTraits(species_name=f"sp{k}"), PlantParameters())
        for size in (0.4, 0.2, 0.05):
            spp.add_cohort(size, 0.3)
            spp.get_cohort(0).geometry.set_lai(2.5)
        solver.add_species(spp)
    solver.reset_state(0.0)
    return solver


class TestPatchClearing:
    def test_not_due(self) -> None:
        solver = make_test_solver()
        clearing = PatchClearing(first_clearing=50.0, rng=np.random.default_rng(0))
        assert clearing.apply(10.0, solver) is False
        assert solver.get_species(0).get_u(1) == 0.3

    def test_clears_all_but_boundary_cohort(self) -> None:
        """Non-boundary cohorts lose density and coarse roots, LAI is reset."""
        solver = make_test_solver()
        clearing = PatchClearing(first_clearing=50.0, rng=np.random.default_rng(0))
        assert clearing.apply(50.0, solver) is True

        for spp, view in zip(solver.species, solver.views, strict=True):
            boundary = spp.get_cohort(0)
            assert boundary.u == 0.3
            assert boundary.geometry.coarse_root_mass > 0.0
            assert boundary.geometry.lai == 2.5
            for i in range(1, spp.xsize()):
                cohort = spp.get_cohort(i)
                assert cohort.u == 0.0
                assert cohort.geometry.coarse_root_mass == 0.0
                assert cohort.geometry.lai == spp.params.lai0
                # solver vector is re-synchronised
                assert view.get(i, "u") == 0.0
                assert view.get(i, "coarse_root_mass") == 0.0
                assert view.get(i, "lai") == spp.params.lai0

    def test_next_clearing_drawn_within_jitter(self) -> None:
        solver = make_test_solver()
        clearing = PatchClearing(first_clearing=50.0, rng=np.random.default_rng(1))
        clearing.apply(60.0, solver)
        assert 110.0 <= clearing.next_clearing <= 210.0
        assert clearing.history == [60.0]

    def test_seeded_schedule_is_reproducible(self) -> None:
        a = PatchClearing(0.0, rng=np.random.default_rng(7))
        b = PatchClearing(0.0, rng=np.random.default_rng(7))
        a.apply(0.0, make_test_solver())
        b.apply(0.0, make_test_solver())
        assert a.next_clearing == b.next_clearing

    def test_jitter_larger_than_interval_rejected(self) -> None:
        with pytest.raises(ConfigError):
            PatchClearing(0.0, interval=10.0, jitter=20.0)

    def test_cleared_cohorts_removed_on_next_step(self) -> None:
        solver = make_test_solver()
        PatchClearing(0.0, rng=np.random.default_rng(0)).apply(0.0, solver)
        solver.step_to(1.0 / 12.0)
        assert all(spp.xsize() == 1 for spp in solver.species)
