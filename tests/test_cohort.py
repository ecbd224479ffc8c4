"""
Tests for cohorts and species collections.
"""

import math

import numpy as np
import pytest

from plantfate.cohort import Cohort
from plantfate.config import PlantParameters, PlantTraits
from plantfate.environment import Environment
from plantfate.errors import ConsistencyError
from plantfate.physiology import PhysiologyModel
from plantfate.species import Species
from plantfate.state import StateLayout, StateView


def make_test_species(sizes: tuple[float, ...] = (0.3, 0.1, 0.01), u: float = 0.1) -> Species:
    """Species whose cohorts are listed oldest first, so index 0 is the last size."""
    spp = Species(PlantTraits(species_name="test"), PlantParameters())
    for size in sizes:
        spp.add_cohort(size, u)
    return spp


class TestCohortState:
    """Mapping between a cohort and its state fields."""

    def test_state_fields(self) -> None:
        assert Cohort.STATE_FIELDS == ("lai", "coarse_root_mass", "mortality", "seed_pool")

    def test_init_state(self) -> None:
        params = PlantParameters()
        cohort = Cohort(PlantTraits(), params, size=0.2)
        cohort.geometry.set_lai(3.0)
        cohort.mortality = 1.0
        cohort.init_state()
        lai, croot, mort, seeds = cohort.get_state()
        assert lai == params.lai0
        assert croot == pytest.approx(params.cr_rs * cohort.geometry.stem_mass(cohort.traits))
        assert mort == 0.0 and seeds == 0.0

    def test_round_trip(self) -> None:
        cohort = Cohort(PlantTraits(), PlantParameters(), size=0.2)
        it = cohort.set_state(0.2, iter([2.0, 5.0, 0.3, 12.0, -1.0]))
        assert cohort.get_state() == (2.0, 5.0, 0.3, 12.0)
        assert next(it) == -1.0

    def test_size_change_is_tracked(self) -> None:
        """Moving to a larger size through set_state keeps wood pools consistent."""
        cohort = Cohort(PlantTraits(), PlantParameters(), size=0.2)
        cohort.set_state(0.21, cohort.get_state())
        assert cohort.x == 0.21
        cohort.geometry.check_consistency(cohort.traits)

    def test_short_state_raises(self) -> None:
        cohort = Cohort(PlantTraits(), PlantParameters())
        with pytest.raises(ConsistencyError):
            cohort.set_state(cohort.x, [1.8, 0.0, 0.0])


class TestCohortRates:
    """Physiology, growth, mortality and fecundity."""

    def test_seedling_rates(self) -> None:
        params = PlantParameters()
        cohort = Cohort(PlantTraits(), params, u=1.0)
        rates = cohort.compute_rates(Environment(use_ppa=False), PhysiologyModel())
        assert rates.dx_dt > 0.0
        assert rates.rgr == pytest.approx(rates.dx_dt / cohort.x)
        assert rates.fecundity == 0.0
        juvenile = params.mort_juvenile * math.exp(-params.mort_juvenile_decay * cohort.x)
        assert rates.mortality_rate == pytest.approx(params.mort_background + juvenile)

    def test_starvation_raises_mortality(self) -> None:
        cohort = Cohort(PlantTraits(), PlantParameters(), size=0.2)
        env = Environment(use_ppa=False)
        fed = cohort.compute_rates(env, PhysiologyModel()).mortality_rate
        env.clim = env.clim._replace(ppfd=0.0)
        starved = cohort.compute_rates(env, PhysiologyModel()).mortality_rate
        assert starved > fed

    def test_mature_cohort_produces_seeds(self) -> None:
        cohort = Cohort(PlantTraits(), PlantParameters(), size=1.0, u=0.01)
        rates = cohort.compute_rates(Environment(use_ppa=False), PhysiologyModel())
        assert rates.fecundity > 0.0
        seeds = cohort.step(0.1)
        assert seeds > 0.0
        assert cohort.seed_pool == pytest.approx(seeds)

    def test_step_reduces_density(self) -> None:
        cohort = Cohort(PlantTraits(), PlantParameters(), u=1.0)
        cohort.compute_rates(Environment(use_ppa=False), PhysiologyModel())
        cohort.step(0.5)
        assert 0.0 < cohort.u < 1.0
        assert cohort.mortality > 0.0


class TestSpecies:
    """Ordered cohorts of one species."""

    def test_new_cohorts_at_front(self) -> None:
        spp = make_test_species()
        assert spp.xsize() == 3
        assert [c.x for c in spp] == [0.01, 0.1, 0.3]
        assert spp.boundary_cohort() is spp.get_cohort(0)

    def test_density_access(self) -> None:
        spp = make_test_species()
        spp.set_u(2, 0.7)
        assert spp.get_u(2) == 0.7

    def test_traits_are_shared_and_frozen(self) -> None:
        spp = make_test_species()
        assert all(c.traits is spp.traits for c in spp)
        with pytest.raises(AttributeError):
            spp.traits.lma = 0.5

    def test_remove_extinct_keeps_boundary(self) -> None:
        spp = make_test_species(u=0.0)
        spp.set_u(1, 1.0)
        removed = spp.remove_extinct()
        assert removed == 1
        assert spp.xsize() == 2
        assert spp.get_u(0) == 0.0

    def test_state_round_trip(self) -> None:
        """write_state then read_state preserves every field in order."""
        spp = make_test_species()
        spp.get_cohort(1).geometry.set_lai(2.2)
        spp.get_cohort(2).seed_pool = 4.0
        buffer = np.zeros(Species.layout.width * spp.xsize())
        view = StateView(buffer, 0, Species.layout, spp.xsize())
        spp.write_state(view)
        before = [(c.x, c.u) + c.get_state() for c in spp]

        view.set(0, "u", 0.25)
        spp.read_state(view)
        after = [(c.x, c.u) + c.get_state() for c in spp]
        assert after[0][1] == 0.25
        assert after[1:] == before[1:]

    def test_wrong_count_raises(self) -> None:
        spp = make_test_species()
        view = StateView(np.zeros(Species.layout.width * 2), 0, Species.layout, 2)
        with pytest.raises(ConsistencyError):
            spp.write_state(view)

    def test_wrong_layout_raises(self) -> None:
        spp = make_test_species(sizes=(0.1,))
        layout = StateLayout(("x", "u", "lai"))
        with pytest.raises(ConsistencyError):
            spp.read_state(StateView(np.zeros(3), 0, layout, 1))
