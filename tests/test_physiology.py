"""
Tests for the light-use-efficiency physiology.
"""

import jax.numpy as jnp
import pytest

from plantfate import physiology
from plantfate.climate import ClimateState
from plantfate.config import PhysiologyParams, PlantParameters, PlantTraits
from plantfate.geometry import PlantGeometry


def make_test_plant(diameter: float = 0.1) -> tuple[PlantGeometry, PlantTraits]:
    traits = PlantTraits()
    g = PlantGeometry(PlantParameters(), traits)
    g.set_size(diameter, traits)
    return g, traits


class TestResponses:
    """Shapes of the environmental response functions."""

    def test_co2_normalised_at_reference(self) -> None:
        assert jnp.isclose(physiology.co2_response(400.0, 42.75, 400.0), 1.0)

    def test_co2_increasing(self) -> None:
        co2 = jnp.linspace(100.0, 1000.0, 50)
        assert jnp.all(jnp.diff(physiology.co2_response(co2, 42.75, 400.0)) > 0)

    def test_co2_zero_below_compensation_point(self) -> None:
        assert physiology.co2_response(30.0, 42.75, 400.0) == 0.0

    def test_water_half_at_p50(self) -> None:
        assert jnp.isclose(physiology.water_response(-2.0, -2.0), 0.5)

    def test_water_full_when_wet(self) -> None:
        assert jnp.isclose(physiology.water_response(0.0, -2.0), 1.0)

    def test_temperature_peak(self) -> None:
        assert jnp.isclose(physiology.temperature_response(25.0, 25.0, 12.0), 1.0)
        assert physiology.temperature_response(5.0, 25.0, 12.0) < 1.0

    def test_vpd_declining(self) -> None:
        vpd = jnp.linspace(0.0, 4000.0, 20)
        assert jnp.all(jnp.diff(physiology.vpd_response(vpd, 3000.0)) < 0)


class TestGrossAssimilation:
    def test_zero_without_light(self) -> None:
        clim = ClimateState(ppfd=0.0)
        gpp = physiology.gross_assimilation(clim, 1.8, 10.0, 1.0, -2.0, PhysiologyParams())
        assert gpp == 0.0

    def test_zero_without_leaves(self) -> None:
        gpp = physiology.gross_assimilation(
            ClimateState(), 0.0, 10.0, 1.0, -2.0, PhysiologyParams()
        )
        assert gpp == 0.0

    def test_proportional_to_light_fraction(self) -> None:
        p = PhysiologyParams()
        full = physiology.gross_assimilation(ClimateState(), 1.8, 10.0, 1.0, -2.0, p)
        half = physiology.gross_assimilation(ClimateState(), 1.8, 10.0, 0.5, -2.0, p)
        assert jnp.isclose(half, 0.5 * full)


class TestPhysiologyModel:
    """Whole-plant fluxes."""

    def test_npp_is_gpp_minus_respiration(self) -> None:
        g, traits = make_test_plant()
        res = physiology.PhysiologyModel().compute(g, traits, ClimateState())
        assert res.gpp > 0.0
        assert res.npp == pytest.approx(res.gpp - res.respiration)
        assert res.rleaf == pytest.approx(g.params.r_leaf * g.leaf_mass(traits))

    def test_transpiration_needs_vpd(self) -> None:
        g, traits = make_test_plant()
        model = physiology.PhysiologyModel()
        wet = model.compute(g, traits, ClimateState(vpd=0.0))
        dry = model.compute(g, traits, ClimateState(vpd=1500.0))
        assert wet.trans == 0.0
        assert dry.trans > 0.0
        assert dry.gs_avg > 0.0

    def test_shading_reduces_gpp(self) -> None:
        g, traits = make_test_plant()
        model = physiology.PhysiologyModel()
        sun = model.compute(g, traits, ClimateState(), light_fraction=1.0)
        shade = model.compute(g, traits, ClimateState(), light_fraction=0.2)
        assert shade.gpp == pytest.approx(0.2 * sun.gpp)

    def test_seedling_has_positive_carbon_balance(self) -> None:
        """Default calibration lets an unshaded seedling grow."""
        traits = PlantTraits()
        g = PlantGeometry(PlantParameters(), traits)
        res = physiology.PhysiologyModel().compute(g, traits, ClimateState())
        rates = g.growth_rates(res.gpp, traits)
        assert rates.net_production > 0.0
        assert rates.dsize_dt > 0.0
