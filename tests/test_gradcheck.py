"""
Tests for the dsize_dmass derivative check.
"""

import jax.random as jr
import pytest

from plantfate.config import PlantParameters, PlantTraits
from plantfate.errors import ConsistencyError
from plantfate.gradcheck import (
    autodiff_dsize_dmass,
    check_dsize_dmass,
    dsize_dmass_report,
    sample_plant_sizes,
)
from plantfate.geometry import PlantGeometry


class TestDerivativeCheck:
    """Analytic dsize_dmass agrees with jax.grad."""

    def test_sample_shapes_and_range(self) -> None:
        """Samples cover seedling to beyond maturity."""
        params = PlantParameters()
        samples = sample_plant_sizes(jr.PRNGKey(0), PlantTraits(), params, num_samples=100)
        assert samples["diameter"].shape == (100,)
        assert samples["lai"].shape == (100,)
        assert float(samples["diameter"].min()) >= params.seedling_diameter * 0.999

    def test_single_size(self) -> None:
        """Analytic and autodiff agree at one size."""
        params = PlantParameters()
        traits = PlantTraits()
        g = PlantGeometry(params, traits)
        g.set_size(0.25, traits)
        reference = float(autodiff_dsize_dmass(0.25, g.lai, traits, params))
        assert reference == pytest.approx(g.dsize_dmass(traits), rel=1e-10)

    def test_report_structure(self) -> None:
        report = dsize_dmass_report(jr.PRNGKey(1), PlantTraits(), num_samples=10)
        assert set(report) == {"max", "mean", "worst_diameter"}
        assert report["mean"] <= report["max"]

    def test_check_passes_for_default_traits(self) -> None:
        """Derivative check passes across representative sizes."""
        report = check_dsize_dmass(jr.PRNGKey(42), PlantTraits(), num_samples=20)
        assert report["max"] < 1e-8

    def test_check_passes_for_dense_wood(self) -> None:
        traits = PlantTraits(wood_density=1000.0, lma=0.2, hmat=40.0)
        check_dsize_dmass(jr.PRNGKey(3), traits, num_samples=20)

    def test_impossible_tolerance_raises(self) -> None:
        with pytest.raises(ConsistencyError, match="dsize_dmass"):
            check_dsize_dmass(jr.PRNGKey(0), PlantTraits(), num_samples=5, rtol=-1.0)
