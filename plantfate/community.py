"""
Community aggregates recomputed at every report.

All sums are density-weighted integrals over cohorts (per m2 of ground).
Mean traits are weighted by number of individuals, not by biomass.
"""

import math
from dataclasses import dataclass, field

from plantfate.solver import CohortSolver

# stems thinner than this do not count towards basal area (m)
BASAL_AREA_MIN_DIAMETER = 0.1


def _mean(total: float, n: float) -> float:
    return total / n if n > 0 else 0.0


@dataclass
class CommunityWeightedMeans:
    """Stand structure and individual-weighted mean traits."""

    n_ind: float = 0.0
    biomass: float = 0.0
    ba: float = 0.0
    canopy_area: float = 0.0
    height: float = 0.0
    lma: float = 0.0
    p50: float = 0.0
    hmat: float = 0.0
    wd: float = 0.0
    gs: float = 0.0

    n_ind_vec: list[float] = field(default_factory=list)
    biomass_vec: list[float] = field(default_factory=list)
    ba_vec: list[float] = field(default_factory=list)
    canopy_area_vec: list[float] = field(default_factory=list)
    height_vec: list[float] = field(default_factory=list)

    def update(self, t: float, solver: CohortSolver) -> None:  # noqa: ARG002
        ks = range(solver.n_species())

        self.n_ind_vec = [solver.integrate_x(lambda c: 1.0, k) for k in ks]
        self.biomass_vec = [solver.integrate_x(lambda c: c.get_biomass(), k) for k in ks]
        self.ba_vec = [
            solver.integrate_wudx_above(
                lambda c: math.pi * c.x**2 / 4.0, BASAL_AREA_MIN_DIAMETER, k
            )
            for k in ks
        ]
        self.canopy_area_vec = [
            solver.integrate_x(lambda c: c.geometry.crown_area, k) for k in ks
        ]
        self.height_vec = [
            _mean(solver.integrate_x(lambda c: c.geometry.height, k), n)
            for k, n in zip(ks, self.n_ind_vec, strict=True)
        ]

        self.n_ind = sum(self.n_ind_vec)
        self.biomass = sum(self.biomass_vec)
        self.ba = sum(self.ba_vec)
        self.canopy_area = sum(self.canopy_area_vec)

        def weighted(fn) -> float:
            return _mean(sum(solver.integrate_x(fn, k) for k in ks), self.n_ind)

        self.height = weighted(lambda c: c.geometry.height)
        self.hmat = weighted(lambda c: c.traits.hmat)
        self.lma = weighted(lambda c: c.traits.lma)
        self.wd = weighted(lambda c: c.traits.wood_density)
        self.p50 = weighted(lambda c: c.traits.p50_xylem)
        self.gs = weighted(lambda c: c.res.gs_avg)


@dataclass
class EmergentProps:
    """Ecosystem fluxes (kg/m2/yr) and carbon pools (kg/m2)."""

    gpp: float = 0.0
    npp: float = 0.0
    resp_auto: float = 0.0
    trans: float = 0.0
    lai: float = 0.0
    leaf_mass: float = 0.0
    stem_mass: float = 0.0
    croot_mass: float = 0.0
    froot_mass: float = 0.0

    def update(self, t: float, solver: CohortSolver) -> None:  # noqa: ARG002
        def total(fn) -> float:
            return sum(solver.integrate_x(fn, k) for k in range(solver.n_species()))

        self.gpp = total(lambda c: c.res.gpp)
        self.npp = total(lambda c: c.res.npp)
        self.resp_auto = total(lambda c: c.res.respiration)
        self.trans = total(lambda c: c.res.trans)
        self.lai = total(lambda c: c.geometry.crown_area * c.geometry.lai)
        self.leaf_mass = total(lambda c: c.geometry.leaf_mass(c.traits))
        self.stem_mass = total(lambda c: c.geometry.stem_mass(c.traits))
        self.croot_mass = total(lambda c: c.geometry.coarse_root_mass)
        self.froot_mass = total(lambda c: c.geometry.fine_root_mass(c.traits))
