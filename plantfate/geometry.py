"""
Geometry, biomass partitioning and growth of one plant.

PlantGeometry holds the state of a single plant (basal diameter, leaf
area index, coarse root mass) and derives everything else from it with
the closed forms in `plantfate.allometry`. Growth is driven by an
assimilate supply; the update follows this sequence:

1. Maintenance respiration of leaves, fine roots and sapwood
2. Turnover litter of leaves and fine roots
3. Reproductive allocation (zero below maturity)
4. Leaf area change towards the target LAI
5. Structural growth in diameter via dsize_dmass

Two independent mass computations are kept: the closed-form sapwood and
heartwood masses, and an ODE-tracked pair that receives every growth
increment and every sapwood-to-heartwood conversion. They must agree to
within the integration error; `check_consistency` raises ConsistencyError
when they do not.
"""

import logging
import math
from dataclasses import dataclass
from collections.abc import Iterable, Iterator

from plantfate import allometry
from plantfate.allocation import reproductive_fraction
from plantfate.config import PlantParameters, PlantTraits
from plantfate.errors import ConsistencyError, PreconditionViolation

logger = logging.getLogger(__name__)

# the tracked wood pools are a first-order integral: drift is of the order of
# the relative size change per substep
WOOD_STEP = 2e-3
WOOD_RTOL = 1e-2


@dataclass(frozen=True)
class CrownGeometry:
    """Constants of the crown and allometry, precomputed at init."""

    m: float
    n: float
    a: float
    c: float
    fg: float
    eta_c: float  # stem taper form factor
    pic_4a: float  # pi c / (4 a)
    zm_H: float  # relative height of the widest crown point
    qm: float  # crown shape at its widest point
    dmat: float  # diameter at reproductive maturity


@dataclass
class GrowthRates:
    """Instantaneous carbon budget of one plant (kg/yr unless noted)."""

    assimilation: float
    respiration: float
    turnover: float  # leaf and fine root litter replaced from assimilate
    shed: float  # litter from leaf area reduction
    net_production: float  # assimilation - respiration - turnover
    reproduction: float
    lai_investment: float
    structural: float
    dsize_dt: float  # m/yr
    dlai_dt: float  # 1/yr
    dcroot_dt: float

    @property
    def litter(self) -> float:
        return self.turnover + self.shed


@dataclass
class GrowthIncrement:
    """Carbon budget integrated over a grow_for call (kg)."""

    production: float = 0.0  # assimilation - respiration
    litter: float = 0.0
    reproduction: float = 0.0
    growth: float = 0.0  # structural + leaf area investment

    def accumulate(self, rates: GrowthRates, dt: float) -> None:
        self.production += (rates.assimilation - rates.respiration) * dt
        self.litter += rates.litter * dt
        self.reproduction += rates.reproduction * dt
        self.growth += (rates.structural + rates.lai_investment) * dt


class PlantGeometry:
    """
    Size-structured geometry of one plant.

    State: diameter (the size variable), lai, coarse_root_mass.
    Derived: height, crown_area, sapwood_fraction,
    functional_xylem_fraction, rooting_depth.
    """

    STATE_FIELDS = ("lai", "coarse_root_mass")

    def __init__(self, params: PlantParameters, traits: PlantTraits):
        self.lai = params.lai0
        self.diameter = params.seedling_diameter
        self.coarse_root_mass = 0.0

        self.height = 0.0
        self.crown_area = 0.0
        self.sapwood_fraction = 1.0
        self.functional_xylem_fraction = 1.0
        self.rooting_depth = 0.0

        # ODE-tracked sapwood and heartwood
        self.sap_frac_ode = 1.0
        self.sapwood_mass_ode = 0.0
        self.heart_mass_ode = 0.0
        self.k_sap = 0.0
        # largest relative diameter change per tracked-wood substep
        self.wood_step = WOOD_STEP

        self.init(params, traits)

    def init(self, params: PlantParameters, traits: PlantTraits) -> None:
        """Precompute crown constants and reset the plant to seedling size."""
        self.params = params
        self.geom = CrownGeometry(
            m=params.m,
            n=params.n,
            a=params.a,
            c=params.c,
            fg=params.fg,
            eta_c=float(allometry.stem_form_factor(params.n)),
            pic_4a=math.pi * params.c / (4.0 * params.a),
            zm_H=float(allometry.crown_peak_fraction(params.m, params.n)),
            qm=float(allometry.crown_shape_max(params.m, params.n)),
            dmat=float(allometry.maturity_diameter(traits.hmat, params.a, params.fhmat)),
        )
        self.set_size(self.diameter, traits)

    # **
    # ** Crown geometry
    # **

    def crown_area_extent_projected(self, z: float) -> float:
        """Projected crown area at height z (the crown profile)."""
        return float(
            allometry.crown_profile(
                z, self.height, self.crown_area, self.geom.m, self.geom.n
            )
        )

    def crown_area_above(self, z: float) -> float:
        """Crown area above height z, for canopy layering."""
        return float(
            allometry.crown_area_above(
                z, self.height, self.crown_area, self.geom.m, self.geom.n, self.geom.fg
            )
        )

    # **
    # ** Biomass partitioning
    # **

    def dsize_dmass(self, traits: PlantTraits) -> float:
        """
        Diameter gained per unit of structural mass invested, at fixed LAI.

        Inverse of d(leaf + fine root + stem + coarse root)/dD.
        """
        p = self.params
        dh_dd = float(allometry.dheight_ddiameter(self.diameter, traits.hmat, p.a))
        dac_dd = float(
            allometry.dcrown_area_ddiameter(self.diameter, self.height, dh_dd, p.a, p.c)
        )
        dmleaf_dd = self.lai * traits.lma * (1.0 + traits.zeta) * dac_dd
        dmstem_dd = self._dstem_dd(traits, dh_dd)
        return 1.0 / (dmleaf_dd + (1.0 + p.cr_rs) * dmstem_dd)

    def _dstem_dd(self, traits: PlantTraits, dh_dd: float | None = None) -> float:
        if dh_dd is None:
            dh_dd = float(
                allometry.dheight_ddiameter(self.diameter, traits.hmat, self.params.a)
            )
        return float(
            allometry.dstem_mass_ddiameter(
                self.diameter, self.height, dh_dd, traits.wood_density, self.geom.eta_c
            )
        )

    def dreproduction_dmass(self, params: PlantParameters, traits: PlantTraits) -> float:  # noqa: ARG002
        """Fraction of available assimilate diverted to seeds."""
        return float(
            reproductive_fraction(
                self.diameter,
                self.geom.dmat,
                params.a_f1,
                params.a_f2,
                params.reproduction_schedule,
            )
        )

    # **
    # ** LAI model
    # **

    def dmass_dt_lai(
        self, dlai_dt: float, dmass_dt_max: float, traits: PlantTraits
    ) -> tuple[float, float]:
        """
        Mass flux needed to change LAI at the requested rate.

        Increases are capped by dmass_dt_max (the rate is reduced to what
        can be paid for). Decreases cost nothing; the shed leaves become
        litter.

        Returns:
            Tuple of (mass flux kg/yr, realised dlai_dt)
        """
        if dlai_dt <= 0.0:
            return 0.0, dlai_dt
        cost_per_lai = self.crown_area * traits.lma * (1.0 + traits.zeta)
        dmass_dt = dlai_dt * cost_per_lai
        budget = max(dmass_dt_max, 0.0)
        if dmass_dt > budget:
            dmass_dt = budget
            dlai_dt = budget / cost_per_lai if cost_per_lai > 0 else 0.0
        return dmass_dt, dlai_dt

    # **
    # ** Carbon pools
    # **

    def leaf_mass(self, traits: PlantTraits) -> float:
        return float(allometry.leaf_mass(self.lai, self.crown_area, traits.lma))

    def fine_root_mass(self, traits: PlantTraits) -> float:
        return traits.zeta * self.leaf_mass(traits)

    def root_mass(self, traits: PlantTraits) -> float:
        """Fine plus coarse roots."""
        return self.fine_root_mass(traits) + self.coarse_root_mass

    def stem_mass(self, traits: PlantTraits) -> float:
        return float(
            allometry.stem_mass(
                self.diameter, self.height, traits.wood_density, self.geom.eta_c
            )
        )

    def sapwood_mass(self, traits: PlantTraits) -> float:
        xs = allometry.sapwood_area(
            self.diameter, self.crown_area, self.params.sapwood_crown_ratio
        )
        return float(
            allometry.sapwood_mass(xs, self.height, traits.wood_density, self.geom.eta_c)
        )

    def heartwood_mass(self, traits: PlantTraits) -> float:
        return self.stem_mass(traits) - self.sapwood_mass(traits)

    def total_mass(self, traits: PlantTraits) -> float:
        """All pools: leaves, fine roots, stem and coarse roots."""
        return (
            self.leaf_mass(traits) * (1.0 + traits.zeta)
            + self.stem_mass(traits)
            + self.coarse_root_mass
        )

    # **
    # ** State manipulations
    # **

    def get_size(self) -> float:
        return self.diameter

    def set_lai(self, lai: float) -> None:
        self.lai = lai
        if self.lai > 0:
            self.functional_xylem_fraction = min(
                1.0, self.params.sapwood_crown_ratio / (self.params.huber_value * self.lai)
            )
        else:
            self.functional_xylem_fraction = 1.0

    def set_coarse_root_mass(self, mass: float, traits: PlantTraits) -> None:
        self.coarse_root_mass = mass
        self.rooting_depth = float(allometry.rooting_depth(mass, traits.wood_density))

    def set_size(self, diameter: float, traits: PlantTraits) -> None:
        """
        Place the plant at a diameter, re-initialising tracked pools.

        Coarse roots are set to their allometric proportion of the stem.
        """
        self._resize(diameter, traits, track=False)
        self.set_coarse_root_mass(self.params.cr_rs * self.stem_mass(traits), traits)

    def update_size(self, diameter: float, traits: PlantTraits, dt: float = 1.0) -> float:
        """
        Move the plant to a new diameter as the result of growth.

        The tracked sapwood and heartwood pools are integrated along the
        move: sapwood gains the stem increment and loses k_sap * sapwood
        to heartwood, with k_sap taken from the pipe model at the start
        of each substep. The move is split so that no substep changes the
        diameter by more than wood_step relative.

        Args:
            diameter: New diameter (m)
            traits: Species traits
            dt: Duration of the move (years), sets the scale of k_sap

        Returns:
            Sapwood converted to heartwood during the move (kg)
        """
        return self._resize(diameter, traits, track=True, dt=dt)

    def set_state(self, values: Iterable[float], traits: PlantTraits) -> Iterator[float]:
        """
        Read STATE_FIELDS from an iterator over the solver's state vector.

        Consumes exactly len(STATE_FIELDS) values and returns the iterator
        positioned after them.
        """
        it = iter(values)
        try:
            lai = float(next(it))
            coarse_root_mass = float(next(it))
        except StopIteration:
            raise ConsistencyError(
                "geometry state width", len(self.STATE_FIELDS), "fewer values"
            ) from None
        self.set_lai(lai)
        self.set_coarse_root_mass(coarse_root_mass, traits)
        return it

    def get_state(self) -> tuple[float, ...]:
        """Values of STATE_FIELDS, in order."""
        return (self.lai, self.coarse_root_mass)

    def _set_diameter(self, diameter: float, traits: PlantTraits) -> None:
        self.diameter = diameter
        p = self.params
        self.height = float(allometry.height(diameter, traits.hmat, p.a))
        self.crown_area = float(allometry.crown_area(diameter, self.height, p.a, p.c))
        xs = float(allometry.sapwood_area(diameter, self.crown_area, p.sapwood_crown_ratio))
        self.sapwood_fraction = xs / float(allometry.basal_area(diameter))
        self.set_lai(self.lai)

    def _dsapwood_dd(self, traits: PlantTraits, dh_dd: float, dstem_dd: float) -> float:
        p = self.params
        if p.sapwood_crown_ratio * self.crown_area >= float(allometry.basal_area(self.diameter)):
            # whole stem is sapwood
            return dstem_dd
        dac_dd = float(
            allometry.dcrown_area_ddiameter(self.diameter, self.height, dh_dd, p.a, p.c)
        )
        return (
            self.geom.eta_c
            * traits.wood_density
            * p.sapwood_crown_ratio
            * (dac_dd * self.height + self.crown_area * dh_dd)
        )

    def _resize(
        self, diameter: float, traits: PlantTraits, track: bool, dt: float = 1.0
    ) -> float:
        if not track:
            self._set_diameter(diameter, traits)
            self.sapwood_mass_ode = self.sapwood_mass(traits)
            self.heart_mass_ode = self.heartwood_mass(traits)
            self.sap_frac_ode = self.sapwood_fraction
            return 0.0

        # explicit Euler over substeps of at most wood_step relative size change
        total_dd = diameter - self.diameter
        n_sub = max(1, math.ceil(abs(total_dd) / (self.wood_step * self.diameter)))
        dd = total_dd / n_sub
        h = dt / n_sub
        converted = 0.0
        for i in range(n_sub):
            dh_dd = float(
                allometry.dheight_ddiameter(self.diameter, traits.hmat, self.params.a)
            )
            dstem_dd = self._dstem_dd(traits, dh_dd)
            dheart_dd = dstem_dd - self._dsapwood_dd(traits, dh_dd, dstem_dd)
            # pipe model: sapwood converts at the rate heartwood must form
            sapwood = self.sapwood_mass(traits)
            self.k_sap = dheart_dd * (dd / h) / sapwood if sapwood > 0 and h > 0 else 0.0
            turnover = self.k_sap * self.sapwood_mass_ode * h
            self.sapwood_mass_ode += dstem_dd * dd - turnover
            self.heart_mass_ode += turnover
            converted += turnover
            target = diameter if i == n_sub - 1 else self.diameter + dd
            self._set_diameter(target, traits)

        woody = self.sapwood_mass_ode + self.heart_mass_ode
        self.sap_frac_ode = self.sapwood_mass_ode / woody if woody > 0 else 1.0
        return converted

    def check_consistency(self, traits: PlantTraits, rtol: float = WOOD_RTOL) -> None:
        """
        Compare tracked and closed-form pools.

        Raises:
            ConsistencyError: when the tracked sapwood or heartwood mass
                departs from its closed form by more than rtol (relative to
                stem mass), or the pools do not add up to the total mass.
        """
        scale = max(self.stem_mass(traits), 1e-12)
        sapwood = self.sapwood_mass(traits)
        if abs(self.sapwood_mass_ode - sapwood) > rtol * scale:
            raise ConsistencyError("sapwood_mass", sapwood, self.sapwood_mass_ode)
        heartwood = self.heartwood_mass(traits)
        if abs(self.heart_mass_ode - heartwood) > rtol * scale:
            raise ConsistencyError("heartwood_mass", heartwood, self.heart_mass_ode)

        total = self.total_mass(traits)
        pools = (
            self.leaf_mass(traits) + self.root_mass(traits) + sapwood + heartwood
        )
        if abs(total - pools) > 1e-9 * max(total, 1e-12):
            raise ConsistencyError("total_mass", total, pools)

    # **
    # ** Growth
    # **

    def growth_rates(self, assimilation: float, traits: PlantTraits) -> GrowthRates:
        """
        Carbon budget and state derivatives for a given assimilation rate.

        Args:
            assimilation: Gross assimilate supply (kg/yr)
            traits: Species traits

        Returns:
            GrowthRates for the current state
        """
        p = self.params
        leaf = self.leaf_mass(traits)
        fine_root = traits.zeta * leaf

        # 1. Maintenance respiration
        respiration = (
            p.r_leaf * leaf
            + p.r_root * fine_root
            + p.r_sapwood * self.sapwood_mass(traits)
        )

        # 2. Turnover litter, replaced from assimilate
        turnover = leaf / traits.leaf_lifespan + fine_root / traits.fine_root_lifespan
        net = assimilation - respiration - turnover
        available = max(net, 0.0)

        # 3. Reproduction
        reproduction = available * self.dreproduction_dmass(p, traits)
        growth = available - reproduction

        # 4. Leaf area
        dlai_target = p.lai_response_rate * (p.lai_target - self.lai)
        lai_investment, dlai_dt = self.dmass_dt_lai(dlai_target, growth, traits)
        shed = 0.0
        if dlai_dt < 0.0:
            shed = -dlai_dt * self.crown_area * traits.lma * (1.0 + traits.zeta)

        # 5. Structural growth
        structural = growth - lai_investment
        dsize_dt = self.dsize_dmass(traits) * structural
        dcroot_dt = p.cr_rs * self._dstem_dd(traits) * dsize_dt

        return GrowthRates(
            assimilation=assimilation,
            respiration=respiration,
            turnover=turnover,
            shed=shed,
            net_production=net,
            reproduction=reproduction,
            lai_investment=lai_investment,
            structural=structural,
            dsize_dt=dsize_dt,
            dlai_dt=dlai_dt,
            dcroot_dt=dcroot_dt,
        )

    def grow_for(
        self, dt: float, assimilation_rate: float, traits: PlantTraits
    ) -> GrowthIncrement:
        """
        Grow over dt with a constant assimilation rate.

        Explicit Euler in time. If the plant reaches reproductive maturity
        within the step, the step is split at the exact crossing so that
        reproduction switches on from that point only.

        Args:
            dt: Duration (years), nonnegative
            assimilation_rate: Gross assimilate supply (kg/yr)
            traits: Species traits

        Returns:
            GrowthIncrement with integrated production, litter,
            reproduction and growth
        """
        if dt < 0:
            raise PreconditionViolation("grow_for", f"negative time step {dt}")

        increment = GrowthIncrement()
        remaining = dt
        while remaining > 0.0:
            rates = self.growth_rates(assimilation_rate, traits)
            h = remaining
            crossing = False
            if self.diameter < self.geom.dmat and rates.dsize_dt > 0.0:
                t_cross = (self.geom.dmat - self.diameter) / rates.dsize_dt
                if t_cross < h:
                    h = t_cross
                    crossing = True

            increment.accumulate(rates, h)
            new_diameter = self.geom.dmat if crossing else self.diameter + h * rates.dsize_dt
            self.set_lai(max(self.lai + h * rates.dlai_dt, 0.0))
            self.set_coarse_root_mass(self.coarse_root_mass + h * rates.dcroot_dt, traits)
            self.update_size(new_diameter, traits, dt=h)
            self.check_consistency(traits)

            if crossing:
                logger.debug(
                    "Reached reproductive maturity at D = %.4f m", self.geom.dmat
                )
            remaining -= h
        return increment
