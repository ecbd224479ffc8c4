"""
Simulation context: one patch of mixed-species forest over time.

A Simulation owns every piece of mutable run state (climate cursors,
solver clock, recruitment filters, disturbance schedule) and wires them
together:

1. The solver advances all cohorts to the next report time
2. After every solver step, newborns are pushed through each species'
   MovingAverager and the smoothed value becomes its birth flux
3. Community aggregates are computed and appended to the record
4. A patch clearing is applied if one is due

The result is a SimulationRecord with ecosystem flux and stand structure
tables in stable column order.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from plantfate.climate import ClimateProvider
from plantfate.community import CommunityWeightedMeans, EmergentProps
from plantfate.config import PhysiologyParams, PlantParameters, PlantTraits, SimulationConfig
from plantfate.disturbance import PatchClearing
from plantfate.environment import Environment
from plantfate.errors import ConfigError, PreconditionViolation
from plantfate.physiology import PhysiologyModel
from plantfate.smoothing import MovingAverager
from plantfate.solver import CohortSolver
from plantfate.species import Species

logger = logging.getLogger(__name__)

FLUX_COLUMNS = (
    "YEAR", "DOY", "GPP", "NPP", "RAU", "CL", "CW", "CCR", "CFR", "CR", "GS", "ET", "LAI",
)  # fmt: skip
STRUCTURE_COLUMNS = (
    "YEAR", "PID", "DE", "OC", "PH", "MH", "CA", "BA", "TB", "WD", "MO", "SLA", "P50",
)  # fmt: skip
MISSING = -9999.0

# kg dry mass -> g C
KG_TO_GC = 1000.0 * 0.5
DAYS_PER_YEAR = 365.0


@dataclass
class SimulationRecord:
    """
    Reported history of a simulation.

    Flux rows are in gC/m2/d (GPP, NPP, RAU), gC/m2 (pools), mol/m2/s (GS),
    mm/d (ET) and m2/m2 (LAI). Structure rows use -9999 where a quantity
    is not available.
    """

    base_year: float = 2000.0
    times: list[float] = field(default_factory=list)
    flux_rows: list[tuple[float, ...]] = field(default_factory=list)
    structure_rows: list[tuple[float, ...]] = field(default_factory=list)
    seeds: list[list[float]] = field(default_factory=list)
    basal_area: list[list[float]] = field(default_factory=list)
    z_star: list[list[float]] = field(default_factory=list)
    canopy_openness: list[list[float]] = field(default_factory=list)
    n_cohorts: list[int] = field(default_factory=list)
    clearings: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.times)

    def append(
        self,
        t: float,
        cwm: CommunityWeightedMeans,
        props: EmergentProps,
        seeds: list[float],
        environment: Environment,
        n_cohorts: int,
    ) -> None:
        year = float(np.floor(self.base_year + t))
        doy = (t - np.floor(t)) * DAYS_PER_YEAR
        self.times.append(t)
        self.flux_rows.append(
            (
                year,
                doy,
                props.gpp * KG_TO_GC / DAYS_PER_YEAR,
                props.npp * KG_TO_GC / DAYS_PER_YEAR,
                props.resp_auto * KG_TO_GC / DAYS_PER_YEAR,
                props.leaf_mass * KG_TO_GC,
                props.stem_mass * KG_TO_GC,
                props.croot_mass * KG_TO_GC,
                props.froot_mass * KG_TO_GC,
                (props.croot_mass + props.froot_mass) * KG_TO_GC,
                cwm.gs,
                props.trans / DAYS_PER_YEAR,
                props.lai,
            )
        )
        self.structure_rows.append(
            (
                year,
                MISSING,
                cwm.n_ind,
                MISSING,
                cwm.height,
                cwm.hmat,
                cwm.canopy_area,
                cwm.ba,
                cwm.biomass,
                cwm.wd,
                MISSING,
                1.0 / cwm.lma if cwm.lma > 0 else MISSING,
                cwm.p50,
            )
        )
        self.seeds.append(list(seeds))
        self.basal_area.append(list(cwm.ba_vec))
        self.z_star.append(list(environment.z_star))
        self.canopy_openness.append(list(environment.canopy_openness))
        self.n_cohorts.append(n_cohorts)

    def flux_table(self) -> dict[str, np.ndarray]:
        """Ecosystem fluxes, one array per column in FLUX_COLUMNS order."""
        table = np.asarray(self.flux_rows, dtype=float).reshape(-1, len(FLUX_COLUMNS))
        return {name: table[:, j] for j, name in enumerate(FLUX_COLUMNS)}

    def structure_table(self) -> dict[str, np.ndarray]:
        """Stand structure, one array per column in STRUCTURE_COLUMNS order."""
        table = np.asarray(self.structure_rows, dtype=float).reshape(
            -1, len(STRUCTURE_COLUMNS)
        )
        return {name: table[:, j] for j, name in enumerate(STRUCTURE_COLUMNS)}

    def get_scalar_summary(self) -> dict[str, float]:
        """
        Scalar diagnostics of the run.

        Returns a dictionary with:
        - Reports, Clearings, FinalCohorts: counts
        - FinalBiomass (kg/m2), FinalBasalArea (m2/m2), FinalLAI
        - MeanGPP, MeanNPP (gC/m2/d) over all reports
        """
        if not self.times:
            return {"Reports": 0, "Clearings": len(self.clearings)}
        flux = self.flux_table()
        structure = self.structure_table()
        return {
            "Reports": len(self.times),
            "Clearings": len(self.clearings),
            "FinalCohorts": self.n_cohorts[-1],
            "FinalTime": self.times[-1],
            "FinalBiomass": float(structure["TB"][-1]),
            "FinalBasalArea": float(structure["BA"][-1]),
            "FinalLAI": float(flux["LAI"][-1]),
            "MeanGPP": float(np.mean(flux["GPP"])),
            "MeanNPP": float(np.mean(flux["NPP"])),
        }

    def print_summary(self) -> None:
        """Print a formatted summary table to stdout."""
        summary = self.get_scalar_summary()
        print("\n" + "=" * 40)
        print("SIMULATION SUMMARY")
        print("=" * 40)
        for key, value in summary.items():
            if isinstance(value, int):
                print(f"{key:20s}: {value:>10d}")
            else:
                print(f"{key:20s}: {value:>10.3f}")
        print("=" * 40)


class Simulation:
    """
    Run a multi-species patch simulation.

    Args:
        config: Run settings
        traits: One trait record per species
        params: Plant parameters shared by all species
        physiology_params: Physiology constants
        climate: Climate provider; built from config forcing files when None,
            constant default climate when no files are configured
    """

    def __init__(
        self,
        config: SimulationConfig,
        traits: Sequence[PlantTraits],
        params: PlantParameters | None = None,
        physiology_params: PhysiologyParams | None = None,
        climate: ClimateProvider | None = None,
    ):
        if not traits:
            raise ConfigError("traits", "at least one species is required")
        self.config = config
        self.traits = list(traits)
        self.params = params if params is not None else PlantParameters()
        self.physiology_params = (
            physiology_params if physiology_params is not None else PhysiologyParams()
        )
        self.climate = climate

        self.solver: CohortSolver | None = None
        self.environment: Environment | None = None
        self.seeds_hist: list[MovingAverager] = []
        self.clearing: PatchClearing | None = None
        self.record = SimulationRecord(base_year=config.base_year)

    def _open_climate(self) -> ClimateProvider | None:
        cfg = self.config
        if cfg.met_file is None and cfg.co2_file is None:
            logger.warning("No forcing files configured, using constant default climate")
            return None
        if cfg.met_file is None or cfg.co2_file is None:
            raise ConfigError("met_file, co2_file", "both forcing files must be given")
        return ClimateProvider.initialize(
            cfg.met_file,
            cfg.co2_file,
            base_year=cfg.base_year,
            interpolate=cfg.interpolate_climate,
            update_met=cfg.update_met,
            update_co2=cfg.update_co2,
        )

    def initialize(self) -> None:
        """Build climate, environment, species, solver, filters and disturbance."""
        cfg = self.config
        if self.climate is None:
            self.climate = self._open_climate()
        if self.climate is not None and cfg.t_start < self.climate.t_now:
            raise ConfigError(
                "t_start",
                f"{cfg.t_start} precedes the first forcing record at {self.climate.t_now}",
            )

        self.environment = Environment(
            self.climate, use_ppa=cfg.use_ppa, k_light=self.physiology_params.k_light
        )
        self.solver = CohortSolver(
            self.environment,
            PhysiologyModel(self.physiology_params),
            step_size=cfg.solver_step,
            new_cohort_interval=cfg.new_cohort_interval,
        )
        for traits in self.traits:
            spp = Species(traits, self.params, extinction_threshold=cfg.extinction_threshold)
            self.solver.add_species(spp, initial_density=cfg.initial_density)
        self.solver.reset_state(cfg.t_start)

        self.seeds_hist = [
            MovingAverager(cfg.recruitment_window) for _ in range(self.solver.n_species())
        ]
        self.clearing = None
        if cfg.clearing_enabled:
            self.clearing = PatchClearing(
                cfg.t_start + cfg.first_clearing,
                interval=cfg.clearing_interval,
                jitter=cfg.clearing_jitter,
                rng=np.random.default_rng(cfg.random_seed),
            )
        self.record = SimulationRecord(base_year=cfg.base_year)
        logger.info(
            "Simulation initialized: %d species, t = %.2f .. %.2f",
            self.solver.n_species(),
            cfg.t_start,
            cfg.t_end,
        )

    def _require_initialized(self, operation: str) -> CohortSolver:
        if self.solver is None:
            raise PreconditionViolation(operation, "call initialize() first")
        return self.solver

    def after_step(self, t: float) -> None:
        """Smooth newborn flux and feed it back as birth flux."""
        solver = self._require_initialized("Simulation.after_step")
        seeds = solver.newborns_out(t)
        for spp, hist, flux in zip(solver.species, self.seeds_hist, seeds, strict=True):
            hist.push(t, flux)
            spp.set_input_birth_flux(hist.get())

    def report(self, t: float) -> None:
        """Append community aggregates at t to the record."""
        solver = self._require_initialized("Simulation.report")
        cwm = CommunityWeightedMeans()
        props = EmergentProps()
        cwm.update(t, solver)
        props.update(t, solver)
        self.record.append(
            t,
            cwm,
            props,
            [hist.get() for hist in self.seeds_hist],
            self.environment,
            sum(len(spp) for spp in solver.species),
        )
        logger.debug(
            "t = %.2f: n_ind = %.4g, biomass = %.4g, ba = %.4g",
            t,
            cwm.n_ind,
            cwm.biomass,
            cwm.ba,
        )

    def run(self) -> SimulationRecord:
        """Run from t_start to t_end, reporting every report_interval."""
        if self.solver is None:
            self.initialize()
        cfg = self.config
        solver = self.solver

        t = cfg.t_start
        self.report(t)
        while t < cfg.t_end - 1e-9:
            t = min(t + cfg.report_interval, cfg.t_end)
            solver.step_to(t, self.after_step)
            self.report(t)
            if self.clearing is not None and self.clearing.apply(t, solver):
                self.record.clearings.append(t)

        logger.info("Simulation finished at t = %.2f (%d reports)", t, len(self.record))
        return self.record
