"""
plantfate: trait-based cohort demography of mixed-species forests

Plants grow, compete for light, reproduce and die in size-structured
cohorts driven by monthly climate forcing. Community carbon fluxes and
stand structure emerge from the cohorts.

Modules:
    config: Traits, plant parameters, physiology constants, run settings
    errors: ConfigError, ConsistencyError, PreconditionViolation
    climate: Forcing series and the climate provider
    allometry: Closed-form geometry and biomass (jax.numpy)
    allocation: Reproductive allocation schedules
    geometry: PlantGeometry, growth of a single plant
    gradcheck: Analytic vs autodiff check of dsize_dmass
    physiology: Light-use-efficiency photosynthesis and water use
    cohort: Cohort state and demographic rates
    state: Typed views into the solver state vector
    species: Ordered cohorts of one species
    environment: Perfect-plasticity canopy light model
    solver: Fixed-step cohort solver
    smoothing: Moving average of recruitment flux
    community: Community-weighted means and emergent fluxes
    disturbance: Patch clearing
    simulation: Simulation context and reporting
"""

import jax

# mass conservation is checked to 1e-9 relative, beyond float32
jax.config.update("jax_enable_x64", True)

from plantfate.climate import ClimateProvider, ClimateState, ForcingSeries  # noqa: E402
from plantfate.cohort import Cohort, CohortRates  # noqa: E402
from plantfate.community import CommunityWeightedMeans, EmergentProps  # noqa: E402
from plantfate.config import (  # noqa: E402
    PhysiologyParams,
    PlantParameters,
    PlantTraits,
    SimulationConfig,
)
from plantfate.disturbance import PatchClearing  # noqa: E402
from plantfate.environment import Environment  # noqa: E402
from plantfate.errors import (  # noqa: E402
    ConfigError,
    ConsistencyError,
    PlantFateError,
    PreconditionViolation,
)
from plantfate.geometry import GrowthIncrement, GrowthRates, PlantGeometry  # noqa: E402
from plantfate.gradcheck import check_dsize_dmass, dsize_dmass_report  # noqa: E402
from plantfate.physiology import PhysiologyModel, PhysiologyResult  # noqa: E402
from plantfate.simulation import Simulation, SimulationRecord  # noqa: E402
from plantfate.smoothing import MovingAverager  # noqa: E402
from plantfate.solver import CohortSolver  # noqa: E402
from plantfate.species import Species  # noqa: E402
from plantfate.state import StateLayout, StateView  # noqa: E402

__all__ = [
    # Config
    "PhysiologyParams",
    "PlantParameters",
    "PlantTraits",
    "SimulationConfig",
    # Errors
    "ConfigError",
    "ConsistencyError",
    "PlantFateError",
    "PreconditionViolation",
    # Climate
    "ClimateProvider",
    "ClimateState",
    "ForcingSeries",
    # Plant
    "GrowthIncrement",
    "GrowthRates",
    "PlantGeometry",
    "PhysiologyModel",
    "PhysiologyResult",
    "check_dsize_dmass",
    "dsize_dmass_report",
    # Populations
    "Cohort",
    "CohortRates",
    "Species",
    "StateLayout",
    "StateView",
    "CohortSolver",
    "Environment",
    "MovingAverager",
    "PatchClearing",
    # Community and runs
    "CommunityWeightedMeans",
    "EmergentProps",
    "Simulation",
    "SimulationRecord",
]
