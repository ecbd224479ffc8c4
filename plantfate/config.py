"""
Configuration and type definitions for the cohort demography engine.

This module defines the parameter records shared by every part of the
model:

    PlantTraits: species-level constants (immutable pytree, one per species)
    PlantParameters: allometric, allocation, respiration and mortality
        constants that are common to a run
    PhysiologyParams: constants of the light-use-efficiency physiology
    SimulationConfig: run settings (forcing files, time span, solver step,
        recruitment smoothing, disturbance schedule)

Units: time in years, lengths in m, masses in kg dry biomass, densities in
individuals per m2 of ground.
"""

from __future__ import annotations

import configparser
import logging
from dataclasses import dataclass
from pathlib import Path

import equinox as eqx
from pydantic import BaseModel, Field, ValidationError, model_validator

from plantfate.errors import ConfigError

logger = logging.getLogger(__name__)

SECONDS_PER_YEAR = 365.0 * 86400.0


class PlantTraits(eqx.Module):
    """
    Species-level functional traits.

    One instance is shared by every cohort of a species. Being an equinox
    module it is a frozen dataclass and a JAX pytree: attempts to assign a
    field raise, so a species cannot drift after registration.
    """

    species_name: str = eqx.field(static=True, default="")
    lma: float = 0.122  # leaf mass per area, kg/m2
    wood_density: float = 690.0  # kg/m3
    hmat: float = 29.18  # height at maturity, m
    p50_xylem: float = -2.29  # xylem water potential at 50% conductivity loss, MPa
    zeta: float = 0.2  # fine root mass per unit leaf mass
    leaf_lifespan: float = 2.0  # years
    fine_root_lifespan: float = 1.0  # years
    seed_mass: float = 3.8e-5  # kg

    def __check_init__(self) -> None:
        for name in (
            "lma",
            "wood_density",
            "hmat",
            "leaf_lifespan",
            "fine_root_lifespan",
            "seed_mass",
        ):
            if not getattr(self, name) > 0:
                raise ConfigError(name, f"must be positive, got {getattr(self, name)}")
        if self.zeta < 0:
            raise ConfigError("zeta", f"must be nonnegative, got {self.zeta}")
        if not self.p50_xylem < 0:
            raise ConfigError("p50_xylem", f"must be negative, got {self.p50_xylem}")


@dataclass(frozen=True)
class PlantParameters:
    """
    Constants of the geometry, allocation and demography model.

    Defaults follow a tropical evergreen forest calibration.
    """

    # Crown shape: q(x) = m n x^(n-1) (1 - x^n)^(m-1), x = z / H
    m: float = 1.5
    n: float = 3.0

    # Height-diameter and crown-area allometry
    # H = hmat (1 - exp(-a D / hmat)), Ac = pi c / (4 a) D H
    a: float = 75.0
    c: float = 2000.0
    fg: float = 0.1  # upper canopy gap fraction

    # Reproduction
    fhmat: float = 0.8  # fraction of hmat reached at reproductive maturity
    reproduction_schedule: str = "sigmoid"
    a_f1: float = 0.15  # maximum fraction of assimilate to seeds
    a_f2: float = 10.0  # steepness of the allocation schedule
    seed_establishment: float = 1e-3  # fraction of seeds that recruit
    seedling_diameter: float = 0.01  # m

    # Leaf area dynamics
    lai0: float = 1.8  # initial and post-disturbance LAI
    lai_target: float = 1.8
    lai_response_rate: float = 1.0  # 1/yr

    # Wood and roots
    cr_rs: float = 0.25  # coarse root : stem mass ratio
    sapwood_crown_ratio: float = 2e-4  # sapwood area per crown area, m2/m2
    huber_value: float = 1e-4  # sapwood area required per leaf area, m2/m2

    # Maintenance respiration, kg per kg tissue per year
    r_leaf: float = 2.0
    r_root: float = 1.5
    r_sapwood: float = 0.05

    # Mortality, 1/yr
    mort_background: float = 0.01
    mort_juvenile: float = 0.05
    mort_juvenile_decay: float = 10.0  # 1/m
    mort_starvation: float = 1.0

    def __post_init__(self) -> None:
        if not (self.m > 1 and self.n > 1):
            raise ConfigError("m, n", "crown shape exponents must both exceed 1")
        if not (0 <= self.fg < 1):
            raise ConfigError("fg", f"must lie in [0, 1), got {self.fg}")
        if not (0 < self.fhmat < 1):
            raise ConfigError("fhmat", f"must lie in (0, 1), got {self.fhmat}")
        if self.a <= 0 or self.c <= 0:
            raise ConfigError("a, c", "allometric coefficients must be positive")
        if self.lai0 < 0 or self.lai_target < 0:
            raise ConfigError("lai0", "leaf area index must be nonnegative")
        if self.sapwood_crown_ratio * self.c >= 1:
            logger.warning(
                "sapwood_crown_ratio * c = %.3f >= 1: sapwood will fill the "
                "whole stem of small plants",
                self.sapwood_crown_ratio * self.c,
            )


@dataclass(frozen=True)
class PhysiologyParams:
    """Constants of the light-use-efficiency physiology model."""

    lue: float = 2e-4  # kg dry mass per mol absorbed photons
    k_light: float = 0.5  # canopy light extinction coefficient
    gamma_star: float = 42.75  # CO2 compensation point, ppm
    co2_ref: float = 400.0  # ppm, where the CO2 response equals 1
    vpd_scale: float = 3000.0  # Pa
    t_opt: float = 25.0  # deg C
    t_sigma: float = 12.0  # deg C
    chi: float = 0.7  # ci : ca ratio
    carbon_fraction: float = 0.5  # kg C per kg dry mass
    p_atm: float = 101325.0  # Pa


class SimulationConfig(BaseModel):
    """
    Settings of one simulation run.

    Validated on construction; use `from_ini` to read the `[simulation]`
    section of an INI file.
    """

    met_file: str | None = Field(default=None, description="Monthly meteorology CSV")
    co2_file: str | None = Field(default=None, description="CO2 CSV")
    base_year: float = Field(default=2000.0, description="Calendar year of t = 0")
    interpolate_climate: bool = Field(
        default=False, description="Linear interpolation between forcing records"
    )
    update_met: bool = Field(default=True, description="Advance the meteorology series")
    update_co2: bool = Field(default=True, description="Advance the CO2 series")
    use_ppa: bool = Field(default=True, description="Perfect-plasticity light model")

    t_start: float = Field(default=0.0, description="Start time, years since base_year")
    t_end: float = Field(default=100.0, description="End time, years since base_year")
    report_interval: float = Field(default=1.0, gt=0, description="Years between reports")
    solver_step: float = Field(default=1.0 / 12.0, gt=0, description="Solver step, years")
    new_cohort_interval: float = Field(
        default=1.0, gt=0, description="Years between boundary cohort insertions"
    )
    initial_density: float = Field(
        default=1.0, ge=0, description="Density of the founder cohort, ind/m2"
    )
    extinction_threshold: float = Field(
        default=1e-6, ge=0, description="Cohorts below this density are removed"
    )
    recruitment_window: float = Field(
        default=300.0, gt=0, description="Moving-average window for births, years"
    )

    clearing_enabled: bool = Field(default=True, description="Apply patch clearing")
    first_clearing: float = Field(
        default=50.0, description="First clearing, years after t_start"
    )
    clearing_interval: float = Field(default=100.0, gt=0, description="Mean return time")
    clearing_jitter: float = Field(default=50.0, ge=0, description="Uniform jitter half-width")
    random_seed: int | None = Field(default=None, description="Seed for the clearing RNG")

    @model_validator(mode="after")
    def _check_time_span(self) -> SimulationConfig:
        if self.t_end < self.t_start:
            raise ValueError(f"t_end ({self.t_end}) precedes t_start ({self.t_start})")
        if self.clearing_jitter > self.clearing_interval:
            raise ValueError("clearing_jitter must not exceed clearing_interval")
        return self

    @classmethod
    def from_dict(cls, values: dict) -> SimulationConfig:
        """Validate a mapping of settings, reporting failures as ConfigError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigError("simulation", str(e)) from e

    @classmethod
    def from_ini(cls, path: str | Path, section: str = "simulation") -> SimulationConfig:
        """
        Load settings from an INI file.

        Args:
            path: INI file
            section: Section holding the settings

        Returns:
            Validated SimulationConfig
        """
        parser = configparser.ConfigParser()
        read = parser.read(str(path))
        if not read:
            raise ConfigError(str(path), "could not open settings file")
        if not parser.has_section(section):
            raise ConfigError(str(path), f"missing [{section}] section")
        values = dict(parser.items(section))
        logger.debug("Read %d settings from %s", len(values), path)
        return cls.from_dict(values)
