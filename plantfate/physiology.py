"""
Light-use-efficiency physiology.

Gross assimilation of one plant is the photon flux absorbed by its crown
times a light-use efficiency, scaled by multiplicative environmental
responses:

    gpp = lue * I_abs * Ac * light_fraction * f_co2 * f_vpd * f_water * f_temp
    I_abs = ppfd * (1 - exp(-k lai))      (mol photons / m2 crown / yr)

Water use follows from a fixed ci:ca ratio: stomatal conductance is the
conductance that sustains the assimilation rate across the CO2 gradient
ca (1 - chi), and transpiration is 1.6 times that conductance times the
VPD expressed as a mole fraction.
"""

from typing import NamedTuple

import jax.numpy as jnp
from jax import Array

from plantfate.allometry import Scalar
from plantfate.climate import ClimateState
from plantfate.config import SECONDS_PER_YEAR, PhysiologyParams, PlantTraits
from plantfate.geometry import PlantGeometry

MOLAR_MASS_C = 0.012  # kg/mol
MOLAR_MASS_H2O = 0.018  # kg/mol


class PhysiologyResult(NamedTuple):
    """Per-plant physiological fluxes (kg/yr; gs_avg in mol/m2/s)."""

    gpp: float = 0.0
    npp: float = 0.0
    rleaf: float = 0.0
    rroot: float = 0.0
    rstem: float = 0.0
    trans: float = 0.0
    gs_avg: float = 0.0

    @property
    def respiration(self) -> float:
        return self.rleaf + self.rroot + self.rstem


def co2_response(co2: Scalar, gamma_star: float, co2_ref: float) -> Array:
    """Light-limited CO2 response, normalised to 1 at co2_ref."""

    def f(ca: Scalar) -> Array:
        return (ca - gamma_star) / (ca + 2.0 * gamma_star)

    return jnp.maximum(f(co2), 0.0) / f(co2_ref)


def vpd_response(vpd: Scalar, vpd_scale: float) -> Array:
    """Hyperbolic stomatal closure with rising VPD."""
    return 1.0 / (1.0 + jnp.maximum(vpd, 0.0) / vpd_scale)


def water_response(swp: Scalar, p50: Scalar) -> Array:
    """
    Xylem vulnerability factor.

    Half of maximum at swp == p50; both are negative water potentials.
    """
    return 1.0 / (1.0 + (swp / p50) ** 4)


def temperature_response(tc: Scalar, t_opt: float, t_sigma: float) -> Array:
    """Gaussian response around t_opt."""
    return jnp.exp(-0.5 * ((tc - t_opt) / t_sigma) ** 2)


def absorbed_photons(ppfd: Scalar, lai: Scalar, k_light: float) -> Array:
    """
    Annual photons absorbed per unit crown area.

    Args:
        ppfd: Photon flux density at the top of the crown (umol/m2/s)
        lai: Leaf area index of the crown
        k_light: Extinction coefficient

    Returns:
        Absorbed photons (mol/m2/yr)
    """
    return ppfd * 1e-6 * SECONDS_PER_YEAR * (1.0 - jnp.exp(-k_light * lai))


def gross_assimilation(
    clim: ClimateState,
    lai: Scalar,
    area: Scalar,
    light_fraction: Scalar,
    p50: Scalar,
    params: PhysiologyParams,
) -> Array:
    """
    Gross primary production of a plant.

    Args:
        clim: Climate drivers
        lai: Leaf area index
        area: Crown area (m2)
        light_fraction: Fraction of top-of-canopy light reaching the crown
        p50: Xylem P50 (MPa)
        params: Physiology constants

    Returns:
        GPP (kg dry mass / yr)
    """
    photons = absorbed_photons(clim.ppfd, lai, params.k_light) * area * light_fraction
    return (
        params.lue
        * photons
        * co2_response(clim.co2, params.gamma_star, params.co2_ref)
        * vpd_response(clim.vpd, params.vpd_scale)
        * water_response(clim.swp, p50)
        * temperature_response(clim.tc, params.t_opt, params.t_sigma)
    )


def stomatal_conductance(
    gpp: Scalar, co2: Scalar, chi: float, carbon_fraction: float
) -> Array:
    """Whole-plant CO2 conductance sustaining gpp at ci = chi ca (mol/yr)."""
    assimilation = gpp * carbon_fraction / MOLAR_MASS_C
    gradient = co2 * 1e-6 * (1.0 - chi)
    return assimilation / gradient


def transpiration(gs_co2: Scalar, vpd: Scalar, p_atm: float) -> Array:
    """Transpiration (kg water / yr) from CO2 conductance (mol/yr)."""
    return 1.6 * gs_co2 * jnp.maximum(vpd, 0.0) / p_atm * MOLAR_MASS_H2O


class PhysiologyModel:
    """Computes PhysiologyResult for a plant in a given light environment."""

    def __init__(self, params: PhysiologyParams | None = None):
        self.params = params if params is not None else PhysiologyParams()

    def compute(
        self,
        geometry: PlantGeometry,
        traits: PlantTraits,
        clim: ClimateState,
        light_fraction: float = 1.0,
    ) -> PhysiologyResult:
        p = self.params
        plant = geometry.params

        gpp = float(
            gross_assimilation(
                clim,
                geometry.lai,
                geometry.crown_area,
                light_fraction,
                traits.p50_xylem,
                p,
            )
        )
        rleaf = plant.r_leaf * geometry.leaf_mass(traits)
        rroot = plant.r_root * geometry.fine_root_mass(traits)
        rstem = plant.r_sapwood * geometry.sapwood_mass(traits)

        gs_co2 = float(stomatal_conductance(gpp, clim.co2, p.chi, p.carbon_fraction))
        trans = float(transpiration(gs_co2, clim.vpd, p.p_atm))
        leaf_area = geometry.lai * geometry.crown_area
        gs_avg = 1.6 * gs_co2 / SECONDS_PER_YEAR / leaf_area if leaf_area > 0 else 0.0

        return PhysiologyResult(
            gpp=gpp,
            npp=gpp - rleaf - rroot - rstem,
            rleaf=rleaf,
            rroot=rroot,
            rstem=rstem,
            trans=trans,
            gs_avg=gs_avg,
        )
