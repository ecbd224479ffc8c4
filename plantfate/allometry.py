"""
Closed-form allometry of a single plant.

Every quantity here is a pure function of basal diameter D (the size
state), leaf area index and constants. The functions are written with
jax.numpy so they accept Python floats or arrays (e.g. all cohorts of a
community at once) and can be differentiated.

Geometry:
    H(D)    = hmat (1 - exp(-a D / hmat))
    Ac(D)   = pi c / (4 a) D H
    q(x)    = m n x^(n-1) (1 - x^n)^(m-1),  x = z / H

The crown has its widest point at x_m = ((n-1)/(m n - 1))^(1/n). Below it
the projected crown area is Ac; above it shrinks as (q(x)/q_m)^2 and
vanishes at the top.

Biomass:
    leaf      = lai Ac lma
    fine root = zeta leaf
    stem      = eta_c rho pi/4 D^2 H      (eta_c: taper form factor)
    sapwood   = eta_c rho As H,  As = min(r_s Ac, pi D^2 / 4)
    heartwood = stem - sapwood
"""

import jax.numpy as jnp
from jax import Array
from jax.scipy.special import betainc, betaln

# Type alias for values that can be either JAX arrays or Python floats
Scalar = Array | float


def height(diameter: Scalar, hmat: Scalar, a: float) -> Array:
    """
    Height from basal diameter.

    Rises with initial slope a and saturates at hmat.

    Args:
        diameter: Basal diameter (m)
        hmat: Asymptotic height (m)
        a: Initial height-diameter slope

    Returns:
        Height (m)
    """
    return hmat * (1.0 - jnp.exp(-a * diameter / hmat))


def dheight_ddiameter(diameter: Scalar, hmat: Scalar, a: float) -> Array:
    """Derivative of height with respect to diameter."""
    return a * jnp.exp(-a * diameter / hmat)


def crown_area(diameter: Scalar, plant_height: Scalar, a: float, c: float) -> Array:
    """Crown (projected) area, Ac = pi c / (4 a) D H."""
    return jnp.pi * c / (4.0 * a) * diameter * plant_height


def dcrown_area_ddiameter(
    diameter: Scalar, plant_height: Scalar, dh_dd: Scalar, a: float, c: float
) -> Array:
    """Derivative of crown area with respect to diameter."""
    return jnp.pi * c / (4.0 * a) * (plant_height + diameter * dh_dd)


def maturity_diameter(hmat: Scalar, a: float, fhmat: float) -> Array:
    """
    Diameter at which height reaches fhmat * hmat.

    This is the reproductive maturity threshold dmat.
    """
    return -hmat / a * jnp.log(1.0 - fhmat)


# =============================================================================
# Crown shape
# =============================================================================


def crown_shape(x: Scalar, m: float, n: float) -> Array:
    """
    Crown shape function q(x) on relative height x in [0, 1].

    Args:
        x: Relative height z / H
        m, n: Crown shape exponents (both > 1)

    Returns:
        Unnormalised crown radius profile
    """
    x = jnp.clip(x, 0.0, 1.0)
    return m * n * x ** (n - 1.0) * (1.0 - x**n) ** (m - 1.0)


def crown_peak_fraction(m: float, n: float) -> Array:
    """Relative height x_m at which the crown is widest."""
    return ((n - 1.0) / (m * n - 1.0)) ** (1.0 / n)


def crown_shape_max(m: float, n: float) -> Array:
    """Value of the crown shape function at its peak, q_m."""
    return crown_shape(crown_peak_fraction(m, n), m, n)


def stem_form_factor(n: float) -> Array:
    """
    Taper form factor eta_c of the stem.

    Stem volume relative to a cylinder of the same basal area and height,
    for a diameter tapering as (1 - x^n):
        eta_c = integral_0^1 (1 - x^n)^2 dx = 1 - 2/(1+n) + 1/(1+2n)
    """
    return 1.0 - 2.0 / (1.0 + n) + 1.0 / (1.0 + 2.0 * n)


def crown_profile(
    z: Scalar, plant_height: Scalar, area: Scalar, m: float, n: float
) -> Array:
    """
    Projected crown area at height z.

    Equals the full crown area below the widest point, shrinks as
    (q / q_m)^2 above it and is zero at and above the crown top.
    Monotonically non-increasing in z.

    Args:
        z: Height above ground (m)
        plant_height: Plant height H (m)
        area: Crown area Ac (m2)
        m, n: Crown shape exponents

    Returns:
        Crown area extent at height z (m2)
    """
    x = jnp.clip(z / plant_height, 0.0, 1.0)
    xm = crown_peak_fraction(m, n)
    ratio = crown_shape(x, m, n) / crown_shape_max(m, n)
    inside = jnp.where(x <= xm, area, area * ratio**2)
    return jnp.where(z >= plant_height, 0.0, inside)


def _upper_crown_integral(x0: Scalar, m: float, n: float) -> Array:
    """
    Integral of (q(x)/q_m)^2 from x0 to 1, for x0 at or above the crown peak.

    With u = x^n the integrand becomes a beta density kernel:
        (m n / q_m)^2 / n * B(2 - 1/n, 2m - 1) * (1 - I_{x0^n}(2 - 1/n, 2m - 1))
    """
    alpha = 2.0 - 1.0 / n
    beta = 2.0 * m - 1.0
    qm = crown_shape_max(m, n)
    u0 = jnp.clip(x0, 0.0, 1.0) ** n
    full = jnp.exp(betaln(alpha, beta))
    tail = 1.0 - betainc(alpha, beta, u0)
    return (m * n / qm) ** 2 / n * full * tail


def crown_fraction_above(z: Scalar, plant_height: Scalar, m: float, n: float) -> Array:
    """
    Normalised integral of the crown profile from z to the crown top.

    1 at the ground, 0 at the top.
    """
    x = jnp.clip(z / plant_height, 0.0, 1.0)
    xm = crown_peak_fraction(m, n)
    upper_total = _upper_crown_integral(xm, m, n)
    total = xm + upper_total
    above = jnp.where(
        x <= xm, (xm - x) + upper_total, _upper_crown_integral(jnp.maximum(x, xm), m, n)
    )
    return above / total


def crown_area_above(
    z: Scalar,
    plant_height: Scalar,
    area: Scalar,
    m: float,
    n: float,
    fg: float,
) -> Array:
    """
    Crown area above height z, as used for canopy layering.

    A fraction (1 - fg) of the crown area behaves as the projected
    crown extent; the gap fraction fg is spread along the crown depth in
    proportion to the integrated crown profile.

    Args:
        z: Height above ground (m)
        plant_height: Plant height H (m)
        area: Crown area Ac (m2)
        m, n: Crown shape exponents
        fg: Upper canopy gap fraction

    Returns:
        Crown area above z (m2); Ac at z = 0, 0 at z >= H
    """
    projected = crown_profile(z, plant_height, area, m, n)
    spread = area * crown_fraction_above(z, plant_height, m, n)
    return jnp.where(z >= plant_height, 0.0, (1.0 - fg) * projected + fg * spread)


# =============================================================================
# Biomass pools
# =============================================================================


def leaf_mass(lai: Scalar, area: Scalar, lma: Scalar) -> Array:
    """Leaf mass = lai * Ac * lma."""
    return jnp.asarray(lai * area * lma)


def basal_area(diameter: Scalar) -> Array:
    """Stem cross-sectional area at the base, pi D^2 / 4."""
    return jnp.pi * diameter**2 / 4.0


def stem_mass(
    diameter: Scalar, plant_height: Scalar, wood_density: Scalar, eta_c: Scalar
) -> Array:
    """Stem mass of a tapered stem, eta_c rho pi/4 D^2 H."""
    return eta_c * wood_density * basal_area(diameter) * plant_height


def dstem_mass_ddiameter(
    diameter: Scalar,
    plant_height: Scalar,
    dh_dd: Scalar,
    wood_density: Scalar,
    eta_c: Scalar,
) -> Array:
    """Derivative of stem mass with respect to diameter."""
    return (
        eta_c
        * wood_density
        * jnp.pi
        / 4.0
        * (2.0 * diameter * plant_height + diameter**2 * dh_dd)
    )


def sapwood_area(diameter: Scalar, area: Scalar, sapwood_crown_ratio: float) -> Array:
    """
    Sapwood cross-section from the pipe model.

    Proportional to crown area, but never more than the whole stem.
    """
    return jnp.minimum(sapwood_crown_ratio * area, basal_area(diameter))


def sapwood_mass(
    sapwood_xs: Scalar, plant_height: Scalar, wood_density: Scalar, eta_c: Scalar
) -> Array:
    """Sapwood mass, eta_c rho As H."""
    return eta_c * wood_density * sapwood_xs * plant_height


def rooting_depth(coarse_root_mass: Scalar, wood_density: Scalar) -> Array:
    """
    Rooting depth from coarse root biomass.

    The coarse root system is a cone whose depth equals its top diameter,
    so its volume is pi z^3 / 12.
    """
    volume = jnp.maximum(coarse_root_mass, 0.0) / wood_density
    return jnp.cbrt(12.0 * volume / jnp.pi)


def structural_mass(
    diameter: Scalar,
    lai: Scalar,
    hmat: Scalar,
    lma: Scalar,
    wood_density: Scalar,
    zeta: Scalar,
    a: float,
    c: float,
    n: float,
    cr_rs: float,
) -> Array:
    """
    Total mass implied by diameter at fixed LAI, with coarse roots in
    their allometric proportion to the stem.

    This is the function whose diameter derivative links carbon
    allocation to size growth.
    """
    h = height(diameter, hmat, a)
    area = crown_area(diameter, h, a, c)
    leaf = leaf_mass(lai, area, lma)
    stem = stem_mass(diameter, h, wood_density, stem_form_factor(n))
    return leaf * (1.0 + zeta) + stem * (1.0 + cr_rs)
