"""Shared BSDF sample record and shading-frame helpers.

All material functions work in a local shading frame whose +Z axis is the
outward shading normal. Directions wo and wi both point away from the
surface. Opaque materials are two-sided: when wo lies below the surface the
lobes are mirrored into the lower hemisphere.
"""

import taichi as ti
import taichi.math as tm

from pathtracer.core.spectrum import is_black

vec3 = tm.vec3


@ti.dataclass
class BsdfSample:
    """Outcome of importance sampling a material.

    Attributes:
        direction: Sampled incident direction wi.
        pdf: Density of direction (solid angle), or the discrete selection
            probability for specular events. Zero means no valid sample.
        weight: f * |cos(theta_i)| / pdf, the throughput multiplier.
        specular: 1 if the direction came from a delta distribution.
    """

    direction: vec3
    pdf: ti.f32
    weight: vec3
    specular: ti.i32


@ti.func
def no_sample() -> BsdfSample:
    return BsdfSample(direction=vec3(0.0, 0.0, 1.0), pdf=0.0, weight=vec3(0.0, 0.0, 0.0), specular=0)


@ti.func
def same_hemisphere(a: vec3, b: vec3) -> ti.i32:
    return a.z * b.z > 0.0


@ti.func
def upper(w: vec3, flip: ti.f32) -> vec3:
    """Mirror w across the surface when flip is -1."""
    return vec3(w.x, w.y, w.z * flip)


@ti.func
def side_of(wo: vec3) -> ti.f32:
    """+1 when wo is above the surface, -1 below."""
    return ti.select(wo.z < 0.0, -1.0, 1.0)


@ti.func
def is_degenerate(s: BsdfSample) -> ti.i32:
    """A sample whose density cannot be trusted.

    A non-finite pdf, or a zero pdf that still carries energy. Samples with
    zero pdf and zero weight, such as a microfacet reflection that lands
    below the horizon, are ordinary misses and not degenerate.
    """
    bad = 0
    if tm.isnan(s.pdf) or tm.isinf(s.pdf):
        bad = 1
    elif s.pdf <= 0.0 and is_black(s.weight) == 0:
        bad = 1
    return bad
