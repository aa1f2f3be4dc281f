"""Metal (conductor) material.

Reflectance comes from the exact conductor Fresnel equations evaluated per
color channel from the complex index of refraction (refractive_index +
i * absorption_coefficient). Roughness drives a GGX microfacet lobe:

    f = F(wo.h) * D(h) G(wo, wi) / (4 cos_o cos_i)

Below SPECULAR_ROUGHNESS the lobe degenerates to a perfect mirror, which is
specular: evaluate() and pdf() return zero and sampling deterministically
picks the mirror direction with weight F(cos_o).

Example:
    >>> # Within a Taichi kernel, in the local shading frame:
    >>> # s = sample_metal(eta, k, roughness, wo, u)
"""

import taichi as ti
import taichi.math as tm

from pathtracer.core.ray import reflect
from pathtracer.materials.bsdf import BsdfSample, side_of, upper
from pathtracer.materials.fresnel import fresnel_conductor
from pathtracer.materials.microfacet import reflected_pdf, roughness_to_alpha, sample_ggx_half, torrance_sparrow

vec2 = tm.vec2
vec3 = tm.vec3

# Roughness values below this render as a perfect mirror
SPECULAR_ROUGHNESS = 1e-3


@ti.func
def metal_is_specular(roughness: ti.f32) -> ti.i32:
    return roughness < SPECULAR_ROUGHNESS


@ti.func
def eval_metal(eta: vec3, k: vec3, roughness: ti.f32, wo: vec3, wi: vec3) -> vec3:
    f = vec3(0.0, 0.0, 0.0)
    if not metal_is_specular(roughness):
        flip = side_of(wo)
        o = upper(wo, flip)
        i = upper(wi, flip)
        if o.z > 0.0 and i.z > 0.0:
            h = tm.normalize(o + i)
            f = fresnel_conductor(tm.dot(o, h), eta, k) * torrance_sparrow(o, i, roughness_to_alpha(roughness))
    return f


@ti.func
def pdf_metal(roughness: ti.f32, wo: vec3, wi: vec3) -> ti.f32:
    pdf = 0.0
    if not metal_is_specular(roughness):
        flip = side_of(wo)
        o = upper(wo, flip)
        i = upper(wi, flip)
        if o.z > 0.0 and i.z > 0.0:
            h = tm.normalize(o + i)
            pdf = reflected_pdf(o, h, roughness_to_alpha(roughness))
    return pdf


@ti.func
def sample_metal(eta: vec3, k: vec3, roughness: ti.f32, wo: vec3, u: vec2) -> BsdfSample:
    """Mirror reflection for smooth metals, GGX half-vector sampling otherwise."""
    flip = side_of(wo)
    o = upper(wo, flip)
    wi = vec3(0.0, 0.0, 1.0)
    pdf = 0.0
    weight = vec3(0.0, 0.0, 0.0)
    specular = 0

    if metal_is_specular(roughness):
        wi = vec3(-wo.x, -wo.y, wo.z)
        pdf = 1.0
        weight = fresnel_conductor(o.z, eta, k)
        specular = 1
    else:
        h = sample_ggx_half(u, roughness_to_alpha(roughness))
        i = reflect(o, h)
        wi = upper(i, flip)
        if i.z > 0.0:
            pdf = pdf_metal(roughness, wo, wi)
            if pdf > 0.0:
                weight = eval_metal(eta, k, roughness, wo, wi) * i.z / pdf

    return BsdfSample(direction=wi, pdf=pdf, weight=weight, specular=specular)
