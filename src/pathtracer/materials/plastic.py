"""Plastic: a Lambertian base under a glossy dielectric coat.

The BRDF is the sum of two lobes:
    f = diffuse / pi + gloss * F(wo.h) * D(h) G(wo, wi) / (4 cos_o cos_i)

with GGX D and G driven by roughness and dielectric Fresnel F for a coat of
index COAT_ETA. Sampling picks the glossy lobe with probability
    p_gloss = lum(gloss) / (lum(diffuse) + lum(gloss))
and reports the mixture density (1 - p_gloss) pdf_diffuse + p_gloss pdf_gloss
so that the estimator stays unbiased whichever lobe produced the direction.
"""

import taichi as ti
import taichi.math as tm

from pathtracer.core.ray import reflect
from pathtracer.core.sampling import cosine_hemisphere_pdf, sample_cosine_hemisphere
from pathtracer.core.spectrum import luminance
from pathtracer.materials.bsdf import BsdfSample, side_of, upper
from pathtracer.materials.fresnel import fresnel_dielectric
from pathtracer.materials.microfacet import reflected_pdf, roughness_to_alpha, sample_ggx_half, torrance_sparrow

vec2 = tm.vec2
vec3 = tm.vec3

COAT_ETA = 1.5


@ti.func
def gloss_probability(diffuse: vec3, gloss: vec3) -> ti.f32:
    ld = luminance(diffuse)
    lg = luminance(gloss)
    p = 0.5
    if ld + lg > 0.0:
        p = lg / (ld + lg)
    return p


@ti.func
def eval_plastic(diffuse: vec3, gloss: vec3, roughness: ti.f32, wo: vec3, wi: vec3) -> vec3:
    flip = side_of(wo)
    o = upper(wo, flip)
    i = upper(wi, flip)
    f = vec3(0.0, 0.0, 0.0)
    if o.z > 0.0 and i.z > 0.0:
        alpha = roughness_to_alpha(roughness)
        h = tm.normalize(o + i)
        fresnel = fresnel_dielectric(tm.dot(o, h), 1.0, COAT_ETA)
        f = diffuse / tm.pi + gloss * (fresnel * torrance_sparrow(o, i, alpha))
    return f


@ti.func
def pdf_plastic(diffuse: vec3, gloss: vec3, roughness: ti.f32, wo: vec3, wi: vec3) -> ti.f32:
    flip = side_of(wo)
    o = upper(wo, flip)
    i = upper(wi, flip)
    pdf = 0.0
    if o.z > 0.0 and i.z > 0.0:
        alpha = roughness_to_alpha(roughness)
        p_gloss = gloss_probability(diffuse, gloss)
        h = tm.normalize(o + i)
        pdf = (1.0 - p_gloss) * cosine_hemisphere_pdf(i.z) + p_gloss * reflected_pdf(o, h, alpha)
    return pdf


@ti.func
def sample_plastic(diffuse: vec3, gloss: vec3, roughness: ti.f32, wo: vec3, u: vec3) -> BsdfSample:
    """Choose a lobe with u.z, sample it with u.x and u.y, return the mixture weight."""
    flip = side_of(wo)
    o = upper(wo, flip)
    alpha = roughness_to_alpha(roughness)
    p_gloss = gloss_probability(diffuse, gloss)

    i = vec3(0.0, 0.0, 1.0)
    if u.z < p_gloss:
        h = sample_ggx_half(vec2(u.x, u.y), alpha)
        i = reflect(o, h)
    else:
        i = sample_cosine_hemisphere(vec2(u.x, u.y))

    wi = upper(i, flip)
    pdf = 0.0
    weight = vec3(0.0, 0.0, 0.0)
    if i.z > 0.0:
        pdf = pdf_plastic(diffuse, gloss, roughness, wo, wi)
        if pdf > 0.0:
            weight = eval_plastic(diffuse, gloss, roughness, wo, wi) * i.z / pdf
    return BsdfSample(direction=wi, pdf=pdf, weight=weight, specular=0)
