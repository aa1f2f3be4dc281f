"""Matte (Lambertian) material.

The BRDF is constant over the hemisphere:
    f_r(wo, wi) = diffuse / pi

and directions are importance sampled with a cosine-weighted density
    pdf(wi) = |cos(theta_i)| / pi

so the sample weight f * |cos| / pdf reduces to the diffuse albedo. The
document's roughness parameter is accepted but the lobe stays Lambertian.

Example:
    >>> # Within a Taichi kernel, in the local shading frame:
    >>> # s = sample_matte(diffuse, wo, u)
    >>> # f = eval_matte(diffuse, wo, s.direction)
"""

import taichi as ti
import taichi.math as tm

from pathtracer.core.sampling import cosine_hemisphere_pdf, sample_cosine_hemisphere
from pathtracer.materials.bsdf import BsdfSample, same_hemisphere, side_of, upper

vec2 = tm.vec2
vec3 = tm.vec3


@ti.func
def eval_matte(diffuse: vec3, wo: vec3, wi: vec3) -> vec3:
    """Lambertian BRDF value; zero when wo and wi are on opposite sides."""
    f = vec3(0.0, 0.0, 0.0)
    if same_hemisphere(wo, wi):
        f = diffuse / tm.pi
    return f


@ti.func
def pdf_matte(wo: vec3, wi: vec3) -> ti.f32:
    pdf = 0.0
    if same_hemisphere(wo, wi):
        pdf = cosine_hemisphere_pdf(wi.z)
    return pdf


@ti.func
def sample_matte(diffuse: vec3, wo: vec3, u: vec2) -> BsdfSample:
    """Cosine-weighted sample on the side of wo.

    Returns:
        A BsdfSample whose weight equals diffuse whenever the pdf is
        positive.
    """
    wi = upper(sample_cosine_hemisphere(u), side_of(wo))
    pdf = cosine_hemisphere_pdf(wi.z)
    weight = vec3(0.0, 0.0, 0.0)
    if pdf > 0.0:
        weight = eval_matte(diffuse, wo, wi) * ti.abs(wi.z) / pdf
    return BsdfSample(direction=wi, pdf=pdf, weight=weight, specular=0)
