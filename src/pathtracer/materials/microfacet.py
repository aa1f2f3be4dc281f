"""GGX (Trowbridge-Reitz) microfacet distribution with Smith masking.

Roughness values from the scene document are used directly as the GGX
alpha, clamped below by MIN_ALPHA so the lobe never collapses to a delta.
"""

import taichi as ti
import taichi.math as tm

vec2 = tm.vec2
vec3 = tm.vec3

MIN_ALPHA = 1e-3


@ti.func
def roughness_to_alpha(roughness: ti.f32) -> ti.f32:
    return ti.max(roughness, MIN_ALPHA)


@ti.func
def ggx_d(h: vec3, alpha: ti.f32) -> ti.f32:
    """Normal distribution D(h) for a half vector in the local frame."""
    d = 0.0
    if h.z > 0.0:
        a2 = alpha * alpha
        cos2 = h.z * h.z
        denom = cos2 * (a2 - 1.0) + 1.0
        d = a2 / (tm.pi * denom * denom)
    return d


@ti.func
def smith_g1(w: vec3, alpha: ti.f32) -> ti.f32:
    """Smith masking for one direction (uncorrelated form)."""
    cos_abs = ti.abs(w.z)
    a2 = alpha * alpha
    g = 0.0
    if cos_abs > 0.0:
        g = 2.0 * cos_abs / (cos_abs + ti.sqrt(a2 + (1.0 - a2) * cos_abs * cos_abs))
    return g


@ti.func
def smith_g(wo: vec3, wi: vec3, alpha: ti.f32) -> ti.f32:
    return smith_g1(wo, alpha) * smith_g1(wi, alpha)


@ti.func
def sample_ggx_half(u: vec2, alpha: ti.f32) -> vec3:
    """Sample a half vector in the upper hemisphere with density D(h) * h.z."""
    uu = ti.min(u.x, 0.999999)
    tan2 = alpha * alpha * uu / (1.0 - uu)
    cos_theta = 1.0 / ti.sqrt(1.0 + tan2)
    sin_theta = ti.sqrt(ti.max(0.0, 1.0 - cos_theta * cos_theta))
    phi = 2.0 * tm.pi * u.y
    return vec3(sin_theta * ti.cos(phi), sin_theta * ti.sin(phi), cos_theta)


@ti.func
def reflected_pdf(wo: vec3, h: vec3, alpha: ti.f32) -> ti.f32:
    """Solid-angle density of wi = reflect(wo, h) when h ~ D(h) * h.z."""
    wo_dot_h = ti.abs(tm.dot(wo, h))
    pdf = 0.0
    if wo_dot_h > 0.0:
        pdf = ggx_d(h, alpha) * h.z / (4.0 * wo_dot_h)
    return pdf


@ti.func
def torrance_sparrow(wo: vec3, wi: vec3, alpha: ti.f32) -> ti.f32:
    """D * G / (4 cos_o cos_i) for both directions in the upper hemisphere.

    Fresnel is applied by the caller.
    """
    value = 0.0
    if wo.z > 0.0 and wi.z > 0.0:
        h = wo + wi
        if tm.dot(h, h) > 0.0:
            h = tm.normalize(h)
            value = ggx_d(h, alpha) * smith_g(wo, wi, alpha) / (4.0 * wo.z * wi.z)
    return value
