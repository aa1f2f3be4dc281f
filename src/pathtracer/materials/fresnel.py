"""Exact Fresnel reflectance for dielectric and conducting interfaces."""

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3


@ti.func
def fresnel_dielectric(cos_i: ti.f32, eta_i: ti.f32, eta_t: ti.f32) -> ti.f32:
    """Unpolarized reflectance at a dielectric boundary.

    Args:
        cos_i: Cosine between the incident direction and the normal. A
            negative value means the ray is on the eta_t side, and the
            indices are swapped.
        eta_i: Index of refraction on the normal's side.
        eta_t: Index of refraction on the opposite side.

    Returns:
        Reflectance in [0, 1]; 1 on total internal reflection.
    """
    cos_in = tm.clamp(cos_i, -1.0, 1.0)
    n_i = eta_i
    n_t = eta_t
    if cos_in < 0.0:
        n_i = eta_t
        n_t = eta_i
        cos_in = -cos_in

    sin_i = ti.sqrt(ti.max(0.0, 1.0 - cos_in * cos_in))
    sin_t = n_i / n_t * sin_i
    reflectance = 1.0
    if sin_t < 1.0:
        cos_t = ti.sqrt(ti.max(0.0, 1.0 - sin_t * sin_t))
        r_parl = (n_t * cos_in - n_i * cos_t) / (n_t * cos_in + n_i * cos_t)
        r_perp = (n_i * cos_in - n_t * cos_t) / (n_i * cos_in + n_t * cos_t)
        reflectance = 0.5 * (r_parl * r_parl + r_perp * r_perp)
    return reflectance


@ti.func
def fresnel_conductor(cos_i: ti.f32, eta: vec3, k: vec3) -> vec3:
    """Per-channel reflectance of a conductor with complex index eta + i k.

    Uses the full (not Schlick) expression for an interface with a
    dielectric of index 1 on the incident side.
    """
    cos_in = tm.clamp(ti.abs(cos_i), 0.0, 1.0)
    cos2 = cos_in * cos_in
    sin2 = 1.0 - cos2
    eta2 = eta * eta
    k2 = k * k

    t0 = eta2 - k2 - sin2
    a2_plus_b2 = ti.sqrt(ti.max(t0 * t0 + 4.0 * eta2 * k2, 0.0))
    t1 = a2_plus_b2 + cos2
    a = ti.sqrt(ti.max(0.5 * (a2_plus_b2 + t0), 0.0))
    t2 = 2.0 * cos_in * a
    rs = (t1 - t2) / ti.max(t1 + t2, 1e-12)

    t3 = cos2 * a2_plus_b2 + sin2 * sin2
    t4 = t2 * sin2
    rp = rs * (t3 - t4) / ti.max(t3 + t4, 1e-12)
    return tm.clamp(0.5 * (rp + rs), 0.0, 1.0)
