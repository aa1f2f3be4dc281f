"""Glass: smooth dielectric with Fresnel-weighted reflection and refraction.

Key physics:
    - Snell's law: eta_i * sin(theta_i) = eta_t * sin(theta_t)
    - Exact dielectric Fresnel reflectance F
    - Total internal reflection when sin(theta_t) >= 1 (F = 1)

The local +Z axis is the outward normal, so wo.z > 0 means the ray arrives
from outside (index 1) and wo.z < 0 means it is leaving the glass (index
eta). Reflection is chosen with probability F and refraction with 1 - F;
the discrete choice probability is reported as the pdf, and the sample
weights reduce to the reflect and transmit tints.
"""

import taichi as ti
import taichi.math as tm

from pathtracer.core.ray import refract
from pathtracer.materials.bsdf import BsdfSample
from pathtracer.materials.fresnel import fresnel_dielectric

vec3 = tm.vec3


@ti.func
def sample_glass(reflect_tint: vec3, transmit_tint: vec3, eta: ti.f32, wo: vec3, u: ti.f32) -> BsdfSample:
    """Pick reflection or refraction for a smooth glass interface.

    Args:
        reflect_tint: Color multiplying reflected light.
        transmit_tint: Color multiplying refracted light.
        eta: Index of refraction of the glass relative to the outside.
        wo: Outgoing direction in the local frame.
        u: Uniform number deciding between the two events.

    Returns:
        A specular BsdfSample.
    """
    fresnel = fresnel_dielectric(wo.z, 1.0, eta)
    wi = vec3(-wo.x, -wo.y, wo.z)
    pdf = fresnel
    weight = reflect_tint

    if u >= fresnel:
        entering = wo.z > 0.0
        n = vec3(0.0, 0.0, 1.0)
        rel_eta = 1.0 / eta
        if not entering:
            n = vec3(0.0, 0.0, -1.0)
            rel_eta = eta
        direction, ok = refract(wo, n, rel_eta)
        if ok == 1:
            wi = direction
            pdf = 1.0 - fresnel
            weight = transmit_tint

    return BsdfSample(direction=wi, pdf=pdf, weight=weight, specular=1)
