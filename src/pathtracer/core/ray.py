"""Ray data structure and vector utilities used inside Taichi kernels.

Shading happens in a local frame where the surface normal is +Z. The helpers
here build that frame and move directions in and out of it, reflect and
refract directions, and offset ray origins away from the surface they leave.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> origin = ti.math.vec3(0.0, 0.0, 0.0)
    >>> direction = ti.math.vec3(0.0, 0.0, -1.0)
    >>> ray = Ray(origin=origin, direction=direction)
    >>> point = ray_at(ray, 5.0)  # Point 5 units along the ray (inside a kernel)
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Smallest accepted hit distance for continuation and shadow rays
T_MIN = 1e-5

# Upper bound on hit distance for unbounded queries
T_MAX = 1e30

# Relative distance a continuation ray is pushed off its surface
RAY_EPSILON = 1e-4


@ti.dataclass
class Ray:
    """A ray with an origin point and direction vector.

    Attributes:
        origin: The starting point of the ray (vec3).
        direction: The direction vector of the ray (vec3). World-space rays
            are normalized; rays mapped into object space are not, so that
            hit distances stay comparable across instances.
    """

    origin: vec3
    direction: vec3


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Compute the point ray.origin + t * ray.direction."""
    return ray.origin + t * ray.direction


@ti.func
def reflect(wo: vec3, normal: vec3) -> vec3:
    """Mirror a direction about a normal.

    Args:
        wo: Direction pointing away from the surface.
        normal: Unit normal.

    Returns:
        The mirrored direction, also pointing away from the surface.
    """
    return -wo + 2.0 * tm.dot(wo, normal) * normal


@ti.func
def refract(wo: vec3, normal: vec3, eta: ti.f32):
    """Refract a direction through a surface with Snell's law.

    Args:
        wo: Direction pointing away from the surface on the incident side.
        normal: Unit normal on the same side as wo.
        eta: Ratio of refractive indices, incident over transmitted.

    Returns:
        A tuple (direction, ok). ok is 0 on total internal reflection, in
        which case direction is zero.
    """
    cos_i = tm.dot(normal, wo)
    sin2_i = ti.max(0.0, 1.0 - cos_i * cos_i)
    sin2_t = eta * eta * sin2_i
    direction = vec3(0.0, 0.0, 0.0)
    ok = 0
    if sin2_t < 1.0:
        cos_t = ti.sqrt(1.0 - sin2_t)
        direction = tm.normalize(-eta * wo + (eta * cos_i - cos_t) * normal)
        ok = 1
    return direction, ok


@ti.func
def build_onb_from_normal(normal: vec3):
    """Build an orthonormal basis (tangent, bitangent, normal).

    Uses the branchless construction of Duff et al. so the frame is
    continuous everywhere except at normal.z == -1 exactly.
    """
    sign = 1.0
    if normal.z < 0.0:
        sign = -1.0
    a = -1.0 / (sign + normal.z)
    b = normal.x * normal.y * a
    tangent = vec3(1.0 + sign * normal.x * normal.x * a, sign * b, -sign * normal.x)
    bitangent = vec3(b, sign + normal.y * normal.y * a, -normal.y)
    return tangent, bitangent, normal


@ti.func
def world_to_local(v: vec3, tangent: vec3, bitangent: vec3, normal: vec3) -> vec3:
    return vec3(tm.dot(v, tangent), tm.dot(v, bitangent), tm.dot(v, normal))


@ti.func
def local_to_world(local_dir: vec3, tangent: vec3, bitangent: vec3, normal: vec3) -> vec3:
    return local_dir.x * tangent + local_dir.y * bitangent + local_dir.z * normal


@ti.func
def offset_ray_origin(point: vec3, normal: vec3, direction: vec3) -> vec3:
    """Push a ray origin off a surface, onto the side the ray leaves toward.

    The offset scales with the magnitude of the point's coordinates so that
    float32 rounding far from the origin does not re-hit the surface.
    """
    scale = ti.max(1.0, ti.max(ti.abs(point.x), ti.max(ti.abs(point.y), ti.abs(point.z))))
    offset_dir = normal
    if tm.dot(direction, normal) < 0.0:
        offset_dir = -normal
    return point + RAY_EPSILON * scale * offset_dir
