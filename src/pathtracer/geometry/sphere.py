"""Sphere centered at the local origin, with robust ray-sphere intersection.

The quadratic is solved with the formulation from Ray Tracing Gems (chapter
7), which avoids catastrophic cancellation when b^2 is close to 4ac. A ray
starting inside the sphere (glass objects, enclosing emitters) gets the exit
root, because the entry root lies behind its origin.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from pathtracer.geometry.sphere import intersect_sphere
    >>> # Use intersect_sphere within a Taichi kernel
"""

import math

import taichi as ti
import taichi.math as tm

from pathtracer.geometry.hit import LocalHit

vec2 = tm.vec2
vec3 = tm.vec3


@ti.func
def _solve_quadratic_robust(h: ti.f32, a: ti.f32, c: ti.f32, sqrt_d: ti.f32):
    """Solve a*t^2 + 2*h*t + c = 0 given sqrt(h^2 - a*c).

    Returns:
        Tuple of (t0, t1) where t0 <= t1.
    """
    # q = -(h + sign(h) * sqrt(discriminant)) avoids subtracting close values
    sign_h = ti.select(h < 0.0, -1.0, 1.0)
    q = -(h + sign_h * sqrt_d)

    t0 = 0.0
    t1 = 0.0
    if ti.abs(q) < 1e-10:
        t0 = (-h - sqrt_d) / a
        t1 = (-h + sqrt_d) / a
    else:
        t0 = q / a
        t1 = c / q

    if t0 > t1:
        temp = t0
        t0 = t1
        t1 = temp

    return t0, t1


@ti.func
def sphere_uv(p: vec3) -> vec2:
    """Spherical (phi, theta) parameterization mapped onto [0, 1]^2."""
    r = tm.length(p)
    phi = ti.atan2(p.y, p.x)
    if phi < 0.0:
        phi += 2.0 * tm.pi
    cos_theta = tm.clamp(p.z / ti.max(r, 1e-20), -1.0, 1.0)
    return vec2(phi / (2.0 * tm.pi), ti.acos(cos_theta) / tm.pi)


@ti.func
def intersect_sphere(
    origin: vec3,
    direction: vec3,
    radius: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
) -> LocalHit:
    """Intersect a ray with a sphere of the given radius at the origin.

    Solves |origin + t * direction|^2 = radius^2 in half-b form:
        a = dot(d, d), h = dot(d, o), c = dot(o, o) - r^2

    The nearer root is used when it lies in (t_min, t_max), the farther one
    otherwise. The returned normal always points away from the center.

    Args:
        origin: Ray origin in object space.
        direction: Ray direction in object space (need not be unit length).
        radius: Sphere radius.
        t_min: Minimum accepted ray parameter.
        t_max: Maximum accepted ray parameter.

    Returns:
        A LocalHit; check its hit field.
    """
    a = tm.dot(direction, direction)
    h = tm.dot(direction, origin)
    c = tm.dot(origin, origin) - radius * radius
    discriminant = h * h - a * c

    did_hit = 0
    hit_t = 0.0
    point = vec3(0.0, 0.0, 0.0)
    normal = vec3(0.0, 0.0, 1.0)
    front_face = 0

    if discriminant >= 0.0 and a > 0.0:
        sqrt_d = ti.sqrt(discriminant)
        t0, t1 = _solve_quadratic_robust(h, a, c, sqrt_d)

        t = t0
        valid = (t > t_min) and (t < t_max)
        if not valid:
            t = t1
            valid = (t > t_min) and (t < t_max)

        if valid:
            did_hit = 1
            hit_t = t
            point = origin + t * direction
            normal = tm.normalize(point)
            # Reproject onto the surface to remove drift along the normal
            point = normal * radius
            if tm.dot(direction, normal) < 0.0:
                front_face = 1

    return LocalHit(
        hit=did_hit,
        t=hit_t,
        point=point,
        normal=normal,
        shading_normal=normal,
        uv=sphere_uv(point),
        front_face=front_face,
    )


@ti.func
def sample_sphere(radius: ti.f32, u: vec2):
    """Uniformly sample a point on the sphere surface by area.

    Returns:
        A tuple (point, outward_normal) in object space.
    """
    z = 1.0 - 2.0 * u.x
    r = ti.sqrt(ti.max(0.0, 1.0 - z * z))
    phi = 2.0 * tm.pi * u.y
    n = vec3(r * ti.cos(phi), r * ti.sin(phi), z)
    return radius * n, n


def sphere_area(radius: float) -> float:
    return 4.0 * math.pi * radius * radius
