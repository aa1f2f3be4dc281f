"""Disk (or annulus) in the local z = 0 plane, facing +Z.

The geometric normal is always +Z; which side the ray arrived from is
reported through front_face so an emitter can choose to be one- or
two-sided.
"""

import math

import taichi as ti
import taichi.math as tm

from pathtracer.geometry.hit import LocalHit
from pathtracer.geometry.plane import PARALLEL_EPSILON

vec2 = tm.vec2
vec3 = tm.vec3


@ti.func
def intersect_disk(
    origin: vec3,
    direction: vec3,
    radius: ti.f32,
    inner_radius: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
) -> LocalHit:
    """Intersect a ray with the annulus inner_radius <= r <= radius.

    Returns:
        A LocalHit whose uv is (phi / 2pi, (radius - r) / (radius - inner_radius)).
    """
    did_hit = 0
    hit_t = 0.0
    point = vec3(0.0, 0.0, 0.0)
    uv = vec2(0.0, 0.0)
    front_face = 0

    if ti.abs(direction.z) > PARALLEL_EPSILON:
        t = -origin.z / direction.z
        if t > t_min and t < t_max:
            p = origin + t * direction
            r2 = p.x * p.x + p.y * p.y
            if r2 <= radius * radius and r2 >= inner_radius * inner_radius:
                did_hit = 1
                hit_t = t
                point = vec3(p.x, p.y, 0.0)
                if direction.z < 0.0:
                    front_face = 1
                phi = ti.atan2(p.y, p.x)
                if phi < 0.0:
                    phi += 2.0 * tm.pi
                width = ti.max(radius - inner_radius, 1e-20)
                uv = vec2(phi / (2.0 * tm.pi), (radius - ti.sqrt(r2)) / width)

    return LocalHit(
        hit=did_hit,
        t=hit_t,
        point=point,
        normal=vec3(0.0, 0.0, 1.0),
        shading_normal=vec3(0.0, 0.0, 1.0),
        uv=uv,
        front_face=front_face,
    )


@ti.func
def sample_disk(radius: ti.f32, inner_radius: ti.f32, u: vec2):
    """Uniformly sample a point on the annulus by area.

    Returns:
        A tuple (point, normal) in object space; normal is +Z.
    """
    r2 = inner_radius * inner_radius + u.x * (radius * radius - inner_radius * inner_radius)
    r = ti.sqrt(r2)
    phi = 2.0 * tm.pi * u.y
    return vec3(r * ti.cos(phi), r * ti.sin(phi), 0.0), vec3(0.0, 0.0, 1.0)


def disk_area(radius: float, inner_radius: float) -> float:
    return math.pi * (radius * radius - inner_radius * inner_radius)
