"""Infinite plane at local z = 0 with normal +Z."""

import taichi as ti
import taichi.math as tm

from pathtracer.geometry.hit import LocalHit

vec2 = tm.vec2
vec3 = tm.vec3

# Rays with |direction.z| below this are treated as parallel to the plane
PARALLEL_EPSILON = 1e-8


@ti.func
def intersect_plane(origin: vec3, direction: vec3, t_min: ti.f32, t_max: ti.f32) -> LocalHit:
    """Intersect a ray with the plane z = 0.

    t = -origin.z / direction.z, rejected when the ray runs parallel to the
    plane or the root falls outside (t_min, t_max).

    Returns:
        A LocalHit with uv equal to the local (x, y) coordinates.
    """
    did_hit = 0
    hit_t = 0.0
    point = vec3(0.0, 0.0, 0.0)
    front_face = 0

    if ti.abs(direction.z) > PARALLEL_EPSILON:
        t = -origin.z / direction.z
        if t > t_min and t < t_max:
            did_hit = 1
            hit_t = t
            point = origin + t * direction
            point.z = 0.0
            if direction.z < 0.0:
                front_face = 1

    return LocalHit(
        hit=did_hit,
        t=hit_t,
        point=point,
        normal=vec3(0.0, 0.0, 1.0),
        shading_normal=vec3(0.0, 0.0, 1.0),
        uv=vec2(point.x, point.y),
        front_face=front_face,
    )
