"""Local-space hit record shared by all geometry primitives."""

from enum import IntEnum

import taichi as ti
import taichi.math as tm

vec2 = tm.vec2
vec3 = tm.vec3


class GeometryKind(IntEnum):
    """Closed set of primitive shapes."""

    PLANE = 0
    SPHERE = 1
    DISK = 2
    MESH = 3


@ti.dataclass
class LocalHit:
    """Result of intersecting a ray with a primitive in its object space.

    Attributes:
        hit: 1 if the ray intersected the primitive, 0 otherwise.
        t: Ray parameter of the nearest accepted root. Shared with world
            space, because object-space rays are not renormalized.
        point: Local-space intersection point.
        normal: Geometric normal, unit length, always on the primitive's
            outward (or +Z) side regardless of the ray direction.
        shading_normal: Interpolated normal used for shading, on the same
            side as normal.
        uv: Surface parameterization at the hit.
        front_face: 1 if the ray arrived against the outward normal.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    shading_normal: vec3
    uv: vec2
    front_face: ti.i32


@ti.func
def miss() -> LocalHit:
    return LocalHit(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 1.0),
        shading_normal=vec3(0.0, 0.0, 1.0),
        uv=vec2(0.0, 0.0),
        front_face=0,
    )
