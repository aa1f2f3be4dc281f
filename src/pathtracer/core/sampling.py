"""Counter-based random streams and Monte Carlo sampling routines.

Every (pixel, sample, frame, seed) tuple hashes to its own xorshift32 stream,
so a render is reproducible regardless of how Taichi schedules threads. The
stream state is a ti.u32 threaded explicitly through the integrator: each
draw returns the value together with the advanced state.

The sampling routines take their uniform numbers as arguments instead of
drawing them, which keeps materials and lights free of random state.
"""

import taichi as ti
import taichi.math as tm

vec2 = tm.vec2
vec3 = tm.vec3

# 2^-24: maps the top 24 bits of a u32 onto [0, 1)
_INV_2_24 = 1.0 / 16777216.0


@ti.func
def wang_hash(seed: ti.u32) -> ti.u32:
    """Thomas Wang's 32-bit integer hash."""
    h = (seed ^ ti.cast(61, ti.u32)) ^ (seed >> ti.cast(16, ti.u32))
    h = h * ti.cast(9, ti.u32)
    h = h ^ (h >> ti.cast(4, ti.u32))
    h = h * ti.cast(0x27D4EB2D, ti.u32)
    h = h ^ (h >> ti.cast(15, ti.u32))
    return h


@ti.func
def seed_rng(pixel_index: ti.i32, sample_index: ti.i32, frame: ti.i32, seed: ti.i32) -> ti.u32:
    """Derive the initial stream state for one path sample.

    The state is never zero, which would be a fixed point of xorshift.
    """
    h = wang_hash(ti.cast(pixel_index, ti.u32))
    h = wang_hash(h ^ (ti.cast(sample_index, ti.u32) * ti.cast(0x165667B1, ti.u32)))
    h = wang_hash(h ^ (ti.cast(frame, ti.u32) * ti.cast(0x1B873593, ti.u32)))
    h = wang_hash(h ^ (ti.cast(seed, ti.u32) * ti.cast(0x68E31DA4, ti.u32)))
    return h | ti.cast(1, ti.u32)


@ti.func
def _xorshift32(state: ti.u32) -> ti.u32:
    x = state ^ (state << ti.cast(13, ti.u32))
    x = x ^ (x >> ti.cast(17, ti.u32))
    x = x ^ (x << ti.cast(5, ti.u32))
    return x


@ti.func
def rng_next(state: ti.u32):
    """Draw one uniform float in [0, 1).

    Returns:
        A tuple (value, new_state).
    """
    x = _xorshift32(state)
    value = ti.cast(x >> ti.cast(8, ti.u32), ti.f32) * _INV_2_24
    return value, x


@ti.func
def rng_next2(state: ti.u32):
    """Draw a vec2 of uniform floats; returns (vec2, new_state)."""
    a, s1 = rng_next(state)
    b, s2 = rng_next(s1)
    return vec2(a, b), s2


@ti.func
def rng_next3(state: ti.u32):
    """Draw a vec3 of uniform floats; returns (vec3, new_state)."""
    a, s1 = rng_next(state)
    b, s2 = rng_next(s1)
    c, s3 = rng_next(s2)
    return vec3(a, b, c), s3


# =============================================================================
# Warping functions
# =============================================================================


@ti.func
def sample_concentric_disk(u: vec2) -> vec2:
    """Shirley-Chiu mapping of the unit square onto the unit disk."""
    ox = 2.0 * u.x - 1.0
    oy = 2.0 * u.y - 1.0
    result = vec2(0.0, 0.0)
    if ox != 0.0 or oy != 0.0:
        r = 0.0
        theta = 0.0
        if ti.abs(ox) > ti.abs(oy):
            r = ox
            theta = 0.25 * tm.pi * (oy / ox)
        else:
            r = oy
            theta = 0.5 * tm.pi - 0.25 * tm.pi * (ox / oy)
        result = r * vec2(ti.cos(theta), ti.sin(theta))
    return result


@ti.func
def sample_cosine_hemisphere(u: vec2) -> vec3:
    """Cosine-weighted direction about +Z (Malley's method).

    The density is cos(theta) / pi.
    """
    d = sample_concentric_disk(u)
    z = ti.sqrt(ti.max(0.0, 1.0 - d.x * d.x - d.y * d.y))
    return vec3(d.x, d.y, z)


@ti.func
def cosine_hemisphere_pdf(cos_theta: ti.f32) -> ti.f32:
    return ti.abs(cos_theta) / tm.pi


@ti.func
def sample_uniform_sphere(u: vec2) -> vec3:
    """Uniform direction on the unit sphere; density 1 / (4 pi)."""
    z = 1.0 - 2.0 * u.x
    r = ti.sqrt(ti.max(0.0, 1.0 - z * z))
    phi = 2.0 * tm.pi * u.y
    return vec3(r * ti.cos(phi), r * ti.sin(phi), z)


@ti.func
def power_heuristic(f_pdf: ti.f32, g_pdf: ti.f32) -> ti.f32:
    """Veach's power heuristic with exponent 2 and one sample per strategy."""
    f2 = f_pdf * f_pdf
    g2 = g_pdf * g_pdf
    weight = 0.0
    if f2 + g2 > 0.0:
        weight = f2 / (f2 + g2)
    return weight
