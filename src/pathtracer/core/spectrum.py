"""RGB color helpers shared by the host and Taichi code."""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

# Rec. 709 luminance weights
LUMINANCE_WEIGHTS = (0.2126, 0.7152, 0.0722)

# Radiance values at or beyond this are treated as overflow
RADIANCE_LIMIT = 1e30


@ti.func
def luminance(c: vec3) -> ti.f32:
    return LUMINANCE_WEIGHTS[0] * c.x + LUMINANCE_WEIGHTS[1] * c.y + LUMINANCE_WEIGHTS[2] * c.z


@ti.func
def max_component(c: vec3) -> ti.f32:
    return ti.max(c.x, ti.max(c.y, c.z))


@ti.func
def is_black(c: vec3) -> ti.i32:
    return c.x == 0.0 and c.y == 0.0 and c.z == 0.0


@ti.func
def is_valid_radiance(c: vec3) -> ti.i32:
    """1 when every channel is finite and non-negative."""
    valid = 1
    for i in ti.static(range(3)):
        if tm.isnan(c[i]) or tm.isinf(c[i]) or c[i] < 0.0 or c[i] >= RADIANCE_LIMIT:
            valid = 0
    return valid


def rgb_luminance(rgb: npt.ArrayLike) -> float:
    """Host-side luminance of an RGB triple."""
    return float(np.dot(np.asarray(rgb, dtype=np.float64), LUMINANCE_WEIGHTS))
