"""Light descriptions, selection weights and emitter-shape sampling.

Area lights are sphere or disk instances sampled uniformly by local area.
Under an affine world transform the world-space area element is

    dA_world = |det L| * |L^-T n_local| * dA_local

where L is the linear part of the transform, so the world-space area
density of a uniformly sampled local point is 1 / (A_local * jacobian).

Lights are chosen in proportion to their emitted power:

    area:  pi * luminance(L) * A_world   (doubled when two-sided)
    point: 4 * pi * luminance(I)
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
import taichi as ti
import taichi.math as tm

from pathtracer.core.spectrum import rgb_luminance
from pathtracer.geometry.disk import sample_disk
from pathtracer.geometry.hit import GeometryKind
from pathtracer.geometry.sphere import sample_sphere

logger = logging.getLogger(__name__)

vec2 = tm.vec2
vec3 = tm.vec3

LIGHT_AREA = 0
LIGHT_POINT = 1

RGB = tuple[float, float, float]


@dataclass
class Light:
    """Host-side description of one emitter.

    Attributes:
        name: Name of the emitter object.
        kind: LIGHT_AREA or LIGHT_POINT.
        radiance: Emitted radiance (area) or intensity (point).
        instance: Index of the instance carrying the emitter's shape, or -1.
        position: World-space position of a point light.
        two_sided: Area light emits on both sides of its surface.
        local_area: Surface area of the shape in object space.
        world_area: Estimated surface area in world space.
    """

    name: str
    kind: int
    radiance: RGB
    instance: int = -1
    position: RGB = (0.0, 0.0, 0.0)
    two_sided: bool = False
    local_area: float = 0.0
    world_area: float = 0.0

    @property
    def power(self) -> float:
        lum = rgb_luminance(self.radiance)
        if self.kind == LIGHT_POINT:
            return 4.0 * math.pi * lum
        sides = 2.0 if self.two_sided else 1.0
        return sides * math.pi * lum * self.world_area


@ti.dataclass
class LightSample:
    """A point sampled on a light, as seen from a shading point.

    Attributes:
        direction: Unit direction from the shading point toward the light.
        distance: Distance to the sampled light point.
        radiance: Radiance arriving along direction (already divided by
            distance squared for point lights).
        pdf: Solid-angle density including the light selection probability;
            for point lights the selection probability alone.
        is_delta: 1 for point lights.
        light: Index of the chosen light, -1 if none.
    """

    direction: vec3
    distance: ti.f32
    radiance: vec3
    pdf: ti.f32
    is_delta: ti.i32
    light: ti.i32


@ti.func
def no_light_sample() -> LightSample:
    return LightSample(
        direction=vec3(0.0, 0.0, 1.0),
        distance=0.0,
        radiance=vec3(0.0, 0.0, 0.0),
        pdf=0.0,
        is_delta=0,
        light=-1,
    )


def estimate_world_area(local_area: float, determinant: float) -> float:
    """World area of a shape under a transform with the given determinant.

    Exact for similarity transforms; an estimate under non-uniform scale,
    used only for selection weights.
    """
    return local_area * abs(determinant) ** (2.0 / 3.0)


def selection_distribution(lights: list[Light]) -> tuple[np.ndarray, np.ndarray]:
    """Power-proportional selection probabilities and their running sum.

    Falls back to uniform selection when no light carries positive power.

    Returns:
        (cdf, pmf) arrays of length len(lights); cdf[-1] is exactly 1.
    """
    if not lights:
        return np.zeros(0, dtype=np.float32), np.zeros(0, dtype=np.float32)
    weights = np.array([max(light.power, 0.0) for light in lights], dtype=np.float64)
    total = weights.sum()
    if not np.isfinite(total) or total <= 0.0:
        logger.warning("no light carries positive power; selecting lights uniformly")
        weights = np.ones(len(lights), dtype=np.float64)
        total = float(len(lights))
    pmf = weights / total
    cdf = np.cumsum(pmf)
    cdf[-1] = 1.0
    return cdf.astype(np.float32), pmf.astype(np.float32)


@ti.func
def sample_shape(kind: ti.i32, params: vec2, u: vec2):
    """Uniform area sample on a sphere or disk in object space.

    Args:
        kind: GeometryKind of the shape.
        params: (radius, inner_radius).
        u: Two uniform numbers.

    Returns:
        A tuple (point, outward_normal).
    """
    point = vec3(0.0, 0.0, 0.0)
    normal = vec3(0.0, 0.0, 1.0)
    if kind == int(GeometryKind.SPHERE):
        point, normal = sample_sphere(params.x, u)
    elif kind == int(GeometryKind.DISK):
        point, normal = sample_disk(params.x, params.y, u)
    return point, normal
