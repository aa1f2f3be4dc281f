"""Light transport integrators.

PathIntegrator estimates the rendering equation with unidirectional path
tracing. At every vertex it combines two strategies with the power
heuristic:

    - next-event estimation: sample a point on a light, cast a shadow ray
    - BSDF sampling: continue the path, and count emission it hits

Emission hit by the camera ray or after a specular bounce gets full weight,
since next-event estimation cannot produce those paths. Point lights are
only reachable through next-event estimation and get weight 1 there.

Path length is capped at max_depth bounces. From min_depth on, Russian
roulette continues a path with probability q = min(1, max(throughput)) and
divides survivors by q, which leaves the estimator unbiased.

WhittedIntegrator is the classic recursive ray tracer: direct lighting at
non-specular surfaces, recursion only through specular materials.

Numerical anomalies (NaN, infinite or negative contributions) end the path,
contribute nothing and are counted. A BSDF sample that carries no energy
ends the path quietly; degenerate samples (non-finite pdf, or zero pdf with
nonzero weight) also end it and are counted separately.
"""

import logging
from dataclasses import dataclass
from enum import Enum

import taichi as ti
import taichi.math as tm

from pathtracer.core.ray import T_MAX, T_MIN, offset_ray_origin
from pathtracer.core.sampling import power_heuristic, rng_next, rng_next2, rng_next3
from pathtracer.core.spectrum import is_black, is_valid_radiance, max_component
from pathtracer.errors import ConfigurationError
from pathtracer.materials.bsdf import is_degenerate

logger = logging.getLogger(__name__)

vec3 = tm.vec3

# Shadow rays stop this fraction short of the sampled light point
SHADOW_EPSILON = 1e-3


class IntegratorKind(Enum):
    PATH = "pathtracer"
    WHITTED = "whitted"


@dataclass(frozen=True)
class IntegratorConfig:
    """Integrator section of the scene document.

    Attributes:
        kind: Path tracing or Whitted ray tracing.
        min_depth: Bounces before Russian roulette may end a path.
        max_depth: Maximum number of bounces.
    """

    kind: IntegratorKind = IntegratorKind.PATH
    min_depth: int = 3
    max_depth: int = 8

    def __post_init__(self) -> None:
        if self.min_depth < 0 or self.max_depth < 0:
            raise ConfigurationError(
                f"depths must be non-negative (min_depth={self.min_depth}, max_depth={self.max_depth})",
                "integrator",
            )
        if self.min_depth > self.max_depth:
            logger.warning(
                "min_depth %d exceeds max_depth %d; Russian roulette never applies",
                self.min_depth,
                self.max_depth,
            )


@ti.data_oriented
class _CountingIntegrator:
    """Anomaly bookkeeping shared by both integrators."""

    def __init__(self, scene, materials, config: IntegratorConfig) -> None:
        self.scene = scene
        self.materials = materials
        self.config = config
        self.min_depth = config.min_depth
        self.max_depth = config.max_depth
        self.anomalies = ti.field(dtype=ti.i32, shape=())
        self.zero_pdf = ti.field(dtype=ti.i32, shape=())

    def reset_counters(self) -> None:
        self.anomalies[None] = 0
        self.zero_pdf[None] = 0

    def counters(self) -> tuple[int, int]:
        """(anomalies, zero_pdf) counted since the last reset."""
        return int(self.anomalies[None]), int(self.zero_pdf[None])

    @ti.func
    def _direct_light(self, light_sample, mat: ti.i32, point: vec3, normal: vec3, shading_normal: vec3, wo: vec3, uv):
        """f * L * |cos| / pdf for one light sample, or zero when it is shadowed."""
        contribution = vec3(0.0, 0.0, 0.0)
        if light_sample.pdf > 0.0:
            wi = light_sample.direction
            f = self.materials.evaluate(mat, wo, wi, shading_normal, uv)
            cos_theta = ti.abs(tm.dot(wi, shading_normal))
            if cos_theta > 0.0 and not is_black(f):
                shadow_origin = offset_ray_origin(point, normal, wi)
                shadow_max = light_sample.distance * (1.0 - SHADOW_EPSILON)
                if self.scene.occluded(shadow_origin, wi, shadow_max) == 0:
                    contribution = f * light_sample.radiance * cos_theta / light_sample.pdf
        return contribution


@ti.data_oriented
class PathIntegrator(_CountingIntegrator):
    """Unidirectional path tracer with next-event estimation and MIS."""

    @ti.func
    def trace(self, origin: vec3, direction: vec3, state: ti.u32):
        """Estimate radiance arriving at origin from direction.

        Args:
            origin: World-space ray origin.
            direction: Unit world-space direction.
            state: RNG state of this (pixel, sample) stream.

        Returns:
            A tuple (radiance, new_state).
        """
        radiance = vec3(0.0, 0.0, 0.0)
        throughput = vec3(1.0, 1.0, 1.0)
        ray_origin = origin
        ray_direction = direction
        rng = state
        depth = 0
        specular_bounce = 0
        prev_point = origin
        prev_pdf = 0.0
        active = 1

        while active == 1:
            hit = self.scene.intersect(ray_origin, ray_direction, T_MIN, T_MAX)
            if hit.hit == 0:
                active = 0
            else:
                wo = -ray_direction

                if hit.light >= 0:
                    emitted = self.scene.emitted(hit.light, hit.normal, wo)
                    weight = 1.0
                    if depth > 0 and specular_bounce == 0:
                        weight = power_heuristic(prev_pdf, self.scene.light_pdf(hit.light, prev_point, hit))
                    contribution = throughput * emitted * weight
                    if is_valid_radiance(contribution):
                        radiance += contribution
                    else:
                        self.anomalies[None] += 1
                        active = 0

                if depth >= self.max_depth:
                    active = 0

                if active == 1:
                    mat = hit.material
                    n = hit.shading_normal

                    if self.materials.is_specular(mat) == 0:
                        u_light, rng = rng_next3(rng)
                        ls = self.scene.sample_light(hit.point, u_light)
                        direct = self._direct_light(ls, mat, hit.point, hit.normal, n, wo, hit.uv)
                        if not is_black(direct):
                            weight = 1.0
                            if ls.is_delta == 0:
                                weight = power_heuristic(
                                    ls.pdf, self.materials.pdf(mat, wo, ls.direction, n, hit.uv)
                                )
                            contribution = throughput * direct * weight
                            if is_valid_radiance(contribution):
                                radiance += contribution
                            else:
                                self.anomalies[None] += 1
                                active = 0

                if active == 1:
                    u_bsdf, rng = rng_next3(rng)
                    bs = self.materials.sample(hit.material, wo, hit.shading_normal, hit.uv, u_bsdf)
                    if is_degenerate(bs):
                        self.zero_pdf[None] += 1
                        active = 0
                    elif bs.pdf <= 0.0 or is_black(bs.weight):
                        active = 0
                    else:
                        throughput *= bs.weight
                        specular_bounce = bs.specular
                        prev_pdf = bs.pdf
                        prev_point = hit.point
                        ray_origin = offset_ray_origin(hit.point, hit.normal, bs.direction)
                        ray_direction = bs.direction
                        depth += 1

                        if depth >= self.min_depth:
                            q = ti.min(1.0, max_component(throughput))
                            u_rr, rng = rng_next(rng)
                            if q <= 0.0 or u_rr >= q:
                                active = 0
                            else:
                                throughput /= q

                        if active == 1 and is_valid_radiance(throughput) == 0:
                            self.anomalies[None] += 1
                            active = 0

        return radiance, rng


@ti.data_oriented
class WhittedIntegrator(_CountingIntegrator):
    """Direct lighting plus recursion through specular materials."""

    @ti.func
    def trace(self, origin: vec3, direction: vec3, state: ti.u32):
        radiance = vec3(0.0, 0.0, 0.0)
        throughput = vec3(1.0, 1.0, 1.0)
        ray_origin = origin
        ray_direction = direction
        rng = state
        depth = 0
        active = 1

        while active == 1:
            hit = self.scene.intersect(ray_origin, ray_direction, T_MIN, T_MAX)
            if hit.hit == 0:
                active = 0
            else:
                wo = -ray_direction
                if hit.light >= 0:
                    radiance += throughput * self.scene.emitted(hit.light, hit.normal, wo)

                mat = hit.material
                if self.materials.is_specular(mat) == 1:
                    if depth >= self.max_depth:
                        active = 0
                    else:
                        u_bsdf, rng = rng_next3(rng)
                        bs = self.materials.sample(mat, wo, hit.shading_normal, hit.uv, u_bsdf)
                        if is_degenerate(bs):
                            self.zero_pdf[None] += 1
                            active = 0
                        elif bs.pdf <= 0.0 or is_black(bs.weight):
                            active = 0
                        else:
                            throughput *= bs.weight
                            ray_origin = offset_ray_origin(hit.point, hit.normal, bs.direction)
                            ray_direction = bs.direction
                            depth += 1
                else:
                    for light in range(self.scene.light_count):
                        u_light, rng = rng_next2(rng)
                        ls = self.scene.sample_light_point(light, hit.point, u_light)
                        radiance += throughput * self._direct_light(
                            ls, mat, hit.point, hit.normal, hit.shading_normal, wo, hit.uv
                        )
                    active = 0

        if is_valid_radiance(radiance) == 0:
            self.anomalies[None] += 1
            radiance = vec3(0.0, 0.0, 0.0)
        return radiance, rng


def make_integrator(config: IntegratorConfig, scene, materials):
    """Build the integrator selected by the scene document."""
    if config.kind == IntegratorKind.WHITTED:
        integrator = WhittedIntegrator(scene, materials, config)
    else:
        integrator = PathIntegrator(scene, materials, config)
    logger.info(
        "integrator: %s (min_depth=%d, max_depth=%d)", config.kind.value, config.min_depth, config.max_depth
    )
    return integrator
