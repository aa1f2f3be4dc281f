"""Flattened scene graph: instances and lights packed into Taichi fields.

Every leaf of the scene tree becomes an instance holding its geometry kind
and parameters, material index, optional light index and the matrices of
its world transform. Rays are intersected with each instance in the
instance's own space, using the inverse world transform, and the nearest
hit is mapped back to world space.

Example:
    >>> scene = load_scene(document, resources)
    >>> info = scene.graph.cast_ray((0, 1, 5), (0, 0, -1))
    >>> info.hit, info.instance
"""

import logging
from dataclasses import dataclass

import numpy as np
import taichi as ti
import taichi.math as tm

from pathtracer.core.ray import T_MAX, T_MIN
from pathtracer.core.spectrum import is_black
from pathtracer.core.transform import Transform, transform_point, transform_vector
from pathtracer.geometry.disk import intersect_disk
from pathtracer.geometry.hit import GeometryKind, LocalHit, miss
from pathtracer.geometry.mesh import MeshBuffers
from pathtracer.geometry.plane import intersect_plane
from pathtracer.geometry.sphere import intersect_sphere
from pathtracer.scene.lights import (
    LIGHT_AREA,
    LIGHT_POINT,
    Light,
    LightSample,
    no_light_sample,
    sample_shape,
    selection_distribution,
)

logger = logging.getLogger(__name__)

vec2 = tm.vec2
vec3 = tm.vec3


@dataclass
class Instance:
    """Host-side description of one placed leaf object.

    Attributes:
        name: Object name from the scene document.
        kind: Geometry kind.
        world: Object-to-world transform.
        material: Index into the material table.
        radius: Sphere or disk radius.
        inner_radius: Disk inner radius.
        mesh: Index into the mesh buffers, -1 for analytic shapes.
        light: Index of the area light this instance carries, or -1.
    """

    name: str
    kind: GeometryKind
    world: Transform
    material: int
    radius: float = 0.0
    inner_radius: float = 0.0
    mesh: int = -1
    light: int = -1


@ti.dataclass
class SurfaceHit:
    """World-space intersection record.

    Attributes:
        hit: 1 on a hit.
        t: Distance along the (unit) world ray.
        point: World-space hit point.
        normal: Unit geometric normal on the shape's outward side.
        shading_normal: Unit shading normal, same side as normal.
        uv: Surface coordinates.
        front_face: 1 if the ray arrived against the outward normal.
        instance: Index of the hit instance.
        material: Material index of the hit instance.
        light: Area light index of the hit instance, or -1.
        area_jacobian: World area per unit local area at the hit.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    shading_normal: vec3
    uv: vec2
    front_face: ti.i32
    instance: ti.i32
    material: ti.i32
    light: ti.i32
    area_jacobian: ti.f32


@dataclass
class HitInfo:
    """Host copy of a SurfaceHit, returned by SceneGraph.cast_ray."""

    hit: bool
    t: float
    point: np.ndarray
    normal: np.ndarray
    shading_normal: np.ndarray
    uv: np.ndarray
    front_face: bool
    instance: str | None
    material: int
    light: int


@ti.data_oriented
class SceneGraph:
    """Read-only scene data and the geometric queries of the integrators.

    Args:
        instances: Placed leaf objects; the list order is the instance id.
        lights: Emitters; area lights reference their instance.
        meshes: Packed buffers of every mesh the instances reference.
    """

    def __init__(self, instances: list[Instance], lights: list[Light], meshes: MeshBuffers) -> None:
        self.instances = list(instances)
        self.lights = list(lights)
        self.meshes = meshes
        self.instance_count = len(self.instances)
        self.light_count = len(self.lights)
        n = max(1, self.instance_count)
        m = max(1, self.light_count)

        self.kind = ti.field(dtype=ti.i32, shape=n)
        self.params = ti.Vector.field(2, dtype=ti.f32, shape=n)
        self.mesh = ti.field(dtype=ti.i32, shape=n)
        self.material = ti.field(dtype=ti.i32, shape=n)
        self.instance_light = ti.field(dtype=ti.i32, shape=n)
        self.to_world = ti.Matrix.field(4, 4, dtype=ti.f32, shape=n)
        self.to_local = ti.Matrix.field(4, 4, dtype=ti.f32, shape=n)
        self.normal_matrix = ti.Matrix.field(3, 3, dtype=ti.f32, shape=n)
        self.det_abs = ti.field(dtype=ti.f32, shape=n)

        self.light_kind = ti.field(dtype=ti.i32, shape=m)
        self.light_instance = ti.field(dtype=ti.i32, shape=m)
        self.light_radiance = ti.Vector.field(3, dtype=ti.f32, shape=m)
        self.light_position = ti.Vector.field(3, dtype=ti.f32, shape=m)
        self.light_two_sided = ti.field(dtype=ti.i32, shape=m)
        self.light_area = ti.field(dtype=ti.f32, shape=m)
        self.light_cdf = ti.field(dtype=ti.f32, shape=m)
        self.light_pmf = ti.field(dtype=ti.f32, shape=m)

        self._cast_hit = SurfaceHit.field(shape=())
        self._upload()
        logger.info("scene graph: %d instance(s), %d light(s)", self.instance_count, self.light_count)

    def refresh(self) -> None:
        """Re-upload instance transforms and light data after they were edited on the host."""
        self._upload()

    def _upload(self) -> None:
        n = max(1, self.instance_count)
        kind = np.zeros(n, dtype=np.int32)
        params = np.zeros((n, 2), dtype=np.float32)
        mesh = np.full(n, -1, dtype=np.int32)
        material = np.zeros(n, dtype=np.int32)
        instance_light = np.full(n, -1, dtype=np.int32)
        to_world = np.tile(np.eye(4, dtype=np.float32), (n, 1, 1))
        to_local = np.tile(np.eye(4, dtype=np.float32), (n, 1, 1))
        normal_matrix = np.tile(np.eye(3, dtype=np.float32), (n, 1, 1))
        det_abs = np.ones(n, dtype=np.float32)
        for i, inst in enumerate(self.instances):
            kind[i] = int(inst.kind)
            params[i] = (inst.radius, inst.inner_radius)
            mesh[i] = inst.mesh
            material[i] = inst.material
            instance_light[i] = inst.light
            to_world[i] = inst.world.matrix
            to_local[i] = inst.world.inverse_matrix
            normal_matrix[i] = inst.world.normal_matrix
            det_abs[i] = abs(inst.world.determinant)

        m = max(1, self.light_count)
        light_kind = np.zeros(m, dtype=np.int32)
        light_instance = np.full(m, -1, dtype=np.int32)
        radiance = np.zeros((m, 3), dtype=np.float32)
        position = np.zeros((m, 3), dtype=np.float32)
        two_sided = np.zeros(m, dtype=np.int32)
        area = np.zeros(m, dtype=np.float32)
        cdf = np.ones(m, dtype=np.float32)
        pmf = np.zeros(m, dtype=np.float32)
        for i, light in enumerate(self.lights):
            light_kind[i] = light.kind
            light_instance[i] = light.instance
            radiance[i] = light.radiance
            position[i] = light.position
            two_sided[i] = int(light.two_sided)
            area[i] = light.local_area
        if self.lights:
            cdf[:], pmf[:] = selection_distribution(self.lights)

        self.kind.from_numpy(kind)
        self.params.from_numpy(params)
        self.mesh.from_numpy(mesh)
        self.material.from_numpy(material)
        self.instance_light.from_numpy(instance_light)
        self.to_world.from_numpy(to_world)
        self.to_local.from_numpy(to_local)
        self.normal_matrix.from_numpy(normal_matrix)
        self.det_abs.from_numpy(det_abs)
        self.light_kind.from_numpy(light_kind)
        self.light_instance.from_numpy(light_instance)
        self.light_radiance.from_numpy(radiance)
        self.light_position.from_numpy(position)
        self.light_two_sided.from_numpy(two_sided)
        self.light_area.from_numpy(area)
        self.light_cdf.from_numpy(cdf)
        self.light_pmf.from_numpy(pmf)

        for light, p in zip(self.lights, pmf):
            logger.debug("light '%s' selected with probability %.4f", light.name, p)

    def instance_index(self, name: str) -> int:
        for i, inst in enumerate(self.instances):
            if inst.name == name:
                return i
        raise KeyError(name)

    # -------------------------------------------------------------------------
    # Intersection
    # -------------------------------------------------------------------------

    @ti.func
    def _intersect_local(self, i: ti.i32, origin: vec3, direction: vec3, t_min: ti.f32, t_max: ti.f32) -> LocalHit:
        kind = self.kind[i]
        params = self.params[i]
        h = miss()
        if kind == int(GeometryKind.PLANE):
            h = intersect_plane(origin, direction, t_min, t_max)
        elif kind == int(GeometryKind.SPHERE):
            h = intersect_sphere(origin, direction, params.x, t_min, t_max)
        elif kind == int(GeometryKind.DISK):
            h = intersect_disk(origin, direction, params.x, params.y, t_min, t_max)
        elif kind == int(GeometryKind.MESH):
            h = self.meshes.intersect(self.mesh[i], origin, direction, t_min, t_max)
        return h

    @ti.func
    def intersect(self, origin: vec3, direction: vec3, t_min: ti.f32, t_max: ti.f32) -> SurfaceHit:
        """Nearest hit along a world-space ray with t in (t_min, t_max)."""
        closest = t_max
        best = miss()
        best_instance = -1
        for i in range(self.instance_count):
            local_origin = transform_point(self.to_local[i], origin)
            local_direction = transform_vector(self.to_local[i], direction)
            h = self._intersect_local(i, local_origin, local_direction, t_min, closest)
            if h.hit == 1:
                closest = h.t
                best = h
                best_instance = i

        result = SurfaceHit(
            hit=0,
            t=0.0,
            point=vec3(0.0, 0.0, 0.0),
            normal=vec3(0.0, 0.0, 1.0),
            shading_normal=vec3(0.0, 0.0, 1.0),
            uv=vec2(0.0, 0.0),
            front_face=0,
            instance=-1,
            material=-1,
            light=-1,
            area_jacobian=1.0,
        )
        if best_instance >= 0:
            n_mat = self.normal_matrix[best_instance]
            scaled_normal = n_mat @ best.normal
            result.hit = 1
            result.t = best.t
            result.point = transform_point(self.to_world[best_instance], best.point)
            result.normal = tm.normalize(scaled_normal)
            result.shading_normal = tm.normalize(n_mat @ best.shading_normal)
            result.uv = best.uv
            result.front_face = best.front_face
            result.instance = best_instance
            result.material = self.material[best_instance]
            result.light = self.instance_light[best_instance]
            result.area_jacobian = self.det_abs[best_instance] * tm.length(scaled_normal)
        return result

    @ti.func
    def occluded(self, origin: vec3, direction: vec3, t_max: ti.f32) -> ti.i32:
        """1 if anything blocks the segment origin + t * direction, t < t_max."""
        return self.intersect(origin, direction, T_MIN, t_max).hit

    # -------------------------------------------------------------------------
    # Lights
    # -------------------------------------------------------------------------

    @ti.func
    def _select_light(self, u: ti.f32) -> ti.i32:
        chosen = self.light_count - 1
        found = 0
        for i in range(self.light_count):
            if found == 0 and u < self.light_cdf[i]:
                chosen = i
                found = 1
        return chosen

    @ti.func
    def emitted(self, light: ti.i32, normal: vec3, wo: vec3) -> vec3:
        """Radiance leaving an area light toward wo."""
        radiance = vec3(0.0, 0.0, 0.0)
        if light >= 0:
            if self.light_two_sided[light] == 1 or tm.dot(normal, wo) > 0.0:
                radiance = self.light_radiance[light]
        return radiance

    @ti.func
    def sample_light_point(self, light: ti.i32, point: vec3, u: vec2) -> LightSample:
        """Sample a point on one given light.

        The returned pdf does not include the light selection probability.
        """
        s = no_light_sample()
        s.light = light
        if self.light_kind[light] == LIGHT_POINT:
            to_light = self.light_position[light] - point
            dist2 = tm.dot(to_light, to_light)
            if dist2 > 0.0:
                dist = ti.sqrt(dist2)
                s.direction = to_light / dist
                s.distance = dist
                s.radiance = self.light_radiance[light] / dist2
                s.pdf = 1.0
                s.is_delta = 1
        elif self.light_kind[light] == LIGHT_AREA:
            inst = self.light_instance[light]
            local_point, local_normal = sample_shape(self.kind[inst], self.params[inst], u)
            light_point = transform_point(self.to_world[inst], local_point)
            scaled_normal = self.normal_matrix[inst] @ local_normal
            jacobian = self.det_abs[inst] * tm.length(scaled_normal)
            light_normal = tm.normalize(scaled_normal)
            to_light = light_point - point
            dist2 = tm.dot(to_light, to_light)
            if dist2 > 0.0:
                dist = ti.sqrt(dist2)
                wi = to_light / dist
                cos_light = ti.abs(tm.dot(light_normal, wi))
                area = self.light_area[light] * jacobian
                radiance = self.emitted(light, light_normal, -wi)
                if cos_light > 0.0 and area > 0.0 and not is_black(radiance):
                    s.direction = wi
                    s.distance = dist
                    s.radiance = radiance
                    s.pdf = dist2 / (cos_light * area)
        return s

    @ti.func
    def sample_light(self, point: vec3, u: vec3) -> LightSample:
        """Pick a light by power with u.z and sample a point on it with u.x and u.y.

        Returns:
            A LightSample whose pdf includes the selection probability; pdf
            is zero when the sample carries no radiance toward point (back
            side of a one-sided emitter, degenerate geometry, or an empty
            light list).
        """
        s = no_light_sample()
        if ti.static(self.light_count > 0):
            light = self._select_light(u.z)
            s = self.sample_light_point(light, point, vec2(u.x, u.y))
            s.pdf *= self.light_pmf[light]
        return s

    @ti.func
    def light_pdf(self, light: ti.i32, ref_point: vec3, hit: SurfaceHit) -> ti.f32:
        """Solid-angle density with which sample_light would produce hit from ref_point."""
        pdf = 0.0
        if light >= 0 and self.light_kind[light] == LIGHT_AREA:
            to_light = hit.point - ref_point
            dist2 = tm.dot(to_light, to_light)
            if dist2 > 0.0:
                wi = to_light / ti.sqrt(dist2)
                cos_light = ti.abs(tm.dot(hit.normal, wi))
                area = self.light_area[light] * hit.area_jacobian
                if cos_light > 0.0 and area > 0.0:
                    pdf = self.light_pmf[light] * dist2 / (cos_light * area)
        return pdf

    # -------------------------------------------------------------------------
    # Host helpers
    # -------------------------------------------------------------------------

    @ti.kernel
    def _cast(self, origin: vec3, direction: vec3, t_max: ti.f32):
        # Single-iteration outer loop keeps the instance loop serial
        for _ in range(1):
            self._cast_hit[None] = self.intersect(origin, tm.normalize(direction), T_MIN, t_max)

    def cast_ray(self, origin, direction, t_max: float = T_MAX) -> HitInfo:
        """Intersect one world-space ray from the host, for inspection and tests."""
        self._cast(vec3(*origin), vec3(*direction), t_max)
        h = self._cast_hit[None]
        hit = bool(h.hit)
        return HitInfo(
            hit=hit,
            t=float(h.t),
            point=h.point.to_numpy(),
            normal=h.normal.to_numpy(),
            shading_normal=h.shading_normal.to_numpy(),
            uv=h.uv.to_numpy(),
            front_face=bool(h.front_face),
            instance=self.instances[h.instance].name if hit else None,
            material=int(h.material),
            light=int(h.light),
        )
