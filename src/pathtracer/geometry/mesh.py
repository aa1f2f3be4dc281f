"""Indexed triangle meshes with BVH-accelerated intersection.

MeshData is the host-side buffer contract for externally loaded meshes.
MeshBuffers packs every mesh of a scene into shared Taichi fields (vertex,
triangle and BVH node arrays with per-mesh offsets) and intersects one mesh
at a time using stackless skip-link traversal.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import taichi as ti
import taichi.math as tm

from pathtracer.errors import ResourceError
from pathtracer.geometry.bvh import FlatBVH, build_bvh
from pathtracer.geometry.hit import LocalHit

logger = logging.getLogger(__name__)

vec2 = tm.vec2
vec3 = tm.vec3

# Triangles whose |det| falls below this are parallel to the ray
DETERMINANT_EPSILON = 1e-12


@dataclass
class MeshData:
    """Vertex and index buffers of one triangle mesh.

    Attributes:
        vertices: Positions, shape (N, 3).
        indices: Triangle vertex indices, shape (M, 3).
        normals: Optional per-vertex normals, shape (N, 3).
        uvs: Optional per-vertex texture coordinates, shape (N, 2).
        name: Label used in log and error messages.
    """

    vertices: np.ndarray
    indices: np.ndarray
    normals: np.ndarray | None = None
    uvs: np.ndarray | None = None
    name: str = "mesh"
    bvh: FlatBVH = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=np.float32)
        self.indices = np.asarray(self.indices, dtype=np.int64)
        if self.vertices.ndim != 2 or self.vertices.shape[1] != 3 or len(self.vertices) == 0:
            raise ResourceError(f"mesh '{self.name}' vertices must have shape (N, 3), got {self.vertices.shape}")
        if self.indices.ndim != 2 or self.indices.shape[1] != 3 or len(self.indices) == 0:
            raise ResourceError(f"mesh '{self.name}' indices must have shape (M, 3), got {self.indices.shape}")
        if self.indices.min() < 0 or self.indices.max() >= len(self.vertices):
            raise ResourceError(f"mesh '{self.name}' references vertices outside [0, {len(self.vertices)})")
        if not np.all(np.isfinite(self.vertices)):
            raise ResourceError(f"mesh '{self.name}' contains non-finite vertex positions")
        if self.normals is not None:
            self.normals = np.asarray(self.normals, dtype=np.float32)
            if self.normals.shape != self.vertices.shape:
                raise ResourceError(f"mesh '{self.name}' normals must match vertices, got {self.normals.shape}")
        if self.uvs is not None:
            self.uvs = np.asarray(self.uvs, dtype=np.float32)
            if self.uvs.shape != (len(self.vertices), 2):
                raise ResourceError(f"mesh '{self.name}' uvs must have shape (N, 2), got {self.uvs.shape}")
        self.bvh = build_bvh(self.vertices, self.indices)

    @property
    def triangle_count(self) -> int:
        return len(self.indices)

    def surface_area(self) -> float:
        tris = self.vertices[self.indices].astype(np.float64)
        cross = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
        return float(0.5 * np.linalg.norm(cross, axis=1).sum())


@ti.func
def intersect_triangle(origin: vec3, direction: vec3, v0: vec3, v1: vec3, v2: vec3, t_min: ti.f32, t_max: ti.f32):
    """Moller-Trumbore ray/triangle test.

    Returns:
        A tuple (hit, t, b1, b2) with barycentrics b1, b2 of v1 and v2.
    """
    e1 = v1 - v0
    e2 = v2 - v0
    p = tm.cross(direction, e2)
    det = tm.dot(e1, p)

    did_hit = 0
    hit_t = 0.0
    b1 = 0.0
    b2 = 0.0
    if ti.abs(det) > DETERMINANT_EPSILON:
        inv_det = 1.0 / det
        s = origin - v0
        u = tm.dot(s, p) * inv_det
        if u >= 0.0 and u <= 1.0:
            q = tm.cross(s, e1)
            v = tm.dot(direction, q) * inv_det
            if v >= 0.0 and u + v <= 1.0:
                t = tm.dot(e2, q) * inv_det
                if t > t_min and t < t_max:
                    did_hit = 1
                    hit_t = t
                    b1 = u
                    b2 = v
    return did_hit, hit_t, b1, b2


@ti.func
def hit_aabb(bbox_min: vec3, bbox_max: vec3, origin: vec3, inv_dir: vec3, t_min: ti.f32, t_max: ti.f32) -> ti.i32:
    """Slab test against an axis-aligned box."""
    t0 = (bbox_min - origin) * inv_dir
    t1 = (bbox_max - origin) * inv_dir
    t_near = ti.min(t0, t1)
    t_far = ti.max(t0, t1)
    enter = ti.max(t_min, ti.max(t_near.x, ti.max(t_near.y, t_near.z)))
    leave = ti.min(t_max, ti.min(t_far.x, ti.min(t_far.y, t_far.z)))
    return enter <= leave


@ti.data_oriented
class MeshBuffers:
    """All meshes of a scene packed into shared Taichi fields.

    Triangle, vertex and node indices stored in the fields are absolute, so
    a mesh is addressed only through its node range.
    """

    def __init__(self, meshes: list[MeshData]) -> None:
        self.mesh_count = len(meshes)
        vertex_count = sum(len(m.vertices) for m in meshes)
        triangle_count = sum(m.triangle_count for m in meshes)
        node_count = sum(m.bvh.node_count for m in meshes)

        # Taichi fields cannot be empty
        self.vertices = ti.Vector.field(3, dtype=ti.f32, shape=max(1, vertex_count))
        self.normals = ti.Vector.field(3, dtype=ti.f32, shape=max(1, vertex_count))
        self.uvs = ti.Vector.field(2, dtype=ti.f32, shape=max(1, vertex_count))
        self.triangles = ti.Vector.field(3, dtype=ti.i32, shape=max(1, triangle_count))
        self.node_min = ti.Vector.field(3, dtype=ti.f32, shape=max(1, node_count))
        self.node_max = ti.Vector.field(3, dtype=ti.f32, shape=max(1, node_count))
        self.node_skip = ti.field(dtype=ti.i32, shape=max(1, node_count))
        self.node_tri_start = ti.field(dtype=ti.i32, shape=max(1, node_count))
        self.node_tri_count = ti.field(dtype=ti.i32, shape=max(1, node_count))
        self.mesh_node_start = ti.field(dtype=ti.i32, shape=max(1, self.mesh_count))
        self.mesh_node_end = ti.field(dtype=ti.i32, shape=max(1, self.mesh_count))
        self.mesh_has_normals = ti.field(dtype=ti.i32, shape=max(1, self.mesh_count))
        self.mesh_has_uvs = ti.field(dtype=ti.i32, shape=max(1, self.mesh_count))

        if self.mesh_count > 0:
            self._upload(meshes, vertex_count, triangle_count, node_count)

    def _upload(self, meshes: list[MeshData], vertex_count: int, triangle_count: int, node_count: int) -> None:
        vertices = np.zeros((vertex_count, 3), dtype=np.float32)
        normals = np.zeros((vertex_count, 3), dtype=np.float32)
        uvs = np.zeros((vertex_count, 2), dtype=np.float32)
        triangles = np.zeros((triangle_count, 3), dtype=np.int32)
        node_min = np.zeros((node_count, 3), dtype=np.float32)
        node_max = np.zeros((node_count, 3), dtype=np.float32)
        node_skip = np.zeros(node_count, dtype=np.int32)
        node_tri_start = np.zeros(node_count, dtype=np.int32)
        node_tri_count = np.zeros(node_count, dtype=np.int32)
        node_start = np.zeros(self.mesh_count, dtype=np.int32)
        node_end = np.zeros(self.mesh_count, dtype=np.int32)
        has_normals = np.zeros(self.mesh_count, dtype=np.int32)
        has_uvs = np.zeros(self.mesh_count, dtype=np.int32)

        v_off = t_off = n_off = 0
        for i, mesh in enumerate(meshes):
            nv, nt, nn = len(mesh.vertices), mesh.triangle_count, mesh.bvh.node_count
            vertices[v_off : v_off + nv] = mesh.vertices
            if mesh.normals is not None:
                normals[v_off : v_off + nv] = mesh.normals
                has_normals[i] = 1
            if mesh.uvs is not None:
                uvs[v_off : v_off + nv] = mesh.uvs
                has_uvs[i] = 1
            triangles[t_off : t_off + nt] = mesh.indices[mesh.bvh.triangle_order] + v_off
            node_min[n_off : n_off + nn] = mesh.bvh.bbox_min
            node_max[n_off : n_off + nn] = mesh.bvh.bbox_max
            node_skip[n_off : n_off + nn] = mesh.bvh.skip + n_off
            node_tri_start[n_off : n_off + nn] = mesh.bvh.tri_start + t_off
            node_tri_count[n_off : n_off + nn] = mesh.bvh.tri_count
            node_start[i] = n_off
            node_end[i] = n_off + nn
            v_off, t_off, n_off = v_off + nv, t_off + nt, n_off + nn

        self.vertices.from_numpy(vertices)
        self.normals.from_numpy(normals)
        self.uvs.from_numpy(uvs)
        self.triangles.from_numpy(triangles)
        self.node_min.from_numpy(node_min)
        self.node_max.from_numpy(node_max)
        self.node_skip.from_numpy(node_skip)
        self.node_tri_start.from_numpy(node_tri_start)
        self.node_tri_count.from_numpy(node_tri_count)
        self.mesh_node_start.from_numpy(node_start)
        self.mesh_node_end.from_numpy(node_end)
        self.mesh_has_normals.from_numpy(has_normals)
        self.mesh_has_uvs.from_numpy(has_uvs)
        logger.info(
            "uploaded %d mesh(es): %d triangles, %d BVH nodes", self.mesh_count, triangle_count, node_count
        )

    @ti.func
    def intersect(self, mesh: ti.i32, origin: vec3, direction: vec3, t_min: ti.f32, t_max: ti.f32) -> LocalHit:
        """Nearest hit between a ray and one mesh, in the mesh's space."""
        inv_dir = vec3(0.0, 0.0, 0.0)
        for a in ti.static(range(3)):
            d = direction[a]
            if ti.abs(d) < 1e-20:
                d = 1e-20
            inv_dir[a] = 1.0 / d

        closest = t_max
        best_tri = -1
        best_b1 = 0.0
        best_b2 = 0.0

        node = self.mesh_node_start[mesh]
        end = self.mesh_node_end[mesh]
        while node < end:
            if hit_aabb(self.node_min[node], self.node_max[node], origin, inv_dir, t_min, closest):
                count = self.node_tri_count[node]
                if count > 0:
                    start = self.node_tri_start[node]
                    for k in range(start, start + count):
                        tri = self.triangles[k]
                        hit, t, b1, b2 = intersect_triangle(
                            origin,
                            direction,
                            self.vertices[tri[0]],
                            self.vertices[tri[1]],
                            self.vertices[tri[2]],
                            t_min,
                            closest,
                        )
                        if hit == 1:
                            closest = t
                            best_tri = k
                            best_b1 = b1
                            best_b2 = b2
                    node = self.node_skip[node]
                else:
                    node = node + 1
            else:
                node = self.node_skip[node]

        did_hit = 0
        point = vec3(0.0, 0.0, 0.0)
        normal = vec3(0.0, 0.0, 1.0)
        shading_normal = vec3(0.0, 0.0, 1.0)
        uv = vec2(0.0, 0.0)
        front_face = 0
        if best_tri >= 0:
            did_hit = 1
            tri = self.triangles[best_tri]
            v0 = self.vertices[tri[0]]
            v1 = self.vertices[tri[1]]
            v2 = self.vertices[tri[2]]
            b0 = 1.0 - best_b1 - best_b2
            point = b0 * v0 + best_b1 * v1 + best_b2 * v2
            normal = tm.normalize(tm.cross(v1 - v0, v2 - v0))
            shading_normal = normal
            if self.mesh_has_normals[mesh] == 1:
                interpolated = (
                    b0 * self.normals[tri[0]] + best_b1 * self.normals[tri[1]] + best_b2 * self.normals[tri[2]]
                )
                if tm.dot(interpolated, interpolated) > 0.0:
                    shading_normal = tm.normalize(interpolated)
                    if tm.dot(shading_normal, normal) < 0.0:
                        shading_normal = -shading_normal
            uv = vec2(best_b1, best_b2)
            if self.mesh_has_uvs[mesh] == 1:
                uv = b0 * self.uvs[tri[0]] + best_b1 * self.uvs[tri[1]] + best_b2 * self.uvs[tri[2]]
            if tm.dot(direction, normal) < 0.0:
                front_face = 1

        return LocalHit(
            hit=did_hit,
            t=closest,
            point=point,
            normal=normal,
            shading_normal=shading_normal,
            uv=uv,
            front_face=front_face,
        )
