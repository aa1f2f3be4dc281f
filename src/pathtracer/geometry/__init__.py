"""Geometry module for shape primitives and spatial acceleration.

Components:
    hit: Local-space hit record and geometry kinds
    plane: Infinite z = 0 plane
    sphere: Sphere at the origin with robust intersection and area sampling
    disk: Disk or annulus in the z = 0 plane with area sampling
    bvh: Median-split BVH flattened for stackless traversal
    mesh: Triangle mesh buffers and BVH-accelerated intersection
    specs: Validated geometry descriptions from the scene document

Every primitive is intersected in its own object space:
    hit = intersect_shape(local_origin, local_direction, ..., t_min, t_max)
"""

from .bvh import LEAF_SIZE, FlatBVH, build_bvh
from .hit import GeometryKind, LocalHit
from .mesh import MeshBuffers, MeshData
from .specs import DiskGeometry, GeometrySpec, MeshGeometry, PlaneGeometry, SphereGeometry

__all__ = [
    "GeometryKind",
    "LocalHit",
    "FlatBVH",
    "build_bvh",
    "LEAF_SIZE",
    "MeshData",
    "MeshBuffers",
    "PlaneGeometry",
    "SphereGeometry",
    "DiskGeometry",
    "MeshGeometry",
    "GeometrySpec",
]
