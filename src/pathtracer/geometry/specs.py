"""Validated geometry descriptions from the scene document."""

import math
from dataclasses import dataclass

from pathtracer.geometry.disk import disk_area
from pathtracer.geometry.hit import GeometryKind
from pathtracer.geometry.sphere import sphere_area


@dataclass(frozen=True)
class PlaneGeometry:
    """Infinite plane z = 0 in object space."""

    kind = GeometryKind.PLANE

    def area(self) -> float:
        return math.inf


@dataclass(frozen=True)
class SphereGeometry:
    radius: float
    kind = GeometryKind.SPHERE

    def area(self) -> float:
        return sphere_area(self.radius)


@dataclass(frozen=True)
class DiskGeometry:
    radius: float
    inner_radius: float = 0.0
    kind = GeometryKind.DISK

    def area(self) -> float:
        return disk_area(self.radius, self.inner_radius)


@dataclass(frozen=True)
class MeshGeometry:
    """Reference to a model inside an externally loaded mesh file."""

    file: str
    model: str
    kind = GeometryKind.MESH


GeometrySpec = PlaneGeometry | SphereGeometry | DiskGeometry | MeshGeometry

# Shapes that an area emitter can be sampled on
SAMPLEABLE_GEOMETRY = (SphereGeometry, DiskGeometry)
