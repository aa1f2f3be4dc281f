"""Perspective camera with optional thin-lens depth of field.

The camera sits at the origin of its own space, looks down -Z with +Y up,
and is placed in the world by a camera-to-world transform composed from the
scene document. Raster coordinates run from (0, 0) at the top-left corner of
the film to (width, height) at the bottom-right; a ray through the
continuous coordinate (x, y) passes through that point of the image plane.

The field of view applies to the shorter image axis.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from pathtracer.camera.perspective import CameraSpec, PerspectiveCamera
    >>> from pathtracer.core.transform import Transform
    >>> spec = CameraSpec(fov=60.0, transform=Transform.translate([0, 0, 5]))
    >>> camera = PerspectiveCamera(spec, width=64, height=48)
    >>> origin, direction = camera.primary_ray(32.0, 24.0)
"""

import logging
import math
from dataclasses import dataclass, field

import numpy as np
import taichi as ti
import taichi.math as tm

from pathtracer.core.sampling import sample_concentric_disk
from pathtracer.core.transform import AnimatedTransform, Transform, transform_point, transform_vector
from pathtracer.errors import ConfigurationError

logger = logging.getLogger(__name__)

vec2 = tm.vec2
vec3 = tm.vec3


@dataclass(frozen=True)
class CameraSpec:
    """Camera configuration from the scene document.

    Attributes:
        fov: Field of view in degrees across the shorter image axis.
        transform: Camera-to-world transform.
        aperture: Lens radius; 0 gives a pinhole camera.
        focal_distance: Distance to the plane in perfect focus.
        animation: Keyframed camera-to-world transform, or None when the
            camera is static.
    """

    fov: float
    transform: Transform = field(default_factory=Transform.identity)
    aperture: float = 0.0
    focal_distance: float = 1.0
    animation: AnimatedTransform | None = None

    def __post_init__(self) -> None:
        if not 0.0 < self.fov < 180.0:
            raise ConfigurationError(f"fov must be in (0, 180) degrees ({self.fov})", "camera")
        if self.aperture < 0.0:
            raise ConfigurationError(f"aperture must be non-negative ({self.aperture})", "camera")
        if self.aperture > 0.0 and self.focal_distance <= 0.0:
            raise ConfigurationError(f"focal_distance must be positive ({self.focal_distance})", "camera")


@ti.data_oriented
class PerspectiveCamera:
    """Generates primary rays for a film of the given resolution."""

    def __init__(self, spec: CameraSpec, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ConfigurationError(f"film size must be positive ({width}x{height})", "camera")
        self.spec = spec
        self.width = width
        self.height = height

        tan_half = math.tan(math.radians(spec.fov) * 0.5)
        aspect = width / height
        if width >= height:
            self.screen_x = tan_half * aspect
            self.screen_y = tan_half
        else:
            self.screen_x = tan_half
            self.screen_y = tan_half / aspect
        self.aperture = float(spec.aperture)
        self.focal_distance = float(spec.focal_distance)

        self.to_world = ti.Matrix.field(4, 4, dtype=ti.f32, shape=())
        self.to_world.from_numpy(spec.transform.matrix.astype(np.float32))

        self._primary_origin = ti.Vector.field(3, dtype=ti.f32, shape=())
        self._primary_direction = ti.Vector.field(3, dtype=ti.f32, shape=())

        position = spec.transform.apply_point([0.0, 0.0, 0.0])
        logger.debug(
            "camera at %s, fov %.2f, screen window %.4f x %.4f", position.round(4).tolist(), spec.fov,
            self.screen_x, self.screen_y,
        )

    def set_time(self, time: float) -> None:
        """Move a keyframed camera to its pose at ``time``; static cameras are left alone."""
        animation = self.spec.animation
        if animation is None or not animation.is_animated:
            return
        self.to_world.from_numpy(animation.at(time).matrix.astype(np.float32))

    @ti.func
    def generate_ray(self, film_x: ti.f32, film_y: ti.f32, lens_sample: vec2):
        """Map a raster position to a world-space ray.

        Args:
            film_x: Continuous raster x (pixel column plus sub-pixel offset).
            film_y: Continuous raster y, growing downward.
            lens_sample: Two uniform numbers for the lens position; unused
                for a pinhole camera.

        Returns:
            A tuple (origin, direction) with a unit-length direction.
        """
        ndc_x = (2.0 * film_x / self.width - 1.0) * self.screen_x
        ndc_y = (1.0 - 2.0 * film_y / self.height) * self.screen_y
        direction = tm.normalize(vec3(ndc_x, ndc_y, -1.0))
        origin = vec3(0.0, 0.0, 0.0)

        if ti.static(self.aperture > 0.0):
            lens = self.aperture * sample_concentric_disk(lens_sample)
            focus = direction * (self.focal_distance / -direction.z)
            origin = vec3(lens.x, lens.y, 0.0)
            direction = tm.normalize(focus - origin)

        m = self.to_world[None]
        return transform_point(m, origin), tm.normalize(transform_vector(m, direction))

    @ti.kernel
    def _primary(self, film_x: ti.f32, film_y: ti.f32, lens_x: ti.f32, lens_y: ti.f32):
        origin, direction = self.generate_ray(film_x, film_y, vec2(lens_x, lens_y))
        self._primary_origin[None] = origin
        self._primary_direction[None] = direction

    def primary_ray(self, film_x: float, film_y: float, lens: tuple[float, float] = (0.5, 0.5)):
        """Host-side ray generation for inspection and tests.

        Returns:
            A tuple (origin, direction) of numpy arrays.
        """
        self._primary(film_x, film_y, lens[0], lens[1])
        return self._primary_origin.to_numpy(), self._primary_direction.to_numpy()
