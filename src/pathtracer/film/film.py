"""Film: filter-weighted per-pixel accumulation of radiance samples.

Each sample contributes to every pixel whose center lies inside the filter
support around the sample position. Neighbouring samples therefore write to
shared pixels, so both sums are updated with atomic adds.

Pixels are indexed (x, y) with y growing downward; finalize() returns a
row-major (height, width, 3) image.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import taichi as ti
import taichi.math as tm

from pathtracer.errors import ConfigurationError
from pathtracer.film.filters import FilterSpec, ReconstructionFilter

logger = logging.getLogger(__name__)

vec2 = tm.vec2
vec3 = tm.vec3


@dataclass(frozen=True)
class FilmSpec:
    """Film section of the scene document.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        samples: Samples per pixel for each frame.
        start_frame: First frame index to render.
        end_frame: Last frame index to render (inclusive).
        frames: Total frame count of the animation the range belongs to.
        scene_time: Duration of that animation in seconds.
        filter: Reconstruction filter parameters.
    """

    width: int
    height: int
    samples: int
    start_frame: int = 0
    end_frame: int = 0
    frames: int = 1
    scene_time: float = 0.0
    filter: FilterSpec = field(default_factory=FilterSpec)

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ConfigurationError(f"film size must be positive ({self.width}x{self.height})", "film")
        if self.samples <= 0:
            raise ConfigurationError(f"samples must be positive ({self.samples})", "film")
        if self.start_frame < 0 or self.end_frame < self.start_frame:
            raise ConfigurationError(
                f"frame range must satisfy 0 <= start_frame <= end_frame ({self.start_frame}, {self.end_frame})",
                "film",
            )
        if self.frames <= self.end_frame:
            raise ConfigurationError(f"frames ({self.frames}) must exceed end_frame ({self.end_frame})", "film")

    @property
    def frame_range(self) -> range:
        return range(self.start_frame, self.end_frame + 1)

    def frame_time(self, frame: int) -> float:
        """Scene time at the start of a frame."""
        return self.scene_time * frame / self.frames


@ti.data_oriented
class Film:
    """Weighted radiance and weight accumulators for one image.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        filter: The reconstruction filter applied when splatting.
    """

    def __init__(self, width: int, height: int, reconstruction_filter: ReconstructionFilter | None = None) -> None:
        if width <= 0 or height <= 0:
            raise ConfigurationError(f"film size must be positive ({width}x{height})", "film")
        self.width = width
        self.height = height
        self.filter = reconstruction_filter or ReconstructionFilter()
        self.radiance_sum = ti.Vector.field(3, dtype=ti.f32, shape=(width, height))
        self.weight_sum = ti.field(dtype=ti.f32, shape=(width, height))

    @ti.kernel
    def clear(self):
        for i, j in self.weight_sum:
            self.radiance_sum[i, j] = vec3(0.0, 0.0, 0.0)
            self.weight_sum[i, j] = 0.0

    @ti.func
    def add_sample(self, pixel_x: ti.i32, pixel_y: ti.i32, offset: vec2, radiance: vec3):
        """Splat one sample taken at pixel center + offset.

        Args:
            pixel_x: Column of the pixel the sample was generated in.
            pixel_y: Row of the pixel the sample was generated in.
            offset: Sample position relative to that pixel's center.
            radiance: Estimated radiance carried by the sample.
        """
        for oy in range(-self.filter.reach_y, self.filter.reach_y + 1):
            qy = pixel_y + oy
            if qy >= 0 and qy < self.height:
                dy = offset.y - oy
                for ox in range(-self.filter.reach_x, self.filter.reach_x + 1):
                    qx = pixel_x + ox
                    if qx >= 0 and qx < self.width:
                        w = self.filter.evaluate(offset.x - ox, dy)
                        if w != 0.0:
                            self.radiance_sum[qx, qy] += w * radiance
                            self.weight_sum[qx, qy] += w

    @ti.kernel
    def _splat(self, film_x: ti.f32, film_y: ti.f32, r: ti.f32, g: ti.f32, b: ti.f32):
        px = ti.cast(ti.floor(film_x), ti.i32)
        py = ti.cast(ti.floor(film_y), ti.i32)
        offset = vec2(film_x - px - 0.5, film_y - py - 0.5)
        self.add_sample(px, py, offset, vec3(r, g, b))

    def splat(self, film_x: float, film_y: float, radiance) -> None:
        """Host-side splat at a continuous raster position."""
        r, g, b = (float(v) for v in radiance)
        self._splat(film_x, film_y, r, g, b)

    def finalize(self) -> np.ndarray:
        """Divide accumulated radiance by accumulated weight.

        Pixels that received no weight stay black.

        Returns:
            float32 array of shape (height, width, 3).
        """
        radiance = self.radiance_sum.to_numpy().transpose(1, 0, 2)
        weight = self.weight_sum.to_numpy().T[..., None]
        image = np.zeros_like(radiance, dtype=np.float32)
        np.divide(radiance, weight, out=image, where=weight != 0.0)
        empty = int(np.count_nonzero(weight == 0.0))
        if empty:
            logger.debug("%d pixel(s) received no filter weight", empty)
        return image
