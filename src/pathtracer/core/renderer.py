"""Rendering driver: sample passes, frames and progress reporting.

One pass traces a single path through every pixel in a Taichi parallel
loop and splats it into the film. A frame runs ``samples`` passes and then
finalizes the film into an image.

Example:
    >>> scene = load_scene(document, resources)
    >>> renderer = Renderer(scene, RenderSettings(seed=3))
    >>> for done, target in renderer.render_progressive(frame=0, batch_size=8):
    ...     print(f"{done}/{target} samples")
    >>> image = renderer.film.finalize()
"""

import logging
import time
from collections.abc import Callable, Generator
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import taichi as ti

from pathtracer.camera.perspective import PerspectiveCamera
from pathtracer.config import RenderSettings
from pathtracer.core.integrator import make_integrator
from pathtracer.core.sampling import rng_next2, seed_rng
from pathtracer.film.film import Film
from pathtracer.film.filters import ReconstructionFilter

logger = logging.getLogger(__name__)

# Callback receives (samples_done, samples_target)
ProgressCallback = Callable[[int, int], None]


@dataclass
class RenderStats:
    """Summary of one rendered frame.

    Attributes:
        frame: Frame index.
        samples: Samples per pixel rendered.
        seconds: Wall time spent in sample passes.
        anomalies: Paths ended by NaN, infinite or negative radiance.
        zero_pdf: Paths ended by a degenerate BSDF sample (non-finite pdf,
            or zero pdf with nonzero weight).
    """

    frame: int
    samples: int
    seconds: float
    anomalies: int = 0
    zero_pdf: int = 0


@ti.data_oriented
class Renderer:
    """Renders the frames of a loaded scene.

    Attributes:
        scene: The loaded Scene (document, materials, graph).
        settings: Execution settings.
        camera: Primary ray generator.
        film: Accumulation buffers, cleared at the start of each frame.
        integrator: Path or Whitted integrator from the document.
        last_stats: Statistics of the most recently finished frame.
    """

    def __init__(self, scene, settings: RenderSettings | None = None) -> None:
        self.scene = scene
        self.settings = settings or RenderSettings()
        film_spec = scene.document.film
        self.film_spec = film_spec
        self.width = film_spec.width
        self.height = film_spec.height
        self.camera = PerspectiveCamera(scene.document.camera, self.width, self.height)
        self.film = Film(self.width, self.height, ReconstructionFilter(film_spec.filter))
        self.integrator = make_integrator(scene.document.integrator, scene.graph, scene.materials)
        self.last_stats: RenderStats | None = None

    @ti.kernel
    def _render_pass(self, sample_index: ti.i32, frame: ti.i32, seed: ti.i32):
        for px, py in ti.ndrange(self.width, self.height):
            state = seed_rng(py * self.width + px, sample_index, frame, seed)
            jitter, state = rng_next2(state)
            lens, state = rng_next2(state)
            origin, direction = self.camera.generate_ray(px + jitter.x, py + jitter.y, lens)
            radiance, state = self.integrator.trace(origin, direction, state)
            self.film.add_sample(px, py, jitter - 0.5, radiance)

    def render_progressive(
        self, frame: int = 0, batch_size: int | None = None
    ) -> Generator[tuple[int, int], None, None]:
        """Render one frame, yielding progress after each batch of passes.

        The film is cleared and keyframed scene content and the camera are
        moved to the frame's scene time first; after the generator is
        exhausted the frame can be read with ``film.finalize()`` and
        ``last_stats`` is set.

        Args:
            frame: Frame index, mixed into every random stream.
            batch_size: Passes per yield; defaults to settings.batch_size.

        Yields:
            Tuple of (samples_done, samples_target).
        """
        batch_size = batch_size or self.settings.batch_size
        target = self.film_spec.samples
        time_s = self.film_spec.frame_time(frame)
        self.scene.set_time(time_s)
        self.camera.set_time(time_s)
        self.film.clear()
        self.integrator.reset_counters()
        logger.info(
            "rendering frame %d (t=%.3fs): %dx%d, %d spp",
            frame,
            time_s,
            self.width,
            self.height,
            target,
        )

        start = time.perf_counter()
        done = 0
        while done < target:
            batch = min(batch_size, target - done)
            for sample_index in range(done, done + batch):
                self._render_pass(sample_index, frame, self.settings.seed)
            done += batch
            ti.sync()
            logger.debug("frame %d: %d/%d samples", frame, done, target)
            yield done, target

        anomalies, zero_pdf = self.integrator.counters()
        self.last_stats = RenderStats(
            frame=frame,
            samples=target,
            seconds=time.perf_counter() - start,
            anomalies=anomalies,
            zero_pdf=zero_pdf,
        )
        if anomalies:
            logger.warning("frame %d: %d path(s) ended by invalid radiance", frame, anomalies)
        if zero_pdf:
            logger.debug("frame %d: %d path(s) ended by degenerate BSDF samples", frame, zero_pdf)
        logger.info("frame %d finished in %.2fs", frame, self.last_stats.seconds)

    def render_frame(self, frame: int = 0, callback: ProgressCallback | None = None) -> npt.NDArray[np.float32]:
        """Render one frame and return the finalized (height, width, 3) image."""
        for done, target in self.render_progressive(frame):
            if callback is not None:
                callback(done, target)
        return self.film.finalize()

    def render(self, callback: ProgressCallback | None = None) -> dict[int, npt.NDArray[np.float32]]:
        """Render every frame in the film's [start_frame, end_frame] range."""
        return {frame: self.render_frame(frame, callback) for frame in self.film_spec.frame_range}

    def __repr__(self) -> str:
        return f"Renderer(width={self.width}, height={self.height}, samples={self.film_spec.samples})"
