"""Runtime settings for the renderer.

Scene content comes from the scene document; everything here concerns how a
render is executed: which Taichi backend, the base random seed, how many
passes run between progress updates, and logging verbosity.

Example:
    >>> from pathtracer.config import RenderSettings, configure_logging, init_taichi
    >>> settings = RenderSettings(arch="cpu", seed=7)
    >>> configure_logging(settings.log_level)
    >>> init_taichi(settings)
"""

import logging
from dataclasses import dataclass

import taichi as ti

from pathtracer.errors import ConfigurationError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_ARCHS = {
    "cpu": ti.cpu,
    "gpu": ti.gpu,
    "cuda": ti.cuda,
    "vulkan": ti.vulkan,
    "metal": ti.metal,
}


@dataclass(frozen=True)
class RenderSettings:
    """Execution settings shared by a render.

    Attributes:
        arch: Taichi backend name (cpu, gpu, cuda, vulkan or metal).
        seed: Base seed mixed into every per-pixel random stream.
        batch_size: Number of sample passes between progress callbacks.
        log_level: Level name or number passed to configure_logging().
        debug: Enable Taichi's debug mode (bounds checks, slower).
    """

    arch: str = "cpu"
    seed: int = 0
    batch_size: int = 1
    log_level: str | int = "INFO"
    debug: bool = False

    def __post_init__(self) -> None:
        if self.arch not in _ARCHS:
            raise ConfigurationError(
                f"unknown Taichi arch '{self.arch}' (expected one of {sorted(_ARCHS)})",
                "settings",
            )
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be positive ({self.batch_size})", "settings")


def configure_logging(level: str | int = "INFO") -> None:
    """Install a basic stderr handler for the package loggers."""
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)


def init_taichi(settings: RenderSettings | None = None) -> None:
    """Initialize the Taichi runtime for the given settings.

    Must be called once before any scene is built, since building a scene
    allocates Taichi fields.
    """
    settings = settings or RenderSettings()
    logger.info("initializing taichi (arch=%s, debug=%s)", settings.arch, settings.debug)
    ti.init(arch=_ARCHS[settings.arch], random_seed=settings.seed, debug=settings.debug)
