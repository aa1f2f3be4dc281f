"""Physically based offline path tracer built on Taichi.

A scene document (nested mappings from a scene-file parser) is validated,
flattened into Taichi fields and rendered frame by frame with a path
tracing or Whitted integrator into a filtered film.

Subpackages:
    core: Transforms, sampling, integrators and the rendering driver
    geometry: Plane, sphere, disk and BVH-accelerated triangle meshes
    materials: Matte, plastic, metal, glass and measured BRDFs
    scene: Document validation, resources, scene graph and lights
    camera: Perspective camera with optional thin lens
    film: Film accumulation and reconstruction filters

Example:
    >>> import pathtracer as pt
    >>> pt.init_taichi(pt.RenderSettings(arch="cpu"))
    >>> scene = pt.create_cornell_box_scene()
    >>> image = pt.Renderer(scene).render_frame(0)
"""

from pathtracer.config import RenderSettings, configure_logging, init_taichi
from pathtracer.core.renderer import Renderer, RenderStats
from pathtracer.errors import ConfigurationError, RenderError, ResourceError
from pathtracer.scene.loader import Scene, build_scene, load_scene
from pathtracer.scene.presets import CornellBoxParams, create_cornell_box_scene
from pathtracer.scene.resources import ResourceCache

__version__ = "0.1.0"

__all__ = [
    "RenderSettings",
    "configure_logging",
    "init_taichi",
    "Renderer",
    "RenderStats",
    "RenderError",
    "ConfigurationError",
    "ResourceError",
    "Scene",
    "build_scene",
    "load_scene",
    "ResourceCache",
    "CornellBoxParams",
    "create_cornell_box_scene",
]
