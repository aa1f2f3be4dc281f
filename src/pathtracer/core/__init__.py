"""Core rendering module.

Components:
    transform: Affine transforms composed from operation lists
    ray: Ray record, reflection/refraction and shading-frame helpers
    sampling: Counter-based random streams and warping functions
    spectrum: RGB helpers (luminance, validity checks)
    integrator: Path tracing and Whitted integrators
    renderer: Sample passes, frames and progress reporting

Note: renderer is not imported here because it depends on the camera and
film packages. Import it from pathtracer.core.renderer or pathtracer.
"""

from .integrator import IntegratorConfig, IntegratorKind, PathIntegrator, WhittedIntegrator, make_integrator
from .ray import T_MAX, T_MIN, Ray, offset_ray_origin, ray_at, reflect, refract
from .transform import AnimatedTransform, Transform, compose, parse_keyframes, parse_operation

__all__ = [
    "Transform",
    "AnimatedTransform",
    "compose",
    "parse_keyframes",
    "parse_operation",
    "Ray",
    "ray_at",
    "reflect",
    "refract",
    "offset_ray_origin",
    "T_MIN",
    "T_MAX",
    "IntegratorConfig",
    "IntegratorKind",
    "PathIntegrator",
    "WhittedIntegrator",
    "make_integrator",
]
