"""Measured (tabulated) isotropic BRDFs in the Rusinkiewicz parameterization.

A table stores RGB reflectance over (theta_half, theta_diff, phi_diff):

    theta_half in [0, pi/2]  indexed as sqrt(theta_half / (pi/2)) * n (MERL)
                             or linearly
    theta_diff in [0, pi/2]  indexed linearly
    phi_diff   in [0, pi)    indexed linearly (reciprocity folds [pi, 2pi))

Lookups interpolate trilinearly between neighbouring samples and clamp to
the nearest sample at the table boundaries. Directions are sampled with a
cosine-weighted density, which works for any isotropic table.

The binary file layout is owned by the loader collaborator; this module
only receives the decoded array.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
import taichi as ti
import taichi.math as tm

from pathtracer.core.sampling import cosine_hemisphere_pdf, sample_cosine_hemisphere
from pathtracer.errors import ResourceError
from pathtracer.materials.bsdf import BsdfSample, same_hemisphere, side_of, upper

logger = logging.getLogger(__name__)

vec2 = tm.vec2
vec3 = tm.vec3

HALF_ANGLE_SQRT = 0
HALF_ANGLE_LINEAR = 1

_MAPPINGS = {"sqrt": HALF_ANGLE_SQRT, "linear": HALF_ANGLE_LINEAR}


@dataclass
class MeasuredTable:
    """Decoded reflectance table.

    Attributes:
        values: Reflectance samples, shape (n_theta_h, n_theta_d, n_phi_d, 3).
            Negative entries (missing measurements) are clamped to zero.
        half_angle_mapping: "sqrt" for MERL-style non-linear theta_half
            spacing, "linear" otherwise.
        name: Label used in log and error messages.
    """

    values: np.ndarray
    half_angle_mapping: str = "sqrt"
    name: str = "brdf"

    def __post_init__(self) -> None:
        values = np.asarray(self.values, dtype=np.float32)
        if values.ndim != 4 or values.shape[3] != 3 or min(values.shape[:3]) < 1:
            raise ResourceError(f"measured BRDF '{self.name}' must have shape (n_th, n_td, n_pd, 3), got {values.shape}")
        if not np.all(np.isfinite(values)):
            raise ResourceError(f"measured BRDF '{self.name}' contains non-finite samples")
        if self.half_angle_mapping not in _MAPPINGS:
            raise ResourceError(f"unknown half-angle mapping '{self.half_angle_mapping}' for '{self.name}'")
        negative = int(np.count_nonzero(values < 0.0))
        if negative:
            logger.debug("clamping %d negative samples in measured BRDF '%s'", negative, self.name)
        self.values = np.maximum(values, 0.0)

    @property
    def dims(self) -> tuple[int, int, int]:
        return tuple(int(n) for n in self.values.shape[:3])

    @property
    def mapping_code(self) -> int:
        return _MAPPINGS[self.half_angle_mapping]

    def lookup(self, theta_half: float, theta_diff: float, phi_diff: float) -> np.ndarray:
        """Host-side reference lookup, mirroring the kernel interpolation."""
        n_th, n_td, n_pd = self.dims
        fh = _half_coordinate(theta_half, n_th, self.mapping_code)
        fd = _clamp(theta_diff / (0.5 * math.pi) * n_td, 0.0, n_td - 1.0)
        fp = _clamp(_fold_phi(phi_diff) / math.pi * n_pd, 0.0, n_pd - 1.0)
        result = np.zeros(3)
        for i, wi in _corners(fh, n_th):
            for j, wj in _corners(fd, n_td):
                for k, wk in _corners(fp, n_pd):
                    result += wi * wj * wk * self.values[i, j, k]
        return result


def _clamp(x: float, lo: float, hi: float) -> float:
    return min(max(x, lo), hi)


def _fold_phi(phi: float) -> float:
    phi = phi % (2.0 * math.pi)
    return phi - math.pi if phi >= math.pi else phi


def _half_coordinate(theta_half: float, n: int, mapping: int) -> float:
    x = max(theta_half, 0.0) / (0.5 * math.pi)
    if mapping == HALF_ANGLE_SQRT:
        x = math.sqrt(x)
    return _clamp(x * n, 0.0, n - 1.0)


def _corners(f: float, n: int):
    i0 = int(math.floor(f))
    i1 = min(i0 + 1, n - 1)
    w = f - i0
    return ((i0, 1.0 - w), (i1, w))


# =============================================================================
# Taichi-side helpers
# =============================================================================


@ti.func
def _rotate_z(v: vec3, angle: ti.f32) -> vec3:
    c = ti.cos(angle)
    s = ti.sin(angle)
    return vec3(v.x * c - v.y * s, v.x * s + v.y * c, v.z)


@ti.func
def _rotate_y(v: vec3, angle: ti.f32) -> vec3:
    c = ti.cos(angle)
    s = ti.sin(angle)
    return vec3(v.x * c + v.z * s, v.y, -v.x * s + v.z * c)


@ti.func
def half_diff_angles(wo: vec3, wi: vec3) -> vec3:
    """Convert a direction pair (upper hemisphere) into (theta_h, theta_d, phi_d)."""
    h = tm.normalize(wo + wi)
    theta_h = ti.acos(tm.clamp(h.z, -1.0, 1.0))
    phi_h = ti.atan2(h.y, h.x)
    d = _rotate_y(_rotate_z(wi, -phi_h), -theta_h)
    theta_d = ti.acos(tm.clamp(d.z, -1.0, 1.0))
    phi_d = ti.atan2(d.y, d.x)
    if phi_d < 0.0:
        phi_d += tm.pi
    if phi_d >= tm.pi:
        phi_d -= tm.pi
    return vec3(theta_h, theta_d, phi_d)


@ti.func
def table_coordinates(angles: vec3, dims: tm.ivec3, mapping: ti.i32) -> vec3:
    """Continuous, clamped sample coordinates for a (theta_h, theta_d, phi_d) triple."""
    xh = ti.max(angles.x, 0.0) / (0.5 * tm.pi)
    if mapping == HALF_ANGLE_SQRT:
        xh = ti.sqrt(xh)
    fh = tm.clamp(xh * dims.x, 0.0, dims.x - 1.0)
    fd = tm.clamp(angles.y / (0.5 * tm.pi) * dims.y, 0.0, dims.y - 1.0)
    fp = tm.clamp(angles.z / tm.pi * dims.z, 0.0, dims.z - 1.0)
    return vec3(fh, fd, fp)


@ti.func
def sample_measured(wo: vec3, u: vec2) -> BsdfSample:
    """Cosine-weighted direction; weight is filled in by the caller's lookup."""
    wi = upper(sample_cosine_hemisphere(u), side_of(wo))
    return BsdfSample(direction=wi, pdf=cosine_hemisphere_pdf(wi.z), weight=vec3(0.0, 0.0, 0.0), specular=0)


@ti.func
def pdf_measured(wo: vec3, wi: vec3) -> ti.f32:
    pdf = 0.0
    if same_hemisphere(wo, wi):
        pdf = cosine_hemisphere_pdf(wi.z)
    return pdf
