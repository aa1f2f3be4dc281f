"""Reconstruction filters for splatting samples onto the film.

A filter is separable: the 2D weight is the product of a 1D kernel along x
(half-width ``width``) and along y (half-width ``height``), and is zero
outside that support.

Mitchell-Netravali uses the standard piecewise cubic with the offset scaled
so the support maps onto [-2, 2]: x = |2 * dx / width| and

    k(x) = ((12 - 9B - 6C) x^3 + (-18 + 12B + 6C) x^2 + (6 - 2B)) / 6
           for x <= 1
    k(x) = ((-B - 6C) x^3 + (6B + 30C) x^2 + (-12B - 48C) x + (8B + 24C)) / 6
           for 1 < x < 2
"""

import math
from dataclasses import dataclass
from enum import IntEnum

import taichi as ti

from pathtracer.errors import ConfigurationError


class FilterKind(IntEnum):
    MITCHELL_NETRAVALI = 0
    BOX = 1
    GAUSSIAN = 2


@dataclass(frozen=True)
class FilterSpec:
    """Filter parameters from the scene document.

    Attributes:
        kind: Kernel shape.
        width: Half-width of the support along x, in pixels.
        height: Half-width of the support along y, in pixels.
        b: Mitchell-Netravali B coefficient.
        c: Mitchell-Netravali C coefficient.
        alpha: Gaussian falloff.
    """

    kind: FilterKind = FilterKind.MITCHELL_NETRAVALI
    width: float = 2.0
    height: float = 2.0
    b: float = 1.0 / 3.0
    c: float = 1.0 / 3.0
    alpha: float = 2.0

    def __post_init__(self) -> None:
        if self.width <= 0.0 or self.height <= 0.0:
            raise ConfigurationError(f"filter extent must be positive ({self.width} x {self.height})", "filter")
        if self.kind == FilterKind.GAUSSIAN and self.alpha <= 0.0:
            raise ConfigurationError(f"gaussian alpha must be positive ({self.alpha})", "filter")


def mitchell_1d(x: float, b: float, c: float) -> float:
    """Host-side Mitchell-Netravali kernel for x already scaled to [-2, 2]."""
    x = abs(x)
    if x > 1.0:
        if x >= 2.0:
            return 0.0
        return ((-b - 6 * c) * x**3 + (6 * b + 30 * c) * x**2 + (-12 * b - 48 * c) * x + (8 * b + 24 * c)) / 6.0
    return ((12 - 9 * b - 6 * c) * x**3 + (-18 + 12 * b + 6 * c) * x**2 + (6 - 2 * b)) / 6.0


@ti.func
def _mitchell_1d(x_in: ti.f32, b: ti.f32, c: ti.f32) -> ti.f32:
    x = ti.abs(x_in)
    x2 = x * x
    x3 = x2 * x
    value = 0.0
    if x > 1.0:
        if x < 2.0:
            value = (
                (-b - 6.0 * c) * x3 + (6.0 * b + 30.0 * c) * x2 + (-12.0 * b - 48.0 * c) * x + (8.0 * b + 24.0 * c)
            ) / 6.0
    else:
        value = ((12.0 - 9.0 * b - 6.0 * c) * x3 + (-18.0 + 12.0 * b + 6.0 * c) * x2 + (6.0 - 2.0 * b)) / 6.0
    return value


@ti.data_oriented
class ReconstructionFilter:
    """Filter kernel usable from Taichi functions.

    The kernel shape is fixed when the film is built, so dispatch happens at
    compile time.
    """

    def __init__(self, spec: FilterSpec | None = None) -> None:
        self.spec = spec or FilterSpec()
        self.kind = int(self.spec.kind)
        self.width = float(self.spec.width)
        self.height = float(self.spec.height)
        self.b = float(self.spec.b)
        self.c = float(self.spec.c)
        self.alpha = float(self.spec.alpha)
        self.gauss_edge_x = math.exp(-self.alpha * self.width * self.width)
        self.gauss_edge_y = math.exp(-self.alpha * self.height * self.height)
        # Pixel offsets to visit on each side of the sample's pixel
        self.reach_x = int(math.ceil(self.width))
        self.reach_y = int(math.ceil(self.height))

    def weight(self, dx: float, dy: float) -> float:
        """Host-side weight, used for reference checks."""
        if abs(dx) >= self.width or abs(dy) >= self.height:
            return 0.0
        if self.kind == FilterKind.BOX:
            return 1.0
        if self.kind == FilterKind.GAUSSIAN:
            gx = max(0.0, math.exp(-self.alpha * dx * dx) - self.gauss_edge_x)
            gy = max(0.0, math.exp(-self.alpha * dy * dy) - self.gauss_edge_y)
            return gx * gy
        return mitchell_1d(2.0 * dx / self.width, self.b, self.c) * mitchell_1d(2.0 * dy / self.height, self.b, self.c)

    @ti.func
    def evaluate(self, dx: ti.f32, dy: ti.f32) -> ti.f32:
        """Weight of a sample at offset (dx, dy) from a pixel center."""
        w = 0.0
        if ti.abs(dx) < self.width and ti.abs(dy) < self.height:
            if ti.static(self.kind == int(FilterKind.BOX)):
                w = 1.0
            elif ti.static(self.kind == int(FilterKind.GAUSSIAN)):
                gx = ti.max(0.0, ti.exp(-self.alpha * dx * dx) - self.gauss_edge_x)
                gy = ti.max(0.0, ti.exp(-self.alpha * dy * dy) - self.gauss_edge_y)
                w = gx * gy
            else:
                w = _mitchell_1d(2.0 * dx / self.width, self.b, self.c) * _mitchell_1d(
                    2.0 * dy / self.height, self.b, self.c
                )
        return w
