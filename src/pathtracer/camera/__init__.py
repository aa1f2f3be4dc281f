"""Camera models for primary ray generation.

Components:
    perspective: Perspective camera with optional thin-lens depth of field

Raster coordinates are continuous: x grows to the right, y grows downward,
and pixel (i, j) covers [i, i + 1) x [j, j + 1).
"""

from .perspective import CameraSpec, PerspectiveCamera

__all__ = ["CameraSpec", "PerspectiveCamera"]
