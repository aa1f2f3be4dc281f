"""Film accumulation and reconstruction filters.

Components:
    filters: Mitchell-Netravali, box and Gaussian kernels
    film: Filter-weighted radiance and weight sums per pixel
"""

from .film import Film, FilmSpec
from .filters import FilterKind, FilterSpec, ReconstructionFilter, mitchell_1d

__all__ = ["Film", "FilmSpec", "FilterKind", "FilterSpec", "ReconstructionFilter", "mitchell_1d"]
