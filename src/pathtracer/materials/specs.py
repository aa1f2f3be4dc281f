"""Validated material descriptions.

The scene document's open "type" strings are converted into one of these
frozen dataclasses at load time. MaterialSpec is the closed union of them.
"""

from dataclasses import dataclass
from enum import IntEnum

RGB = tuple[float, float, float]


class MaterialKind(IntEnum):
    """Material variant tags stored in the Taichi material table."""

    MATTE = 0
    PLASTIC = 1
    METAL = 2
    GLASS = 3
    MEASURED = 4


@dataclass(frozen=True)
class MatteSpec:
    name: str
    diffuse: RGB
    roughness: float = 0.0
    kind = MaterialKind.MATTE


@dataclass(frozen=True)
class PlasticSpec:
    name: str
    diffuse: RGB
    gloss: RGB
    roughness: float
    kind = MaterialKind.PLASTIC


@dataclass(frozen=True)
class MetalSpec:
    """Conductor with complex index refractive_index + i * absorption_coefficient.

    A roughness of 0 (the document's specular_metal) is a perfect mirror.
    """

    name: str
    refractive_index: RGB
    absorption_coefficient: RGB
    roughness: float = 0.0
    kind = MaterialKind.METAL


@dataclass(frozen=True)
class GlassSpec:
    name: str
    reflect: RGB
    transmit: RGB
    eta: float
    kind = MaterialKind.GLASS


@dataclass(frozen=True)
class MeasuredSpec:
    """Tabulated BRDF; file is resolved through the resource cache."""

    name: str
    file: str
    kind = MaterialKind.MEASURED


MaterialSpec = MatteSpec | PlasticSpec | MetalSpec | GlassSpec | MeasuredSpec
