"""Materials module for BRDF/BSDF models.

Components:
    bsdf: Sample record and shading-frame helpers
    fresnel: Exact dielectric and conductor Fresnel terms
    microfacet: GGX distribution, Smith shadowing and half-vector sampling
    matte: Lambertian reflection
    plastic: Lambertian base under a glossy dielectric coat
    metal: Rough or mirror conductor
    glass: Smooth dielectric reflection and refraction
    measured: Tabulated isotropic BRDFs
    table: All scene materials packed into Taichi fields

Each material provides evaluate, pdf and sample in a local frame whose +Z
axis is the shading normal; MaterialTable lifts them to world space.
"""

from .bsdf import BsdfSample
from .measured import MeasuredTable
from .specs import GlassSpec, MaterialKind, MaterialSpec, MatteSpec, MeasuredSpec, MetalSpec, PlasticSpec
from .table import MaterialTable

__all__ = [
    "BsdfSample",
    "MeasuredTable",
    "MaterialKind",
    "MaterialSpec",
    "MatteSpec",
    "PlasticSpec",
    "MetalSpec",
    "GlassSpec",
    "MeasuredSpec",
    "MaterialTable",
]
