"""Material table: every scene material packed into Taichi fields.

Materials are validated into MaterialSpec variants when the scene document
is loaded, so kernels dispatch on an integer kind that is known to be valid.
The table exposes the world-space BSDF contract used by the integrators:

    evaluate(material, wo, wi, normal, uv) -> RGB
    pdf(material, wo, wi, normal, uv)      -> solid-angle density
    sample(material, wo, normal, uv, u)    -> BsdfSample (world direction)
    is_specular(material)                  -> 1 for glass and mirror metal

Field layout per material:
    color_a: matte/plastic diffuse, metal refractive index, glass reflect
    color_b: plastic gloss, metal absorption, glass transmit
    scalar:  roughness, or eta for glass
"""

import logging

import numpy as np
import taichi as ti
import taichi.math as tm

from pathtracer.core.ray import build_onb_from_normal, local_to_world, world_to_local
from pathtracer.materials.bsdf import BsdfSample, side_of, upper
from pathtracer.materials.glass import sample_glass
from pathtracer.materials.matte import eval_matte, pdf_matte, sample_matte
from pathtracer.materials.measured import (
    MeasuredTable,
    half_diff_angles,
    pdf_measured,
    sample_measured,
    table_coordinates,
)
from pathtracer.materials.metal import eval_metal, metal_is_specular, pdf_metal, sample_metal
from pathtracer.materials.plastic import eval_plastic, pdf_plastic, sample_plastic
from pathtracer.materials.specs import (
    GlassSpec,
    MaterialKind,
    MaterialSpec,
    MatteSpec,
    MeasuredSpec,
    MetalSpec,
    PlasticSpec,
)

logger = logging.getLogger(__name__)

vec2 = tm.vec2
vec3 = tm.vec3


@ti.data_oriented
class MaterialTable:
    """Structure-of-arrays storage for a scene's materials.

    Args:
        specs: Validated materials; a material's index in this list is the
            id stored on scene instances.
        measured: Decoded tables for MeasuredSpec entries, keyed by material
            name.
    """

    def __init__(self, specs: list[MaterialSpec], measured: dict[str, MeasuredTable] | None = None) -> None:
        measured = measured or {}
        self.specs = list(specs)
        self.names = [spec.name for spec in self.specs]
        self.count = len(self.specs)
        n = max(1, self.count)

        self.kind = ti.field(dtype=ti.i32, shape=n)
        self.color_a = ti.Vector.field(3, dtype=ti.f32, shape=n)
        self.color_b = ti.Vector.field(3, dtype=ti.f32, shape=n)
        self.scalar = ti.field(dtype=ti.f32, shape=n)
        self.measured_offset = ti.field(dtype=ti.i32, shape=n)
        self.measured_dims = ti.Vector.field(3, dtype=ti.i32, shape=n)
        self.measured_mapping = ti.field(dtype=ti.i32, shape=n)

        kind = np.zeros(n, dtype=np.int32)
        color_a = np.zeros((n, 3), dtype=np.float32)
        color_b = np.zeros((n, 3), dtype=np.float32)
        scalar = np.zeros(n, dtype=np.float32)
        offsets = np.zeros(n, dtype=np.int32)
        dims = np.ones((n, 3), dtype=np.int32)
        mapping = np.zeros(n, dtype=np.int32)
        blocks: list[np.ndarray] = []
        total = 0

        for i, spec in enumerate(self.specs):
            kind[i] = int(spec.kind)
            if isinstance(spec, MatteSpec):
                color_a[i] = spec.diffuse
                scalar[i] = spec.roughness
            elif isinstance(spec, PlasticSpec):
                color_a[i] = spec.diffuse
                color_b[i] = spec.gloss
                scalar[i] = spec.roughness
            elif isinstance(spec, MetalSpec):
                color_a[i] = spec.refractive_index
                color_b[i] = spec.absorption_coefficient
                scalar[i] = spec.roughness
            elif isinstance(spec, GlassSpec):
                color_a[i] = spec.reflect
                color_b[i] = spec.transmit
                scalar[i] = spec.eta
            elif isinstance(spec, MeasuredSpec):
                table = measured[spec.name]
                offsets[i] = total
                dims[i] = table.dims
                mapping[i] = table.mapping_code
                block = table.values.reshape(-1)
                blocks.append(block)
                total += len(block)
            else:
                raise TypeError(f"unsupported material spec {type(spec).__name__}")

        self.measured_data = ti.field(dtype=ti.f32, shape=max(1, total))
        self.kind.from_numpy(kind)
        self.color_a.from_numpy(color_a)
        self.color_b.from_numpy(color_b)
        self.scalar.from_numpy(scalar)
        self.measured_offset.from_numpy(offsets)
        self.measured_dims.from_numpy(dims)
        self.measured_mapping.from_numpy(mapping)
        if blocks:
            self.measured_data.from_numpy(np.concatenate(blocks).astype(np.float32))

        logger.info("material table: %d material(s), %d measured sample(s)", self.count, total)

    def index_of(self, name: str) -> int:
        return self.names.index(name)

    # -------------------------------------------------------------------------
    # Taichi functions
    # -------------------------------------------------------------------------

    @ti.func
    def is_specular(self, mat: ti.i32) -> ti.i32:
        kind = self.kind[mat]
        specular = 0
        if kind == int(MaterialKind.GLASS):
            specular = 1
        elif kind == int(MaterialKind.METAL):
            specular = metal_is_specular(self.scalar[mat])
        return specular

    @ti.func
    def _measured_value(self, mat: ti.i32, wo: vec3, wi: vec3) -> vec3:
        """Trilinear table lookup for local directions."""
        flip = side_of(wo)
        o = upper(wo, flip)
        i = upper(wi, flip)
        value = vec3(0.0, 0.0, 0.0)
        if o.z > 0.0 and i.z > 0.0:
            dims = self.measured_dims[mat]
            f = table_coordinates(half_diff_angles(o, i), dims, self.measured_mapping[mat])
            base = self.measured_offset[mat]
            h0 = ti.cast(ti.floor(f.x), ti.i32)
            d0 = ti.cast(ti.floor(f.y), ti.i32)
            p0 = ti.cast(ti.floor(f.z), ti.i32)
            h1 = ti.min(h0 + 1, dims.x - 1)
            d1 = ti.min(d0 + 1, dims.y - 1)
            p1 = ti.min(p0 + 1, dims.z - 1)
            wh = f.x - h0
            wd = f.y - d0
            wp = f.z - p0
            for a in ti.static(range(2)):
                for b in ti.static(range(2)):
                    for c in ti.static(range(2)):
                        ih = h0 if a == 0 else h1
                        id_ = d0 if b == 0 else d1
                        ip = p0 if c == 0 else p1
                        w = (1.0 - wh if a == 0 else wh) * (1.0 - wd if b == 0 else wd) * (1.0 - wp if c == 0 else wp)
                        k = base + ((ih * dims.y + id_) * dims.z + ip) * 3
                        value += w * vec3(self.measured_data[k], self.measured_data[k + 1], self.measured_data[k + 2])
        return value

    @ti.func
    def _evaluate_local(self, mat: ti.i32, wo: vec3, wi: vec3) -> vec3:
        kind = self.kind[mat]
        f = vec3(0.0, 0.0, 0.0)
        if kind == int(MaterialKind.MATTE):
            f = eval_matte(self.color_a[mat], wo, wi)
        elif kind == int(MaterialKind.PLASTIC):
            f = eval_plastic(self.color_a[mat], self.color_b[mat], self.scalar[mat], wo, wi)
        elif kind == int(MaterialKind.METAL):
            f = eval_metal(self.color_a[mat], self.color_b[mat], self.scalar[mat], wo, wi)
        elif kind == int(MaterialKind.MEASURED):
            f = self._measured_value(mat, wo, wi)
        return f

    @ti.func
    def _pdf_local(self, mat: ti.i32, wo: vec3, wi: vec3) -> ti.f32:
        kind = self.kind[mat]
        pdf = 0.0
        if kind == int(MaterialKind.MATTE):
            pdf = pdf_matte(wo, wi)
        elif kind == int(MaterialKind.PLASTIC):
            pdf = pdf_plastic(self.color_a[mat], self.color_b[mat], self.scalar[mat], wo, wi)
        elif kind == int(MaterialKind.METAL):
            pdf = pdf_metal(self.scalar[mat], wo, wi)
        elif kind == int(MaterialKind.MEASURED):
            pdf = pdf_measured(wo, wi)
        return pdf

    @ti.func
    def evaluate(self, mat: ti.i32, wo: vec3, wi: vec3, normal: vec3, uv: vec2) -> vec3:
        """BRDF value for world-space directions (zero for specular materials)."""
        t, b, n = build_onb_from_normal(normal)
        return self._evaluate_local(mat, world_to_local(wo, t, b, n), world_to_local(wi, t, b, n))

    @ti.func
    def pdf(self, mat: ti.i32, wo: vec3, wi: vec3, normal: vec3, uv: vec2) -> ti.f32:
        t, b, n = build_onb_from_normal(normal)
        return self._pdf_local(mat, world_to_local(wo, t, b, n), world_to_local(wi, t, b, n))

    @ti.func
    def sample(self, mat: ti.i32, wo: vec3, normal: vec3, uv: vec2, u: vec3) -> BsdfSample:
        """Importance sample an incident direction.

        Args:
            mat: Material index.
            wo: World-space direction toward the previous path vertex.
            normal: Outward shading normal.
            uv: Surface coordinates at the hit.
            u: Three uniform numbers.

        Returns:
            A BsdfSample with a world-space direction.
        """
        t, b, n = build_onb_from_normal(normal)
        wo_local = world_to_local(wo, t, b, n)
        u2 = vec2(u.x, u.y)
        kind = self.kind[mat]

        s = BsdfSample(direction=vec3(0.0, 0.0, 1.0), pdf=0.0, weight=vec3(0.0, 0.0, 0.0), specular=0)
        if kind == int(MaterialKind.MATTE):
            s = sample_matte(self.color_a[mat], wo_local, u2)
        elif kind == int(MaterialKind.PLASTIC):
            s = sample_plastic(self.color_a[mat], self.color_b[mat], self.scalar[mat], wo_local, u)
        elif kind == int(MaterialKind.METAL):
            s = sample_metal(self.color_a[mat], self.color_b[mat], self.scalar[mat], wo_local, u2)
        elif kind == int(MaterialKind.GLASS):
            s = sample_glass(self.color_a[mat], self.color_b[mat], self.scalar[mat], wo_local, u.z)
        elif kind == int(MaterialKind.MEASURED):
            s = sample_measured(wo_local, u2)
            if s.pdf > 0.0:
                s.weight = self._measured_value(mat, wo_local, s.direction) * ti.abs(s.direction.z) / s.pdf

        return BsdfSample(
            direction=tm.normalize(local_to_world(s.direction, t, b, n)),
            pdf=s.pdf,
            weight=s.weight,
            specular=s.specular,
        )
