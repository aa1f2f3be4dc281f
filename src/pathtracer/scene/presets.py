"""Cornell box preset scene.

The classic Cornell box, expressed as a scene document so it goes through
the same validation and loading path as any scene file:

- 5 walls forming an open box (red, green, and white back, floor, ceiling),
  each a transformed unit quad mesh
- a disk area light just below the ceiling
- 3 spheres: matte, rough silver and glass

The box spans [0, 555] on every axis; the camera sits outside the open
front (z < 0) looking toward +Z.

Example:
    >>> from pathtracer.config import init_taichi
    >>> init_taichi()
    >>> scene = create_cornell_box_scene(CornellBoxParams(light_intensity=20.0))
    >>> Renderer(scene).render_frame(0).shape
    (256, 256, 3)
"""

from dataclasses import dataclass
from pathlib import Path

import numpy as np

from pathtracer.geometry.mesh import MeshData
from pathtracer.scene.loader import Scene, load_scene
from pathtracer.scene.resources import ResourceCache

RGB = tuple[float, float, float]

# Classic Cornell box dimensions
BOX_SIZE = 555.0

# Name under which the wall quad is registered with the resource cache
QUAD_FILE = "cornell_box_quad.mesh"
QUAD_MODEL = "quad"

# Silver conductor constants at roughly 650, 550 and 450 nm
SILVER_ETA = (0.155, 0.117, 0.138)
SILVER_K = (4.828, 3.122, 2.147)


@dataclass
class CornellBoxParams:
    """Parameters for configuring a Cornell box scene.

    Attributes:
        light_intensity: Power multiplier of the ceiling light.
        light_color: RGB tint of the light.
        left_wall_color: Diffuse color of the left wall (x = 555, seen on
            the left from the camera).
        right_wall_color: Diffuse color of the right wall (x = 0).
        back_wall_color: Diffuse color of the back wall, floor and ceiling.
        width: Image width in pixels.
        height: Image height in pixels.
        samples: Samples per pixel.
    """

    light_intensity: float = 15.0
    light_color: RGB = (1.0, 1.0, 1.0)
    left_wall_color: RGB = (0.65, 0.05, 0.05)
    right_wall_color: RGB = (0.12, 0.45, 0.15)
    back_wall_color: RGB = (0.73, 0.73, 0.73)
    width: int = 256
    height: int = 256
    samples: int = 16


def unit_quad_mesh() -> MeshData:
    """Two triangles spanning [-0.5, 0.5]^2 in the z = 0 plane, facing +Z."""
    vertices = np.array(
        [[-0.5, -0.5, 0.0], [0.5, -0.5, 0.0], [0.5, 0.5, 0.0], [-0.5, 0.5, 0.0]],
        dtype=np.float32,
    )
    indices = np.array([[0, 1, 2], [0, 2, 3]], dtype=np.int64)
    normals = np.tile(np.array([0.0, 0.0, 1.0], dtype=np.float32), (4, 1))
    uvs = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]], dtype=np.float32)
    return MeshData(vertices, indices, normals, uvs, name=QUAD_MODEL)


def _wall(name: str, material: str, rotation: dict, center: RGB, size: float) -> dict:
    return {
        "name": name,
        "type": "receiver",
        "material": material,
        "geometry": {"type": "mesh", "file": QUAD_FILE, "model": QUAD_MODEL},
        "transform": [
            {"type": "scale", "scaling": size},
            rotation,
            {"type": "translate", "translation": list(center)},
        ],
    }


def _sphere(name: str, material: str, radius: float, center: RGB) -> dict:
    return {
        "name": name,
        "type": "receiver",
        "material": material,
        "geometry": {"type": "sphere", "radius": radius},
        "transform": [{"type": "translate", "translation": list(center)}],
    }


def cornell_box_document(params: CornellBoxParams | None = None, box_size: float = BOX_SIZE) -> dict:
    """Scene document mapping for the Cornell box."""
    params = params or CornellBoxParams()
    s = box_size
    h = 0.5 * box_size

    walls = [
        _wall("back_wall", "white", {"type": "rotate_y", "rotation": 180.0}, (h, h, s), s),
        _wall("floor", "white", {"type": "rotate_x", "rotation": -90.0}, (h, 0.0, h), s),
        _wall("ceiling", "white", {"type": "rotate_x", "rotation": 90.0}, (h, s, h), s),
        _wall("left_wall", "left", {"type": "rotate_y", "rotation": -90.0}, (s, h, h), s),
        _wall("right_wall", "right", {"type": "rotate_y", "rotation": 90.0}, (0.0, h, h), s),
    ]
    light = {
        "name": "ceiling_light",
        "type": "emitter",
        "emitter": "area",
        "material": "white",
        "emission": [*params.light_color, params.light_intensity],
        "geometry": {"type": "disk", "radius": 0.12 * s},
        "transform": [
            {"type": "rotate_x", "rotation": 90.0},
            {"type": "translate", "translation": [h, s - 1.0, h]},
        ],
    }
    spheres = {
        "name": "spheres",
        "type": "group",
        "objects": [
            _sphere("matte_sphere", "white", 0.16 * s, (0.27 * s, 0.16 * s, 0.67 * s)),
            _sphere("silver_sphere", "silver", 0.16 * s, (0.72 * s, 0.16 * s, 0.55 * s)),
            _sphere("glass_sphere", "glass", 0.12 * s, (0.5 * s, 0.12 * s, 0.25 * s)),
        ],
    }

    return {
        "film": {
            "width": params.width,
            "height": params.height,
            "samples": params.samples,
            "start_frame": 0,
            "end_frame": 0,
            "filter": {"type": "mitchell_netravali", "width": 2.0, "height": 2.0, "b": 1 / 3, "c": 1 / 3},
        },
        "camera": {
            "fov": 40.0,
            "transform": [
                {"type": "rotate_y", "rotation": 180.0},
                {"type": "translate", "translation": [h, h, -1.45 * s]},
            ],
        },
        "integrator": {"type": "pathtracer", "min_depth": 3, "max_depth": 8},
        "materials": [
            {"name": "white", "type": "matte", "diffuse": list(params.back_wall_color), "roughness": 0.0},
            {"name": "left", "type": "matte", "diffuse": list(params.left_wall_color), "roughness": 0.0},
            {"name": "right", "type": "matte", "diffuse": list(params.right_wall_color), "roughness": 0.0},
            {
                "name": "silver",
                "type": "metal",
                "refractive_index": list(SILVER_ETA),
                "absorption_coefficient": list(SILVER_K),
                "roughness": 0.3,
            },
            {"name": "glass", "type": "glass", "reflect": [1.0, 1.0, 1.0], "transmit": [1.0, 1.0, 1.0], "eta": 1.5},
        ],
        "objects": [*walls, light, spheres],
    }


def cornell_box_resources(base_dir: str | Path | None = None) -> ResourceCache:
    """Resource cache with the wall quad registered."""
    cache = ResourceCache(base_dir)
    cache.add_mesh(QUAD_FILE, QUAD_MODEL, unit_quad_mesh())
    return cache


def create_cornell_box_scene(params: CornellBoxParams | None = None, box_size: float = BOX_SIZE) -> Scene:
    """Load the Cornell box; Taichi must already be initialized."""
    return load_scene(cornell_box_document(params, box_size), cornell_box_resources())
