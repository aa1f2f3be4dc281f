"""Turn a validated scene document into GPU-resident scene data.

Loading flattens the object tree, resolves material references and
external resources, and uploads instances, lights, meshes and materials
into Taichi fields. It must run after init_taichi().

Example:
    >>> from pathtracer.config import init_taichi
    >>> init_taichi()
    >>> scene = load_scene(document_mapping, ResourceCache(base_dir="scenes"))
    >>> scene.graph.light_count
    1
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from pathtracer.errors import ConfigurationError
from pathtracer.geometry.mesh import MeshBuffers, MeshData
from pathtracer.geometry.specs import DiskGeometry, MeshGeometry, SphereGeometry
from pathtracer.materials.measured import MeasuredTable
from pathtracer.materials.specs import MeasuredSpec
from pathtracer.materials.table import MaterialTable
from pathtracer.scene.document import SceneDocument, parse_document
from pathtracer.scene.graph import Instance, SceneGraph
from pathtracer.scene.lights import LIGHT_AREA, LIGHT_POINT, Light, estimate_world_area
from pathtracer.scene.nodes import EmitterKind, EmitterNode, PlacedObject, count_nodes, flatten, is_animated
from pathtracer.scene.resources import ResourceCache

logger = logging.getLogger(__name__)


@dataclass
class Scene:
    """Everything a renderer needs, built once.

    Only keyframed scenes change after loading: set_time moves their
    instances and lights and re-uploads the graph.
    """

    document: SceneDocument
    materials: MaterialTable
    graph: SceneGraph
    resources: ResourceCache
    animated: bool = False

    def set_time(self, time: float) -> None:
        """Place animated objects and lights at scene ``time``."""
        if not self.animated:
            return
        instances = iter(self.graph.instances)
        lights = iter(self.graph.lights)
        # Same walk as build_scene, so instances and lights pair up in order
        for obj in flatten(self.document.objects, time=time, report_mirroring=False):
            node = obj.node
            if _is_point_light(node):
                light = next(lights)
                light.position = _point_position(obj)
                light.radiance = node.emission.radiance_at(time)
                continue
            instance = next(instances)
            instance.world = obj.world
            if isinstance(node, EmitterNode):
                light = next(lights)
                light.radiance = node.emission.radiance_at(time)
                light.world_area = estimate_world_area(light.local_area, obj.world.determinant)
        self.graph.refresh()
        logger.debug("scene placed at t=%.4fs", time)


def _is_point_light(node) -> bool:
    return isinstance(node, EmitterNode) and node.kind == EmitterKind.POINT


def _point_position(placed: PlacedObject) -> tuple[float, float, float]:
    return tuple(float(v) for v in placed.world.apply_point(placed.node.position))


def _material_index(placed: PlacedObject, names: dict[str, int]) -> int:
    name = placed.node.material
    if name not in names:
        raise ConfigurationError(f"references unknown material '{name}'", placed.name)
    return names[name]


def _shape_params(geometry) -> tuple[float, float]:
    if isinstance(geometry, SphereGeometry):
        return geometry.radius, 0.0
    if isinstance(geometry, DiskGeometry):
        return geometry.radius, geometry.inner_radius
    return 0.0, 0.0


def build_scene(document: SceneDocument, resources: ResourceCache | None = None) -> Scene:
    """Build the scene graph and material table for a validated document.

    Raises:
        ConfigurationError: For empty scenes and unknown material references.
        ResourceError: When a mesh or measured table cannot be loaded.
    """
    resources = resources or ResourceCache()
    time = document.film.frame_time(document.film.start_frame)
    placed = list(flatten(document.objects, time=time))
    if not placed:
        raise ConfigurationError("scene contains no objects", "scene")

    names = {name: i for i, name in enumerate(document.materials)}
    measured: dict[str, MeasuredTable] = {}
    for spec in document.materials.values():
        if isinstance(spec, MeasuredSpec):
            measured[spec.name] = resources.measured_brdf(spec.file)
    materials = MaterialTable(list(document.materials.values()), measured)

    meshes: list[MeshData] = []
    mesh_ids: dict[tuple[str, str], int] = {}
    instances: list[Instance] = []
    lights: list[Light] = []

    for obj in placed:
        node = obj.node
        if _is_point_light(node):
            lights.append(
                Light(
                    name=node.name,
                    kind=LIGHT_POINT,
                    radiance=node.emission.radiance_at(time),
                    position=_point_position(obj),
                )
            )
            continue

        geometry = node.geometry
        mesh_index = -1
        if isinstance(geometry, MeshGeometry):
            key = (geometry.file, geometry.model)
            if key not in mesh_ids:
                mesh_ids[key] = len(meshes)
                meshes.append(resources.mesh(geometry.file, geometry.model))
            mesh_index = mesh_ids[key]

        radius, inner_radius = _shape_params(geometry)
        instance = Instance(
            name=node.name,
            kind=geometry.kind,
            world=obj.world,
            material=_material_index(obj, names),
            radius=radius,
            inner_radius=inner_radius,
            mesh=mesh_index,
        )
        if isinstance(node, EmitterNode):
            instance.light = len(lights)
            local_area = geometry.area()
            lights.append(
                Light(
                    name=node.name,
                    kind=LIGHT_AREA,
                    radiance=node.emission.radiance_at(time),
                    instance=len(instances),
                    two_sided=node.two_sided,
                    local_area=local_area,
                    world_area=estimate_world_area(local_area, obj.world.determinant),
                )
            )
        instances.append(instance)

    if not lights:
        logger.warning("scene has no emitters; every frame will be black")
    logger.info(
        "loaded scene: %d node(s), %d instance(s), %d light(s), %d mesh(es), %d material(s)",
        count_nodes(document.objects),
        len(instances),
        len(lights),
        len(meshes),
        materials.count,
    )
    graph = SceneGraph(instances, lights, MeshBuffers(meshes))
    animated = is_animated(document.objects)
    if animated:
        logger.info("scene is animated; objects and lights are re-placed every frame")
    return Scene(document=document, materials=materials, graph=graph, resources=resources, animated=animated)


def load_scene(document: Mapping | SceneDocument, resources: ResourceCache | None = None) -> Scene:
    """Validate a parsed scene document (if needed) and build the scene."""
    if not isinstance(document, SceneDocument):
        document = parse_document(document)
    return build_scene(document, resources)
