"""Scene module: document validation, resources and the scene graph.

Components:
    document: Validation of parsed scene documents into typed specs
    nodes: Group/receiver/emitter tree and transform flattening
    resources: Cache for externally loaded meshes and measured BRDFs
    lights: Light descriptions, power-based selection, shape sampling
    graph: Instances and lights in Taichi fields; ray and light queries
    loader: Builds a Scene from a document
    presets: Cornell box scene document
"""

from .document import SceneDocument, parse_document
from .graph import HitInfo, Instance, SceneGraph, SurfaceHit
from .lights import Light, LightSample
from .loader import Scene, build_scene, load_scene
from .nodes import Emission, EmitterKind, EmitterNode, GroupNode, PlacedObject, ReceiverNode, flatten
from .presets import CornellBoxParams, cornell_box_document, create_cornell_box_scene
from .resources import ResourceCache

__all__ = [
    "SceneDocument",
    "parse_document",
    "Emission",
    "EmitterKind",
    "EmitterNode",
    "GroupNode",
    "ReceiverNode",
    "PlacedObject",
    "flatten",
    "ResourceCache",
    "Light",
    "LightSample",
    "Instance",
    "SceneGraph",
    "SurfaceHit",
    "HitInfo",
    "Scene",
    "build_scene",
    "load_scene",
    "CornellBoxParams",
    "cornell_box_document",
    "create_cornell_box_scene",
]
