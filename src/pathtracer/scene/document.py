"""Validation of parsed scene documents.

The scene file parser (an external collaborator) produces nested mappings
and sequences. This module checks them and converts every open "type"
string into a closed, validated variant, so nothing downstream re-checks
tags. Any problem raises ConfigurationError naming the offending object.

Document sections:
    film        width, height, samples, frame range, filter
    camera      fov, transform or keyframes (or deprecated position/target/up)
    integrator  type (pathtracer | whitted), min_depth, max_depth; whitted
                recurses min_depth specular bounces
    materials   list of named, typed materials
    objects     tree of group / receiver / emitter nodes, each placed by a
                transform or by keyframes ([{time, transform}, ...])
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pathtracer.camera.perspective import CameraSpec
from pathtracer.core.integrator import IntegratorConfig, IntegratorKind
from pathtracer.core.transform import AnimatedTransform, Transform, compose, parse_keyframes
from pathtracer.errors import ConfigurationError
from pathtracer.film.film import FilmSpec
from pathtracer.film.filters import FilterKind, FilterSpec
from pathtracer.geometry.specs import (
    SAMPLEABLE_GEOMETRY,
    DiskGeometry,
    GeometrySpec,
    MeshGeometry,
    PlaneGeometry,
    SphereGeometry,
)
from pathtracer.materials.specs import (
    GlassSpec,
    MaterialSpec,
    MatteSpec,
    MeasuredSpec,
    MetalSpec,
    PlasticSpec,
)
from pathtracer.scene.nodes import (
    Emission,
    EmitterKind,
    EmitterNode,
    GroupNode,
    ReceiverNode,
    SceneNode,
)

logger = logging.getLogger(__name__)

RGB = tuple[float, float, float]

_MISSING = object()

# Maximum entries in an emission array: RGB tint plus a power multiplier
MAX_EMISSION_CHANNELS = 4


@dataclass(frozen=True)
class SceneDocument:
    """A fully validated scene document."""

    film: FilmSpec
    camera: CameraSpec
    integrator: IntegratorConfig
    materials: dict[str, MaterialSpec]
    objects: tuple[SceneNode, ...]


# =============================================================================
# Field helpers
# =============================================================================


def _mapping(value: Any, what: str, owner: str | None) -> Mapping:
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{what} must be a mapping, got {type(value).__name__}", owner)
    return value


def _require(m: Mapping, key: str, owner: str | None) -> Any:
    if key not in m:
        raise ConfigurationError(f"missing required field '{key}'", owner)
    return m[key]


def _number(m: Mapping, key: str, owner: str | None, default: Any = _MISSING) -> float:
    value = m.get(key, default)
    if value is _MISSING:
        raise ConfigurationError(f"missing required field '{key}'", owner)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"'{key}' must be a number ({value!r})", owner)
    return float(value)


def _integer(m: Mapping, key: str, owner: str | None, default: Any = _MISSING) -> int:
    value = m.get(key, default)
    if value is _MISSING:
        raise ConfigurationError(f"missing required field '{key}'", owner)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or float(value) != int(value):
        raise ConfigurationError(f"'{key}' must be an integer ({value!r})", owner)
    return int(value)


def _string(m: Mapping, key: str, owner: str | None, default: Any = _MISSING) -> str:
    value = m.get(key, default)
    if value is _MISSING:
        raise ConfigurationError(f"missing required field '{key}'", owner)
    if not isinstance(value, str):
        raise ConfigurationError(f"'{key}' must be a string ({value!r})", owner)
    return value


def _numbers(value: Any, key: str, owner: str | None) -> list[float]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ConfigurationError(f"'{key}' must be a list of numbers ({value!r})", owner)
    out = []
    for v in value:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ConfigurationError(f"'{key}' must contain only numbers ({value!r})", owner)
        out.append(float(v))
    return out


def parse_vec3(value: Any, key: str, owner: str | None) -> RGB:
    values = _numbers(value, key, owner)
    if len(values) != 3:
        raise ConfigurationError(f"'{key}' must have 3 entries ({value!r})", owner)
    return values[0], values[1], values[2]


def parse_color(value: Any, key: str, owner: str | None) -> RGB:
    """RGB color from 3 entries, or 4 where the last one scales the first three."""
    values = _numbers(value, key, owner)
    if len(values) not in (3, 4):
        raise ConfigurationError(f"color '{key}' must have 3 or 4 entries ({value!r})", owner)
    scale = values[3] if len(values) == 4 else 1.0
    color = (values[0] * scale, values[1] * scale, values[2] * scale)
    if min(color) < 0.0:
        raise ConfigurationError(f"color '{key}' must be non-negative ({value!r})", owner)
    return color


def parse_emission(value: Any, owner: str | None) -> Emission:
    """Emission array, or a list of ``{"time", "color"}`` keys for animated emission.

    The array form is an RGB tint with an optional trailing power
    multiplier. Keyed colors take the same 3 or 4 entries; key times must
    strictly increase.
    """
    if isinstance(value, Sequence) and value and all(isinstance(v, Mapping) for v in value):
        return _parse_emission_keys(value, owner)
    values = _numbers(value, "emission", owner)
    if len(values) < 3 or len(values) > MAX_EMISSION_CHANNELS:
        raise ConfigurationError(
            f"emission must have 3 or {MAX_EMISSION_CHANNELS} entries, got {len(values)}", owner
        )
    tint = (values[0], values[1], values[2])
    power = values[3] if len(values) == 4 else 1.0
    if min(tint) < 0.0 or power < 0.0:
        raise ConfigurationError(f"emission must be non-negative ({value!r})", owner)
    return Emission(tint=tint, power=power)


def _parse_emission_keys(value: Sequence, owner: str | None) -> Emission:
    keys = []
    for entry in value:
        time = _number(entry, "time", owner)
        color = parse_color(_require(entry, "color", owner), "color", owner)
        if keys and time <= keys[-1][0]:
            raise ConfigurationError(f"emission key times must be strictly increasing ({time})", owner)
        keys.append((time, color))
    return Emission(tint=keys[0][1], keys=tuple(keys))


def parse_placement(m: Mapping, owner: str | None) -> tuple[Transform, AnimatedTransform | None]:
    """Static transform of an object or the camera, plus its keyframes if it has any.

    With keyframes the static transform is the first key's.
    """
    if "keyframes" not in m:
        return compose(m.get("transform"), owner), None
    if "transform" in m:
        logger.warning("'%s' has both keyframes and a transform; the transform is ignored", owner)
    animation = parse_keyframes(m["keyframes"], owner)
    return animation.start, animation


# =============================================================================
# Sections
# =============================================================================


def parse_filter(value: Any) -> FilterSpec:
    if value is None:
        return FilterSpec()
    m = _mapping(value, "filter", "filter")
    kind = _string(m, "type", "filter")
    width = _number(m, "width", "filter", 2.0)
    height = _number(m, "height", "filter", 2.0)
    if kind == "mitchell_netravali":
        return FilterSpec(
            FilterKind.MITCHELL_NETRAVALI,
            width,
            height,
            b=_number(m, "b", "filter"),
            c=_number(m, "c", "filter"),
        )
    if kind == "box":
        return FilterSpec(FilterKind.BOX, width, height)
    if kind == "gaussian":
        return FilterSpec(FilterKind.GAUSSIAN, width, height, alpha=_number(m, "alpha", "filter", 2.0))
    raise ConfigurationError(f"unknown filter type '{kind}'", "filter")


def parse_film(value: Any) -> FilmSpec:
    m = _mapping(value, "film", "film")
    start = _integer(m, "start_frame", "film", 0)
    if "end_frame" in m:
        end = _integer(m, "end_frame", "film")
    elif "frames" in m:
        end = _integer(m, "frames", "film") - 1
    else:
        end = start
    return FilmSpec(
        width=_integer(m, "width", "film"),
        height=_integer(m, "height", "film"),
        samples=_integer(m, "samples", "film"),
        start_frame=start,
        end_frame=end,
        frames=_integer(m, "frames", "film", end + 1),
        scene_time=_number(m, "scene_time", "film", 0.0),
        filter=parse_filter(m.get("filter")),
    )


def parse_camera(value: Any) -> CameraSpec:
    m = _mapping(value, "camera", "camera")
    fov = _number(m, "fov", "camera")
    animation = None
    if "keyframes" in m or "transform" in m:
        transform, animation = parse_placement(m, "camera")
    elif "position" in m:
        logger.warning("camera position/target/up is deprecated, use a transform list instead")
        transform = Transform.look_at(
            parse_vec3(_require(m, "position", "camera"), "position", "camera"),
            parse_vec3(_require(m, "target", "camera"), "target", "camera"),
            parse_vec3(m.get("up", [0.0, 1.0, 0.0]), "up", "camera"),
            "camera",
        )
    else:
        raise ConfigurationError("a camera transform is required", "camera")
    return CameraSpec(
        fov=fov,
        transform=transform,
        aperture=_number(m, "aperture", "camera", 0.0),
        focal_distance=_number(m, "focal_distance", "camera", 1.0),
        animation=animation,
    )


def parse_integrator(value: Any) -> IntegratorConfig:
    m = _mapping(value, "integrator", "integrator")
    kind = _string(m, "type", "integrator")
    if kind == IntegratorKind.PATH.value:
        return IntegratorConfig(
            kind=IntegratorKind.PATH,
            min_depth=_integer(m, "min_depth", "integrator"),
            max_depth=_integer(m, "max_depth", "integrator"),
        )
    if kind == IntegratorKind.WHITTED.value:
        # Whitted documents give their recursion depth as min_depth; max_depth is an alias
        key = "min_depth" if "min_depth" in m or "max_depth" not in m else "max_depth"
        max_depth = _integer(m, key, "integrator")
        return IntegratorConfig(kind=IntegratorKind.WHITTED, min_depth=0, max_depth=max_depth)
    raise ConfigurationError(f"unknown integrator type '{kind}'", "integrator")


def parse_material(value: Any) -> MaterialSpec:
    m = _mapping(value, "material", None)
    name = _string(m, "name", None)
    kind = _string(m, "type", name)
    if kind == "matte":
        return MatteSpec(
            name,
            diffuse=parse_color(_require(m, "diffuse", name), "diffuse", name),
            roughness=_number(m, "roughness", name, 0.0),
        )
    if kind == "plastic":
        return PlasticSpec(
            name,
            diffuse=parse_color(_require(m, "diffuse", name), "diffuse", name),
            gloss=parse_color(_require(m, "gloss", name), "gloss", name),
            roughness=_number(m, "roughness", name),
        )
    if kind in ("metal", "specular_metal"):
        roughness = 0.0 if kind == "specular_metal" else _number(m, "roughness", name)
        return MetalSpec(
            name,
            refractive_index=parse_color(_require(m, "refractive_index", name), "refractive_index", name),
            absorption_coefficient=parse_color(
                _require(m, "absorption_coefficient", name), "absorption_coefficient", name
            ),
            roughness=roughness,
        )
    if kind == "glass":
        eta = _number(m, "eta", name)
        if eta <= 0.0:
            raise ConfigurationError(f"eta must be positive ({eta})", name)
        return GlassSpec(
            name,
            reflect=parse_color(_require(m, "reflect", name), "reflect", name),
            transmit=parse_color(_require(m, "transmit", name), "transmit", name),
            eta=eta,
        )
    if kind in ("merl", "measured"):
        return MeasuredSpec(name, file=_string(m, "file", name))
    raise ConfigurationError(f"unknown material type '{kind}'", name)


def parse_materials(value: Any) -> dict[str, MaterialSpec]:
    if value is None:
        return {}
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ConfigurationError("materials must be a list", "materials")
    materials: dict[str, MaterialSpec] = {}
    for entry in value:
        spec = parse_material(entry)
        if spec.name in materials:
            raise ConfigurationError("material names must be unique", spec.name)
        materials[spec.name] = spec
    return materials


def parse_geometry(value: Any, owner: str) -> GeometrySpec:
    m = _mapping(value, "geometry", owner)
    kind = _string(m, "type", owner)
    if kind == "plane":
        return PlaneGeometry()
    if kind == "sphere":
        radius = _number(m, "radius", owner)
        if radius <= 0.0:
            raise ConfigurationError(f"sphere radius must be positive ({radius})", owner)
        return SphereGeometry(radius)
    if kind == "disk":
        radius = _number(m, "radius", owner)
        inner = _number(m, "inner_radius", owner, 0.0)
        if radius <= 0.0 or inner < 0.0 or inner >= radius:
            raise ConfigurationError(
                f"disk radii must satisfy 0 <= inner_radius < radius ({inner}, {radius})", owner
            )
        return DiskGeometry(radius, inner)
    if kind == "mesh":
        return MeshGeometry(file=_string(m, "file", owner), model=_string(m, "model", owner))
    raise ConfigurationError(f"unknown geometry type '{kind}'", owner)


def parse_object(value: Any) -> SceneNode:
    m = _mapping(value, "object", None)
    name = _string(m, "name", None)
    kind = _string(m, "type", name)
    transform, animation = parse_placement(m, name)

    if kind == "group":
        children = m.get("objects", [])
        if isinstance(children, (str, bytes)) or not isinstance(children, Sequence):
            raise ConfigurationError("group objects must be a list", name)
        return GroupNode(name, transform, tuple(parse_object(child) for child in children), animation)

    if kind == "receiver":
        return ReceiverNode(
            name,
            transform,
            geometry=parse_geometry(_require(m, "geometry", name), name),
            material=_string(m, "material", name),
            animation=animation,
        )

    if kind == "emitter":
        emitter = _string(m, "emitter", name, EmitterKind.AREA.value)
        emission = parse_emission(_require(m, "emission", name), name)
        if emitter == EmitterKind.POINT.value:
            return EmitterNode(
                name,
                transform,
                EmitterKind.POINT,
                emission,
                position=parse_vec3(m.get("position", [0.0, 0.0, 0.0]), "position", name),
                animation=animation,
            )
        if emitter == EmitterKind.AREA.value:
            geometry = parse_geometry(_require(m, "geometry", name), name)
            if not isinstance(geometry, SAMPLEABLE_GEOMETRY):
                raise ConfigurationError(
                    f"area emitters must be spheres or disks, got '{type(geometry).__name__}'", name
                )
            two_sided = m.get("two_sided", False)
            if not isinstance(two_sided, bool):
                raise ConfigurationError(f"'two_sided' must be a boolean ({two_sided!r})", name)
            return EmitterNode(
                name,
                transform,
                EmitterKind.AREA,
                emission,
                geometry=geometry,
                material=_string(m, "material", name),
                two_sided=two_sided,
                animation=animation,
            )
        raise ConfigurationError(f"unknown emitter type '{emitter}'", name)

    raise ConfigurationError(f"unknown object type '{kind}'", name)


def parse_document(document: Mapping) -> SceneDocument:
    """Validate a parsed scene document.

    Args:
        document: Mapping produced by the scene-file parser.

    Returns:
        The validated SceneDocument.

    Raises:
        ConfigurationError: On any unknown tag, missing or malformed field,
            duplicate material name or non-invertible transform.
    """
    document = _mapping(document, "scene document", "scene")
    objects = _require(document, "objects", "scene")
    if isinstance(objects, (str, bytes)) or not isinstance(objects, Sequence):
        raise ConfigurationError("objects must be a list", "scene")
    parsed = SceneDocument(
        film=parse_film(_require(document, "film", "scene")),
        camera=parse_camera(_require(document, "camera", "scene")),
        integrator=parse_integrator(_require(document, "integrator", "scene")),
        materials=parse_materials(document.get("materials")),
        objects=tuple(parse_object(obj) for obj in objects),
    )
    logger.debug(
        "parsed scene document: %d material(s), %d top-level object(s)", len(parsed.materials), len(parsed.objects)
    )
    return parsed
