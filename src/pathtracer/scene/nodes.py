"""Scene tree: groups owning children, and leaf receivers and emitters.

The tree is strictly hierarchical. Every node carries its own transform;
a leaf's world transform is the product of its ancestors' transforms and its
own, applied innermost first:

    world = group_1 * group_2 * ... * leaf

Nodes with keyframes carry an AnimatedTransform as well; flattening at a
scene time uses each node's interpolated transform instead of its static one.
"""

import bisect
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

from pathtracer.core.transform import AnimatedTransform, Transform
from pathtracer.geometry.specs import GeometrySpec

logger = logging.getLogger(__name__)

RGB = tuple[float, float, float]


class EmitterKind(Enum):
    AREA = "area"
    POINT = "point"


@dataclass(frozen=True)
class Emission:
    """RGB tint scaled by a power multiplier; radiance = tint * power.

    Animated emission lists (time, radiance) keys instead; radiance between
    keys is interpolated linearly and clamped outside them.
    """

    tint: RGB
    power: float = 1.0
    keys: tuple[tuple[float, RGB], ...] = ()

    @property
    def radiance(self) -> RGB:
        return tuple(c * self.power for c in self.tint)

    @property
    def is_animated(self) -> bool:
        return len(self.keys) > 1

    def radiance_at(self, time: float) -> RGB:
        if not self.is_animated:
            return self.radiance
        times = [t for t, _ in self.keys]
        if time <= times[0]:
            return self.keys[0][1]
        if time >= times[-1]:
            return self.keys[-1][1]
        i = bisect.bisect_right(times, time)
        (t0, c0), (t1, c1) = self.keys[i - 1], self.keys[i]
        s = (time - t0) / (t1 - t0)
        return tuple(a + s * (b - a) for a, b in zip(c0, c1))


@dataclass(frozen=True)
class GroupNode:
    name: str
    transform: Transform
    children: tuple["SceneNode", ...] = ()
    animation: AnimatedTransform | None = None


@dataclass(frozen=True)
class ReceiverNode:
    name: str
    transform: Transform
    geometry: GeometrySpec
    material: str
    animation: AnimatedTransform | None = None


@dataclass(frozen=True)
class EmitterNode:
    """A light source.

    Area emitters have geometry and a material (they are also hit by rays
    and shaded like receivers). Point emitters only have a position, which
    is moved by the node's world transform.
    """

    name: str
    transform: Transform
    kind: EmitterKind
    emission: Emission
    geometry: GeometrySpec | None = None
    material: str | None = None
    position: RGB = (0.0, 0.0, 0.0)
    two_sided: bool = False
    animation: AnimatedTransform | None = None


SceneNode = GroupNode | ReceiverNode | EmitterNode
LeafNode = ReceiverNode | EmitterNode


@dataclass(frozen=True)
class PlacedObject:
    """A leaf node together with its composed world transform."""

    node: LeafNode
    world: Transform
    path: tuple[str, ...] = field(default=())

    @property
    def name(self) -> str:
        return self.node.name


def local_transform(node: SceneNode, time: float | None = None) -> Transform:
    """The node's own transform, interpolated at ``time`` when it is keyframed."""
    if time is None or node.animation is None:
        return node.transform
    return node.animation.at(time)


def flatten(
    nodes,
    parent: Transform | None = None,
    path: tuple[str, ...] = (),
    time: float | None = None,
    report_mirroring: bool = True,
) -> Iterator[PlacedObject]:
    """Yield every leaf under ``nodes`` in document order with its world transform.

    Args:
        nodes: Sibling nodes to walk.
        parent: World transform of the enclosing group.
        path: Names of the enclosing groups.
        time: Scene time for keyframed nodes; None uses the static transforms.
        report_mirroring: Warn about leaves mirrored only by their ancestors.
    """
    parent = parent or Transform.identity()
    for node in nodes:
        local = local_transform(node, time)
        world = parent * local
        if isinstance(node, GroupNode):
            yield from flatten(node.children, world, path + (node.name,), time, report_mirroring)
            continue
        # A leaf's own mirroring is reported when its transform is composed
        if report_mirroring and world.swaps_handedness and not local.swaps_handedness:
            logger.warning(
                "'%s' mirrors its geometry through its parent groups %s; normals follow the inverse transpose",
                node.name,
                "/".join(path),
            )
        yield PlacedObject(node=node, world=world, path=path)


def is_animated(nodes) -> bool:
    """True when any node under ``nodes`` has moving keyframes or animated emission."""
    for node in nodes:
        if node.animation is not None and node.animation.is_animated:
            return True
        if isinstance(node, EmitterNode) and node.emission.is_animated:
            return True
        if isinstance(node, GroupNode) and is_animated(node.children):
            return True
    return False


def count_nodes(nodes) -> int:
    total = 0
    for node in nodes:
        total += 1
        if isinstance(node, GroupNode):
            total += count_nodes(node.children)
    return total
