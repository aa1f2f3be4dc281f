"""Affine transforms composed from scene-document operation lists.

Transforms are built on the host with numpy (float64) and uploaded to Taichi
fields as float32 matrices. Each Transform carries the forward matrix, its
inverse and the normal matrix (inverse transpose of the linear part).

Operation lists are folded strictly left to right: for operations
``[op1, op2, ..., opN]`` the composed matrix is ``opN @ ... @ op2 @ op1``, so
``op1`` is the first one applied to a local-space point.

AnimatedTransform holds a list of such transforms keyed by scene time and
interpolates between them; documents give it as a "keyframes" list.

Example:
    >>> ops = [
    ...     {"type": "scale", "scaling": 2.0},
    ...     {"type": "translate", "translation": [0.0, 1.0, 0.0]},
    ... ]
    >>> t = compose(ops)
    >>> t.apply_point([1.0, 0.0, 0.0])
    array([2., 1., 0.])
"""

import bisect
import logging
import math
from collections.abc import Iterable, Mapping, Sequence

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from pathtracer.errors import ConfigurationError

logger = logging.getLogger(__name__)

vec3 = tm.vec3
vec4 = tm.vec4

# Linear parts with |det| below this are treated as non-invertible
SINGULAR_EPSILON = 1e-12

ArrayLike = npt.ArrayLike


class Transform:
    """A 4x4 affine transform with its cached inverse.

    Attributes:
        matrix: Forward (local-to-parent) matrix, shape (4, 4).
        inverse_matrix: Inverse matrix, shape (4, 4).
    """

    def __init__(self, matrix: ArrayLike, inverse: ArrayLike | None = None, owner: str | None = None):
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.shape != (4, 4):
            raise ConfigurationError(f"transform matrix must be 4x4, got {matrix.shape}", owner)
        if not np.all(np.isfinite(matrix)):
            raise ConfigurationError("transform matrix contains non-finite values", owner)
        if inverse is None:
            det = float(np.linalg.det(matrix[:3, :3]))
            if abs(det) < SINGULAR_EPSILON:
                raise ConfigurationError(f"transform is not invertible (det={det:g})", owner)
            inverse = np.linalg.inv(matrix)
        self.matrix = matrix
        self.inverse_matrix = np.asarray(inverse, dtype=np.float64)

    def __repr__(self) -> str:
        return f"Transform({self.matrix.tolist()!r})"

    def __mul__(self, other: "Transform") -> "Transform":
        """Compose so that ``other`` is applied first, then ``self``."""
        if not isinstance(other, Transform):
            return NotImplemented
        return Transform(self.matrix @ other.matrix, other.inverse_matrix @ self.inverse_matrix)

    # -- constructors -------------------------------------------------------

    @classmethod
    def identity(cls) -> "Transform":
        return cls(np.eye(4), np.eye(4))

    @classmethod
    def translate(cls, offset: ArrayLike) -> "Transform":
        offset = _as_vec3(offset, "translation")
        m = np.eye(4)
        m[:3, 3] = offset
        inv = np.eye(4)
        inv[:3, 3] = -offset
        return cls(m, inv)

    @classmethod
    def scale(cls, scaling: float | ArrayLike, owner: str | None = None) -> "Transform":
        """Uniform (scalar) or per-axis scale.

        Zero factors are rejected as non-invertible. Negative factors are
        accepted and reported through swaps_handedness.
        """
        factors = np.broadcast_to(np.asarray(scaling, dtype=np.float64), (3,)).copy()
        if np.any(np.abs(factors) < SINGULAR_EPSILON):
            raise ConfigurationError(f"scale factors must be non-zero ({factors.tolist()})", owner)
        return cls(np.diag([*factors, 1.0]), np.diag([*(1.0 / factors), 1.0]))

    @classmethod
    def rotate_x(cls, degrees: float) -> "Transform":
        c, s = _cos_sin(degrees)
        m = np.array([[1, 0, 0, 0], [0, c, -s, 0], [0, s, c, 0], [0, 0, 0, 1]], dtype=np.float64)
        return cls(m, m.T)

    @classmethod
    def rotate_y(cls, degrees: float) -> "Transform":
        c, s = _cos_sin(degrees)
        m = np.array([[c, 0, s, 0], [0, 1, 0, 0], [-s, 0, c, 0], [0, 0, 0, 1]], dtype=np.float64)
        return cls(m, m.T)

    @classmethod
    def rotate_z(cls, degrees: float) -> "Transform":
        c, s = _cos_sin(degrees)
        m = np.array([[c, -s, 0, 0], [s, c, 0, 0], [0, 0, 1, 0], [0, 0, 0, 1]], dtype=np.float64)
        return cls(m, m.T)

    @classmethod
    def rotate(cls, axis: ArrayLike, degrees: float, owner: str | None = None) -> "Transform":
        """Rotation about an arbitrary axis (Rodrigues' formula)."""
        axis = _as_vec3(axis, "axis", owner)
        norm = np.linalg.norm(axis)
        if norm < SINGULAR_EPSILON:
            raise ConfigurationError("rotation axis must be non-zero", owner)
        x, y, z = axis / norm
        c, s = _cos_sin(degrees)
        t = 1.0 - c
        m = np.eye(4)
        m[:3, :3] = [
            [t * x * x + c, t * x * y - s * z, t * x * z + s * y],
            [t * x * y + s * z, t * y * y + c, t * y * z - s * x],
            [t * x * z - s * y, t * y * z + s * x, t * z * z + c],
        ]
        return cls(m, m.T)

    @classmethod
    def look_at(
        cls, position: ArrayLike, target: ArrayLike, up: ArrayLike, owner: str | None = None
    ) -> "Transform":
        """Camera-to-world transform for a camera looking down its local -Z."""
        position = _as_vec3(position, "position", owner)
        forward = _as_vec3(target, "target", owner) - position
        up = _as_vec3(up, "up", owner)
        if np.linalg.norm(forward) < SINGULAR_EPSILON:
            raise ConfigurationError("look-at target coincides with position", owner)
        forward = forward / np.linalg.norm(forward)
        right = np.cross(forward, up)
        if np.linalg.norm(right) < SINGULAR_EPSILON:
            raise ConfigurationError("look-at up vector is parallel to the view direction", owner)
        right = right / np.linalg.norm(right)
        true_up = np.cross(right, forward)
        m = np.eye(4)
        m[:3, 0] = right
        m[:3, 1] = true_up
        m[:3, 2] = -forward
        m[:3, 3] = position
        return cls(m, owner=owner)

    # -- queries ------------------------------------------------------------

    def inverse(self) -> "Transform":
        return Transform(self.inverse_matrix, self.matrix)

    @property
    def normal_matrix(self) -> np.ndarray:
        """Inverse transpose of the linear part, shape (3, 3)."""
        return self.inverse_matrix[:3, :3].T

    @property
    def determinant(self) -> float:
        """Determinant of the linear part."""
        return float(np.linalg.det(self.matrix[:3, :3]))

    @property
    def swaps_handedness(self) -> bool:
        return self.determinant < 0.0

    def is_identity(self, tol: float = 1e-12) -> bool:
        return bool(np.allclose(self.matrix, np.eye(4), atol=tol))

    def apply_point(self, point: ArrayLike) -> np.ndarray:
        p = np.asarray(point, dtype=np.float64)
        return self.matrix[:3, :3] @ p + self.matrix[:3, 3]

    def apply_vector(self, vector: ArrayLike) -> np.ndarray:
        return self.matrix[:3, :3] @ np.asarray(vector, dtype=np.float64)

    def apply_normal(self, normal: ArrayLike) -> np.ndarray:
        """Transform a normal with the inverse transpose and renormalize."""
        n = self.normal_matrix @ np.asarray(normal, dtype=np.float64)
        length = np.linalg.norm(n)
        return n / length if length > 0.0 else n

    @classmethod
    def from_operations(cls, operations: Iterable[Mapping], owner: str | None = None) -> "Transform":
        return compose(operations, owner)


class AnimatedTransform:
    """A transform keyframed over scene time (seconds).

    Between two keys the matrices are split into translation, rotation and
    stretch (polar decomposition). Translation and stretch are blended
    linearly, rotation by quaternion slerp along the shorter arc. Times
    outside the key range clamp to the first or last key.

    Example:
        >>> anim = AnimatedTransform([
        ...     (0.0, Transform.identity()),
        ...     (1.0, Transform.translate([2.0, 0.0, 0.0])),
        ... ])
        >>> anim.at(0.5).apply_point([0.0, 0.0, 0.0])
        array([1., 0., 0.])
    """

    def __init__(self, keyframes: Sequence[tuple[float, Transform]], owner: str | None = None):
        keys = [(float(time), transform) for time, transform in keyframes]
        if not keys:
            raise ConfigurationError("keyframes must not be empty", owner)
        times = [time for time, _ in keys]
        if any(later <= earlier for earlier, later in zip(times, times[1:])):
            raise ConfigurationError(f"keyframe times must be strictly increasing ({times})", owner)
        transforms = [transform for _, transform in keys]
        if len({t.swaps_handedness for t in transforms}) > 1:
            raise ConfigurationError("keyframes must not change handedness", owner)
        self.owner = owner
        self.times = times
        self.transforms = transforms
        self._parts = [_decompose(t.matrix) for t in transforms]

    @classmethod
    def static(cls, transform: Transform, owner: str | None = None) -> "AnimatedTransform":
        return cls([(0.0, transform)], owner)

    def __repr__(self) -> str:
        return f"AnimatedTransform(times={self.times!r})"

    @property
    def is_animated(self) -> bool:
        return len(self.times) > 1

    @property
    def start(self) -> Transform:
        return self.transforms[0]

    def at(self, time: float) -> Transform:
        """The interpolated transform at ``time``."""
        if time <= self.times[0]:
            return self.transforms[0]
        if time >= self.times[-1]:
            return self.transforms[-1]
        i = bisect.bisect_right(self.times, time)
        s = (time - self.times[i - 1]) / (self.times[i] - self.times[i - 1])
        p0, q0, k0 = self._parts[i - 1]
        p1, q1, k1 = self._parts[i]
        m = np.eye(4)
        m[:3, :3] = _quaternion_to_matrix(_slerp(q0, q1, s)) @ ((1.0 - s) * k0 + s * k1)
        m[:3, 3] = (1.0 - s) * p0 + s * p1
        return Transform(m, owner=self.owner)


def _decompose(matrix: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split an affine matrix into (translation, rotation quaternion, stretch).

    The linear part L = R @ S with R a proper rotation; a mirroring L keeps
    its negative determinant in S.
    """
    u, sigma, vt = np.linalg.svd(matrix[:3, :3])
    rotation = u @ vt
    stretch = vt.T @ np.diag(sigma) @ vt
    if np.linalg.det(rotation) < 0.0:
        rotation = -rotation
        stretch = -stretch
    return matrix[:3, 3].copy(), _matrix_to_quaternion(rotation), stretch


def _matrix_to_quaternion(r: np.ndarray) -> np.ndarray:
    """Unit quaternion (w, x, y, z) of a rotation matrix."""
    trace = float(np.trace(r))
    if trace > 0.0:
        s = 2.0 * math.sqrt(trace + 1.0)
        q = [0.25 * s, (r[2, 1] - r[1, 2]) / s, (r[0, 2] - r[2, 0]) / s, (r[1, 0] - r[0, 1]) / s]
    elif r[0, 0] > r[1, 1] and r[0, 0] > r[2, 2]:
        s = 2.0 * math.sqrt(1.0 + r[0, 0] - r[1, 1] - r[2, 2])
        q = [(r[2, 1] - r[1, 2]) / s, 0.25 * s, (r[0, 1] + r[1, 0]) / s, (r[0, 2] + r[2, 0]) / s]
    elif r[1, 1] > r[2, 2]:
        s = 2.0 * math.sqrt(1.0 + r[1, 1] - r[0, 0] - r[2, 2])
        q = [(r[0, 2] - r[2, 0]) / s, (r[0, 1] + r[1, 0]) / s, 0.25 * s, (r[1, 2] + r[2, 1]) / s]
    else:
        s = 2.0 * math.sqrt(1.0 + r[2, 2] - r[0, 0] - r[1, 1])
        q = [(r[1, 0] - r[0, 1]) / s, (r[0, 2] + r[2, 0]) / s, (r[1, 2] + r[2, 1]) / s, 0.25 * s]
    q = np.asarray(q, dtype=np.float64)
    return q / np.linalg.norm(q)


def _quaternion_to_matrix(q: np.ndarray) -> np.ndarray:
    w, x, y, z = q
    return np.array(
        [
            [1.0 - 2.0 * (y * y + z * z), 2.0 * (x * y - w * z), 2.0 * (x * z + w * y)],
            [2.0 * (x * y + w * z), 1.0 - 2.0 * (x * x + z * z), 2.0 * (y * z - w * x)],
            [2.0 * (x * z - w * y), 2.0 * (y * z + w * x), 1.0 - 2.0 * (x * x + y * y)],
        ]
    )


def _slerp(a: np.ndarray, b: np.ndarray, s: float) -> np.ndarray:
    dot = float(np.dot(a, b))
    if dot < 0.0:
        b = -b
        dot = -dot
    # Nearly parallel: normalized lerp avoids dividing by sin(theta) ~ 0
    if dot > 0.9995:
        q = a + s * (b - a)
        return q / np.linalg.norm(q)
    theta = math.acos(dot)
    return (math.sin((1.0 - s) * theta) * a + math.sin(s * theta) * b) / math.sin(theta)


def _cos_sin(degrees: float) -> tuple[float, float]:
    radians = math.radians(float(degrees))
    return math.cos(radians), math.sin(radians)


def _as_vec3(value: ArrayLike, field: str, owner: str | None = None) -> np.ndarray:
    try:
        v = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{field}' must be a list of 3 numbers ({value!r})", owner) from exc
    if v.shape != (3,) or not np.all(np.isfinite(v)):
        raise ConfigurationError(f"'{field}' must be a list of 3 finite numbers ({value!r})", owner)
    return v


def _number(op: Mapping, key: str, owner: str | None) -> float:
    if key not in op:
        raise ConfigurationError(f"{op.get('type')} operation requires '{key}'", owner)
    value = op[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"'{key}' must be a number ({value!r})", owner)
    return float(value)


def parse_operation(op: Mapping, owner: str | None = None) -> Transform:
    """Convert one transform operation mapping into a Transform.

    Raises:
        ConfigurationError: Unknown operation type or malformed arguments.
    """
    if not isinstance(op, Mapping):
        raise ConfigurationError(f"transform operation must be a mapping ({op!r})", owner)
    kind = op.get("type")
    if kind == "translate":
        if "translation" not in op:
            raise ConfigurationError("translate operation requires 'translation'", owner)
        return Transform.translate(_as_vec3(op["translation"], "translation", owner))
    if kind == "scale":
        if "scaling" not in op:
            raise ConfigurationError("scale operation requires 'scaling'", owner)
        scaling = op["scaling"]
        if isinstance(scaling, Sequence):
            scaling = _as_vec3(scaling, "scaling", owner)
        else:
            scaling = _number(op, "scaling", owner)
        return Transform.scale(scaling, owner)
    if kind == "rotate_x":
        return Transform.rotate_x(_number(op, "rotation", owner))
    if kind == "rotate_y":
        return Transform.rotate_y(_number(op, "rotation", owner))
    if kind == "rotate_z":
        return Transform.rotate_z(_number(op, "rotation", owner))
    if kind == "rotate":
        if "axis" not in op:
            raise ConfigurationError("rotate operation requires 'axis'", owner)
        return Transform.rotate(op["axis"], _number(op, "rotation", owner), owner)
    raise ConfigurationError(f"unknown transform operation '{kind}'", owner)


def compose(operations: Iterable[Mapping] | None, owner: str | None = None) -> Transform:
    """Fold an operation list into a single transform.

    Args:
        operations: Operations in document order; None means identity.
        owner: Object name used in error messages and handedness warnings.

    Returns:
        The composed transform ``opN @ ... @ op1``.

    Raises:
        ConfigurationError: For unknown or malformed operations and for
            non-invertible results.
    """
    transform = Transform.identity()
    if operations is None:
        return transform
    if isinstance(operations, (str, bytes)) or not isinstance(operations, Iterable):
        raise ConfigurationError("transform must be a list of operations", owner)
    for op in operations:
        transform = parse_operation(op, owner) * transform
    if abs(transform.determinant) < SINGULAR_EPSILON:
        raise ConfigurationError("composed transform is not invertible", owner)
    if transform.swaps_handedness:
        logger.warning("transform of '%s' mirrors its geometry; normals follow the inverse transpose", owner)
    return transform


def parse_keyframes(keyframes: Iterable[Mapping], owner: str | None = None) -> AnimatedTransform:
    """Build an AnimatedTransform from ``[{"time": t, "transform": [ops]}, ...]``.

    Raises:
        ConfigurationError: For an empty or malformed list, bad transforms
            and times that do not strictly increase.
    """
    if isinstance(keyframes, (str, bytes)) or not isinstance(keyframes, Sequence) or not keyframes:
        raise ConfigurationError("keyframes must be a non-empty list", owner)
    keys = []
    for key in keyframes:
        if not isinstance(key, Mapping) or "time" not in key or "transform" not in key:
            raise ConfigurationError(f"keyframe requires 'time' and 'transform' ({key!r})", owner)
        keys.append((_number(key, "time", owner), compose(key["transform"], owner)))
    return AnimatedTransform(keys, owner)


# =============================================================================
# Taichi-side helpers
# =============================================================================


@ti.func
def transform_point(m: tm.mat4, p: vec3) -> vec3:
    """Apply an affine 4x4 matrix to a point."""
    r = m @ vec4(p.x, p.y, p.z, 1.0)
    return vec3(r[0], r[1], r[2])


@ti.func
def transform_vector(m: tm.mat4, v: vec3) -> vec3:
    """Apply the linear part of an affine 4x4 matrix to a direction."""
    r = m @ vec4(v.x, v.y, v.z, 0.0)
    return vec3(r[0], r[1], r[2])


@ti.func
def transform_normal(n_mat: tm.mat3, n: vec3) -> vec3:
    """Apply a normal matrix (inverse transpose) and renormalize."""
    return tm.normalize(n_mat @ n)
