"""Unit tests for transform composition.

Tests cover:
- Operation lists fold left to right (first operation applied first)
- Identity operations do not change translate-only or scale-only results
- Rotations, arbitrary axes and look-at frames
- Normal transformation and handedness detection
- Configuration errors for unknown or singular operations
- Keyframe interpolation: translation, rotation and scale blends, clamping
- Taichi-side point/vector/normal helpers
"""

import math

import numpy as np
import pytest
import taichi as ti


class TestCompose:
    """Tests for folding operation lists."""

    def test_first_operation_applied_first(self):
        """Scale then translate differs from translate then scale."""
        from pathtracer.core.transform import compose

        scale_first = compose(
            [{"type": "scale", "scaling": 2.0}, {"type": "translate", "translation": [1.0, 0.0, 0.0]}]
        )
        translate_first = compose(
            [{"type": "translate", "translation": [1.0, 0.0, 0.0]}, {"type": "scale", "scaling": 2.0}]
        )

        np.testing.assert_allclose(scale_first.apply_point([1.0, 0.0, 0.0]), [3.0, 0.0, 0.0])
        np.testing.assert_allclose(translate_first.apply_point([1.0, 0.0, 0.0]), [4.0, 0.0, 0.0])

    def test_none_is_identity(self):
        """A missing transform composes to the identity."""
        from pathtracer.core.transform import compose

        assert compose(None).is_identity()
        assert compose([]).is_identity()

    @pytest.mark.parametrize(
        "ops",
        [
            [{"type": "translate", "translation": [1.0, -2.0, 3.0]}, {"type": "translate", "translation": [0.5, 0.5, 0.5]}],
            [{"type": "scale", "scaling": [2.0, 3.0, 4.0]}, {"type": "scale", "scaling": 0.5}],
        ],
    )
    def test_identity_insertions_do_not_change_result(self, ops):
        """Inserting zero translations, unit scales and zero rotations is a no-op."""
        from pathtracer.core.transform import compose

        identities = [
            {"type": "translate", "translation": [0.0, 0.0, 0.0]},
            {"type": "scale", "scaling": 1.0},
            {"type": "rotate_z", "rotation": 0.0},
        ]
        padded = [identities[0], ops[0], identities[1], ops[1], identities[2]]

        np.testing.assert_allclose(compose(padded).matrix, compose(ops).matrix, atol=1e-12)

    def test_nested_composition_matches_parent_times_child(self):
        """parent * child applies the child first."""
        from pathtracer.core.transform import Transform

        parent = Transform.translate([0.0, 1.0, 0.0])
        child = Transform.scale(2.0)
        world = parent * child

        np.testing.assert_allclose(world.apply_point([1.0, 1.0, 1.0]), [2.0, 3.0, 2.0])
        np.testing.assert_allclose(world.inverse_matrix @ world.matrix, np.eye(4), atol=1e-12)


class TestRotations:
    """Tests for rotation operations."""

    def test_rotate_z_quarter_turn(self):
        """rotate_z by 90 degrees maps +X to +Y."""
        from pathtracer.core.transform import compose

        t = compose([{"type": "rotate_z", "rotation": 90.0}])
        np.testing.assert_allclose(t.apply_vector([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-12)

    def test_rotate_about_axis_matches_axis_rotation(self):
        """An arbitrary-axis rotation about +Y equals rotate_y."""
        from pathtracer.core.transform import Transform, compose

        axis = compose([{"type": "rotate", "axis": [0.0, 2.0, 0.0], "rotation": 37.0}])
        np.testing.assert_allclose(axis.matrix, Transform.rotate_y(37.0).matrix, atol=1e-12)

    def test_look_at_points_minus_z_at_target(self):
        """The camera's -Z axis points from position toward target."""
        from pathtracer.core.transform import Transform

        t = Transform.look_at([0.0, 0.0, 5.0], [0.0, 0.0, 0.0], [0.0, 1.0, 0.0])
        np.testing.assert_allclose(t.apply_vector([0.0, 0.0, -1.0]), [0.0, 0.0, -1.0], atol=1e-12)
        np.testing.assert_allclose(t.apply_point([0.0, 0.0, 0.0]), [0.0, 0.0, 5.0], atol=1e-12)


class TestNormalsAndHandedness:
    """Tests for normal transformation and mirrored transforms."""

    def test_non_uniform_scale_normal(self):
        """Normals use the inverse transpose and stay perpendicular to surfaces."""
        from pathtracer.core.transform import Transform

        t = Transform.scale([1.0, 4.0, 1.0])
        n = t.apply_normal([1.0, 1.0, 0.0])
        tangent = t.apply_vector([1.0, -1.0, 0.0])

        assert abs(np.linalg.norm(n) - 1.0) < 1e-12
        assert abs(np.dot(n, tangent)) < 1e-12

    def test_negative_scale_swaps_handedness(self, caplog):
        """A mirroring scale is flagged and logged."""
        from pathtracer.core.transform import compose

        with caplog.at_level("WARNING"):
            t = compose([{"type": "scale", "scaling": [-1.0, 1.0, 1.0]}], "mirror")

        assert t.swaps_handedness
        assert "mirror" in caplog.text


class TestErrors:
    """Tests for invalid transform operations."""

    def test_unknown_operation(self):
        """Unknown tags raise a ConfigurationError naming the owner."""
        from pathtracer.core.transform import compose
        from pathtracer.errors import ConfigurationError

        with pytest.raises(ConfigurationError, match="shear") as info:
            compose([{"type": "shear", "amount": 1.0}], "box")
        assert info.value.object_name == "box"

    def test_zero_scale_is_not_invertible(self):
        """A zero scale factor is rejected."""
        from pathtracer.core.transform import compose
        from pathtracer.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            compose([{"type": "scale", "scaling": [1.0, 0.0, 1.0]}], "flat")

    def test_missing_field(self):
        """A translate without translation is rejected."""
        from pathtracer.core.transform import compose
        from pathtracer.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            compose([{"type": "translate"}], "obj")

    def test_configuration_error_is_value_error(self):
        """ConfigurationError can be caught as ValueError."""
        from pathtracer.core.transform import compose

        with pytest.raises(ValueError):
            compose("translate", "obj")



class TestAnimatedTransform:
    """Tests for keyframed transforms."""

    def test_translation_midpoint(self):
        from pathtracer.core.transform import AnimatedTransform, Transform

        anim = AnimatedTransform([(0.0, Transform.identity()), (2.0, Transform.translate([4.0, 0.0, -2.0]))])

        np.testing.assert_allclose(anim.at(0.5).apply_point([0.0, 1.0, 0.0]), [1.0, 1.0, -0.5], atol=1e-12)
        assert anim.is_animated

    def test_rotation_is_slerped(self):
        """Halfway between 0 and 90 degrees is a rigid 45 degree turn, not a shrunken blend."""
        from pathtracer.core.transform import AnimatedTransform, Transform

        anim = AnimatedTransform([(0.0, Transform.rotate_z(0.0)), (1.0, Transform.rotate_z(90.0))])
        p = anim.at(0.5).apply_point([1.0, 0.0, 0.0])

        h = math.sqrt(0.5)
        np.testing.assert_allclose(p, [h, h, 0.0], atol=1e-9)

    def test_rotation_and_translation_together(self):
        from pathtracer.core.transform import AnimatedTransform, Transform

        start = Transform.translate([0.0, 0.0, 0.0])
        end = Transform.translate([2.0, 0.0, 0.0]) * Transform.rotate_y(180.0)
        anim = AnimatedTransform([(0.0, start), (1.0, end)])
        t = anim.at(0.5)

        np.testing.assert_allclose(t.apply_point([0.0, 0.0, 0.0]), [1.0, 0.0, 0.0], atol=1e-9)
        assert abs(abs(t.determinant) - 1.0) < 1e-9

    def test_scale_blends_linearly(self):
        from pathtracer.core.transform import AnimatedTransform, Transform

        anim = AnimatedTransform([(0.0, Transform.scale(1.0)), (1.0, Transform.scale([3.0, 1.0, 5.0]))])

        np.testing.assert_allclose(anim.at(0.5).matrix[:3, :3], np.diag([2.0, 1.0, 3.0]), atol=1e-9)

    def test_clamps_outside_key_range(self):
        from pathtracer.core.transform import AnimatedTransform, Transform

        first = Transform.translate([1.0, 0.0, 0.0])
        last = Transform.translate([3.0, 0.0, 0.0])
        anim = AnimatedTransform([(1.0, first), (2.0, last)])

        assert anim.at(-5.0) is first
        assert anim.at(9.0) is last

    def test_single_key_is_static(self):
        from pathtracer.core.transform import AnimatedTransform, Transform

        anim = AnimatedTransform.static(Transform.translate([0.0, 1.0, 0.0]))

        assert not anim.is_animated
        np.testing.assert_allclose(anim.at(3.0).apply_point([0.0, 0.0, 0.0]), [0.0, 1.0, 0.0])

    @pytest.mark.parametrize("times", [[0.0, 0.0], [1.0, 0.5], []])
    def test_times_must_increase(self, times):
        from pathtracer.core.transform import AnimatedTransform, Transform
        from pathtracer.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            AnimatedTransform([(t, Transform.identity()) for t in times], "spinner")

    def test_handedness_change_rejected(self):
        from pathtracer.core.transform import AnimatedTransform, Transform
        from pathtracer.errors import ConfigurationError

        with pytest.raises(ConfigurationError, match="handedness"):
            AnimatedTransform([(0.0, Transform.identity()), (1.0, Transform.scale([-1.0, 1.0, 1.0]))])

    def test_parse_keyframes(self):
        from pathtracer.core.transform import parse_keyframes

        anim = parse_keyframes(
            [
                {"time": 0.0, "transform": [{"type": "translate", "translation": [0.0, 0.0, 0.0]}]},
                {"time": 1.0, "transform": [{"type": "translate", "translation": [0.0, 2.0, 0.0]}]},
            ],
            "ball",
        )

        assert anim.times == [0.0, 1.0]
        np.testing.assert_allclose(anim.at(0.25).apply_point([0.0, 0.0, 0.0]), [0.0, 0.5, 0.0], atol=1e-12)

    @pytest.mark.parametrize("keyframes", [[], [{"time": 0.0}], [{"transform": []}], "spin"])
    def test_malformed_keyframes(self, keyframes):
        from pathtracer.core.transform import parse_keyframes
        from pathtracer.errors import ConfigurationError

        with pytest.raises(ConfigurationError) as info:
            parse_keyframes(keyframes, "ball")
        assert info.value.object_name == "ball"

class TestTaichiHelpers:
    """Tests for the kernel-side transform helpers."""

    def test_point_vector_normal(self):
        """transform_point applies translation, transform_vector does not."""
        from pathtracer.core.transform import Transform, transform_normal, transform_point, transform_vector

        t = Transform.translate([1.0, 2.0, 3.0]) * Transform.scale([2.0, 1.0, 1.0])
        m = ti.Matrix.field(4, 4, dtype=ti.f32, shape=())
        nm = ti.Matrix.field(3, 3, dtype=ti.f32, shape=())
        m.from_numpy(t.matrix.astype(np.float32))
        nm.from_numpy(t.normal_matrix.astype(np.float32))
        results = ti.Vector.field(3, dtype=ti.f32, shape=3)

        @ti.kernel
        def test_kernel():
            p = ti.math.vec3(1.0, 1.0, 1.0)
            results[0] = transform_point(m[None], p)
            results[1] = transform_vector(m[None], p)
            results[2] = transform_normal(nm[None], ti.math.vec3(1.0, 1.0, 0.0))

        test_kernel()
        out = results.to_numpy()
        np.testing.assert_allclose(out[0], [3.0, 3.0, 4.0], atol=1e-6)
        np.testing.assert_allclose(out[1], [2.0, 1.0, 1.0], atol=1e-6)
        expected = np.array([0.5, 1.0, 0.0]) / math.sqrt(1.25)
        np.testing.assert_allclose(out[2], expected, atol=1e-6)
