"""Unit tests for the ray module.

Tests cover:
- Ray dataclass and ray_at function
- Reflection and refraction, including total internal reflection
- Orthonormal basis construction and local/world frame changes
- Ray origin offsets
"""

import numpy as np
import pytest
import taichi as ti


class TestRayBasics:
    """Tests for Ray dataclass and basic operations."""

    def test_ray_at(self):
        """ray_at returns origin at t=0 and walks along the direction otherwise."""
        from pathtracer.core.ray import Ray, ray_at, vec3

        result = ti.Vector.field(3, dtype=ti.f32, shape=2)

        @ti.kernel
        def test_kernel():
            ray = Ray(origin=vec3(1.0, 2.0, 3.0), direction=vec3(0.0, 0.0, -1.0))
            result[0] = ray_at(ray, 0.0)
            result[1] = ray_at(ray, 5.0)

        test_kernel()
        np.testing.assert_allclose(result.to_numpy(), [[1, 2, 3], [1, 2, -2]], atol=1e-6)


class TestReflectRefract:
    """Tests for mirror and Snell directions."""

    def test_reflect(self):
        from pathtracer.core.ray import reflect, vec3

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            wo = vec3(1.0, 0.0, 1.0).normalized()
            result[None] = reflect(wo, vec3(0.0, 0.0, 1.0))

        test_kernel()
        s = np.sqrt(0.5)
        np.testing.assert_allclose(result.to_numpy(), [-s, 0.0, s], atol=1e-6)

    def test_refract_obeys_snell(self):
        """sin(theta_t) = eta * sin(theta_i) with eta = 1 / 1.5."""
        from pathtracer.core.ray import refract, vec3

        result = ti.Vector.field(3, dtype=ti.f32, shape=())
        ok = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            wo = vec3(ti.sin(0.5), 0.0, ti.cos(0.5))
            d, good = refract(wo, vec3(0.0, 0.0, 1.0), 1.0 / 1.5)
            result[None] = d
            ok[None] = good

        test_kernel()
        d = result.to_numpy()
        assert ok[None] == 1
        assert d[2] < 0.0
        assert abs(np.linalg.norm(d) - 1.0) < 1e-5
        assert abs(abs(d[0]) - np.sin(0.5) / 1.5) < 1e-5
        assert d[0] < 0.0

    def test_total_internal_reflection(self):
        from pathtracer.core.ray import refract, vec3

        result = ti.Vector.field(3, dtype=ti.f32, shape=())
        ok = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            wo = vec3(ti.sin(1.2), 0.0, ti.cos(1.2))
            d, good = refract(wo, vec3(0.0, 0.0, 1.0), 1.5)
            result[None] = d
            ok[None] = good

        test_kernel()
        assert ok[None] == 0
        np.testing.assert_allclose(result.to_numpy(), 0.0)


class TestFrames:
    """Tests for orthonormal bases and frame changes."""

    @pytest.mark.parametrize(
        "normal",
        [(0.0, 0.0, 1.0), (0.0, 0.0, -1.0), (1.0, 0.0, 0.0), (0.3, -0.5, 0.81)],
    )
    def test_onb_is_orthonormal(self, normal):
        from pathtracer.core.ray import build_onb_from_normal, vec3

        frame = ti.Vector.field(3, dtype=ti.f32, shape=3)
        n_host = np.array(normal) / np.linalg.norm(normal)

        @ti.kernel
        def test_kernel():
            t, b, n = build_onb_from_normal(vec3(n_host[0], n_host[1], n_host[2]))
            frame[0] = t
            frame[1] = b
            frame[2] = n

        test_kernel()
        basis = frame.to_numpy()
        np.testing.assert_allclose(basis @ basis.T, np.eye(3), atol=1e-5)
        assert np.linalg.det(basis) > 0.0

    def test_local_world_round_trip(self):
        from pathtracer.core.ray import build_onb_from_normal, local_to_world, vec3, world_to_local

        result = ti.Vector.field(3, dtype=ti.f32, shape=2)

        @ti.kernel
        def test_kernel():
            n = vec3(0.0, 1.0, 0.0)
            t, b, n2 = build_onb_from_normal(n)
            v = vec3(0.2, 0.7, -0.4)
            local = world_to_local(v, t, b, n2)
            result[0] = local
            result[1] = local_to_world(local, t, b, n2)

        test_kernel()
        local, back = result.to_numpy()
        assert abs(local[2] - 0.7) < 1e-6
        np.testing.assert_allclose(back, [0.2, 0.7, -0.4], atol=1e-6)


class TestOffset:
    """Tests for offset_ray_origin."""

    def test_offset_follows_direction(self):
        """Outgoing rays move above the surface, transmitted ones below."""
        from pathtracer.core.ray import RAY_EPSILON, offset_ray_origin, vec3

        result = ti.Vector.field(3, dtype=ti.f32, shape=3)

        @ti.kernel
        def test_kernel():
            n = vec3(0.0, 0.0, 1.0)
            result[0] = offset_ray_origin(vec3(0.0, 0.0, 0.0), n, vec3(0.0, 0.0, 1.0))
            result[1] = offset_ray_origin(vec3(0.0, 0.0, 0.0), n, vec3(0.0, 0.0, -1.0))
            result[2] = offset_ray_origin(vec3(100.0, 0.0, 0.0), n, vec3(0.0, 0.0, 1.0))

        test_kernel()
        up, down, far = result.to_numpy()
        assert abs(up[2] - RAY_EPSILON) < 1e-9
        assert abs(down[2] + RAY_EPSILON) < 1e-9
        assert abs(far[2] - 100.0 * RAY_EPSILON) < 1e-7
