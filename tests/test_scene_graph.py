"""Unit tests for scene loading, ray casting and light sampling.

Tests cover:
- Building instances and lights from a document
- Nested group transforms in world-space hits
- Normals and area Jacobians under non-uniform scale
- Power-proportional light selection
- Area light sampling density agreeing with light_pdf
- One-sided and point emitters
- Re-placing keyframed objects and lights with set_time
"""

import math

import numpy as np
import pytest
import taichi as ti


def _scene(objects, materials=None):
    from pathtracer.scene.loader import load_scene

    document = {
        "film": {"width": 4, "height": 4, "samples": 1},
        "camera": {"fov": 40.0, "transform": []},
        "integrator": {"type": "pathtracer", "min_depth": 3, "max_depth": 5},
        "materials": materials or [{"name": "white", "type": "matte", "diffuse": [0.5, 0.5, 0.5]}],
        "objects": objects,
    }
    return load_scene(document)


def _sphere(name, radius=1.0, transform=None):
    return {
        "name": name,
        "type": "receiver",
        "material": "white",
        "geometry": {"type": "sphere", "radius": radius},
        "transform": transform or [],
    }


def _disk_light(name, emission, transform=None, two_sided=False, radius=1.0):
    return {
        "name": name,
        "type": "emitter",
        "emitter": "area",
        "material": "white",
        "emission": emission,
        "two_sided": two_sided,
        "geometry": {"type": "disk", "radius": radius},
        "transform": transform or [],
    }


class TestLoading:
    """Tests for build_scene."""

    def test_counts(self):
        scene = _scene([_sphere("a"), _disk_light("lamp", [1, 1, 1])])

        assert scene.graph.instance_count == 2
        assert scene.graph.light_count == 1
        assert scene.graph.instances[1].light == 0
        assert scene.graph.lights[0].instance == 1

    def test_unknown_material_reference(self):
        from pathtracer.errors import ConfigurationError

        obj = _sphere("ball")
        obj["material"] = "chrome"
        with pytest.raises(ConfigurationError, match="unknown material") as info:
            _scene([obj])
        assert info.value.object_name == "ball"

    def test_empty_scene(self):
        from pathtracer.errors import ConfigurationError

        with pytest.raises(ConfigurationError, match="no objects"):
            _scene([{"name": "empty", "type": "group", "objects": []}])

    def test_missing_mesh_resource(self):
        from pathtracer.errors import ResourceError

        obj = {
            "name": "bunny",
            "type": "receiver",
            "material": "white",
            "geometry": {"type": "mesh", "file": "bunny.mesh", "model": "bunny"},
        }
        with pytest.raises(ResourceError):
            _scene([obj])

    def test_no_emitters_warns(self, caplog):
        with caplog.at_level("WARNING"):
            _scene([_sphere("a")])
        assert "no emitters" in caplog.text

    def test_point_light_position_follows_transform(self):
        scene = _scene(
            [
                _sphere("a"),
                {
                    "name": "bulb",
                    "type": "emitter",
                    "emitter": "point",
                    "emission": [1, 1, 1],
                    "position": [1, 0, 0],
                    "transform": [{"type": "translate", "translation": [0, 3, 0]}],
                },
            ]
        )
        assert scene.graph.lights[0].position == (1.0, 3.0, 0.0)


class TestCastRay:
    """Tests for world-space intersection."""

    def test_nested_groups(self):
        """A sphere inside translate -> scale -> translate groups sits at (0, 2, 0)."""
        tree = {
            "name": "outer",
            "type": "group",
            "transform": [{"type": "translate", "translation": [0, 1, 0]}],
            "objects": [
                {
                    "name": "inner",
                    "type": "group",
                    "transform": [{"type": "scale", "scaling": 2.0}],
                    "objects": [
                        _sphere("ball", 0.25, [{"type": "translate", "translation": [0, 0.5, 0]}]),
                    ],
                }
            ],
        }
        scene = _scene([tree])
        info = scene.graph.cast_ray((0.0, 2.0, 5.0), (0.0, 0.0, -1.0))

        assert info.hit
        assert info.instance == "ball"
        # Radius 0.25 scaled by 2
        assert abs(info.t - 4.5) < 1e-4
        np.testing.assert_allclose(info.point, [0.0, 2.0, 0.5], atol=1e-4)
        np.testing.assert_allclose(info.normal, [0.0, 0.0, 1.0], atol=1e-5)

    def test_nearest_instance_wins(self):
        scene = _scene(
            [
                _sphere("far", 1.0, [{"type": "translate", "translation": [0, 0, -5]}]),
                _sphere("near", 1.0),
            ]
        )
        info = scene.graph.cast_ray((0.0, 0.0, 5.0), (0.0, 0.0, -1.0))
        assert info.instance == "near"
        assert abs(info.t - 4.0) < 1e-4

    def test_miss(self):
        scene = _scene([_sphere("a")])
        info = scene.graph.cast_ray((0.0, 0.0, 5.0), (0.0, 1.0, 0.0))
        assert not info.hit
        assert info.instance is None

    def test_non_uniform_scale_normal(self):
        """An ellipsoid's normal uses the inverse transpose."""
        scene = _scene([_sphere("egg", 1.0, [{"type": "scale", "scaling": [2.0, 1.0, 1.0]}])])

        side = scene.graph.cast_ray((5.0, 0.0, 0.0), (-1.0, 0.0, 0.0))
        assert abs(side.t - 3.0) < 1e-4
        np.testing.assert_allclose(side.normal, [1.0, 0.0, 0.0], atol=1e-5)

        # On x^2/4 + y^2 + z^2 = 1 the normal is proportional to (x/4, y, z)
        p = np.array([1.0, 0.5, math.sqrt(0.5)])
        oblique = scene.graph.cast_ray((1.0, 0.5, 3.0), (0.0, 0.0, -1.0), t_max=10.0)
        assert abs(oblique.t - (3.0 - p[2])) < 1e-4
        expected = np.array([p[0] / 4.0, p[1], p[2]])
        expected /= np.linalg.norm(expected)
        np.testing.assert_allclose(oblique.normal, expected, atol=1e-3)

    def test_disk_back_face(self):
        scene = _scene([_disk_light("lamp", [1, 1, 1])])
        info = scene.graph.cast_ray((0.0, 0.0, -2.0), (0.0, 0.0, 1.0))
        assert info.hit
        assert not info.front_face
        assert info.light == 0


class TestLightSelection:
    """Tests for power-weighted light choice."""

    def test_point_lights_by_intensity(self):
        scene = _scene(
            [
                _sphere("a"),
                {"name": "dim", "type": "emitter", "emitter": "point", "emission": [1, 1, 1]},
                {"name": "bright", "type": "emitter", "emitter": "point", "emission": [3, 3, 3]},
            ]
        )
        np.testing.assert_allclose(scene.graph.light_pmf.to_numpy(), [0.25, 0.75], atol=1e-6)
        assert scene.graph.light_cdf.to_numpy()[-1] == 1.0

    def test_two_sided_counts_twice(self):
        scene = _scene([_disk_light("one", [1, 1, 1]), _disk_light("two", [1, 1, 1], two_sided=True)])
        np.testing.assert_allclose(scene.graph.light_pmf.to_numpy(), [1 / 3, 2 / 3], atol=1e-6)

    def test_scaled_area_counts(self):
        """A disk scaled by 2 has four times the area and four times the weight."""
        scene = _scene(
            [
                _disk_light("small", [1, 1, 1]),
                _disk_light("large", [1, 1, 1], [{"type": "scale", "scaling": 2.0}]),
            ]
        )
        np.testing.assert_allclose(scene.graph.light_pmf.to_numpy(), [0.2, 0.8], atol=1e-5)

    def test_uniform_fallback(self, caplog):
        """Black emitters fall back to uniform selection."""
        from pathtracer.scene.lights import LIGHT_POINT, Light, selection_distribution

        with caplog.at_level("WARNING"):
            cdf, pmf = selection_distribution([Light("a", LIGHT_POINT, (0, 0, 0)), Light("b", LIGHT_POINT, (0, 0, 0))])
        np.testing.assert_allclose(pmf, [0.5, 0.5])
        assert cdf[-1] == 1.0
        assert "uniformly" in caplog.text


class TestLightSampling:
    """Tests for sampling points on lights and their densities."""

    def _sample_and_pdf(self, scene, point, u):
        """Sample a light from point, then recompute the density by casting toward the sample."""
        graph = scene.graph
        radiance = ti.Vector.field(3, dtype=ti.f32, shape=())
        sampled_pdf = ti.field(dtype=ti.f32, shape=())
        recomputed = ti.field(dtype=ti.f32, shape=())
        delta = ti.field(dtype=ti.i32, shape=())
        distance = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            for _ in range(1):
                p = ti.math.vec3(point[0], point[1], point[2])
                s = graph.sample_light(p, ti.math.vec3(u[0], u[1], u[2]))
                radiance[None] = s.radiance
                sampled_pdf[None] = s.pdf
                delta[None] = s.is_delta
                distance[None] = s.distance
                if s.pdf > 0.0 and s.is_delta == 0:
                    h = graph.intersect(p, s.direction, 1e-4, 1e30)
                    recomputed[None] = graph.light_pdf(h.light, p, h)

        test_kernel()
        return radiance.to_numpy(), sampled_pdf[None], recomputed[None], delta[None], distance[None]

    @pytest.mark.parametrize("u", [(0.1, 0.2, 0.5), (0.7, 0.9, 0.5), (0.45, 0.05, 0.5)])
    def test_disk_pdf_matches_light_pdf(self, u):
        """Sampling density and light_pdf agree, under a non-uniform scale too."""
        scene = _scene(
            [
                _disk_light(
                    "lamp",
                    [2, 2, 2],
                    [
                        {"type": "scale", "scaling": [2.0, 0.5, 1.0]},
                        {"type": "rotate_x", "rotation": 180.0},
                        {"type": "translate", "translation": [0, 0, 3]},
                    ],
                )
            ]
        )
        radiance, pdf, recomputed, delta, _ = self._sample_and_pdf(scene, (0.3, -0.2, 0.0), u)

        assert delta == 0
        assert pdf > 0.0
        np.testing.assert_allclose(radiance, [2.0, 2.0, 2.0])
        assert abs(pdf - recomputed) / pdf < 1e-3

    def test_sphere_pdf_matches_light_pdf(self):
        scene = _scene([_disk_light("floor", [1, 1, 1]), {**_sphere("sun"), "type": "emitter", "emission": [5, 5, 5]}])
        _, pdf, recomputed, _, _ = self._sample_and_pdf(scene, (0.0, 0.0, 4.0), (0.3, 0.3, 0.99))

        assert pdf > 0.0
        assert abs(pdf - recomputed) / pdf < 1e-3

    def test_disk_area_density(self):
        """Straight below a unit disk at height h, pdf = h^2 / (pi R^2) times the pmf."""
        scene = _scene([_disk_light("lamp", [1, 1, 1], [{"type": "rotate_x", "rotation": 180.0}, {"type": "translate", "translation": [0, 0, 2]}])])
        _, pdf, _, _, distance = self._sample_and_pdf(scene, (0.0, 0.0, 0.0), (0.0, 0.0, 0.5))

        # u.x = 0 samples the disk center
        assert abs(distance - 2.0) < 1e-5
        assert abs(pdf - 4.0 / math.pi) < 1e-4

    def test_one_sided_back_gives_nothing(self):
        """A disk facing +Z emits nothing toward points below it."""
        scene = _scene([_disk_light("lamp", [1, 1, 1], [{"type": "translate", "translation": [0, 0, 2]}])])
        radiance, pdf, _, _, _ = self._sample_and_pdf(scene, (0.0, 0.0, 0.0), (0.3, 0.4, 0.5))

        assert pdf == 0.0
        np.testing.assert_allclose(radiance, [0.0, 0.0, 0.0])

    def test_point_light(self):
        """Point lights are delta samples with inverse-square falloff."""
        scene = _scene(
            [
                _sphere("a", 0.1, [{"type": "translate", "translation": [10, 0, 0]}]),
                {"name": "bulb", "type": "emitter", "emitter": "point", "emission": [8, 8, 8], "position": [0, 2, 0]},
            ]
        )
        radiance, pdf, _, delta, distance = self._sample_and_pdf(scene, (0.0, 0.0, 0.0), (0.5, 0.5, 0.5))

        assert delta == 1
        assert abs(pdf - 1.0) < 1e-6
        assert abs(distance - 2.0) < 1e-6
        np.testing.assert_allclose(radiance, [2.0, 2.0, 2.0], atol=1e-6)

    def test_no_lights(self):
        scene = _scene([_sphere("a")])
        _, pdf, _, _, _ = self._sample_and_pdf(scene, (0.0, 0.0, 3.0), (0.5, 0.5, 0.5))
        assert pdf == 0.0


def _keys(start, end, duration=1.0):
    return [
        {"time": 0.0, "transform": [{"type": "translate", "translation": start}]},
        {"time": duration, "transform": [{"type": "translate", "translation": end}]},
    ]


class TestAnimation:
    """Tests for Scene.set_time."""

    def test_object_moves_with_time(self):
        ball = dict(_sphere("ball"), keyframes=_keys([0.0, 0.0, 0.0], [4.0, 0.0, 0.0]))
        scene = _scene([ball])
        assert scene.animated
        assert scene.graph.cast_ray((0.0, 0.0, 5.0), (0.0, 0.0, -1.0)).instance == "ball"

        scene.set_time(1.0)

        assert not scene.graph.cast_ray((0.0, 0.0, 5.0), (0.0, 0.0, -1.0)).hit
        info = scene.graph.cast_ray((4.0, 0.0, 5.0), (0.0, 0.0, -1.0))
        assert info.instance == "ball"
        assert abs(info.t - 4.0) < 1e-4

    def test_halfway(self):
        ball = dict(_sphere("ball"), keyframes=_keys([0.0, 0.0, 0.0], [4.0, 0.0, 0.0], duration=2.0))
        scene = _scene([ball])

        scene.set_time(1.0)

        np.testing.assert_allclose(scene.graph.instances[0].world.apply_point([0, 0, 0]), [2, 0, 0], atol=1e-12)
        assert scene.graph.cast_ray((2.0, 0.0, 5.0), (0.0, 0.0, -1.0)).instance == "ball"

    def test_emission_keys_change_light_selection(self):
        fading = _disk_light("fading", [{"time": 0.0, "color": [1, 1, 1]}, {"time": 1.0, "color": [3, 3, 3]}])
        scene = _scene([_disk_light("steady", [1, 1, 1]), fading])
        np.testing.assert_allclose(scene.graph.light_pmf.to_numpy(), [0.5, 0.5], atol=1e-6)

        scene.set_time(1.0)

        np.testing.assert_allclose(scene.graph.light_pmf.to_numpy(), [0.25, 0.75], atol=1e-6)
        np.testing.assert_allclose(scene.graph.light_radiance.to_numpy()[1], [3, 3, 3])

    def test_point_light_follows_keyframes(self):
        bulb = {
            "name": "bulb",
            "type": "emitter",
            "emitter": "point",
            "emission": [1, 1, 1],
            "keyframes": _keys([0.0, 1.0, 0.0], [0.0, 3.0, 0.0]),
        }
        scene = _scene([_sphere("a"), bulb])

        scene.set_time(0.5)

        assert scene.graph.lights[0].position == (0.0, 2.0, 0.0)
        np.testing.assert_allclose(scene.graph.light_position.to_numpy()[0], [0, 2, 0])

    def test_static_scene(self):
        scene = _scene([_sphere("a")])

        scene.set_time(3.0)

        assert not scene.animated
        assert scene.graph.cast_ray((0.0, 0.0, 5.0), (0.0, 0.0, -1.0)).instance == "a"
