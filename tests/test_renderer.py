"""Tests for the rendering driver.

Tests cover:
- Progressive rendering reports (done, target) per batch
- Frame statistics
- Multi-frame renders and per-frame random streams
- Seed determinism
- Keyframed objects and emission change between frames
- A small Cornell box smoke render
"""

import numpy as np


def _renderer(document, **settings):
    from pathtracer.config import RenderSettings
    from pathtracer.core.renderer import Renderer
    from pathtracer.scene.loader import load_scene

    return Renderer(load_scene(document), RenderSettings(**settings))


class TestProgressive:
    """Tests for render_progressive and callbacks."""

    def test_batches(self, base_document):
        base_document["film"]["samples"] = 5
        renderer = _renderer(base_document)

        progress = list(renderer.render_progressive(frame=0, batch_size=2))

        assert progress == [(2, 5), (4, 5), (5, 5)]

    def test_callback_and_stats(self, base_document):
        renderer = _renderer(base_document, batch_size=3)
        calls = []

        image = renderer.render_frame(0, callback=lambda done, target: calls.append((done, target)))

        assert calls == [(3, 4), (4, 4)]
        assert image.shape == (8, 8, 3)
        assert renderer.last_stats.frame == 0
        assert renderer.last_stats.samples == 4
        assert renderer.last_stats.seconds >= 0.0

    def test_empty_scene_is_black(self, base_document, caplog):
        """Without emitters the renderer warns at load time and produces zeros."""
        with caplog.at_level("WARNING"):
            renderer = _renderer(base_document)
        image = renderer.render_frame(0)

        assert "no emitters" in caplog.text
        assert np.all(image == 0.0)


class TestFrames:
    """Tests for frame ranges and random streams."""

    def test_render_every_frame(self, make_furnace):
        document = make_furnace(radiance=1.0, albedo=0.5, min_depth=0, max_depth=4, samples=2)
        document["film"].update({"frames": 3, "scene_time": 1.0})
        renderer = _renderer(document)

        images = renderer.render()

        assert sorted(images) == [0, 1, 2]
        assert not np.array_equal(images[0], images[1])

    def test_same_seed_same_image(self, make_furnace):
        document = make_furnace(radiance=1.0, albedo=0.5, min_depth=0, max_depth=4, samples=2)

        first = _renderer(document, seed=11).render_frame(0)
        second = _renderer(document, seed=11).render_frame(0)
        other = _renderer(document, seed=12).render_frame(0)

        np.testing.assert_array_equal(first, second)
        assert not np.array_equal(first, other)



class TestAnimation:
    """Frames render the scene at their own scene time."""

    def test_object_moves_out_of_view(self):
        """A glowing sphere in front of the camera at frame 0 has left the frame by frame 1."""
        document = {
            "film": {"width": 8, "height": 8, "samples": 2, "frames": 2, "scene_time": 2.0},
            "camera": {"fov": 30.0, "transform": []},
            "integrator": {"type": "pathtracer", "min_depth": 3, "max_depth": 4},
            "materials": [{"name": "black", "type": "matte", "diffuse": [0.0, 0.0, 0.0]}],
            "objects": [
                {
                    "name": "glow",
                    "type": "emitter",
                    "emitter": "area",
                    "material": "black",
                    "emission": [1.0, 1.0, 1.0],
                    "geometry": {"type": "sphere", "radius": 1.0},
                    "keyframes": [
                        {"time": 0.0, "transform": [{"type": "translate", "translation": [0.0, 0.0, -5.0]}]},
                        {"time": 1.0, "transform": [{"type": "translate", "translation": [50.0, 0.0, -5.0]}]},
                    ],
                }
            ],
        }
        renderer = _renderer(document)

        images = renderer.render()

        assert images[0].mean() > 0.1
        assert np.all(images[1] == 0.0)

    def test_emission_keys_per_frame(self, make_furnace):
        """Frame f renders the emission keyed at t = scene_time * f / frames."""
        document = make_furnace(radiance=1.0, albedo=0.0, min_depth=3, max_depth=8, samples=2)
        document["film"].update({"frames": 2, "scene_time": 2.0})
        document["objects"][0]["emission"] = [
            {"time": 0.0, "color": [0.0, 0.0, 0.0]},
            {"time": 1.0, "color": [2.0, 2.0, 2.0]},
        ]
        renderer = _renderer(document)

        first = renderer.render_frame(0)
        second = renderer.render_frame(1)

        np.testing.assert_allclose(first, 0.0, atol=1e-6)
        np.testing.assert_allclose(second, 2.0, rtol=1e-4)

    def test_start_frame_time(self):
        from pathtracer.scene.loader import load_scene

        document = {
            "film": {
                "width": 4,
                "height": 4,
                "samples": 1,
                "start_frame": 1,
                "end_frame": 1,
                "frames": 2,
                "scene_time": 2.0,
            },
            "camera": {"fov": 30.0, "transform": []},
            "integrator": {"type": "pathtracer", "min_depth": 3, "max_depth": 4},
            "materials": [{"name": "white", "type": "matte", "diffuse": [0.5, 0.5, 0.5]}],
            "objects": [
                {
                    "name": "ball",
                    "type": "receiver",
                    "material": "white",
                    "geometry": {"type": "sphere", "radius": 1.0},
                    "keyframes": [
                        {"time": 0.0, "transform": []},
                        {"time": 1.0, "transform": [{"type": "translate", "translation": [0.0, 6.0, 0.0]}]},
                    ],
                }
            ],
        }

        scene = load_scene(document)

        np.testing.assert_allclose(scene.graph.instances[0].world.apply_point([0, 0, 0]), [0, 6, 0])

class TestCornellBox:
    """Smoke render of the preset scene."""

    def test_small_render(self):
        from pathtracer.core.renderer import Renderer
        from pathtracer.scene.presets import CornellBoxParams, create_cornell_box_scene

        scene = create_cornell_box_scene(CornellBoxParams(width=16, height=12, samples=2))
        renderer = Renderer(scene)
        image = renderer.render_frame(0)

        assert image.shape == (12, 16, 3)
        assert np.all(np.isfinite(image))
        assert image.mean() > 0.0
        assert renderer.last_stats.anomalies == 0
