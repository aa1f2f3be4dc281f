"""Unit tests for reconstruction filters and film accumulation.

Tests cover:
- Mitchell-Netravali piecewise cubic values and continuity
- Kernel-side filter weights agreeing with the host reference
- Splatting and normalization by accumulated weight
- Constant-radiance scenes reproduce the constant for every filter
"""

import numpy as np
import pytest
import taichi as ti


class TestMitchell:
    """Tests for the host-side Mitchell-Netravali kernel."""

    def test_center_value(self):
        """k(0) = (6 - 2B) / 6."""
        from pathtracer.film.filters import mitchell_1d

        assert abs(mitchell_1d(0.0, 1 / 3, 1 / 3) - (6 - 2 / 3) / 6) < 1e-12

    def test_zero_outside_support(self):
        from pathtracer.film.filters import mitchell_1d

        assert mitchell_1d(2.0, 1 / 3, 1 / 3) == 0.0
        assert mitchell_1d(-3.5, 1 / 3, 1 / 3) == 0.0

    def test_continuous_at_one(self):
        """Both cubic pieces meet at |x| = 1."""
        from pathtracer.film.filters import mitchell_1d

        left = mitchell_1d(1.0 - 1e-9, 1 / 3, 1 / 3)
        right = mitchell_1d(1.0 + 1e-9, 1 / 3, 1 / 3)
        assert abs(left - right) < 1e-6

    def test_negative_lobe(self):
        """With B = 0, C = 0.5 the kernel dips below zero between 1 and 2."""
        from pathtracer.film.filters import mitchell_1d

        assert mitchell_1d(1.5, 0.0, 0.5) < 0.0

    def test_symmetric(self):
        from pathtracer.film.filters import mitchell_1d

        assert mitchell_1d(0.7, 0.2, 0.4) == mitchell_1d(-0.7, 0.2, 0.4)


class TestFilterEvaluation:
    """Kernel evaluation must match the host reference."""

    @pytest.mark.parametrize("kind", ["mitchell", "box", "gaussian"])
    def test_kernel_matches_host(self, kind):
        from pathtracer.film.filters import FilterKind, FilterSpec, ReconstructionFilter

        kinds = {
            "mitchell": FilterKind.MITCHELL_NETRAVALI,
            "box": FilterKind.BOX,
            "gaussian": FilterKind.GAUSSIAN,
        }
        filt = ReconstructionFilter(FilterSpec(kind=kinds[kind], width=1.5, height=2.0))
        offsets = [(0.0, 0.0), (0.4, -0.3), (1.2, 0.5), (-0.9, 1.8), (1.6, 0.0), (0.0, -2.1)]
        results = ti.field(dtype=ti.f32, shape=len(offsets))

        @ti.kernel
        def test_kernel():
            for i in ti.static(range(len(offsets))):
                results[i] = filt.evaluate(offsets[i][0], offsets[i][1])

        test_kernel()
        expected = [filt.weight(dx, dy) for dx, dy in offsets]
        np.testing.assert_allclose(results.to_numpy(), expected, atol=1e-5)

    def test_invalid_extent(self):
        from pathtracer.errors import ConfigurationError
        from pathtracer.film.filters import FilterSpec

        with pytest.raises(ConfigurationError):
            FilterSpec(width=0.0)


class TestFilm:
    """Tests for accumulation and finalization."""

    def test_box_splat_is_exact(self):
        """A narrow box filter writes a sample only into its own pixel."""
        from pathtracer.film.film import Film
        from pathtracer.film.filters import FilterKind, FilterSpec, ReconstructionFilter

        film = Film(4, 3, ReconstructionFilter(FilterSpec(kind=FilterKind.BOX, width=0.5, height=0.5)))
        film.clear()
        film.splat(1.25, 2.5, (1.0, 2.0, 3.0))
        film.splat(1.75, 2.5, (3.0, 2.0, 1.0))
        image = film.finalize()

        assert image.shape == (3, 4, 3)
        np.testing.assert_allclose(image[2, 1], [2.0, 2.0, 2.0], atol=1e-6)
        assert np.count_nonzero(image.sum(axis=2)) == 1

    def test_wide_filter_normalizes(self):
        """Overlapping splats of one color leave that color wherever weight landed."""
        from pathtracer.film.film import Film
        from pathtracer.film.filters import FilterKind, FilterSpec, ReconstructionFilter

        film = Film(5, 5, ReconstructionFilter(FilterSpec(kind=FilterKind.GAUSSIAN, width=2.0, height=2.0)))
        film.clear()
        for x, y in [(2.5, 2.5), (1.2, 3.7), (3.9, 0.4)]:
            film.splat(x, y, (0.5, 0.5, 0.5))
        image = film.finalize()
        weight = film.weight_sum.to_numpy().T

        np.testing.assert_allclose(image[weight > 0], 0.5, atol=1e-5)

    def test_clear_resets(self):
        from pathtracer.film.film import Film

        film = Film(2, 2)
        film.splat(0.5, 0.5, (1.0, 1.0, 1.0))
        film.clear()
        assert film.weight_sum.to_numpy().sum() == 0.0
        assert film.finalize().sum() == 0.0


class TestConstantScene:
    """A camera inside a uniformly emitting, black sphere sees the same radiance everywhere."""

    @pytest.mark.parametrize(
        "filter_doc",
        [
            {"type": "mitchell_netravali", "width": 2.0, "height": 2.0, "b": 1 / 3, "c": 1 / 3},
            {"type": "mitchell_netravali", "width": 2.0, "height": 2.0, "b": 0.0, "c": 0.5},
            {"type": "box", "width": 0.5, "height": 0.5},
            {"type": "gaussian", "width": 1.5, "height": 1.5, "alpha": 2.0},
        ],
    )
    def test_every_filter_preserves_constant(self, make_furnace, filter_doc):
        from pathtracer.core.renderer import Renderer
        from pathtracer.scene.loader import load_scene

        document = make_furnace(radiance=2.0, albedo=0.0, min_depth=0, max_depth=2, samples=4)
        document["film"]["filter"] = filter_doc
        image = Renderer(load_scene(document)).render_frame(0)

        np.testing.assert_allclose(image, 2.0, rtol=1e-4)
