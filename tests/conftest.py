"""Pytest configuration for pathtracer tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session, and small scene
document builders used by the scene and integrator tests.
"""

import copy

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield


BASE_DOCUMENT = {
    "film": {"width": 8, "height": 8, "samples": 4},
    "camera": {
        "fov": 30.0,
        "transform": [{"type": "translate", "translation": [0.0, 0.0, 5.0]}],
    },
    "integrator": {"type": "pathtracer", "min_depth": 3, "max_depth": 8},
    "materials": [
        {"name": "white", "type": "matte", "diffuse": [0.5, 0.5, 0.5], "roughness": 0.0},
        {"name": "black", "type": "matte", "diffuse": [0.0, 0.0, 0.0], "roughness": 0.0},
    ],
    "objects": [
        {
            "name": "ball",
            "type": "receiver",
            "material": "white",
            "geometry": {"type": "sphere", "radius": 1.0},
            "transform": [],
        }
    ],
}


@pytest.fixture
def base_document():
    """A deep copy of a minimal valid scene document that tests may mutate."""
    return copy.deepcopy(BASE_DOCUMENT)


def furnace_document(
    radiance: float, albedo: float, min_depth: int, max_depth: int, samples: int = 64, size: int = 8
) -> dict:
    """Camera at the center of a two-sided emitting sphere that also reflects diffusely.

    Every path sees emission L at each bounce, so the expected pixel value
    is L * (1 - albedo^(max_depth + 1)) / (1 - albedo).
    """
    return {
        "film": {
            "width": size,
            "height": size,
            "samples": samples,
            "filter": {"type": "box", "width": 0.5, "height": 0.5},
        },
        "camera": {"fov": 60.0, "transform": []},
        "integrator": {"type": "pathtracer", "min_depth": min_depth, "max_depth": max_depth},
        "materials": [{"name": "wall", "type": "matte", "diffuse": [albedo] * 3}],
        "objects": [
            {
                "name": "furnace",
                "type": "emitter",
                "emitter": "area",
                "material": "wall",
                "emission": [radiance, radiance, radiance],
                "two_sided": True,
                "geometry": {"type": "sphere", "radius": 3.0},
                "transform": [],
            }
        ],
    }


@pytest.fixture
def make_furnace():
    return furnace_document
