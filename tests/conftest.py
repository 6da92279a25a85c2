"""
Shared fixtures.

Scenes are small synthetic grids on a unit transform (origin (0, rows),
1 x 1 pixels), so ``box(0, 0, cols, rows)`` covers every pixel centre.
"""

import numpy as np
import pytest
from shapely.geometry import box

from optram import Region, Scene, SceneCollection


def uniform_scene(time, shape=(2, 2), **bands):
    """Scene with every band filled with one value."""
    return Scene(
        {name: np.full(shape, value, dtype=float) for name, value in bands.items()},
        time=time,
    )


@pytest.fixture
def make_scene():
    return uniform_scene


@pytest.fixture
def scenario_collection():
    """Three scenes: two full cover, one bare soil."""
    return SceneCollection([
        uniform_scene('2022-01-10', NDVI=0.65, STR=1.2),
        uniform_scene('2022-02-10', NDVI=0.15, STR=2.0),
        uniform_scene('2022-03-10', NDVI=0.62, STR=1.1),
    ])


@pytest.fixture
def full_region():
    return Region('all', box(0, 0, 2, 2))


@pytest.fixture
def outside_region():
    return Region('outside', box(10, 10, 12, 12))
