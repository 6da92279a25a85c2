import numpy as np
import pandas as pd
import pytest

from optram import MissingBandError, Scene, SceneCollection

from conftest import uniform_scene


def test_missing_band():
    scene = uniform_scene('2022-01-01', NDVI=0.5)
    with pytest.raises(MissingBandError) as info:
        scene.band('STR')
    assert 'STR' in str(info.value)


def test_with_bands_returns_new_scene():
    scene = uniform_scene('2022-01-01', NDVI=0.5)
    other = scene.with_bands(STR=np.ones((2, 2)))
    assert scene.bands == ('NDVI',)
    assert set(other.bands) == {'NDVI', 'STR'}
    assert other.time == scene.time
    assert other.transform == scene.transform


def test_collection_rejects_mixed_grids():
    with pytest.raises(ValueError):
        SceneCollection([
            uniform_scene('2022-01-01', NDVI=0.5),
            uniform_scene('2022-01-02', shape=(3, 3), NDVI=0.5),
        ])


def test_filter_date_inclusive():
    collection = SceneCollection([
        uniform_scene('2021-06-30', NDVI=0.1),
        uniform_scene('2021-07-01', NDVI=0.2),
        uniform_scene('2024-06-30', NDVI=0.3),
        uniform_scene('2024-07-01', NDVI=0.4),
    ])
    kept = collection.filter_date('2021-07-01', '2024-06-30')
    assert [s.scene_id for s in kept] == ['2021-07-01', '2024-06-30']


def test_stack_dims():
    collection = SceneCollection([
        uniform_scene('2022-01-01', NDVI=0.1),
        uniform_scene('2022-01-02', NDVI=0.2),
    ])
    stacked = collection.stack('NDVI')
    assert stacked.dims == ('time', 'y', 'x')
    assert list(stacked['time'].values) == list(collection.times.values)


def test_median_composite_ignores_nan():
    a = Scene({'NDVI': np.array([[0.1, np.nan]])}, time='2022-01-01')
    b = Scene({'NDVI': np.array([[0.3, np.nan]])}, time='2022-01-03')
    c = Scene({'NDVI': np.array([[0.2, 0.5]])}, time='2022-01-05')
    composite = SceneCollection([a, b, c]).median()

    values = composite.band('NDVI').values
    assert values[0, 0] == pytest.approx(0.2)
    assert values[0, 1] == pytest.approx(0.5)
    assert composite.time == pd.Timestamp('2022-01-03')
    assert composite.metadata['n_scenes'] == 3
