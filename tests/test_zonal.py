import logging

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
import xarray as xr
from rasterio.transform import from_origin
from shapely.geometry import box

from optram import (
    AggregationEmptyError,
    ModelMixingError,
    Region,
    Scene,
    SceneCollection,
    TrapezoidConfig,
    compute_zonal_stats,
    regional_time_series,
    regions_from_geodataframe,
)
from optram.zonal import reduce_region, region_mask


def sm_scene(time, values, model='OPTRAM'):
    band = xr.DataArray(
        np.asarray(values, dtype=float),
        dims=('y', 'x'),
        attrs={'model': model, 'units': '%' if model == 'OPTRAM' else '1'},
    )
    return Scene({'soil_moisture': band}, time=time)


@pytest.fixture
def sm_collection():
    return SceneCollection([
        sm_scene('2022-01-10', [[1.0, 2.0], [3.0, 4.0]]),
        sm_scene('2022-02-10', [[5.0, np.nan], [np.nan, np.nan]]),
        sm_scene('2022-03-10', [[np.nan, np.nan], [np.nan, np.nan]]),
    ])


class TestRegionMask:

    def test_full_grid(self):
        inside = region_mask(box(0, 0, 2, 2), (2, 2), from_origin(0, 2, 1, 1))
        assert inside.all()

    def test_left_column(self):
        transform = sm_scene('2022-01-01', np.ones((2, 2))).transform
        assert transform == from_origin(0, 2, 1, 1)
        inside = region_mask(Region('left', box(0, 0, 1, 2)), (2, 2), transform)
        np.testing.assert_array_equal(inside, [[True, False], [True, False]])

    def test_top_row(self):
        # Row 0 is the northern row: y in [1, 2]
        transform = sm_scene('2022-01-01', np.ones((2, 2))).transform
        inside = region_mask(box(0, 1, 2, 2), (2, 2), transform)
        np.testing.assert_array_equal(inside, [[True, True], [False, False]])


class TestReduceRegion:

    @pytest.mark.parametrize('reducer, expected', [
        ('mean', 2.5),
        ('min', 1.0),
        ('max', 4.0),
        ('median', 2.5),
        ('sum', 10.0),
        ('count', 4.0),
    ])
    def test_reducers(self, reducer, expected):
        values = np.array([[1.0, 2.0], [3.0, 4.0]])
        stats = reduce_region(values, np.ones((2, 2), dtype=bool), reducer)
        assert stats['value'] == pytest.approx(expected)

    def test_std(self):
        values = np.array([[1.0, 2.0], [3.0, 4.0]])
        stats = reduce_region(values, np.ones((2, 2), dtype=bool), 'std')
        assert stats['value'] == pytest.approx(np.std([1.0, 2.0, 3.0, 4.0]))

    def test_nan_skipped(self):
        values = np.array([[1.0, np.nan], [3.0, np.nan]])
        stats = reduce_region(values, np.ones((2, 2), dtype=bool), 'mean')
        assert stats['value'] == pytest.approx(2.0)
        assert stats['valid_count'] == 2
        assert stats['total_count'] == 4

    def test_empty_raises(self):
        values = np.full((2, 2), np.nan)
        with pytest.raises(AggregationEmptyError):
            reduce_region(values, np.ones((2, 2), dtype=bool))

    def test_unknown_reducer(self):
        with pytest.raises(ValueError):
            reduce_region(np.ones((2, 2)), np.ones((2, 2), dtype=bool), 'mode')


class TestComputeZonalStats:

    def test_all_nan_scene_dropped(self, sm_collection, full_region, caplog):
        with caplog.at_level(logging.WARNING, logger='optram.zonal'):
            table = compute_zonal_stats(sm_collection, [full_region])

        assert list(table['scene_id']) == ['2022-01-10', '2022-02-10']
        assert list(table['value']) == pytest.approx([2.5, 5.0])
        assert list(table['valid_count']) == [4, 1]
        assert '2022-03-10' in caplog.text

    def test_outside_region_absent(self, sm_collection, full_region, outside_region):
        table = compute_zonal_stats(sm_collection, [full_region, outside_region])
        assert set(table['region']) == {'all'}

    def test_overlapping_regions(self, sm_collection):
        regions = [Region('left', box(0, 0, 1, 2)), Region('all', box(0, 0, 2, 2))]
        table = compute_zonal_stats(sm_collection[:1], regions)
        values = dict(zip(table['region'], table['value']))
        assert values['left'] == pytest.approx(2.0)
        assert values['all'] == pytest.approx(2.5)

    def test_duplicate_region_names_rejected(self, sm_collection):
        regions = [Region('field', box(0, 0, 1, 2)), Region('field', box(1, 0, 2, 2))]
        with pytest.raises(ValueError, match='field'):
            compute_zonal_stats(sm_collection, regions)

    def test_sorted_by_region_then_date(self, full_region):
        collection = SceneCollection([
            sm_scene('2022-03-01', np.full((2, 2), 3.0)),
            sm_scene('2022-01-01', np.full((2, 2), 1.0)),
        ])
        regions = [full_region, Region('a_left', box(0, 0, 1, 2))]
        table = compute_zonal_stats(collection, regions)
        assert list(table['region']) == ['a_left', 'a_left', 'all', 'all']
        assert list(table['date']) == [pd.Timestamp('2022-01-01'), pd.Timestamp('2022-03-01')] * 2

    def test_min_valid_fraction(self, sm_collection, full_region):
        table = compute_zonal_stats(sm_collection, [full_region], config=TrapezoidConfig(min_valid_fraction=0.5))
        assert list(table['scene_id']) == ['2022-01-10']

    def test_reducer_from_config(self, sm_collection, full_region):
        table = compute_zonal_stats(sm_collection[:1], [full_region], config=TrapezoidConfig(reducer='max'))
        assert table['value'].iloc[0] == pytest.approx(4.0)
        assert table.attrs['reducer'] == 'max'

    def test_model_attrs(self, sm_collection, full_region):
        table = compute_zonal_stats(sm_collection, [full_region])
        assert table.attrs['model'] == 'OPTRAM'
        assert table.attrs['units'] == '%'

    def test_mixed_models_rejected(self, full_region):
        collection = SceneCollection([
            sm_scene('2022-01-01', np.ones((2, 2)), model='OPTRAM'),
            sm_scene('2022-02-01', np.ones((2, 2)), model='TOTRAM'),
        ])
        with pytest.raises(ModelMixingError):
            compute_zonal_stats(collection, [full_region])

    def test_empty_collection(self, full_region):
        table = compute_zonal_stats(SceneCollection(), [full_region])
        assert table.empty


class TestRegionalTimeSeries:

    def test_series_per_region(self, sm_collection, full_region, outside_region):
        series = regional_time_series(sm_collection, [full_region, outside_region])

        s = series['all']
        assert isinstance(s.index, pd.DatetimeIndex)
        assert s.index.is_monotonic_increasing
        assert list(s.values) == pytest.approx([2.5, 5.0])
        assert series['outside'].empty

    def test_unordered_input_sorted(self, full_region):
        collection = SceneCollection([
            sm_scene('2022-03-01', np.full((2, 2), 3.0)),
            sm_scene('2022-01-01', np.full((2, 2), 1.0)),
        ])
        s = regional_time_series(collection, [full_region])['all']
        assert list(s.values) == [1.0, 3.0]


def test_regions_from_geodataframe():
    gdf = gpd.GeoDataFrame(
        {'name': ['north', 'north', 'south']},
        geometry=[box(0, 1, 1, 2), box(1, 1, 2, 2), box(0, 0, 2, 1)],
    )
    regions = regions_from_geodataframe(gdf)
    names = [r.name for r in regions]
    assert names == ['north', 'south']
    assert regions[0].geometry.area == pytest.approx(2.0)


def test_regions_from_geodataframe_missing_column():
    gdf = gpd.GeoDataFrame({'id': [1]}, geometry=[box(0, 0, 1, 1)])
    with pytest.raises(KeyError):
        regions_from_geodataframe(gdf)
