"""
Regional aggregation of per-pixel estimates.

Reduces a band over named region polygons for every scene of a collection
and returns one ordered time series per region. Scenes with no valid pixels
inside a region are dropped for that region, never zero-filled.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd
import geopandas as gpd
from affine import Affine
from rasterio.features import geometry_mask
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from optram.config import TrapezoidConfig
from optram.errors import AggregationEmptyError, ModelMixingError
from optram.image import SceneCollection

logger = logging.getLogger(__name__)

REDUCER_FUNCTIONS = {
    'mean': np.mean,
    'min': np.min,
    'max': np.max,
    'std': np.std,
    'median': np.median,
    'sum': np.sum,
    'count': np.size,
}


@dataclass(frozen=True)
class Region:
    """Named aggregation polygon (or multipolygon) in the scenes' CRS."""

    name: str
    geometry: BaseGeometry


def regions_from_geodataframe(geometries: gpd.GeoDataFrame, name_column: str = 'name') -> List[Region]:
    """
    Build regions from a GeoDataFrame.

    Rows sharing a name are merged into one region.
    """
    if name_column not in geometries.columns:
        raise KeyError(f"Column '{name_column}' not in GeoDataFrame")

    regions = []
    for name, group in geometries.groupby(name_column, sort=False):
        regions.append(Region(str(name), unary_union(list(group.geometry))))
    return regions


def union_of(regions: Iterable[Region]) -> BaseGeometry:
    """Area of interest covering every region."""
    return unary_union([r.geometry for r in regions])


def region_mask(
    geometry: Union[Region, BaseGeometry],
    shape: tuple,
    transform: Affine,
) -> np.ndarray:
    """
    Boolean grid mask, True where a pixel centre falls inside ``geometry``.
    """
    geometry = getattr(geometry, 'geometry', geometry)
    height, width = shape[-2:]
    if geometry.is_empty:
        return np.zeros((height, width), dtype=bool)
    return geometry_mask(
        [geometry],
        out_shape=(height, width),
        transform=transform,
        invert=True,  # True = inside polygon
    )


def reduce_region(
    values: np.ndarray,
    inside: np.ndarray,
    reducer: str = 'mean',
) -> Dict[str, float]:
    """
    Reduce the valid pixels of ``values`` inside a region.

    Returns
    -------
    dict
        ``value``, ``valid_count`` and ``total_count``.

    Raises
    ------
    AggregationEmptyError
        No valid (non-NaN) pixel falls inside the region.
    """
    if reducer not in REDUCER_FUNCTIONS:
        raise ValueError(f"Unknown reducer: {reducer}. Use one of {tuple(REDUCER_FUNCTIONS)}.")

    selected = values[inside]
    valid_values = selected[~np.isnan(selected)]
    if valid_values.size == 0:
        raise AggregationEmptyError(f"{selected.size} pixels in region, none valid")

    return {
        'value': float(REDUCER_FUNCTIONS[reducer](valid_values)),
        'valid_count': int(valid_values.size),
        'total_count': int(selected.size),
    }


def _check_single_model(collection: SceneCollection, band: str) -> Optional[str]:
    models = {scene.band(band).attrs.get('model') for scene in collection}
    if len(models) > 1:
        raise ModelMixingError(
            f"Band '{band}' mixes outputs of models {sorted(str(m) for m in models)}"
        )
    return models.pop() if models else None


def compute_zonal_stats(
    collection: SceneCollection,
    regions: Iterable[Region],
    band: str = 'soil_moisture',
    config: Optional[TrapezoidConfig] = None,
) -> pd.DataFrame:
    """
    Reduce a band over each region for each scene.

    Parameters
    ----------
    collection : SceneCollection
        Scenes carrying ``band``.
    regions : iterable of Region
        Aggregation polygons. Regions may overlap; names must be unique.
    band : str
        Band to reduce.
    config : TrapezoidConfig, optional
        Supplies the reducer, the date range and ``min_valid_fraction``.

    Returns
    -------
    pd.DataFrame
        Long format with columns:
        - region: Region name
        - date: Scene time
        - scene_id: Scene identifier
        - value: Reduced statistic
        - valid_count: Number of valid pixels
        - total_count: Pixels inside the region
        - valid_fraction: valid_count / total_count
        Sorted by region then date. The ``model`` and ``units`` of the band
        are copied to ``DataFrame.attrs``.
    """
    if config is None:
        config = TrapezoidConfig()

    collection = collection.filter_date(config.start_date, config.end_date)
    regions = list(regions)
    names = [region.name for region in regions]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"Duplicate region names: {duplicates}")
    columns = ['region', 'date', 'scene_id', 'value', 'valid_count', 'total_count', 'valid_fraction']

    if len(collection) == 0:
        return pd.DataFrame(columns=columns)

    collection.require_band(band)
    model = _check_single_model(collection, band)

    masks = {
        region.name: region_mask(region, collection[0].shape, collection.transform)
        for region in regions
    }

    results = []
    for scene in collection:
        values = np.asarray(scene.band(band).values, dtype=float)

        for region in regions:
            try:
                stats = reduce_region(values, masks[region.name], config.reducer)
            except AggregationEmptyError as e:
                logger.warning("Skipping region %s for scene %s: %s", region.name, scene.scene_id, e)
                continue

            stats['valid_fraction'] = stats['valid_count'] / stats['total_count']
            if stats['valid_fraction'] < config.min_valid_fraction:
                logger.info(
                    "Dropping region %s for scene %s: valid fraction %.2f",
                    region.name, scene.scene_id, stats['valid_fraction'],
                )
                continue

            results.append({
                'region': region.name,
                'date': scene.time,
                'scene_id': scene.scene_id,
                **stats,
            })

    result = pd.DataFrame(results, columns=columns)
    result = result.sort_values(['region', 'date'], kind='mergesort').reset_index(drop=True)
    result.attrs['band'] = band
    result.attrs['reducer'] = config.reducer
    if model is not None:
        result.attrs['model'] = model
        result.attrs['units'] = collection[0].band(band).attrs.get('units')
    return result


def regional_time_series(
    collection: SceneCollection,
    regions: Iterable[Region],
    band: str = 'soil_moisture',
    config: Optional[TrapezoidConfig] = None,
) -> Dict[str, pd.Series]:
    """
    One time series per region.

    Returns
    -------
    dict
        Region name to a `pd.Series` of reduced values indexed by scene time
        (ascending). Regions with no valid observation map to an empty series.
    """
    regions = list(regions)
    table = compute_zonal_stats(collection, regions, band=band, config=config)
    return series_from_table(table, [r.name for r in regions])


def series_from_table(table: pd.DataFrame, names: Iterable[str]) -> Dict[str, pd.Series]:
    """Split a `compute_zonal_stats` table into one series per region name."""
    series = {}
    for name in names:
        rows = table[table['region'] == name]
        s = pd.Series(
            rows['value'].to_numpy(dtype=float),
            index=pd.DatetimeIndex(rows['date'], name='time'),
            name=name,
        )
        s.attrs.update(table.attrs)
        series[name] = s
    return series
