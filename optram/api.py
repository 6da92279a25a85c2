"""
High-level API for trapezoid soil-moisture and EVI-MAP ET workflows.

`run_trapezoid` executes in two phases:

1. calibration: the four trapezoid corners and the two deltas are computed
   from the whole collection, blocking, before anything else is issued;
2. application: the fixed parameters are applied to the median reference
   composite and to every scene (optionally in parallel), then reduced per
   region.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Union

import pandas as pd
import xarray as xr

from optram.calibration import ModelFamily, TrapezoidParameters, calibrate, get_family
from optram.config import TrapezoidConfig
from optram.evimap import EviMapCoefficients, annual_mean, et_collection, evi_map_et
from optram.evimap import OUTPUT_BAND as ET_BAND
from optram.image import Scene, SceneCollection, SensorPreset
from optram.indices import add_indices
from optram.model import OUTPUT_BAND, evaluate_collection, evaluate_scene
from optram.zonal import Region, compute_zonal_stats, series_from_table, union_of

logger = logging.getLogger(__name__)


@dataclass
class TrapezoidResult:
    """
    Outputs of a trapezoid run.

    Attributes
    ----------
    parameters : TrapezoidParameters
        Corners and deltas from the calibration phase.
    reference : Scene
        Median composite carrying the ``soil_moisture`` band.
    series : SceneCollection
        Every scene with its ``soil_moisture`` band.
    table : pd.DataFrame
        Long-format regional statistics (see `compute_zonal_stats`).
    timeseries : dict
        Region name to `pd.Series`.
    """

    parameters: TrapezoidParameters
    reference: Scene
    series: SceneCollection
    table: pd.DataFrame
    timeseries: Dict[str, pd.Series] = field(default_factory=dict)

    @property
    def reference_map(self) -> xr.DataArray:
        return self.reference.band(OUTPUT_BAND)


@dataclass
class EviMapResult:
    """Annual ET raster, its per-year scenes and the regional series."""

    et: xr.DataArray
    series: SceneCollection
    table: pd.DataFrame
    timeseries: Dict[str, pd.Series] = field(default_factory=dict)


def _prepare(
    collection: SceneCollection,
    regions: list,
    config: Optional[TrapezoidConfig],
    sensor: Optional[SensorPreset],
    compute_indices: bool,
):
    if config is None:
        config = TrapezoidConfig()
    if config.aoi is None and regions:
        config = config.replace(aoi=union_of(regions))

    collection = collection.filter_date(config.start_date, config.end_date)
    if compute_indices:
        collection = collection.map(lambda scene: add_indices(scene, sensor))
    return collection, config


def run_trapezoid(
    collection: SceneCollection,
    regions: Optional[Iterable[Region]] = None,
    family: Union[str, ModelFamily] = 'OPTRAM',
    config: Optional[TrapezoidConfig] = None,
    sensor: Optional[SensorPreset] = None,
    compute_indices: bool = False,
) -> TrapezoidResult:
    """
    Calibrate a trapezoid model on a collection and apply it.

    Parameters
    ----------
    collection : SceneCollection
        Scenes, pre-masked for clouds.
    regions : iterable of Region, optional
        Aggregation regions. When ``config.aoi`` is not set their union is
        used as the calibration AOI.
    family : str or ModelFamily
        'OPTRAM' (STR) or 'TOTRAM' (LST).
    config : TrapezoidConfig, optional
        Run settings.
    sensor : SensorPreset, optional
        Band roles used when ``compute_indices`` is True.
    compute_indices : bool
        Derive NDVI/STR/LST/EVI from raw bands first.

    Returns
    -------
    TrapezoidResult

    Examples
    --------
    >>> from optram import Region, TrapezoidConfig, run_trapezoid
    >>> result = run_trapezoid(scenes, regions=[Region('north', polygon)],
    ...                        config=TrapezoidConfig(start_date='2021-07-01',
    ...                                               end_date='2024-06-30'))
    >>> result.timeseries['north']
    """
    family = get_family(family)
    regions = list(regions or [])
    collection, config = _prepare(collection, regions, config, sensor, compute_indices)

    # Calibration phase: must complete before any scene is evaluated
    logger.info("Calibrating %s on %d scenes", family.name, len(collection))
    params = calibrate(collection, family, config)
    logger.info(
        "%s corners: wet_veg=%.4g dry_veg=%.4g wet_bare=%.4g dry_bare=%.4g; sd=%.4g sw=%.4g",
        family.name, params.corners.wet_veg, params.corners.dry_veg,
        params.corners.wet_bare, params.corners.dry_bare, params.sd, params.sw,
    )

    # Application phase
    reference = evaluate_scene(collection.median(), params, config)
    series = evaluate_collection(collection, params, config)

    table = compute_zonal_stats(series, regions, band=OUTPUT_BAND, config=config)
    timeseries = series_from_table(table, [r.name for r in regions])

    return TrapezoidResult(
        parameters=params,
        reference=reference,
        series=series,
        table=table,
        timeseries=timeseries,
    )


def run_evi_map(
    collection: SceneCollection,
    precipitation: Union[pd.Series, xr.DataArray],
    regions: Optional[Iterable[Region]] = None,
    coefficients: Optional[EviMapCoefficients] = None,
    config: Optional[TrapezoidConfig] = None,
    sensor: Optional[SensorPreset] = None,
    compute_indices: bool = False,
) -> EviMapResult:
    """
    Annual ET with the EVI-MAP model, aggregated per region.

    Parameters
    ----------
    collection : SceneCollection
        Scenes carrying an ``EVI`` band (or raw bands with
        ``compute_indices=True``).
    precipitation : pd.Series or xr.DataArray
        Precipitation series or annual totals.
    regions : iterable of Region, optional
        Aggregation regions.
    coefficients : EviMapCoefficients, optional
        Model constants.
    config : TrapezoidConfig, optional
        Date range and reducer.
    """
    regions = list(regions or [])
    collection, config = _prepare(collection, regions, config, sensor, compute_indices)

    et = evi_map_et(annual_mean(collection, 'EVI'), precipitation, coefficients)
    series = et_collection(et, transform=collection.transform)

    # Annual scenes are stamped 1 January; the date filter was already applied
    zonal_config = config.replace(start_date=None, end_date=None)
    table = compute_zonal_stats(series, regions, band=ET_BAND, config=zonal_config)
    timeseries = series_from_table(table, [r.name for r in regions])

    return EviMapResult(et=et, series=series, table=table, timeseries=timeseries)
