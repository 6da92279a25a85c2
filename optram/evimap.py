"""
EVI-MAP empirical evapotranspiration model.

Annual actual ET from a vegetation index and precipitation under the
hydrological-equilibrium hypothesis: over the long term, vegetation density
adjusts to the water supplied by mean annual precipitation (MAP), so the
long-term ET/P ratio is a linear function of scaled EVI, and year-to-year
departures of EVI from its long-term mean track departures of ET:

    EVI*  = (EVI - EVI_min) / (EVI_max - EVI_min), clipped to [0, 1]
    dEVI* = EVI*_year - mean_years(EVI*)
    ET    = MAP * (a * mean_years(EVI*) + b) + c * MAP * dEVI*

The coefficients are fixed regression constants held in
`EviMapCoefficients`. They are never estimated from the input collection,
unlike the trapezoid corners.

References
----------
Nagler, P. L., et al. (2005). Predicting riparian evapotranspiration from
MODIS vegetation indices and meteorological data. Remote Sensing of
Environment, 94(1), 17-30. (EVI* scaling bounds)
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union
import warnings

import numpy as np
import pandas as pd
import xarray as xr
from affine import Affine

from optram.errors import InsufficientDataError
from optram.image import Scene, SceneCollection

logger = logging.getLogger(__name__)

OUTPUT_BAND = 'et'

EVI_MAP_PROVENANCE = {
    'model': 'EVI-MAP',
    'model_ref': 'Nagler et al. (2005), Remote Sensing of Environment 94, 17-30 (EVI* scaling).',
    'units': 'mm yr-1',
    'notes': 'Annual actual evapotranspiration from scaled EVI anomaly and mean annual precipitation',
}


@dataclass(frozen=True)
class EviMapCoefficients:
    """
    Fixed EVI-MAP constants.

    Parameters
    ----------
    evi_min, evi_max : float
        EVI values mapped to EVI* = 0 and EVI* = 1.
    a, b : float
        Long-term ET/P ratio as ``a * EVI* + b``.
    c : float
        Sensitivity of annual ET (as a fraction of MAP) to the EVI* anomaly.
    """

    evi_min: float = 0.091
    evi_max: float = 0.542
    a: float = 0.80
    b: float = 0.10
    c: float = 1.0

    def __post_init__(self):
        if self.evi_max <= self.evi_min:
            raise ValueError("evi_max must be greater than evi_min")


def evi_star(evi, evi_min: float = 0.091, evi_max: float = 0.542):
    """
    Scale EVI to [0, 1] between bare-soil and full-canopy values.

    NaN stays NaN.
    """
    if not isinstance(evi, xr.DataArray):
        evi = np.asarray(evi, dtype=float)
    scaled = (evi - evi_min) / (evi_max - evi_min)
    return scaled.clip(0, 1) if isinstance(scaled, xr.DataArray) else np.clip(scaled, 0, 1)


def annual_mean(collection: SceneCollection, band: str = 'EVI') -> xr.DataArray:
    """
    Per-pixel mean of ``band`` for each calendar year.

    Returns
    -------
    xr.DataArray
        Dims ``('year', 'y', 'x')``.
    """
    if len(collection) == 0:
        raise InsufficientDataError(f"Empty collection: no '{band}' values to average")

    stacked = collection.stack(band)
    with warnings.catch_warnings():
        # Pixels without any valid observation in a year stay NaN
        warnings.simplefilter("ignore", category=RuntimeWarning)
        annual = stacked.groupby('time.year').mean(dim='time', skipna=True)
    return annual.rename(band)


def annual_precipitation(precipitation: Union[pd.Series, xr.DataArray]) -> xr.DataArray:
    """
    Annual precipitation totals.

    Parameters
    ----------
    precipitation : pd.Series or xr.DataArray
        Either a time series with a DatetimeIndex / ``time`` dimension
        (daily or monthly amounts, summed per calendar year) or annual
        totals already indexed by integer year / with a ``year`` dimension.

    Returns
    -------
    xr.DataArray
        Totals with a ``year`` dimension (plus any spatial dims).
    """
    if isinstance(precipitation, pd.Series):
        if isinstance(precipitation.index, pd.DatetimeIndex):
            totals = precipitation.groupby(precipitation.index.year).sum(min_count=1)
        else:
            totals = precipitation.astype(float)
        return xr.DataArray(
            totals.to_numpy(dtype=float),
            dims=('year',),
            coords={'year': totals.index.astype(int).to_numpy()},
            name='precipitation',
        )

    if 'year' in precipitation.dims:
        return precipitation.rename('precipitation')
    if 'time' in precipitation.dims:
        totals = precipitation.groupby('time.year').sum(dim='time', min_count=1)
        return totals.rename('precipitation')
    raise ValueError("precipitation needs a 'time' or 'year' dimension")


def mean_annual_precipitation(precipitation: Union[pd.Series, xr.DataArray]) -> xr.DataArray:
    """Long-term mean of the annual totals (MAP)."""
    totals = annual_precipitation(precipitation)
    if int(totals.count()) == 0:
        raise InsufficientDataError("No precipitation totals to average")
    return totals.mean(dim='year', skipna=True).rename('map')


def evi_anomaly(annual_star: xr.DataArray) -> xr.DataArray:
    """Departure of each year's EVI* from the per-pixel long-term mean."""
    return annual_star - annual_star.mean(dim='year', skipna=True)


def _match_grid(map_: xr.DataArray, grid: xr.DataArray) -> xr.DataArray:
    """
    Bring MAP onto the EVI grid.

    Dims the EVI grid lacks (e.g. GridMET ``lat``/``lon``) are averaged over
    the area. Shared dims must have the same size.
    """
    foreign = [dim for dim in map_.dims if dim not in grid.dims]
    if foreign:
        logger.info("Averaging precipitation over %s to match the EVI grid", foreign)
        map_ = map_.mean(dim=foreign, skipna=True)

    for dim in map_.dims:
        if map_.sizes[dim] != grid.sizes[dim]:
            raise ValueError(
                f"Precipitation dimension '{dim}' has size {map_.sizes[dim]}, "
                f"EVI grid has {grid.sizes[dim]}"
            )
    return map_


def evi_map_et(
    annual_evi: xr.DataArray,
    precipitation: Union[pd.Series, xr.DataArray],
    coefficients: Optional[EviMapCoefficients] = None,
) -> xr.DataArray:
    """
    Annual actual ET.

    Parameters
    ----------
    annual_evi : xr.DataArray
        Annual mean EVI with a ``year`` dimension (see `annual_mean`).
    precipitation : pd.Series or xr.DataArray
        Precipitation, see `annual_precipitation`. Spatial dims named
        like the EVI grid must match it; any other spatial dims are averaged
        to a single area value.
    coefficients : EviMapCoefficients, optional
        Model constants.

    Returns
    -------
    xr.DataArray
        ET in mm/yr with a ``year`` dimension, clipped at 0. Attrs hold the
        model provenance.
    """
    if coefficients is None:
        coefficients = EviMapCoefficients()
    if 'year' not in annual_evi.dims:
        raise ValueError("annual_evi needs a 'year' dimension")

    star = evi_star(annual_evi, coefficients.evi_min, coefficients.evi_max)
    star_mean = star.mean(dim='year', skipna=True)
    anomaly = evi_anomaly(star)
    map_ = _match_grid(mean_annual_precipitation(precipitation), star_mean)

    et = map_ * (coefficients.a * star_mean + coefficients.b) + coefficients.c * map_ * anomaly
    et = et.clip(min=0).transpose('year', ...).rename(OUTPUT_BAND)
    et.attrs = dict(EVI_MAP_PROVENANCE)
    logger.debug("EVI-MAP ET for years %s", list(et['year'].values))
    return et


def et_collection(et: xr.DataArray, transform: Optional[Affine] = None) -> SceneCollection:
    """
    One scene per year (stamped 1 January) carrying the ``et`` band.

    Lets annual ET go through the same regional aggregation as the trapezoid
    models.
    """
    scenes = []
    for year in et['year'].values:
        band = et.sel(year=year, drop=True)
        band.attrs = dict(et.attrs)
        scenes.append(Scene(
            {OUTPUT_BAND: band},
            time=pd.Timestamp(year=int(year), month=1, day=1),
            scene_id=f"{et.attrs.get('model', 'ET')}_{int(year)}",
            transform=transform,
        ))
    return SceneCollection(scenes)
