"""
GridMET precipitation data access.

Provides daily precipitation from GridMET via THREDDS OPeNDAP, used as the
precipitation input of the EVI-MAP model.

GridMET provides daily 4km resolution meteorological data for the CONUS.

References
----------
Abatzoglou, J. T. (2013). Development of gridded surface meteorological data
for ecological applications and modelling. International Journal of
Climatology, 33(1), 121-131.
"""

from datetime import datetime
from typing import Union
import warnings

import pandas as pd
import xarray as xr
from shapely.geometry.base import BaseGeometry

# GridMET THREDDS OPeNDAP base URL
GRIDMET_THREDDS_URL = "http://thredds.northwestknowledge.net:8080/thredds/dodsC/MET"

# File prefix -> variable name inside the yearly NetCDF files
GRIDMET_VARS = {
    'pr': 'precipitation_amount',  # Precipitation (mm)
}


def _to_datetime(value: Union[str, datetime]) -> datetime:
    if isinstance(value, str):
        return datetime.strptime(value, '%Y-%m-%d')
    return value


def get_precipitation(
    geometry: BaseGeometry,
    start_date: Union[str, datetime],
    end_date: Union[str, datetime],
    buffer: float = 0.1,
) -> xr.DataArray:
    """
    Get daily precipitation from GridMET for a geometry and date range.

    Parameters
    ----------
    geometry : BaseGeometry
        Area of interest in geographic coordinates.
    start_date : str or datetime
        Start date.
    end_date : str or datetime
        End date.
    buffer : float
        Degrees added around the geometry bounds.

    Returns
    -------
    xr.DataArray
        Precipitation (mm/day) with time, lat, lon dimensions.

    Examples
    --------
    >>> from shapely.geometry import Point
    >>> pr = get_precipitation(Point(-119.5, 36.5), '2020-01-01', '2022-12-31')
    """
    start_date = _to_datetime(start_date)
    end_date = _to_datetime(end_date)

    # Get bounds
    bounds = geometry.bounds  # (minx, miny, maxx, maxy)

    variable = GRIDMET_VARS['pr']
    datasets = []
    for year in range(start_date.year, end_date.year + 1):
        url = f"{GRIDMET_THREDDS_URL}/pr_{year}.nc"

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                ds = xr.open_dataset(url, engine='netcdf4')
        except OSError as e:
            warnings.warn(f"Failed to load GridMET precipitation for {year}: {e}")
            continue

        # Select spatial subset
        ds = ds.sel(
            lon=slice(bounds[0] - buffer, bounds[2] + buffer),
            lat=slice(bounds[3] + buffer, bounds[1] - buffer),  # lat is descending
        )

        # Select time range for this year
        year_start = max(start_date, datetime(year, 1, 1))
        year_end = min(end_date, datetime(year, 12, 31))
        ds = ds.sel(day=slice(year_start, year_end))

        datasets.append(ds[variable])

    if not datasets:
        raise ValueError("No GridMET data could be loaded")

    # Combine years
    da = xr.concat(datasets, dim='day')
    da = da.rename({'day': 'time'})
    da.attrs['units'] = 'mm'

    return da


def get_precipitation_series(
    geometry: BaseGeometry,
    start_date: Union[str, datetime],
    end_date: Union[str, datetime],
) -> pd.Series:
    """
    Daily precipitation averaged over the geometry's bounding box.

    Returns
    -------
    pd.Series
        mm/day indexed by date; suitable input for `optram.evimap`.
    """
    da = get_precipitation(geometry, start_date, end_date)
    spatial = [dim for dim in da.dims if dim != 'time']
    mean = da.mean(dim=spatial, skipna=True)
    return mean.to_series().rename('precipitation')
