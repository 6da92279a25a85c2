import numpy as np
import pandas as pd
import pytest
import xarray as xr
from shapely.geometry import Point

import optram.ancillary.gridmet as gridmet
from optram.ancillary import get_precipitation, get_precipitation_series


def fake_year(year):
    day = pd.date_range(f'{year}-01-01', f'{year}-12-31', freq='D')
    lat = np.array([37.0, 36.5, 36.0])
    lon = np.array([-120.0, -119.5, -119.0])
    data = np.full((day.size, lat.size, lon.size), 2.0)
    return xr.Dataset(
        {'precipitation_amount': (('day', 'lat', 'lon'), data)},
        coords={'day': day, 'lat': lat, 'lon': lon},
    )


@pytest.fixture
def opendap(monkeypatch):
    requested = []

    def _open(url, engine=None):
        requested.append(url)
        year = int(url.rsplit('_', 1)[1][:4])
        if year == 2021:
            raise OSError('server unavailable')
        return fake_year(year)

    monkeypatch.setattr(gridmet.xr, 'open_dataset', _open)
    return requested


def test_subset_and_rename(opendap):
    pr = get_precipitation(Point(-119.5, 36.5), '2020-03-01', '2020-03-31')

    assert opendap == [f'{gridmet.GRIDMET_THREDDS_URL}/pr_2020.nc']
    assert pr.dims == ('time', 'lat', 'lon')
    assert pr.sizes['time'] == 31
    assert pr.sizes['lat'] == 1 and pr.sizes['lon'] == 1
    assert pr.attrs['units'] == 'mm'


def test_failed_year_warns_and_is_skipped(opendap):
    with pytest.warns(UserWarning, match='2021'):
        pr = get_precipitation(Point(-119.5, 36.5), '2020-12-30', '2021-01-02')
    assert list(pd.DatetimeIndex(pr['time'].values)) == [pd.Timestamp('2020-12-30'), pd.Timestamp('2020-12-31')]


@pytest.mark.filterwarnings('ignore::UserWarning')
def test_no_data_raises(opendap):
    with pytest.raises(ValueError):
        get_precipitation(Point(-119.5, 36.5), '2021-01-01', '2021-12-31')


def test_series(opendap):
    series = get_precipitation_series(Point(-119.5, 36.5), '2020-01-01', '2020-01-10')
    assert isinstance(series, pd.Series)
    assert series.name == 'precipitation'
    assert len(series) == 10
    assert series.sum() == pytest.approx(20.0)
