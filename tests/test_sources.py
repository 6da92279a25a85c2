from datetime import datetime

import numpy as np
import pytest
import xarray as xr
import rioxarray  # noqa: F401
from shapely.geometry import box

from optram import LANDSAT_C2_L2, SENTINEL2_MSI, LocalFileSource
from optram.sources import parse_scene_date

X0, Y0 = 500000.0, 4100000.0


def write_band(path, values):
    values = np.asarray(values, dtype='uint16')
    rows, cols = values.shape
    da = xr.DataArray(
        values,
        dims=('y', 'x'),
        coords={
            'y': Y0 - 10.0 * (np.arange(rows) + 0.5),
            'x': X0 + 10.0 * (np.arange(cols) + 0.5),
        },
    )
    da = da.rio.write_crs('EPSG:32719').rio.write_nodata(0)
    path.parent.mkdir(parents=True, exist_ok=True)
    da.rio.to_raster(path)


@pytest.fixture
def s2_archive(tmp_path):
    for scene_id, swir in (
        ('S2B_MSIL2A_20220215T142731', 2500),
        ('S2A_MSIL2A_20220115T142731', 2000),
        ('S2A_MSIL2A_20230115T142731', 3000),
    ):
        scene_dir = tmp_path / scene_id
        write_band(scene_dir / f'{scene_id}_B4.tif', np.full((4, 4), 1000))
        write_band(scene_dir / f'{scene_id}_B8.tif', np.full((4, 4), 5000))
        swir_values = np.full((4, 4), swir)
        swir_values[0, 0] = 0  # nodata
        write_band(scene_dir / f'{scene_id}_B12.tif', swir_values)
    (tmp_path / 'README.txt').write_text('not a scene')
    (tmp_path / 'scratch').mkdir()
    return tmp_path


class TestParseSceneDate:

    def test_sentinel2(self):
        assert parse_scene_date('S2A_MSIL2A_20210715T142731_N0301_R053') == datetime(2021, 7, 15)

    def test_landsat(self):
        assert parse_scene_date('LC08_L2SP_042030_20200116_20200823_02_T1') == datetime(2020, 1, 16)

    def test_trailing_date(self):
        assert parse_scene_date('site_20220301') == datetime(2022, 3, 1)

    def test_no_date(self):
        with pytest.raises(ValueError):
            parse_scene_date('scratch')


class TestLocalFileSource:

    def test_missing_base_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LocalFileSource(tmp_path / 'absent')

    def test_search_sorted_and_filtered(self, s2_archive):
        source = LocalFileSource(s2_archive)
        found = source.search_scenes(None, '2022-01-01', '2022-12-31')
        assert found == ['S2A_MSIL2A_20220115T142731', 'S2B_MSIL2A_20220215T142731']

    def test_load_band_masks_nodata(self, s2_archive):
        source = LocalFileSource(s2_archive)
        da = source.load_band('S2A_MSIL2A_20220115T142731', 'swir2')
        assert da.name == 'B12'
        assert da.dims == ('y', 'x')
        assert np.isnan(da.values[0, 0])
        assert da.values[1, 1] == 2000

    def test_missing_band_file(self, s2_archive):
        source = LocalFileSource(s2_archive)
        with pytest.raises(FileNotFoundError):
            source.load_band('S2A_MSIL2A_20220115T142731', 'B2')

    def test_load_collection(self, s2_archive):
        source = LocalFileSource(s2_archive)
        collection = source.load_collection(None, '2022-01-01', '2022-12-31', band_names=['red', 'nir', 'swir2'])

        assert len(collection) == 2
        scene = collection[0]
        assert scene.bands == ('B4', 'B8', 'B12')
        assert scene.metadata['sensor'] == 'SENTINEL2_MSI'
        assert scene.metadata['doy'] == 15
        assert scene.transform.c == X0
        assert scene.transform.f == Y0
        assert float(scene.physical('B8')[1, 1]) == pytest.approx(0.5)

    def test_clip_to_geometry(self, s2_archive):
        source = LocalFileSource(s2_archive)
        aoi = box(X0, Y0 - 40.0, X0 + 20.0, Y0)
        da = source.load_band('S2A_MSIL2A_20220115T142731', 'B4', geometry=aoi)
        assert da.sizes['x'] < 4

    def test_sensor_preset_band_roles(self, s2_archive):
        source = LocalFileSource(s2_archive, sensor=LANDSAT_C2_L2)
        with pytest.raises(FileNotFoundError):
            # Landsat 'red' resolves to SR_B4
            source.load_band('S2A_MSIL2A_20220115T142731', 'red')

    def test_sensor_by_name(self, s2_archive):
        assert LocalFileSource(s2_archive).sensor is SENTINEL2_MSI
        assert LocalFileSource(s2_archive, sensor='LANDSAT_C2_L2').sensor is LANDSAT_C2_L2
        assert LocalFileSource(s2_archive, sensor='landsat_c2_l2').sensor is LANDSAT_C2_L2

    def test_unknown_sensor_name(self, s2_archive):
        with pytest.raises(ValueError, match='MODIS'):
            LocalFileSource(s2_archive, sensor='MODIS')
