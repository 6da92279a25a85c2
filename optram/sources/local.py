"""
Local file data source.

Loads per-band GeoTIFFs of pre-processed scenes (one directory per scene).
"""

from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional, Union
import logging
import re

import xarray as xr
import rioxarray
from shapely.geometry.base import BaseGeometry

from optram.image import SensorPreset, SENTINEL2_MSI
from optram.sources.base import DataSource

logger = logging.getLogger(__name__)

# Sentinel-2: S2A_MSIL2A_20210715T142731_...; Landsat: LC08_L2SP_042030_20200116_...
_DATE_PATTERNS = (
    re.compile(r'_(\d{8})T\d{6}'),
    re.compile(r'_(\d{8})_'),
    re.compile(r'_(\d{8})$'),
)


def parse_scene_date(scene_id: str) -> datetime:
    """Acquisition date embedded in a Sentinel-2 or Landsat scene ID."""
    for pattern in _DATE_PATTERNS:
        match = pattern.search(scene_id)
        if match:
            return datetime.strptime(match.group(1), '%Y%m%d')
    raise ValueError(f"No acquisition date in scene ID: {scene_id}")


class LocalFileSource(DataSource):
    """
    Data source for loading imagery from local files.

    Expects one directory per scene under ``base_path``, named by scene ID,
    holding one GeoTIFF per band.

    Parameters
    ----------
    base_path : Path or str
        Base directory containing scene directories.
    sensor : SensorPreset or str
        Band roles and scale factors, or a preset name such as
        'LANDSAT_C2_L2'. Default Sentinel-2 MSI.
    file_pattern : str, optional
        Pattern for band files within scene directories.
        Default: '{scene_id}_{band_name}.tif'

    Examples
    --------
    >>> source = LocalFileSource('/data/s2')
    >>> scenes = source.load_collection(None, '2021-07-01', '2024-06-30')
    """

    def __init__(
        self,
        base_path: Union[Path, str],
        sensor: Union[str, SensorPreset] = SENTINEL2_MSI,
        file_pattern: str = '{scene_id}_{band_name}.tif',
    ):
        super().__init__(sensor)
        self.base_path = Path(base_path)
        self.file_pattern = file_pattern

        if not self.base_path.exists():
            raise FileNotFoundError(f"Base path does not exist: {self.base_path}")

    def _get_band_path(self, scene_id: str, band_name: str) -> Path:
        """Get the file path for a specific band."""
        filename = self.file_pattern.format(scene_id=scene_id, band_name=band_name)
        band_path = self.base_path / scene_id / filename

        if not band_path.exists():
            # Try alternative naming patterns
            for alt in (f"{band_name}.tif", f"{band_name}.TIF", f"{scene_id}_{band_name}.TIF"):
                alt_path = self.base_path / scene_id / alt
                if alt_path.exists():
                    return alt_path
            raise FileNotFoundError(f"Band file not found: {band_path}")
        return band_path

    def load_band(
        self,
        scene_id: str,
        band_name: str,
        geometry: Optional[BaseGeometry] = None,
    ) -> xr.DataArray:
        """
        Load a single band for a scene.

        Nodata pixels are read as NaN.
        """
        resolved_band = self.sensor.band(band_name)
        band_path = self._get_band_path(scene_id, resolved_band)

        da = rioxarray.open_rasterio(band_path, masked=True)
        if 'band' in da.dims:
            da = da.squeeze('band', drop=True)

        # Clip to geometry if provided
        if geometry is not None:
            da = da.rio.clip_box(*geometry.bounds)

        return da.rename(resolved_band)

    def search_scenes(
        self,
        geometry: Optional[BaseGeometry],
        start_date: str,
        end_date: str,
    ) -> List[str]:
        """
        Find scene directories within the date range (inclusive).

        Local search cannot filter by geometry; ``geometry`` is ignored.
        """
        start = datetime.strptime(start_date, '%Y-%m-%d')
        end = datetime.strptime(end_date, '%Y-%m-%d')

        found = []
        for scene_dir in self.base_path.iterdir():
            if not scene_dir.is_dir():
                continue
            try:
                scene_date = parse_scene_date(scene_dir.name)
            except ValueError:
                logger.debug("Ignoring directory %s: no date in name", scene_dir.name)
                continue
            if start <= scene_date <= end:
                found.append((scene_date, scene_dir.name))

        # Sort by date
        found.sort()
        return [scene_id for _, scene_id in found]

    def get_metadata(self, scene_id: str) -> Dict[str, Any]:
        """Metadata parsed from the scene ID."""
        acquisition_date = parse_scene_date(scene_id)
        return {
            'scene_id': scene_id,
            'sensor': self.sensor.name,
            'acquisition_date': acquisition_date,
            'year': acquisition_date.year,
            'doy': acquisition_date.timetuple().tm_yday,
        }
