"""
Abstract base class for data sources.

Data sources abstract the loading of pre-processed (surface reflectance,
cloud-masked) imagery from various backends and hand it to the engine as
`Scene` objects.
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, Union

import xarray as xr
from shapely.geometry.base import BaseGeometry

from optram.image import Scene, SceneCollection, SensorPreset, SENTINEL2_MSI, get_sensor


class DataSource(ABC):
    """
    Abstract base class for imagery data sources.

    All implementations must provide methods for:
    - Loading individual bands
    - Searching for scenes by geometry and date
    - Retrieving scene metadata

    Scene and collection assembly (`load_scene`, `load_collection`) is shared.

    Parameters
    ----------
    sensor : SensorPreset or str
        Band roles and scale factors of the product served by the source,
        or the preset name (see `optram.image.SENSORS`).
    """

    def __init__(self, sensor: Union[str, SensorPreset] = SENTINEL2_MSI):
        self.sensor = get_sensor(sensor)

    @abstractmethod
    def load_band(
        self,
        scene_id: str,
        band_name: str,
        geometry: Optional[BaseGeometry] = None,
    ) -> xr.DataArray:
        """
        Load a single band for a scene.

        Parameters
        ----------
        scene_id : str
            Unique identifier for the scene.
        band_name : str
            Sensor band name (e.g. 'B8') or generic role (e.g. 'nir').
        geometry : BaseGeometry, optional
            If provided, clip the band to this geometry's bounding box.

        Returns
        -------
        xr.DataArray
            Raw band values with nodata as NaN and CRS/transform metadata.
        """
        ...

    @abstractmethod
    def search_scenes(
        self,
        geometry: Optional[BaseGeometry],
        start_date: str,
        end_date: str,
    ) -> List[str]:
        """
        Search for scenes matching the criteria.

        Returns
        -------
        list of str
            Scene IDs sorted by acquisition date.
        """
        ...

    @abstractmethod
    def get_metadata(self, scene_id: str) -> Dict[str, Any]:
        """
        Get metadata for a scene.

        Returns
        -------
        dict
            Scene metadata including at least ``acquisition_date``.
        """
        ...

    def load_scene(
        self,
        scene_id: str,
        band_names: Optional[List[str]] = None,
        geometry: Optional[BaseGeometry] = None,
    ) -> Scene:
        """
        Load bands into a Scene with the sensor's scale factors declared.

        ``band_names`` defaults to every band of the sensor preset. Generic
        roles are resolved to sensor band names.
        """
        if band_names is None:
            band_names = list(self.sensor.bands.values())
        band_names = [self.sensor.band(name) for name in band_names]

        bands = {name: self.load_band(scene_id, name, geometry) for name in band_names}
        metadata = self.get_metadata(scene_id)
        transform = next(iter(bands.values())).rio.transform()

        scales = self.sensor.scales()
        return Scene(
            bands,
            time=metadata['acquisition_date'],
            scene_id=scene_id,
            transform=transform,
            scales={name: scales[name] for name in band_names if name in scales},
            metadata=metadata,
        )

    def load_collection(
        self,
        geometry: Optional[BaseGeometry],
        start_date: str,
        end_date: str,
        band_names: Optional[List[str]] = None,
    ) -> SceneCollection:
        """Search and load every matching scene, in date order."""
        scene_ids = self.search_scenes(geometry, start_date, end_date)
        return SceneCollection(
            self.load_scene(scene_id, band_names, geometry) for scene_id in scene_ids
        )
