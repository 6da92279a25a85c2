"""
Scene and SceneCollection classes.

A Scene is one observation at a timestamp over a fixed grid, carrying named
bands. Raw bands may declare a scale/offset that converts stored integers to
physical units (reflectance or Kelvin). Scenes are immutable in practice:
every derivation returns a new Scene, the source Scene is never modified.

A SceneCollection is an ordered sequence of Scenes sharing the same grid.
Insertion order is taken to be chronological order.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union
import warnings

import numpy as np
import pandas as pd
import xarray as xr
import rioxarray  # noqa: F401 - needed for rio accessor
from affine import Affine
from rasterio.transform import from_origin

from optram.errors import MissingBandError

ArrayLike = Union[np.ndarray, xr.DataArray]


@dataclass(frozen=True)
class BandScale:
    """Linear conversion from stored values to physical units."""

    scale: float = 1.0
    offset: float = 0.0

    def apply(self, da: xr.DataArray) -> xr.DataArray:
        return da * self.scale + self.offset


@dataclass(frozen=True)
class SensorPreset:
    """
    Band roles and scale factors for a sensor product.

    Parameters
    ----------
    name : str
        Product name.
    bands : dict
        Maps generic roles ('blue', 'red', 'nir', 'swir1', 'swir2',
        'thermal') to the sensor-specific band names.
    reflectance : BandScale
        Scale applied to every surface reflectance band.
    thermal : BandScale, optional
        Scale applied to the thermal band (to Kelvin).
    swir_role : str
        Which SWIR band feeds the transmittance ratio.
    """

    name: str
    bands: Mapping[str, str]
    reflectance: BandScale = BandScale()
    thermal: Optional[BandScale] = None
    swir_role: str = 'swir2'

    def band(self, role: str) -> str:
        return self.bands.get(role, role)

    def scales(self) -> Dict[str, BandScale]:
        """Scale per sensor band name."""
        out = {}
        for role, name in self.bands.items():
            if role == 'thermal':
                if self.thermal is not None:
                    out[name] = self.thermal
            else:
                out[name] = self.reflectance
        return out


# Sentinel-2 MSI Level-2A: DN * 0.0001
SENTINEL2_MSI = SensorPreset(
    name='SENTINEL2_MSI',
    bands={
        'blue': 'B2',
        'green': 'B3',
        'red': 'B4',
        'nir': 'B8',
        'swir1': 'B11',
        'swir2': 'B12',
    },
    reflectance=BandScale(0.0001, 0.0),
)

# Landsat 8/9 Collection 2 Level 2
# Surface reflectance: DN * 0.0000275 - 0.2
# Surface temperature: DN * 0.00341802 + 149.0 (Kelvin)
LANDSAT_C2_L2 = SensorPreset(
    name='LANDSAT_C2_L2',
    bands={
        'blue': 'SR_B2',
        'green': 'SR_B3',
        'red': 'SR_B4',
        'nir': 'SR_B5',
        'swir1': 'SR_B6',
        'swir2': 'SR_B7',
        'thermal': 'ST_B10',
    },
    reflectance=BandScale(0.0000275, -0.2),
    thermal=BandScale(0.00341802, 149.0),
)

SENSORS = {
    'SENTINEL2_MSI': SENTINEL2_MSI,
    'LANDSAT_C2_L2': LANDSAT_C2_L2,
}


def get_sensor(sensor: Union[str, SensorPreset]) -> SensorPreset:
    """Resolve a sensor preset by name (case-insensitive)."""
    if isinstance(sensor, SensorPreset):
        return sensor
    try:
        return SENSORS[sensor.upper()]
    except KeyError:
        raise ValueError(f"Unknown sensor: {sensor}. Use one of {tuple(SENSORS)}.")


def _to_dataarray(values: ArrayLike, name: str) -> xr.DataArray:
    if isinstance(values, xr.DataArray):
        da = values
    else:
        arr = np.asarray(values, dtype=float)
        if arr.ndim != 2:
            raise ValueError(f"Band '{name}' must be 2D (y, x), got shape {arr.shape}")
        da = xr.DataArray(arr, dims=('y', 'x'))
    # Drop leftover singleton band dimension from rasterio reads
    if 'band' in da.dims and da.sizes['band'] == 1:
        da = da.squeeze('band', drop=True)
    return da.rename(name)


class Scene:
    """
    One observation over a fixed grid.

    Parameters
    ----------
    bands : dict or xr.Dataset
        Band name to 2D array (or DataArray with dims ``('y', 'x')``).
    time : datetime or str
        Acquisition time.
    scene_id : str, optional
        Identifier. Defaults to the ISO date.
    transform : affine.Affine, optional
        Pixel-to-map transform used for region masks. When omitted it is
        taken from the rioxarray metadata or, failing that, a unit grid with
        its origin at (0, rows).
    scales : dict, optional
        Band name to `BandScale` for raw bands.
    metadata : dict, optional
        Free-form properties carried along with the scene.

    Examples
    --------
    >>> scene = Scene({'B4': red, 'B8': nir, 'B12': swir}, time='2022-01-15',
    ...               scales=SENTINEL2_MSI.scales())
    >>> scene.band('B8')
    """

    def __init__(
        self,
        bands: Union[Mapping[str, ArrayLike], xr.Dataset],
        time: Union[datetime, str, pd.Timestamp],
        scene_id: Optional[str] = None,
        transform: Optional[Affine] = None,
        scales: Optional[Mapping[str, BandScale]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ):
        if isinstance(bands, xr.Dataset):
            data_vars = {name: _to_dataarray(bands[name], name) for name in bands.data_vars}
        else:
            data_vars = {name: _to_dataarray(values, name) for name, values in bands.items()}

        self._data = xr.Dataset(data_vars)
        self._time = pd.Timestamp(time)
        self._scene_id = scene_id if scene_id is not None else self._time.strftime('%Y-%m-%d')
        self._scales = dict(scales or {})
        self._metadata = dict(metadata or {})
        self._transform = transform if transform is not None else self._default_transform()

    def _default_transform(self) -> Affine:
        if 'x' in self._data.coords and 'y' in self._data.coords:
            if self._data.sizes['x'] > 1 and self._data.sizes['y'] > 1:
                return self._data.rio.transform()
        rows = self.shape[0] if self._data.data_vars else 0
        return from_origin(0, rows, 1, 1)

    def __repr__(self):
        return f"Scene({self._scene_id!r}, time={self._time.date()}, bands={list(self.bands)})"

    @property
    def scene_id(self) -> str:
        """Scene identifier."""
        return self._scene_id

    @property
    def time(self) -> pd.Timestamp:
        """Acquisition time."""
        return self._time

    @property
    def transform(self) -> Affine:
        return self._transform

    @property
    def scales(self) -> Dict[str, BandScale]:
        return dict(self._scales)

    @property
    def metadata(self) -> Dict[str, Any]:
        return dict(self._metadata)

    @property
    def bands(self) -> tuple:
        return tuple(self._data.data_vars)

    @property
    def shape(self) -> tuple:
        first = next(iter(self._data.data_vars.values()))
        return tuple(first.shape)

    def has_band(self, name: str) -> bool:
        return name in self._data.data_vars

    def band(self, name: str) -> xr.DataArray:
        """Return a band as stored (no scaling)."""
        if name not in self._data.data_vars:
            raise MissingBandError(name, self._scene_id)
        return self._data[name]

    def physical(self, name: str) -> xr.DataArray:
        """Return a band converted with its declared scale, if any."""
        da = self.band(name)
        scale = self._scales.get(name)
        if scale is None:
            return da
        return scale.apply(da).rename(name)

    def with_bands(self, **bands: ArrayLike) -> 'Scene':
        """Return a new Scene with ``bands`` added (or replaced)."""
        data = self._data.copy()
        for name, values in bands.items():
            data[name] = _to_dataarray(values, name)
        return Scene(
            data,
            time=self._time,
            scene_id=self._scene_id,
            transform=self._transform,
            scales=self._scales,
            metadata=self._metadata,
        )


class SceneCollection:
    """
    Ordered collection of Scenes on a common grid.

    Parameters
    ----------
    scenes : iterable of Scene
        Scenes in chronological order.
    """

    def __init__(self, scenes: Iterable[Scene] = ()):
        self._scenes: List[Scene] = list(scenes)

        if self._scenes:
            shape = self._scenes[0].shape
            for scene in self._scenes[1:]:
                if scene.shape != shape:
                    raise ValueError(
                        f"Scene {scene.scene_id} has shape {scene.shape}, expected {shape}"
                    )

    def __len__(self) -> int:
        return len(self._scenes)

    def __iter__(self) -> Iterator[Scene]:
        return iter(self._scenes)

    def __getitem__(self, item):
        if isinstance(item, slice):
            return SceneCollection(self._scenes[item])
        return self._scenes[item]

    def __repr__(self):
        return f"SceneCollection(n={len(self)})"

    @property
    def times(self) -> pd.DatetimeIndex:
        return pd.DatetimeIndex([s.time for s in self._scenes], name='time')

    @property
    def transform(self) -> Optional[Affine]:
        return self._scenes[0].transform if self._scenes else None

    def require_band(self, name: str) -> None:
        """Raise MissingBandError if any scene lacks ``name``."""
        for scene in self._scenes:
            if not scene.has_band(name):
                raise MissingBandError(name, scene.scene_id)

    def filter_date(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> 'SceneCollection':
        """Scenes with start_date <= time <= end_date ('YYYY-MM-DD', inclusive)."""
        start = pd.Timestamp(datetime.strptime(start_date, '%Y-%m-%d')) if start_date else None
        end = pd.Timestamp(datetime.strptime(end_date, '%Y-%m-%d')) if end_date else None

        kept = []
        for scene in self._scenes:
            day = scene.time.normalize()
            if start is not None and day < start:
                continue
            if end is not None and day > end:
                continue
            kept.append(scene)
        return SceneCollection(kept)

    def map(self, func: Callable[[Scene], Scene]) -> 'SceneCollection':
        return SceneCollection(func(scene) for scene in self._scenes)

    def stack(self, name: str) -> xr.DataArray:
        """
        Stack one band of every scene along a ``time`` dimension.

        Returns
        -------
        xr.DataArray
            Array with dims ``('time', 'y', 'x')``.
        """
        self.require_band(name)
        arrays = [scene.band(name) for scene in self._scenes]
        return xr.concat(arrays, dim=pd.Index(self.times, name='time')).rename(name)

    def median(self, bands: Optional[List[str]] = None) -> Scene:
        """
        Per-pixel temporal median composite.

        Only bands present in every scene are composited unless ``bands`` is
        given explicitly. The composite is stamped with the midpoint of the
        collection's time span.
        """
        if not self._scenes:
            raise ValueError("Cannot composite an empty SceneCollection")

        if bands is None:
            bands = [b for b in self._scenes[0].bands if all(s.has_band(b) for s in self._scenes)]

        composite = {}
        for name in bands:
            with warnings.catch_warnings():
                # All-NaN pixels stay NaN
                warnings.simplefilter("ignore", category=RuntimeWarning)
                composite[name] = self.stack(name).median(dim='time', skipna=True)

        times = self.times
        midpoint = times.min() + (times.max() - times.min()) / 2
        return Scene(
            composite,
            time=midpoint,
            scene_id='median_composite',
            transform=self.transform,
            scales={k: v for k, v in self._scenes[0].scales.items() if k in bands},
            metadata={
                'composite': 'median',
                'start': str(times.min().date()),
                'end': str(times.max().date()),
                'n_scenes': len(self),
            },
        )
