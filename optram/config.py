"""
Run configuration.

`TrapezoidConfig` is passed explicitly to every entry point; nothing in the
package reads process-wide settings.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Mapping, Optional

import numpy as np
import xarray as xr
from shapely.geometry.base import BaseGeometry


@dataclass(frozen=True)
class VegetationMask:
    """
    Inclusive threshold interval on a vegetation index.

    Pixels with ``lower <= index <= upper`` belong to the class. NaN index
    values never belong to any class.
    """

    name: str
    lower: float = -np.inf
    upper: float = np.inf

    def __post_init__(self):
        if self.lower > self.upper:
            raise ValueError(f"Mask '{self.name}': lower ({self.lower}) > upper ({self.upper})")

    def apply(self, index: xr.DataArray) -> xr.DataArray:
        """Boolean mask, True inside the class."""
        return (index >= self.lower) & (index <= self.upper)


# Full vegetation cover and bare soil NDVI windows
FULL_COVER = VegetationMask('full_cover', lower=0.6)
BARE_SOIL = VegetationMask('bare_soil', lower=0.1, upper=0.2)

REDUCERS = ('mean', 'min', 'max', 'std', 'median', 'sum', 'count')


@dataclass(frozen=True)
class TrapezoidConfig:
    """
    Settings shared by calibration, evaluation and aggregation.

    Parameters
    ----------
    aoi : BaseGeometry, optional
        Area of interest in the scenes' CRS. Corners are computed only from
        pixels inside it. None uses the full grid.
    start_date, end_date : str, optional
        Inclusive date range in 'YYYY-MM-DD' format.
    index_band : str
        Vegetation index band used for the masks and the model.
    full_cover, bare_soil : VegetationMask
        Vegetation class windows.
    reducer : str
        Regional reducer: one of 'mean', 'min', 'max', 'std', 'median',
        'sum', 'count'.
    min_denominator : float
        Model pixels with ``|denominator| < min_denominator`` are masked.
    min_valid_fraction : float
        Regional observations with a smaller fraction of valid pixels are
        dropped.
    max_workers : int, optional
        Threads for the per-scene evaluation phase. None or 1 runs serially.
    scale : float, optional
        Nominal pixel size in metres, recorded in outputs only.
    """

    aoi: Optional[BaseGeometry] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    index_band: str = 'NDVI'
    full_cover: VegetationMask = FULL_COVER
    bare_soil: VegetationMask = BARE_SOIL
    reducer: str = 'mean'
    min_denominator: float = 1e-6
    min_valid_fraction: float = 0.0
    max_workers: Optional[int] = None
    scale: Optional[float] = None

    def __post_init__(self):
        if self.reducer not in REDUCERS:
            raise ValueError(f"Unknown reducer: {self.reducer}. Use one of {REDUCERS}.")
        if self.min_denominator < 0:
            raise ValueError("min_denominator must be >= 0")
        if not 0.0 <= self.min_valid_fraction <= 1.0:
            raise ValueError("min_valid_fraction must be in [0, 1]")
        for value in (self.start_date, self.end_date):
            if value is not None:
                datetime.strptime(value, '%Y-%m-%d')
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError(f"start_date {self.start_date} is after end_date {self.end_date}")

    def replace(self, **changes) -> 'TrapezoidConfig':
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> 'TrapezoidConfig':
        """
        Build a config from plain values.

        Mask windows may be given as ``{'lower': .., 'upper': ..}`` dicts.
        """
        values = dict(values)
        for key, default in (('full_cover', FULL_COVER), ('bare_soil', BARE_SOIL)):
            window = values.get(key)
            if isinstance(window, Mapping):
                values[key] = VegetationMask(
                    default.name,
                    lower=window.get('lower', default.lower),
                    upper=window.get('upper', default.upper),
                )
        return cls(**values)
