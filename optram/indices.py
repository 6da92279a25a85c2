"""
Index engine - pure NumPy/XArray band math.

Derived bands used by the trapezoid and EVI-MAP models. Invalid pixels
(zero denominators, values outside a transform's domain) are returned as
NaN, which every downstream reduction treats as "no data". Passing
``strict=True`` raises `DomainError` instead.

References
----------
Sadeghi, M., Babaeian, E., Tuller, M., & Jones, S. B. (2017). The optical
trapezoid model: A novel approach to remote sensing of soil moisture applied
to Sentinel-2 and Landsat-8 observations. Remote Sensing of Environment, 198,
52-68. https://doi.org/10.1016/j.rse.2017.05.041

Huete, A., et al. (2002). Overview of the radiometric and biophysical
performance of the MODIS vegetation indices. Remote Sensing of Environment,
83(1-2), 195-213.
"""

import logging
from typing import Union, Optional

import numpy as np
import xarray as xr

from optram.errors import DomainError
from optram.image import BandScale, Scene, SensorPreset, SENTINEL2_MSI

logger = logging.getLogger(__name__)

ArrayLike = Union[np.ndarray, xr.DataArray, float]


def _where(cond, values, like):
    """NaN outside ``cond``, keeping xarray/numpy type of ``like``."""
    if isinstance(like, xr.DataArray):
        return xr.where(cond, values, np.nan)
    return np.where(cond, values, np.nan)


def normalized_index(band_a: ArrayLike, band_b: ArrayLike, strict: bool = False) -> ArrayLike:
    """
    Normalized difference of two bands.

    ``(band_a - band_b) / (band_a + band_b)``

    Parameters
    ----------
    band_a, band_b : array-like
        Bands in physical units (e.g. NIR and red reflectance for NDVI).
    strict : bool
        Raise `DomainError` on a zero denominator instead of masking.

    Returns
    -------
    array-like
        Index in [-1, 1] with NaN where the denominator is zero.
    """
    if not isinstance(band_a, xr.DataArray):
        band_a = np.asarray(band_a, dtype=float)
    if not isinstance(band_b, xr.DataArray):
        band_b = np.asarray(band_b, dtype=float)

    denom = band_a + band_b
    valid = denom != 0
    if strict and not bool(np.all(valid | np.isnan(denom))):
        raise DomainError("normalized_index: band_a + band_b is zero")

    with np.errstate(divide='ignore', invalid='ignore'):
        index = (band_a - band_b) / denom
    return _where(valid, index, band_a)


def transmittance_ratio(swir: ArrayLike, strict: bool = False) -> ArrayLike:
    """
    Shortwave-infrared transformed reflectance (STR).

    ``STR = (1 - SWIR)^2 / (2 * SWIR)``

    Defined for SWIR reflectance strictly between 0 and 1. STR is strictly
    decreasing over that interval and grows with surface wetness.

    Parameters
    ----------
    swir : array-like
        SWIR reflectance (0-1).
    strict : bool
        Raise `DomainError` for out-of-domain pixels instead of masking.

    Returns
    -------
    array-like
        STR with NaN outside (0, 1).
    """
    if not isinstance(swir, xr.DataArray):
        swir = np.asarray(swir, dtype=float)

    valid = (swir > 0) & (swir < 1)
    if strict and not bool(np.all(valid | np.isnan(swir))):
        raise DomainError("transmittance_ratio: SWIR reflectance must lie in (0, 1)")

    with np.errstate(divide='ignore', invalid='ignore'):
        ratio = (1 - swir) ** 2 / (2 * swir)
    return _where(valid, ratio, swir)


def scaled_temperature(raw: ArrayLike, scale: float, offset: float = 0.0) -> ArrayLike:
    """
    Convert stored thermal values to physical temperature.

    ``T = raw * scale + offset``
    """
    if not isinstance(raw, xr.DataArray):
        raw = np.asarray(raw, dtype=float)
    return raw * scale + offset


def enhanced_vegetation_index(
    nir: ArrayLike,
    red: ArrayLike,
    blue: ArrayLike,
    strict: bool = False,
) -> ArrayLike:
    """
    Enhanced Vegetation Index.

    EVI = 2.5 * (NIR - RED) / (NIR + 6*RED - 7.5*BLUE + 1)

    NaN where the denominator is zero.
    """
    if not isinstance(nir, xr.DataArray):
        nir = np.asarray(nir, dtype=float)

    denom = nir + 6 * red - 7.5 * blue + 1
    valid = denom != 0
    if strict and not bool(np.all(valid | np.isnan(denom))):
        raise DomainError("enhanced_vegetation_index: denominator is zero")

    with np.errstate(divide='ignore', invalid='ignore'):
        evi = 2.5 * (nir - red) / denom
    return _where(valid, evi, nir)


def add_indices(scene: Scene, sensor: Optional[SensorPreset] = None) -> Scene:
    """
    Attach derived bands to a scene.

    Always adds ``NDVI`` and ``STR``. ``LST`` is added when the sensor has a
    thermal band present in the scene, ``EVI`` when the blue band is present.
    Raw bands are converted with their declared scale before use.

    Parameters
    ----------
    scene : Scene
        Scene with raw sensor bands.
    sensor : SensorPreset, optional
        Band roles. Defaults to Sentinel-2 MSI.

    Returns
    -------
    Scene
        New scene carrying the raw and the derived bands.
    """
    if sensor is None:
        sensor = SENTINEL2_MSI

    nir = scene.physical(sensor.band('nir'))
    red = scene.physical(sensor.band('red'))
    swir = scene.physical(sensor.band(sensor.swir_role))

    derived = {
        'NDVI': normalized_index(nir, red),
        'STR': transmittance_ratio(swir),
    }

    thermal = sensor.bands.get('thermal')
    if thermal is not None and scene.has_band(thermal):
        scale = scene.scales.get(thermal, BandScale())
        derived['LST'] = scaled_temperature(scene.band(thermal), scale.scale, scale.offset)

    blue = sensor.bands.get('blue')
    if blue is not None and scene.has_band(blue):
        derived['EVI'] = enhanced_vegetation_index(nir, red, scene.physical(blue))

    logger.debug("Derived %s for scene %s", sorted(derived), scene.scene_id)
    return scene.with_bands(**derived)
