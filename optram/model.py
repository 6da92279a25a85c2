"""
Trapezoid model layer - pure NumPy/XArray math operations.

Applies the rational trapezoid model per pixel with fixed parameters:

    W = (dry_bare + sd * index - source) / ((dry_bare - wet_bare) + (sd - sw) * index)

where ``index`` is the vegetation index (NDVI) and ``source`` the model's
source band (STR for OPTRAM, LST for TOTRAM). ``sd`` and ``sw`` are the
dry- and wet-edge slopes (vegetation corner minus bare-soil corner), so a
pixel on the dry edge gives 0 and one on the wet edge gives 1. OPTRAM output
is scaled to percent; TOTRAM output is left as a dimensionless index.
Pixels whose denominator is within ``min_denominator`` of zero are masked.

Parameters are always passed in. They are computed once per collection by
`optram.calibration.calibrate` and reused for the reference composite and
for every scene of the time series.

References
----------
Sadeghi, M., Babaeian, E., Tuller, M., & Jones, S. B. (2017). The optical
trapezoid model: A novel approach to remote sensing of soil moisture applied
to Sentinel-2 and Landsat-8 observations. Remote Sensing of Environment, 198,
52-68. https://doi.org/10.1016/j.rse.2017.05.041
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Union

import numpy as np
import xarray as xr

from optram.calibration import ModelFamily, OPTRAM, TOTRAM, TrapezoidParameters, get_family
from optram.config import TrapezoidConfig
from optram.image import Scene, SceneCollection

logger = logging.getLogger(__name__)

ArrayLike = Union[np.ndarray, xr.DataArray, float]

OUTPUT_BAND = 'soil_moisture'
DEFAULT_MIN_DENOMINATOR = 1e-6


def trapezoid_ratio(
    index: ArrayLike,
    source: ArrayLike,
    dry_bare: float,
    wet_bare: float,
    sd: float,
    sw: float,
    min_denominator: float = DEFAULT_MIN_DENOMINATOR,
) -> ArrayLike:
    """
    Dimensionless trapezoid ratio.

    Parameters
    ----------
    index : array-like
        Vegetation index (NDVI).
    source : array-like
        Source band (STR or LST).
    dry_bare, wet_bare : float
        Bare-soil dry and wet corners.
    sd, sw : float
        Dry- and wet-edge deltas.
    min_denominator : float
        Pixels with ``|denominator| < min_denominator`` become NaN.

    Returns
    -------
    array-like
        Ratio, NaN where the denominator vanishes or inputs are NaN.
    """
    if not isinstance(index, xr.DataArray):
        index = np.asarray(index, dtype=float)
    if not isinstance(source, xr.DataArray):
        source = np.asarray(source, dtype=float)

    numerator = dry_bare + sd * index - source
    denominator = (dry_bare - wet_bare) + (sd - sw) * index
    valid = np.abs(denominator) >= min_denominator

    with np.errstate(divide='ignore', invalid='ignore'):
        ratio = numerator / denominator

    if isinstance(ratio, xr.DataArray):
        return ratio.where(valid)
    return np.where(valid, ratio, np.nan)


def optram_soil_moisture(
    ndvi: ArrayLike,
    str_: ArrayLike,
    params: TrapezoidParameters,
    min_denominator: float = DEFAULT_MIN_DENOMINATOR,
) -> ArrayLike:
    """
    OPTRAM relative soil moisture in percent.

    ``100 * (id + sd*NDVI - STR) / ((id - iw) + (sd - sw)*NDVI)`` with
    ``id``/``iw`` the bare-soil dry (min STR) and wet (max STR) corners.
    """
    if params.family != OPTRAM.name:
        raise ValueError(f"OPTRAM evaluation needs OPTRAM parameters, got {params.family}")
    ratio = trapezoid_ratio(
        ndvi, str_,
        dry_bare=params.dry_bare,
        wet_bare=params.wet_bare,
        sd=params.sd,
        sw=params.sw,
        min_denominator=min_denominator,
    )
    return ratio * OPTRAM.output_scale


def totram_soil_moisture(
    ndvi: ArrayLike,
    lst: ArrayLike,
    params: TrapezoidParameters,
    min_denominator: float = DEFAULT_MIN_DENOMINATOR,
) -> ArrayLike:
    """
    TOTRAM relative soil moisture index (dimensionless).

    Bare-soil dry corner is the maximum LST, wet corner the minimum LST.
    """
    if params.family != TOTRAM.name:
        raise ValueError(f"TOTRAM evaluation needs TOTRAM parameters, got {params.family}")
    ratio = trapezoid_ratio(
        ndvi, lst,
        dry_bare=params.dry_bare,
        wet_bare=params.wet_bare,
        sd=params.sd,
        sw=params.sw,
        min_denominator=min_denominator,
    )
    return ratio * TOTRAM.output_scale


_EVALUATORS = {
    OPTRAM.name: optram_soil_moisture,
    TOTRAM.name: totram_soil_moisture,
}


def provenance(family: ModelFamily) -> dict:
    """Metadata attached to every estimate of ``family``."""
    return {
        'model': family.name,
        'model_ref': family.reference,
        'units': family.units,
        'notes': family.notes,
    }


def evaluate_scene(
    scene: Scene,
    params: TrapezoidParameters,
    config: Optional[TrapezoidConfig] = None,
) -> Scene:
    """
    Apply the trapezoid model to one scene.

    Parameters
    ----------
    scene : Scene
        Scene carrying the index band and the family's source band.
    params : TrapezoidParameters
        Fixed parameters from calibration.
    config : TrapezoidConfig, optional
        Index band name and ``min_denominator``.

    Returns
    -------
    Scene
        New scene with a ``soil_moisture`` band whose attrs hold model,
        model_ref, units and notes, plus the nominal pixel ``scale`` when
        the config sets one.
    """
    if config is None:
        config = TrapezoidConfig()

    family = get_family(params.family)
    index = scene.band(config.index_band)
    source = scene.band(family.source_band)

    estimate = _EVALUATORS[family.name](index, source, params, config.min_denominator)
    estimate = estimate.rename(OUTPUT_BAND)
    estimate.attrs = provenance(family)
    estimate.attrs['scene_id'] = scene.scene_id
    estimate.attrs['time'] = str(scene.time)
    if config.scale is not None:
        estimate.attrs['scale'] = config.scale

    return scene.with_bands(**{OUTPUT_BAND: estimate})


def evaluate_collection(
    collection: SceneCollection,
    params: TrapezoidParameters,
    config: Optional[TrapezoidConfig] = None,
) -> SceneCollection:
    """
    Apply the trapezoid model to every scene with the same parameters.

    Scenes are independent, so with ``config.max_workers > 1`` they are
    evaluated in a thread pool. Output order follows input order.
    """
    if config is None:
        config = TrapezoidConfig()

    collection = collection.filter_date(config.start_date, config.end_date)

    def _evaluate(scene):
        return evaluate_scene(scene, params, config)

    if config.max_workers and config.max_workers > 1 and len(collection) > 1:
        with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            scenes = list(executor.map(_evaluate, collection))
    else:
        scenes = [_evaluate(scene) for scene in collection]

    logger.info("Evaluated %s on %d scenes", params.family, len(scenes))
    return SceneCollection(scenes)
