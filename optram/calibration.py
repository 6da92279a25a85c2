"""
Trapezoid calibration: corner estimation and parameter derivation.

Calibration runs once per scene collection. The four trapezoid corners are
collection-wide extremes of the model's source band (STR for OPTRAM, LST for
TOTRAM) under the full-cover and bare-soil vegetation masks. Every valid
pixel across space and time is pooled and the literal maximum or minimum is
taken, so one outlier pixel on one date can set a corner.

The two model families use opposite wet/dry conventions and are kept as
separate code paths:

- OPTRAM (ratio band): STR grows with wetness, wet = max, dry = min.
- TOTRAM (temperature): LST falls with wetness, wet = min, dry = max.

Both derive ``sd = dry_veg - dry_bare`` and ``sw = wet_veg - wet_bare``, the
slopes of the dry and wet edges across the NDVI range.

References
----------
Sadeghi, M., Babaeian, E., Tuller, M., & Jones, S. B. (2017). The optical
trapezoid model: A novel approach to remote sensing of soil moisture applied
to Sentinel-2 and Landsat-8 observations. Remote Sensing of Environment, 198,
52-68.

Sadeghi, M., Jones, S. B., & Philpot, W. D. (2015). A linear physically-based
model for remote sensing of soil moisture using short wave infrared bands.
Remote Sensing of Environment, 164, 66-76.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

import xarray as xr
from shapely.geometry.base import BaseGeometry

from optram.config import TrapezoidConfig, VegetationMask
from optram.errors import InsufficientDataError
from optram.image import SceneCollection
from optram.zonal import Region, region_mask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelFamily:
    """
    Static description of a trapezoid model.

    Parameters
    ----------
    name : str
        Model name written to output metadata.
    source_band : str
        Band whose extremes form the trapezoid (STR or LST).
    wet_extreme, dry_extreme : str
        'max' or 'min' of the source band taken as the wet / dry edge.
    units : str
        Output units.
    output_scale : float
        Multiplier applied to the dimensionless model output.
    reference : str
        Citation string.
    notes : str
        Human-readable description of the output.
    """

    name: str
    source_band: str
    wet_extreme: str
    dry_extreme: str
    units: str
    output_scale: float
    reference: str
    notes: str


OPTRAM = ModelFamily(
    name='OPTRAM',
    source_band='STR',
    wet_extreme='max',
    dry_extreme='min',
    units='%',
    output_scale=100.0,
    reference='Sadeghi et al. (2017), Remote Sensing of Environment 198, 52-68.',
    notes='Relative surface soil moisture estimated by OPTRAM from SWIR transformed reflectance (STR) and NDVI',
)

TOTRAM = ModelFamily(
    name='TOTRAM',
    source_band='LST',
    wet_extreme='min',
    dry_extreme='max',
    units='1',
    output_scale=1.0,
    reference='Sadeghi et al. (2017), Remote Sensing of Environment 198, 52-68.',
    notes='Relative surface soil moisture index estimated by TOTRAM from land surface temperature and NDVI',
)

FAMILIES = {'OPTRAM': OPTRAM, 'TOTRAM': TOTRAM}


@dataclass(frozen=True)
class TrapezoidCorners:
    """Collection-wide extremes of the source band per vegetation class."""

    family: str
    wet_veg: float
    dry_veg: float
    wet_bare: float
    dry_bare: float


@dataclass(frozen=True)
class TrapezoidParameters:
    """
    Fixed trapezoid parameters shared by every scene evaluation.

    Attributes
    ----------
    corners : TrapezoidCorners
        The four corners the deltas were derived from.
    sd : float
        Dry-edge slope, ``dry_veg - dry_bare``.
    sw : float
        Wet-edge slope, ``wet_veg - wet_bare``.
    """

    corners: TrapezoidCorners
    sd: float
    sw: float

    @property
    def family(self) -> str:
        return self.corners.family

    @property
    def dry_bare(self) -> float:
        return self.corners.dry_bare

    @property
    def wet_bare(self) -> float:
        return self.corners.wet_bare


def get_family(family: Union[str, ModelFamily]) -> ModelFamily:
    if isinstance(family, ModelFamily):
        return family
    try:
        return FAMILIES[family.upper()]
    except KeyError:
        raise ValueError(f"Unknown model family: {family}. Use 'OPTRAM' or 'TOTRAM'.")


def collection_extreme(
    collection: SceneCollection,
    band: str,
    mask: VegetationMask,
    extreme: str = 'max',
    region: Optional[Union[Region, BaseGeometry]] = None,
    index_band: str = 'NDVI',
) -> float:
    """
    Collection-wide extreme of a band under a vegetation mask.

    Pixels of every scene are pooled along a ``time`` dimension, restricted
    to ``mask`` and ``region``, and reduced to one scalar. The result does not
    depend on scene order.

    Parameters
    ----------
    collection : SceneCollection
        Scenes carrying ``band`` and ``index_band``.
    band : str
        Band to reduce (e.g. 'STR').
    mask : VegetationMask
        Vegetation class applied to ``index_band`` per scene.
    extreme : str
        'max' or 'min'.
    region : Region or BaseGeometry, optional
        Only pixels inside it are pooled. None uses the full grid.
    index_band : str
        Vegetation index band for the mask.

    Returns
    -------
    float
        The extreme value.

    Raises
    ------
    InsufficientDataError
        Empty collection, or no valid pixel under the mask.
    MissingBandError
        A scene lacks ``band`` or ``index_band``.
    """
    if extreme not in ('max', 'min'):
        raise ValueError(f"Unknown extreme: {extreme}. Use 'max' or 'min'.")

    if len(collection) == 0:
        raise InsufficientDataError(
            f"Empty collection: cannot compute {extreme} of '{band}' under {mask.name} mask"
        )

    collection.require_band(band)
    collection.require_band(index_band)

    values = collection.stack(band)
    selected = mask.apply(collection.stack(index_band))

    if region is not None:
        inside = region_mask(region, collection[0].shape, collection.transform)
        selected = selected & xr.DataArray(inside, dims=('y', 'x'))

    pooled = values.where(selected)
    if int(pooled.count()) == 0:
        raise InsufficientDataError(
            f"No valid '{band}' pixels under {mask.name} mask "
            f"({index_band} in [{mask.lower}, {mask.upper}]) for the {extreme} corner"
        )

    result = pooled.max(skipna=True) if extreme == 'max' else pooled.min(skipna=True)
    return float(result)


def _optram_corners(collection: SceneCollection, config: TrapezoidConfig) -> TrapezoidCorners:
    # STR: wetter surfaces have higher STR
    kwargs = dict(region=config.aoi, index_band=config.index_band)
    return TrapezoidCorners(
        family=OPTRAM.name,
        wet_veg=collection_extreme(collection, 'STR', config.full_cover, 'max', **kwargs),
        dry_veg=collection_extreme(collection, 'STR', config.full_cover, 'min', **kwargs),
        wet_bare=collection_extreme(collection, 'STR', config.bare_soil, 'max', **kwargs),
        dry_bare=collection_extreme(collection, 'STR', config.bare_soil, 'min', **kwargs),
    )


def _totram_corners(collection: SceneCollection, config: TrapezoidConfig) -> TrapezoidCorners:
    # LST: wetter surfaces are cooler
    kwargs = dict(region=config.aoi, index_band=config.index_band)
    return TrapezoidCorners(
        family=TOTRAM.name,
        wet_veg=collection_extreme(collection, 'LST', config.full_cover, 'min', **kwargs),
        dry_veg=collection_extreme(collection, 'LST', config.full_cover, 'max', **kwargs),
        wet_bare=collection_extreme(collection, 'LST', config.bare_soil, 'min', **kwargs),
        dry_bare=collection_extreme(collection, 'LST', config.bare_soil, 'max', **kwargs),
    )


def estimate_corners(
    collection: SceneCollection,
    family: Union[str, ModelFamily] = 'OPTRAM',
    config: Optional[TrapezoidConfig] = None,
) -> TrapezoidCorners:
    """
    Estimate the four trapezoid corners from a collection.

    All bands are checked on every scene before any corner is reduced.

    Parameters
    ----------
    collection : SceneCollection
        Scenes with the index band and the family's source band.
    family : str or ModelFamily
        'OPTRAM' or 'TOTRAM'.
    config : TrapezoidConfig, optional
        AOI, date range, index band and mask windows.

    Returns
    -------
    TrapezoidCorners
    """
    family = get_family(family)
    if config is None:
        config = TrapezoidConfig()

    collection = collection.filter_date(config.start_date, config.end_date)
    if len(collection) == 0:
        raise InsufficientDataError(
            f"No scenes between {config.start_date} and {config.end_date} to calibrate {family.name}"
        )

    collection.require_band(family.source_band)
    collection.require_band(config.index_band)

    if family.name == OPTRAM.name:
        corners = _optram_corners(collection, config)
    elif family.name == TOTRAM.name:
        corners = _totram_corners(collection, config)
    else:
        raise ValueError(f"No corner definition for model family {family.name}")

    logger.debug("%s corners: %s", family.name, corners)
    return corners


def derive_parameters(corners: TrapezoidCorners) -> TrapezoidParameters:
    """
    Derive the trapezoid edge slopes from the corners.

    ``sd = dry_veg - dry_bare``, ``sw = wet_veg - wet_bare``. With these the
    dry edge is ``dry_bare + sd * NDVI`` and the wet edge
    ``wet_bare + sw * NDVI``.
    """
    if corners.family == OPTRAM.name:
        sd = corners.dry_veg - corners.dry_bare
        sw = corners.wet_veg - corners.wet_bare
    elif corners.family == TOTRAM.name:
        # Same form; LST slopes are usually negative
        sd = corners.dry_veg - corners.dry_bare
        sw = corners.wet_veg - corners.wet_bare
    else:
        raise ValueError(f"No parameter definition for model family {corners.family}")

    params = TrapezoidParameters(corners=corners, sd=sd, sw=sw)
    logger.debug("%s parameters: sd=%.6g sw=%.6g", corners.family, sd, sw)
    return params


def calibrate(
    collection: SceneCollection,
    family: Union[str, ModelFamily] = 'OPTRAM',
    config: Optional[TrapezoidConfig] = None,
) -> TrapezoidParameters:
    """Estimate corners and derive parameters in one blocking step."""
    return derive_parameters(estimate_corners(collection, family, config))
