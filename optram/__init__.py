"""
OPTRAM - Optical and thermal trapezoid soil moisture

A standalone Python package for estimating relative surface soil moisture
with the optical (OPTRAM) and thermal-optical (TOTRAM) trapezoid models, and
annual actual evapotranspiration with the EVI-MAP model, from pre-processed
Sentinel-2 or Landsat imagery.

Trapezoid corners are calibrated once per scene collection from the
collection-wide extremes of the STR (or LST) band under full-cover and
bare-soil NDVI masks; the resulting parameters are then applied unchanged to
a median reference composite and to every scene of the time series, and the
estimates are reduced over named regions.

References
----------
Sadeghi, M., Babaeian, E., Tuller, M., & Jones, S. B. (2017). The optical
trapezoid model: A novel approach to remote sensing of soil moisture applied
to Sentinel-2 and Landsat-8 observations. Remote Sensing of Environment, 198,
52-68.

Nagler, P. L., et al. (2005). Predicting riparian evapotranspiration from
MODIS vegetation indices and meteorological data. Remote Sensing of
Environment, 94(1), 17-30.
"""

from optram.errors import (
    OptramError,
    InsufficientDataError,
    MissingBandError,
    DomainError,
    AggregationEmptyError,
    ModelMixingError,
)
from optram.config import TrapezoidConfig, VegetationMask, FULL_COVER, BARE_SOIL
from optram.image import (
    BandScale,
    SensorPreset,
    Scene,
    SceneCollection,
    SENTINEL2_MSI,
    LANDSAT_C2_L2,
    SENSORS,
    get_sensor,
)
from optram.indices import (
    normalized_index,
    transmittance_ratio,
    scaled_temperature,
    enhanced_vegetation_index,
    add_indices,
)
from optram.calibration import (
    ModelFamily,
    OPTRAM,
    TOTRAM,
    TrapezoidCorners,
    TrapezoidParameters,
    collection_extreme,
    estimate_corners,
    derive_parameters,
    calibrate,
)
from optram.model import (
    trapezoid_ratio,
    optram_soil_moisture,
    totram_soil_moisture,
    evaluate_scene,
    evaluate_collection,
)
from optram.zonal import (
    Region,
    regions_from_geodataframe,
    compute_zonal_stats,
    regional_time_series,
)
from optram.evimap import (
    EviMapCoefficients,
    evi_star,
    annual_mean,
    annual_precipitation,
    evi_map_et,
)
from optram.sources.base import DataSource
from optram.sources.local import LocalFileSource
from optram.api import run_trapezoid, run_evi_map

__version__ = "0.1.0"

__all__ = [
    # Errors
    "OptramError",
    "InsufficientDataError",
    "MissingBandError",
    "DomainError",
    "AggregationEmptyError",
    "ModelMixingError",
    # Configuration
    "TrapezoidConfig",
    "VegetationMask",
    "FULL_COVER",
    "BARE_SOIL",
    # Scenes
    "BandScale",
    "SensorPreset",
    "Scene",
    "SceneCollection",
    "SENTINEL2_MSI",
    "LANDSAT_C2_L2",
    "SENSORS",
    "get_sensor",
    # Index engine
    "normalized_index",
    "transmittance_ratio",
    "scaled_temperature",
    "enhanced_vegetation_index",
    "add_indices",
    # Calibration
    "ModelFamily",
    "OPTRAM",
    "TOTRAM",
    "TrapezoidCorners",
    "TrapezoidParameters",
    "collection_extreme",
    "estimate_corners",
    "derive_parameters",
    "calibrate",
    # Model
    "trapezoid_ratio",
    "optram_soil_moisture",
    "totram_soil_moisture",
    "evaluate_scene",
    "evaluate_collection",
    # Aggregation
    "Region",
    "regions_from_geodataframe",
    "compute_zonal_stats",
    "regional_time_series",
    # EVI-MAP
    "EviMapCoefficients",
    "evi_star",
    "annual_mean",
    "annual_precipitation",
    "evi_map_et",
    # Data sources
    "DataSource",
    "LocalFileSource",
    # Runners
    "run_trapezoid",
    "run_evi_map",
]
