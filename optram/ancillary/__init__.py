"""
Ancillary data access.

- Precipitation from GridMET (EVI-MAP input)
"""

from optram.ancillary.gridmet import (
    get_precipitation,
    get_precipitation_series,
)

__all__ = [
    "get_precipitation",
    "get_precipitation_series",
]
