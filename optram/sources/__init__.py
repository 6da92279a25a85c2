"""
Data source layer for loading imagery into Scenes.
"""

from optram.sources.base import DataSource
from optram.sources.local import LocalFileSource, parse_scene_date

__all__ = ["DataSource", "LocalFileSource", "parse_scene_date"]
