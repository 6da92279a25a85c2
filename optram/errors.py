"""
Exception hierarchy for the trapezoid and EVI-MAP models.

Calibration errors (`InsufficientDataError`, `MissingBandError`) are fatal to
a run. `DomainError` is only raised when a transform is called with
``strict=True``; otherwise out-of-domain pixels are masked. `AggregationEmptyError`
is raised per region/scene pair and handled inside the aggregator.
"""


class OptramError(Exception):
    """Base class for all package errors."""


class InsufficientDataError(OptramError):
    """No valid pixels are available to compute a trapezoid corner."""


class MissingBandError(OptramError, KeyError):
    """A required band is absent from a scene."""

    def __init__(self, band: str, scene_id: str = None):
        self.band = band
        self.scene_id = scene_id
        msg = f"Band '{band}' not found"
        if scene_id is not None:
            msg += f" in scene {scene_id}"
        super().__init__(msg)

    def __str__(self):
        # KeyError would otherwise repr() the message
        return self.args[0]


class DomainError(OptramError, ValueError):
    """Input values fall outside the valid domain of a transform."""


class AggregationEmptyError(OptramError):
    """A region has no valid pixels for a given scene."""


class ModelMixingError(OptramError, ValueError):
    """Estimates from different models were combined in one aggregation."""
