"""Exception types raised by the estimate pipeline."""


class EstimatorError(Exception):
    """Base class for estimate pipeline errors."""


class ValidationError(EstimatorError):
    """Input rejected before any computation took place."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class ReferenceDataError(ValidationError):
    """A battery, rate plan or panel id that is not in the catalog."""


class ProductionServiceError(EstimatorError):
    """The irradiance service failed or returned an unusable payload."""
