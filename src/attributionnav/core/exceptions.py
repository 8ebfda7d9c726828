"""Custom exceptions for AttributionNav."""


class AttributionNavError(Exception):
    """Base exception for all AttributionNav errors."""

    pass


class ConfigurationError(AttributionNavError):
    """Raised when configuration is invalid."""

    pass


class UnknownModelError(AttributionNavError):
    """Raised when a caller requests a model type that is not registered."""

    def __init__(self, model_type: str):
        self.model_type = model_type
        super().__init__(f"Unknown attribution model: {model_type}")


class ConversionNotFoundError(AttributionNavError):
    """Raised when a conversion identifier does not exist."""

    def __init__(self, conversion_id: str):
        self.conversion_id = conversion_id
        super().__init__(f"Conversion not found: {conversion_id}")


class ModelNotTrainedError(AttributionNavError):
    """Raised when data-driven inference runs before any successful training."""

    pass


class InsufficientTrainingDataError(AttributionNavError):
    """Raised when a training run does not have enough journeys to fit.

    The previously active parameters are left untouched.
    """

    def __init__(self, message: str, journeys: int = 0, required: int = 0):
        """Initialize insufficient training data error.

        Args:
            message: Error message
            journeys: Number of eligible journeys found
            required: Minimum number of journeys required
        """
        super().__init__(message)
        self.journeys = journeys
        self.required = required


class RepositoryError(AttributionNavError):
    """Raised when a persistence or query operation fails.

    The original exception is always chained as ``__cause__``.
    """

    def __init__(self, operation: str, error: Exception | None = None):
        self.operation = operation
        self.original_error = error
        message = f"Repository operation '{operation}' failed"
        if error is not None:
            message += f": {error}"
        super().__init__(message)


class ModelTrainingError(AttributionNavError):
    """Raised when fitting or persisting data-driven parameters fails.

    The active parameters are left unchanged.
    """

    def __init__(self, stage: str, error: Exception | None = None):
        self.stage = stage
        self.original_error = error
        message = f"Data-driven training failed during {stage}"
        if error is not None:
            message += f": {error}"
        super().__init__(message)


class AttributionContractError(AttributionNavError, ValueError):
    """Raised when a weighting model receives input that breaks its contract."""

    pass


class AttributionTimeoutError(AttributionNavError):
    """Raised when an attribution or training call exceeds its time budget."""

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{operation} timed out after {timeout_seconds:g}s")
