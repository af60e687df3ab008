"""
Custom exceptions for dimensional modeling library.
"""


class DimensionalModelingError(Exception):
    """Base exception for dimensional modeling library."""

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class SchemaValidationError(DimensionalModelingError):
    """Exception raised when source data does not have the expected shape."""

    def __init__(self, message: str, validation_errors: list = None):
        super().__init__(message, "SCHEMA_VALIDATION_ERROR")
        self.validation_errors = validation_errors or []


class ConfigurationError(DimensionalModelingError):
    """Exception raised when configuration is invalid."""

    def __init__(self, message: str, config_field: str = None):
        super().__init__(message, "CONFIGURATION_ERROR")
        self.config_field = config_field


class DeduplicationError(DimensionalModelingError):
    """Exception raised when deduplication fails."""

    def __init__(self, message: str, deduplication_strategy: str = None):
        super().__init__(message, "DEDUPLICATION_ERROR")
        self.deduplication_strategy = deduplication_strategy


class OutOfOrderLoadError(DimensionalModelingError):
    """Exception raised when a date or period is applied out of order."""

    def __init__(self, message: str, requested=None, last_loaded=None):
        super().__init__(message, "OUT_OF_ORDER_LOAD_ERROR")
        self.requested = requested
        self.last_loaded = last_loaded


class CumulativeUpdateError(DimensionalModelingError):
    """Exception raised when a cumulative table update fails."""

    def __init__(self, message: str, table_name: str = None):
        super().__init__(message, "CUMULATIVE_UPDATE_ERROR")
        self.table_name = table_name


class SCDValidationError(DimensionalModelingError):
    """Exception raised when SCD history validation fails."""

    def __init__(self, message: str, validation_errors: list = None):
        super().__init__(message, "SCD_VALIDATION_ERROR")
        self.validation_errors = validation_errors or []


class SCDProcessingError(DimensionalModelingError):
    """Exception raised when SCD processing fails."""

    def __init__(self, message: str, processing_step: str = None):
        super().__init__(message, "SCD_PROCESSING_ERROR")
        self.processing_step = processing_step
