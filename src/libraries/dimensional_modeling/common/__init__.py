"""
Common utilities and configurations for dimensional modeling library.
"""

from .config import (
    DeduplicationConfig,
    CumulativeDateListConfig,
    ReducedActivityConfig,
    SCDHistoryConfig,
    PeriodDimensionConfig,
    CumulativeDimensionConfig,
    DeduplicationStrategy,
    ActivityRule,
    ProcessingMetrics,
    ValidationResult
)
from .exceptions import (
    DimensionalModelingError,
    SchemaValidationError,
    ConfigurationError,
    DeduplicationError,
    OutOfOrderLoadError,
    CumulativeUpdateError,
    SCDValidationError,
    SCDProcessingError
)
from .utils import validate_dataframe_schema, require_columns

__all__ = [
    "DeduplicationConfig",
    "CumulativeDateListConfig",
    "ReducedActivityConfig",
    "SCDHistoryConfig",
    "PeriodDimensionConfig",
    "CumulativeDimensionConfig",
    "DeduplicationStrategy",
    "ActivityRule",
    "ProcessingMetrics",
    "ValidationResult",
    "DimensionalModelingError",
    "SchemaValidationError",
    "ConfigurationError",
    "DeduplicationError",
    "OutOfOrderLoadError",
    "CumulativeUpdateError",
    "SCDValidationError",
    "SCDProcessingError",
    "validate_dataframe_schema",
    "require_columns"
]
