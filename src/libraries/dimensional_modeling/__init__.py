"""
Dimensional Modeling Library

Spark and Delta Lake jobs for building dimensional tables from raw event and
fact data.

Main Components:
- FactDeduplicator: Keeps one row per business key of a fact table
- CumulativeDateListUpdater: Maintains per-entity lists of active dates
- ReducedActivityUpdater: Maintains monthly per-day metric arrays
- CumulativeDimensionAccumulator: Carries entity state forward period by period
- SCDHistoryBuilder: Builds type 2 quality class history, full or incremental
- PeriodDimensionBuilder: Keeps one row per entity with its latest period of facts

Version: 1.0.0
"""

from .deduplication.fact_deduplicator import FactDeduplicator
from .cumulative.date_list_updater import CumulativeDateListUpdater
from .cumulative.datelist_encoder import DateListEncoder
from .cumulative.reduced_activity_updater import ReducedActivityUpdater
from .cumulative.dimension_accumulator import CumulativeDimensionAccumulator
from .scd_type2.history_builder import SCDHistoryBuilder
from .scd_type2.period_dimension import PeriodDimensionBuilder
from .common.config import (
    DeduplicationConfig,
    CumulativeDateListConfig,
    ReducedActivityConfig,
    SCDHistoryConfig,
    PeriodDimensionConfig,
    CumulativeDimensionConfig
)
from .common.exceptions import (
    DimensionalModelingError,
    SchemaValidationError,
    ConfigurationError,
    DeduplicationError,
    OutOfOrderLoadError,
    CumulativeUpdateError,
    SCDValidationError,
    SCDProcessingError
)

__version__ = "1.0.0"

__all__ = [
    "FactDeduplicator",
    "CumulativeDateListUpdater",
    "DateListEncoder",
    "ReducedActivityUpdater",
    "CumulativeDimensionAccumulator",
    "SCDHistoryBuilder",
    "PeriodDimensionBuilder",
    "DeduplicationConfig",
    "CumulativeDateListConfig",
    "ReducedActivityConfig",
    "SCDHistoryConfig",
    "PeriodDimensionConfig",
    "CumulativeDimensionConfig",
    "DimensionalModelingError",
    "SchemaValidationError",
    "ConfigurationError",
    "DeduplicationError",
    "OutOfOrderLoadError",
    "CumulativeUpdateError",
    "SCDValidationError",
    "SCDProcessingError"
]
