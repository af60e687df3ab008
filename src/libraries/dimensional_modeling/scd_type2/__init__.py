"""
SCD Type 2 history modules.
"""

from .history_builder import SCDHistoryBuilder
from .classifier import QualityClassifier
from .period_aggregator import PeriodAggregator
from .period_dimension import PeriodDimensionBuilder
from .hash_manager import HashManager
from .record_manager import RecordManager
from .period_manager import PeriodManager
from .validators import SCDValidator

__all__ = [
    "SCDHistoryBuilder",
    "QualityClassifier",
    "PeriodAggregator",
    "PeriodDimensionBuilder",
    "HashManager",
    "RecordManager",
    "PeriodManager",
    "SCDValidator"
]
