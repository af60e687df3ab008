"""
Cumulative table modules.
"""

from .date_list_updater import CumulativeDateListUpdater
from .datelist_encoder import DateListEncoder, last_n_days_mask
from .reduced_activity_updater import ReducedActivityUpdater
from .dimension_accumulator import CumulativeDimensionAccumulator

__all__ = [
    "CumulativeDateListUpdater",
    "DateListEncoder",
    "last_n_days_mask",
    "ReducedActivityUpdater",
    "CumulativeDimensionAccumulator"
]
