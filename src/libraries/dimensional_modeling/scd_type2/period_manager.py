"""
Validity interval handling for SCD history rows.

Intervals are [start_period, end_period). A current row is open-ended: its end
is NULL, or latest period + 1 when close_current_at_next_period is set.
"""

from pyspark.sql import Column, DataFrame
from pyspark.sql.functions import col, current_timestamp, lit, when
import logging

from ..common.config import SCDHistoryConfig

logger = logging.getLogger(__name__)


class PeriodManager:
    """Manages validity periods, current flags and audit timestamps."""

    def __init__(self, config: SCDHistoryConfig):
        """
        Initialize PeriodManager with configuration.

        Args:
            config: SCD history configuration
        """
        self.config = config

    def open_end(self, latest_period: int) -> Column:
        """End value stored on a current row."""
        if self.config.close_current_at_next_period:
            return lit(latest_period + 1).cast("int")
        return lit(None).cast("int")

    def set_period_bounds(self, df: DataFrame, first_period_column: str,
                          last_period_column: str, latest_period: int) -> DataFrame:
        """
        Turn a run's first and last period into start, end and current flag.

        Args:
            df: One row per run of unchanged classification
            first_period_column: First period of the run
            last_period_column: Last period of the run
            latest_period: Latest period known to the build

        Returns:
            DataFrame with start, end and current flag columns set
        """
        is_current = col(last_period_column) == lit(latest_period)

        return (df
                .withColumn(self.config.start_column, col(first_period_column).cast("int"))
                .withColumn(self.config.end_column,
                            when(is_current, self.open_end(latest_period))
                            .otherwise((col(last_period_column) + 1).cast("int")))
                .withColumn(self.config.current_flag_column, is_current))

    def set_audit_timestamps(self, df: DataFrame) -> DataFrame:
        """
        Set audit timestamps for records.

        Args:
            df: Input DataFrame

        Returns:
            DataFrame with audit timestamps set
        """
        current_ts = current_timestamp()

        return (df
                .withColumn(self.config.created_ts_column, current_ts)
                .withColumn(self.config.modified_ts_column, current_ts))
