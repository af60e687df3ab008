"""
Day-by-day load of the monthly reduced activity fact table.

Each (month, host) row holds one array element per loaded day, so days must
be applied once each and in date order. The table's last_loaded_date column
enforces that: an earlier date is rejected, a repeated date is skipped.
"""

from datetime import date
from typing import Optional
from pyspark.sql import Column, DataFrame, SparkSession
from pyspark.sql.functions import (
    array, array_repeat, coalesce, col, concat, count, countDistinct, greatest, lit, size, to_date
)
from pyspark.sql.functions import max as spark_max
import logging
import time

from ..common.config import ReducedActivityConfig, ProcessingMetrics
from ..common.delta_store import DeltaTableStore
from ..common.exceptions import CumulativeUpdateError, DimensionalModelingError, OutOfOrderLoadError
from ..common.utils import empty_array, require_columns

logger = logging.getLogger(__name__)


class ReducedActivityUpdater:
    """Appends one day of per-host hit and unique-visitor counts to monthly arrays."""

    def __init__(self, config: ReducedActivityConfig, spark: SparkSession,
                 store: Optional[DeltaTableStore] = None):
        """
        Initialize ReducedActivityUpdater with configuration and Spark session.

        Args:
            config: Reduced activity configuration
            spark: Spark session
            store: Table store used by run
        """
        self.config = config
        self.spark = spark
        self.store = store or DeltaTableStore(spark)

        logger.info(f"Initialized ReducedActivityUpdater for table: {config.target_table}")

    @property
    def key_columns(self) -> list:
        return [self.config.month_column, self.config.entity_column]

    def compute_daily_metrics(self, events_df: DataFrame, processing_date: date) -> DataFrame:
        """
        Count hits and distinct visitors per host for one day.

        Args:
            events_df: Raw events
            processing_date: Day to aggregate

        Returns:
            DataFrame with the host, _hits and _visitors columns
        """
        require_columns(
            events_df,
            [self.config.entity_column, self.config.event_date_column, self.config.visitor_column],
            "Reduced activity"
        )

        return (events_df
                .filter(to_date(col(self.config.event_date_column)) == lit(processing_date))
                .filter(col(self.config.entity_column).isNotNull())
                .groupBy(self.config.entity_column)
                .agg(count(lit(1)).cast("int").alias("_hits"),
                     countDistinct(self.config.visitor_column).cast("int").alias("_visitors")))

    def check_load_order(self, current_df: DataFrame, processing_date: date) -> bool:
        """
        Verify the day can be appended.

        Returns:
            True if the day was already loaded

        Raises:
            OutOfOrderLoadError: If a later day has already been loaded
        """
        last_loaded = current_df.agg(spark_max(col(self.config.last_loaded_column))).first()[0]

        if last_loaded is None:
            return False
        if processing_date < last_loaded:
            raise OutOfOrderLoadError(
                f"Cannot load {processing_date}: {self.config.target_table} already loaded up to {last_loaded}",
                requested=processing_date,
                last_loaded=last_loaded
            )
        return processing_date == last_loaded

    def merge_day(self, current_df: DataFrame, events_df: DataFrame,
                  processing_date: date) -> Optional[DataFrame]:
        """
        Compute the replacement rows of the month touched by processing_date.

        Args:
            current_df: Current table contents
            events_df: Raw events
            processing_date: Day to append

        Returns:
            Replacement rows, or None if the day was already loaded
        """
        if self.check_load_order(current_df, processing_date):
            logger.warning(f"{processing_date} already loaded into {self.config.target_table}, skipping")
            return None

        month_start = processing_date.replace(day=1)
        day_index = processing_date.day - 1
        entity = self.config.entity_column

        daily_df = self.compute_daily_metrics(events_df, processing_date)
        month_df = (current_df
                    .filter(col(self.config.month_column) == lit(month_start))
                    .select(entity, self.config.hits_column, self.config.unique_visitors_column))

        # Filling needs the month's idle hosts as well
        join_type = "full_outer" if self.config.fill_missing_days else "left"
        joined = daily_df.join(month_df, on=[entity], how=join_type)

        return joined.select(
            lit(month_start).alias(self.config.month_column),
            col(entity),
            self._append(col(self.config.hits_column), col("_hits"), day_index).alias(self.config.hits_column),
            self._append(col(self.config.unique_visitors_column), col("_visitors"), day_index)
            .alias(self.config.unique_visitors_column),
            lit(processing_date).alias(self.config.last_loaded_column)
        )

    def _append(self, array_col: Column, value_col: Column, day_index: int) -> Column:
        """Append the day's value, zero-padding skipped days when filling."""
        existing = coalesce(array_col, empty_array("int"))

        if not self.config.fill_missing_days:
            return concat(existing, array(value_col))

        padding = array_repeat(lit(0), greatest(lit(day_index) - size(existing), lit(0)))
        return concat(existing, padding, array(coalesce(value_col, lit(0))))

    def empty_state(self, events_df: DataFrame) -> DataFrame:
        """Empty reduced table with the host type taken from the events."""
        return (events_df
                .select(
                    lit(None).cast("date").alias(self.config.month_column),
                    col(self.config.entity_column),
                    empty_array("int").alias(self.config.hits_column),
                    empty_array("int").alias(self.config.unique_visitors_column),
                    lit(None).cast("date").alias(self.config.last_loaded_column)
                )
                .limit(0))

    def run(self, events_df: DataFrame, processing_date: date) -> ProcessingMetrics:
        """
        Append one day to the reduced table in one commit.

        Args:
            events_df: Raw events
            processing_date: Day to append

        Returns:
            ProcessingMetrics for the run
        """
        start_time = time.time()
        table_name = self.config.target_table

        try:
            logger.info(f"Loading {processing_date} into {table_name}")

            if self.store.table_exists(table_name):
                current_df = self.store.read(table_name)
            else:
                current_df = self.empty_state(events_df)

            updates_df = self.merge_day(current_df, events_df, processing_date)
            metrics = ProcessingMetrics()

            if updates_df is None:
                metrics.records_skipped = 1
                metrics.processing_time_seconds = time.time() - start_time
                return metrics

            updated_count = updates_df.count()
            metrics.records_processed = updated_count
            if updated_count == 0:
                logger.info(f"No activity found for {processing_date}, nothing to write")
                metrics.processing_time_seconds = time.time() - start_time
                return metrics

            new_rows = updates_df.join(current_df.select(*self.key_columns),
                                       on=self.key_columns, how="left_anti").count()

            self.store.upsert(updates_df, table_name, self.key_columns)

            metrics.new_records_created = new_rows
            metrics.existing_records_updated = updated_count - new_rows
            metrics.processing_time_seconds = time.time() - start_time

            logger.info(f"Reduced activity load completed. Metrics: {metrics.to_dict()}")
            return metrics

        except DimensionalModelingError:
            raise
        except Exception as e:
            logger.error(f"Reduced activity load failed: {str(e)}")
            raise CumulativeUpdateError(f"Reduced activity load failed: {str(e)}", table_name) from e
