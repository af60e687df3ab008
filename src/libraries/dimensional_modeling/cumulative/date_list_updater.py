"""
Incremental maintenance of per-entity cumulative active-date lists.
"""

from datetime import date
from typing import Optional
from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.functions import array_distinct, array_sort, col, coalesce, collect_set, concat, lit, to_date
import logging
import time

from ..common.config import CumulativeDateListConfig, ProcessingMetrics
from ..common.delta_store import DeltaTableStore
from ..common.exceptions import CumulativeUpdateError, DimensionalModelingError
from ..common.utils import empty_array, require_columns
from .datelist_encoder import DateListEncoder

logger = logging.getLogger(__name__)


class CumulativeDateListUpdater:
    """Merges each day's observed dates into a sorted, duplicate-free list per entity."""

    def __init__(self, config: CumulativeDateListConfig, spark: SparkSession,
                 store: Optional[DeltaTableStore] = None):
        """
        Initialize CumulativeDateListUpdater with configuration and Spark session.

        Args:
            config: Cumulative date list configuration
            spark: Spark session
            store: Table store used by run
        """
        self.config = config
        self.spark = spark
        self.store = store or DeltaTableStore(spark)
        self.encoder = DateListEncoder()

        logger.info(f"Initialized CumulativeDateListUpdater for table: {config.target_table}")

    def compute_new_activity(self, events_df: DataFrame,
                             processing_date: Optional[date] = None) -> DataFrame:
        """
        Collect the distinct dates observed per entity.

        Args:
            events_df: Raw events
            processing_date: Only use events of this day; None uses every event

        Returns:
            DataFrame with the entity key and a sorted array of new dates
        """
        keys = self.config.entity_key_columns
        require_columns(events_df, keys + [self.config.event_date_column], "Cumulative date list")

        activity = events_df.select(
            *[col(k) for k in keys],
            to_date(col(self.config.event_date_column)).alias("_event_date")
        )

        if processing_date is not None:
            activity = activity.filter(col("_event_date") == lit(processing_date))

        # Events without a complete key are not attributable to any entity
        activity = activity.dropna(subset=keys + ["_event_date"])

        return (activity
                .groupBy(*keys)
                .agg(array_sort(collect_set("_event_date")).alias("_new_dates")))

    def merge_activity(self, current_df: DataFrame, events_df: DataFrame,
                       processing_date: Optional[date] = None) -> DataFrame:
        """
        Compute the new rows of every entity that had activity.

        Args:
            current_df: Current cumulative table contents
            events_df: Raw events
            processing_date: Day to merge; None merges every event (backfill)

        Returns:
            Complete replacement rows for the affected entities
        """
        keys = self.config.entity_key_columns
        list_column = self.config.date_list_column

        new_activity = self.compute_new_activity(events_df, processing_date)

        merged = (new_activity
                  .join(current_df.select(*keys, col(list_column)), on=keys, how="left")
                  .select(
                      *keys,
                      array_sort(array_distinct(concat(
                          coalesce(col(list_column), empty_array("date")),
                          col("_new_dates")
                      ))).alias(list_column)
                  ))

        if self.config.datelist_int_column:
            merged = self.encoder.add_datelist_int(merged, list_column, self.config.datelist_int_column)

        return merged

    def apply_updates(self, current_df: DataFrame, updates_df: DataFrame) -> DataFrame:
        """Full table state after replacing the rows of updated entities."""
        keys = self.config.entity_key_columns
        untouched = current_df.join(updates_df.select(*keys), on=keys, how="left_anti")
        return untouched.unionByName(updates_df)

    def empty_state(self, events_df: DataFrame) -> DataFrame:
        """Empty cumulative table with key types taken from the events."""
        state = (events_df
                 .select(*self.config.entity_key_columns)
                 .limit(0)
                 .withColumn(self.config.date_list_column, empty_array("date")))

        if self.config.datelist_int_column:
            state = state.withColumn(self.config.datelist_int_column, empty_array("int"))

        return state

    def run(self, events_df: DataFrame, processing_date: Optional[date] = None) -> ProcessingMetrics:
        """
        Merge one day (or everything) into the cumulative table in one commit.

        Args:
            events_df: Raw events
            processing_date: Day to merge; None merges every event

        Returns:
            ProcessingMetrics for the run
        """
        start_time = time.time()
        table_name = self.config.target_table
        label = processing_date.isoformat() if processing_date else "full backfill"

        try:
            logger.info(f"Updating {table_name} for {label}")

            if self.store.table_exists(table_name):
                current_df = self.store.read(table_name)
            else:
                current_df = self.empty_state(events_df)

            updates_df = self.merge_activity(current_df, events_df, processing_date)
            updated_count = updates_df.count()

            metrics = ProcessingMetrics(records_processed=updated_count)
            if updated_count == 0:
                logger.info(f"No activity found for {label}, nothing to write")
                metrics.processing_time_seconds = time.time() - start_time
                return metrics

            new_entities = (updates_df
                            .join(current_df.select(*self.config.entity_key_columns),
                                  on=self.config.entity_key_columns, how="left_anti")
                            .count())

            self.store.upsert(updates_df, table_name, self.config.entity_key_columns)

            metrics.new_records_created = new_entities
            metrics.existing_records_updated = updated_count - new_entities
            metrics.processing_time_seconds = time.time() - start_time

            logger.info(f"Cumulative date list update completed. Metrics: {metrics.to_dict()}")
            return metrics

        except DimensionalModelingError:
            raise
        except Exception as e:
            logger.error(f"Cumulative date list update failed: {str(e)}")
            raise CumulativeUpdateError(f"Cumulative date list update failed: {str(e)}", table_name) from e
