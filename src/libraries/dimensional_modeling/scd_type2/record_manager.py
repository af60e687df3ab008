"""
Record lifecycle management for SCD history tables.
"""

from typing import Any, Dict, Optional
from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.functions import col, current_timestamp
import logging
import time

from ..common.config import SCDHistoryConfig, ProcessingMetrics
from ..common.delta_store import DeltaTableStore
from ..common.exceptions import SCDProcessingError
from ..common.utils import build_key_condition
from .period_manager import PeriodManager

logger = logging.getLogger(__name__)
# Ensure debug statements are visible
logger.setLevel(logging.DEBUG)

# Add console handler if not already present
if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    formatter = logging.Formatter('%(levelname)s:%(name)s:%(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Change plan rows carry what to do with them in this column
ACTION_COLUMN = "_scd_action"
ACTION_CLOSE = "close"
ACTION_INSERT = "insert"
ACTION_EXTEND = "extend"
ACTION_UPDATE = "update"


class RecordManager:
    """Persists SCD history builds and change plans."""

    def __init__(self, config: SCDHistoryConfig, spark: SparkSession,
                 store: Optional[DeltaTableStore] = None):
        """
        Initialize RecordManager with configuration and Spark session.

        Args:
            config: SCD history configuration
            spark: Spark session
            store: Table store
        """
        self.config = config
        self.spark = spark
        self.store = store or DeltaTableStore(spark)
        self.period_manager = PeriodManager(config)

    def table_exists(self) -> bool:
        return self.store.table_exists(self.config.target_table)

    def get_history(self) -> DataFrame:
        """Read the full history table."""
        return self.store.read(self.config.target_table)

    def get_current_records(self) -> DataFrame:
        """
        Get current records from target table.

        Returns:
            DataFrame with current records only
        """
        current_records = self.get_history().filter(col(self.config.current_flag_column))

        logger.info(f"Retrieved {current_records.count()} current records from {self.config.target_table}")
        return current_records

    def write_history(self, history_df: DataFrame) -> int:
        """
        Replace the history table with a full build.

        Args:
            history_df: Complete history rows

        Returns:
            Number of rows written
        """
        logger.info("🚀 ENTER: write_history")

        output_df = self.period_manager.set_audit_timestamps(
            history_df.select(*self.config.history_columns))
        record_count = output_df.count()

        self.store.overwrite(output_df, self.config.target_table)

        logger.info(f"✅ Wrote {record_count} history records to {self.config.target_table}")
        logger.info("🏁 EXIT: write_history")
        return record_count

    def execute_change_plan(self, plan_df: DataFrame) -> ProcessingMetrics:
        """
        Apply closes, extends, updates and inserts of an incremental plan in one MERGE.

        Rows are matched on entity id and start period, the history table's
        primary key, so closing an old version and inserting its successor
        commit together.

        Args:
            plan_df: Change plan with the action column

        Returns:
            ProcessingMetrics with execution results
        """
        logger.info("🚀 ENTER: execute_change_plan")
        start_time = time.time()
        metrics = ProcessingMetrics()

        try:
            closed_count = plan_df.filter(col(ACTION_COLUMN) == ACTION_CLOSE).count()
            extended_count = plan_df.filter(col(ACTION_COLUMN) == ACTION_EXTEND).count()
            updated_count = plan_df.filter(col(ACTION_COLUMN) == ACTION_UPDATE).count()
            inserted_count = plan_df.filter(col(ACTION_COLUMN) == ACTION_INSERT).count()
            logger.info(f"Processing - Close: {closed_count}, Extend: {extended_count}, "
                        f"Update: {updated_count}, Insert: {inserted_count}")

            changed_count = closed_count + extended_count + updated_count
            if changed_count + inserted_count == 0:
                logger.info("🏁 EXIT: execute_change_plan (empty)")
                return metrics

            if not self.table_exists():
                # Nothing to close in a table that does not exist yet
                self.write_history(plan_df.filter(col(ACTION_COLUMN) == ACTION_INSERT))
            else:
                self._merge_plan(plan_df)

            metrics.new_records_created = inserted_count
            metrics.existing_records_updated = changed_count
            metrics.records_processed = changed_count + inserted_count
            metrics.processing_time_seconds = time.time() - start_time

            logger.info(f"✅ Completed - Inserted: {inserted_count}, Closed: {closed_count}, Extended: {extended_count}")
            logger.info("🏁 EXIT: execute_change_plan")
            return metrics

        except Exception as e:
            logger.error(f"Error executing change plan: {str(e)}")
            logger.info("🏁 EXIT: execute_change_plan (with error)")
            raise SCDProcessingError(f"Failed to execute change plan: {str(e)}", "execute_change_plan") from e

    def _merge_plan(self, plan_df: DataFrame) -> None:
        config = self.config
        merge_condition = build_key_condition(config.entity_id_columns + [config.start_column],
                                              "target", "source")

        # Close rows carry the stored attributes, so setting them is a no-op there
        update_set = {c: col(f"source.{c}")
                      for c in [config.end_column, config.current_flag_column] + config.attribute_columns}
        update_set[config.modified_ts_column] = current_timestamp()

        insert_values = {c: col(f"source.{c}") for c in config.history_columns}
        insert_values[config.created_ts_column] = current_timestamp()
        insert_values[config.modified_ts_column] = current_timestamp()

        (self.store.delta_table(config.target_table).alias("target")
         .merge(plan_df.alias("source"), merge_condition)
         .whenMatchedUpdate(
             condition=f"source.{ACTION_COLUMN} IN ('{ACTION_CLOSE}', '{ACTION_EXTEND}', '{ACTION_UPDATE}')",
             set=update_set)
         .whenNotMatchedInsert(
             condition=f"source.{ACTION_COLUMN} = '{ACTION_INSERT}'",
             values=insert_values)
         .execute())

        logger.info(f"Merged change plan into {config.target_table}")

    def get_table_info(self) -> Dict[str, Any]:
        """
        Get information about the target table.

        Returns:
            Dictionary with table information
        """
        history_df = self.get_history()
        record_count = history_df.count()
        current_count = history_df.filter(col(self.config.current_flag_column)).count()

        return {
            "table_name": self.config.target_table,
            "total_records": record_count,
            "current_records": current_count,
            "historical_records": record_count - current_count
        }
