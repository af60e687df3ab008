"""
SCD Type 2 history builder: full backfill and incremental period loads.
"""

from functools import reduce
from typing import Optional
from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.functions import coalesce, col, explode, lag, last, lit, max_by, sequence, when
from pyspark.sql.functions import max as spark_max
from pyspark.sql.functions import min as spark_min
from pyspark.sql.functions import sum as spark_sum
from pyspark.sql.window import Window
import logging
import time

from ..common.config import SCDHistoryConfig, ProcessingMetrics
from ..common.delta_store import DeltaTableStore
from ..common.utils import log_dataframe_info
from ..common.exceptions import (
    DimensionalModelingError, OutOfOrderLoadError, SCDProcessingError, SCDValidationError
)
from .classifier import QualityClassifier
from .hash_manager import HashManager
from .period_aggregator import PeriodAggregator
from .period_manager import PeriodManager
from .record_manager import (
    RecordManager, ACTION_COLUMN, ACTION_CLOSE, ACTION_EXTEND, ACTION_INSERT, ACTION_UPDATE
)
from .validators import SCDValidator

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

NEW_PREFIX = "_new_"


class SCDHistoryBuilder:
    """Builds and maintains a type 2 history of classified entity periods."""

    def __init__(self, config: SCDHistoryConfig, spark: SparkSession,
                 store: Optional[DeltaTableStore] = None,
                 classifier: Optional[QualityClassifier] = None):
        """
        Initialize SCDHistoryBuilder with configuration and Spark session.

        Args:
            config: SCD history configuration
            spark: Spark session
            store: Table store shared with the record manager
            classifier: Quality classifier, star/good/average/bad by default
        """
        self.config = config
        self.spark = spark

        # Initialize components
        self.aggregator = PeriodAggregator(config, classifier)
        self.hash_manager = HashManager(config)
        self.period_manager = PeriodManager(config)
        self.record_manager = RecordManager(config, spark, store)
        self.validator = SCDValidator(config)

        logger.info(f"Initialized SCDHistoryBuilder for table: {config.target_table}")

    def aggregate(self, facts_df: DataFrame, period: Optional[int] = None) -> DataFrame:
        """Aggregate raw facts to classified entity periods."""
        return self.aggregator.aggregate(facts_df, period)

    def build_history(self, aggregates_df: DataFrame) -> DataFrame:
        """
        Collapse classified entity periods into versioned history rows.

        Periods between an entity's first appearance and the latest period
        that have no facts carry the previous classification forward as
        inactive, so the versions of an entity cover every period.

        Args:
            aggregates_df: One classified row per entity and period

        Returns:
            DataFrame with the history columns
        """
        config = self.config
        keys = config.entity_id_columns
        period = config.period_column

        latest_period = aggregates_df.agg(spark_max(period)).collect()[0][0]
        if latest_period is None:
            logger.info("No periods to build history from")
            return self._empty_history(aggregates_df)

        logger.info(f"Building history up to period {latest_period}")

        filled_df = self._fill_missing_periods(aggregates_df, int(latest_period))

        ordered = Window.partitionBy(*keys).orderBy(period)
        running = ordered.rowsBetween(Window.unboundedPreceding, Window.currentRow)

        hashed_df = self.hash_manager.compute_scd_hash(filled_df)
        previous_hash = lag("_scd_hash").over(ordered)
        streaks_df = (hashed_df
                      .withColumn("_changed",
                                  when(previous_hash.isNull() | (previous_hash != col("_scd_hash")), 1)
                                  .otherwise(0))
                      .withColumn("_streak", spark_sum("_changed").over(running)))

        runs_df = (streaks_df
                   .groupBy(*keys, "_streak", *config.tracked_columns)
                   .agg(*[max_by(a, period).alias(a) for a in config.attribute_columns],
                        spark_min(period).alias("_first_period"),
                        spark_max(period).alias("_last_period")))

        history_df = self.period_manager.set_period_bounds(
            runs_df, "_first_period", "_last_period", int(latest_period))

        return history_df.select(*config.history_columns)

    def _fill_missing_periods(self, aggregates_df: DataFrame, latest_period: int) -> DataFrame:
        config = self.config
        keys = config.entity_id_columns
        period = config.period_column

        grid_df = (aggregates_df
                   .groupBy(*keys)
                   .agg(spark_min(period).alias("_first_seen"))
                   .select(*keys, explode(sequence(col("_first_seen"), lit(latest_period))).alias(period)))

        filled_df = grid_df.join(aggregates_df, keys + [period], "left")

        running = (Window.partitionBy(*keys).orderBy(period)
                   .rowsBetween(Window.unboundedPreceding, Window.currentRow))
        for column in [config.quality_class_column] + config.attribute_columns:
            filled_df = filled_df.withColumn(column, last(col(column), ignorenulls=True).over(running))

        return filled_df.withColumn(config.is_active_column,
                                    coalesce(col(config.is_active_column), lit(False)))

    def _empty_history(self, aggregates_df: DataFrame) -> DataFrame:
        config = self.config
        return (aggregates_df.limit(0)
                .select(*config.entity_id_columns,
                        *config.attribute_columns,
                        *config.tracked_columns,
                        lit(None).cast("int").alias(config.start_column),
                        lit(None).cast("int").alias(config.end_column),
                        lit(None).cast("boolean").alias(config.current_flag_column)))

    def build_from_facts(self, facts_df: DataFrame) -> DataFrame:
        """Aggregate raw facts and build their full history."""
        return self.build_history(self.aggregate(facts_df))

    def plan_incremental(self, history_df: DataFrame, aggregates_df: DataFrame,
                         period: int) -> DataFrame:
        """
        Plan the changes one new period makes to an existing history.

        Current versions whose classification changes are closed at the new
        period and succeeded by a new open version. Entities seen for the first
        time get their first version. Current entities with no facts in the
        period become inactive. Unchanged current versions take the period's
        attribute values, so they hold the latest values as a backfill would.

        Period loads must run one at a time and in order. The guard rejects a
        period earlier than any version start, and in closed-end mode one
        earlier than the last loaded period. With open ends an earlier period
        after which nothing changed cannot be told apart from a new one.

        Args:
            history_df: Existing history rows
            aggregates_df: Classified entity rows of the new period
            period: The period being loaded

        Returns:
            Change plan: history columns plus the action column

        Raises:
            OutOfOrderLoadError: If the period precedes the loaded history
        """
        config = self.config
        keys = config.entity_id_columns
        start, end = config.start_column, config.end_column
        tracked = config.tracked_columns
        carried = config.attribute_columns + tracked

        last_loaded = self.last_loaded_period(history_df)
        if last_loaded is not None and last_loaded > period:
            raise OutOfOrderLoadError(
                f"Period {period} precedes the last loaded period {last_loaded}",
                requested=period, last_loaded=last_loaded)

        current_df = history_df.filter(col(config.current_flag_column))

        new_df = aggregates_df.select(*keys, *[col(c).alias(NEW_PREFIX + c) for c in carried])
        joined_df = current_df.join(new_df, keys, "full_outer")

        has_current = col(start).isNotNull()
        has_new = col(NEW_PREFIX + config.quality_class_column).isNotNull()

        target = {c: coalesce(col(NEW_PREFIX + c), col(c)) for c in carried}
        target[config.is_active_column] = when(has_new, col(NEW_PREFIX + config.is_active_column)).otherwise(lit(False))

        changed = has_current & (self.hash_manager.hash_expr([col(c) for c in tracked]) !=
                                 self.hash_manager.hash_expr([target[c] for c in tracked]))
        renamed = has_current & reduce(lambda a, b: a | b,
                                       [~col(a).eqNullSafe(target[a]) for a in config.attribute_columns],
                                       lit(False))
        joined_df = (joined_df
                     .withColumn("_changed", changed)
                     .withColumn("_renamed", renamed & ~changed))

        reloaded = joined_df.filter(col("_changed") & (col(start) == lit(period))).count()
        if reloaded > 0:
            raise OutOfOrderLoadError(
                f"Period {period} was already loaded and {reloaded} versions would change",
                requested=period, last_loaded=last_loaded)

        close_df = (joined_df
                    .filter(col("_changed"))
                    .select(*keys, *carried,
                            col(start),
                            lit(period).cast("int").alias(end),
                            lit(False).alias(config.current_flag_column),
                            lit(ACTION_CLOSE).alias(ACTION_COLUMN)))

        insert_df = (joined_df
                     .filter(col("_changed") | ~has_current)
                     .select(*keys, *[target[c].alias(c) for c in carried],
                             lit(period).cast("int").alias(start),
                             self.period_manager.open_end(period).alias(end),
                             lit(True).alias(config.current_flag_column),
                             lit(ACTION_INSERT).alias(ACTION_COLUMN)))

        plan_df = close_df.unionByName(insert_df)

        if config.close_current_at_next_period:
            # Extends also carry attribute changes of the period
            extend_df = (joined_df
                         .filter(has_current & ~col("_changed") &
                                 ((col(end) < lit(period + 1)) | col("_renamed")))
                         .select(*keys, *[target[c].alias(c) for c in config.attribute_columns],
                                 *tracked,
                                 col(start),
                                 lit(period + 1).cast("int").alias(end),
                                 lit(True).alias(config.current_flag_column),
                                 lit(ACTION_EXTEND).alias(ACTION_COLUMN)))
            plan_df = plan_df.unionByName(extend_df)
        else:
            update_df = (joined_df
                         .filter(col("_renamed"))
                         .select(*keys, *[target[c].alias(c) for c in config.attribute_columns],
                                 *tracked,
                                 col(start),
                                 col(end),
                                 col(config.current_flag_column),
                                 lit(ACTION_UPDATE).alias(ACTION_COLUMN)))
            plan_df = plan_df.unionByName(update_df)

        return plan_df

    def last_loaded_period(self, history_df: DataFrame) -> Optional[int]:
        """
        Latest period known to be loaded into a history.

        Closed-end current versions end one period after the last load. With
        open ends the latest version start is the best available bound.
        """
        config = self.config
        latest_start = history_df.agg(spark_max(config.start_column)).collect()[0][0]
        if not config.close_current_at_next_period:
            return latest_start

        latest_end = (history_df
                      .filter(col(config.current_flag_column))
                      .agg(spark_max(config.end_column))
                      .collect()[0][0])
        if latest_end is None:
            return latest_start
        return max(latest_end - 1, latest_start)

    def apply_plan(self, history_df: DataFrame, plan_df: DataFrame) -> DataFrame:
        """
        Apply a change plan to a history DataFrame in memory.

        Produces what the table holds after the plan's MERGE, which lets the
        result be validated before anything is written.
        """
        config = self.config
        match_keys = config.entity_id_columns + [config.start_column]
        replaced = [config.end_column, config.current_flag_column] + config.attribute_columns

        updates_df = (plan_df
                      .filter(col(ACTION_COLUMN).isin(ACTION_CLOSE, ACTION_EXTEND, ACTION_UPDATE))
                      .select(*match_keys,
                              *[col(c).alias("_plan_" + c) for c in replaced],
                              lit(True).alias("_planned")))

        updated_df = history_df.join(updates_df, match_keys, "left")
        for column in replaced:
            updated_df = updated_df.withColumn(column,
                                               when(col("_planned").isNotNull(), col("_plan_" + column))
                                               .otherwise(col(column)))
        updated_df = updated_df.select(*config.history_columns)

        inserts_df = (plan_df
                      .filter(col(ACTION_COLUMN) == ACTION_INSERT)
                      .select(*config.history_columns))

        return updated_df.unionByName(inserts_df)

    def run_backfill(self, facts_df: DataFrame) -> ProcessingMetrics:
        """
        Rebuild the whole history table from all facts.

        Args:
            facts_df: Raw facts across every period

        Returns:
            ProcessingMetrics: Processing metrics and status
        """
        logger.info("🚀 ENTER: run_backfill")
        start_time = time.time()

        try:
            self._validate_source(facts_df)

            history_df = self.build_from_facts(facts_df)
            self._validate_history(history_df)
            log_dataframe_info(history_df, "SCD history")

            written = self.record_manager.write_history(history_df)

            metrics = ProcessingMetrics(records_processed=facts_df.count(),
                                        new_records_created=written)
            metrics.processing_time_seconds = time.time() - start_time

            logger.info(f"Backfill completed successfully. Metrics: {metrics.to_dict()}")
            logger.info("🏁 EXIT: run_backfill")
            return metrics

        except DimensionalModelingError:
            logger.info("🏁 EXIT: run_backfill (with error)")
            raise
        except Exception as e:
            logger.error(f"Backfill failed: {str(e)}")
            logger.info("🏁 EXIT: run_backfill (with error)")
            raise SCDProcessingError(f"Backfill failed: {str(e)}", "run_backfill") from e

    def run_incremental(self, facts_df: DataFrame, period: int) -> ProcessingMetrics:
        """
        Fold one period of facts into the existing history table.

        Args:
            facts_df: Raw facts; only rows of the given period are used
            period: The period being loaded

        Returns:
            ProcessingMetrics: Processing metrics and status
        """
        logger.info(f"🚀 ENTER: run_incremental (period={period})")
        start_time = time.time()

        try:
            self._validate_source(facts_df)

            aggregates_df = self.aggregate(facts_df, period)

            if self.record_manager.table_exists():
                history_df = self.record_manager.get_history().select(*self.config.history_columns)
            else:
                logger.info(f"Table {self.config.target_table} does not exist, starting empty history")
                history_df = self._empty_history(aggregates_df)

            plan_df = self.plan_incremental(history_df, aggregates_df, period)
            self._validate_history(self.apply_plan(history_df, plan_df))

            metrics = self.record_manager.execute_change_plan(plan_df)
            metrics.records_processed = aggregates_df.count()
            metrics.processing_time_seconds = time.time() - start_time

            logger.info(f"Incremental load completed successfully. Metrics: {metrics.to_dict()}")
            logger.info("🏁 EXIT: run_incremental")
            return metrics

        except DimensionalModelingError:
            logger.info("🏁 EXIT: run_incremental (with error)")
            raise
        except Exception as e:
            logger.error(f"Incremental load failed: {str(e)}")
            logger.info("🏁 EXIT: run_incremental (with error)")
            raise SCDProcessingError(f"Incremental load failed: {str(e)}", "run_incremental") from e

    def _validate_source(self, facts_df: DataFrame) -> None:
        validation_result = self.validator.validate_source_data(facts_df)
        if not validation_result.is_valid:
            logger.error(f"Validation failed: {validation_result.errors}")
            raise SCDValidationError(f"Validation failed: {validation_result.errors}",
                                     validation_result.errors)

    def _validate_history(self, history_df: DataFrame) -> None:
        if not self.config.validate_result:
            return
        validation_result = self.validator.validate_history(history_df)
        if not validation_result.is_valid:
            logger.error(f"History validation failed: {validation_result.errors}")
            raise SCDValidationError(f"History validation failed: {validation_result.errors}",
                                     validation_result.errors)
