"""
Cumulative period-snapshot dimension.

Each period's snapshot is the previous period's snapshot full-outer-joined
with the period's source rows: stats accumulate in an array, entities missing
from the period keep their last tier and age by one period.
"""

from typing import Optional
from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.functions import array, coalesce, col, concat, element_at, explode, lit, struct, when
import logging
import time

from ..common.config import CumulativeDimensionConfig, ProcessingMetrics
from ..common.delta_store import DeltaTableStore
from ..common.exceptions import CumulativeUpdateError, DimensionalModelingError
from ..common.utils import require_columns
from ..scd_type2.classifier import QualityClassifier, SCORING_THRESHOLDS

logger = logging.getLogger(__name__)


class CumulativeDimensionAccumulator:
    """Builds period N's cumulative snapshot from period N-1's snapshot and period N's rows."""

    def __init__(self, config: CumulativeDimensionConfig, spark: SparkSession,
                 store: Optional[DeltaTableStore] = None):
        """
        Initialize CumulativeDimensionAccumulator with configuration and Spark session.

        Args:
            config: Cumulative dimension configuration
            spark: Spark session
            store: Table store used by run
        """
        self.config = config
        self.spark = spark
        self.store = store or DeltaTableStore(spark)
        self.classifier = QualityClassifier(config.tier_thresholds or SCORING_THRESHOLDS,
                                            config.default_tier)

        logger.info(f"Initialized CumulativeDimensionAccumulator for table: {config.target_table}")

    def accumulate(self, period_df: DataFrame, period: int,
                   previous_df: Optional[DataFrame] = None) -> DataFrame:
        """
        Build the snapshot for one period.

        Args:
            period_df: Source rows; only rows of `period` are used
            period: Period to build
            previous_df: Snapshot table; only rows of `period - 1` are used

        Returns:
            Snapshot rows with current_period = period
        """
        config = self.config
        keys = config.entity_id_columns
        require_columns(
            period_df,
            keys + [config.period_column] + config.attribute_columns + config.stats_columns,
            "Cumulative dimension"
        )

        today = (period_df
                 .filter(col(config.period_column) == lit(period))
                 .select(
                     *keys,
                     *[col(a).alias(f"_today_{a}") for a in config.attribute_columns],
                     struct(
                         col(config.period_column).cast("int").alias(config.period_column),
                         *[col(s) for s in config.stats_columns]
                     ).alias("_today_stats"),
                     col(config.signal_column).alias("_today_signal")
                 ))

        if previous_df is None:
            logger.info(f"No previous snapshot, seeding period {period}")
            return today.select(
                *keys,
                *[col(f"_today_{a}").alias(a) for a in config.attribute_columns],
                array(col("_today_stats")).alias(config.stats_array_column),
                self.classifier.tier_expr(col("_today_signal")).alias(config.tier_column),
                lit(0).alias(config.years_since_column),
                lit(True).alias(config.is_active_column),
                lit(period).cast("int").alias(config.current_period_column)
            )

        yesterday = (previous_df
                     .filter(col(config.current_period_column) == lit(period - 1))
                     .select(*keys, *config.attribute_columns,
                             config.stats_array_column, config.tier_column, config.years_since_column))

        joined = today.join(yesterday, on=keys, how="full_outer")
        has_today = col("_today_stats").isNotNull()

        stats_array = (when(col(config.stats_array_column).isNull(), array(col("_today_stats")))
                       .when(has_today, concat(col(config.stats_array_column), array(col("_today_stats"))))
                       .otherwise(col(config.stats_array_column)))

        return joined.select(
            *keys,
            *[coalesce(col(f"_today_{a}"), col(a)).alias(a) for a in config.attribute_columns],
            stats_array.alias(config.stats_array_column),
            when(has_today, self.classifier.tier_expr(col("_today_signal")))
            .otherwise(col(config.tier_column)).alias(config.tier_column),
            when(has_today, lit(0))
            .otherwise(col(config.years_since_column) + 1).cast("int").alias(config.years_since_column),
            has_today.alias(config.is_active_column),
            lit(period).cast("int").alias(config.current_period_column)
        )

    def explode_period_stats(self, snapshot_df: DataFrame) -> DataFrame:
        """One row per entity and accumulated period, with the stats fields as columns."""
        return (snapshot_df
                .select(*self.config.entity_id_columns,
                        explode(col(self.config.stats_array_column)).alias("_stats"))
                .select(*self.config.entity_id_columns, "_stats.*"))

    def improvement_ratio(self, snapshot_df: DataFrame, stat_column: str,
                          output_column: str = "improvement_ratio") -> DataFrame:
        """Ratio of the latest period's stat to the first period's; a zero first value counts as 1."""
        if stat_column not in self.config.stats_columns:
            raise ValueError(f"{stat_column} is not one of {self.config.stats_columns}")

        stats = col(self.config.stats_array_column)
        first_value = element_at(stats, 1).getField(stat_column)
        last_value = element_at(stats, -1).getField(stat_column)

        return snapshot_df.withColumn(
            output_column,
            last_value / when(first_value == 0, lit(1)).otherwise(first_value)
        )

    def run(self, source_df: DataFrame, period: int) -> ProcessingMetrics:
        """
        Build and store the snapshot of one period, replacing any earlier build of it.

        Args:
            source_df: Source rows for any periods
            period: Period to build

        Returns:
            ProcessingMetrics for the run
        """
        start_time = time.time()
        table_name = self.config.target_table

        try:
            logger.info(f"Accumulating period {period} into {table_name}")

            previous_df = self.store.read(table_name) if self.store.table_exists(table_name) else None
            snapshot_df = self.accumulate(source_df, period, previous_df)
            total_count = snapshot_df.count()
            inactive_count = snapshot_df.filter(~col(self.config.is_active_column)).count()

            self.store.overwrite(snapshot_df, table_name,
                                 replace_where=f"{self.config.current_period_column} = {period}")

            metrics = ProcessingMetrics(
                records_processed=total_count,
                new_records_created=total_count,
                records_skipped=inactive_count,
                processing_time_seconds=time.time() - start_time
            )

            logger.info(f"Cumulative dimension build completed. Metrics: {metrics.to_dict()}")
            return metrics

        except DimensionalModelingError:
            raise
        except Exception as e:
            logger.error(f"Cumulative dimension build failed: {str(e)}")
            raise CumulativeUpdateError(f"Cumulative dimension build failed: {str(e)}", table_name) from e
