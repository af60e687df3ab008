"""
Latest-period entity dimension (e.g. one actors row per actor).

Each load replaces an entity's row with the facts, quality class and active
flag of the loaded period. Entities without facts in the period keep their
previous row.
"""

from typing import Optional
from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.functions import array_sort, col, collect_list, lit, struct
from pyspark.sql.functions import max as spark_max
import logging
import time

from ..common.config import PeriodDimensionConfig, ProcessingMetrics
from ..common.delta_store import DeltaTableStore
from ..common.exceptions import CumulativeUpdateError, DimensionalModelingError, OutOfOrderLoadError
from ..common.utils import require_columns
from .classifier import QualityClassifier
from .period_aggregator import PeriodAggregator

logger = logging.getLogger(__name__)


class PeriodDimensionBuilder:
    """Upserts one row per entity holding its facts of the latest loaded period."""

    def __init__(self, config: PeriodDimensionConfig, spark: SparkSession,
                 store: Optional[DeltaTableStore] = None,
                 classifier: Optional[QualityClassifier] = None):
        """
        Initialize PeriodDimensionBuilder with configuration and Spark session.

        Args:
            config: Period dimension configuration
            spark: Spark session
            store: Table store used by run
            classifier: Quality classifier, star/good/average/bad by default
        """
        self.config = config
        self.spark = spark
        self.store = store or DeltaTableStore(spark)
        self.aggregator = PeriodAggregator(config, classifier)

    def build(self, facts_df: DataFrame, period: int) -> DataFrame:
        """
        Build the dimension rows of one period.

        Args:
            facts_df: Raw facts; only rows of the given period are used
            period: The period being loaded

        Returns:
            DataFrame with the dimension columns, one row per entity seen in the period
        """
        config = self.config
        keys = config.entity_id_columns
        require_columns(facts_df, config.item_columns, "Period dimension")

        summary_df = self.aggregator.aggregate(facts_df, period)

        # Sorted so reruns of a period produce the same array
        items_df = (facts_df
                    .filter(col(config.period_column).cast("int") == lit(period))
                    .groupBy(*keys)
                    .agg(array_sort(collect_list(struct(*config.item_columns))).alias(config.items_column)))

        return (summary_df
                .join(items_df, keys, "inner")
                .select(*config.dimension_columns))

    def check_load_order(self, current_df: DataFrame, period: int) -> None:
        """
        Reject a period earlier than one already loaded.

        Raises:
            OutOfOrderLoadError: If a later period has already been loaded
        """
        last_loaded = current_df.agg(spark_max(col(self.config.period_column))).first()[0]
        if last_loaded is not None and period < last_loaded:
            raise OutOfOrderLoadError(
                f"Cannot load period {period}: {self.config.target_table} already loaded up to {last_loaded}",
                requested=period,
                last_loaded=last_loaded
            )

    def run(self, facts_df: DataFrame, period: int) -> ProcessingMetrics:
        """
        Upsert one period into the dimension table in one commit.

        Args:
            facts_df: Raw facts
            period: The period being loaded

        Returns:
            ProcessingMetrics for the run
        """
        start_time = time.time()
        table_name = self.config.target_table
        keys = self.config.entity_id_columns

        try:
            logger.info(f"Loading period {period} into {table_name}")

            current_df = None
            if self.store.table_exists(table_name):
                current_df = self.store.read(table_name)
                self.check_load_order(current_df, period)

            rows_df = self.build(facts_df, period)
            metrics = ProcessingMetrics()

            row_count = rows_df.count()
            metrics.records_processed = row_count
            if row_count == 0:
                logger.info(f"No facts found for period {period}, nothing to write")
                metrics.processing_time_seconds = time.time() - start_time
                return metrics

            new_rows = row_count
            if current_df is not None:
                new_rows = rows_df.join(current_df.select(*keys), on=keys, how="left_anti").count()

            self.store.upsert(rows_df, table_name, keys)

            metrics.new_records_created = new_rows
            metrics.existing_records_updated = row_count - new_rows
            metrics.processing_time_seconds = time.time() - start_time

            logger.info(f"Period dimension load completed. Metrics: {metrics.to_dict()}")
            return metrics

        except DimensionalModelingError:
            raise
        except Exception as e:
            logger.error(f"Period dimension load failed: {str(e)}")
            raise CumulativeUpdateError(f"Period dimension load failed: {str(e)}", table_name) from e
