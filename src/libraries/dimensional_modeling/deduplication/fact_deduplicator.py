"""
Fact table deduplication on a composite business key.
"""

from typing import Optional
from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.functions import col, rank
from pyspark.sql.window import Window
import logging
import time

from ..common.config import DeduplicationConfig, DeduplicationStrategy, ProcessingMetrics, ValidationResult
from ..common.delta_store import DeltaTableStore
from ..common.exceptions import (
    ConfigurationError,
    DeduplicationError,
    DimensionalModelingError,
    SchemaValidationError
)
from ..common.utils import validate_key_columns

logger = logging.getLogger(__name__)


class FactDeduplicator:
    """Keeps one row per business key of a raw fact table."""

    def __init__(self, config: DeduplicationConfig, spark: SparkSession,
                 store: Optional[DeltaTableStore] = None):
        """
        Initialize FactDeduplicator with configuration and Spark session.

        Args:
            config: Deduplication configuration
            spark: Spark session
            store: Table store used by deduplicate_table
        """
        self.config = config
        self.spark = spark
        self.store = store or DeltaTableStore(spark)

        logger.info(f"Initialized FactDeduplicator with strategy: {config.deduplication_strategy}")

    def deduplicate(self, source_df: DataFrame) -> DataFrame:
        """
        Deduplicate fact rows using the configured strategy.

        Args:
            source_df: Raw fact rows with potential duplicates

        Returns:
            DataFrame with one row per business key

        Raises:
            SchemaValidationError: If key or ordering columns are missing or null
            DeduplicationError: If a business key has several rows tied on every ordering column
        """
        start_time = time.time()

        try:
            original_count = source_df.count()
            logger.info(f"Starting deduplication of {original_count} fact records")

            # Step 1: Validate input data
            validation_result = self._validate_input_data(source_df)
            if not validation_result.is_valid:
                logger.error(f"Input validation failed: {validation_result.errors}")
                raise SchemaValidationError(f"Input validation failed: {validation_result.errors}",
                                            validation_result.errors)

            # Step 2: Apply deduplication strategy
            deduplicated_df = self._apply_deduplication_strategy(source_df)

            # Step 3: Validate results
            deduplicated_count = self._validate_deduplication_result(source_df, deduplicated_df)

            processing_time = time.time() - start_time
            logger.info(f"Deduplication completed in {processing_time:.2f} seconds")
            logger.info(f"Original records: {original_count}, Deduplicated: {deduplicated_count}, "
                        f"Removed: {original_count - deduplicated_count}")

            return deduplicated_df

        except DimensionalModelingError:
            raise
        except Exception as e:
            logger.error(f"Deduplication failed: {str(e)}")
            raise DeduplicationError(f"Deduplication failed: {str(e)}",
                                     self.config.deduplication_strategy) from e

    def deduplicate_table(self) -> ProcessingMetrics:
        """
        Materialize the deduplicated copy of source_table into target_table.

        The source table is only read, never modified.

        Returns:
            ProcessingMetrics for the run
        """
        if not self.config.source_table or not self.config.target_table:
            raise ConfigurationError("source_table and target_table are required to materialize a deduplicated table",
                                     "target_table")
        if self.config.source_table == self.config.target_table:
            raise ConfigurationError("target_table must differ from source_table", "target_table")

        start_time = time.time()
        source_df = self.store.read(self.config.source_table)
        deduplicated_df = self.deduplicate(source_df)

        self.store.overwrite(deduplicated_df, self.config.target_table)

        stats = self.get_deduplication_stats(source_df, deduplicated_df)
        metrics = ProcessingMetrics(
            records_processed=stats["original_records"],
            new_records_created=stats["deduplicated_records"],
            records_skipped=stats["duplicates_removed"],
            processing_time_seconds=time.time() - start_time
        )
        logger.info(f"Materialized {self.config.target_table}: {metrics.to_dict()}")
        return metrics

    def _ordering_columns(self) -> list:
        return [self.config.recency_column] + list(self.config.tie_breaker_columns)

    def _validate_input_data(self, df: DataFrame) -> ValidationResult:
        """
        Validate input data for deduplication.

        Args:
            df: Input DataFrame

        Returns:
            ValidationResult with validation status
        """
        result = ValidationResult(is_valid=True)

        for error in validate_key_columns(df, self.config.business_key_columns):
            result.add_error(error)

        if self.config.deduplication_strategy == DeduplicationStrategy.DISTINCT.value:
            return result

        missing_columns = [c for c in self._ordering_columns() if c not in df.columns]
        if missing_columns:
            result.add_error(f"Missing ordering columns: {missing_columns}")
            return result

        null_recency = df.filter(col(self.config.recency_column).isNull()).count()
        if null_recency > 0:
            result.add_error(f"Found {null_recency} null values in recency_column: {self.config.recency_column}")

        return result

    def _apply_deduplication_strategy(self, df: DataFrame) -> DataFrame:
        """
        Apply the configured deduplication strategy.

        Args:
            df: Validated input DataFrame

        Returns:
            Deduplicated DataFrame
        """
        strategy = self.config.deduplication_strategy.lower()

        if strategy == DeduplicationStrategy.DISTINCT.value:
            logger.info("Applying 'distinct' deduplication strategy")
            return df.dropDuplicates()
        elif strategy == DeduplicationStrategy.LATEST.value:
            return self._keep_first_ranked(df, descending=True)
        elif strategy == DeduplicationStrategy.EARLIEST.value:
            return self._keep_first_ranked(df, descending=False)
        else:
            raise DeduplicationError(f"Unknown deduplication strategy: {strategy}", strategy)

    def _keep_first_ranked(self, df: DataFrame, descending: bool) -> DataFrame:
        """
        Keep the first row per business key ordered by recency then tie-breakers.

        Args:
            df: Input DataFrame
            descending: True keeps the most recent row, False the oldest

        Returns:
            DataFrame with one row per business key
        """
        logger.info(f"Applying '{self.config.deduplication_strategy}' deduplication strategy")

        ordering = [col(c).desc() if descending else col(c).asc() for c in self._ordering_columns()]
        window_spec = Window.partitionBy(*self.config.business_key_columns).orderBy(*ordering)

        # Identical rows are not a tie; collapse them before ranking
        ranked_df = (df
                     .dropDuplicates()
                     .withColumn("_dedup_rank", rank().over(window_spec))
                     .filter(col("_dedup_rank") == 1))

        ambiguous_keys = (ranked_df
                          .groupBy(*self.config.business_key_columns)
                          .count()
                          .filter(col("count") > 1)
                          .count())
        if ambiguous_keys > 0:
            raise DeduplicationError(
                f"{ambiguous_keys} business keys have several rows tied on {self._ordering_columns()}; "
                f"add a tie_breaker column that distinguishes them",
                self.config.deduplication_strategy
            )

        return ranked_df.drop("_dedup_rank")

    def _validate_deduplication_result(self, original_df: DataFrame,
                                       deduplicated_df: DataFrame) -> int:
        """
        Validate deduplication results.

        Args:
            original_df: Original DataFrame
            deduplicated_df: Deduplicated DataFrame

        Returns:
            Number of deduplicated records
        """
        original_count = original_df.count()
        deduplicated_count = deduplicated_df.count()

        if deduplicated_count > original_count:
            raise DeduplicationError("Deduplication resulted in more records than original")

        if deduplicated_count == 0 and original_count > 0:
            raise DeduplicationError("Deduplication resulted in complete data loss")

        logger.info("Deduplication result validation passed")
        return deduplicated_count

    def get_deduplication_stats(self, original_df: DataFrame,
                                deduplicated_df: DataFrame) -> dict:
        """
        Get deduplication statistics.

        Args:
            original_df: Original DataFrame
            deduplicated_df: Deduplicated DataFrame

        Returns:
            Dictionary with deduplication statistics
        """
        original_count = original_df.count()
        deduplicated_count = deduplicated_df.count()
        duplicates_removed = original_count - deduplicated_count

        deduplication_ratio = duplicates_removed / original_count if original_count > 0 else 0

        return {
            "original_records": original_count,
            "deduplicated_records": deduplicated_count,
            "duplicates_removed": duplicates_removed,
            "deduplication_ratio": deduplication_ratio,
            "strategy_used": self.config.deduplication_strategy
        }
