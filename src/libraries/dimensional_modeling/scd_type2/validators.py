"""
Data validation utilities for SCD processing.
"""

from pyspark.sql import DataFrame
from pyspark.sql.functions import col, lag, when
from pyspark.sql.functions import sum as spark_sum
from pyspark.sql.window import Window
import logging

from ..common.config import SCDHistoryConfig, ValidationResult
from ..common.utils import validate_key_columns

logger = logging.getLogger(__name__)


class SCDValidator:
    """Validates source facts and history tables for SCD processing."""

    def __init__(self, config: SCDHistoryConfig):
        """
        Initialize SCDValidator with configuration.

        Args:
            config: SCD history configuration
        """
        self.config = config

    def validate_source_data(self, df: DataFrame) -> ValidationResult:
        """
        Validate raw facts before aggregation.

        Args:
            df: Raw facts DataFrame

        Returns:
            ValidationResult with validation status and errors
        """
        result = ValidationResult(is_valid=True)

        # Check required columns
        self._validate_required_columns(df, result)
        if not result.is_valid:
            return result

        # Check for null entity ids
        for error in validate_key_columns(df, self.config.entity_id_columns):
            result.add_error(error)

        # Check for null periods
        null_periods = df.filter(col(self.config.period_column).isNull()).count()
        if null_periods > 0:
            result.add_error(f"Found {null_periods} null values in period column: {self.config.period_column}")

        self._validate_data_types(df, result)

        logger.info(f"Validation completed. Valid: {result.is_valid}, Errors: {len(result.errors)}")
        return result

    def _validate_required_columns(self, df: DataFrame, result: ValidationResult) -> None:
        """Validate that all required columns exist."""
        required_columns = (self.config.entity_id_columns +
                            [self.config.period_column, self.config.rating_column] +
                            ([self.config.weight_column] if self.config.weight_column else []) +
                            self.config.attribute_columns)

        missing_columns = [c for c in required_columns if c not in df.columns]
        if missing_columns:
            result.add_error(f"Missing required columns: {missing_columns}")

    def _validate_data_types(self, df: DataFrame, result: ValidationResult) -> None:
        """Validate data types for the numeric columns."""
        dtypes = dict(df.dtypes)
        numeric_columns = [self.config.rating_column] + (
            [self.config.weight_column] if self.config.weight_column else [])

        for col_name in numeric_columns:
            col_type = dtypes[col_name]
            if col_type == "string" or col_type.startswith(("array", "map", "struct")):
                result.add_error(f"Column {col_name} has type {col_type}, expected a numeric type")

    def validate_history(self, df: DataFrame) -> ValidationResult:
        """
        Validate the versioning invariants of a history table.

        Every entity has exactly one current row, intervals are non-empty,
        and consecutive versions meet without gaps or overlaps.

        Args:
            df: History DataFrame

        Returns:
            ValidationResult with validation status
        """
        config = self.config
        keys = config.entity_id_columns
        start, end, flag = config.start_column, config.end_column, config.current_flag_column
        result = ValidationResult(is_valid=True)

        current_counts = (df
                          .groupBy(*keys)
                          .agg(spark_sum(when(col(flag), 1).otherwise(0)).alias("_current_rows")))
        bad_current = current_counts.filter(col("_current_rows") != 1).count()
        if bad_current > 0:
            result.add_error(f"Found {bad_current} entities without exactly one current row")

        if not config.close_current_at_next_period:
            bounded_current = df.filter(col(flag) & col(end).isNotNull()).count()
            if bounded_current > 0:
                result.add_error(f"Found {bounded_current} current rows with a bounded end")

        open_closed = df.filter(~col(flag) & col(end).isNull()).count()
        if open_closed > 0:
            result.add_error(f"Found {open_closed} closed rows without an end")

        empty_intervals = df.filter(col(end).isNotNull() & (col(end) <= col(start))).count()
        if empty_intervals > 0:
            result.add_error(f"Found {empty_intervals} rows with end <= start")

        window_spec = Window.partitionBy(*keys).orderBy(start)
        discontinuous = (df
                         .withColumn("_prev_start", lag(start).over(window_spec))
                         .withColumn("_prev_end", lag(end).over(window_spec))
                         .filter(col("_prev_start").isNotNull() &
                                 (col("_prev_end").isNull() | (col("_prev_end") != col(start))))
                         .count())
        if discontinuous > 0:
            result.add_error(f"Found {discontinuous} rows not contiguous with the previous version")

        logger.info(f"History validation completed. Valid: {result.is_valid}, Errors: {len(result.errors)}")
        return result
