"""
Utility functions for dimensional modeling library.
"""

from functools import reduce
from typing import List
from pyspark.sql import Column, DataFrame
from pyspark.sql.functions import array, col
import logging

from .config import ValidationResult
from .exceptions import SchemaValidationError

logger = logging.getLogger(__name__)


def validate_dataframe_schema(df: DataFrame, required_columns: List[str]) -> bool:
    """
    Validate that DataFrame contains all required columns.

    Args:
        df: Input DataFrame
        required_columns: List of required column names

    Returns:
        True if all required columns exist, False otherwise
    """
    existing_columns = set(df.columns)
    missing_columns = set(required_columns) - existing_columns

    if missing_columns:
        logger.error(f"Missing required columns: {missing_columns}")
        return False

    return True


def validate_key_columns(df: DataFrame, key_columns: List[str]) -> List[str]:
    """
    Validate key columns and return any issues.

    Args:
        df: Input DataFrame
        key_columns: List of key column names

    Returns:
        List of validation error messages
    """
    errors = []

    # Check if columns exist
    missing_columns = set(key_columns) - set(df.columns)
    if missing_columns:
        errors.append(f"Missing key columns: {sorted(missing_columns)}")

    # Check for null values in keys
    for col_name in key_columns:
        if col_name in df.columns:
            null_count = df.filter(col(col_name).isNull()).count()
            if null_count > 0:
                errors.append(f"Found {null_count} null values in key column: {col_name}")

    return errors


def require_columns(df: DataFrame, required_columns: List[str], context: str) -> None:
    """
    Abort before any write when source columns are absent.

    Raises:
        SchemaValidationError: If any required column is missing
    """
    if validate_dataframe_schema(df, required_columns):
        return

    result = ValidationResult(is_valid=True)
    missing_columns = [c for c in dict.fromkeys(required_columns) if c not in df.columns]
    result.add_error(f"Missing required columns: {missing_columns}")

    logger.error(f"{context}: schema validation failed: {result.errors}")
    raise SchemaValidationError(f"{context}: {'; '.join(result.errors)}", result.errors)


def build_key_condition(key_columns: List[str], left_alias: str, right_alias: str) -> Column:
    """
    Build an equality join/merge condition over key columns.

    Args:
        key_columns: Key column names
        left_alias: Alias of the left (or target) side
        right_alias: Alias of the right (or source) side

    Returns:
        Condition as Column expression
    """
    conditions = [col(f"{left_alias}.{c}") == col(f"{right_alias}.{c}") for c in key_columns]
    return reduce(lambda a, b: a & b, conditions)


def empty_array(element_type: str) -> Column:
    """Typed empty array literal."""
    return array().cast(f"array<{element_type}>")


def log_dataframe_info(df: DataFrame, name: str) -> None:
    """
    Log DataFrame information for debugging.

    Args:
        df: Input DataFrame
        name: Name for logging
    """
    logger.info(f"{name} - Rows: {df.count()}, Columns: {len(df.columns)}")
    logger.debug(f"{name} - Schema: {df.schema}")
