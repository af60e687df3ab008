"""
Hash management utilities for SCD change detection.
"""

from typing import List, Sequence
from pyspark.sql import Column, DataFrame
from pyspark.sql.functions import col, concat_ws, md5, sha2
import logging

from ..common.config import SCDHistoryConfig

logger = logging.getLogger(__name__)


class HashManager:
    """Manages hash computation over the tracked SCD columns."""

    def __init__(self, config: SCDHistoryConfig):
        """
        Initialize HashManager with configuration.

        Args:
            config: SCD history configuration
        """
        self.config = config
        self.hash_algorithm = config.hash_algorithm.lower()

        if self.hash_algorithm not in ["sha256", "md5"]:
            raise ValueError(f"Unsupported hash algorithm: {self.hash_algorithm}")

    def hash_expr(self, columns: Sequence[Column]) -> Column:
        """
        Build the hash expression over the given column expressions.

        Args:
            columns: Column expressions in tracked-column order

        Returns:
            Hash expression
        """
        joined = concat_ws("|", *[c.cast("string") for c in columns])

        if self.hash_algorithm == "sha256":
            return sha2(joined, 256)
        return md5(joined)

    def compute_scd_hash(self, df: DataFrame, output_column: str = "_scd_hash") -> DataFrame:
        """
        Add the hash of the tracked columns.

        Args:
            df: DataFrame holding the tracked columns
            output_column: Name of the hash column

        Returns:
            DataFrame with hash column added
        """
        tracked = self.get_hash_columns()
        logger.debug(f"Computing {self.hash_algorithm} hash over {tracked}")
        return df.withColumn(output_column, self.hash_expr([col(c) for c in tracked]))

    def get_hash_columns(self) -> List[str]:
        """
        Get list of columns used for hash computation.

        Returns:
            List of unique column names
        """
        return list(dict.fromkeys(self.config.tracked_columns))
