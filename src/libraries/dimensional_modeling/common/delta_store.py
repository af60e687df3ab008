"""
Delta Lake table access shared by the batch jobs.

Every write goes through a single Delta commit (one MERGE or one overwrite),
so a job that fails part-way leaves its target table untouched.
"""

from typing import List, Optional
from pyspark.sql import DataFrame, SparkSession
from delta.tables import DeltaTable
import logging

from .utils import build_key_condition

logger = logging.getLogger(__name__)


class DeltaTableStore:
    """Reads and writes Delta tables for the batch jobs."""

    def __init__(self, spark: SparkSession):
        """
        Initialize DeltaTableStore with a Spark session.

        Args:
            spark: Spark session with Delta Lake enabled
        """
        self.spark = spark

    def table_exists(self, table_name: str) -> bool:
        """Check whether a table is registered in the catalog."""
        return self.spark.catalog.tableExists(table_name)

    def read(self, table_name: str) -> DataFrame:
        """Read a table as a DataFrame."""
        return self.spark.table(table_name)

    def overwrite(self, df: DataFrame, table_name: str,
                  replace_where: Optional[str] = None) -> None:
        """
        Replace the table contents (or the slice matching replace_where).

        Args:
            df: Rows to write
            table_name: Target table
            replace_where: Predicate limiting the overwritten slice
        """
        writer = df.write.format("delta").mode("overwrite")

        if replace_where and self.table_exists(table_name):
            writer = writer.option("replaceWhere", replace_where)
            logger.info(f"Overwriting {table_name} where {replace_where}")
        else:
            writer = writer.option("overwriteSchema", "true")
            logger.info(f"Overwriting {table_name}")

        writer.saveAsTable(table_name)

    def upsert(self, df: DataFrame, table_name: str, key_columns: List[str]) -> None:
        """
        Insert new keys and replace rows of existing keys in one MERGE.

        Args:
            df: Complete new rows for the affected keys
            table_name: Target table
            key_columns: Primary key columns of the table
        """
        if not self.table_exists(table_name):
            logger.info(f"Table {table_name} does not exist, creating it")
            df.write.format("delta").mode("overwrite").saveAsTable(table_name)
            return

        merge_condition = build_key_condition(key_columns, "target", "source")

        (DeltaTable.forName(self.spark, table_name).alias("target")
         .merge(df.alias("source"), merge_condition)
         .whenMatchedUpdateAll()
         .whenNotMatchedInsertAll()
         .execute())

        logger.info(f"Merged rows into {table_name} on {key_columns}")

    def delta_table(self, table_name: str) -> DeltaTable:
        """Get the DeltaTable handle for custom merges."""
        return DeltaTable.forName(self.spark, table_name)
