"""
End-to-end integration tests against real Delta tables.
"""

import pytest
from datetime import date
from pyspark.sql import SparkSession
from pyspark.sql.types import StructType, StructField, StringType, IntegerType, DoubleType
from delta import configure_spark_with_delta_pip

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from libraries.dimensional_modeling.scd_type2.history_builder import SCDHistoryBuilder
from libraries.dimensional_modeling.cumulative.date_list_updater import CumulativeDateListUpdater
from libraries.dimensional_modeling.cumulative.reduced_activity_updater import ReducedActivityUpdater
from libraries.dimensional_modeling.common.config import (
    SCDHistoryConfig, CumulativeDateListConfig, ReducedActivityConfig
)
from libraries.dimensional_modeling.common.exceptions import OutOfOrderLoadError


class TestEndToEndDelta:
    """End-to-end integration tests using Delta tables."""

    @pytest.fixture(scope="class")
    def spark(self, tmp_path_factory):
        """Create Delta-enabled Spark session for testing."""
        warehouse = str(tmp_path_factory.mktemp("spark-warehouse"))
        builder = SparkSession.builder \
            .appName("Dimensional Modeling Integration Tests") \
            .master("local[2]") \
            .config("spark.sql.warehouse.dir", warehouse) \
            .config("spark.sql.extensions", "io.delta.sql.DeltaSparkSessionExtension") \
            .config("spark.sql.catalog.spark_catalog", "org.apache.spark.sql.delta.catalog.DeltaCatalog")
        spark = configure_spark_with_delta_pip(builder).getOrCreate()

        # Create test database
        spark.sql("CREATE DATABASE IF NOT EXISTS test")

        yield spark

        # Cleanup
        spark.sql("DROP DATABASE IF EXISTS test CASCADE")
        spark.stop()

    @pytest.fixture
    def films(self, spark):
        data = [
            ("e", "Actor E", "e1", 2001, 9.0),
            ("e", "Actor E", "e2", 2002, 9.0),
            ("e", "Actor E", "e3", 2003, 5.0),
            ("h", "Actor H", "h1", 2001, 7.5),
            ("h", "Actor H", "h2", 2002, 7.5)
        ]
        schema = StructType([
            StructField("actorid", StringType(), True),
            StructField("actor", StringType(), True),
            StructField("film", StringType(), True),
            StructField("year", IntegerType(), True),
            StructField("rating", DoubleType(), True)
        ])
        return spark.createDataFrame(data, schema)

    def _history(self, spark, table):
        return sorted(
            (r.actorid, r.quality_class, r.is_active, r.start_period, r.end_period, r.current_flag)
            for r in spark.table(table).collect()
        )

    def test_scd_incremental_equals_backfill(self, spark, films):
        """Test that yearly loads produce the same table as a backfill."""
        incremental = SCDHistoryConfig(target_table="test.actors_history_incremental",
                                       entity_id_columns=["actorid"], attribute_columns=["actor"])
        backfill = SCDHistoryConfig(target_table="test.actors_history_backfill",
                                    entity_id_columns=["actorid"], attribute_columns=["actor"])

        builder = SCDHistoryBuilder(incremental, spark)
        for year in (2001, 2002, 2003):
            builder.run_incremental(films, year)
        SCDHistoryBuilder(backfill, spark).run_backfill(films)

        expected = [
            ("e", "bad", True, 2003, None, True),
            ("e", "star", True, 2001, 2003, False),
            ("h", "good", False, 2003, None, True),
            ("h", "good", True, 2001, 2003, False)
        ]
        assert self._history(spark, "test.actors_history_backfill") == expected
        assert self._history(spark, "test.actors_history_incremental") == expected

        # Re-running the latest year is a no-op
        builder.run_incremental(films, 2003)
        assert self._history(spark, "test.actors_history_incremental") == expected

        with pytest.raises(OutOfOrderLoadError):
            builder.run_incremental(films, 2002)

    def test_date_list_and_reduced_activity(self, spark):
        """Test daily loads of both cumulative tables."""
        events = spark.createDataFrame([
            (1, "Chrome", "www.example.com", "2023-01-01 08:00:00"),
            (1, "Chrome", "www.example.com", "2023-01-02 08:00:00"),
            (2, "Safari", "www.example.com", "2023-01-02 09:00:00")
        ], "user_id int, browser_type string, host string, event_date string")

        datelist = CumulativeDateListUpdater(
            CumulativeDateListConfig(target_table="test.user_devices_cumulated",
                                     entity_key_columns=["user_id", "browser_type"]), spark)
        reduced = ReducedActivityUpdater(ReducedActivityConfig(target_table="test.host_activity_reduced"), spark)

        for day in (date(2023, 1, 1), date(2023, 1, 2)):
            datelist.run(events, day)
            reduced.run(events, day)
        datelist.run(events, date(2023, 1, 2))

        lists = {r.user_id: r.datelist_int for r in spark.table("test.user_devices_cumulated").collect()}
        assert lists == {1: [20230101, 20230102], 2: [20230102]}

        hosts = spark.table("test.host_activity_reduced").collect()
        assert len(hosts) == 1
        assert hosts[0].hit_array == [1, 2]
        assert hosts[0].unique_visitors == [1, 2]

        with pytest.raises(OutOfOrderLoadError):
            reduced.run(events, date(2023, 1, 1))
