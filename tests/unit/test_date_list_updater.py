"""
Unit tests for CumulativeDateListUpdater.
"""

import pytest
from datetime import date
from unittest.mock import Mock
from pyspark.sql import SparkSession
from pyspark.sql.types import StructType, StructField, StringType, IntegerType, ArrayType, DateType

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from libraries.dimensional_modeling.cumulative.date_list_updater import CumulativeDateListUpdater
from libraries.dimensional_modeling.common.config import CumulativeDateListConfig
from libraries.dimensional_modeling.common.exceptions import SchemaValidationError


class TestCumulativeDateListUpdater:
    """Test cases for CumulativeDateListUpdater."""

    @pytest.fixture
    def spark(self):
        """Create Spark session for testing."""
        return SparkSession.builder.appName("test").master("local[2]").getOrCreate()

    @pytest.fixture
    def config(self):
        return CumulativeDateListConfig(
            target_table="analytics.user_devices_cumulated",
            entity_key_columns=["user_id", "browser_type"]
        )

    @pytest.fixture
    def events(self, spark):
        """Web events joined to devices, including a row without a user."""
        data = [
            (1, "Chrome", "2023-01-01 08:00:00"),
            (1, "Chrome", "2023-01-01 21:00:00"),
            (1, "Chrome", "2023-01-02 09:30:00"),
            (1, "Firefox", "2023-01-02 11:00:00"),
            (2, "Safari", "2023-01-03 12:00:00"),
            (None, "Chrome", "2023-01-01 10:00:00")
        ]
        schema = StructType([
            StructField("user_id", IntegerType(), True),
            StructField("browser_type", StringType(), True),
            StructField("event_date", StringType(), True)
        ])
        return spark.createDataFrame(data, schema)

    @pytest.fixture
    def current_state(self, spark):
        data = [
            (1, "Chrome", [date(2022, 12, 30), date(2023, 1, 1)]),
            (3, "Edge", [date(2022, 12, 31)])
        ]
        schema = StructType([
            StructField("user_id", IntegerType(), True),
            StructField("browser_type", StringType(), True),
            StructField("activity_datelist", ArrayType(DateType()), True)
        ])
        return spark.createDataFrame(data, schema)

    def _lists(self, df, column="activity_datelist"):
        return {(r.user_id, r.browser_type): r[column] for r in df.collect()}

    def test_compute_new_activity_groups_per_entity(self, spark, config, events):
        """Test that each entity gets its distinct, sorted dates."""
        updater = CumulativeDateListUpdater(config, spark, store=Mock())

        result = {(r.user_id, r.browser_type): r._new_dates
                  for r in updater.compute_new_activity(events).collect()}

        assert result == {
            (1, "Chrome"): [date(2023, 1, 1), date(2023, 1, 2)],
            (1, "Firefox"): [date(2023, 1, 2)],
            (2, "Safari"): [date(2023, 1, 3)]
        }

    def test_merge_single_day(self, spark, config, events, current_state):
        """Test merging one day into existing lists."""
        updater = CumulativeDateListUpdater(config, spark, store=Mock())

        updates_df = updater.merge_activity(current_state, events, date(2023, 1, 2))
        result = self._lists(updates_df)

        assert result == {
            (1, "Chrome"): [date(2022, 12, 30), date(2023, 1, 1), date(2023, 1, 2)],
            (1, "Firefox"): [date(2023, 1, 2)]
        }
        assert self._lists(updates_df, "datelist_int")[(1, "Chrome")] == [20221230, 20230101, 20230102]

    def test_merge_is_idempotent(self, spark, config, events, current_state):
        """Test that merging the same day twice changes nothing."""
        updater = CumulativeDateListUpdater(config, spark, store=Mock())

        once = updater.apply_updates(current_state,
                                     updater.merge_activity(current_state, events, date(2023, 1, 1))
                                     .select(*current_state.columns))
        twice = updater.apply_updates(once,
                                      updater.merge_activity(once, events, date(2023, 1, 1))
                                      .select(*current_state.columns))

        assert self._lists(once) == self._lists(twice)

    def test_lists_only_grow(self, spark, config, events, current_state):
        """Test that a merge never drops previously recorded dates."""
        updater = CumulativeDateListUpdater(config, spark, store=Mock())
        before = self._lists(current_state)

        after_df = updater.apply_updates(current_state,
                                         updater.merge_activity(current_state, events)
                                         .select(*current_state.columns))
        after = self._lists(after_df)

        for key, dates in before.items():
            assert set(dates) <= set(after[key])
            assert after[key] == sorted(set(after[key]))
        assert after[(3, "Edge")] == [date(2022, 12, 31)]

    def test_missing_key_column_raises(self, spark, config, events):
        """Test that missing source columns abort before any write."""
        store = Mock()
        store.table_exists.return_value = False
        updater = CumulativeDateListUpdater(config, spark, store=store)

        with pytest.raises(SchemaValidationError, match="browser_type"):
            updater.run(events.drop("browser_type"), date(2023, 1, 1))

        store.upsert.assert_not_called()

    def test_run_upserts_new_entities(self, spark, config, events):
        """Test a first run against a table that does not exist yet."""
        store = Mock()
        store.table_exists.return_value = False
        updater = CumulativeDateListUpdater(config, spark, store=store)

        metrics = updater.run(events, date(2023, 1, 2))

        updates_df, table_name, keys = store.upsert.call_args[0]
        assert table_name == "analytics.user_devices_cumulated"
        assert keys == ["user_id", "browser_type"]
        assert updates_df.count() == 2
        assert metrics.new_records_created == 2
        assert metrics.existing_records_updated == 0

    def test_run_without_activity_writes_nothing(self, spark, config, events):
        """Test that a day without events leaves the table untouched."""
        store = Mock()
        store.table_exists.return_value = False
        updater = CumulativeDateListUpdater(config, spark, store=store)

        metrics = updater.run(events, date(2023, 2, 1))

        store.upsert.assert_not_called()
        assert metrics.records_processed == 0
