"""
Unit tests for RecordManager with a mocked table store.
"""

import pytest
from unittest.mock import Mock, MagicMock
from pyspark.sql import SparkSession
from pyspark.sql.types import StructType, StructField, StringType, IntegerType, BooleanType

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from libraries.dimensional_modeling.scd_type2.record_manager import (
    RecordManager, ACTION_COLUMN, ACTION_CLOSE, ACTION_INSERT, ACTION_UPDATE
)
from libraries.dimensional_modeling.common.config import SCDHistoryConfig
from libraries.dimensional_modeling.common.exceptions import SCDProcessingError


PLAN_SCHEMA = StructType([
    StructField("actorid", StringType(), True),
    StructField("quality_class", StringType(), True),
    StructField("is_active", BooleanType(), True),
    StructField("start_period", IntegerType(), True),
    StructField("end_period", IntegerType(), True),
    StructField("current_flag", BooleanType(), True),
    StructField(ACTION_COLUMN, StringType(), True)
])


class TestRecordManagerMocked:
    """Test cases for RecordManager with a mocked Delta store."""

    @pytest.fixture
    def spark(self):
        """Create Spark session for testing."""
        return SparkSession.builder.appName("test").master("local[2]").getOrCreate()

    @pytest.fixture
    def config(self):
        return SCDHistoryConfig(target_table="analytics.actors_history_scd", entity_id_columns=["actorid"])

    @pytest.fixture
    def plan(self, spark):
        return spark.createDataFrame([
            ("e", "star", True, 1, 3, False, ACTION_CLOSE),
            ("e", "bad", True, 3, None, True, ACTION_INSERT),
            ("g", "average", True, 3, None, True, ACTION_INSERT)
        ], PLAN_SCHEMA)

    @pytest.fixture
    def store(self):
        store = Mock()
        store.table_exists.return_value = True
        store.delta_table.return_value = MagicMock()
        return store

    def test_execute_change_plan_single_merge(self, spark, config, plan, store):
        """Test that closes and inserts go through one MERGE."""
        record_manager = RecordManager(config, spark, store=store)

        metrics = record_manager.execute_change_plan(plan)

        delta_table = store.delta_table.return_value
        merge_builder = delta_table.alias.return_value.merge.return_value
        merge_builder.whenMatchedUpdate.assert_called_once()
        when_matched = merge_builder.whenMatchedUpdate.call_args[1]
        assert "close" in when_matched["condition"]
        assert set(when_matched["set"]) == {"end_period", "current_flag", "modified_ts_utc"}

        when_not_matched = merge_builder.whenMatchedUpdate.return_value.whenNotMatchedInsert
        insert_values = when_not_matched.call_args[1]["values"]
        assert set(insert_values) == set(config.history_columns) | {"created_ts_utc", "modified_ts_utc"}
        when_not_matched.return_value.execute.assert_called_once()

        assert metrics.new_records_created == 2
        assert metrics.existing_records_updated == 1
        assert metrics.records_processed == 3

    def test_execute_change_plan_updates_attributes(self, spark, store):
        """Test that a renamed current version is updated in place."""
        config = SCDHistoryConfig(target_table="analytics.actors_history_scd",
                                  entity_id_columns=["actorid"], attribute_columns=["actor"])
        schema = StructType([StructField("actor", StringType(), True)] + PLAN_SCHEMA.fields)
        plan = spark.createDataFrame([
            ("New Name", "a", "good", True, 1, None, True, ACTION_UPDATE)
        ], schema)
        record_manager = RecordManager(config, spark, store=store)

        metrics = record_manager.execute_change_plan(plan)

        merge_builder = store.delta_table.return_value.alias.return_value.merge.return_value
        when_matched = merge_builder.whenMatchedUpdate.call_args[1]
        assert "update" in when_matched["condition"]
        assert set(when_matched["set"]) == {"actor", "end_period", "current_flag", "modified_ts_utc"}
        assert metrics.existing_records_updated == 1
        assert metrics.new_records_created == 0

    def test_execute_change_plan_empty(self, spark, config, plan, store):
        record_manager = RecordManager(config, spark, store=store)

        metrics = record_manager.execute_change_plan(plan.limit(0))

        store.delta_table.assert_not_called()
        assert metrics.records_processed == 0

    def test_execute_change_plan_creates_table(self, spark, config, plan, store):
        """Test that the first load writes the inserts as a new table."""
        store.table_exists.return_value = False
        record_manager = RecordManager(config, spark, store=store)

        record_manager.execute_change_plan(plan)

        store.delta_table.assert_not_called()
        written_df, table_name = store.overwrite.call_args[0]
        assert table_name == "analytics.actors_history_scd"
        assert written_df.count() == 2
        assert ACTION_COLUMN not in written_df.columns

    def test_execute_change_plan_wraps_errors(self, spark, config, plan, store):
        store.delta_table.side_effect = RuntimeError("concurrent write")
        record_manager = RecordManager(config, spark, store=store)

        with pytest.raises(SCDProcessingError, match="concurrent write"):
            record_manager.execute_change_plan(plan)

    def test_get_table_info(self, spark, config, plan, store):
        store.read.return_value = plan.drop(ACTION_COLUMN)
        record_manager = RecordManager(config, spark, store=store)

        info = record_manager.get_table_info()

        assert info == {
            "table_name": "analytics.actors_history_scd",
            "total_records": 3,
            "current_records": 2,
            "historical_records": 1
        }

    def test_get_current_records(self, spark, config, plan, store):
        store.read.return_value = plan.drop(ACTION_COLUMN)
        record_manager = RecordManager(config, spark, store=store)

        current = sorted(r.actorid for r in record_manager.get_current_records().collect())

        assert current == ["e", "g"]
