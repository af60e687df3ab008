"""
Unit tests for FactDeduplicator.
"""

import pytest
from unittest.mock import Mock
from pyspark.sql import SparkSession
from pyspark.sql.types import StructType, StructField, StringType, IntegerType

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from libraries.dimensional_modeling.deduplication.fact_deduplicator import FactDeduplicator
from libraries.dimensional_modeling.common.config import DeduplicationConfig
from libraries.dimensional_modeling.common.exceptions import (
    ConfigurationError,
    DeduplicationError,
    SchemaValidationError
)


class TestFactDeduplicator:
    """Test cases for FactDeduplicator."""

    @pytest.fixture
    def spark(self):
        """Create Spark session for testing."""
        return SparkSession.builder.appName("test").master("local[2]").getOrCreate()

    @pytest.fixture
    def schema(self):
        return StructType([
            StructField("game_id", IntegerType(), True),
            StructField("team_id", IntegerType(), True),
            StructField("player_id", IntegerType(), True),
            StructField("pts", IntegerType(), True),
            StructField("loaded_at", StringType(), True),
            StructField("row_id", IntegerType(), True)
        ])

    @pytest.fixture
    def game_details(self, spark, schema):
        """Game details with a late correction and an exact duplicate."""
        data = [
            (1, 10, 100, 12, "2024-01-01 10:00:00", 1),
            (1, 10, 100, 14, "2024-01-02 10:00:00", 2),
            (1, 10, 101, 8, "2024-01-01 10:00:00", 3),
            (1, 10, 101, 8, "2024-01-01 10:00:00", 3),
            (2, 20, 100, 30, "2024-01-05 10:00:00", 4)
        ]
        return spark.createDataFrame(data, schema)

    @pytest.fixture
    def latest_config(self):
        return DeduplicationConfig(
            business_key_columns=["game_id", "team_id", "player_id"],
            recency_column="loaded_at",
            tie_breaker_columns=["row_id"]
        )

    def _points(self, df):
        return {(r.game_id, r.team_id, r.player_id): r.pts for r in df.collect()}

    def test_latest_keeps_most_recent_row(self, spark, latest_config, game_details):
        """Test that the latest strategy keeps the most recent row per key."""
        deduplicator = FactDeduplicator(latest_config, spark, store=Mock())

        result_df = deduplicator.deduplicate(game_details)

        assert result_df.count() == 3
        assert self._points(result_df) == {(1, 10, 100): 14, (1, 10, 101): 8, (2, 20, 100): 30}
        assert "_dedup_rank" not in result_df.columns

    def test_earliest_keeps_oldest_row(self, spark, game_details):
        """Test that the earliest strategy keeps the oldest row per key."""
        config = DeduplicationConfig(
            business_key_columns=["game_id", "team_id", "player_id"],
            recency_column="loaded_at",
            tie_breaker_columns=["row_id"],
            deduplication_strategy="earliest"
        )
        deduplicator = FactDeduplicator(config, spark, store=Mock())

        result_df = deduplicator.deduplicate(game_details)

        assert self._points(result_df)[(1, 10, 100)] == 12

    def test_distinct_removes_exact_duplicates_only(self, spark, game_details):
        """Test that the distinct strategy only collapses identical rows."""
        config = DeduplicationConfig(
            business_key_columns=["game_id", "team_id", "player_id"],
            deduplication_strategy="distinct"
        )
        deduplicator = FactDeduplicator(config, spark, store=Mock())

        result_df = deduplicator.deduplicate(game_details)

        assert result_df.count() == 4

    def test_result_is_deterministic(self, spark, latest_config, game_details):
        """Test that repeated runs choose the same rows."""
        deduplicator = FactDeduplicator(latest_config, spark, store=Mock())

        first = sorted(deduplicator.deduplicate(game_details).collect())
        second = sorted(deduplicator.deduplicate(game_details.orderBy("row_id", ascending=False)).collect())

        assert first == second

    def test_unbreakable_tie_raises(self, spark, schema, latest_config):
        """Test that rows tied on every ordering column are rejected."""
        data = [
            (1, 10, 100, 12, "2024-01-01 10:00:00", 1),
            (1, 10, 100, 15, "2024-01-01 10:00:00", 1)
        ]
        source_df = spark.createDataFrame(data, schema)
        deduplicator = FactDeduplicator(latest_config, spark, store=Mock())

        with pytest.raises(DeduplicationError, match="tied"):
            deduplicator.deduplicate(source_df)

    def test_null_business_key_raises(self, spark, schema, latest_config):
        """Test that null business keys fail validation."""
        data = [(1, None, 100, 12, "2024-01-01 10:00:00", 1)]
        source_df = spark.createDataFrame(data, schema)
        deduplicator = FactDeduplicator(latest_config, spark, store=Mock())

        with pytest.raises(SchemaValidationError, match="null values in key column: team_id"):
            deduplicator.deduplicate(source_df)

    def test_missing_ordering_column_raises(self, spark, latest_config, game_details):
        """Test that a missing recency column fails validation."""
        deduplicator = FactDeduplicator(latest_config, spark, store=Mock())

        with pytest.raises(SchemaValidationError, match="Missing ordering columns"):
            deduplicator.deduplicate(game_details.drop("loaded_at"))

    def test_deduplicate_table(self, spark, game_details):
        """Test materializing the deduplicated table through the store."""
        config = DeduplicationConfig(
            business_key_columns=["game_id", "team_id", "player_id"],
            recency_column="loaded_at",
            tie_breaker_columns=["row_id"],
            source_table="raw.game_details",
            target_table="analytics.game_details_dedup"
        )
        store = Mock()
        store.read.return_value = game_details
        deduplicator = FactDeduplicator(config, spark, store=store)

        metrics = deduplicator.deduplicate_table()

        store.read.assert_called_once_with("raw.game_details")
        written_df, table_name = store.overwrite.call_args[0]
        assert table_name == "analytics.game_details_dedup"
        assert written_df.count() == 3
        assert metrics.records_processed == 5
        assert metrics.new_records_created == 3
        assert metrics.records_skipped == 2

    def test_deduplicate_table_same_source_and_target(self, spark):
        """Test that overwriting the source table is refused."""
        config = DeduplicationConfig(
            business_key_columns=["game_id"],
            deduplication_strategy="distinct",
            source_table="raw.game_details",
            target_table="raw.game_details"
        )
        deduplicator = FactDeduplicator(config, spark, store=Mock())

        with pytest.raises(ConfigurationError, match="must differ"):
            deduplicator.deduplicate_table()

    def test_get_deduplication_stats(self, spark, latest_config, game_details):
        """Test deduplication statistics."""
        deduplicator = FactDeduplicator(latest_config, spark, store=Mock())
        result_df = deduplicator.deduplicate(game_details)

        stats = deduplicator.get_deduplication_stats(game_details, result_df)

        assert stats["original_records"] == 5
        assert stats["deduplicated_records"] == 3
        assert stats["duplicates_removed"] == 2
        assert stats["deduplication_ratio"] == 0.4
        assert stats["strategy_used"] == "latest"
