"""
Configuration classes for dimensional modeling library.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
from enum import Enum


class DeduplicationStrategy(Enum):
    """Enumeration of available deduplication strategies."""
    LATEST = "latest"
    EARLIEST = "earliest"
    DISTINCT = "distinct"


class ActivityRule(Enum):
    """How the is_active flag of a period aggregate is derived."""
    OBSERVED = "observed"
    REFERENCE_PERIOD = "reference_period"


@dataclass
class DeduplicationConfig:
    """Configuration for fact table deduplication."""

    # Required parameters
    business_key_columns: List[str]

    # Recency ordering (not needed for the 'distinct' strategy)
    recency_column: Optional[str] = None
    tie_breaker_columns: List[str] = field(default_factory=list)

    deduplication_strategy: str = "latest"

    # Tables used by the materializing entry point
    source_table: Optional[str] = None
    target_table: Optional[str] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.business_key_columns:
            raise ValueError("business_key_columns cannot be empty")

        valid_strategies = [strategy.value for strategy in DeduplicationStrategy]
        if self.deduplication_strategy not in valid_strategies:
            raise ValueError(f"deduplication_strategy must be one of {valid_strategies}")

        if self.deduplication_strategy != DeduplicationStrategy.DISTINCT.value:
            if not self.recency_column:
                raise ValueError(f"recency_column is required for '{self.deduplication_strategy}' strategy")
            # A recency column alone does not make the choice deterministic
            if not self.tie_breaker_columns:
                raise ValueError(f"tie_breaker_columns are required for '{self.deduplication_strategy}' strategy")


@dataclass
class CumulativeDateListConfig:
    """Configuration for the cumulative active-date list table."""

    # Required parameters
    target_table: str
    entity_key_columns: List[str]

    # Source column names
    event_date_column: str = "event_date"

    # Target column names
    date_list_column: str = "activity_datelist"
    datelist_int_column: Optional[str] = "datelist_int"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.target_table:
            raise ValueError("target_table is required")
        if not self.entity_key_columns:
            raise ValueError("entity_key_columns cannot be empty")
        if not self.event_date_column:
            raise ValueError("event_date_column is required")


@dataclass
class ReducedActivityConfig:
    """Configuration for the monthly reduced activity fact table."""

    # Required parameters
    target_table: str

    # Source column names
    entity_column: str = "host"
    event_date_column: str = "event_date"
    visitor_column: str = "user_id"

    # Target column names
    month_column: str = "month"
    hits_column: str = "hit_array"
    unique_visitors_column: str = "unique_visitors"
    last_loaded_column: str = "last_loaded_date"

    # Append zeros for hosts without activity so array index == day of month - 1.
    # The default appends only on active days, so a host's array length is its
    # count of active days, not the number of days processed.
    fill_missing_days: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.target_table:
            raise ValueError("target_table is required")
        if not self.entity_column:
            raise ValueError("entity_column is required")
        if not self.visitor_column:
            raise ValueError("visitor_column is required")


@dataclass
class SCDHistoryConfig:
    """Configuration for SCD Type 2 history building."""

    # Required parameters
    target_table: str
    entity_id_columns: List[str]

    # Source fact columns
    period_column: str = "year"
    rating_column: str = "rating"
    weight_column: Optional[str] = None
    attribute_columns: List[str] = field(default_factory=list)

    # Derived aggregate columns
    signal_column: str = "avg_rating"
    quality_class_column: str = "quality_class"
    is_active_column: str = "is_active"

    # History column names
    start_column: str = "start_period"
    end_column: str = "end_period"
    current_flag_column: str = "current_flag"
    created_ts_column: str = "created_ts_utc"
    modified_ts_column: str = "modified_ts_utc"

    # Activity derivation
    activity_rule: str = "observed"
    reference_period: Optional[int] = None

    # Store latest period + 1 as a literal end for current rows instead of NULL
    close_current_at_next_period: bool = False

    hash_algorithm: str = "sha256"
    validate_result: bool = True

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.target_table:
            raise ValueError("target_table is required")
        if not self.entity_id_columns:
            raise ValueError("entity_id_columns cannot be empty")
        if not self.period_column:
            raise ValueError("period_column is required")
        if not self.rating_column:
            raise ValueError("rating_column is required")

        valid_rules = [rule.value for rule in ActivityRule]
        if self.activity_rule not in valid_rules:
            raise ValueError(f"activity_rule must be one of {valid_rules}")

        overlap = set(self.attribute_columns) & set(self.entity_id_columns)
        if overlap:
            raise ValueError(f"attribute_columns overlap entity_id_columns: {overlap}")

    @property
    def tracked_columns(self) -> List[str]:
        """Columns whose change opens a new history version."""
        return [self.quality_class_column, self.is_active_column]

    @property
    def history_columns(self) -> List[str]:
        """Columns of a history record, in table order."""
        return (self.entity_id_columns +
                self.attribute_columns +
                self.tracked_columns +
                [self.start_column, self.end_column, self.current_flag_column])


@dataclass
class PeriodDimensionConfig(SCDHistoryConfig):
    """
    Configuration for the one-row-per-entity dimension of the latest period.

    target_table names the dimension table. The source, signal and activity
    settings are shared with SCDHistoryConfig.
    """

    # Fact columns packed into one struct per fact
    item_columns: List[str] = field(default_factory=list)
    items_column: str = "films"

    def __post_init__(self):
        """Validate configuration after initialization."""
        super().__post_init__()
        if not self.item_columns:
            raise ValueError("item_columns cannot be empty")
        if not self.items_column:
            raise ValueError("items_column is required")
        if self.dimension_columns.count(self.items_column) > 1:
            raise ValueError(f"items_column clashes with another column: {self.items_column}")

    @property
    def dimension_columns(self) -> List[str]:
        """Columns of a dimension row, in table order."""
        return (self.entity_id_columns +
                self.attribute_columns +
                [self.items_column] +
                self.tracked_columns +
                [self.period_column])


@dataclass
class CumulativeDimensionConfig:
    """Configuration for the cumulative period-snapshot dimension."""

    # Required parameters
    target_table: str
    entity_id_columns: List[str]
    stats_columns: List[str]
    signal_column: str

    period_column: str = "season"
    attribute_columns: List[str] = field(default_factory=list)

    # Target column names
    stats_array_column: str = "period_stats"
    tier_column: str = "scoring_class"
    years_since_column: str = "years_since_last_period"
    is_active_column: str = "is_active"
    current_period_column: str = "current_period"

    # Descending (tier, lower bound) pairs; values at or below the last bound fall to default_tier
    tier_thresholds: Optional[List[Any]] = None
    default_tier: str = "bad"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.target_table:
            raise ValueError("target_table is required")
        if not self.entity_id_columns:
            raise ValueError("entity_id_columns cannot be empty")
        if not self.stats_columns:
            raise ValueError("stats_columns cannot be empty")
        if self.signal_column not in self.stats_columns:
            raise ValueError("signal_column must be one of stats_columns")


@dataclass
class ProcessingMetrics:
    """Metrics for processing operations."""

    records_processed: int = 0
    new_records_created: int = 0
    existing_records_updated: int = 0
    records_skipped: int = 0
    processing_time_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary."""
        return {
            "records_processed": self.records_processed,
            "new_records_created": self.new_records_created,
            "existing_records_updated": self.existing_records_updated,
            "records_skipped": self.records_skipped,
            "processing_time_seconds": self.processing_time_seconds
        }


@dataclass
class ValidationResult:
    """Result of data validation."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning message."""
        self.warnings.append(warning)

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation result to dictionary."""
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings
        }
