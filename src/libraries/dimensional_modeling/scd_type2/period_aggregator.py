"""
Per-period aggregation and classification of raw facts.
"""

from datetime import date
from typing import Optional
from pyspark.sql import Column, DataFrame
from pyspark.sql.functions import avg, col, lit, when
from pyspark.sql.functions import max as spark_max
from pyspark.sql.functions import sum as spark_sum
import logging

from ..common.config import ActivityRule, SCDHistoryConfig
from ..common.utils import require_columns
from .classifier import QualityClassifier

logger = logging.getLogger(__name__)


class PeriodAggregator:
    """Computes the signal, quality class and active flag of each entity and period."""

    def __init__(self, config: SCDHistoryConfig, classifier: Optional[QualityClassifier] = None):
        self.config = config
        self.classifier = classifier or QualityClassifier()

    @property
    def reference_period(self) -> int:
        """Period treated as active under the reference_period rule."""
        if self.config.reference_period is not None:
            return self.config.reference_period
        return date.today().year

    def required_columns(self) -> list:
        config = self.config
        columns = config.entity_id_columns + [config.period_column, config.rating_column]
        if config.weight_column:
            columns.append(config.weight_column)
        return columns + config.attribute_columns

    def aggregate(self, facts_df: DataFrame, period: Optional[int] = None) -> DataFrame:
        """
        Aggregate raw facts to one classified row per entity and period.

        Args:
            facts_df: Raw facts (e.g. one row per film)
            period: Only aggregate this period; None aggregates all

        Returns:
            DataFrame with entity ids, period, attributes, signal, quality class and active flag
        """
        config = self.config
        require_columns(facts_df, self.required_columns(), "Period aggregation")

        df = facts_df.withColumn(config.period_column, col(config.period_column).cast("int"))
        if period is not None:
            df = df.filter(col(config.period_column) == lit(period))

        aggregated = (df
                      .groupBy(*config.entity_id_columns, config.period_column)
                      .agg(*[spark_max(a).alias(a) for a in config.attribute_columns],
                           self._signal_expr().alias(config.signal_column)))

        classified = self.classifier.classify_dataframe(aggregated, config.signal_column,
                                                        config.quality_class_column)
        return classified.withColumn(config.is_active_column, self._activity_expr())

    def _signal_expr(self) -> Column:
        rating = col(self.config.rating_column)
        if not self.config.weight_column:
            return avg(rating)

        weight = col(self.config.weight_column)
        total_weight = spark_sum(when(rating.isNotNull(), weight))
        return when(total_weight != 0,
                    (spark_sum(rating * weight) / total_weight).cast("double"))

    def _activity_expr(self) -> Column:
        if self.config.activity_rule == ActivityRule.REFERENCE_PERIOD.value:
            return col(self.config.period_column) == lit(self.reference_period)
        return lit(True)
