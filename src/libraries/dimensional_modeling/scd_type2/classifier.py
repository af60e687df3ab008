"""
Quality tier classification of a numeric performance signal.
"""

from typing import Optional, Sequence, Tuple
from pyspark.sql import Column, DataFrame
from pyspark.sql.functions import col, lit, when

# (tier, exclusive lower bound), best tier first
QUALITY_THRESHOLDS = (("star", 8.0), ("good", 7.0), ("average", 6.0))
SCORING_THRESHOLDS = (("star", 20.0), ("good", 15.0), ("average", 10.0))
DEFAULT_TIER = "bad"


class QualityClassifier:
    """Maps a signal to the first tier whose bound it strictly exceeds."""

    def __init__(self, thresholds: Optional[Sequence[Tuple[str, float]]] = None,
                 default_tier: str = DEFAULT_TIER):
        thresholds = [(str(tier), float(bound)) for tier, bound in (thresholds or QUALITY_THRESHOLDS)]
        if not thresholds:
            raise ValueError("thresholds cannot be empty")

        bounds = [bound for _, bound in thresholds]
        if bounds != sorted(bounds, reverse=True):
            raise ValueError("thresholds must be ordered from the highest bound down")

        self.thresholds = thresholds
        self.default_tier = default_tier

    @property
    def tiers(self) -> list:
        return [tier for tier, _ in self.thresholds] + [self.default_tier]

    def classify(self, signal: Optional[float]) -> str:
        """Classify a single value; None falls to the default tier."""
        if signal is None:
            return self.default_tier
        for tier, bound in self.thresholds:
            if signal > bound:
                return tier
        return self.default_tier

    def tier_expr(self, signal: Column) -> Column:
        """Column expression equivalent of classify."""
        (first_tier, first_bound), rest = self.thresholds[0], self.thresholds[1:]

        expr = when(signal > first_bound, lit(first_tier))
        for tier, bound in rest:
            expr = expr.when(signal > bound, lit(tier))
        return expr.otherwise(lit(self.default_tier))

    def classify_dataframe(self, df: DataFrame, signal_column: str, output_column: str) -> DataFrame:
        """Add the tier of signal_column as output_column."""
        return df.withColumn(output_column, self.tier_expr(col(signal_column)))
