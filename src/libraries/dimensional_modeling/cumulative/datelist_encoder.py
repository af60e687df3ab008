"""
Compact encodings of cumulative date lists.

The date list stays the source of truth; everything here is derived and can be
recomputed at any time.
"""

from datetime import date
from pyspark.sql import DataFrame
from pyspark.sql.functions import aggregate, col, date_format, datediff, lit, transform
from pyspark.sql.functions import filter as array_filter
from pyspark.sql.functions import pow as spark_pow
import logging

logger = logging.getLogger(__name__)

# Signed bigint leaves 63 usable bits
MAX_WINDOW_DAYS = 63
DEFAULT_WINDOW_DAYS = 32


def last_n_days_mask(n: int, window_days: int = DEFAULT_WINDOW_DAYS) -> int:
    """
    Bit mask selecting the n most recent days of an activity bitmask.

    The most recent day (offset 0) is the highest bit of the window.
    """
    if not 0 < n <= window_days:
        raise ValueError(f"n must be between 1 and {window_days}")
    return ((1 << n) - 1) << (window_days - n)


class DateListEncoder:
    """Derives integer and bitmap forms of a date list column."""

    def __init__(self, window_days: int = DEFAULT_WINDOW_DAYS):
        if not 0 < window_days <= MAX_WINDOW_DAYS:
            raise ValueError(f"window_days must be between 1 and {MAX_WINDOW_DAYS}")
        self.window_days = window_days

    def add_datelist_int(self, df: DataFrame, date_list_column: str,
                         output_column: str = "datelist_int") -> DataFrame:
        """Add the YYYYMMDD integer form of the date list."""
        return df.withColumn(
            output_column,
            transform(col(date_list_column), lambda d: date_format(d, "yyyyMMdd").cast("int"))
        )

    def add_activity_bitmask(self, df: DataFrame, date_list_column: str, as_of: date,
                             output_column: str = "activity_bitmask") -> DataFrame:
        """
        Add a bigint with one bit per day of the window ending at as_of.

        Args:
            df: DataFrame with a date list column
            date_list_column: Column holding array<date>
            as_of: Last day of the window
            output_column: Name of the bitmask column

        Returns:
            DataFrame with the bitmask column added
        """
        window = self.window_days
        offsets = transform(col(date_list_column), lambda d: datediff(lit(as_of), d))
        in_window = array_filter(offsets, lambda o: (o >= 0) & (o < window))

        # Dates are distinct, so summing powers of two is a bitwise OR
        bitmask = aggregate(
            in_window,
            lit(0).cast("long"),
            lambda acc, o: acc + spark_pow(lit(2), lit(window - 1) - o).cast("long")
        )

        logger.info(f"Encoding {date_list_column} as {window}-day bitmask ending {as_of}")
        return df.withColumn(output_column, bitmask)

    def add_active_in_last_n_days(self, df: DataFrame, bitmask_column: str, n: int,
                                  output_column: str = None) -> DataFrame:
        """Flag rows with any activity among the n most recent days of the bitmask."""
        mask = last_n_days_mask(n, self.window_days)
        output_column = output_column or f"is_active_last_{n}d"
        return df.withColumn(output_column, col(bitmask_column).bitwiseAND(lit(mask)) != 0)
