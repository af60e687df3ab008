"""
Command line entry point for the dimensional modeling batch jobs.

Each job reads a JSON file holding its config arguments. Jobs other than
deduplicate also take a "source_table" key naming the raw input table.

Usage:
    dimensional-modeling deduplicate --config dedup.json
    dimensional-modeling update-datelist --config devices.json --date 2023-01-31
    dimensional-modeling update-reduced-activity --config hosts.json --date 2023-01-31
    dimensional-modeling scd-backfill --config actors_history.json
    dimensional-modeling scd-incremental --config actors_history.json --period 2021
    dimensional-modeling build-period-dimension --config actors.json --period 2021
    dimensional-modeling accumulate-dimension --config players.json --period 2001
"""

from datetime import date
from typing import Any, Dict, List, Optional, Tuple
from pyspark.sql import SparkSession
from delta import configure_spark_with_delta_pip
import argparse
import json
import logging
import sys

from .common.config import (
    DeduplicationConfig,
    CumulativeDateListConfig,
    ReducedActivityConfig,
    SCDHistoryConfig,
    PeriodDimensionConfig,
    CumulativeDimensionConfig,
    ProcessingMetrics
)
from .common.exceptions import ConfigurationError, DimensionalModelingError
from .deduplication.fact_deduplicator import FactDeduplicator
from .cumulative.date_list_updater import CumulativeDateListUpdater
from .cumulative.reduced_activity_updater import ReducedActivityUpdater
from .cumulative.dimension_accumulator import CumulativeDimensionAccumulator
from .scd_type2.history_builder import SCDHistoryBuilder
from .scd_type2.period_dimension import PeriodDimensionBuilder

logger = logging.getLogger(__name__)


def build_spark_session(app_name: str) -> SparkSession:
    """Create a Spark session with the Delta Lake extensions enabled."""
    builder = (SparkSession.builder
               .appName(app_name)
               .config("spark.sql.extensions", "io.delta.sql.DeltaSparkSessionExtension")
               .config("spark.sql.catalog.spark_catalog",
                       "org.apache.spark.sql.delta.catalog.DeltaCatalog"))
    return configure_spark_with_delta_pip(builder).getOrCreate()


def load_job_config(path: str) -> Dict[str, Any]:
    """Read a job's JSON config file into a dict."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            config = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read config file {path}: {str(e)}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"Config file {path} must hold a JSON object")
    return config


def split_source_table(config: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """Separate the source table name from the job's config arguments."""
    job_args = dict(config)
    source_table = job_args.pop("source_table", None)
    if not source_table:
        raise ConfigurationError("Config must name a source_table", "source_table")
    return source_table, job_args


def _make_config(config_cls, job_args: Dict[str, Any]):
    try:
        return config_cls(**job_args)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid {config_cls.__name__}: {str(e)}") from e


def _require(args: argparse.Namespace, name: str) -> Any:
    value = getattr(args, name)
    if value is None:
        raise ConfigurationError(f"{args.job} requires --{name}", name)
    return value


def cmd_deduplicate(args: argparse.Namespace, spark: SparkSession) -> ProcessingMetrics:
    config = _make_config(DeduplicationConfig, load_job_config(args.config))
    return FactDeduplicator(config, spark).deduplicate_table()


def cmd_update_datelist(args: argparse.Namespace, spark: SparkSession) -> ProcessingMetrics:
    source_table, job_args = split_source_table(load_job_config(args.config))
    config = _make_config(CumulativeDateListConfig, job_args)
    return CumulativeDateListUpdater(config, spark).run(spark.table(source_table), args.date)


def cmd_update_reduced_activity(args: argparse.Namespace, spark: SparkSession) -> ProcessingMetrics:
    processing_date = _require(args, "date")
    source_table, job_args = split_source_table(load_job_config(args.config))
    config = _make_config(ReducedActivityConfig, job_args)
    return ReducedActivityUpdater(config, spark).run(spark.table(source_table), processing_date)


def cmd_scd_backfill(args: argparse.Namespace, spark: SparkSession) -> ProcessingMetrics:
    source_table, job_args = split_source_table(load_job_config(args.config))
    config = _make_config(SCDHistoryConfig, job_args)
    return SCDHistoryBuilder(config, spark).run_backfill(spark.table(source_table))


def cmd_scd_incremental(args: argparse.Namespace, spark: SparkSession) -> ProcessingMetrics:
    period = _require(args, "period")
    source_table, job_args = split_source_table(load_job_config(args.config))
    config = _make_config(SCDHistoryConfig, job_args)
    return SCDHistoryBuilder(config, spark).run_incremental(spark.table(source_table), period)


def cmd_build_period_dimension(args: argparse.Namespace, spark: SparkSession) -> ProcessingMetrics:
    period = _require(args, "period")
    source_table, job_args = split_source_table(load_job_config(args.config))
    config = _make_config(PeriodDimensionConfig, job_args)
    return PeriodDimensionBuilder(config, spark).run(spark.table(source_table), period)


def cmd_accumulate_dimension(args: argparse.Namespace, spark: SparkSession) -> ProcessingMetrics:
    period = _require(args, "period")
    source_table, job_args = split_source_table(load_job_config(args.config))
    config = _make_config(CumulativeDimensionConfig, job_args)
    return CumulativeDimensionAccumulator(config, spark).run(spark.table(source_table), period)


COMMANDS = {
    "deduplicate": cmd_deduplicate,
    "update-datelist": cmd_update_datelist,
    "update-reduced-activity": cmd_update_reduced_activity,
    "scd-backfill": cmd_scd_backfill,
    "scd-incremental": cmd_scd_incremental,
    "build-period-dimension": cmd_build_period_dimension,
    "accumulate-dimension": cmd_accumulate_dimension,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dimensional-modeling",
        description="Run a dimensional modeling batch job against Delta tables",
    )
    parser.add_argument("job", choices=sorted(COMMANDS), help="Job to run")
    parser.add_argument("--config", required=True, help="Path to the job's JSON config file")
    parser.add_argument("--date", type=date.fromisoformat, help="Processing date (YYYY-MM-DD)")
    parser.add_argument("--period", type=int, help="Period to load (e.g. a year)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Root log level")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s:%(name)s:%(message)s")

    try:
        spark = build_spark_session(f"dimensional-modeling-{args.job}")
        metrics = COMMANDS[args.job](args, spark)
    except DimensionalModelingError as e:
        logger.error(f"{args.job} failed [{e.error_code}]: {e.message}")
        return 1

    print(json.dumps(metrics.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
