#!/usr/bin/env python3
"""
CLI entrypoint: run one read-only SQL file against every configured database.
"""
import argparse
import sys
from typing import List, Optional

from multiquery.commands.run import RunConfig, run_multi_query
from multiquery.logger import configure_logging
from multiquery.settings import settings

JSON_FALLBACK = "environments.json"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="multiquery",
        description="Execute a read-only SQL query against multiple databases.",
    )
    parser.add_argument("query_file", help="Path to the SQL query file to execute")
    parser.add_argument(
        "-e", "--environments-file",
        default=None,
        help=f"YAML/JSON file with database environments (default: {settings.environments_file})",
    )
    parser.add_argument("-c", "--csv", action="store_true", help="Output results in CSV format")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show additional diagnostic information")
    parser.add_argument(
        "--parallel",
        type=int,
        default=settings.max_workers,
        metavar="N",
        help="Run up to N endpoints concurrently; output order is unchanged (default: 1)",
    )
    parser.add_argument(
        "--probe-concurrency",
        type=int,
        default=settings.probe_concurrency,
        metavar="N",
        help="Max simultaneous connectivity probes (default: 5)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Enable structured JSON logging")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level",
    )
    args = parser.parse_args(argv)
    if args.parallel < 1:
        parser.error("--parallel must be at least 1")
    if args.probe_concurrency < 1:
        parser.error("--probe-concurrency must be at least 1")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    level = "CRITICAL"
    if args.log_level:
        level = args.log_level
    elif args.verbose:
        level = "WARNING"
    configure_logging(level=level, json_format=args.json_logs)

    environments_file = args.environments_file or settings.environments_file
    # The JSON name is only tried when the user did not pick a file.
    fallbacks = [] if args.environments_file else [JSON_FALLBACK]

    config = RunConfig(
        query_file=args.query_file,
        environments_file=environments_file,
        environments_fallbacks=fallbacks,
        csv_output=args.csv,
        verbose=args.verbose,
        max_workers=args.parallel,
        probe_concurrency=args.probe_concurrency,
    )
    return run_multi_query(config)


if __name__ == "__main__":
    sys.exit(main())
