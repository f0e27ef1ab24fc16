#!/usr/bin/env python3
"""
DBFuzz - Differential and Metamorphic Database Fuzzer

This module provides the main entry point. Features:
- Dialect selection through sub-commands (postgres, yugabyte, ...)
- YAML configuration with command line overrides
- Parallel fuzzing sessions with crash reproduction logs
- Graceful shutdown on SIGINT/SIGTERM and global timeouts
"""

import argparse
import logging
import signal
import sys
import time
import traceback
from pathlib import Path
from typing import List, Optional

from config import FuzzConfig, build_config, load_config, validate_config
from core.errors import FatalError
from core.harness import ExecutionHarness
from dialects import DIALECT_REGISTRY, get_dialect

# Global variables for signal handling
harness: Optional[ExecutionHarness] = None


def setup_logging(config: FuzzConfig) -> logging.Logger:
    """
    Setup logging with console, comprehensive-file and error-file handlers.

    Args:
        config: Complete configuration

    Returns:
        Configured root logger
    """
    for path in (config.logging.log_file, config.logging.error_log_file):
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    # Configure root logger
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if config.debug else getattr(logging, config.logging.log_level))

    # Clear existing handlers
    logger.handlers.clear()

    # Console handler with structured output
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if config.debug else logging.INFO)
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(name)s] - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)

    # File handler for comprehensive logging
    file_handler = logging.FileHandler(config.logging.log_file, mode='w', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(name)s] - %(funcName)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler.setFormatter(file_formatter)

    # Error file handler for failures and fatal errors
    error_handler = logging.FileHandler(config.logging.error_log_file, mode='w', encoding='utf-8')
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(file_formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)
    logger.addHandler(error_handler)

    return logger


def signal_handler(signum: int, frame) -> None:
    """
    Handle shutdown signals gracefully.

    Running sessions are allowed to finish; no new session is started.
    """
    signal_name = signal.Signals(signum).name
    print(f"\n🛑 Received signal {signal_name}, finishing running sessions...")
    if harness is not None:
        harness.shutdown()


def validate_environment(config: FuzzConfig) -> bool:
    """
    Validate the execution environment.

    Returns:
        True if environment is valid, False otherwise
    """
    print("🔍 Validating execution environment...")

    if sys.version_info < (3, 9):
        print("❌ Python 3.9+ required")
        return False

    log_dir = Path(config.options.log_directory)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        test_file = log_dir / "test_write.tmp"
        test_file.write_text("test")
        test_file.unlink()
        print(f"✅ Log directory '{log_dir}' is writable")
    except OSError as e:
        print(f"❌ Write permission error: {e}")
        return False

    return True


def build_parser() -> argparse.ArgumentParser:
    """Generic flags first, then one sub-command (with its own flags) per dialect."""
    parser = argparse.ArgumentParser(
        prog="dbfuzz",
        description="DBFuzz - differential and metamorphic fuzzer for SQL database engines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fuzz a local PostgreSQL server with 4 workers and a fixed seed
  dbfuzz --num-threads 4 --random-seed 42 postgres

  # Only run the NoREC oracle against YugabyteDB for one hour
  dbfuzz -c config.yaml --timeout-seconds 3600 yugabyte --oracle NOREC
        """
    )

    parser.add_argument('-c', '--config', help='YAML configuration file')
    parser.add_argument('--num-tries', type=int, help='Number of worker tasks (attempts)')
    parser.add_argument('--num-threads', type=int, help='Number of parallel workers')
    parser.add_argument('--random-seed', type=int, help='Base seed (-1: derive from the current time)')
    parser.add_argument('--num-queries', type=int, help='Oracle checks per database')
    parser.add_argument('--max-num-inserts', type=int, help='Upper bound of INSERT statements per workload')
    parser.add_argument('--max-generated-databases', type=int,
                        help='Databases each worker creates before it stops (-1: unbounded)')
    parser.add_argument('--timeout-seconds', type=int, help='Global timeout (-1: none)')
    parser.add_argument('--log-each-select', action=argparse.BooleanOptionalAction, default=None,
                        help='Log every statement to <database>-cur.log as it is submitted')
    parser.add_argument('--log-execution-time', action=argparse.BooleanOptionalAction, default=None,
                        help='Append the execution time to every logged statement')
    parser.add_argument('--print-statements', action=argparse.BooleanOptionalAction, default=None,
                        help='Echo every statement to stdout')
    parser.add_argument('--print-succeeding-statements', action=argparse.BooleanOptionalAction, default=None,
                        help='Echo every successful statement to stdout')
    parser.add_argument('--print-progress', action=argparse.BooleanOptionalAction, default=None,
                        help='Log throughput every few seconds')
    parser.add_argument('--log-directory', help='Directory for reproduction logs')
    parser.add_argument('--host', help='Database host')
    parser.add_argument('--port', type=int, help='Database port')
    parser.add_argument('--username', help='Database user')
    parser.add_argument('--password', help='Database password')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--validate-only', action='store_true', help='Validate configuration and exit')

    subparsers = parser.add_subparsers(dest='dialect', metavar='dialect')
    for name in sorted(DIALECT_REGISTRY):
        dialect_class = DIALECT_REGISTRY[name]
        subparser = subparsers.add_parser(name, help=(dialect_class.__doc__ or name).strip())
        dialect_class.add_arguments(subparser)

    return parser


def apply_cli_overrides(config: FuzzConfig, args: argparse.Namespace) -> None:
    """Copy every flag the user actually gave onto the configuration."""
    option_flags = {
        'num_tries': args.num_tries,
        'num_threads': args.num_threads,
        'random_seed': args.random_seed,
        'num_queries': args.num_queries,
        'max_num_inserts': args.max_num_inserts,
        'max_generated_databases': args.max_generated_databases,
        'timeout_seconds': args.timeout_seconds,
        'log_each_select': args.log_each_select,
        'log_execution_time': args.log_execution_time,
        'print_all_statements': args.print_statements,
        'print_succeeding_statements': args.print_succeeding_statements,
        'print_progress_information': args.print_progress,
        'log_directory': args.log_directory,
    }
    for key, value in option_flags.items():
        if value is not None:
            setattr(config.options, key, value)
    config.options.__post_init__()

    database_flags = {
        'host': args.host,
        'port': args.port,
        'user': args.username,
        'password': args.password,
    }
    for key, value in database_flags.items():
        if value is not None:
            setattr(config.database, key, value)

    if args.dialect:
        config.dialect = args.dialect
    if args.debug:
        config.debug = True


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 if no worker hit a failure)
    """
    global harness

    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        data = load_config(args.config) if args.config else {}
    except (OSError, ValueError) as e:
        print(f"❌ Could not load configuration: {e}")
        return 1

    config = build_config(data)
    apply_cli_overrides(config, args)
    if not config.dialect:
        parser.error(f"a dialect is required (one of: {', '.join(sorted(DIALECT_REGISTRY))})")

    if not validate_config(config):
        print("❌ Configuration validation failed")
        return 1

    try:
        dialect = get_dialect(config.dialect, config.database)
        dialect_options = dict(config.dialect_options)
        dialect_options.update(dialect.options_from_args(args))
        dialect.new_options(dialect_options)
    except FatalError as e:
        print(f"❌ {e}")
        return 1

    if args.validate_only:
        print("✅ Configuration validation completed successfully")
        return 0

    if not validate_environment(config):
        return 1

    logger = setup_logging(config)
    logger.info(f"🚀 DBFuzz starting ({config.dialect})")

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    harness = ExecutionHarness(dialect, config.options, dialect_options)
    start_time = time.time()
    try:
        exit_code = harness.run()
    except Exception as e:
        logger.error(f"❌ Fuzzing failed: {e}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        return config.options.error_exit_code

    # Final statistics
    stats = harness.metrics.snapshot()
    total_time = time.time() - start_time
    logger.info("📊 Final Statistics:")
    logger.info(f"   Total Runtime: {total_time:.2f} seconds")
    logger.info(f"   Databases Created: {stats.databases}")
    logger.info(f"   Oracle Checks: {stats.queries}")
    logger.info(f"   Successful Statements: {stats.successful_actions} "
                f"({stats.successful_ratio * 100:.2f}%)")
    logger.info(f"   Workers Retired: {stats.workers_retired}")

    if exit_code == 0:
        logger.info("🎉 DBFuzz completed without failures")
    else:
        logger.info(f"🐞 Failures found; reproduction logs are in {config.options.log_directory}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
