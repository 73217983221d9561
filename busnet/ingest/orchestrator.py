"""
Batch Import Orchestrator

Single entry point for loading network data from JSON batch files.

Usage:
    python -m busnet.ingest stops         # Import bus stops only
    python -m busnet.ingest routes        # Import routes only
    python -m busnet.ingest route-stops   # Link stops to routes
    python -m busnet.ingest all           # Import everything
    python -m busnet.ingest clear         # Clear all data (DESTRUCTIVE)
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from busnet.config.config_main import import_config
from busnet.data.db_broker import ConnectionBroker

from .records import load_batch
from .reconciler import ImportReconciler, StageResult
from .schema import initialize_database

logger = logging.getLogger(__name__)

COMMANDS = ('stops', 'routes', 'route-stops', 'all', 'clear')


def _print_stage_summary(title: str, result: StageResult):
    print(f"\n{'='*60}")
    print(f"{title} IMPORT COMPLETE")
    print(f"{'='*60}")
    print(f"Created: {result.created}")
    print(f"Skipped (already exist): {result.skipped}")
    print(f"Errors encountered: {result.errors}")
    print(f"{'='*60}\n")


def _stage_file(data_dir: Path, default_name: str, override: Optional[str]) -> Path:
    return Path(override) if override else data_dir / default_name


def run_import(command: str, data_dir: str = None, file: str = None,
               reset_db: bool = False, reconciler: ImportReconciler = None):
    """
    Execute one batch command.

    Args:
        command: One of stops, routes, route-stops, all, clear
        data_dir: Directory holding the batch files (default from env)
        file: Input file for single-stage commands (overrides data_dir)
        reset_db: Drop and recreate all tables first

    Returns:
        StageResult, ImportReport or per-kind delete counts, depending on command
    """
    if command not in COMMANDS:
        raise ValueError(f"Unknown command '{command}', expected one of {', '.join(COMMANDS)}")

    data_dir = Path(data_dir or import_config.data_dir)

    # Batch files are read before the schema is touched, so a missing file
    # never leaves a --reset-db run with dropped tables
    override = None if command == 'all' else file
    batches = {}
    if command in ('stops', 'all'):
        batches['stops'] = load_batch(_stage_file(data_dir, import_config.stops_file, override))
    if command in ('routes', 'all'):
        batches['routes'] = load_batch(_stage_file(data_dir, import_config.routes_file, override))
    if command in ('route-stops', 'all'):
        batches['route-stops'] = load_batch(
            _stage_file(data_dir, import_config.route_stops_file, override)
        )

    engine = ConnectionBroker.get_engine()
    initialize_database(engine, drop_existing=reset_db)

    reconciler = reconciler or ImportReconciler()

    if command == 'clear':
        print("CLEARING ALL DATA...")
        deleted = reconciler.clear()
        for kind, count in deleted.items():
            print(f"  Cleared {kind}: {count}")
        print("All data cleared")
        return deleted

    if command == 'stops':
        result = reconciler.import_stops(batches['stops'])
        _print_stage_summary("STOPS", result)
        return result

    if command == 'routes':
        result = reconciler.import_routes(batches['routes'])
        _print_stage_summary("ROUTES", result)
        return result

    if command == 'route-stops':
        result = reconciler.import_route_stops(batches['route-stops'])
        _print_stage_summary("ROUTE STOPS", result)
        return result

    report = reconciler.run_all(batches['stops'], batches['routes'], batches['route-stops'])
    _print_stage_summary("STOPS", report.stops)
    _print_stage_summary("ROUTES", report.routes)
    _print_stage_summary("ROUTE STOPS", report.route_stops)
    return report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='python -m busnet.ingest',
        description='Bus network batch import',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import everything from ./data
  python -m busnet.ingest all

  # Import stops from a specific file
  python -m busnet.ingest stops --file exports/stops.json

  # Wipe all network data without prompting
  python -m busnet.ingest clear --yes
        """
    )

    parser.add_argument(
        'command',
        choices=COMMANDS,
        help='Import stage to run, or clear to delete all data'
    )

    parser.add_argument(
        '--data-dir',
        type=str,
        default=None,
        help='Directory with stops.json, routes.json and route_stops.json (default: IMPORT_DATA_DIR)'
    )

    parser.add_argument(
        '--file',
        type=str,
        default=None,
        help='Input file for a single-stage command'
    )

    parser.add_argument(
        '--reset-db',
        action='store_true',
        help='Drop and recreate all tables before importing (DESTRUCTIVE)'
    )

    parser.add_argument(
        '--yes',
        action='store_true',
        help='Do not ask for confirmation before destructive operations'
    )

    return parser


def main(argv: List[str] = None):
    """CLI entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    args = build_parser().parse_args(argv)

    if args.file and args.command in ('all', 'clear'):
        print(f"--file cannot be used with '{args.command}'")
        sys.exit(1)

    # Confirm destructive operations
    if (args.command == 'clear' or args.reset_db) and not args.yes:
        print("\n⚠️  WARNING: this will DELETE ALL EXISTING DATA!")
        response = input("Are you sure you want to continue? (yes/no): ")
        if response.lower() != 'yes':
            print("Aborted.")
            sys.exit(0)

    start = datetime.now()
    try:
        run_import(
            args.command,
            data_dir=args.data_dir,
            file=args.file,
            reset_db=args.reset_db
        )
    except Exception as e:
        logger.exception(f"Import failed: {e}")
        print(f"\n{'!'*60}")
        print("! IMPORT FAILED")
        print(f"! Error: {e}")
        print(f"{'!'*60}\n")
        sys.exit(1)

    duration = (datetime.now() - start).total_seconds()
    print(f"Import completed in {duration:.2f} seconds")
    sys.exit(0)


if __name__ == "__main__":
    main()
