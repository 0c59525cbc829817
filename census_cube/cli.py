#!/usr/bin/env python3
"""
Command-line interface for the census_cube package.

    census-cube selections FILES...
    census-cube run FILES... --period 2023 --region 안산시 [--passes 100] [--json]
"""

import argparse
import logging
import sys

import pandas as pd

from .config import load_settings
from .ingest import read_records
from .pipeline import ReconciliationPipeline
from .report import build_result_document, quality_summary, to_json

# Setup logging
logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reconcile marginal population tallies into a nationality x visa x age x gender table"
    )
    parser.add_argument('--version', action='store_true',
                        help='Show version information')
    parser.add_argument('--verbose', action='store_true',
                        help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command')

    sel = subparsers.add_parser('selections', help='List periods and regions found in the input files')
    sel.add_argument('files', nargs='+', help='CSV files')

    run = subparsers.add_parser('run', help='Build marginals, solve and print projected tables')
    run.add_argument('files', nargs='+', help='CSV files')
    run.add_argument('--period', help='Period to analyze (default: latest)')
    run.add_argument('--region', help='Region to analyze (default: first)')
    run.add_argument('--passes', type=int, help='Number of IPF passes (default: from config)')
    run.add_argument('--config', help='YAML config file overriding the defaults')
    run.add_argument('--no-prior-seed', action='store_true',
                     help='Do not blend the previous period into the seed')
    run.add_argument('--json', action='store_true', help='Print a JSON document instead of tables')
    return parser


def _run(args) -> int:
    settings = load_settings(args.config)
    pipeline = ReconciliationPipeline(settings)
    if args.no_prior_seed:
        pipeline.use_prior_seed = False
    pipeline.ingest(read_records(args.files))
    if pipeline.period is None:
        logger.error("No records recognized in the input files")
        return 1
    if args.period or args.region:
        pipeline.select(args.period or pipeline.period, args.region or pipeline.region)

    pipeline.run(max_passes=args.passes, delay=0)
    projection = pipeline.project() if len(pipeline.cube) else None

    if args.json:
        print(to_json(build_result_document(pipeline.report, pipeline.marginals,
                                            pipeline.error_history, projection)))
        return 0

    print(f"Selection: {pipeline.period} / {pipeline.region}")
    print(quality_summary(pipeline.report))
    if pipeline.error_history:
        last = pipeline.error_history[-1]
        print(f"IPF: {pipeline.iterations} passes, final error {last.error_percent:.5f}%")
    print(f"Gender split: {pipeline.gender_split()}")
    if projection is not None:
        with pd.option_context('display.max_columns', None, 'display.width', 200):
            for (row_dim, col_dim), table in projection.tables.items():
                print(f"\n{row_dim} x {col_dim}")
                print(table.to_frame().round(0).astype(int))
    return 0


def main(argv=None):
    """
    CLI entry point.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.version:
        from . import __version__
        print(f"census_cube version: {__version__}")
        return 0

    if args.command == 'selections':
        pipeline = ReconciliationPipeline()
        pipeline.ingest(read_records(args.files))
        print("Periods: " + ", ".join(pipeline.store.periods()))
        print("Regions: " + ", ".join(pipeline.store.regions()))
        return 0
    if args.command == 'run':
        return _run(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
