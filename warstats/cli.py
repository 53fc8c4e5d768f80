#!/usr/bin/env python3
"""
War Stats command line

    warstats refresh                      one refresh cycle, then print the leaderboard
    warstats run                          refresh on the aligned schedule until Ctrl+C
    warstats leaderboard --export out.csv write the leaderboard as CSV
    warstats import-manual manual-war.csv merge a hand-transcribed war sheet
"""

import argparse
import logging
import signal
import sys
from typing import List, Optional

import pandas as pd

from warstats.config import ConfigError, load_config, mask_api_key
from warstats.ingest.manual_import import ManualImportError
from warstats.io.safe_write import safe_write_csv
from warstats.service import WarStatsService
from warstats.utils.logger import get_logger

logger = logging.getLogger(__name__)


def _print_leaderboard(service: WarStatsService, include_former: bool = False) -> pd.DataFrame:
    df, labels = service.leaderboard(include_former=include_former)
    for notice in service.notices():
        print(f"⚠️  {notice}")
    if df.empty:
        print("No members to show yet.")
        return df

    shown = ["current_rank", "name", "role", *labels, "promotion_ready", "demotion_risk"]
    view = df[shown].copy()
    with pd.option_context("display.max_columns", None, "display.width", 200):
        print(view.to_string(index=False, na_rep="-"))
    return df


def cmd_refresh(service: WarStatsService, args) -> int:
    ok = service.refresh()
    _print_leaderboard(service, include_former=args.include_former)
    return 0 if ok else 1


def cmd_run(service: WarStatsService, args) -> int:
    scheduler = service.build_scheduler()

    def _shutdown(signum, frame):
        logger.info("Shutting down...")
        scheduler.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
    scheduler.run_forever(run_immediately=True)
    return 0


def cmd_leaderboard(service: WarStatsService, args) -> int:
    df = _print_leaderboard(service, include_former=args.include_former)
    if args.export:
        result = safe_write_csv(df, args.export)
        print(f"✅ Leaderboard exported to {result['path']}")
    return 0


def cmd_import_manual(service: WarStatsService, args) -> int:
    merged = service.import_manual(args.csv_path, year=args.year)
    print(f"✅ Manual war history imported ({len(merged)} weeks stored)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Clan war stats reconciliation engine")
    parser.add_argument("--config", type=str, default=None,
                        help="YAML configuration file path")
    parser.add_argument("--data-dir", type=str, default=None,
                        help="Directory for the JSON ledgers (overrides DATA_DIR)")
    parser.add_argument("--clan-tag", type=str, default=None,
                        help="Clan tag, with or without '#'")
    parser.add_argument("--log-file", type=str, default=None,
                        help="Also append log output to this file")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    refresh = subparsers.add_parser("refresh", help="Run one refresh cycle and print the leaderboard")
    refresh.add_argument("--include-former", action="store_true", help="Also list former members")
    refresh.set_defaults(func=cmd_refresh)

    run = subparsers.add_parser("run", help="Refresh on the aligned schedule until interrupted")
    run.set_defaults(func=cmd_run)

    leaderboard = subparsers.add_parser("leaderboard", help="Print (and optionally export) the leaderboard")
    leaderboard.add_argument("--export", type=str, default=None, help="CSV output path")
    leaderboard.add_argument("--include-former", action="store_true", help="Also list former members")
    leaderboard.set_defaults(func=cmd_leaderboard)

    manual = subparsers.add_parser("import-manual", help="Import a hand-transcribed war sheet")
    manual.add_argument("csv_path", type=str, help="Path to manual-war.csv")
    manual.add_argument("--year", type=int, default=None, help="Year of the sheet's date ranges")
    manual.set_defaults(func=cmd_import_manual)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    get_logger(args.log_file, level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = load_config(args.config, overrides={
            "DATA_DIR": args.data_dir,
            "CLAN_TAG": args.clan_tag,
        })
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    logger.info(f"Clan #{config['CLAN_TAG']}, data in {config['DATA_DIR']}, "
                f"API key {mask_api_key(config['API_KEY'])}")
    service = WarStatsService(config)

    try:
        return args.func(service, args)
    except (ManualImportError, FileNotFoundError) as e:
        logger.error(f"Import failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
