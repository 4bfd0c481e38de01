"""
Entry point for the legacy site migration tool.

Usage::

    python main.py import
    python main.py reimport <slug>
    python main.py discover [--scope blog|root] [--mode auto|sitemap|crawl] [--no-validate] [--out FILE]
    python main.py backfill-body-classes [--urls-file FILE]
    python main.py prune [--target 64mb] [--mode videos|variants|largest]
    python main.py reset-media [--provider blob|s3]
    python main.py media-report
    python main.py parity [--urls-file FILE]
    python main.py parity-style [--urls-file FILE]

Setup failures (invalid configuration, missing credentials, unreachable
WordPress or database) exit with status 1.
"""

import argparse
import asyncio
import logging
import sys

from site_migrator.config import get_config, parse_bytes
from site_migrator.migration_tool import SiteMigrationTool
from site_migrator.utils.errors import MigrationError
from site_migrator.utils.logs import configure_logging
from site_migrator.utils.pre_flight_checks import check_media_backend, run_pre_flight_checks

logger = logging.getLogger("site_migrator.main")


def build_parser():
    parser = argparse.ArgumentParser(description="Migrate the legacy WordPress site and verify visual parity.")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("import", help="Import every WordPress page and post")

    reimport = sub.add_parser("reimport", help="Import one page or post by slug")
    reimport.add_argument("slug")

    discover = sub.add_parser("discover", help="Discover legacy URLs for the parity suite")
    discover.add_argument("--scope", choices=["blog", "root"])
    discover.add_argument("--mode", choices=["auto", "sitemap", "crawl"])
    discover.add_argument("--no-validate", action="store_true")
    discover.add_argument("--out")

    backfill = sub.add_parser("backfill-body-classes", help="Refresh legacy body classes of imported items")
    backfill.add_argument("--urls-file")

    prune = sub.add_parser("prune", help="Delete stored media until enough space is free")
    prune.add_argument("--target", help="Bytes to free, e.g. 64mb or 1.5gb")
    prune.add_argument("--mode", choices=["videos", "variants", "largest"])

    reset = sub.add_parser("reset-media", help="Delete media asset rows")
    reset.add_argument("--provider")

    sub.add_parser("media-report", help="Summarize stored media per provider and type")

    parity = sub.add_parser("parity", help="Compare legacy and new pages screenshot by screenshot")
    parity.add_argument("--urls-file")

    style = sub.add_parser("parity-style", help="Report computed-style differences per selector")
    style.add_argument("--urls-file")
    return parser


def run(args) -> int:
    config = get_config()
    tool = SiteMigrationTool(config)

    if args.command in ("import", "reimport"):
        run_pre_flight_checks(config)
    elif args.command == "prune":
        check_media_backend(config.media)

    if args.command == "import":
        summary = asyncio.run(tool.import_content())
        print(summary.counts())
    elif args.command == "reimport":
        if asyncio.run(tool.reimport(args.slug)) is None:
            return 1
    elif args.command == "discover":
        validate = False if args.no_validate else None
        asyncio.run(tool.discover(scope=args.scope, mode=args.mode, validate=validate, out_file=args.out))
    elif args.command == "backfill-body-classes":
        print(asyncio.run(tool.backfill_body_classes(args.urls_file)))
    elif args.command == "prune":
        target = parse_bytes(args.target) if args.target else None
        result = asyncio.run(tool.prune(target_free_bytes=target, mode=args.mode))
        print({"freed": result.freed, "deleted": len(result.deleted), "failed": len(result.failed)})
    elif args.command == "reset-media":
        tool.reset_media(args.provider)
    elif args.command == "media-report":
        report = tool.media_report()
        print(report.to_string(index=False) if not report.empty else "No media assets.")
    elif args.command == "parity":
        outcomes = asyncio.run(tool.parity(args.urls_file))
        if any(not outcome.passed for outcome in outcomes):
            return 1
    elif args.command == "parity-style":
        print(asyncio.run(tool.parity_style(args.urls_file)))
    return 0


def main(argv=None) -> int:
    """
    Main function to run the migration tool.
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return run(args)
    except (MigrationError, OSError, ValueError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
