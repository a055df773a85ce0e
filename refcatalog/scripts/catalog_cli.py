#!/usr/bin/env python3
"""
Catalog CLI
Sync, search and inspect the local catalog replica from the command line.

Usage:
    refcatalog sync --force
    refcatalog search "демонтаж стяжки" --page 1 --page-size 20
    refcatalog suggest "цемент"
    refcatalog status
    refcatalog clear

Configuration comes from the environment / .env (CATALOG_API_URL, REPLICA_DATABASE_URL, ...).
"""

import argparse
import asyncio
import json
import logging
import sys

from refcatalog.config import get_settings
from refcatalog.runtime import CatalogRuntime

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="refcatalog", description="Reference catalog replica tools")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Sync the local replica from the catalog API")
    sync_parser.add_argument("--force", action="store_true", help="Sync even if the replica is fresh")

    search_parser = subparsers.add_parser("search", help="Hybrid search (semantic first, keyword fallback)")
    search_parser.add_argument("query", type=str, help="Search text (empty string to browse)")
    search_parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    search_parser.add_argument("--page-size", type=int, default=None, help="Results per page")
    search_parser.add_argument("--local", action="store_true", help="Query the local replica only")

    suggest_parser = subparsers.add_parser("suggest", help="Ranked suggestions from the local replica")
    suggest_parser.add_argument("query", type=str, help="Search text")
    suggest_parser.add_argument("--limit", type=int, default=10, help="Maximum suggestions (default: 10)")

    subparsers.add_parser("status", help="Show replica and sync status")
    subparsers.add_parser("clear", help="Wipe the local replica and its sync marker")

    return parser


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


async def run_command(args: argparse.Namespace, runtime: CatalogRuntime) -> int:
    """Execute one CLI command against a started runtime. Returns the exit code."""
    await runtime.start(schedule_sync=False)

    if args.command == "status":
        _print_json(await runtime.get_status())
        return 0

    if runtime.degraded and args.command in ("sync", "clear", "suggest"):
        logger.error("Local replica is unavailable; see the log above")
        return 1

    if args.command == "sync":
        ok = await (runtime.sync_manager.force_sync() if args.force else runtime.sync_manager.sync())
        status = runtime.sync_manager.get_status()
        _print_json(status)
        if status["status"] == "error":
            return 1
        if not ok:
            logger.info("Sync skipped (replica is fresh); use --force to sync anyway")
        return 0

    if args.command == "clear":
        ok = await runtime.sync_manager.clear()
        return 0 if ok else 1

    if args.command == "suggest":
        scored = await runtime.query_engine.suggest(args.query, limit=args.limit)
        for item in scored:
            print(f"{item.score:>4}  {item.record.id:<12} {item.record.name}")
        return 0

    if args.command == "search":
        if args.local:
            page = await runtime.query_engine.search(args.query, page=args.page, page_size=args.page_size)
            result = page.to_dict()
            result["source"] = "local"
        else:
            result = (await runtime.search(args.query, page=args.page, page_size=args.page_size)).to_dict()

        logger.info(
            f"{len(result['items'])} of {result['total_count']} results "
            f"(mode={result['mode']}, source={result['source']})"
        )
        for item in result["items"]:
            print(f"{item['id']:<12} {item['name']}  [{item.get('category') or '-'}]")
        return 0

    logger.error(f"Unknown command: {args.command}")
    return 2


async def _main(args: argparse.Namespace) -> int:
    runtime = CatalogRuntime(get_settings())
    try:
        return await run_command(args, runtime)
    finally:
        await runtime.close()


def main():
    """Main function to run the catalog CLI."""
    args = build_parser().parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        exit_code = asyncio.run(_main(args))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
