"""
Scrape vendor prices and write snapshots.

Usage:
    python -m cardprices.scripts.bantool [--scrapers cardkingdom,abugames] [--format json]
    python -m cardprices.scripts.bantool --sellers coolstuffinc --vendors cardkingdom
    python -m cardprices.scripts.bantool -l

Each loaded side is written to its own file in the output directory,
named <shorthand>_inventory.<ext> or <shorthand>_buylist.<ext>.
"""
import argparse
import asyncio
import sys
from pathlib import Path

import structlog

from cardprices.core.config import settings
from cardprices.core.logging import setup_logging, structlog_callback
from cardprices.services.ingestion.base import BaseScraper, ScrapeError
from cardprices.services.ingestion.client import ScraperClient
from cardprices.services.ingestion.export import (
    write_buylist_csv,
    write_inventory_csv,
    write_scraper_json,
)
from cardprices.services.ingestion.matcher import CardIndex
from cardprices.services.ingestion.registry import get_available_scrapers, get_scraper

logger = structlog.get_logger()


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip().lower() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scrape vendor inventories and buylists")
    parser.add_argument(
        "--scrapers",
        type=str,
        default=None,
        help="Comma-separated scrapers to run with both sides (default: all)",
    )
    parser.add_argument(
        "--sellers",
        type=str,
        default=None,
        help="Comma-separated scrapers to run for their inventory only",
    )
    parser.add_argument(
        "--vendors",
        type=str,
        default=None,
        help="Comma-separated scrapers to run for their buylist only",
    )
    parser.add_argument(
        "--output-path",
        type=str,
        default=settings.output_path,
        help="Directory the snapshots are written to",
    )
    parser.add_argument(
        "--format",
        choices=["json", "csv"],
        default="json",
        help="Snapshot format",
    )
    parser.add_argument(
        "--max-concurrency",
        type=int,
        default=None,
        help="Workers per scraper (default: the scraper's own)",
    )
    parser.add_argument(
        "--card-index",
        type=str,
        default=settings.card_index_path,
        help="Card catalogue used for matching",
    )
    parser.add_argument(
        "-l",
        dest="list_scrapers",
        action="store_true",
        help="List available scrapers and exit",
    )
    return parser


def build_client(args: argparse.Namespace, index: CardIndex) -> ScraperClient:
    """
    Raises:
        ValueError: On an unknown scraper name.
    """
    callback = structlog_callback()
    client = ScraperClient()

    sellers = _split(args.sellers)
    vendors = _split(args.vendors)
    scrapers = _split(args.scrapers)
    if not (scrapers or sellers or vendors):
        scrapers = get_available_scrapers()

    def make(slug: str) -> BaseScraper:
        scraper = get_scraper(slug, matcher=index, log_callback=callback)
        if args.max_concurrency:
            scraper.config.max_concurrency = args.max_concurrency
        return scraper

    for slug in scrapers:
        client.register(make(slug))
    for slug in sellers:
        client.register_seller(make(slug))
    for slug in vendors:
        client.register_vendor(make(slug))
    return client


async def dump(client: ScraperClient, output_path: Path, fmt: str, describe) -> list[Path]:
    written = []
    for scraper in client.sellers():
        path = output_path / f"{scraper.shorthand}_inventory.{fmt}"
        if fmt == "json":
            await write_scraper_json(scraper, path, buylist=False)
        else:
            with open(path, "w", newline="", encoding="utf-8") as fp:
                write_inventory_csv(await scraper.inventory(), fp, describe=describe)
        written.append(path)
    for scraper in client.vendors():
        path = output_path / f"{scraper.shorthand}_buylist.{fmt}"
        if fmt == "json":
            await write_scraper_json(scraper, path, inventory=False)
        else:
            with open(path, "w", newline="", encoding="utf-8") as fp:
                write_buylist_csv(await scraper.buylist(), fp, describe=describe)
        written.append(path)
    return written


async def run(args: argparse.Namespace) -> int:
    if args.list_scrapers:
        for slug in get_available_scrapers():
            print(slug)
        return 0

    if args.max_concurrency is not None and args.max_concurrency < 1:
        logger.error("Invalid concurrency", max_concurrency=args.max_concurrency)
        return 2

    try:
        index = CardIndex.from_json(args.card_index)
    except (OSError, ValueError) as e:
        logger.error("Cannot load card index", path=args.card_index, error=str(e))
        return 1

    try:
        client = build_client(args, index)
    except ValueError as e:
        logger.error("Invalid scraper selection", error=str(e))
        return 2

    output_path = Path(args.output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    try:
        await client.load()
        written = await dump(client, output_path, args.format, index.describe)
    except ScrapeError as e:
        logger.error("Scraper failed to load", error=str(e))
        return 1
    finally:
        await client.close()

    for path in written:
        logger.info("Wrote snapshot", path=str(path))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
