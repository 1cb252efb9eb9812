"""
Main entry point and CLI for FlipLab search.

Provides command-line access to the search client (search, item details,
health, platform status) and a ``serve`` command that runs the reference
search service with uvicorn.
"""

import asyncio
import argparse
import json
import logging
import sys
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

import uvicorn
from dotenv import load_dotenv

from fliplab.config import get_client_settings, get_service_settings, load_client_config, load_service_config
from fliplab.error_handling import SearchError, TotalFailureError, ValidationError
from fliplab.logging_setup import setup_logging
from fliplab.models import AggregatedResult, HealthStatus, MarketplaceItem, SortBy
from fliplab.search_client import SearchClient
from fliplab.sources import SOURCES

logger = logging.getLogger(__name__)


def format_item(item: MarketplaceItem) -> str:
    """
    Format one listing for console output.

    Args:
        item: Listing to format

    Returns:
        Multi-line string representation of the listing
    """
    lines = [f"📌 {item.title}", f"   ID: {item.id}"]

    if item.price:
        price_line = f"   Price: ${item.price:,.2f}"
        if item.original_price:
            price_line += f" (was ${item.original_price:,.2f})"
        lines.append(price_line)
    else:
        lines.append("   Price: unknown")

    if item.brand:
        lines.append(f"   Brand: {item.brand}")
    if item.condition:
        lines.append(f"   Condition: {item.condition}")
    if item.location:
        lines.append(f"   Location: {item.location}")

    lines.append(f"   Platform: {item.platform.value}")
    lines.append(f"   URL: {item.url}")
    lines.append("")

    return "\n".join(lines)


def format_results(result: AggregatedResult) -> str:
    """Format an aggregated search result, listing failed sources last."""
    output = [f"\n{'='*60}", f"Found {result.total_count} item(s)", f"{'='*60}\n"]

    for source_id, source_result in result.results.items():
        if not source_result.is_ok:
            continue
        output.append(f"{source_id} ({len(source_result.items)}):\n")
        output.extend(format_item(item) for item in source_result.items)

    for source_id in result.failed_sources:
        error = result.results[source_id].error
        output.append(f"⚠️  {source_id} failed: {error.message if error else 'unknown error'}")

    output.append(f"{'='*60}\n")
    return "\n".join(output)


async def run_search(client: SearchClient, args) -> int:
    request = {
        "query": args.query,
        "priceMin": args.min_price,
        "priceMax": args.max_price,
        "location": args.location,
        "category": args.category,
        "condition": args.condition,
        "sortBy": args.sort,
        "limit": args.limit,
    }
    request = {key: value for key, value in request.items() if value is not None}

    print(f"\n🔍 Searching for '{args.query}'...")
    start_time = datetime.now()

    try:
        result = await client.search_sources(args.source, request)
    except TotalFailureError as e:
        print(format_results(e.result))
        print(f"❌ {e}", file=sys.stderr)
        return 1

    elapsed_time = (datetime.now() - start_time).total_seconds()
    print(format_results(result))
    print(f"✅ Search completed in {elapsed_time:.2f} seconds")

    stats = client.aggregator.get_price_stats(result)
    if stats.count:
        print(f"   Prices: min ${stats.min:,.2f}, median ${stats.median:,.2f}, max ${stats.max:,.2f}")
    return 0


async def run_details(client: SearchClient, args) -> int:
    item = await client.get_item_detail(args.url)
    if item is None:
        print(f"No item found for {args.url}", file=sys.stderr)
        return 1
    print(format_item(item))
    return 0


async def run_health(client: SearchClient, args) -> int:
    report = await client.check_health()
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.status != HealthStatus.UNHEALTHY else 1


async def run_platforms(client: SearchClient, args) -> int:
    platforms = await client.get_platform_status()
    print(json.dumps(platforms, indent=2))
    return 0


COMMANDS = {
    "search": run_search,
    "details": run_details,
    "health": run_health,
    "platforms": run_platforms,
}


async def run_command(args) -> int:
    """
    Execute one client command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 for error)
    """
    settings = get_client_settings(load_client_config())
    if args.base_url:
        settings = replace(settings, base_url=args.base_url)

    try:
        async with SearchClient(settings) as client:
            return await COMMANDS[args.command](client, args)

    except ValidationError as e:
        logger.error(f"Invalid input: {e}")
        print(f"Error: {e.reason} ({e.field})", file=sys.stderr)
        return 1

    except SearchError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"\n❌ Error: {e}", file=sys.stderr)
        return 1


def run_server(args) -> int:
    """Run the reference search service with uvicorn."""
    settings = get_service_settings(load_service_config())
    uvicorn.run(
        "fliplab.service.main:app_factory",
        factory=True,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_config=None,
    )
    return 0


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="fliplab",
        description="Search Facebook Marketplace and Poshmark through the FlipLab search service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Search every marketplace
  fliplab search "nike sneakers"

  # Search Poshmark only, cheapest first
  fliplab search "lululemon" --source poshmark --sort price-low --max-price 80

  # Look up one listing
  fliplab details https://poshmark.com/listing/Nike-Dunk-Low-Panda-200000000000001

  # Run the search service
  fliplab serve --port 3001
        """
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging output")
    parser.add_argument("--base-url", default=None, help="Search service URL (default: $SCRAPER_BASE_URL)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    search = subparsers.add_parser("search", help="Search one or more marketplaces")
    search.add_argument("query", help="Search keywords (e.g., 'vintage levis', 'aeron chair')")
    search.add_argument(
        "--source",
        action="append",
        choices=sorted({*SOURCES, *(s.route for s in SOURCES.values())}),
        default=None,
        help="Marketplace to search; repeat for several (default: all)",
    )
    search.add_argument("--min-price", type=float, default=None, help="Minimum price in dollars")
    search.add_argument("--max-price", type=float, default=None, help="Maximum price in dollars")
    search.add_argument("--location", default=None, help="Location filter (Facebook Marketplace only)")
    search.add_argument("--category", default=None, help="Category or department")
    search.add_argument("--condition", default=None, help="Item condition")
    search.add_argument("--sort", choices=[s.value for s in SortBy], default=None, help="Sort order")
    search.add_argument("--limit", type=int, default=None, help="Maximum results per marketplace (1-100)")

    details = subparsers.add_parser("details", help="Fetch one listing by URL")
    details.add_argument("url", help="Listing URL")

    subparsers.add_parser("health", help="Show search service health")
    subparsers.add_parser("platforms", help="Show per-marketplace status")

    serve = subparsers.add_parser("serve", help="Run the search service")
    serve.add_argument("--host", default=None, help="Bind address (default: $HOST)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: $PORT)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI application.

    Returns:
        Exit code (0 for success, 1 for error, 130 when interrupted)
    """
    load_dotenv()
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    client_config = load_client_config()
    setup_logging(
        "DEBUG" if args.verbose else client_config["logging"]["level"],
        client_config["logging"]["format"],
    )

    try:
        if args.command == "serve":
            return run_server(args)
        return asyncio.run(run_command(args))

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        print("\n\n⚠️  Interrupted by user", file=sys.stderr)
        return 130  # Standard exit code for SIGINT

    except Exception as e:
        logger.exception(f"Unexpected error in main: {str(e)}")
        print(f"❌ Unexpected error: {str(e)}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
