"""
TickerFeed - Main Entry Point

Fetches a feed through the configured CORS relays and prints it as ticker
lines. Exit code 0 on success, 1 when every relay failed.
"""
import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from core.logging.logger import setup_logging, get_logger
from core.logging.tags import TAG_CLI
from core.settings import AppSettings, SettingsManager
from core.utils.decorators import log_errors
from feeds import FeedCoordinator, Post
from versioning import APP_NAME, APP_VERSION

logger = get_logger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tickerfeed",
        description="Fetch an RSS/Atom feed through CORS relays and print ticker lines.",
    )
    parser.add_argument("url", help="Feed URL (RSS 2.0, RSS 1.0/RDF or Atom)")
    parser.add_argument("-n", "--max-posts", type=int, default=None,
                        help="Maximum number of posts (default: all)")
    parser.add_argument("-c", "--config", type=Path, default=None,
                        help="JSON settings file (dotted keys)")
    parser.add_argument("--cache-dir", type=Path, default=None,
                        help="Directory for cached feeds")
    parser.add_argument("--no-cache", action="store_true",
                        help="Always go to the network and never write the cache")
    parser.add_argument("-s", "--separator", default="|",
                        help="Separator between domain, date and title (default: '|')")
    parser.add_argument("-d", "--debug", action="store_true", help="Debug logging to console")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Also show HTTP client and asyncio debug logs")
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    return parser


def load_settings(args: argparse.Namespace) -> AppSettings:
    """Merge the settings file, environment and command-line flags."""
    manager = SettingsManager(path=args.config)
    if args.cache_dir is not None:
        manager.set("cache.directory", str(args.cache_dir))
    if args.no_cache:
        manager.set("cache.enabled", False)
    if args.max_posts is not None:
        manager.set("fetch.max_posts", args.max_posts)
    return AppSettings.from_settings(manager)


def format_ticker(posts: Sequence[Post], separator: str = "|") -> List[str]:
    """One line per post: domain, date and title joined by *separator*, then the link."""
    sep = f" {separator} "
    return [f"{sep.join((p.domain, p.date, p.title))}  <{p.link}>" for p in posts]


async def run(url: str, settings: AppSettings, separator: str = "|", client=None) -> int:
    async with FeedCoordinator.from_settings(settings, client=client) as coordinator:
        outcome = await coordinator.query(url, settings.fetch.max_posts)

    if not outcome.ok:
        print(outcome.message, file=sys.stderr)
        return 1

    logger.info(f"{TAG_CLI} {len(outcome.posts)} posts via {outcome.source_relay}")
    for line in format_ticker(outcome.posts, separator):
        print(line)
    return 0


@log_errors(logger, "TickerFeed crashed")
def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the command-line front end."""
    args = build_arg_parser().parse_args(argv)
    setup_logging(debug=args.debug, verbose=args.verbose)

    logger.info(f"{TAG_CLI} {APP_NAME} {APP_VERSION} starting for {args.url}")
    exit_code = asyncio.run(run(args.url, load_settings(args), args.separator))
    logger.info(f"{TAG_CLI} {APP_NAME} exiting (code={exit_code})")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
