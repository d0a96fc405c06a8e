"""CLI entry point for the nostrwiki client.

Connects to the configured relays, runs one wiki query, prints the result,
and disconnects.

Examples:
    ```bash
    python -m nostrwiki search bitcoin --limit 50
    python -m nostrwiki get bitcoin
    python -m nostrwiki versions bitcoin --json
    python -m nostrwiki recent --relay wss://nos.lol --relay wss://relay.damus.io
    python -m nostrwiki random
    python -m nostrwiki relays --config config/nostrwiki.yaml
    ```
"""

import argparse
import asyncio
import dataclasses
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from nostrwiki.core.exceptions import ConnectError, NostrWikiError
from nostrwiki.core.logger import Logger, setup_logging
from nostrwiki.core.yaml import load_yaml
from nostrwiki.models.wiki import WikiArticle
from nostrwiki.relay.manager import RelayManager
from nostrwiki.wiki.client import (
    DEFAULT_QUERY_LIMIT,
    RANDOM_POOL_SIZE,
    WikiClient,
    format_pubkey,
    format_timestamp,
)


DEFAULT_CONFIG = Path("config") / "nostrwiki.yaml"

logger = Logger("cli")


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _print_json(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


def _article_line(article: WikiArticle) -> str:
    title = article.display_title or article.title
    return (
        f"{title} [{article.title}]  "
        f"{format_pubkey(article.pubkey)}  {format_timestamp(article.timestamp)}"
    )


def _print_articles(articles: list[WikiArticle], *, as_json: bool) -> None:
    if as_json:
        _print_json([dataclasses.asdict(a) for a in articles])
        return
    if not articles:
        print("No articles found.")
        return
    for article in articles:
        print(_article_line(article))


def _print_article(article: WikiArticle, *, as_json: bool) -> None:
    if as_json:
        _print_json(dataclasses.asdict(article))
        return
    print(_article_line(article))
    if article.summary:
        print(article.summary)
    if article.topic_tags:
        print(f"Tags: {', '.join(article.topic_tags)}")
    print()
    print(article.content)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run_command(
    args: argparse.Namespace,
    manager: RelayManager,
    outcome: dict[str, Any],
) -> int:
    """Execute one subcommand against a started manager.

    Returns:
        Exit code: 0 for success, 1 when nothing was found or no relay
        could be reached.
    """
    if args.command == "relays":
        report = {
            url: "connected" if not isinstance(result, ConnectError) else result.reason.value
            for url, result in outcome.items()
        }
        if args.json:
            _print_json(report)
        else:
            for url, status in report.items():
                print(f"{url}  {status}")
        return 0 if manager.list_connected() else 1

    if not manager.list_connected():
        logger.error("no_relays_connected", attempted=len(outcome))
        return 1

    wiki = WikiClient(manager)

    if args.command == "search":
        _print_articles(await wiki.search_articles(args.query, args.limit), as_json=args.json)
    elif args.command == "recent":
        _print_articles(await wiki.get_recent_changes(args.limit), as_json=args.json)
    elif args.command == "versions":
        _print_articles(await wiki.get_article_versions(args.title), as_json=args.json)
    elif args.command == "get":
        article = await wiki.get_article(args.title)
        if article is None:
            logger.warning("article_not_found", title=args.title)
            return 1
        _print_article(article, as_json=args.json)
    elif args.command == "random":
        article = await wiki.random_article(args.pool)
        if article is None:
            logger.warning("article_not_found", pool=args.pool)
            return 1
        _print_article(article, as_json=args.json)
    return 0


# ---------------------------------------------------------------------------
# Arguments and configuration
# ---------------------------------------------------------------------------


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=Path,
        help=f"Client config path (default: {DEFAULT_CONFIG} when present)",
    )
    common.add_argument(
        "--relay",
        action="append",
        metavar="URL",
        help="Relay to use instead of the configured ones (repeatable)",
    )
    common.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Log level (default: WARNING)",
    )
    common.add_argument("--json", action="store_true", help="Print results as JSON")

    parser = argparse.ArgumentParser(
        prog="nostrwiki",
        description="Query NIP-54 wiki articles across Nostr relays",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", parents=[common], help="Search articles by title")
    search.add_argument("query", nargs="?", default="", help="Title substring (default: all)")
    search.add_argument("--limit", type=int, default=DEFAULT_QUERY_LIMIT)

    get = commands.add_parser("get", parents=[common], help="Show the newest version of an article")
    get.add_argument("title")

    versions = commands.add_parser("versions", parents=[common], help="List every version")
    versions.add_argument("title")

    recent = commands.add_parser("recent", parents=[common], help="List recently edited articles")
    recent.add_argument("--limit", type=int, default=DEFAULT_QUERY_LIMIT)

    random = commands.add_parser("random", parents=[common], help="Show a random article")
    random.add_argument(
        "--pool",
        type=int,
        default=RANDOM_POOL_SIZE,
        help=f"Pick among this many recent articles (default: {RANDOM_POOL_SIZE})",
    )

    commands.add_parser("relays", parents=[common], help="Connect and report relay status")

    return parser.parse_args(argv)


def _load_config(path: Path | None) -> dict[str, Any]:
    """Load the config file; an absent default file means built-in defaults."""
    if path is None:
        if not DEFAULT_CONFIG.exists():
            return {}
        path = DEFAULT_CONFIG
    return load_yaml(path)


async def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point: parse args, connect relays, run the command."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config_dict = _load_config(args.config)
        if args.relay:
            config_dict["relays"] = args.relay
        manager = RelayManager.from_dict(config_dict)
    except (FileNotFoundError, NostrWikiError, ValidationError) as e:
        logger.error("config_invalid", error=str(e))
        return 1

    try:
        outcome = await manager.start()
        return await run_command(args, manager, outcome)
    except NostrWikiError as e:
        logger.error(f"{args.command}_failed", error=str(e))
        return 1
    except Exception as e:  # Intentionally broad: CLI error boundary
        logger.exception(f"{args.command}_failed", error=str(e))
        return 1
    finally:
        await manager.shutdown()


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("interrupted")
        sys.exit(130)


if __name__ == "__main__":
    cli()
