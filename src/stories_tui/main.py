#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from .app import StoriesApp
from .config import Settings, load_config, setup_logging
from .datamodels import Story
from .errors import ConfigError, RemoteError
from .events import SyncEvent, SyncProgress, describe
from .services import Services, build_services

logger = logging.getLogger("stories")

REMOTE_COMMANDS = {"sync", "about"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Offline-first story reader")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    sync = sub.add_parser("sync", help="Sync the local cache with the remote")
    sync.add_argument(
        "--force", action="store_true", help="Refresh even if the remote looks unreachable"
    )
    sub.add_parser("categories", help="List cached categories")
    stories = sub.add_parser("stories", help="List cached stories")
    group = stories.add_mutually_exclusive_group()
    group.add_argument("--category", help="Only stories in this category id")
    group.add_argument("--featured", action="store_true", help="Only featured stories")
    story = sub.add_parser("story", help="Show one cached story")
    story.add_argument("story_id")
    sub.add_parser("about", help="Show the about page from the remote")
    sub.add_parser("stats", help="Show cache statistics")
    sub.add_parser("reset", help="Delete all local data")
    return parser


def _print_progress(console: Console, event: SyncEvent) -> None:
    line = describe(event)
    if line:
        style = "dim" if isinstance(event, SyncProgress) else None
        console.print(line, style=style)


def cmd_sync(services: Services, console: Console, force: bool) -> int:
    def listener(event: SyncEvent) -> None:
        _print_progress(console, event)

    services.bus.subscribe(listener)
    try:
        if force:
            result = asyncio.run(services.sync.manual_refresh())
        else:
            result = asyncio.run(services.sync.auto_sync())
    finally:
        services.bus.unsubscribe(listener)
    return 0 if result.success else 1


def _story_table(stories: List[Story]) -> Table:
    table = Table("idx", "id", "title", "author", "category")
    for s in stories:
        table.add_row(str(s.idx), s.id, s.title, s.author, s.category_id or "-")
    return table


def cmd_categories(services: Services, console: Console) -> int:
    table = Table("id", "name", "stories")
    for category in services.gateway.read_cached_categories():
        count = len(services.gateway.read_stories_by_category(category.id))
        table.add_row(category.id, category.name, str(count))
    uncategorized = services.gateway.read_uncategorized_stories()
    if uncategorized:
        table.add_row("-", "Uncategorized", str(len(uncategorized)))
    console.print(table)
    return 0


def cmd_stories(
    services: Services, console: Console, category: Optional[str], featured: bool
) -> int:
    gateway = services.gateway
    if featured:
        stories = gateway.read_featured_stories()
    elif category:
        stories = gateway.read_stories_by_category(category)
    else:
        stories = gateway.read_cached_stories()
    console.print(_story_table(stories))
    return 0


def cmd_story(services: Services, console: Console, story_id: str) -> int:
    story = services.gateway.read_story_by_id(story_id)
    if story is None:
        console.print(f"Story {story_id} is not in the local cache.", style="bold red")
        return 1
    console.print(Markdown(f"# {story.title}"))
    console.print(f"{story.author} - ~{story.reading_minutes} min read", style="dim")
    console.print(Markdown(story.content))
    next_story = services.gateway.read_next_story(story.id)
    if next_story is not None:
        console.print(f"Next: {next_story.title} ({next_story.id})", style="dim")
    return 0


def cmd_about(services: Services, console: Console) -> int:
    try:
        content = services.gateway.fetch_story_by_idx(services.settings.about_story_idx)
    except RemoteError as e:
        console.print(f"Could not load the about page: {e}", style="bold red")
        return 1
    if content is None:
        console.print("The about page is not available.", style="yellow")
        return 1
    console.print(Markdown(content))
    return 0


def cmd_stats(services: Services, console: Console) -> int:
    stats = services.sync.get_database_stats()
    last_sync = services.sync.get_last_sync_time()
    table = Table("item", "value")
    table.add_row("categories", str(stats.categories_count))
    table.add_row("stories", str(stats.stories_count))
    table.add_row("last sync", last_sync.isoformat() if last_sync else "never")
    console.print(table)
    return 0


def cmd_reset(services: Services, console: Console) -> int:
    if not services.sync.clear_all_data():
        console.print("Failed to clear local data.", style="bold red")
        return 1
    console.print("Local data cleared.")
    return 0


def run_command(
    args: argparse.Namespace, services: Services, console: Console
) -> int:
    if args.command == "sync":
        return cmd_sync(services, console, args.force)
    if args.command == "categories":
        return cmd_categories(services, console)
    if args.command == "stories":
        return cmd_stories(services, console, args.category, args.featured)
    if args.command == "story":
        return cmd_story(services, console, args.story_id)
    if args.command == "about":
        return cmd_about(services, console)
    if args.command == "stats":
        return cmd_stats(services, console)
    if args.command == "reset":
        return cmd_reset(services, console)
    raise ValueError(f"Unknown command: {args.command}")


# --- Entrypoint ---
def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    debug_path = setup_logging(args.debug)
    if debug_path:
        print(f"Debug logging enabled: {debug_path}", file=sys.stderr)

    console = Console()
    settings = Settings.from_config(load_config())
    try:
        services = build_services(
            settings, require_remote=args.command in REMOTE_COMMANDS
        )
    except ConfigError as e:
        console.print(str(e), style="bold red")
        return 2

    try:
        if args.command is None:
            StoriesApp(services, auto_sync=settings.has_remote).run()
            return 0
        return run_command(args, services, console)
    except Exception as e:
        logger.exception("Application crashed: %s", e)
        print(f"Application crashed: {e}", file=sys.stderr)
        return 1
    finally:
        services.close()


if __name__ == "__main__":
    sys.exit(main())
