# app.py
# Description: Headless command-line entry point: sync posts into the local cache and print them.
#
# Imports
import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from .config import (
    ConfigError, SyncSettings, get_cli_log_file_path, get_cli_setting, get_posts_db_path, load_settings
)
from .DB.Posts_DB import StoreError
from .Logging_Config import configure_application_logging
from .Posts.Posts_Library import create_posts_library
from .Sync.Post_Sync_Engine import SyncResult
#
#######################################################################################################################
#
# Functions:

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="postfeed",
        description="Sync posts from the remote API into the local cache and list them.",
    )
    parser.add_argument("--pages", type=int, default=1,
                        help="Number of further pages to load (default: 1).")
    parser.add_argument("--refresh", action="store_true",
                        help="Clear the cache and reload from page 1 before loading more pages.")
    parser.add_argument("--config", default=None,
                        help="Path to a config.toml (default: ~/.config/postfeed/config.toml).")
    parser.add_argument("--db", default=None,
                        help="Path to the posts cache database; overrides [database] posts_db_path.")
    parser.add_argument("--list", action="store_true",
                        help="Only print the cached posts; do not contact the API.")
    return parser


def _report(result: SyncResult) -> str:
    if result.status == "failed" and result.error is not None:
        return f"{result.operation}: page {result.page} failed ({result.error.kind}): {result.error.message}"
    if result.status == "skipped":
        return f"{result.operation}: nothing to load"
    line = f"{result.operation}: page {result.page} stored {result.accepted}/{result.received} posts"
    if result.rejections:
        line += f" ({len(result.rejections)} validation problems)"
    return line


async def run(args: argparse.Namespace, settings: SyncSettings) -> int:
    exit_code = 0
    async with create_posts_library(settings) as library:
        if not args.list:
            results: List[SyncResult] = []
            if args.refresh:
                results.append(await library.refresh())
            if results and not results[-1].ok:
                pages_to_load = 0
            else:
                # A refresh already fetched page 1
                pages_to_load = args.pages - 1 if args.refresh else args.pages
            results.extend(await library.load_pages(pages_to_load))
            for result in results:
                print(_report(result), file=sys.stderr)
                for rejection in result.rejections:
                    print(f"  rejected: {rejection}", file=sys.stderr)
            if any(not result.ok for result in results):
                exit_code = 1

        for post in library.get_cached_posts():
            print(f"{post.id:>5}  {post.title}")
    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.pages < 0:
        print("--pages must be zero or more", file=sys.stderr)
        return 2

    config = load_settings(force_reload=True, config_path=args.config)
    db_path = args.db or str(get_posts_db_path())
    if db_path == ":memory:":
        log_file_path = get_cli_log_file_path()
    else:
        log_file_path = Path(db_path).expanduser().resolve().parent / get_cli_setting("logging", "log_filename", "postfeed.log")
    configure_application_logging(config, log_file_path=log_file_path)
    try:
        settings = SyncSettings.from_config(config)
    except ConfigError as e:
        print(str(e), file=sys.stderr)
        return 2
    settings = settings.model_copy(update={"posts_db_path": db_path})
    logger.info(f"postfeed starting (db={settings.posts_db_path}, base_url={settings.base_url})")

    try:
        return asyncio.run(run(args, settings))
    except StoreError as e:
        logger.error(f"Posts cache unavailable: {e}")
        print(f"Posts cache unavailable: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())

#
# End of app.py
#######################################################################################################################
