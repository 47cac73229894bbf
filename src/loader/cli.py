#!/usr/bin/env python3
"""
Self-updating entry point for the PromptHub MCP bridge.

Downloads (or reuses) the latest validated bridge server module from the
per-user cache and runs it on stdin/stdout.

Usage:
    prompthub-bridge-loader
    prompthub-bridge-loader --clear-cache
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from common.config import ConfigError, load_config
from common.logging import get_logger, setup_logging
from loader.self_update import SelfUpdateLoader, UpdateError

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="PromptHub MCP bridge (self-updating)")
    parser.add_argument(
        "--clear-cache", action="store_true", help="Delete the cached bridge module and exit"
    )
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the loader. Returns the process exit code."""
    args = parse_args(argv)
    load_dotenv()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"[PromptHub MCP] Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(config)

    if args.clear_cache:
        if SelfUpdateLoader.clear_cache(config.updater.cache_dir):
            print("Cache cleared", file=sys.stderr)
        else:
            print("No cache found", file=sys.stderr)
        return 0

    loader = SelfUpdateLoader(config.updater)
    try:
        asyncio.run(loader.run(config))
    except KeyboardInterrupt:
        logger.info(event="loader_interrupted")
        return 0
    except UpdateError as e:
        logger.error(event="self_update_failed", error=str(e))
        print(f"[PromptHub MCP] Update failed: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception(event="bridge_crashed", error=str(e))
        print(f"[PromptHub MCP] Bridge failed, cache purged: {e}", file=sys.stderr)
        return 1

    return 0


def run() -> None:
    """Console entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
