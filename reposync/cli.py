"""Command line entry point for reposync."""

import argparse
import logging
import os
import signal
import sys
from typing import List, Optional

from .config import RunConfig, load_configuration, select_categories
from .errors import ConfigError, InterruptSignal
from .git_sync.planner import SyncPlanner
from .platform import get_platform_info, validate_git_availability


def setup_logging(config: RunConfig) -> None:
    """Setup logging with structured records on stderr."""
    class StructuredFormatter(logging.Formatter):
        def format(self, record):
            # Add structured data if available
            if hasattr(record, 'operation'):
                record.msg = f"[{record.operation}] {record.msg}"
            return super().format(record)

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    loggers = [
        'reposync.cli',
        'reposync.config',
        'reposync.git_sync',
        'reposync.error_handler',
    ]

    formatter = StructuredFormatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    for logger_name in loggers:
        logger = logging.getLogger(logger_name)
        logger.setLevel(getattr(logging, config.log_level))

        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.propagate = False


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="reposync",
        description="Fetch, fast-forward and clone the git repositories of the configured sync categories.",
    )
    parser.add_argument("-n", "--dry-run", action="store_true",
                        help="only report what would be done; nothing is fetched, cloned or merged")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="show diff statistics; twice also enables debug logging")
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="omit repositories that are clean and up to date")
    parser.add_argument("--log", action=argparse.BooleanOptionalAction, default=None,
                        help="show the commits that were or would be integrated")
    parser.add_argument("--stash", action=argparse.BooleanOptionalAction, default=None,
                        help="show the number of stash entries")
    parser.add_argument("--gc", action=argparse.BooleanOptionalAction, default=None,
                        help="run git gc after syncing a repository")
    parser.add_argument("--list", action="store_true",
                        help="list configured categories and exit")
    parser.add_argument("categories", nargs="*", metavar="category",
                        help="categories to sync (default: all)")
    return parser.parse_args(argv)


def reraise_signal(signum: int) -> None:
    """Terminate this process with the signal that stopped a child."""
    signal.signal(signum, signal.SIG_DFL)
    os.kill(os.getpid(), signum)
    sys.exit(128 + signum)


def main(argv: Optional[List[str]] = None) -> int:
    """Run one synchronization pass over the selected categories."""
    args = parse_args(argv)
    logger = logging.getLogger('reposync.cli')

    git_available, git_error = validate_git_availability()
    if not git_available:
        print(f"reposync: {git_error}", file=sys.stderr)
        return 2

    try:
        config = load_configuration(
            verbose=True if args.verbose else None,
            quiet=True if args.quiet else None,
            dry_run=True if args.dry_run else None,
            show_log=args.log,
            show_stash=args.stash,
            run_gc=args.gc,
            log_level="DEBUG" if args.verbose > 1 else None,
        )
        setup_logging(config.run)
        logger.debug(f"Platform: {get_platform_info().get_system_info()}")

        if args.list:
            for category in sorted(config.categories.values(), key=lambda c: c.name):
                print(f"{category.name}\t{category.mode.value}")
            return 0

        categories = select_categories(config, args.categories)
    except ConfigError as e:
        print(f"reposync: {e}", file=sys.stderr)
        return 2

    planner = SyncPlanner(config)
    try:
        summary = planner.run(categories)
    except InterruptSignal as e:
        logger.info(f"Run aborted: {e}")
        reraise_signal(e.signum)
    except KeyboardInterrupt:
        reraise_signal(signal.SIGINT)

    planner.reporter.totals(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
