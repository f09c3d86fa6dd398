"""catalogsync entry point.

Sync one store now:
    python -m catalogsync --store myshop.myshopify.com
    python -m catalogsync --store toff --force --no-resume

Start Temporal worker:
    python -m catalogsync --temporal

Submit a sync to the Temporal worker:
    python -m catalogsync --store toff --submit

Re-sync every configured store on an interval:
    python -m catalogsync --schedule
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from .errors import SyncError


def setup_logging(level: str = "INFO"):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def run_scheduled(config) -> None:
    """Run the interval scheduler until interrupted."""
    from .sync import JobController, SyncServices, run_sync
    from .sync.scheduler import SyncScheduler

    services = SyncServices.create(config)
    await services.graph.ensure_schema()

    async def runner(store_id, **kwargs):
        return await run_sync(store_id, config=config, services=services, **kwargs)

    scheduler = SyncScheduler(config, JobController(runner))
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()
        await services.close()


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Sync storefront catalogs into the product graph",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--store", "-s", help="Store id (TOML file stem in STORES_DIR)")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-process products that already exist in the graph",
    )
    parser.add_argument(
        "--no-resume",
        action="store_true",
        help="Ignore any saved checkpoint and start from the first page",
    )
    parser.add_argument(
        "--temporal",
        action="store_true",
        help="Start Temporal worker",
    )
    parser.add_argument(
        "--submit",
        action="store_true",
        help="Submit the store sync as a Temporal workflow instead of running it here",
    )
    parser.add_argument(
        "--schedule",
        action="store_true",
        help="Re-sync all configured stores every RESYNC_INTERVAL_SEC",
    )
    parser.add_argument(
        "--temporal-host",
        default=None,
        help="Temporal server address (default: TEMPORAL_HOST env or localhost:7233)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: LOG_LEVEL env or INFO)",
    )

    args = parser.parse_args()

    from .config import get_config
    from .providers import provider_registry

    config = get_config()
    setup_logging(args.log_level or config.log_level)
    logger = logging.getLogger(__name__)

    plugins_dir = os.getenv("PROVIDER_PLUGINS_DIR")
    if plugins_dir:
        provider_registry.discover_plugins(plugins_dir)
    logger.info(f"Providers: {', '.join(provider_registry.list_providers())}")

    try:
        if args.temporal:
            from .worker import run_worker

            asyncio.run(run_worker(temporal_host=args.temporal_host))
        elif args.schedule:
            asyncio.run(run_scheduled(config))
        elif args.store:
            if args.submit:
                from .worker import start_sync_workflow

                asyncio.run(start_sync_workflow(args.store, args.force, args.temporal_host))
                return

            from .sync import run_sync

            result = asyncio.run(
                run_sync(args.store, config=config, force=args.force, resume=not args.no_resume)
            )
            logger.info(
                f"Done: {result.count_processed} processed, "
                f"{result.total_products_seen} seen in {result.pages} pages"
            )
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        sys.exit(0)
    except SyncError as e:
        logger.error(f"Sync failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
