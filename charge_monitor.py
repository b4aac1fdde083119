import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from config import DEFAULT_ENV_FILE, Config, ConfigError, load_config, watch_config
from scheduler import PollingScheduler
from sinks.http_api import create_app, serve
from sources.charge_status import DEFAULT_BASE_URL, IssksChargeSource
from store.outlets import OutletStore, ParseError

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )


def get_config(env_file: str) -> Config:
    """Load configuration with hard fail on misconfiguration"""
    try:
        return load_config(env_file)
    except ConfigError as e:
        logger.error(f"Config: {e} (check {env_file} or the environment)")
        sys.exit(1)


def restore_snapshot(store: OutletStore, snapshot_file: Optional[str]) -> None:
    """Warm start from a previous snapshot; a bad file is not fatal."""
    if not snapshot_file or not os.path.exists(snapshot_file):
        return
    try:
        store.restore(Path(snapshot_file).read_bytes())
    except (OSError, ParseError) as e:
        logger.warning(f"Snapshot: Could not restore {snapshot_file}: {e}")
        return
    logger.info(f"Snapshot: Restored {len(store)} outlets from {snapshot_file}")


def write_snapshot(store: OutletStore, snapshot_file: str) -> None:
    """Write the snapshot through a temporary file so readers never see half of it."""
    tmp = Path(f"{snapshot_file}.tmp")
    tmp.write_bytes(store.snapshot())
    os.replace(tmp, snapshot_file)


async def main(env_file: str, watch: bool = False) -> None:
    config = get_config(env_file)

    # One store per process, shared by the poller and the HTTP API
    store = OutletStore()
    restore_snapshot(store, config.snapshot_file)

    async def persist(error_count: int) -> None:
        try:
            await asyncio.to_thread(write_snapshot, store, config.snapshot_file)
        except OSError as e:
            logger.warning(f"Snapshot: Failed to write {config.snapshot_file}: {e}")

    async with IssksChargeSource(base_url=config.api_url or DEFAULT_BASE_URL) as source:
        scheduler = PollingScheduler(
            source=source,
            store=store,
            outlets=config.outlets,
            interval_ms=config.polling_interval_ms,
            on_cycle=persist if config.snapshot_file else None
        )
        app = create_app(store)

        async with asyncio.TaskGroup() as tg:
            tg.create_task(scheduler.run())
            tg.create_task(serve(app, config.http_address))
            if watch:
                tg.create_task(watch_config(env_file, scheduler.replace_outlets))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Charge Monitor")
    parser.add_argument(
        "--env-file",
        type=str,
        default=DEFAULT_ENV_FILE,
        help=f"Configuration file to load (default: {DEFAULT_ENV_FILE})"
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Reload the outlet list when the configuration file changes"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    args = parser.parse_args()
    setup_logging(args.verbose)

    try:
        asyncio.run(main(args.env_file, watch=args.watch))
    except KeyboardInterrupt:
        logger.info("Charge monitor stopped by user.")
