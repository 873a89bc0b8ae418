#!/usr/bin/env python3
"""
Orphaned Upload Sweep
Finds bucket objects under the upload prefix that no image row references.
These are left behind when an upload succeeds but the metadata write fails.
Runs as a dry run unless --delete is given.
"""
import argparse
import asyncio
import sys
from datetime import timedelta

from imagewall.config import Settings
from imagewall.database import create_engine, create_session_factory, close_db
from imagewall.server import configure_logging
from imagewall.services.config_resolver import ConfigurationError, resolve_configuration
from imagewall.services.reconciliation import sweep_orphaned_objects
from imagewall.services.storage_service import create_storage_client


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Report or delete orphaned uploads.")
    parser.add_argument(
        "--delete",
        action="store_true",
        help="Delete orphaned objects instead of only listing them",
    )
    parser.add_argument(
        "--grace-minutes",
        type=int,
        default=60,
        help="Ignore objects modified within this many minutes (default: 60)",
    )
    return parser.parse_args(argv)


async def run(delete: bool, grace_minutes: int) -> int:
    settings = Settings()
    configure_logging(settings.LOG_LEVEL)

    try:
        config = resolve_configuration(settings)
    except ConfigurationError as e:
        print(f"\n❌ Error: {e}")
        print(f"   {e.hint}")
        return 1

    storage = create_storage_client(config)
    engine = create_engine(config.database_url)
    session_factory = create_session_factory(engine)

    try:
        async with session_factory() as session:
            report = await sweep_orphaned_objects(
                storage,
                session,
                prefix=config.upload_key_prefix,
                grace_period=timedelta(minutes=grace_minutes),
                delete=delete,
            )
    finally:
        await close_db(engine)

    print("=" * 60)
    print(f"Scanned objects:  {report.scanned}")
    print(f"Orphaned objects: {len(report.orphaned)}")
    for key in report.orphaned:
        print(f"  - {key}")
    if delete:
        print(f"Deleted:          {len(report.deleted)}")
        print(f"Failed:           {len(report.failed)}")
    else:
        print("\nDry run. Re-run with --delete to remove these objects.")
    print("=" * 60)

    return 1 if report.failed else 0


def main():
    args = parse_args()
    sys.exit(asyncio.run(run(args.delete, args.grace_minutes)))


if __name__ == "__main__":
    main()
