"""
Orphaned object reconciliation.

An upload writes the object first and the metadata row second. When the
second step fails the object stays in the bucket with no row pointing at
it. This sweep finds such objects and optionally deletes them.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from imagewall.models import Image
from imagewall.services.storage_service import StorageClient, StoredObject

logger = logging.getLogger(__name__)

# Objects younger than this may still be waiting for their row to commit
DEFAULT_GRACE_PERIOD = timedelta(hours=1)

KEY_BATCH_SIZE = 500


@dataclass
class SweepReport:
    scanned: int = 0
    orphaned: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def find_orphaned_objects(
    storage: StorageClient,
    db: AsyncSession,
    prefix: str = "user-upload/",
    grace_period: timedelta = DEFAULT_GRACE_PERIOD,
    now: Optional[datetime] = None,
) -> List[StoredObject]:
    """
    List stored objects under prefix that no Image row references.

    Objects modified within grace_period of now are skipped.
    """
    objects = await run_in_threadpool(storage.list_objects, prefix)
    return await _unreferenced(db, objects, grace_period, now)


async def _unreferenced(
    db: AsyncSession,
    objects: List[StoredObject],
    grace_period: timedelta,
    now: Optional[datetime],
) -> List[StoredObject]:
    cutoff = (now or datetime.now(timezone.utc)) - grace_period
    candidates = [obj for obj in objects if _as_utc(obj.last_modified) <= cutoff]
    if not candidates:
        return []

    keys = [obj.key for obj in candidates]
    referenced = set()
    for start in range(0, len(keys), KEY_BATCH_SIZE):
        batch = keys[start:start + KEY_BATCH_SIZE]
        result = await db.execute(select(Image.storage_key).where(Image.storage_key.in_(batch)))
        referenced.update(result.scalars().all())

    return [obj for obj in candidates if obj.key not in referenced]


async def sweep_orphaned_objects(
    storage: StorageClient,
    db: AsyncSession,
    prefix: str = "user-upload/",
    grace_period: timedelta = DEFAULT_GRACE_PERIOD,
    delete: bool = False,
    now: Optional[datetime] = None,
) -> SweepReport:
    """
    Report orphaned objects and delete them when delete is True.
    A failed deletion is recorded and the sweep continues.
    """
    report = SweepReport()
    objects = await run_in_threadpool(storage.list_objects, prefix)
    orphans = await _unreferenced(db, objects, grace_period, now)
    report.scanned = len(objects)
    report.orphaned = [obj.key for obj in orphans]

    for key in report.orphaned:
        if not delete:
            logger.info(f"Orphaned object (dry run): {key}")
            continue
        try:
            await run_in_threadpool(storage.delete_object, key)
            report.deleted.append(key)
            logger.info(f"Deleted orphaned object: {key}")
        except Exception as e:
            report.failed.append(key)
            logger.error(f"Failed to delete orphaned object {key}: {str(e)}")

    logger.info(
        f"Orphan sweep finished: scanned={report.scanned}, orphaned={len(report.orphaned)}, "
        f"deleted={len(report.deleted)}, failed={len(report.failed)}"
    )
    return report
