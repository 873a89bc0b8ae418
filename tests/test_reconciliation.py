import os
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from imagewall.database import close_db, create_engine, create_session_factory, create_tables
from imagewall.models import Image
from imagewall.services.reconciliation import find_orphaned_objects, sweep_orphaned_objects
from imagewall.services.storage_service import InMemoryStorageClient

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FlakyDeleteStorageClient(InMemoryStorageClient):
    def delete_object(self, key):
        raise RuntimeError("delete refused")


class OrphanSweepTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        tmpdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tmpdir, True)
        self.engine = create_engine(f"sqlite+aiosqlite:///{os.path.join(tmpdir, 'sweep.db')}")
        await create_tables(self.engine)
        self.session_factory = create_session_factory(self.engine)

        async with self.session_factory() as session:
            session.add(Image(title="kept", storage_key="user-upload/1-aaa-kept.png"))
            await session.commit()

        self.storage = InMemoryStorageClient()
        self.seed(self.storage)

    async def asyncTearDown(self):
        await close_db(self.engine)

    def seed(self, storage):
        old = NOW - timedelta(days=1)
        storage.put_object("user-upload/1-aaa-kept.png", b"kept")
        storage.put_object("user-upload/2-bbb-orphan.png", b"orphan")
        storage.put_object("user-upload/3-ccc-recent.png", b"recent")
        storage.put_object("other/4-ddd-unrelated.png", b"other")
        storage.modified["user-upload/1-aaa-kept.png"] = old
        storage.modified["user-upload/2-bbb-orphan.png"] = old
        storage.modified["user-upload/3-ccc-recent.png"] = NOW - timedelta(minutes=5)
        storage.modified["other/4-ddd-unrelated.png"] = old

    async def test_finds_only_old_unreferenced_objects(self):
        async with self.session_factory() as session:
            orphans = await find_orphaned_objects(self.storage, session, now=NOW)

        self.assertEqual([obj.key for obj in orphans], ["user-upload/2-bbb-orphan.png"])

    async def test_dry_run_deletes_nothing(self):
        async with self.session_factory() as session:
            report = await sweep_orphaned_objects(self.storage, session, now=NOW)

        self.assertEqual(report.scanned, 3)
        self.assertEqual(report.orphaned, ["user-upload/2-bbb-orphan.png"])
        self.assertEqual(report.deleted, [])
        self.assertIn("user-upload/2-bbb-orphan.png", self.storage.objects)

    async def test_delete_removes_orphans(self):
        async with self.session_factory() as session:
            report = await sweep_orphaned_objects(self.storage, session, delete=True, now=NOW)

        self.assertEqual(report.deleted, ["user-upload/2-bbb-orphan.png"])
        self.assertNotIn("user-upload/2-bbb-orphan.png", self.storage.objects)
        self.assertIn("user-upload/1-aaa-kept.png", self.storage.objects)
        self.assertIn("user-upload/3-ccc-recent.png", self.storage.objects)

    async def test_failed_deletes_are_reported(self):
        storage = FlakyDeleteStorageClient()
        self.seed(storage)

        async with self.session_factory() as session:
            report = await sweep_orphaned_objects(storage, session, delete=True, now=NOW)

        self.assertEqual(report.failed, ["user-upload/2-bbb-orphan.png"])
        self.assertEqual(report.deleted, [])


if __name__ == "__main__":
    unittest.main()
