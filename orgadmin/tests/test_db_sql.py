import os
import tempfile
import time
import unittest

from orgadmin.db import HierarchyNode, SqlHierarchyStore, TeamNodeRow


class SqlHierarchyStoreTests(unittest.IsolatedAsyncioTestCase):
    """
    Uses a temporary SQLite file via SQLAlchemy URL to exercise the SQL store logic.
    """

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        path = os.path.join(self.tmpdir.name, "team.db")
        self.store = SqlHierarchyStore(f"sqlite+pysqlite:///{path}")

    def tearDown(self):
        self.store.engine.dispose()
        self.tmpdir.cleanup()

    async def test_create_and_find_by_id(self):
        node = await self.store.create(
            name="Asha", role="President", group="Central", media_refs=["team_profiles/a.png"]
        )
        fetched = await self.store.find_by_id(node.id)
        self.assertIsNotNone(fetched)
        self.assertEqual(fetched.name, "Asha")
        self.assertEqual(fetched.group, "Central")
        self.assertIsNone(fetched.parent_id)
        self.assertEqual(fetched.media_refs, ["team_profiles/a.png"])

    async def test_find_by_id_missing_returns_none(self):
        self.assertIsNone(await self.store.find_by_id("does-not-exist"))

    async def test_children_ordered_by_created_at(self):
        root = await self.store.create(name="root")
        now = time.time()
        # Insert out of order on purpose.
        for name, offset in (("third", 3), ("first", 1), ("second", 2)):
            await self.store.upsert(
                HierarchyNode(
                    id=f"child-{name}",
                    name=name,
                    parent_id=root.id,
                    created_at=now + offset,
                )
            )
        children = await self.store.find_children(root.id)
        self.assertEqual([c.name for c in children], ["first", "second", "third"])

    async def test_children_with_equal_created_at_order_by_id(self):
        root = await self.store.create(name="root")
        tied = time.time()
        for node_id in ("child-c", "child-a", "child-b"):
            await self.store.upsert(
                HierarchyNode(id=node_id, parent_id=root.id, created_at=tied)
            )
        first = [c.id for c in await self.store.find_children(root.id)]
        second = [c.id for c in await self.store.find_children(root.id)]
        self.assertEqual(first, ["child-a", "child-b", "child-c"])
        self.assertEqual(first, second)

    async def test_find_children_of_missing_parent_is_empty(self):
        await self.store.upsert(HierarchyNode(id="orphan", parent_id="gone"))
        self.assertEqual(await self.store.find_children("nobody"), [])

    async def test_upsert_normalizes_legacy_media(self):
        node = await self.store.upsert(
            HierarchyNode(id="legacy", media_refs="uploads/team/old.png")
        )
        self.assertEqual(node.media_refs, ["uploads/team/old.png"])

        node = await self.store.upsert(HierarchyNode(id="blob", media_refs=b"\xff\x00"))
        self.assertEqual(node.media_refs, [])

    async def test_upsert_keeps_created_at(self):
        node = await self.store.create(name="before")
        node.name = "after"
        node.created_at = node.created_at + 1000
        updated = await self.store.upsert(node)
        self.assertEqual(updated.name, "after")
        self.assertEqual(updated.created_at, (await self.store.find_by_id(node.id)).created_at)
        self.assertLess(updated.created_at, node.created_at)

    async def test_update_fields(self):
        parent = await self.store.create(name="parent")
        node = await self.store.create(name="child", media_refs=["a.jpg"])
        updated = await self.store.update_fields(
            node.id,
            {"role": "Secretary", "group": "Youth", "parent_id": parent.id, "media_refs": ["b.jpg"]},
        )
        self.assertEqual(updated.role, "Secretary")
        self.assertEqual(updated.group, "Youth")
        self.assertEqual(updated.parent_id, parent.id)
        self.assertEqual(updated.media_refs, ["b.jpg"])
        self.assertEqual(updated.name, "child")

        detached = await self.store.update_fields(node.id, {"parent_id": ""})
        self.assertIsNone(detached.parent_id)

    async def test_update_fields_missing_node(self):
        self.assertIsNone(await self.store.update_fields("missing", {"name": "x"}))

    async def test_update_fields_rejects_unknown_fields(self):
        node = await self.store.create(name="x")
        with self.assertRaises(ValueError):
            await self.store.update_fields(node.id, {"id": "other"})

    async def test_reads_raw_legacy_rows(self):
        with self.store.Session() as session:
            session.add(
                TeamNodeRow(
                    id="raw",
                    name="Legacy",
                    media_refs="uploads/team/raw.png",
                    created_at=time.time(),
                    updated_at=time.time(),
                )
            )
            session.commit()
        node = await self.store.find_by_id("raw")
        self.assertEqual(node.media_refs, "uploads/team/raw.png")


if __name__ == "__main__":
    unittest.main()
