import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from orgadmin.app import create_app
from orgadmin.config import Settings, get_settings
from orgadmin.db import HierarchyNode, InMemoryHierarchyStore
from orgadmin.dependencies import get_hierarchy_store, get_storage_client
from orgadmin.errors import TreeBuildTimeout
from orgadmin.storage import InMemoryStorageClient
from orgadmin.tree import TreeBuilder

PNG = ("photo.png", b"\x89PNG\r\n\x1a\n", "image/png")


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        self.app = create_app()
        self.client = TestClient(self.app)
        store = get_hierarchy_store()
        if isinstance(store, InMemoryHierarchyStore):
            store.reset()
        storage = get_storage_client()
        if isinstance(storage, InMemoryStorageClient):
            storage.reset()

    def tearDown(self):
        self.app.dependency_overrides.clear()

    def _create(self, **form):
        files = {"image": form.pop("image")} if "image" in form else None
        response = self.client.post("/api/team", data=form, files=files)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["id"]

    def test_create_and_build_tree(self):
        root = self._create(name="R", role="President", group="Central")
        c1 = self._create(name="C1", parentId=root)
        c2 = self._create(name="C2", parentId=root, image=PNG)

        response = self.client.get(f"/api/team/tree/{root}")
        self.assertEqual(response.status_code, 200)
        tree = response.json()["data"]
        self.assertEqual(tree["id"], root)
        self.assertEqual(tree["group"], "Central")
        self.assertEqual(tree["primaryMedia"], "/defaults/avatar.png")
        self.assertEqual([c["id"] for c in tree["children"]], [c1, c2])
        self.assertEqual(tree["children"][0]["children"], [])
        self.assertEqual(tree["children"][1]["parentId"], root)
        self.assertEqual(len(tree["children"][1]["displayMedia"]), 1)

    def test_subtree_not_found(self):
        response = self.client.get("/api/team/tree/missing")
        self.assertEqual(response.status_code, 404)

    def test_configured_root_tree(self):
        root = self._create(name="Samiti")
        self.app.dependency_overrides[get_settings] = lambda: Settings(team_root_id=root)
        response = self.client.get("/api/team/tree")
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]["id"], root)

    def test_configured_root_missing(self):
        self.app.dependency_overrides[get_settings] = lambda: Settings(team_root_id=None)
        self.assertEqual(self.client.get("/api/team/tree").status_code, 404)

        self.app.dependency_overrides[get_settings] = lambda: Settings(team_root_id="gone")
        self.assertEqual(self.client.get("/api/team/tree").status_code, 404)

    def test_update_replaces_media(self):
        node_id = self._create(name="C1", image=("a.jpg", b"old", "image/jpeg"))
        storage = get_storage_client()
        old_keys = list(storage.stored_objects)
        self.assertEqual(len(old_keys), 1)

        response = self.client.put(
            f"/api/team/{node_id}", data={"role": "Treasurer"}, files={"image": PNG}
        )
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["data"]["role"], "Treasurer")
        self.assertEqual(len(payload["data"]["displayMedia"]), 1)
        self.assertNotIn(old_keys[0], payload["data"]["primaryMedia"])
        self.assertNotIn(old_keys[0], storage.stored_objects)

    def test_update_detaches_with_null_parent(self):
        root = self._create(name="R")
        child = self._create(name="C", parentId=root)
        response = self.client.put(f"/api/team/{child}", data={"parentId": "null"})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertIsNone(response.json()["data"]["parentId"])
        tree = self.client.get(f"/api/team/tree/{root}").json()["data"]
        self.assertEqual(tree["children"], [])

    def test_update_missing_node(self):
        response = self.client.put("/api/team/missing", data={"name": "x"})
        self.assertEqual(response.status_code, 404)

    def test_update_rejects_cycle(self):
        root = self._create(name="R")
        child = self._create(name="C", parentId=root)
        response = self.client.put(f"/api/team/{root}", data={"parentId": child})
        self.assertEqual(response.status_code, 400)

    def test_unsupported_media_type(self):
        response = self.client.post(
            "/api/team",
            data={"name": "x"},
            files={"image": ("doc.pdf", b"%PDF-1.4", "application/pdf")},
        )
        self.assertEqual(response.status_code, 415)

    def test_deep_chain_subtree(self):
        store = get_hierarchy_store()
        depth = 300
        store.seed(HierarchyNode(id="level-0", created_at=0.0))
        for i in range(1, depth):
            store.seed(
                HierarchyNode(id=f"level-{i}", parent_id=f"level-{i - 1}", created_at=float(i))
            )

        response = self.client.get("/api/team/tree/level-0")
        self.assertEqual(response.status_code, 200, response.text[:200])
        node = response.json()["data"]
        seen = 0
        while node is not None:
            self.assertEqual(node["id"], f"level-{seen}")
            seen += 1
            node = node["children"][0] if node["children"] else None
        self.assertEqual(seen, depth)

    def test_update_survives_subtree_timeout(self):
        root = self._create(name="R")
        self._create(name="C", parentId=root)

        with patch.object(
            TreeBuilder, "build_tree", side_effect=TreeBuildTimeout(root, 0.1)
        ):
            response = self.client.put(f"/api/team/{root}", data={"name": "Renamed"})

        self.assertEqual(response.status_code, 200, response.text)
        data = response.json()["data"]
        self.assertEqual(data["name"], "Renamed")
        self.assertEqual(data["children"], [])

        tree = self.client.get(f"/api/team/tree/{root}").json()["data"]
        self.assertEqual(tree["name"], "Renamed")
        self.assertEqual(len(tree["children"]), 1)

    def test_subtree_timeout_is_504(self):
        root = self._create(name="R")
        with patch.object(
            TreeBuilder, "build_tree", side_effect=TreeBuildTimeout(root, 0.1)
        ):
            response = self.client.get(f"/api/team/tree/{root}")
        self.assertEqual(response.status_code, 504)


if __name__ == "__main__":
    unittest.main()
