from datetime import datetime, timezone
import unittest

from pathprep.storage.document_store import DuplicateKeyError, InMemoryDocumentStore


class InMemoryDocumentStoreTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.store = InMemoryDocumentStore()

    async def test_insert_and_find(self) -> None:
        await self.store.insert("detailed_roadmaps", {"id": "r1", "compositeKey": "k1", "phases": []})

        by_key = await self.store.find_by_key("detailed_roadmaps", "k1")
        by_id = await self.store.find_by_id("detailed_roadmaps", "r1")

        self.assertEqual(by_key["id"], "r1")
        self.assertEqual(by_id["compositeKey"], "k1")
        self.assertIsNone(await self.store.find_by_key("detailed_roadmaps", "missing"))
        self.assertIsNone(await self.store.find_by_key("interview_questions", "k1"))

    async def test_duplicate_key_is_rejected(self) -> None:
        await self.store.insert("detailed_roadmaps", {"id": "r1", "compositeKey": "k1"})

        with self.assertRaises(DuplicateKeyError) as ctx:
            await self.store.insert("detailed_roadmaps", {"id": "r2", "compositeKey": "k1"})
        self.assertEqual(ctx.exception.key, "k1")

    async def test_returned_documents_are_copies(self) -> None:
        document = {"id": "r1", "compositeKey": "k1", "phases": [{"phaseName": "Intro"}]}
        await self.store.insert("detailed_roadmaps", document)
        document["phases"].append({"phaseName": "leaked"})

        fetched = await self.store.find_by_id("detailed_roadmaps", "r1")
        fetched["phases"].clear()

        again = await self.store.find_by_id("detailed_roadmaps", "r1")
        self.assertEqual(again["phases"], [{"phaseName": "Intro"}])

    async def test_replace_and_delete(self) -> None:
        await self.store.insert("skill_resources", {"id": "s1", "compositeKey": "k1", "projects": []})

        replaced = await self.store.replace("skill_resources", "s1", {"compositeKey": "k1", "projects": [1]})
        self.assertEqual(replaced["id"], "s1")
        self.assertEqual((await self.store.find_by_id("skill_resources", "s1"))["projects"], [1])

        self.assertTrue(await self.store.delete("skill_resources", "s1"))
        self.assertFalse(await self.store.delete("skill_resources", "s1"))
        with self.assertRaises(KeyError):
            await self.store.replace("skill_resources", "s1", {"compositeKey": "k1"})

    async def test_find_by_key_prefers_most_recent(self) -> None:
        # 외부 저장소에는 같은 키의 문서가 여러 개 있을 수 있다.
        older = datetime(2025, 1, 1, tzinfo=timezone.utc)
        newer = datetime(2025, 6, 1, tzinfo=timezone.utc)
        documents = self.store._collection("detailed_roadmaps")
        documents["old"] = {"id": "old", "compositeKey": "k1", "createdAt": older}
        documents["new"] = {"id": "new", "compositeKey": "k1", "createdAt": newer}

        with self.assertLogs("pathprep.storage.document_store", level="WARNING"):
            found = await self.store.find_by_key("detailed_roadmaps", "k1")
        self.assertEqual(found["id"], "new")

    async def test_list_recent_is_newest_first_and_limited(self) -> None:
        for day, entity_id in ((1, "a"), (20, "c"), (10, "b")):
            created = datetime(2025, 3, day, tzinfo=timezone.utc)
            await self.store.insert("detailed_roadmaps", {"id": entity_id, "compositeKey": entity_id, "createdAt": created})
        await self.store.insert("detailed_roadmaps", {"id": "undated", "compositeKey": "undated"})

        recent = await self.store.list_recent("detailed_roadmaps", 2)
        self.assertEqual([doc["id"] for doc in recent], ["c", "b"])

        everything = await self.store.list_recent("detailed_roadmaps", 10)
        self.assertEqual([doc["id"] for doc in everything], ["c", "b", "a", "undated"])
        self.assertEqual(await self.store.list_recent("interview_questions", 5), [])


if __name__ == "__main__":
    unittest.main()
