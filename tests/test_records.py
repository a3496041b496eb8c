import asyncio
import unittest

from fakes import memory_store

from titanbot.core.errors import DatabaseError, ValidationError
from titanbot.services.records import ScopedRecordAccessor, Unchanged, merge_defaults, record_key


class FailingStore:
    def get(self, key, default=None):
        raise DatabaseError("store offline", context={"key": key, "operation": "get"})

    def set(self, key, value):
        raise DatabaseError("store offline", context={"key": key, "operation": "set"})

    def delete(self, key):
        raise DatabaseError("store offline", context={"key": key, "operation": "delete"})


class RecordKeyTests(unittest.TestCase):
    def test_entity_and_guild_scoped_keys(self) -> None:
        self.assertEqual(record_key("economy", 1, 2), "economy:1:2")
        self.assertEqual(record_key("guild_config", 1), "guild_config:1")
        self.assertEqual(record_key("birthdays", 1, 99), "birthdays:1")

    def test_unknown_domain_rejected(self) -> None:
        with self.assertRaises(KeyError):
            record_key("nope", 1, 2)

    def test_merge_defaults_fills_nested_without_coercing(self) -> None:
        defaults = {"wallet": 0, "inventory": {}, "leveling": {"enabled": True, "announceLevelUp": True}}
        stored = {"wallet": "12", "leveling": {"enabled": False}}
        merged = merge_defaults(stored, defaults)
        self.assertEqual(merged["wallet"], "12")
        self.assertEqual(merged["inventory"], {})
        self.assertEqual(merged["leveling"], {"enabled": False, "announceLevelUp": True})


class ScopedRecordAccessorTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.store = memory_store()
        self.records = ScopedRecordAccessor(self.store)

    async def test_get_returns_defaults_without_writing(self) -> None:
        record = await self.records.get("economy", 1, 2)
        self.assertEqual(record["wallet"], 0)
        self.assertEqual(record["bank"], 0)
        self.assertIsNone(self.store.get("economy:1:2"))
        self.assertIsNone(await self.records.find("economy", 1, 2))

    async def test_defaults_are_fresh_copies(self) -> None:
        first = await self.records.get("economy", 1, 2)
        first["inventory"]["laptop"] = 1
        second = await self.records.get("economy", 1, 2)
        self.assertEqual(second["inventory"], {})

    async def test_wrong_shape_falls_back_to_defaults(self) -> None:
        self.store.set("economy:1:2", [1, 2, 3])
        record = await self.records.get("economy", 1, 2)
        self.assertEqual(record["wallet"], 0)
        self.assertIsNone(await self.records.find("economy", 1, 2))

    async def test_mutate_persists_and_returns_result(self) -> None:
        def add(record):
            record["wallet"] += 50
            return record["wallet"]

        self.assertEqual(await self.records.mutate("economy", 1, 2, add), 50)
        self.assertEqual(await self.records.mutate("economy", 1, 2, add), 100)
        self.assertEqual(self.store.get("economy:1:2")["wallet"], 100)

    async def test_mutate_abort_writes_nothing(self) -> None:
        def reject(record):
            record["wallet"] = 999
            raise ValidationError("nope")

        with self.assertRaises(ValidationError):
            await self.records.mutate("economy", 1, 2, reject)
        self.assertIsNone(self.store.get("economy:1:2"))

    async def test_concurrent_mutations_do_not_lose_updates(self) -> None:
        async def slow_increment(record):
            current = record["wallet"]
            await asyncio.sleep(0)
            record["wallet"] = current + 1

        await asyncio.gather(*(self.records.mutate("economy", 1, 2, slow_increment) for _ in range(20)))
        record = await self.records.get("economy", 1, 2)
        self.assertEqual(record["wallet"], 20)

    async def test_set_waits_for_running_mutation(self) -> None:
        started = asyncio.Event()

        async def slow_increment(record):
            started.set()
            await asyncio.sleep(0.01)
            record["wallet"] += 1

        task = asyncio.create_task(self.records.mutate("economy", 1, 2, slow_increment))
        await started.wait()
        await self.records.set("economy", 1, 2, {"wallet": 500})
        await task
        self.assertEqual((await self.records.get("economy", 1, 2))["wallet"], 500)

    async def test_unchanged_result_writes_nothing(self) -> None:
        def peek(record):
            record["wallet"] = 5
            return Unchanged(record["wallet"])

        self.assertEqual(await self.records.mutate("economy", 1, 2, peek), 5)
        self.assertIsNone(self.store.get("economy:1:2"))
        self.assertIsNone(
            await self.records.mutate_many([("economy", 1, 2), ("economy", 1, 3)], lambda pair: Unchanged())
        )
        self.assertIsNone(self.store.get("economy:1:3"))

    async def test_mutate_many_updates_both_records(self) -> None:
        def transfer(pair):
            sender, receiver = pair
            sender["wallet"] -= 10
            receiver["wallet"] += 10

        await self.records.set("economy", 1, 2, {"wallet": 30})
        await self.records.mutate_many([("economy", 1, 2), ("economy", 1, 3)], transfer)
        self.assertEqual((await self.records.get("economy", 1, 2))["wallet"], 20)
        self.assertEqual((await self.records.get("economy", 1, 3))["wallet"], 10)

    async def test_mutate_many_rejects_duplicate_targets(self) -> None:
        with self.assertRaises(ValueError):
            await self.records.mutate_many([("economy", 1, 2), ("economy", 1, 2)], lambda pair: None)

    async def test_delete(self) -> None:
        await self.records.set("afk", 1, 2, {"reason": "lunch"})
        self.assertTrue(await self.records.delete("afk", 1, 2))
        self.assertFalse(await self.records.delete("afk", 1, 2))

    async def test_pop_returns_deleted_record(self) -> None:
        await self.records.set("warnings", 1, 2, {"warnings": [{"id": 1}]})
        popped = await self.records.pop("warnings", 1, 2)
        self.assertEqual(popped["warnings"], [{"id": 1}])
        self.assertEqual(popped["nextId"], 1)
        self.assertIsNone(self.store.get("warnings:1:2"))
        self.assertIsNone(await self.records.pop("warnings", 1, 2))


class FailingStoreTests(unittest.IsolatedAsyncioTestCase):
    async def test_reads_degrade_and_writes_raise(self) -> None:
        records = ScopedRecordAccessor(FailingStore())
        with self.assertLogs("titanbot.services.records", level="WARNING"):
            record = await records.get("level", 1, 2)
        self.assertEqual(record["level"], 0)
        with self.assertRaises(DatabaseError):
            await records.set("level", 1, 2, record)
        with self.assertRaises(DatabaseError):
            await records.mutate("level", 1, 2, lambda current: None)


if __name__ == "__main__":
    unittest.main()
