import unittest

from fakes import memory_records

from titanbot.core.errors import PermissionDeniedError, ValidationError
from titanbot.services.moderation import add_warning, clear_warnings, list_warnings
from titanbot.services.todo import (
    add_shared_member,
    add_shared_task,
    add_task,
    complete_shared_task,
    complete_task,
    create_shared_list,
    get_shared_list,
    list_tasks,
    remove_task,
)

GUILD = 10


class PersonalTodoTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.records = memory_records()

    async def test_add_complete_remove(self) -> None:
        first = await add_task(self.records, GUILD, 1, "  water plants ")
        second = await add_task(self.records, GUILD, 1, "call mom")
        self.assertEqual((first["id"], first["text"]), (1, "water plants"))
        self.assertEqual(second["id"], 2)

        done = await complete_task(self.records, GUILD, 1, "#1")
        self.assertTrue(done["completed"])
        with self.assertRaises(ValidationError):
            await complete_task(self.records, GUILD, 1, 1)

        await remove_task(self.records, GUILD, 1, 2)
        third = await add_task(self.records, GUILD, 1, "buy milk")
        self.assertEqual(third["id"], 3)
        self.assertEqual([task["id"] for task in await list_tasks(self.records, GUILD, 1)], [1, 3])

    async def test_bad_input(self) -> None:
        with self.assertRaises(ValidationError):
            await add_task(self.records, GUILD, 1, "   ")
        with self.assertRaises(ValidationError):
            await complete_task(self.records, GUILD, 1, "first")
        with self.assertRaises(ValidationError):
            await remove_task(self.records, GUILD, 1, 9)


class SharedTodoTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.records = memory_records()
        self.shared = await create_shared_list(self.records, GUILD, 1, "Party", list_id="abc12345")

    async def test_members_only(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            await get_shared_list(self.records, GUILD, "abc12345", 2)
        with self.assertRaises(PermissionDeniedError):
            await add_shared_task(self.records, GUILD, "abc12345", 2, "crash it")

        await add_shared_member(self.records, GUILD, "abc12345", 1, 2)
        task = await add_shared_task(self.records, GUILD, "abc12345", 2, "bring snacks")
        done = await complete_shared_task(self.records, GUILD, "abc12345", 1, task["id"])
        self.assertEqual(done["completedBy"], "1")
        shared = await get_shared_list(self.records, GUILD, "abc12345", 2)
        self.assertEqual(shared["members"], ["1", "2"])

    async def test_only_owner_adds_members(self) -> None:
        await add_shared_member(self.records, GUILD, "abc12345", 1, 2)
        with self.assertRaises(PermissionDeniedError):
            await add_shared_member(self.records, GUILD, "abc12345", 2, 3)
        with self.assertRaises(ValidationError):
            await add_shared_member(self.records, GUILD, "abc12345", 1, 2)

    async def test_missing_list_and_duplicate_id(self) -> None:
        with self.assertRaises(ValidationError):
            await get_shared_list(self.records, GUILD, "nothere", 1)
        with self.assertRaises(ValidationError):
            await create_shared_list(self.records, GUILD, 3, "Other", list_id="abc12345")


class WarningTests(unittest.IsolatedAsyncioTestCase):
    async def test_warn_list_clear(self) -> None:
        records = memory_records()
        warning, count = await add_warning(records, GUILD, 5, 1, "spam", now=1000)
        self.assertEqual((warning["id"], count), (1, 1))
        _, count = await add_warning(records, GUILD, 5, 1, None, now=2000)
        self.assertEqual(count, 2)
        reasons = [item["reason"] for item in await list_warnings(records, GUILD, 5)]
        self.assertEqual(reasons, ["spam", "No reason provided."])
        self.assertEqual(await clear_warnings(records, GUILD, 5), 2)
        self.assertEqual(await clear_warnings(records, GUILD, 5), 0)


if __name__ == "__main__":
    unittest.main()
