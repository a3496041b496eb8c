import asyncio
import unittest
from unittest import mock

from fakes import fake_member, memory_records

from titanbot.core.errors import ConfigurationError, ValidationError
from titanbot.services.moderation import (
    BANNED,
    KICKED,
    TIMED_OUT,
    WARNED,
    add_warning,
    clear_warnings,
    ensure_can_moderate,
    list_cases,
    list_warnings,
    record_case,
)

GUILD = 10
NOW = 1_700_000_000_000


class HierarchyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.moderator = fake_member(1, top_role=5)
        self.bot = fake_member(2, top_role=9)

    def test_allowed_when_below_both(self) -> None:
        ensure_can_moderate(self.moderator, fake_member(3, top_role=4), self.bot, owner_id=99, action="kick")

    def test_self_bot_and_owner_are_refused(self) -> None:
        for target in (self.moderator, self.bot, fake_member(99, top_role=1)):
            with self.assertRaises(ValidationError):
                ensure_can_moderate(self.moderator, target, self.bot, owner_id=99, action="ban")

    def test_equal_role_refused_unless_owner_acts(self) -> None:
        peer = fake_member(3, top_role=5)
        with self.assertRaises(ValidationError) as caught:
            ensure_can_moderate(self.moderator, peer, self.bot, owner_id=99, action="kick")
        self.assertIn("equal or higher", caught.exception.user_message)
        owner = fake_member(99, top_role=1)
        ensure_can_moderate(owner, peer, self.bot, owner_id=99, action="kick")

    def test_bot_role_too_low(self) -> None:
        owner = fake_member(99, top_role=1)
        with self.assertRaises(ConfigurationError):
            ensure_can_moderate(owner, fake_member(3, top_role=9), self.bot, owner_id=99, action="time out")


class CaseLogTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.records = memory_records()

    async def test_cases_are_numbered_with_default_reason(self) -> None:
        first = await record_case(self.records, GUILD, action=BANNED, target_id=3, moderator_id=1, reason=None, now=NOW)
        second = await record_case(
            self.records, GUILD, action=TIMED_OUT, target_id=4, moderator_id=1, reason=" spam ",
            duration_minutes=60, now=NOW + 1,
        )
        self.assertEqual((first["caseId"], second["caseId"]), (1, 2))
        self.assertEqual(first["reason"], "No reason provided")
        self.assertEqual(second["reason"], "spam")
        self.assertEqual(second["duration"], 60)
        self.assertEqual(first["userId"], "3")

    async def test_unknown_action_rejected(self) -> None:
        with self.assertRaises(ValueError):
            await record_case(self.records, GUILD, action="Member Hugged", target_id=3, moderator_id=1, reason=None)
        self.assertIsNone(await self.records.find("moderation_cases", GUILD))

    async def test_log_keeps_only_newest_cases(self) -> None:
        with mock.patch("titanbot.services.moderation.MAX_CASES", 3):
            for offset in range(5):
                await record_case(
                    self.records, GUILD, action=KICKED, target_id=offset, moderator_id=1, reason=None, now=NOW + offset
                )
        log = await self.records.get("moderation_cases", GUILD)
        self.assertEqual([case["caseId"] for case in log["cases"]], [3, 4, 5])
        self.assertEqual(log["nextId"], 6)

    async def test_filters_and_newest_first(self) -> None:
        await record_case(self.records, GUILD, action=WARNED, target_id=3, moderator_id=1, reason="a", now=NOW)
        await record_case(self.records, GUILD, action=KICKED, target_id=3, moderator_id=2, reason="b", now=NOW + 1)
        await record_case(self.records, GUILD, action=WARNED, target_id=4, moderator_id=2, reason="c", now=NOW + 2)

        newest = await list_cases(self.records, GUILD)
        self.assertEqual([case["reason"] for case in newest], ["c", "b", "a"])
        warned = await list_cases(self.records, GUILD, action=WARNED)
        self.assertEqual([case["reason"] for case in warned], ["c", "a"])
        against = await list_cases(self.records, GUILD, user_id=3, moderator_id=2)
        self.assertEqual([case["reason"] for case in against], ["b"])
        self.assertEqual(len(await list_cases(self.records, GUILD, limit=1)), 1)


class WarningTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.records = memory_records()

    async def test_warnings_number_up_and_clear(self) -> None:
        await add_warning(self.records, GUILD, 3, 1, "first", now=NOW)
        warning, count = await add_warning(self.records, GUILD, 3, 1, "", now=NOW)
        self.assertEqual((warning["id"], count), (2, 2))
        self.assertEqual(warning["reason"], "No reason provided.")

        self.assertEqual(await clear_warnings(self.records, GUILD, 3), 2)
        self.assertEqual(await list_warnings(self.records, GUILD, 3), [])
        self.assertIsNone(self.records.store.get(f"warnings:{GUILD}:3"))
        self.assertEqual(await clear_warnings(self.records, GUILD, 3), 0)

    async def test_reason_length_limit(self) -> None:
        with self.assertRaises(ValidationError):
            await add_warning(self.records, GUILD, 3, 1, "x" * 501)

    async def test_clear_races_cleanly_with_new_warning(self) -> None:
        for reason in ("a", "b"):
            await add_warning(self.records, GUILD, 3, 1, reason)
        removed, _ = await asyncio.gather(
            clear_warnings(self.records, GUILD, 3),
            add_warning(self.records, GUILD, 3, 1, "c"),
        )
        remaining = await list_warnings(self.records, GUILD, 3)
        self.assertEqual(removed + len(remaining), 3)


if __name__ == "__main__":
    unittest.main()
