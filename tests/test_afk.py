import unittest
from unittest import mock

import discord
from fakes import memory_records

from titanbot.commands.afk import clear_afk_for

from titanbot.core.errors import ValidationError
from titanbot.services.afk import (
    afk_mentions,
    clear_afk,
    decorate_nickname,
    get_afk,
    set_afk,
    strip_nickname,
)

GUILD = 10


class NicknameTests(unittest.TestCase):
    def test_decorate_and_strip(self) -> None:
        self.assertEqual(decorate_nickname("Sam"), "[AFK] Sam")
        self.assertEqual(decorate_nickname("[AFK] Sam"), "[AFK] Sam")
        self.assertEqual(len(decorate_nickname("x" * 40)), 32)
        self.assertEqual(strip_nickname("[AFK] Sam"), "Sam")
        self.assertEqual(strip_nickname("Sam"), "Sam")
        self.assertIsNone(strip_nickname(None))


class AfkServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.records = memory_records()

    async def test_set_then_clear(self) -> None:
        record = await set_afk(self.records, GUILD, 1, "lunch", now=1000)
        self.assertEqual(record["reason"], "lunch")
        self.assertEqual(record["timestamp"], 1000)
        self.assertEqual((await get_afk(self.records, GUILD, 1))["reason"], "lunch")

        cleared = await clear_afk(self.records, GUILD, 1)
        self.assertEqual(cleared["reason"], "lunch")
        self.assertIsNone(await get_afk(self.records, GUILD, 1))
        self.assertIsNone(self.records.store.get(f"afk:{GUILD}:1"))

    async def test_double_set_and_clear_rejected(self) -> None:
        await set_afk(self.records, GUILD, 1, None)
        with self.assertRaises(ValidationError):
            await set_afk(self.records, GUILD, 1, "again")
        await clear_afk(self.records, GUILD, 1)
        with self.assertRaises(ValidationError):
            await clear_afk(self.records, GUILD, 1)

    async def test_original_nickname_kept_for_return(self) -> None:
        record = await set_afk(self.records, GUILD, 1, "lunch", original_nick=None)
        self.assertIn("originalNick", record)
        self.assertIsNone(record["originalNick"])
        await set_afk(self.records, GUILD, 2, "gym", original_nick="Sammy")
        self.assertEqual((await clear_afk(self.records, GUILD, 2))["originalNick"], "Sammy")

    async def test_long_reason_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            await set_afk(self.records, GUILD, 1, "x" * 201)

    async def test_mentions_only_report_afk_users_once(self) -> None:
        await set_afk(self.records, GUILD, 2, "sleeping")
        found = await afk_mentions(self.records, GUILD, [2, 3, 2])
        self.assertEqual([user_id for user_id, _ in found], [2])
        self.assertEqual(found[0][1]["reason"], "sleeping")


class ReturnFromAfkTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.records = memory_records()

    def member(self, user_id, nick):
        member = mock.MagicMock(spec=discord.Member)
        member.id = user_id
        member.guild.id = GUILD
        member.nick = nick
        return member

    async def test_nickname_restored_to_original(self) -> None:
        await set_afk(self.records, GUILD, 1, None, original_nick="Sammy")
        member = self.member(1, "[AFK] Sam")
        self.assertIsNotNone(await clear_afk_for(member, self.records))
        member.edit.assert_awaited_once_with(nick="Sammy", reason="AFK status")

    async def test_nickname_cleared_when_there_was_none(self) -> None:
        await set_afk(self.records, GUILD, 1, None, original_nick=None)
        member = self.member(1, "[AFK] user1")
        await clear_afk_for(member, self.records)
        member.edit.assert_awaited_once_with(nick=None, reason="AFK status")

    async def test_nickname_changed_while_away_is_kept(self) -> None:
        await set_afk(self.records, GUILD, 1, None, original_nick="Sammy")
        member = self.member(1, "Samuel")
        await clear_afk_for(member, self.records)
        member.edit.assert_not_called()

    async def test_not_afk_returns_none(self) -> None:
        self.assertIsNone(await clear_afk_for(self.member(1, None), self.records))


if __name__ == "__main__":
    unittest.main()
