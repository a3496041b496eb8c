import unittest
from types import SimpleNamespace

from fakes import memory_records

from titanbot.commands.invites import InviteTracker
from titanbot.config.settings import DAY_MS
from titanbot.services.invites import (
    find_used_invite,
    get_invite_stats,
    invite_leaderboard,
    track_join,
    track_leave,
)

GUILD = 10
NOW = 1_700_000_000_000
OLD_ACCOUNT = NOW - 365 * DAY_MS


class FindUsedInviteTests(unittest.TestCase):
    def test_use_count_increase(self) -> None:
        self.assertEqual(find_used_invite({"abc": 1, "xyz": 4}, {"abc": 2, "xyz": 4}), "abc")

    def test_new_code_used_once(self) -> None:
        self.assertEqual(find_used_invite({"abc": 1}, {"abc": 1, "new": 1}), "new")

    def test_single_use_code_vanished(self) -> None:
        self.assertEqual(find_used_invite({"abc": 1, "once": 0}, {"abc": 1}), "once")

    def test_ambiguous_or_unchanged(self) -> None:
        self.assertIsNone(find_used_invite({"abc": 1}, {"abc": 1}))
        self.assertIsNone(find_used_invite({"a": 0, "b": 0}, {}))


class InviteStatsTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.records = memory_records()

    async def test_join_credits_inviter_once(self) -> None:
        self.assertTrue(await track_join(self.records, GUILD, 5, 1, "abc", account_created_ms=OLD_ACCOUNT, now=NOW))
        self.assertFalse(await track_join(self.records, GUILD, 5, 1, "abc", account_created_ms=OLD_ACCOUNT, now=NOW))
        stats = await get_invite_stats(self.records, GUILD, 1)
        self.assertEqual((stats.total, stats.valid, stats.left, stats.fake), (1, 1, 0, 0))
        self.assertEqual((await get_invite_stats(self.records, GUILD, 5)).invited_by, 1)

    async def test_self_invite_ignored(self) -> None:
        self.assertFalse(await track_join(self.records, GUILD, 1, 1, "abc", account_created_ms=OLD_ACCOUNT, now=NOW))
        self.assertIsNone(await self.records.find("invites", GUILD, 1))

    async def test_young_account_counts_as_fake(self) -> None:
        await track_join(self.records, GUILD, 5, 1, "abc", account_created_ms=NOW - DAY_MS, now=NOW)
        stats = await get_invite_stats(self.records, GUILD, 1)
        self.assertEqual((stats.total, stats.valid, stats.fake), (1, 0, 1))

        self.assertEqual(await track_leave(self.records, GUILD, 5), 1)
        stats = await get_invite_stats(self.records, GUILD, 1)
        self.assertEqual((stats.total, stats.valid, stats.left, stats.fake), (1, 0, 1, 0))

    async def test_leave_moves_member_to_left(self) -> None:
        await track_join(self.records, GUILD, 5, 1, "abc", account_created_ms=OLD_ACCOUNT, now=NOW)
        await track_join(self.records, GUILD, 6, 1, "abc", account_created_ms=OLD_ACCOUNT, now=NOW)
        self.assertEqual(await track_leave(self.records, GUILD, 5), 1)
        self.assertIsNone(await track_leave(self.records, GUILD, 5))
        self.assertIsNone(await track_leave(self.records, GUILD, 7))
        stats = await get_invite_stats(self.records, GUILD, 1)
        self.assertEqual((stats.total, stats.valid, stats.left), (2, 1, 1))

    async def test_leaderboard_orders_by_valid_invites(self) -> None:
        await track_join(self.records, GUILD, 5, 1, "a", account_created_ms=OLD_ACCOUNT, now=NOW)
        await track_join(self.records, GUILD, 6, 2, "b", account_created_ms=OLD_ACCOUNT, now=NOW)
        await track_join(self.records, GUILD, 7, 2, "b", account_created_ms=OLD_ACCOUNT, now=NOW)
        rows = await invite_leaderboard(self.records, GUILD, [1, 2, 3, 5, 6, 7])
        self.assertEqual([user_id for user_id, _ in rows], [2, 1])


class FakeGuild:
    def __init__(self, uses) -> None:
        self.id = GUILD
        self.uses = uses
        self.fetches = 0

    async def invites(self):
        self.fetches += 1
        return [SimpleNamespace(code=code, uses=count, inviter=SimpleNamespace(id=1, bot=False)) for code, count in self.uses.items()]


class InviteTrackerTests(unittest.IsolatedAsyncioTestCase):
    async def test_snapshot_is_cached_until_it_expires(self) -> None:
        clock = [0.0]
        tracker = InviteTracker(ttl=60, clock=lambda: clock[0])
        guild = FakeGuild({"abc": 1})
        await tracker.snapshot(guild)
        await tracker.snapshot(guild)
        self.assertEqual(guild.fetches, 1)
        clock[0] = 61
        await tracker.snapshot(guild)
        self.assertEqual(guild.fetches, 2)

    async def test_join_attributed_against_previous_snapshot(self) -> None:
        tracker = InviteTracker()
        guild = FakeGuild({"abc": 1, "xyz": 0})
        self.assertIsNone(await tracker.attribute_join(guild))
        guild.uses = {"abc": 1, "xyz": 1}
        used = await tracker.attribute_join(guild)
        self.assertEqual(used.code, "xyz")

    async def test_created_and_deleted_invites_update_snapshot(self) -> None:
        tracker = InviteTracker()
        guild = FakeGuild({"abc": 1})
        await tracker.refresh(guild)
        tracker.note_created(SimpleNamespace(guild=guild, code="new", uses=0))
        tracker.note_deleted(SimpleNamespace(guild=guild, code="abc"))
        self.assertEqual(set(await tracker.snapshot(guild)), {"new"})


if __name__ == "__main__":
    unittest.main()
