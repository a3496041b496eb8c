import random
import unittest

from fakes import memory_records

from titanbot.core.errors import ValidationError
from titanbot.services.leveling import (
    add_levels,
    apply_xp,
    award_message_xp,
    get_rank,
    leaderboard,
    remove_levels,
    render_level_up_message,
    set_level,
    xp_for_level,
)

GUILD = 10
NOW = 1_700_000_000_000


class XpCurveTests(unittest.TestCase):
    def test_curve_values(self) -> None:
        self.assertEqual(xp_for_level(0), 50)
        self.assertEqual(xp_for_level(1), 105)
        self.assertEqual(xp_for_level(10), 1050)

    def test_curve_bounds(self) -> None:
        for bad in (-1, 1001, 2.5, True):
            with self.assertRaises(ValidationError):
                xp_for_level(bad)

    def test_apply_xp_rolls_over_multiple_levels(self) -> None:
        record = {"level": 0, "xp": 0, "totalXp": 0}
        gained = apply_xp(record, 105 + 170 + 7)
        self.assertEqual(gained, 2)
        self.assertEqual(record["level"], 2)
        self.assertEqual(record["xp"], 7)
        self.assertEqual(record["totalXp"], 282)

    def test_level_up_message_template(self) -> None:
        self.assertEqual(
            render_level_up_message("{user} hit {level}", user_mention="<@1>", level=4),
            "<@1> hit 4",
        )
        self.assertIn("<@1>", render_level_up_message(None, user_mention="<@1>", level=2))


class LevelingServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.records = memory_records()

    async def test_message_xp_respects_cooldown(self) -> None:
        rng = random.Random(3)
        first = await award_message_xp(self.records, GUILD, 1, xp_min=20, xp_max=20, now=NOW, rng=rng)
        self.assertEqual(first.gained, 20)
        self.assertFalse(first.leveled_up)

        skipped = await award_message_xp(self.records, GUILD, 1, xp_min=20, xp_max=20, now=NOW + 30_000, rng=rng)
        self.assertIsNone(skipped)

        later = await award_message_xp(self.records, GUILD, 1, xp_min=200, xp_max=200, now=NOW + 61_000, rng=rng)
        self.assertTrue(later.leveled_up)
        self.assertEqual(later.record["level"], 1)
        self.assertEqual(later.record["totalXp"], 220)

    async def test_cooldown_skip_leaves_record_untouched(self) -> None:
        self.records.store.set(f"level:{GUILD}:1", {"level": 0, "xp": 5, "totalXp": 5, "lastMessage": NOW})
        self.assertIsNone(await award_message_xp(self.records, GUILD, 1, now=NOW + 1_000))
        self.assertEqual(
            self.records.store.get(f"level:{GUILD}:1"),
            {"level": 0, "xp": 5, "totalXp": 5, "lastMessage": NOW},
        )

    async def test_admin_adjustments_reset_xp(self) -> None:
        await award_message_xp(self.records, GUILD, 1, xp_min=40, xp_max=40, now=NOW)
        change = await add_levels(self.records, GUILD, 1, 3)
        self.assertEqual((change.old_level, change.new_level), (0, 3))
        self.assertEqual(change.record["xp"], 0)
        self.assertEqual(change.record["totalXp"], xp_for_level(3))

        change = await remove_levels(self.records, GUILD, 1, 10)
        self.assertEqual(change.new_level, 0)

        change = await set_level(self.records, GUILD, 1, 7)
        self.assertEqual(change.new_level, 7)
        self.assertEqual(change.record["totalXp"], xp_for_level(7))

    async def test_add_levels_above_max_rejected(self) -> None:
        await set_level(self.records, GUILD, 1, 999)
        with self.assertRaises(ValidationError):
            await add_levels(self.records, GUILD, 1, 2)
        self.assertEqual((await get_rank(self.records, GUILD, 1))["level"], 999)

    async def test_rank_includes_xp_needed(self) -> None:
        rank = await get_rank(self.records, GUILD, 5)
        self.assertEqual(rank["level"], 0)
        self.assertEqual(rank["xpNeeded"], xp_for_level(1))

    async def test_leaderboard_sorted_by_total_xp(self) -> None:
        await set_level(self.records, GUILD, 1, 2)
        await set_level(self.records, GUILD, 2, 5)
        await self.records.set("level", GUILD, 3, {"level": 0, "xp": 0, "totalXp": 0})
        rows = await leaderboard(self.records, GUILD, [1, 2, 3, 4])
        self.assertEqual([row["userId"] for row in rows], [2, 1])
        self.assertEqual([row["rank"] for row in rows], [1, 2])


if __name__ == "__main__":
    unittest.main()
