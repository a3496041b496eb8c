import unittest
from datetime import date
from unittest import mock

from fakes import memory_records

from titanbot.core.errors import ValidationError
from titanbot.services.birthdays import (
    celebration_date,
    claim_announcement,
    get_birthday,
    list_birthdays,
    remove_birthday,
    set_birthday,
    todays_birthdays,
    upcoming_birthdays,
    validate_birthday,
)

GUILD = 10


class BirthdayValidationTests(unittest.TestCase):
    def test_feb_29_always_valid(self) -> None:
        self.assertEqual(validate_birthday(2, 29), (2, 29))

    def test_impossible_dates_rejected(self) -> None:
        for month, day in ((2, 30), (4, 31), (13, 1), (0, 5), (1, 0)):
            with self.assertRaises(ValidationError):
                validate_birthday(month, day)

    def test_feb_29_celebrated_on_feb_28_in_common_years(self) -> None:
        self.assertEqual(celebration_date(2, 29, 2023), date(2023, 2, 28))
        self.assertEqual(celebration_date(2, 29, 2024), date(2024, 2, 29))


class BirthdayServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.records = memory_records()

    async def test_set_get_remove(self) -> None:
        saved = await set_birthday(self.records, GUILD, 1, 7, 4)
        self.assertEqual(saved.label, "July 4")
        self.assertEqual(await get_birthday(self.records, GUILD, 1), saved)
        self.assertTrue(await remove_birthday(self.records, GUILD, 1))
        self.assertFalse(await remove_birthday(self.records, GUILD, 1))
        self.assertIsNone(await get_birthday(self.records, GUILD, 1))

    async def test_guild_wide_map_under_one_key(self) -> None:
        await set_birthday(self.records, GUILD, 1, 12, 25)
        await set_birthday(self.records, GUILD, 2, 1, 15)
        stored = self.records.store.get(f"birthdays:{GUILD}")
        self.assertEqual(stored, {"1": {"month": 12, "day": 25}, "2": {"month": 1, "day": 15}})
        listed = await list_birthdays(self.records, GUILD)
        self.assertEqual([entry.user_id for entry in listed], [2, 1])

    async def test_upcoming_wraps_around_year_end(self) -> None:
        await set_birthday(self.records, GUILD, 1, 12, 31)
        await set_birthday(self.records, GUILD, 2, 1, 2)
        await set_birthday(self.records, GUILD, 3, 12, 20)
        upcoming = await upcoming_birthdays(self.records, GUILD, today=date(2023, 12, 30), limit=2)
        self.assertEqual([(item.birthday.user_id, item.days_until) for item in upcoming], [(1, 1), (2, 3)])

    async def test_todays_birthdays_include_leap_day_fallback(self) -> None:
        await set_birthday(self.records, GUILD, 1, 2, 29)
        await set_birthday(self.records, GUILD, 2, 2, 28)
        today = await todays_birthdays(self.records, GUILD, today=date(2023, 2, 28))
        self.assertEqual(sorted(entry.user_id for entry in today), [1, 2])

    async def test_announcement_claimed_once_per_day(self) -> None:
        self.assertTrue(await claim_announcement(self.records, GUILD, date(2024, 5, 1)))
        self.assertFalse(await claim_announcement(self.records, GUILD, date(2024, 5, 1)))
        self.assertTrue(await claim_announcement(self.records, GUILD, date(2024, 5, 2)))

    async def test_noop_changes_write_nothing(self) -> None:
        self.assertFalse(await remove_birthday(self.records, GUILD, 100))
        self.assertIsNone(self.records.store.get(f"birthdays:{GUILD}"))

        await claim_announcement(self.records, GUILD, date(2024, 5, 1))
        with mock.patch.object(self.records.store, "set", wraps=self.records.store.set) as store_set:
            self.assertFalse(await claim_announcement(self.records, GUILD, date(2024, 5, 1)))
        store_set.assert_not_called()


if __name__ == "__main__":
    unittest.main()
