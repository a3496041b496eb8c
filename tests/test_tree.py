import unittest
from datetime import datetime, timedelta, timezone

import discord
from discord import app_commands
from fakes import command_interaction, fake_member, invoke, memory_records

from titanbot.commands import setup_commands
from titanbot.core.errors import ConfigurationError, PermissionDeniedError, ValidationError
from titanbot.interactions import InteractionRouter, TitanCommandTree, responder_for
from titanbot.interactions.tree import unwrap_error
from titanbot.services.guild_config import set_command_enabled

GUILD = 100
OWNER = 42


def last_embed(interaction):
    embeds = interaction.sent_embeds()
    return embeds[-1] if embeds else None


class UnwrapErrorTests(unittest.TestCase):
    def test_missing_permissions_named_for_users(self) -> None:
        error = unwrap_error(app_commands.MissingPermissions(["manage_guild"]))
        self.assertIsInstance(error, PermissionDeniedError)
        self.assertEqual(error.user_message, "You need the **Manage Server** permission to use this.")

    def test_unknown_command(self) -> None:
        error = unwrap_error(app_commands.CommandNotFound("gone", []))
        self.assertIsInstance(error, ConfigurationError)
        self.assertEqual(error.user_message, "This command is not available right now.")

    def test_plain_errors_pass_through(self) -> None:
        original = ValidationError("bad")
        self.assertIs(unwrap_error(original), original)


class TreeTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.records = memory_records()
        self.client = discord.Client(intents=discord.Intents.none())
        self.tree = TitanCommandTree(
            self.client,
            records=self.records,
            router=InteractionRouter(self.records),
            owner_ids=[OWNER],
        )
        self.client.tree = self.tree
        self.calls = []

    def interaction(self, name, **kwargs):
        kwargs.setdefault("guild_id", GUILD)
        return command_interaction(name, client=self.client, **kwargs)


class ErrorBoundaryTests(TreeTestCase):
    async def test_disabled_command_never_runs(self) -> None:
        @self.tree.command(name="rob", description="r")
        async def rob(interaction: discord.Interaction) -> None:
            self.calls.append("ran")
            await responder_for(interaction).reply("ok")

        await set_command_enabled(self.records, GUILD, "rob", False)
        interaction = self.interaction("rob")
        await invoke(self.tree, interaction, "rob")
        self.assertEqual(self.calls, [])
        self.assertEqual(last_embed(interaction).description, "This command is disabled here.")
        self.assertTrue(interaction.response.calls[0][2]["ephemeral"])

    async def test_direct_messages_rejected(self) -> None:
        @self.tree.command(name="daily", description="d")
        async def daily(interaction: discord.Interaction) -> None:
            await responder_for(interaction).reply("ok")

        interaction = self.interaction("daily", guild_id=None)
        await invoke(self.tree, interaction, "daily")
        self.assertEqual(last_embed(interaction).description, "This command can only be used in a server.")

    async def test_typed_error_is_rendered_once(self) -> None:
        @self.tree.command(name="buy", description="b")
        async def buy(interaction: discord.Interaction) -> None:
            raise ValidationError("bad item", user_message="That item is not in the shop.")

        interaction = self.interaction("buy")
        await invoke(self.tree, interaction, "buy")
        self.assertEqual(len(interaction.response.calls), 1)
        self.assertEqual(last_embed(interaction).description, "That item is not in the shop.")

    async def test_error_after_defer_edits_original(self) -> None:
        @self.tree.command(name="slow", description="s")
        async def slow(interaction: discord.Interaction) -> None:
            await responder_for(interaction).defer()
            raise RuntimeError("boom")

        interaction = self.interaction("slow")
        with self.assertLogs("titanbot.interactions.failures", level="ERROR"):
            await invoke(self.tree, interaction, "slow")
        self.assertEqual([call[0] for call in interaction.response.calls], ["defer"])
        self.assertEqual(len(interaction.edits), 1)
        self.assertNotIn("boom", interaction.edits[0]["embed"].description)

    async def test_error_after_reply_sends_nothing_more(self) -> None:
        @self.tree.command(name="late", description="l")
        async def late(interaction: discord.Interaction) -> None:
            await responder_for(interaction).reply("done")
            raise RuntimeError("after the fact")

        interaction = self.interaction("late")
        with self.assertLogs("titanbot.interactions.failures", level="WARNING"):
            await invoke(self.tree, interaction, "late")
        self.assertEqual(len(interaction.response.calls), 1)
        self.assertEqual(interaction.edits, [])

    async def test_handler_without_response_gets_failure_reply(self) -> None:
        @self.tree.command(name="silent", description="s")
        async def silent(interaction: discord.Interaction) -> None:
            return None

        interaction = self.interaction("silent")
        with self.assertLogs("titanbot.interactions.tree", level="ERROR"):
            await invoke(self.tree, interaction, "silent")
        self.assertIsNotNone(last_embed(interaction))

    async def test_expired_interaction_is_not_answered(self) -> None:
        @self.tree.command(name="old", description="o")
        async def old(interaction: discord.Interaction) -> None:
            raise ValidationError("late")

        interaction = self.interaction("old", created_at=datetime.now(timezone.utc) - timedelta(minutes=16))
        with self.assertLogs("titanbot.interactions.failures", level="WARNING"):
            await invoke(self.tree, interaction, "old")
        self.assertEqual(interaction.response.calls, [])

    async def test_failed_error_reply_is_logged_and_dropped(self) -> None:
        @self.tree.command(name="flaky", description="f")
        async def flaky(interaction: discord.Interaction) -> None:
            raise RuntimeError("boom")

        interaction = self.interaction("flaky")

        async def unreachable(content=None, **kwargs):
            raise discord.DiscordException("connection reset")

        interaction.response.send_message = unreachable
        with self.assertLogs("titanbot.interactions.failures", level="ERROR") as captured:
            await invoke(self.tree, interaction, "flaky")
        self.assertTrue(any("could not deliver error reply" in line for line in captured.output))


class RegisteredCommandTests(TreeTestCase):
    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        setup_commands(self.tree)

    def test_every_feature_is_registered(self) -> None:
        names = set(self.tree.command_names)
        for name in ("balance", "gamble", "inventory", "birthday", "invites", "ban", "cases", "todo", "botconfig"):
            self.assertIn(name, names)
        birthday = self.tree.get_command("birthday")
        self.assertEqual([command.name for command in birthday.commands], ["set", "remove", "info", "list", "next"])

    async def test_balance_is_read_only(self) -> None:
        interaction = self.interaction("balance", user_id=5)
        await invoke(self.tree, interaction, "balance")
        values = {field.name: field.value for field in last_embed(interaction).fields}
        self.assertEqual(values["Wallet"], "$0")
        self.assertEqual(values["Net Worth"], "$0")
        self.assertIsNone(self.records.store.get(f"economy:{GUILD}:5"))

    async def test_daily_twice(self) -> None:
        first = self.interaction("daily", user_id=5)
        await invoke(self.tree, first, "daily")
        self.assertIn("$1,000", last_embed(first).description)

        second = self.interaction("daily", user_id=5)
        await invoke(self.tree, second, "daily")
        self.assertIn("again in", last_embed(second).description)
        self.assertEqual(self.records.store.get(f"economy:{GUILD}:5")["wallet"], 1000)

    async def test_permission_check(self) -> None:
        denied = self.interaction("levelset")
        await invoke(self.tree, denied, "levelset", user=fake_member(7), level=3)
        self.assertIn("Manage Server", last_embed(denied).description)
        self.assertIsNone(self.records.store.get(f"level:{GUILD}:7"))

        allowed = self.interaction("levelset", permissions=discord.Permissions(manage_guild=True))
        await invoke(self.tree, allowed, "levelset", user=fake_member(7), level=3)
        self.assertEqual(last_embed(allowed).title, "Level Set")

    async def test_owner_only_command(self) -> None:
        stranger = self.interaction("botconfig")
        await invoke(self.tree, stranger, "botconfig show")
        self.assertEqual(last_embed(stranger).description, "Only the bot owner can use this command.")

        owner = self.interaction("botconfig", user_id=OWNER)
        await invoke(self.tree, owner, "botconfig show")
        self.assertEqual(last_embed(owner).title, "Bot Settings")

    async def test_togglecommand_disables_other_commands(self) -> None:
        admin = discord.Permissions(manage_guild=True)
        toggle = self.interaction("togglecommand", permissions=admin)
        await invoke(self.tree, toggle, "togglecommand", command="/Work", enabled=False)
        self.assertIn("disabled", last_embed(toggle).description)

        work = self.interaction("work")
        await invoke(self.tree, work, "work")
        self.assertEqual(last_embed(work).description, "This command is disabled here.")

        self_toggle = self.interaction("togglecommand", permissions=admin)
        await invoke(self.tree, self_toggle, "togglecommand", command="togglecommand", enabled=False)
        self.assertIn("cannot be disabled", last_embed(self_toggle).description)


if __name__ == "__main__":
    unittest.main()
