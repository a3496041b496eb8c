from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import discord

from titanbot.commands import setup_commands
from titanbot.commands.afk import clear_afk_for
from titanbot.commands.helpers import send_to_log_channel, text_channel
from titanbot.commands.invites import invite_tracker
from titanbot.config.runtime import get_app_config
from titanbot.config.settings import COLORS, LOG_LEVEL, OWNER_IDS, TOKEN
from titanbot.core.embeds import make_embed
from titanbot.core.log import configure_logging
from titanbot.core.timefmt import time_ago
from titanbot.db import SqliteKeyValueStore, init_db
from titanbot.db.store import KeyValueStore
from titanbot.interactions import InteractionRouter, TitanCommandTree
from titanbot.services.afk import afk_mentions
from titanbot.services.birthdays import claim_announcement, todays_birthdays
from titanbot.services.guild_config import get_guild_config
from titanbot.services.invites import track_join, track_leave
from titanbot.services.leveling import award_message_xp, render_level_up_message
from titanbot.services.records import ScopedRecordAccessor

logger = logging.getLogger(__name__)


class TitanBot(discord.Client):
    def __init__(self, store: KeyValueStore | None = None) -> None:
        intents = discord.Intents.default()
        intents.members = True
        intents.message_content = True
        super().__init__(intents=intents)
        self.store = store or SqliteKeyValueStore()
        self.records = ScopedRecordAccessor(self.store)
        self.router = InteractionRouter(self.records)
        self.tree = TitanCommandTree(self, records=self.records, router=self.router, owner_ids=OWNER_IDS)
        self._synced = False
        self._birthday_task: asyncio.Task | None = None

    async def setup_hook(self) -> None:
        setup_commands(self.tree)
        logger.info("registered %d commands", len(self.tree.get_commands()))

    async def on_ready(self) -> None:
        logger.info("logged in as %s in %d guild(s)", self.user, len(self.guilds))
        if self._synced:
            return
        synced = 0
        for guild in self.guilds:
            if await self._sync_guild(guild):
                synced += 1
            await invite_tracker.refresh(guild)
        logger.info("synced commands to %d guild(s)", synced)
        self._synced = True
        if self._birthday_task is None:
            self._birthday_task = asyncio.create_task(self._birthday_loop())

    async def _sync_guild(self, guild: discord.Guild) -> bool:
        try:
            await self.tree.sync_guild(guild)
        except discord.HTTPException as exc:
            logger.warning("command sync failed for guild %s: %s", guild.id, exc)
            return False
        return True

    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self._sync_guild(guild)
        await invite_tracker.refresh(guild)

    async def on_app_command_completion(self, interaction: discord.Interaction, command) -> None:
        await self.tree.after_command(interaction, command)

    async def on_invite_create(self, invite: discord.Invite) -> None:
        invite_tracker.note_created(invite)

    async def on_invite_delete(self, invite: discord.Invite) -> None:
        invite_tracker.note_deleted(invite)

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        await self.router.dispatch(interaction, self)

    async def on_member_join(self, member: discord.Member) -> None:
        await self._track_invite(member)
        await self._give_auto_role(member)

    async def on_member_remove(self, member: discord.Member) -> None:
        if member.bot:
            return
        inviter_id = await track_leave(self.records, member.guild.id, member.id)
        if inviter_id is not None:
            logger.debug("member %s left guild %s; invited by %s", member.id, member.guild.id, inviter_id)

    async def _track_invite(self, member: discord.Member) -> None:
        invite = await invite_tracker.attribute_join(member.guild)
        if member.bot or invite is None or invite.inviter is None or invite.inviter.bot:
            return
        await track_join(
            self.records,
            member.guild.id,
            member.id,
            invite.inviter.id,
            invite.code,
            account_created_ms=int(member.created_at.timestamp() * 1000),
        )

    async def _give_auto_role(self, member: discord.Member) -> None:
        config = await get_guild_config(self.records, member.guild.id)
        role_id = config.get("autoRole")
        if not role_id:
            return
        role = member.guild.get_role(int(role_id))
        if role is None:
            logger.warning("auto role %s missing in guild %s", role_id, member.guild.id)
            return
        try:
            await member.add_roles(role, reason="Auto role")
        except discord.HTTPException as exc:
            logger.warning("could not give auto role to %s in guild %s: %s", member.id, member.guild.id, exc)

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None or not isinstance(message.author, discord.Member):
            return
        await self._handle_afk(message)
        await self._handle_xp(message)

    async def _handle_afk(self, message: discord.Message) -> None:
        guild_id = message.guild.id
        returned = await clear_afk_for(message.author, self.records)
        if returned is not None:
            away = time_ago(int(returned.get("timestamp") or 0))
            await message.channel.send(
                f"Welcome back {message.author.mention}! You were AFK {away}.",
                delete_after=10,
            )
        mentioned = [
            user.id for user in message.mentions if not user.bot and user.id != message.author.id
        ]
        if not mentioned:
            return
        notices = [
            f"<@{user_id}> is AFK: {record.get('reason') or 'AFK'} ({time_ago(int(record.get('timestamp') or 0))})"
            for user_id, record in await afk_mentions(self.records, guild_id, mentioned)
        ]
        if notices:
            await message.reply(
                "\n".join(notices),
                allowed_mentions=discord.AllowedMentions.none(),
                mention_author=False,
            )

    async def _handle_xp(self, message: discord.Message) -> None:
        guild_id = message.guild.id
        config = await get_guild_config(self.records, guild_id)
        leveling = config.get("leveling") or {}
        if not leveling.get("enabled", True):
            return
        award = await award_message_xp(
            self.records,
            guild_id,
            message.author.id,
            xp_min=get_app_config("XP_PER_MESSAGE_MIN", self.store),
            xp_max=get_app_config("XP_PER_MESSAGE_MAX", self.store),
            cooldown_seconds=get_app_config("XP_COOLDOWN_SECONDS", self.store),
        )
        if award is None or not award.leveled_up or not leveling.get("announceLevelUp", True):
            return
        channel = text_channel(message.guild, leveling.get("levelUpChannelId")) or message.channel
        text = render_level_up_message(
            leveling.get("levelUpMessage"),
            user_mention=message.author.mention,
            level=int(award.record["level"]),
        )
        try:
            await channel.send(text)
        except discord.HTTPException as exc:
            logger.warning("level up announcement failed in guild %s: %s", guild_id, exc)

    async def on_message_delete(self, message: discord.Message) -> None:
        if message.guild is None or message.author.bot:
            return
        await self._log_message_event(
            message,
            "Message Deleted",
            [("Content", (message.content or "*no text*")[:1024], False)],
        )

    async def on_message_edit(self, before: discord.Message, after: discord.Message) -> None:
        if after.guild is None or after.author.bot or before.content == after.content:
            return
        await self._log_message_event(
            after,
            "Message Edited",
            [
                ("Before", (before.content or "*no text*")[:1024], False),
                ("After", (after.content or "*no text*")[:1024], False),
            ],
        )

    async def _log_message_event(self, message: discord.Message, title: str, fields: list) -> None:
        config = await get_guild_config(self.records, message.guild.id)
        embed = make_embed(
            title,
            f"{message.author.mention} in <#{message.channel.id}>",
            colour=COLORS["warning"],
            fields=fields,
            footer=f"User ID: {message.author.id}",
        )
        await send_to_log_channel(
            message.guild,
            config,
            embed,
            user_id=message.author.id,
            channel_id=message.channel.id,
        )

    async def _birthday_loop(self) -> None:
        while not self.is_closed():
            try:
                await self._announce_birthdays()
            except Exception:
                logger.exception("birthday announcement loop error")
            await asyncio.sleep(get_app_config("BIRTHDAY_CHECK_INTERVAL", self.store))

    async def _announce_birthdays(self) -> None:
        today = datetime.now(timezone.utc).date()
        for guild in self.guilds:
            config = await get_guild_config(self.records, guild.id)
            channel = text_channel(guild, config.get("birthdayChannelId"))
            if channel is None:
                continue
            celebrants = [
                entry for entry in await todays_birthdays(self.records, guild.id, today=today)
                if guild.get_member(entry.user_id) is not None
            ]
            if not celebrants:
                continue
            if not await claim_announcement(self.records, guild.id, today):
                continue
            mentions = ", ".join(f"<@{entry.user_id}>" for entry in celebrants)
            embed = make_embed(
                "🎂 Happy Birthday!",
                f"Everyone wish a happy birthday to {mentions}!",
                colour=COLORS["birthday"],
            )
            try:
                await channel.send(content=mentions, embed=embed)
            except discord.HTTPException as exc:
                logger.warning("birthday announcement failed in guild %s: %s", guild.id, exc)


def run() -> None:
    configure_logging(LOG_LEVEL)
    if not TOKEN:
        raise SystemExit("No bot token: create a TOKEN file or set DISCORD_TOKEN.")
    init_db()
    bot = TitanBot()
    bot.run(TOKEN, log_handler=None)
