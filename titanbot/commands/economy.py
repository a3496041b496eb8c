from __future__ import annotations

from discord import Interaction, Member, app_commands

from titanbot.commands.helpers import (
    display_name,
    economy_settings,
    has_premium,
    lines_or,
    member_ids,
    target_user,
)
from titanbot.config.settings import COLORS
from titanbot.core.embeds import make_embed, success_embed
from titanbot.core.errors import ValidationError
from titanbot.interactions import TitanCommandTree, responder_for
from titanbot.services.economy import (
    CLOVER_WIN_BONUS,
    GAMBLE_WIN_CHANCE,
    SHOP_ITEMS,
    buy_item,
    beg,
    claim_daily,
    crime,
    deposit,
    economy_leaderboard,
    gamble,
    get_balance,
    inventory_entries,
    max_bank_capacity,
    parse_amount,
    pay,
    rob,
    withdraw,
    work,
)

MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


def setup_economy(tree: TitanCommandTree) -> None:
    records = tree.records

    @tree.command(name="balance", description="Show your wallet and bank balance.")
    @app_commands.describe(user="Whose balance to show")
    async def balance(interaction: Interaction, user: Member | None = None) -> None:
        settings = economy_settings(records)
        target = target_user(interaction, user)
        record = await get_balance(records, interaction.guild_id, target.id)
        wallet = int(record.get("wallet") or 0)
        bank = int(record.get("bank") or 0)
        embed = make_embed(
            f"{target.display_name}'s Balance",
            colour=COLORS["economy"],
            fields=[
                ("Wallet", settings.money(wallet), True),
                ("Bank", f"{settings.money(bank)} / {settings.money(max_bank_capacity(record, settings))}", True),
                ("Net Worth", settings.money(wallet + bank), True),
            ],
            footer=f"Daily streak: {int(record.get('dailyStreak') or 0)}",
        )
        await responder_for(interaction).reply(embed=embed)

    @tree.command(name="inventory", description="Show the items you own.")
    @app_commands.describe(user="Whose inventory to show")
    async def inventory(interaction: Interaction, user: Member | None = None) -> None:
        target = target_user(interaction, user)
        record = await get_balance(records, interaction.guild_id, target.id)
        lines = []
        for item_id, name, count in inventory_entries(record):
            item = SHOP_ITEMS.get(item_id)
            suffix = f" / {item.max_quantity}" if item is not None and item.max_quantity > 1 else ""
            lines.append(f"{name} x{count}{suffix}")
        embed = make_embed(
            f"{target.display_name}'s Inventory",
            lines_or(lines, "Nothing yet. Visit `/shop` to buy items."),
            colour=COLORS["economy"],
        )
        await responder_for(interaction).reply(embed=embed)

    @tree.command(name="daily", description="Claim your daily reward.")
    async def daily(interaction: Interaction) -> None:
        settings = economy_settings(records)
        result = await claim_daily(
            records,
            interaction.guild_id,
            interaction.user.id,
            premium=has_premium(interaction),
            settings=settings,
        )
        lines = [f"You claimed **{settings.money(result.amount)}**!"]
        if result.bonus:
            lines.append(f"Premium bonus: +{settings.money(result.bonus)}")
        lines.append(f"Streak: **{result.streak}** day(s)")
        await responder_for(interaction).reply(embed=success_embed("Daily Reward", "\n".join(lines)))

    @tree.command(name="work", description="Work a shift for some cash.")
    async def work_cmd(interaction: Interaction) -> None:
        settings = economy_settings(records)
        result = await work(records, interaction.guild_id, interaction.user.id, settings=settings)
        description = f"You {result.detail} and earned **{settings.money(result.amount)}**."
        if result.consumed_item:
            description += "\nUsed one **Extra Work Shift**."
        await responder_for(interaction).reply(embed=success_embed("Work", description))

    @tree.command(name="beg", description="Beg for a few coins.")
    async def beg_cmd(interaction: Interaction) -> None:
        settings = economy_settings(records)
        result = await beg(records, interaction.guild_id, interaction.user.id, settings=settings)
        await responder_for(interaction).reply(
            embed=success_embed("Beg", f"A stranger gave you **{settings.money(result.amount)}**.")
        )

    @tree.command(name="crime", description="Commit a crime. It might pay off.")
    async def crime_cmd(interaction: Interaction) -> None:
        settings = economy_settings(records)
        result = await crime(records, interaction.guild_id, interaction.user.id)
        if result.success:
            embed = success_embed("Crime", f"You {result.detail} and got away with **{settings.money(result.amount)}**.")
        else:
            embed = make_embed(
                "Busted",
                f"You tried to {result.detail.split(' ', 1)[-1]} and were fined **{settings.money(result.amount)}**.",
                colour=COLORS["error"],
            )
        await responder_for(interaction).reply(embed=embed)

    @tree.command(name="gamble", description="Bet some of your cash on a coin flip.")
    @app_commands.describe(amount="A number or `all`")
    async def gamble_cmd(interaction: Interaction, amount: str) -> None:
        settings = economy_settings(records)
        result = await gamble(records, interaction.guild_id, interaction.user.id, parse_amount(amount), settings=settings)
        wallet = settings.money(int(result.record.get("wallet") or 0))
        if result.success:
            embed = success_embed("You Won!", f"You won **{settings.money(result.amount)}**.\nWallet: {wallet}")
        else:
            embed = make_embed(
                "You Lost",
                f"You lost **{settings.money(result.amount)}**.\nWallet: {wallet}",
                colour=COLORS["error"],
            )
        chance = GAMBLE_WIN_CHANCE + (CLOVER_WIN_BONUS if result.consumed_item else 0)
        footer = f"Win chance: {chance:.0%}"
        if result.consumed_item:
            footer += " (Lucky Clover used)"
        embed.set_footer(text=footer)
        await responder_for(interaction).reply(embed=embed)

    @tree.command(name="rob", description="Try to rob another member's wallet.")
    @app_commands.describe(user="Who to rob")
    async def rob_cmd(interaction: Interaction, user: Member) -> None:
        settings = economy_settings(records)
        result = await rob(records, interaction.guild_id, interaction.user.id, user.id, target_is_bot=user.bot)
        if result.protected:
            embed = make_embed(
                "Robbery Failed",
                f"{user.mention} keeps their cash in a **Personal Safe**.",
                colour=COLORS["warning"],
            )
        elif result.success:
            embed = success_embed("Robbery", f"You stole **{settings.money(result.amount)}** from {user.mention}!")
        else:
            embed = make_embed(
                "Caught",
                f"You were caught robbing {user.mention} and paid a **{settings.money(result.amount)}** fine.",
                colour=COLORS["error"],
            )
        await responder_for(interaction).reply(embed=embed)

    @tree.command(name="deposit", description="Move cash from your wallet into the bank.")
    @app_commands.describe(amount="A number or `all`")
    async def deposit_cmd(interaction: Interaction, amount: str) -> None:
        settings = economy_settings(records)
        result = await deposit(records, interaction.guild_id, interaction.user.id, parse_amount(amount), settings=settings)
        description = f"Deposited **{settings.money(result.amount)}**."
        if result.detail:
            description += f"\n{result.detail}"
        await responder_for(interaction).reply(embed=success_embed("Deposit", description))

    @tree.command(name="withdraw", description="Move cash from the bank into your wallet.")
    @app_commands.describe(amount="A number or `all`")
    async def withdraw_cmd(interaction: Interaction, amount: str) -> None:
        settings = economy_settings(records)
        result = await withdraw(records, interaction.guild_id, interaction.user.id, parse_amount(amount), settings=settings)
        await responder_for(interaction).reply(
            embed=success_embed("Withdraw", f"Withdrew **{settings.money(result.amount)}**.")
        )

    @tree.command(name="pay", description="Give cash to another member.")
    @app_commands.describe(user="Who to pay", amount="How much")
    async def pay_cmd(interaction: Interaction, user: Member, amount: app_commands.Range[int, 1]) -> None:
        settings = economy_settings(records)
        result = await pay(
            records,
            interaction.guild_id,
            interaction.user.id,
            user.id,
            int(amount),
            recipient_is_bot=user.bot,
            settings=settings,
        )
        await responder_for(interaction).reply(
            embed=success_embed("Payment Sent", f"You paid {user.mention} **{settings.money(result.amount)}**.")
        )

    @tree.command(name="shop", description="Browse the item shop.")
    async def shop(interaction: Interaction) -> None:
        settings = economy_settings(records)
        fields = [
            (f"{item.name} - {settings.money(item.price)}", f"{item.description}\nID: `{item.id}`", False)
            for item in SHOP_ITEMS.values()
        ]
        embed = make_embed(
            "Shop",
            "Use `/buy item:<id>` to purchase.",
            colour=COLORS["economy"],
            fields=fields,
        )
        await responder_for(interaction).reply(embed=embed)

    @tree.command(name="buy", description="Buy an item from the shop.")
    @app_commands.describe(item="Item to buy", quantity="How many")
    @app_commands.choices(item=[app_commands.Choice(name=item.name, value=item.id) for item in SHOP_ITEMS.values()])
    async def buy(
        interaction: Interaction,
        item: app_commands.Choice[str],
        quantity: app_commands.Range[int, 1, 10] = 1,
    ) -> None:
        settings = economy_settings(records)
        result = await buy_item(
            records,
            interaction.guild_id,
            interaction.user.id,
            item.value,
            int(quantity),
            settings=settings,
        )
        await responder_for(interaction).reply(
            embed=success_embed(
                "Purchase Complete",
                f"Bought **{quantity}x {result.detail}** for **{settings.money(result.amount)}**.",
            )
        )

    @tree.command(name="eleaderboard", description="Show the richest members in this server.")
    @app_commands.describe(limit="How many members to show")
    async def eleaderboard(interaction: Interaction, limit: app_commands.Range[int, 1, 25] = 10) -> None:
        settings = economy_settings(records)
        responder = responder_for(interaction)
        await responder.defer()
        rows = await economy_leaderboard(records, interaction.guild_id, member_ids(interaction.guild), limit=int(limit))
        if not rows:
            raise ValidationError("empty economy leaderboard", user_message="Nobody has any money yet.")
        lines = [
            f"{MEDALS.get(position, f'#{position}')} {display_name(interaction.guild, user_id)} - {settings.money(total)}"
            for position, (user_id, total) in enumerate(rows, start=1)
        ]
        await responder.reply(embed=make_embed("Richest Members", "\n".join(lines), colour=COLORS["economy"]))
