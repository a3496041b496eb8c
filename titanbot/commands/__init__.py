from titanbot.commands.afk import setup_afk
from titanbot.commands.applications import setup_applications
from titanbot.commands.birthday import setup_birthday
from titanbot.commands.botconfig import setup_botconfig
from titanbot.commands.config import setup_config
from titanbot.commands.economy import setup_economy
from titanbot.commands.invites import setup_invites
from titanbot.commands.leveling import setup_leveling
from titanbot.commands.moderation import setup_moderation
from titanbot.commands.utility import setup_utility
from titanbot.interactions import TitanCommandTree


def setup_commands(tree: TitanCommandTree) -> None:
    setup_economy(tree)
    setup_leveling(tree)
    setup_birthday(tree)
    setup_afk(tree)
    setup_applications(tree)
    setup_config(tree)
    setup_moderation(tree)
    setup_invites(tree)
    setup_utility(tree)
    setup_botconfig(tree)
