from titanbot.interactions.responder import Responder, responder_for
from titanbot.interactions.router import (
    ColonStrategy,
    ComponentContext,
    InteractionKind,
    InteractionRouter,
    MatchStrategy,
    PrefixStrategy,
    classify,
)
from titanbot.interactions.tree import CommandRejected, TitanCommandTree, owner_only
from titanbot.interactions.views import OwnerView, PagerView

__all__ = [
    "ColonStrategy",
    "CommandRejected",
    "ComponentContext",
    "InteractionKind",
    "InteractionRouter",
    "MatchStrategy",
    "OwnerView",
    "PagerView",
    "PrefixStrategy",
    "Responder",
    "TitanCommandTree",
    "classify",
    "owner_only",
    "responder_for",
]
