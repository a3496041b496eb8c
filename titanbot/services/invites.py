from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from titanbot.config.settings import FAKE_ACCOUNT_AGE_MS
from titanbot.core.timefmt import now_ms
from titanbot.services.records import ScopedRecordAccessor, Unchanged


@dataclass(frozen=True)
class InviteStats:
    total: int
    valid: int
    left: int
    fake: int
    invited_by: int | None


def find_used_invite(before: Mapping[str, int], after: Mapping[str, int]) -> str | None:
    """The invite code whose use count went up between two snapshots.

    A code that vanished from ``after`` was a single-use invite consumed by
    the join. Returns None when the join cannot be attributed.
    """
    for code, uses in after.items():
        if uses > before.get(code, 0):
            return code
    vanished = [code for code in before if code not in after]
    if len(vanished) == 1:
        return vanished[0]
    return None


def is_fake_account(created_at_ms: int, joined_at_ms: int) -> bool:
    return joined_at_ms - created_at_ms < FAKE_ACCOUNT_AGE_MS


def stats_from(record: dict[str, Any]) -> InviteStats:
    invited = len(record.get("invited") or [])
    left = int(record.get("left") or 0)
    fake = int(record.get("fake") or 0)
    invited_by = record.get("invitedBy")
    return InviteStats(
        total=invited + left,
        valid=max(0, invited - fake),
        left=left,
        fake=fake,
        invited_by=int(invited_by) if invited_by else None,
    )


async def track_join(
    records: ScopedRecordAccessor,
    guild_id: int,
    member_id: int,
    inviter_id: int,
    code: str,
    *,
    account_created_ms: int,
    now: int | None = None,
) -> bool:
    """Credit ``inviter_id`` with the join; returns False for self invites and repeat joins."""
    if int(inviter_id) == int(member_id):
        return False
    current = now_ms() if now is None else int(now)
    fake = is_fake_account(int(account_created_ms), current)

    def apply(pair: list[dict[str, Any]]) -> Any:
        inviter, member = pair
        invited = inviter.setdefault("invited", [])
        if str(member_id) in invited:
            return Unchanged(False)
        invited.append(str(member_id))
        if fake:
            inviter["fake"] = int(inviter.get("fake") or 0) + 1
        member.update(
            invitedBy=str(inviter_id),
            inviteCode=code,
            isFake=fake,
            joinedAt=current,
        )
        return True

    return await records.mutate_many(
        [("invites", guild_id, inviter_id), ("invites", guild_id, member_id)],
        apply,
    )


async def track_leave(records: ScopedRecordAccessor, guild_id: int, member_id: int) -> int | None:
    """Move a departing member from their inviter's invited list to its left count.

    Returns the inviter's id, or None when the member's join was never attributed.
    """
    member = await records.find("invites", guild_id, member_id)
    if member is None or not member.get("invitedBy"):
        return None
    inviter_id = int(member["invitedBy"])
    if inviter_id == int(member_id):
        return None

    def apply(pair: list[dict[str, Any]]) -> Any:
        inviter, departed = pair
        invited = inviter.setdefault("invited", [])
        if str(member_id) not in invited:
            return Unchanged(None)
        invited.remove(str(member_id))
        if departed.get("isFake"):
            inviter["fake"] = max(0, int(inviter.get("fake") or 0) - 1)
        inviter["left"] = int(inviter.get("left") or 0) + 1
        departed.update(invitedBy=None, inviteCode=None, isFake=False)
        return inviter_id

    return await records.mutate_many(
        [("invites", guild_id, inviter_id), ("invites", guild_id, member_id)],
        apply,
    )


async def get_invite_stats(records: ScopedRecordAccessor, guild_id: int, user_id: int) -> InviteStats:
    return stats_from(await records.get("invites", guild_id, user_id))


async def invite_leaderboard(
    records: ScopedRecordAccessor,
    guild_id: int,
    member_ids: Iterable[int],
    *,
    limit: int = 10,
) -> list[tuple[int, InviteStats]]:
    """Rank members by valid invites; members who never invited anyone are skipped."""
    rows: list[tuple[int, InviteStats]] = []
    for member_id in member_ids:
        record = await records.find("invites", guild_id, member_id)
        if record is None:
            continue
        stats = stats_from(record)
        if stats.total > 0:
            rows.append((int(member_id), stats))
    rows.sort(key=lambda row: (-row[1].valid, -row[1].total, row[0]))
    return rows[: max(1, int(limit))]
