"""
Purpose: Derived views, computed on read and never stored.
- merged assistant list (built-ins + visible custom GPTs)
- pinned / browsable splits with search
- visible chat list, recency groups and human-friendly time labels
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Iterable

from .models import (
    GPT,
    Assistant,
    AssistantStats,
    Chat,
    ChatGroups,
    RatingDistribution,
    Voice,
)
from .gpt_store import visible_to

# Custom GPTs carry no rating history; listings show one five-star rating.
CUSTOM_GPT_STATS = AssistantStats(
    users=0, rating=5.0, ratings=RatingDistribution(five=1)
)


def gpt_as_assistant(gpt: GPT) -> Assistant:
    """Project a custom GPT into the display shape used by listings."""
    return Assistant(
        id=gpt.id,
        name=gpt.name,
        description=gpt.description,
        avatar=gpt.avatar,
        role=gpt.role,
        is_primary=False,
        voice=Voice.ALLOY,
        stats=CUSTOM_GPT_STATS,
    )


def merged_assistants(
    builtins: Iterable[Assistant],
    gpts: Iterable[GPT],
    *,
    privileged: bool = False,
) -> list[Assistant]:
    """
    Built-ins followed by visible custom GPTs. Ids are not deduplicated;
    callers must not create GPTs that reuse a built-in id.
    """
    return [
        *builtins,
        *(gpt_as_assistant(g) for g in gpts if visible_to(g, privileged=privileged)),
    ]


def _matches(assistant: Assistant, query: str) -> bool:
    q = query.lower()
    return q in assistant.name.lower() or q in assistant.role.lower()


def pinned_assistants(assistants: Iterable[Assistant], pinned_ids: Iterable[str]) -> list[Assistant]:
    pinned = set(pinned_ids)
    return [a for a in assistants if a.id in pinned]


def browsable_assistants(
    assistants: Iterable[Assistant],
    pinned_ids: Iterable[str],
    query: str = "",
) -> list[Assistant]:
    pinned = set(pinned_ids)
    return [a for a in assistants if a.id not in pinned and _matches(a, query)]


def _clock_time(ts: datetime) -> str:
    hour = ts.hour % 12 or 12
    suffix = "AM" if ts.hour < 12 else "PM"
    return f"{hour}:{ts.minute:02d} {suffix}"


def format_chat_time(ts: datetime, now: datetime) -> str:
    """
    Sidebar label for a chat timestamp:
    '3:05 PM', 'Yesterday 3:05 PM', 'Monday 3:05 PM', 'Mar 4, 3:05 PM', 'March 4, 3:05 PM'.
    """
    if ts.date() == now.date():
        return _clock_time(ts)
    if ts.date() == (now - timedelta(days=1)).date():
        return f"Yesterday {_clock_time(ts)}"
    if ts > now - timedelta(days=7):
        return f"{ts:%A} {_clock_time(ts)}"
    if ts > now - timedelta(days=30):
        return f"{ts:%b} {ts.day}, {_clock_time(ts)}"
    return f"{ts:%B} {ts.day}, {_clock_time(ts)}"


def visible_chats(
    chats: Iterable[Chat],
    assistants: Iterable[Assistant],
    *,
    now: datetime,
    query: str = "",
) -> list[Chat]:
    """Chats the user has interacted with and not archived, filtered by search."""
    names = {a.id: a.name for a in assistants}
    q = query.lower()
    out = []
    for chat in chats:
        if not chat.has_interaction or chat.archived:
            continue
        if q:
            haystacks = (
                chat.title,
                names.get(chat.assistant_id, ""),
                format_chat_time(chat.last_updated, now),
            )
            if not any(q in h.lower() for h in haystacks):
                continue
        out.append(chat)
    return out


def group_chats_by_recency(chats: Iterable[Chat], now: datetime) -> ChatGroups:
    """Bucket chats by last_updated against midnight-aligned day boundaries."""
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    yesterday = today - timedelta(days=1)
    last_week = today - timedelta(days=7)

    groups = ChatGroups()
    for chat in chats:
        ts = chat.last_updated
        if ts >= today:
            groups.today.append(chat)
        elif ts >= yesterday:
            groups.yesterday.append(chat)
        elif ts >= last_week:
            groups.last_week.append(chat)
        else:
            groups.older.append(chat)
    return groups
