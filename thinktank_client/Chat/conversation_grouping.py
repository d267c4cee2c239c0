# conversation_grouping.py
# Description: Sidebar views over the conversation list: search filtering and date buckets.
#
# Imports
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional, Tuple
#
# Local Imports
from thinktank_client.Constants import GROUP_TODAY, GROUP_YESTERDAY, GROUP_THIS_WEEK, GROUP_OLDER, THIS_WEEK_DAYS
from .chat_models import Conversation
#
########################################################################################################################
#
# Functions:

class DateGroup(str, Enum):
    TODAY = GROUP_TODAY
    YESTERDAY = GROUP_YESTERDAY
    THIS_WEEK = GROUP_THIS_WEEK
    OLDER = GROUP_OLDER


GROUP_ORDER = (DateGroup.TODAY, DateGroup.YESTERDAY, DateGroup.THIS_WEEK, DateGroup.OLDER)


def filter_conversations(conversations: Iterable[Conversation], search_text: Optional[str]) -> List[Conversation]:
    """Case-insensitive match on title or any message content; blank search keeps everything."""
    conversations = list(conversations)
    if not search_text or not search_text.strip():
        return conversations
    needle = search_text.lower()
    return [
        c for c in conversations
        if needle in c.title.lower() or any(needle in m.content.lower() for m in c.messages)
    ]


def _local_date(value: datetime) -> date:
    return value.astimezone().date() if value.tzinfo else value.date()


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.astimezone()


def date_group_for(updated_at: datetime, now: datetime) -> DateGroup:
    today = _local_date(now)
    day = _local_date(updated_at)
    if day >= today:
        return DateGroup.TODAY
    if day == today - timedelta(days=1):
        return DateGroup.YESTERDAY
    if _as_aware(updated_at) > _as_aware(now) - timedelta(days=THIS_WEEK_DAYS):
        return DateGroup.THIS_WEEK
    return DateGroup.OLDER


def group_conversations_by_date(
    conversations: Iterable[Conversation], now: Optional[datetime] = None
) -> List[Tuple[DateGroup, List[Conversation]]]:
    """
    Buckets conversations by `updated_at`. Today and Yesterday follow the local calendar
    date; This Week covers anything else from the last seven days.

    Groups come back in Today, Yesterday, This Week, Older order; empty groups are left
    out and each group keeps the input order.
    """
    now = now if now is not None else datetime.now().astimezone()
    buckets = {group: [] for group in GROUP_ORDER}
    for conversation in conversations:
        buckets[date_group_for(conversation.updated_at, now)].append(conversation)
    return [(group, buckets[group]) for group in GROUP_ORDER if buckets[group]]

#
# End of conversation_grouping.py
########################################################################################################################
