from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from entities import ActivityAction, ActivityLog, User, new_id
from utils import iso_utc_now, to_iso_utc


_log = logging.getLogger("activity")

SYSTEM_ACTOR_ID = "system"
SYSTEM_ACTOR_NAME = "System"


class ActivityLogger:
    """
    Single append path for the audit trail.

    Entries are handed to `sink`, which owns ordering (newest first) and
    persistence. There is no update or delete.
    """

    def __init__(
        self,
        sink: Callable[[ActivityLog], None],
        actor_provider: Callable[[], Optional[User]],
        clock: Callable[[], datetime] | None = None,
    ):
        self._sink = sink
        self._actor_provider = actor_provider
        self._clock = clock

    def _now(self) -> str:
        if self._clock is None:
            return iso_utc_now()
        return to_iso_utc(self._clock())

    def append(
        self,
        action: ActivityAction | str,
        entity_type: str,
        description: str,
        entity_id: str | None = None,
        *,
        actor: Optional[User] = None,
        as_system: bool = False,
    ) -> ActivityLog:
        who = None if as_system else (actor or self._actor_provider())
        entry = ActivityLog(
            id=new_id(),
            timestamp=self._now(),
            actorId=who.id if who else SYSTEM_ACTOR_ID,
            actorName=(who.name or who.username) if who else SYSTEM_ACTOR_NAME,
            action=ActivityAction(action),
            entityType=str(entity_type or ""),
            entityId=entity_id,
            description=str(description or ""),
        )
        self._sink(entry)
        _log.info(
            "action=%s entity=%s id=%s actor=%s %s",
            entry.action,
            entry.entityType,
            entry.entityId or "",
            entry.actorId,
            entry.description,
        )
        return entry
