"""Append and read changelog entries.

Entries are only ever inserted; nothing in this module updates or deletes
them.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from sqlalchemy import asc, desc, func, select
from sqlalchemy.orm import Session

from ..db.session import new_id, utc_timestamp
from ..models.changelog import (
    DETAILS_FIELD,
    SERVICE_LOG_FIELD,
    SERVICE_OUT,
    SERVICE_RETURN,
    ChangelogEntry,
)
from ..models.company import User


class AuditLog:
    def __init__(self, db: Session) -> None:
        self.db = db

    def append(self, entry: ChangelogEntry) -> ChangelogEntry:
        """Stage ``entry`` in the current transaction; the caller commits."""

        if entry.id is None:
            entry.id = new_id()
        if entry.timestamp is None:
            entry.timestamp = utc_timestamp()
        entry.sequence = self._next_sequence(entry.item_id)
        self.db.add(entry)
        self.db.flush()
        return entry

    def _next_sequence(self, item_id: str) -> int:
        stmt = select(func.coalesce(func.max(ChangelogEntry.sequence), 0)).where(ChangelogEntry.item_id == item_id)
        return int(self.db.execute(stmt).scalar_one()) + 1


def service_log_entry(
    *, item_id: str, user_id: str, action: str, payload: Mapping[str, Any], timestamp: str
) -> ChangelogEntry:
    return ChangelogEntry(
        item_id=item_id,
        user_id=user_id,
        action=action,
        field_name=SERVICE_LOG_FIELD,
        old_value=None,
        new_value=json.dumps(dict(payload)),
        timestamp=timestamp,
    )


def details_entry(*, item_id: str, user_id: str, action: str, message: str, timestamp: str) -> ChangelogEntry:
    return ChangelogEntry(
        item_id=item_id,
        user_id=user_id,
        action=action,
        field_name=DETAILS_FIELD,
        old_value=None,
        new_value=message,
        timestamp=timestamp,
    )


def list_item_changelog(db: Session, item_id: str) -> list[dict[str, Any]]:
    """Newest-first changelog for an item with the actor's name attached."""

    stmt = (
        select(ChangelogEntry, User.first_name, User.last_name)
        .outerjoin(User, User.id == ChangelogEntry.user_id)
        .where(ChangelogEntry.item_id == item_id)
        .order_by(desc(ChangelogEntry.sequence))
    )
    return [
        {"entry": entry, "first_name": first_name, "last_name": last_name}
        for entry, first_name, last_name in db.execute(stmt).all()
    ]


def list_service_log(db: Session, item_id: str) -> list[ChangelogEntry]:
    stmt = (
        select(ChangelogEntry)
        .where(
            ChangelogEntry.item_id == item_id,
            ChangelogEntry.action.in_((SERVICE_OUT, SERVICE_RETURN)),
        )
        .order_by(asc(ChangelogEntry.sequence))
    )
    return list(db.execute(stmt).scalars().all())
