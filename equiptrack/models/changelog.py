"""Append-only changelog rows attached to an inventory item."""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import Column, ForeignKey, Integer, Text, UniqueConstraint

from ..db.session import Base, new_id, utc_timestamp

SERVICE_OUT = "service_out"
SERVICE_RETURN = "service_return"
STATUS_CHANGED = "status_changed"

# ``field_name`` tells readers how to interpret ``new_value``.
SERVICE_LOG_FIELD = "service_log"  # JSON payload
DETAILS_FIELD = "details"  # prose summary


class ChangelogEntry(Base):
    __tablename__ = "changelog"

    id = Column(Text, primary_key=True, default=new_id)
    item_id = Column(Text, ForeignKey("inventory_items.id"), nullable=False, index=True)
    # Per-item position, assigned at append time.
    sequence = Column(Integer, nullable=False)
    user_id = Column(Text, ForeignKey("users.id"), nullable=False)
    action = Column(Text, nullable=False)
    field_name = Column(Text, nullable=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    timestamp = Column(Text, nullable=False, default=utc_timestamp)

    __table_args__ = (UniqueConstraint("item_id", "sequence", name="uq_changelog_item_sequence"),)

    @property
    def payload(self) -> dict[str, Any] | None:
        """Decoded snapshot for structured entries, ``None`` for prose ones."""

        if self.field_name != SERVICE_LOG_FIELD or not self.new_value:
            return None
        return json.loads(self.new_value)
