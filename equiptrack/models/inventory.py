"""Inventory item model.

WHAT: The asset row whose in/out-of-service state the lifecycle core owns.
WHEN: Loaded and conditionally updated by ``crud.inventory``.
WHY: Calibration, maintenance and the rest of the item record are managed
elsewhere; only the identifying and lifecycle columns are mapped here.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, ForeignKey, Index, Text, false

from ..db.session import Base, new_id, utc_timestamp

# Cleared whenever an item goes back out of service so a previous
# verification never carries into a new out-of-service period.
RETURN_TO_SERVICE_FIELDS = (
    "return_to_service_verified",
    "return_to_service_verified_at",
    "return_to_service_verified_by",
    "return_to_service_notes",
    "return_to_service_resolved_by",
)


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(Text, primary_key=True, default=new_id)
    company_id = Column(Text, ForeignKey("companies.id"), nullable=False, index=True)
    item_type = Column(Text, nullable=False, default="equipment")
    nickname = Column(Text, nullable=True)
    make = Column(Text, nullable=True)
    model = Column(Text, nullable=True)
    serial_number = Column(Text, nullable=True)

    is_out_of_service = Column(Boolean, nullable=False, default=False, server_default=false())
    out_of_service_date = Column(Text, nullable=True)
    out_of_service_reason = Column(Text, nullable=True)
    out_of_service_reported_by = Column(Text, nullable=True)
    out_of_service_notes = Column(Text, nullable=True)

    return_to_service_verified = Column(Boolean, nullable=True)
    return_to_service_verified_at = Column(Text, nullable=True)
    return_to_service_verified_by = Column(Text, nullable=True)
    return_to_service_notes = Column(Text, nullable=True)
    return_to_service_resolved_by = Column(Text, nullable=True)

    created_at = Column(Text, nullable=False, default=utc_timestamp)
    updated_at = Column(Text, nullable=False, default=utc_timestamp)

    __table_args__ = (Index("ix_inventory_items_company_oos", "company_id", "is_out_of_service"),)
