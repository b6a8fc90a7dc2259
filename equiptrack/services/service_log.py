"""Read-side views over item service state and changelog history."""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundError
from ..crud.changelog import list_item_changelog, list_service_log
from ..crud.inventory import AssetStore, count_items_by_state, list_items_by_state
from ..models.inventory import InventoryItem


def _get_item(db: Session, item_id: str, company_id: str) -> InventoryItem:
    item = AssetStore(db).load_asset(item_id, company_id)
    if item is None:
        raise NotFoundError()
    return item


def list_out_of_service(db: Session, company_id: str) -> list[InventoryItem]:
    """Items currently out of service, most recently pulled first."""

    return list_items_by_state(db, company_id, out_of_service=True)


def list_in_service(db: Session, company_id: str) -> list[InventoryItem]:
    return list_items_by_state(db, company_id, out_of_service=False)


def get_item_detail(db: Session, item_id: str, company_id: str) -> dict[str, Any]:
    item = _get_item(db, item_id, company_id)
    changelog = []
    for row in list_item_changelog(db, item.id):
        entry = row["entry"]
        changelog.append(
            {
                "id": entry.id,
                "item_id": entry.item_id,
                "sequence": entry.sequence,
                "user_id": entry.user_id,
                "action": entry.action,
                "field_name": entry.field_name,
                "old_value": entry.old_value,
                "new_value": entry.new_value,
                "timestamp": entry.timestamp,
                "payload": entry.payload,
                "first_name": row["first_name"],
                "last_name": row["last_name"],
            }
        )
    return {"item": item, "changelog": changelog}


def get_service_history(db: Session, item_id: str, company_id: str) -> list[dict[str, Any]]:
    """Structured out/return snapshots for an item, oldest first.

    Payloads are the values recorded at transition time, so they can differ
    from what the item shows now.
    """

    item = _get_item(db, item_id, company_id)
    return [
        {
            "id": entry.id,
            "action": entry.action,
            "user_id": entry.user_id,
            "timestamp": entry.timestamp,
            "payload": entry.payload or {},
        }
        for entry in list_service_log(db, item.id)
    ]


def get_service_stats(db: Session, company_id: str) -> dict[str, int]:
    counts = count_items_by_state(db, company_id)
    return {"in_service": counts[False], "out_of_service": counts[True]}
