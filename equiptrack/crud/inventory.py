"""Inventory item persistence for the service lifecycle."""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import desc, false, func, select, update
from sqlalchemy.orm import Session

from ..models.inventory import InventoryItem


def _stored_flag():
    # Rows added before the column existed may hold NULL; they count as in service.
    return func.coalesce(InventoryItem.is_out_of_service, false())


class AssetStore:
    """Loads items inside a company and swaps their lifecycle columns."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def load_asset(self, item_id: str, company_id: str) -> InventoryItem | None:
        stmt = select(InventoryItem).where(
            InventoryItem.id == item_id,
            InventoryItem.company_id == company_id,
        )
        # Always read the stored row, not a copy cached in this session.
        return self.db.execute(stmt.execution_options(populate_existing=True)).scalars().first()

    def compare_and_set(
        self,
        item: InventoryItem,
        *,
        expected_out_of_service: bool,
        values: Mapping[str, Any],
    ) -> bool:
        """Write ``values`` only if the stored flag still equals the expected one.

        Returns ``False`` when another writer changed the state between our
        read and this statement. Runs inside the caller's transaction.
        """

        stmt = (
            update(InventoryItem)
            .where(
                InventoryItem.id == item.id,
                InventoryItem.company_id == item.company_id,
                _stored_flag() == expected_out_of_service,
            )
            .values(**dict(values))
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1


def list_items_by_state(db: Session, company_id: str, *, out_of_service: bool) -> list[InventoryItem]:
    stmt = select(InventoryItem).where(
        InventoryItem.company_id == company_id,
        _stored_flag() == out_of_service,
    )
    if out_of_service:
        stmt = stmt.order_by(desc(InventoryItem.out_of_service_date), desc(InventoryItem.updated_at))
    else:
        stmt = stmt.order_by(InventoryItem.item_type, InventoryItem.nickname, InventoryItem.id)
    return list(db.execute(stmt).scalars().all())


def count_items_by_state(db: Session, company_id: str) -> dict[bool, int]:
    flag = _stored_flag()
    stmt = (
        select(flag.label("out_of_service"), func.count(InventoryItem.id).label("total"))
        .where(InventoryItem.company_id == company_id)
        .group_by(flag)
    )
    counts = {False: 0, True: 0}
    for row in db.execute(stmt).all():
        counts[bool(row.out_of_service)] = int(row.total or 0)
    return counts
