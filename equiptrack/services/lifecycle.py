"""Out-of-service / return-to-service lifecycle for inventory items.

An item is either IN_SERVICE or OUT_OF_SERVICE. Two transitions move it
between those states:

* ``mark_out_of_service``: IN_SERVICE -> OUT_OF_SERVICE
* ``return_to_service``:   OUT_OF_SERVICE -> IN_SERVICE

Each transition is one database transaction: a conditional UPDATE of the item
(keyed on the stored state, so two racing callers cannot both win) followed by
two changelog rows, a structured ``service_out``/``service_return`` snapshot
and a prose ``status_changed`` summary. Either all three writes commit or
none do.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ConflictError, LifecycleError, NotFoundError, PersistenceError, ValidationError
from ..crud.changelog import AuditLog, details_entry, service_log_entry
from ..crud.inventory import AssetStore
from ..crud.users import IdentityDirectory
from ..db.session import utc_timestamp
from ..models.changelog import SERVICE_OUT, SERVICE_RETURN, STATUS_CHANGED, ChangelogEntry
from ..models.inventory import RETURN_TO_SERVICE_FIELDS, InventoryItem
from ..schemas.inventory import OutOfServiceRequest, ReturnToServiceRequest

logger = logging.getLogger("equiptrack.lifecycle")

NO_COMPANY_MESSAGE = "User not associated with a company"


class ServiceState(str, Enum):
    IN_SERVICE = "in_service"
    OUT_OF_SERVICE = "out_of_service"

    @classmethod
    def of(cls, item: InventoryItem) -> "ServiceState":
        return cls.OUT_OF_SERVICE if item.is_out_of_service else cls.IN_SERVICE

    @property
    def flag(self) -> bool:
        return self is ServiceState.OUT_OF_SERVICE


@dataclass(frozen=True)
class Transition:
    action: str
    source: ServiceState
    target: ServiceState
    conflict_message: str


TRANSITIONS: dict[str, Transition] = {
    SERVICE_OUT: Transition(SERVICE_OUT, ServiceState.IN_SERVICE, ServiceState.OUT_OF_SERVICE, "already out of service"),
    SERVICE_RETURN: Transition(SERVICE_RETURN, ServiceState.OUT_OF_SERVICE, ServiceState.IN_SERVICE, "not out of service"),
}


@dataclass(frozen=True)
class ActorContext:
    """The authenticated user a transition is attributed to.

    ``company_id`` is ``None`` for users outside any company; transitions
    reject them once the request fields have been checked.
    """

    user_id: str
    company_id: str | None


def _required(value: str | None, message: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(message)
    return cleaned


def _optional(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value


def _system_clock() -> datetime:
    return datetime.now(tz=timezone.utc)


class ServiceLifecycleManager:
    """Applies lifecycle transitions for one database session.

    The collaborators must share ``db`` so their writes land in the same
    transaction; they are injectable for tests.
    """

    def __init__(
        self,
        db: Session,
        *,
        assets: AssetStore | None = None,
        audit: AuditLog | None = None,
        identities: IdentityDirectory | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.db = db
        self.assets = assets or AssetStore(db)
        self.audit = audit or AuditLog(db)
        self.identities = identities or IdentityDirectory(db)
        self.clock = clock or _system_clock

    def mark_out_of_service(self, item_id: str, request: OutOfServiceRequest, actor: ActorContext) -> InventoryItem:
        try:
            date = _required(request.date, "date is required")
            reason = _required(request.reason, "reason is required")
            reported_by = _required(request.reported_by, "reportedBy is required")
            notes = _optional(request.notes)

            def effect(item: InventoryItem, now: str) -> tuple[dict[str, Any], list[ChangelogEntry]]:
                values: dict[str, Any] = {
                    "is_out_of_service": True,
                    "out_of_service_date": date,
                    "out_of_service_reason": reason,
                    "out_of_service_reported_by": reported_by,
                    "out_of_service_notes": notes,
                    "updated_at": now,
                }
                values.update({field: None for field in RETURN_TO_SERVICE_FIELDS})
                entries = [
                    service_log_entry(
                        item_id=item.id,
                        user_id=actor.user_id,
                        action=SERVICE_OUT,
                        payload={"date": date, "reason": reason, "notes": notes},
                        timestamp=now,
                    ),
                    details_entry(
                        item_id=item.id,
                        user_id=actor.user_id,
                        action=STATUS_CHANGED,
                        message=f"Marked as out of service: {reason}",
                        timestamp=now,
                    ),
                ]
                return values, entries

            return self._apply(TRANSITIONS[SERVICE_OUT], item_id, actor, effect)
        except (ValidationError, NotFoundError, ConflictError) as exc:
            self._log_rejection(SERVICE_OUT, item_id, actor, exc)
            raise

    def return_to_service(self, item_id: str, request: ReturnToServiceRequest, actor: ActorContext) -> InventoryItem:
        try:
            date = _required(request.date, "date is required")
            resolved_by = _required(request.resolved_by, "resolvedBy is required")
            notes = _optional(request.notes)

            def effect(item: InventoryItem, now: str) -> tuple[dict[str, Any], list[ChangelogEntry]]:
                # Taken from the actor's profile, never from the request body.
                verified_by = self.identities.resolve_actor_display_name(actor.user_id)
                values: dict[str, Any] = {
                    "is_out_of_service": False,
                    "return_to_service_verified": True,
                    "return_to_service_verified_at": date,
                    "return_to_service_verified_by": verified_by,
                    "return_to_service_notes": notes,
                    "return_to_service_resolved_by": resolved_by,
                    "updated_at": now,
                }
                entries = [
                    service_log_entry(
                        item_id=item.id,
                        user_id=actor.user_id,
                        action=SERVICE_RETURN,
                        payload={
                            "date": date,
                            "resolvedBy": resolved_by,
                            "verifiedBy": verified_by,
                            "notes": notes,
                        },
                        timestamp=now,
                    ),
                    details_entry(
                        item_id=item.id,
                        user_id=actor.user_id,
                        action=STATUS_CHANGED,
                        message=f"Returned to service (resolved by {resolved_by}, verified by {verified_by})",
                        timestamp=now,
                    ),
                ]
                return values, entries

            return self._apply(TRANSITIONS[SERVICE_RETURN], item_id, actor, effect)
        except (ValidationError, NotFoundError, ConflictError) as exc:
            self._log_rejection(SERVICE_RETURN, item_id, actor, exc)
            raise

    def _apply(
        self,
        transition: Transition,
        item_id: str,
        actor: ActorContext,
        effect: Callable[[InventoryItem, str], tuple[dict[str, Any], list[ChangelogEntry]]],
    ) -> InventoryItem:
        if not actor.company_id:
            raise ValidationError(NO_COMPANY_MESSAGE)
        try:
            item = self.assets.load_asset(item_id, actor.company_id)
            if item is None:
                self.db.rollback()
                raise NotFoundError()
            if ServiceState.of(item) is not transition.source:
                self.db.rollback()
                raise ConflictError(transition.conflict_message)

            values, entries = effect(item, utc_timestamp(self.clock()))
            swapped = self.assets.compare_and_set(
                item,
                expected_out_of_service=transition.source.flag,
                values=values,
            )
            if not swapped:
                # Another caller moved the item between our read and write.
                self.db.rollback()
                raise ConflictError(transition.conflict_message)
            for entry in entries:
                self.audit.append(entry)
            self.db.commit()
        except LifecycleError:
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(
                "lifecycle.persistence_failed",
                exc_info=True,
                extra={
                    "extra_data": {
                        "action": transition.action,
                        "item_id": item_id,
                        "company_id": actor.company_id,
                        "actor_id": actor.user_id,
                    }
                },
            )
            raise PersistenceError(f"Failed to record {transition.action} for item {item_id}") from exc

        self.db.refresh(item)
        logger.info(
            f"lifecycle.{transition.action}",
            extra={
                "extra_data": {
                    "item_id": item.id,
                    "company_id": actor.company_id,
                    "actor_id": actor.user_id,
                    "state": transition.target.value,
                }
            },
        )
        return item

    def _log_rejection(self, action: str, item_id: str, actor: ActorContext, exc: LifecycleError) -> None:
        logger.info(
            "lifecycle.rejected",
            extra={
                "extra_data": {
                    "action": action,
                    "item_id": item_id,
                    "actor_id": actor.user_id,
                    "code": exc.code,
                    "reason": exc.message,
                }
            },
        )
