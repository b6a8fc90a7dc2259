from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db.session import get_db
from ..deps.auth import get_actor, get_company_actor
from ..schemas.inventory import (
    InventoryItemDetailOut,
    InventoryItemOut,
    OutOfServiceRequest,
    ReturnToServiceRequest,
    ServiceHistoryEntryOut,
    ServiceStatsOut,
)
from ..services import service_log
from ..services.lifecycle import ActorContext, ServiceLifecycleManager

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


@router.get("", response_model=list[InventoryItemOut])
def api_list_in_service(actor: ActorContext = Depends(get_company_actor), db: Session = Depends(get_db)):
    return service_log.list_in_service(db, actor.company_id)


@router.get("/out-of-service", response_model=list[InventoryItemOut])
def api_list_out_of_service(actor: ActorContext = Depends(get_company_actor), db: Session = Depends(get_db)):
    return service_log.list_out_of_service(db, actor.company_id)


@router.get("/stats/overview", response_model=ServiceStatsOut)
def api_service_stats(actor: ActorContext = Depends(get_company_actor), db: Session = Depends(get_db)):
    return service_log.get_service_stats(db, actor.company_id)


@router.get("/{item_id}", response_model=InventoryItemDetailOut)
def api_item_detail(item_id: str, actor: ActorContext = Depends(get_company_actor), db: Session = Depends(get_db)):
    return service_log.get_item_detail(db, item_id, actor.company_id)


@router.get("/{item_id}/service-history", response_model=list[ServiceHistoryEntryOut])
def api_service_history(item_id: str, actor: ActorContext = Depends(get_company_actor), db: Session = Depends(get_db)):
    return service_log.get_service_history(db, item_id, actor.company_id)


@router.patch("/{item_id}/out-of-service", response_model=InventoryItemOut)
def api_mark_out_of_service(
    item_id: str,
    payload: Optional[OutOfServiceRequest] = None,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return ServiceLifecycleManager(db).mark_out_of_service(item_id, payload or OutOfServiceRequest(), actor)


@router.patch("/{item_id}/return-to-service", response_model=InventoryItemOut)
def api_return_to_service(
    item_id: str,
    payload: Optional[ReturnToServiceRequest] = None,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return ServiceLifecycleManager(db).return_to_service(item_id, payload or ReturnToServiceRequest(), actor)
