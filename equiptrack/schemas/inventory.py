from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class OutOfServiceRequest(BaseModel):
    """Body of "mark out of service".

    Every field is optional at the schema level; the lifecycle manager reports
    what is missing in a fixed order.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "date": "2024-01-10",
                "reason": "sensor drift",
                "reportedBy": "J. Lee",
                "notes": "reads 0.4C high",
            }
        },
    )

    date: Optional[str] = None
    reason: Optional[str] = None
    reported_by: Optional[str] = Field(default=None, validation_alias=AliasChoices("reportedBy", "reported_by"))
    notes: Optional[str] = None


class ReturnToServiceRequest(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {"date": "2024-01-12", "resolvedBy": "J. Lee", "notes": "recalibrated"}
        },
    )

    date: Optional[str] = None
    resolved_by: Optional[str] = Field(default=None, validation_alias=AliasChoices("resolvedBy", "resolved_by"))
    notes: Optional[str] = None


class _CamelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class InventoryItemOut(_CamelOut):
    id: str
    company_id: str
    item_type: str
    nickname: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None

    is_out_of_service: bool
    out_of_service_date: Optional[str] = None
    out_of_service_reason: Optional[str] = None
    out_of_service_reported_by: Optional[str] = None
    out_of_service_notes: Optional[str] = None

    return_to_service_verified: Optional[bool] = None
    return_to_service_verified_at: Optional[str] = None
    return_to_service_verified_by: Optional[str] = None
    return_to_service_notes: Optional[str] = None
    return_to_service_resolved_by: Optional[str] = None

    created_at: str
    updated_at: str


class ChangelogEntryOut(_CamelOut):
    id: str
    item_id: str
    sequence: int
    user_id: str
    action: str
    field_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    timestamp: str
    payload: Optional[dict[str, Any]] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class InventoryItemDetailOut(_CamelOut):
    item: InventoryItemOut
    changelog: list[ChangelogEntryOut]


class ServiceHistoryEntryOut(_CamelOut):
    id: str
    action: str
    user_id: str
    timestamp: str
    payload: dict[str, Any]


class ServiceStatsOut(_CamelOut):
    in_service: int
    out_of_service: int
