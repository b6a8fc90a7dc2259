"""Out-of-service / return-to-service transitions against an in-memory database."""

import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from equiptrack.db.session import Base
from equiptrack.core.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from equiptrack.crud.changelog import AuditLog
from equiptrack.models.changelog import ChangelogEntry
from equiptrack.models.company import Company, User
from equiptrack.models.inventory import InventoryItem
from equiptrack.schemas.inventory import OutOfServiceRequest, ReturnToServiceRequest
from equiptrack.services.lifecycle import ActorContext, ServiceLifecycleManager, ServiceState

# Ensure models are imported so metadata is populated
from equiptrack.models import changelog as changelog_model  # noqa: F401
from equiptrack.models import company as company_model  # noqa: F401
from equiptrack.models import inventory as inventory_model  # noqa: F401


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def seeded(db_session):
    company = Company(name="Acme Labs")
    other = Company(name="Other Co")
    db_session.add_all([company, other])
    db_session.flush()
    user = User(company_id=company.id, email="a.patel@example.com", first_name="A.", last_name="Patel")
    item = InventoryItem(company_id=company.id, nickname="Bath thermometer", make="Fluke", model="1524")
    db_session.add_all([user, item])
    db_session.commit()
    return {
        "company": company,
        "other": other,
        "user": user,
        "item": item,
        "actor": ActorContext(user_id=user.id, company_id=company.id),
    }


def _out(date="2024-01-10", reason="sensor drift", reported_by="J. Lee", notes=None):
    return OutOfServiceRequest(date=date, reason=reason, reportedBy=reported_by, notes=notes)


def _back(date="2024-01-12", resolved_by="J. Lee", notes=None):
    return ReturnToServiceRequest(date=date, resolvedBy=resolved_by, notes=notes)


def _entries(db, item_id):
    stmt = select(ChangelogEntry).where(ChangelogEntry.item_id == item_id).order_by(ChangelogEntry.sequence)
    return db.execute(stmt).scalars().all()


def test_mark_out_of_service_records_reason_and_state(db_session, seeded):
    manager = ServiceLifecycleManager(db_session)

    item = manager.mark_out_of_service(seeded["item"].id, _out(reason="  sensor drift  ", notes="reads high"), seeded["actor"])

    assert item.is_out_of_service is True
    assert ServiceState.of(item) is ServiceState.OUT_OF_SERVICE
    assert item.out_of_service_date == "2024-01-10"
    assert item.out_of_service_reason == "sensor drift"
    assert item.out_of_service_reported_by == "J. Lee"
    assert item.out_of_service_notes == "reads high"


def test_mark_out_of_service_clears_previous_verification(db_session, seeded):
    item = seeded["item"]
    item.return_to_service_verified = True
    item.return_to_service_verified_at = "2023-06-01"
    item.return_to_service_verified_by = "Old Verifier"
    item.return_to_service_notes = "previous cycle"
    item.return_to_service_resolved_by = "Old Tech"
    db_session.commit()

    updated = ServiceLifecycleManager(db_session).mark_out_of_service(item.id, _out(), seeded["actor"])

    assert updated.return_to_service_verified is None
    assert updated.return_to_service_verified_at is None
    assert updated.return_to_service_verified_by is None
    assert updated.return_to_service_notes is None
    assert updated.return_to_service_resolved_by is None


def test_second_mark_out_of_service_conflicts(db_session, seeded):
    manager = ServiceLifecycleManager(db_session)
    manager.mark_out_of_service(seeded["item"].id, _out(), seeded["actor"])

    with pytest.raises(ConflictError) as excinfo:
        manager.mark_out_of_service(seeded["item"].id, _out(reason="dropped"), seeded["actor"])

    assert excinfo.value.message == "already out of service"
    refreshed = db_session.get(InventoryItem, seeded["item"].id)
    assert refreshed.out_of_service_reason == "sensor drift"


def test_return_to_service_while_in_service_conflicts(db_session, seeded):
    with pytest.raises(ConflictError) as excinfo:
        ServiceLifecycleManager(db_session).return_to_service(seeded["item"].id, _back(), seeded["actor"])

    assert excinfo.value.message == "not out of service"
    assert _entries(db_session, seeded["item"].id) == []


@pytest.mark.parametrize(
    "start_out_of_service, action, allowed",
    [
        (False, "out", True),
        (False, "back", False),
        (True, "out", False),
        (True, "back", True),
    ],
)
def test_transition_table(db_session, seeded, start_out_of_service, action, allowed):
    item = seeded["item"]
    item.is_out_of_service = start_out_of_service
    db_session.commit()
    manager = ServiceLifecycleManager(db_session)

    def run():
        if action == "out":
            return manager.mark_out_of_service(item.id, _out(), seeded["actor"])
        return manager.return_to_service(item.id, _back(), seeded["actor"])

    if allowed:
        assert run().is_out_of_service is (action == "out")
    else:
        with pytest.raises(ConflictError):
            run()
        assert db_session.get(InventoryItem, item.id).is_out_of_service is start_out_of_service


def test_return_to_service_keeps_last_episode_and_uses_profile_name(db_session, seeded):
    manager = ServiceLifecycleManager(db_session)
    manager.mark_out_of_service(seeded["item"].id, _out(), seeded["actor"])

    item = manager.return_to_service(seeded["item"].id, _back(resolved_by=" J. Lee ", notes="recalibrated"), seeded["actor"])

    assert item.is_out_of_service is False
    assert item.return_to_service_verified is True
    assert item.return_to_service_verified_at == "2024-01-12"
    assert item.return_to_service_verified_by == "A. Patel"
    assert item.return_to_service_resolved_by == "J. Lee"
    assert item.return_to_service_notes == "recalibrated"
    assert item.out_of_service_reason == "sensor drift"
    assert item.out_of_service_date == "2024-01-10"


def test_verifier_falls_back_to_unknown_user(db_session, seeded):
    seeded["user"].last_name = None
    db_session.commit()
    manager = ServiceLifecycleManager(db_session)
    manager.mark_out_of_service(seeded["item"].id, _out(), seeded["actor"])

    item = manager.return_to_service(seeded["item"].id, _back(), seeded["actor"])

    assert item.return_to_service_verified_by == "Unknown User"


@pytest.mark.parametrize(
    "request_kwargs, message",
    [
        ({"date": None, "reason": None}, "date is required"),
        ({"date": "", "reason": "x", "reported_by": None}, "date is required"),
        ({"reason": "   "}, "reason is required"),
        ({"reason": None, "reported_by": None}, "reason is required"),
        ({"reported_by": "  "}, "reportedBy is required"),
    ],
)
def test_mark_out_of_service_validation_order(db_session, seeded, request_kwargs, message):
    with pytest.raises(ValidationError) as excinfo:
        ServiceLifecycleManager(db_session).mark_out_of_service(seeded["item"].id, _out(**request_kwargs), seeded["actor"])

    assert excinfo.value.message == message


def test_validation_runs_before_lookup(db_session, seeded):
    with pytest.raises(ValidationError) as excinfo:
        ServiceLifecycleManager(db_session).mark_out_of_service("missing", _out(date=None), seeded["actor"])

    assert excinfo.value.message == "date is required"


def test_whitespace_only_date_counts_as_missing(db_session, seeded):
    manager = ServiceLifecycleManager(db_session)

    with pytest.raises(ValidationError) as excinfo:
        manager.mark_out_of_service(seeded["item"].id, _out(date="   "), seeded["actor"])
    assert excinfo.value.message == "date is required"

    item = manager.mark_out_of_service(seeded["item"].id, _out(date=" 2024-01-10 ", reason=" drift "), seeded["actor"])
    assert item.out_of_service_date == "2024-01-10"
    assert item.out_of_service_reason == "drift"

    with pytest.raises(ValidationError) as excinfo:
        manager.return_to_service(seeded["item"].id, _back(date="\t"), seeded["actor"])
    assert excinfo.value.message == "date is required"


def test_user_without_company_is_rejected_after_field_checks(db_session, seeded):
    manager = ServiceLifecycleManager(db_session)
    loner = ActorContext(user_id=seeded["user"].id, company_id=None)

    with pytest.raises(ValidationError) as excinfo:
        manager.mark_out_of_service(seeded["item"].id, _out(date=None), loner)
    assert excinfo.value.message == "date is required"

    with pytest.raises(ValidationError) as excinfo:
        manager.mark_out_of_service(seeded["item"].id, _out(), loner)
    assert excinfo.value.message == "User not associated with a company"
    assert db_session.get(InventoryItem, seeded["item"].id).is_out_of_service is False
    assert _entries(db_session, seeded["item"].id) == []


@pytest.mark.parametrize(
    "request_kwargs, message",
    [
        ({"date": None, "resolved_by": None}, "date is required"),
        ({"resolved_by": " "}, "resolvedBy is required"),
    ],
)
def test_return_to_service_validation_leaves_item_unchanged(db_session, seeded, request_kwargs, message):
    manager = ServiceLifecycleManager(db_session)
    manager.mark_out_of_service(seeded["item"].id, _out(), seeded["actor"])
    before = len(_entries(db_session, seeded["item"].id))

    with pytest.raises(ValidationError) as excinfo:
        manager.return_to_service(seeded["item"].id, _back(**request_kwargs), seeded["actor"])

    assert excinfo.value.message == message
    assert db_session.get(InventoryItem, seeded["item"].id).is_out_of_service is True
    assert len(_entries(db_session, seeded["item"].id)) == before


def test_item_in_another_company_is_not_found(db_session, seeded):
    outsider = ActorContext(user_id=seeded["user"].id, company_id=seeded["other"].id)

    with pytest.raises(NotFoundError):
        ServiceLifecycleManager(db_session).mark_out_of_service(seeded["item"].id, _out(), outsider)
    with pytest.raises(NotFoundError):
        ServiceLifecycleManager(db_session).mark_out_of_service("does-not-exist", _out(), seeded["actor"])

    assert db_session.get(InventoryItem, seeded["item"].id).is_out_of_service is False


def test_each_transition_appends_structured_then_prose_entry(db_session, seeded):
    clock = lambda: datetime(2024, 1, 10, 8, 30, tzinfo=timezone.utc)  # noqa: E731
    manager = ServiceLifecycleManager(db_session, clock=clock)
    item_id = seeded["item"].id

    item = manager.mark_out_of_service(item_id, _out(), seeded["actor"])
    entries = _entries(db_session, item_id)
    assert item.updated_at == "2024-01-10T08:30:00Z"
    assert [e.action for e in entries] == ["service_out", "status_changed"]
    assert entries[0].payload == {"date": "2024-01-10", "reason": "sensor drift", "notes": None}
    assert entries[1].new_value == "Marked as out of service: sensor drift"
    assert all(e.user_id == seeded["user"].id and e.timestamp == "2024-01-10T08:30:00Z" for e in entries)
    first_snapshot = entries[0].new_value

    manager.return_to_service(item_id, _back(notes="ok"), seeded["actor"])
    entries = _entries(db_session, item_id)
    assert [e.action for e in entries] == ["service_out", "status_changed", "service_return", "status_changed"]
    assert [e.sequence for e in entries] == [1, 2, 3, 4]
    assert entries[2].payload == {
        "date": "2024-01-12",
        "resolvedBy": "J. Lee",
        "verifiedBy": "A. Patel",
        "notes": "ok",
    }
    assert entries[3].new_value == "Returned to service (resolved by J. Lee, verified by A. Patel)"
    assert entries[0].new_value == first_snapshot


def test_changelog_only_grows(db_session, seeded):
    manager = ServiceLifecycleManager(db_session)
    item_id = seeded["item"].id
    counts = []

    def count():
        return db_session.execute(
            select(func.count()).select_from(ChangelogEntry).where(ChangelogEntry.item_id == item_id)
        ).scalar_one()

    for _ in range(2):
        manager.mark_out_of_service(item_id, _out(), seeded["actor"])
        counts.append(count())
        with pytest.raises(ConflictError):
            manager.mark_out_of_service(item_id, _out(), seeded["actor"])
        counts.append(count())
        manager.return_to_service(item_id, _back(), seeded["actor"])
        counts.append(count())

    assert counts == sorted(counts)
    assert counts[-1] == 8


class FailingAuditLog(AuditLog):
    def append(self, entry):
        raise OperationalError("INSERT INTO changelog", {}, Exception("disk I/O error"))


def test_audit_failure_rolls_back_item_update(db_session, seeded, caplog):
    manager = ServiceLifecycleManager(db_session, audit=FailingAuditLog(db_session))

    with caplog.at_level(logging.ERROR, logger="equiptrack.lifecycle"):
        with pytest.raises(PersistenceError):
            manager.mark_out_of_service(seeded["item"].id, _out(), seeded["actor"])

    item = db_session.get(InventoryItem, seeded["item"].id)
    assert item.is_out_of_service is False
    assert item.out_of_service_reason is None
    assert _entries(db_session, item.id) == []
    assert any(record.getMessage() == "lifecycle.persistence_failed" for record in caplog.records)


def test_business_rejections_are_logged_as_info(db_session, seeded, caplog):
    with caplog.at_level(logging.INFO, logger="equiptrack.lifecycle"):
        with pytest.raises(ConflictError):
            ServiceLifecycleManager(db_session).return_to_service(seeded["item"].id, _back(), seeded["actor"])

    rejected = [r for r in caplog.records if r.getMessage() == "lifecycle.rejected"]
    assert rejected and rejected[0].levelno == logging.INFO
    assert rejected[0].extra_data["code"] == "conflict"


def test_documented_walkthrough(db_session, seeded):
    manager = ServiceLifecycleManager(db_session)
    item_id = seeded["item"].id
    lee = seeded["actor"]

    item = manager.mark_out_of_service(
        item_id, OutOfServiceRequest(date="2024-01-10", reason="sensor drift", reportedBy="J. Lee"), lee
    )
    assert item.is_out_of_service is True
    assert item.out_of_service_reason == "sensor drift"

    with pytest.raises(ValidationError) as excinfo:
        manager.return_to_service(item_id, ReturnToServiceRequest(date="2024-01-10"), lee)
    assert excinfo.value.message == "resolvedBy is required"
    assert db_session.get(InventoryItem, item_id).is_out_of_service is True

    with pytest.raises(ConflictError) as excinfo:
        manager.mark_out_of_service(item_id, _out(), lee)
    assert excinfo.value.message == "already out of service"

    item = manager.return_to_service(item_id, ReturnToServiceRequest(date="2024-01-12", resolvedBy="J. Lee"), lee)
    assert item.is_out_of_service is False
    assert item.return_to_service_verified_by == "A. Patel"
    assert item.out_of_service_reason == "sensor drift"
