from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from saasdb.clock import FixedClock
from saasdb.apps.accounts import models as account_models
from saasdb.apps.audits import models as audit_models
from saasdb.apps.software import models as software_models
from saasdb.apps.software import router as software_router
from saasdb.apps.software import schemas as software_schemas
from saasdb.apps.software import scope as software_scope

Role = account_models.UserRole


def _create_department(db, name: str) -> account_models.Department:
    dept = account_models.Department(name=name)
    db.add(dept)
    db.commit()
    return dept


def _create_user(db, *, email: str, role: Role, departments=()) -> account_models.User:
    user = account_models.User(
        name=email.split("@")[0].title(),
        email=email,
        role=role,
        hashed_password="hash",
        is_active=True,
    )
    user.departments = list(departments)
    db.add(user)
    db.commit()
    return user


def _create_software(db, *, name: str, owner=None, departments=(), **fields) -> software_models.Software:
    values = {
        "vendor": "Acme",
        "cost": Decimal("50.00"),
        "payment_frequency": software_models.PaymentFrequency.ANNUALLY,
        "contract_start_date": date(2024, 7, 1),
        "renewal_date": date(2025, 7, 1),
        "audit_frequency": software_models.AuditFrequency.QUARTERLY,
    }
    values.update(fields)
    software = software_models.Software(
        name=name,
        owner_id=owner.id if owner is not None else None,
        **values,
    )
    software.departments = list(departments)
    db.add(software)
    db.commit()
    return software


def _seed(db):
    eng = _create_department(db, "Engineering")
    fin = _create_department(db, "Finance")
    people = {
        "admin": _create_user(db, email="admin@example.com", role=Role.ADMINISTRATOR),
        "owner": _create_user(db, email="owner@example.com", role=Role.SOFTWARE_OWNER),
        "other_owner": _create_user(db, email="other@example.com", role=Role.SOFTWARE_OWNER),
        "head": _create_user(db, email="head@example.com", role=Role.DEPARTMENT_HEAD, departments=[eng]),
        "lonely_head": _create_user(db, email="lonely@example.com", role=Role.DEPARTMENT_HEAD),
    }
    software = {
        "github": _create_software(db, name="GitHub", owner=people["owner"], departments=[eng]),
        "quickbooks": _create_software(db, name="QuickBooks", owner=people["other_owner"], departments=[fin]),
        "wiki": _create_software(db, name="Wiki"),
    }
    return eng, fin, people, software


def _list_names(db, user) -> list[str]:
    rows = software_router.list_software(
        status_filter=None,
        search=None,
        limit=200,
        offset=0,
        db=db,
        current_user=user,
    )
    return [row.name for row in rows]


def _pending_audits(db, software_id: str):
    return (
        db.query(audit_models.Audit)
        .filter(
            audit_models.Audit.software_id == software_id,
            audit_models.Audit.completed_date.is_(None),
        )
        .all()
    )


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


def test_scope_for_maps_each_role():
    admin = account_models.User(id="a", role=Role.ADMINISTRATOR)
    owner = account_models.User(id="o", role=Role.SOFTWARE_OWNER)
    head = account_models.User(id="h", role=Role.DEPARTMENT_HEAD)

    assert isinstance(software_scope.scope_for(admin), software_scope.UnrestrictedScope)
    assert software_scope.scope_for(owner) == software_scope.OwnerScope(user_id="o")
    assert software_scope.scope_for(head) == software_scope.DepartmentScope(department_ids=frozenset())
    assert isinstance(software_scope.scope_for(None), software_scope.NoAccessScope)


def test_scope_base_class_is_abstract():
    with pytest.raises(TypeError):
        software_scope.SoftwareScope()


def test_list_is_filtered_by_role(db_session):
    _, _, people, _ = _seed(db_session)

    assert _list_names(db_session, people["admin"]) == ["GitHub", "QuickBooks", "Wiki"]
    assert _list_names(db_session, people["owner"]) == ["GitHub"]
    assert _list_names(db_session, people["head"]) == ["GitHub"]
    assert _list_names(db_session, people["lonely_head"]) == []


def test_list_supports_status_and_search_filters(db_session):
    _, _, people, software = _seed(db_session)
    software["wiki"].status = software_models.SoftwareStatus.INACTIVE
    db_session.commit()

    active = software_router.list_software(
        status_filter=software_models.SoftwareStatus.ACTIVE,
        search=None,
        limit=200,
        offset=0,
        db=db_session,
        current_user=people["admin"],
    )
    searched = software_router.list_software(
        status_filter=None,
        search="book",
        limit=200,
        offset=0,
        db=db_session,
        current_user=people["admin"],
    )

    assert [row.name for row in active] == ["GitHub", "QuickBooks"]
    assert [row.name for row in searched] == ["QuickBooks"]


def test_out_of_scope_record_is_not_found(db_session):
    _, _, people, software = _seed(db_session)

    assert software_router.get_software(
        software_id=software["github"].id, db=db_session, current_user=people["head"]
    ).name == "GitHub"

    for user_key in ("owner", "head", "lonely_head"):
        with pytest.raises(HTTPException) as exc:
            software_router.get_software(
                software_id=software["quickbooks"].id,
                db=db_session,
                current_user=people[user_key],
            )
        assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        software_router.get_contract_history(
            software_id=software["quickbooks"].id, db=db_session, current_user=people["owner"]
        )
    assert exc.value.status_code == 404


# ---------------------------------------------------------------------------
# Create / update
# ---------------------------------------------------------------------------


def test_owner_creates_record_owned_by_themselves_with_first_audit(db_session, today):
    eng, _, people, _ = _seed(db_session)

    created = software_router.create_software(
        payload=software_schemas.SoftwareCreate(
            name="Linear",
            owner_id=people["other_owner"].id,
            audit_frequency=software_models.AuditFrequency.MONTHLY,
            department_ids=[eng.id],
        ),
        db=db_session,
        clock=FixedClock(today),
        current_user=people["owner"],
    )

    assert created.owner_id == people["owner"].id
    assert created.department_ids == {eng.id}
    pending = _pending_audits(db_session, created.id)
    assert len(pending) == 1
    assert date(2025, 7, 1) <= pending[0].scheduled_date < date(2025, 7, 1) + timedelta(days=28)
    assert pending[0].frequency == software_models.AuditFrequency.MONTHLY


def test_create_without_auditing_schedules_nothing(db_session, today):
    _, _, people, _ = _seed(db_session)

    created = software_router.create_software(
        payload=software_schemas.SoftwareCreate(
            name="Free Tier",
            audit_frequency=software_models.AuditFrequency.NONE,
        ),
        db=db_session,
        clock=FixedClock(today),
        current_user=people["admin"],
    )

    assert _pending_audits(db_session, created.id) == []


def test_create_with_unknown_department_is_rejected(db_session, today):
    _, _, people, _ = _seed(db_session)

    with pytest.raises(HTTPException) as exc:
        software_router.create_software(
            payload=software_schemas.SoftwareCreate(name="Ghost", department_ids=["no-such-dept"]),
            db=db_session,
            clock=FixedClock(today),
            current_user=people["admin"],
        )
    assert exc.value.status_code == 400


def test_renewal_date_before_start_is_rejected(db_session, today):
    _, _, people, software = _seed(db_session)

    with pytest.raises(ValidationError):
        software_schemas.SoftwareCreate(
            name="Backwards",
            contract_start_date=date(2025, 6, 1),
            renewal_date=date(2025, 5, 1),
        )

    # Only renewal_date is sent; the stored start date makes the period invalid.
    with pytest.raises(HTTPException) as exc:
        software_router.update_software(
            software_id=software["github"].id,
            payload=software_schemas.SoftwareUpdate(renewal_date=date(2024, 1, 1)),
            db=db_session,
            clock=FixedClock(today),
            current_user=people["admin"],
        )
    assert exc.value.status_code == 400


def test_changing_audit_frequency_reschedules_pending_audit(db_session, today):
    _, _, people, software = _seed(db_session)
    github = software["github"]
    old = audit_models.Audit(
        software_id=github.id,
        scheduled_date=date(2025, 8, 15),
        frequency=software_models.AuditFrequency.QUARTERLY,
    )
    db_session.add(old)
    db_session.commit()

    software_router.update_software(
        software_id=github.id,
        payload=software_schemas.SoftwareUpdate(vendor="GitHub Inc."),
        db=db_session,
        clock=FixedClock(today),
        current_user=people["owner"],
    )
    assert [a.id for a in _pending_audits(db_session, github.id)] == [old.id]

    software_router.update_software(
        software_id=github.id,
        payload=software_schemas.SoftwareUpdate(audit_frequency=software_models.AuditFrequency.MONTHLY),
        db=db_session,
        clock=FixedClock(today),
        current_user=people["owner"],
    )

    pending = _pending_audits(db_session, github.id)
    assert len(pending) == 1
    assert pending[0].id != old.id
    assert pending[0].frequency == software_models.AuditFrequency.MONTHLY
    assert date(2025, 7, 1) <= pending[0].scheduled_date < date(2025, 7, 29)


def test_owner_cannot_reassign_ownership(db_session, today):
    _, _, people, software = _seed(db_session)

    updated = software_router.update_software(
        software_id=software["github"].id,
        payload=software_schemas.SoftwareUpdate(owner_id=people["other_owner"].id),
        db=db_session,
        clock=FixedClock(today),
        current_user=people["owner"],
    )

    assert updated.owner_id == people["owner"].id


@pytest.mark.parametrize(
    "field_name",
    ["name", "cost", "payment_frequency", "status", "notice_period", "auto_renewal", "audit_frequency"],
)
def test_patch_rejects_null_for_required_columns(field_name):
    with pytest.raises(ValidationError):
        software_schemas.SoftwareUpdate.model_validate({field_name: None})


def test_patch_may_clear_optional_columns(db_session, today):
    _, _, people, software = _seed(db_session)
    github = software["github"]

    updated = software_router.update_software(
        software_id=github.id,
        payload=software_schemas.SoftwareUpdate.model_validate({"vendor": None, "renewal_date": None}),
        db=db_session,
        clock=FixedClock(today),
        current_user=people["admin"],
    )

    assert updated.vendor is None
    assert updated.renewal_date is None
    assert updated.audit_frequency == software_models.AuditFrequency.QUARTERLY


# ---------------------------------------------------------------------------
# Manual renew / expire / delete
# ---------------------------------------------------------------------------


def test_manual_renewal_records_history_and_applies_new_terms(db_session):
    _, _, people, software = _seed(db_session)
    github = software["github"]

    renewed = software_router.renew_software(
        software_id=github.id,
        payload=software_schemas.ContractRenewalRequest(
            contract_start_date=date(2025, 7, 1),
            renewal_date=date(2026, 7, 1),
            cost=Decimal("75.00"),
            seats_purchased=40,
        ),
        db=db_session,
        current_user=people["admin"],
    )

    assert renewed.contract_start_date == date(2025, 7, 1)
    assert renewed.renewal_date == date(2026, 7, 1)
    assert renewed.cost == Decimal("75.00")
    assert renewed.seats_purchased == 40

    history = software_router.get_contract_history(
        software_id=github.id, db=db_session, current_user=people["admin"]
    )
    assert len(history) == 1
    entry = history[0]
    assert entry.status == software_models.ContractHistoryStatus.RENEWED
    assert entry.contract_start_date == date(2024, 7, 1)
    assert entry.contract_end_date == date(2025, 7, 1)
    assert entry.cost == Decimal("50.00")
    assert entry.notes == "Contract renewed manually"
    assert entry.created_by_user_id == people["admin"].id


def test_manual_renewal_rejects_inverted_period():
    with pytest.raises(ValidationError):
        software_schemas.ContractRenewalRequest(
            contract_start_date=date(2025, 7, 1),
            renewal_date=date(2025, 6, 30),
        )


def test_expire_closes_contract_and_stops_auto_renewal(db_session):
    _, _, people, software = _seed(db_session)
    wiki = software["wiki"]
    wiki.auto_renewal = True
    db_session.commit()

    expired = software_router.expire_software(
        software_id=wiki.id,
        payload=software_schemas.ContractExpireRequest(notes="Vendor shut down"),
        db=db_session,
        current_user=people["admin"],
    )

    assert expired.status == software_models.SoftwareStatus.INACTIVE
    assert expired.auto_renewal is False
    history = software_router.get_contract_history(
        software_id=wiki.id, db=db_session, current_user=people["admin"]
    )
    assert [(h.status, h.notes) for h in history] == [
        (software_models.ContractHistoryStatus.EXPIRED, "Vendor shut down")
    ]


def test_admin_delete_removes_record(db_session):
    _, _, people, software = _seed(db_session)
    wiki_id = software["wiki"].id

    response = software_router.delete_software(
        software_id=wiki_id, db=db_session, current_user=people["admin"]
    )

    assert response.status_code == 204
    with pytest.raises(HTTPException) as exc:
        software_router.get_software(software_id=wiki_id, db=db_session, current_user=people["admin"])
    assert exc.value.status_code == 404
