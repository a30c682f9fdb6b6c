from __future__ import annotations

from datetime import date
from decimal import Decimal

from saasdb.clock import local_today
from saasdb.database import WriteSessionLocal
from saasdb.utils.dates import add_months
from saasdb.apps.accounts import models as account_models
from saasdb.apps.accounts import services as account_services
from saasdb.apps.software import models as software_models
from saasdb.apps.software import services as software_services

DEMO_PASSWORD = "ChangeMe123!"

DEMO_USERS = (
    ("Admin User", "admin@demo-saas.example", account_models.UserRole.ADMINISTRATOR, ()),
    ("Alice Wonderland", "alice@demo-saas.example", account_models.UserRole.SOFTWARE_OWNER, ()),
    ("Bob Builder", "bob@demo-saas.example", account_models.UserRole.DEPARTMENT_HEAD, ("Engineering",)),
    ("Carol Danvers", "carol@demo-saas.example", account_models.UserRole.SOFTWARE_OWNER, ()),
)


def _get_or_create_user(db, name: str, email: str, role, departments) -> account_models.User:
    user = account_services.get_active_user_by_email(db, email=email)
    if user:
        return user
    return account_services.create_user(
        db,
        name=name,
        email=email,
        password=DEMO_PASSWORD,
        role=role,
        department_names=departments,
    )


def _demo_software(today: date, owners: dict) -> list[dict]:
    PF = software_models.PaymentFrequency
    LT = software_models.LicenseType
    return [
        {
            "name": "Jira",
            "vendor": "Atlassian",
            "cost": Decimal("350.00"),
            "payment_frequency": PF.MONTHLY,
            "contract_start_date": add_months(today, -1),
            "renewal_date": today,
            "auto_renewal": True,
            "license_type": LT.PER_USER,
            "seats_purchased": 50,
            "seats_utilized": 45,
            "owner_id": owners["alice@demo-saas.example"].id,
            "department_names": ("Engineering",),
        },
        {
            "name": "Salesforce",
            "vendor": "Salesforce Inc.",
            "cost": Decimal("1500.00"),
            "payment_frequency": PF.MONTHLY,
            "contract_start_date": today.replace(day=1),
            "renewal_date": add_months(today.replace(day=1), 1),
            "auto_renewal": True,
            "license_type": LT.PER_USER,
            "seats_purchased": 20,
            "seats_utilized": 18,
            "owner_id": owners["carol@demo-saas.example"].id,
            "department_names": ("Sales",),
        },
        {
            "name": "Slack",
            "vendor": "Salesforce Inc.",
            "cost": Decimal("8400.00"),
            "payment_frequency": PF.ANNUALLY,
            "contract_start_date": add_months(today, -11),
            "renewal_date": add_months(today, 1),
            "auto_renewal": False,
            "notice_period": software_models.NoticePeriod.DAYS_30,
            "license_type": LT.PER_USER,
            "seats_purchased": 120,
            "seats_utilized": 97,
            "owner_id": owners["alice@demo-saas.example"].id,
            "department_names": ("Engineering", "Marketing"),
        },
        {
            "name": "Snowflake",
            "vendor": "Snowflake Inc.",
            "cost": Decimal("2000.00"),
            "payment_frequency": PF.MONTHLY,
            "contract_start_date": today,
            "renewal_date": add_months(today, 1),
            "auto_renewal": True,
            "license_type": LT.USAGE_BASED,
            "usage_metric": "credits",
            "usage_limit": 1000,
            "current_usage": 640,
            "audit_frequency": software_models.AuditFrequency.MONTHLY,
            "department_names": ("Finance",),
        },
        {
            "name": "AutoCAD (perpetual)",
            "vendor": "Autodesk",
            "cost": Decimal("4200.00"),
            "payment_frequency": PF.ONE_TIME,
            "contract_start_date": date(2023, 1, 10),
            "license_type": LT.PERPETUAL,
            "audit_frequency": software_models.AuditFrequency.ANNUALLY,
            "department_names": ("Engineering",),
        },
    ]


def _seed_software(db, today: date, owners: dict) -> int:
    created = 0
    for item in _demo_software(today, owners):
        exists = (
            db.query(software_models.Software.id)
            .filter(software_models.Software.name == item["name"])
            .first()
        )
        if exists:
            continue
        data = dict(item)
        department_names = data.pop("department_names", ())
        data["department_ids"] = [
            account_services.get_or_create_department(db, name=n).id for n in department_names
        ]
        software_services.create_software(db, data=data, today=today)
        created += 1
    return created


def main() -> None:
    db = WriteSessionLocal()
    try:
        owners = {}
        for name, email, role, departments in DEMO_USERS:
            owners[email] = _get_or_create_user(db, name, email, role, departments)
        db.commit()

        created = _seed_software(db, local_today(), owners)
        db.commit()
        print(f"[OK] Demo users: {len(owners)}, software created: {created}")
        print(f"  login password for all demo users: {DEMO_PASSWORD}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
