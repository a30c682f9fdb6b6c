# backend/create_initial_admin.py

import os

from saasdb.database import SessionLocal
from saasdb.apps.accounts import services as account_services
from saasdb.apps.accounts.models import UserRole


def main() -> None:
    db = SessionLocal()
    try:
        email = os.getenv("INITIAL_ADMIN_EMAIL", "admin@saas.local")
        password = os.getenv("INITIAL_ADMIN_PASSWORD", "ChangeMe123!")

        existing = account_services.get_active_user_by_email(db, email=email)
        if existing:
            print(f"[INFO] User already exists: id={existing.id}, email={existing.email}")
            return

        user = account_services.create_user(
            db,
            name="SaaS Admin",
            email=email,
            password=password,
            role=UserRole.ADMINISTRATOR,
        )
        db.commit()
        db.refresh(user)

        print("[OK] Created admin user:")
        print(f"  id:      {user.id}")
        print(f"  email:   {user.email}")
        print(f"  role:    {user.role.value}")
        print(f"  login password: {password}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
