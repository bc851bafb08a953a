"""
Bootstrap a local demo organization: department hierarchy, one user per
role, default workflow rules, and an access token per user.

    python -m scripts.seed_demo
"""
import logging

from app.core.logging import setup_logging
from app.database import SessionLocal, init_db
from app.models.department import Department
from app.models.organization import Organization
from app.models.user import User, UserRole
from app.services import auth as auth_service
from app.services.workflow_rules import WorkflowRuleService

logger = logging.getLogger("scripts.seed_demo")

DEMO_SLUG = "alpha-corp"


def _user(db, org, email, role, **kwargs):
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        print(f"User {email} already exists. Skipping.")
        return existing
    user = User(email=email, full_name=email.split("@")[0].title(), role=role,
                organization_id=org.id, is_active=True, **kwargs)
    db.add(user)
    db.flush()
    print(f"Created {role.value} -> {email}")
    return user


def seed():
    db = SessionLocal()
    try:
        org = db.query(Organization).filter(Organization.slug == DEMO_SLUG).first()
        if not org:
            org = Organization(name="Alpha Corp", slug=DEMO_SLUG, is_active=True)
            db.add(org)
            db.flush()
            print(f"Created organization: {org.name}")

        admin = _user(db, org, "admin@alphacorp.com", UserRole.ADMIN)
        _user(db, org, "hr@alphacorp.com", UserRole.HR)
        _user(db, org, "ceo@alphacorp.com", UserRole.EXECUTIVE)

        operations = db.query(Department).filter(
            Department.organization_id == org.id, Department.code == "OPS"
        ).first()
        if not operations:
            operations = Department(organization_id=org.id, name="Operations", code="OPS")
            db.add(operations)
            db.flush()
        director = _user(db, org, "director@alphacorp.com", UserRole.DEPARTMENT_DIRECTOR,
                         department_id=operations.id)
        operations.manager_user_id = director.id

        engineering = db.query(Department).filter(
            Department.organization_id == org.id, Department.code == "ENG"
        ).first()
        if not engineering:
            engineering = Department(organization_id=org.id, name="Engineering", code="ENG",
                                     parent_id=operations.id)
            db.add(engineering)
            db.flush()
        manager = _user(db, org, "manager@alphacorp.com", UserRole.MANAGER,
                        department_id=engineering.id, manager_id=director.id)
        engineering.manager_user_id = manager.id
        _user(db, org, "employee@alphacorp.com", UserRole.EMPLOYEE,
              department_id=engineering.id, manager_id=manager.id, position="Developer")
        db.commit()

        rules = WorkflowRuleService(db, org.id)
        if not rules.list_rules():
            rules.seed_defaults(admin)
            print("Seeded default workflow rules")

        print("\nAccess tokens:")
        for user in db.query(User).filter(User.organization_id == org.id).order_by(User.id):
            token = auth_service.create_access_token(
                {"sub": user.email, "role": user.role.value, "org_id": org.id}
            )
            print(f"{user.role.value:<20} {user.email:<28} {token}")
    except Exception:
        db.rollback()
        logger.exception("Demo seed failed")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging()
    init_db()
    seed()
