"""
Create tables and seed demo users, policies and sign-offs.

Idempotent by default: users/policies that already exist (by email/title) are
left alone and existing passwords are never overwritten. `--reset` wipes the
three domain tables first.

Usage:
  python scripts/init_db.py [--reset] [--create-tables]
"""

from __future__ import annotations

import argparse
import os
import sys
from datetime import date, datetime
from pathlib import Path

from sqlalchemy import delete
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.policysignoff.models import AuditEvent, Base, User  # noqa: E402
from app.policysignoff.modules.policies.models import Policy, Signoff  # noqa: E402
from scripts._db_utils import create_script_engine, script_session  # noqa: E402

DEMO_USERS = [
    ("Jane Admin", "jane@example.com"),
    ("Mike Manager", "mike@example.com"),
    ("Alice Thompson", "alice@example.com"),
    ("Bob Martinez", "bob@example.com"),
    ("Charlie Kim", "charlie@example.com"),
    ("Dana Williams", "dana@example.com"),
]

# (creator email, title, description, due date, file key)
DEMO_POLICIES = [
    (
        "jane@example.com",
        "2026 Employee Handbook",
        "Annual employee handbook covering company policies, benefits, and code of conduct for 2026.",
        date(2026, 3, 1),
        "policies/employee-handbook-2026.pdf",
    ),
    (
        "jane@example.com",
        "HIPAA Annual Training",
        "Required annual HIPAA compliance training acknowledgment for all staff with access to protected health information.",
        date(2026, 3, 15),
        "policies/hipaa-training-2026.pdf",
    ),
    (
        "jane@example.com",
        "Workplace Safety Guidelines",
        "Updated workplace safety guidelines including emergency procedures, ergonomics standards, and incident reporting protocols.",
        date(2026, 4, 30),
        None,
    ),
    (
        "mike@example.com",
        "Remote Work Policy Update",
        "Revised remote work policy outlining expectations for home office setup, availability, and communication standards.",
        date(2026, 2, 10),
        None,
    ),
]

# (policy title, signer email, signed_at UTC)
DEMO_SIGNOFFS = [
    ("2026 Employee Handbook", "alice@example.com", datetime(2026, 2, 10, 9, 15)),
    ("2026 Employee Handbook", "bob@example.com", datetime(2026, 2, 11, 14, 32)),
    ("2026 Employee Handbook", "charlie@example.com", datetime(2026, 2, 14, 11, 8)),
    ("HIPAA Annual Training", "alice@example.com", datetime(2026, 2, 12, 10, 0)),
    ("HIPAA Annual Training", "mike@example.com", datetime(2026, 2, 13, 16, 45)),
]


def reset(s) -> None:
    s.execute(delete(AuditEvent))
    s.execute(delete(Signoff))
    s.execute(delete(Policy))
    s.execute(delete(User))


def seed_demo(s, *, password: str) -> dict[str, int]:
    counts = {"users": 0, "policies": 0, "signoffs": 0}

    users: dict[str, User] = {}
    for name, email in DEMO_USERS:
        u = s.query(User).filter(User.email == email).one_or_none()
        if not u:
            u = User(name=name, email=email, password_hash=generate_password_hash(password))
            s.add(u)
            counts["users"] += 1
        users[email] = u
    s.flush()

    policies: dict[str, Policy] = {}
    for creator_email, title, description, due, file_key in DEMO_POLICIES:
        p = s.query(Policy).filter(Policy.title == title).one_or_none()
        if not p:
            p = Policy(
                title=title,
                description=description,
                due_date=due,
                file_path=file_key,
                file_name=file_key.rsplit("/", 1)[-1] if file_key else None,
                created_by_user_id=users[creator_email].id,
            )
            s.add(p)
            counts["policies"] += 1
        policies[title] = p
    s.flush()

    for title, email, signed_at in DEMO_SIGNOFFS:
        p, u = policies[title], users[email]
        exists = s.query(Signoff).filter(Signoff.policy_id == p.id, Signoff.user_id == u.id).one_or_none()
        if not exists:
            s.add(Signoff(policy_id=p.id, user_id=u.id, signed_at=signed_at))
            counts["signoffs"] += 1

    return counts


def seed_only(*, database_url: str | None = None, do_reset: bool = False) -> None:
    password = os.environ.get("SEED_PASSWORD") or "password"
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///policysignoff.db").strip()

    with script_session(db_url) as s:
        if do_reset:
            reset(s)
        counts = seed_demo(s, password=password)

    print(
        f"Seeded database: {counts['users']} users, {counts['policies']} policies, "
        f"{counts['signoffs']} sign-offs added."
    )
    print("Demo password: (from SEED_PASSWORD, default 'password')")


def main() -> None:
    ap = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    ap.add_argument("--reset", action="store_true", help="Delete existing users/policies/sign-offs first.")
    ap.add_argument("--create-tables", action="store_true", help="Create tables without Alembic (dev only).")
    args = ap.parse_args()

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///policysignoff.db").strip()
    if args.create_tables:
        engine = create_script_engine(db_url)
        Base.metadata.create_all(bind=engine)
        engine.dispose()
    seed_only(database_url=db_url, do_reset=args.reset)


if __name__ == "__main__":
    main()
