"""
Sign-off status derivation.

Everything here is a pure function of (policy, its sign-offs, users, today).
Status is recomputed on every read and never stored.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.policysignoff.models import User
    from app.policysignoff.modules.policies.models import Policy, Signoff


def is_overdue(due_date: date, signed: bool, today: date) -> bool:
    # Strictly after the due date; signing on the due date itself is on time.
    return not signed and due_date < today


@dataclass(frozen=True)
class PolicyStatus:
    signed: bool
    overdue: bool


@dataclass(frozen=True)
class UserSignoffRow:
    user_id: int
    user_name: str
    signed_at: datetime | None
    overdue: bool


@dataclass(frozen=True)
class SignoffSummary:
    rows: list[UserSignoffRow]

    @property
    def total_users(self) -> int:
        return len(self.rows)

    @property
    def signed_count(self) -> int:
        return sum(1 for r in self.rows if r.signed_at is not None)


def status_for_user(policy: "Policy", signoffs: Iterable["Signoff"], user_id: int, today: date) -> PolicyStatus:
    signed = any(s.user_id == user_id for s in signoffs)
    return PolicyStatus(signed=signed, overdue=is_overdue(policy.due_date, signed, today))


def signoff_summary(
    policy: "Policy",
    signoffs: Iterable["Signoff"],
    users: Iterable["User"],
    today: date,
) -> SignoffSummary:
    """
    One row per user in the identity store (every user owes a sign-off on every
    policy), ordered by user id. Users who never signed get `signed_at=None`.
    """
    by_user = {s.user_id: s for s in signoffs}
    rows: list[UserSignoffRow] = []
    for u in sorted(users, key=lambda u: u.id):
        s = by_user.get(u.id)
        signed_at = s.signed_at if s is not None else None
        rows.append(
            UserSignoffRow(
                user_id=u.id,
                user_name=u.name,
                signed_at=signed_at,
                overdue=is_overdue(policy.due_date, signed_at is not None, today),
            )
        )
    return SignoffSummary(rows=rows)
