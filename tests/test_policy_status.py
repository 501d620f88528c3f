"""
Unit tests for sign-off status derivation.

Tests cover:
- Overdue boundary (strictly after the due date)
- Per-user list status
- Detail summary: every user present exactly once, counts
"""
from datetime import date, datetime

from app.policysignoff.models import User
from app.policysignoff.modules.policies.models import Policy, Signoff
from app.policysignoff.modules.policies.status import is_overdue, signoff_summary, status_for_user


def _policy(due: date) -> Policy:
    return Policy(id=1, title="Handbook", description="d", due_date=due, created_by_user_id=1)


def _users(n: int) -> list[User]:
    return [User(id=i, name=f"User {i}", email=f"u{i}@example.com", password_hash="x") for i in range(1, n + 1)]


def _signoff(user_id: int, at: datetime) -> Signoff:
    return Signoff(policy_id=1, user_id=user_id, signed_at=at)


class TestIsOverdue:
    def test_before_due_date(self):
        assert is_overdue(date(2026, 1, 15), False, date(2026, 1, 14)) is False

    def test_on_due_date_is_not_overdue(self):
        assert is_overdue(date(2026, 1, 15), False, date(2026, 1, 15)) is False

    def test_day_after_due_date(self):
        assert is_overdue(date(2026, 1, 15), False, date(2026, 1, 16)) is True

    def test_signed_is_never_overdue(self):
        assert is_overdue(date(2026, 1, 15), True, date(2027, 1, 1)) is False


class TestStatusForUser:
    def test_unsigned_past_due(self):
        p = _policy(date(2026, 1, 15))
        st = status_for_user(p, [], user_id=1, today=date(2026, 1, 20))
        assert st.signed is False
        assert st.overdue is True

    def test_signed_by_current_user(self):
        p = _policy(date(2026, 1, 15))
        # Signed late: still signed, never overdue.
        st = status_for_user(p, [_signoff(1, datetime(2026, 1, 19, 8, 0))], user_id=1, today=date(2026, 1, 20))
        assert st.signed is True
        assert st.overdue is False

    def test_other_users_signoff_does_not_count(self):
        p = _policy(date(2026, 1, 15))
        st = status_for_user(p, [_signoff(2, datetime(2026, 1, 10))], user_id=1, today=date(2026, 1, 20))
        assert st.signed is False
        assert st.overdue is True


class TestSignoffSummary:
    def test_overdue_scenario_with_no_signoffs(self):
        p = _policy(date(2026, 1, 15))
        summary = signoff_summary(p, [], _users(4), today=date(2026, 1, 20))
        assert summary.total_users == 4
        assert summary.signed_count == 0
        assert all(r.overdue for r in summary.rows)
        assert all(r.signed_at is None for r in summary.rows)

    def test_every_user_appears_once_in_id_order(self):
        p = _policy(date(2026, 3, 1))
        users = list(reversed(_users(5)))
        signoffs = [_signoff(3, datetime(2026, 2, 10, 9, 15)), _signoff(1, datetime(2026, 2, 11, 14, 32))]
        summary = signoff_summary(p, signoffs, users, today=date(2026, 2, 20))
        assert [r.user_id for r in summary.rows] == [1, 2, 3, 4, 5]
        assert summary.total_users == 5
        assert summary.signed_count == 2
        assert summary.rows[0].signed_at == datetime(2026, 2, 11, 14, 32)
        assert summary.rows[1].signed_at is None
        # Not yet due: nobody is overdue.
        assert not any(r.overdue for r in summary.rows)

    def test_mixed_rows_past_due(self):
        p = _policy(date(2026, 1, 15))
        summary = signoff_summary(p, [_signoff(2, datetime(2026, 1, 14))], _users(3), today=date(2026, 1, 16))
        by_id = {r.user_id: r for r in summary.rows}
        assert by_id[1].overdue is True
        assert by_id[2].overdue is False
        assert by_id[3].overdue is True
        for r in summary.rows:
            # signed iff signed_at present; never both signed and overdue
            assert not (r.signed_at is not None and r.overdue)

    def test_no_users(self):
        summary = signoff_summary(_policy(date(2026, 1, 15)), [], [], today=date(2026, 1, 20))
        assert summary.total_users == 0
        assert summary.signed_count == 0
