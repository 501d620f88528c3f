from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from flask import current_app

from app.policysignoff.utils import utcnow


class Clock:
    """
    Source of "now" for anything date-sensitive (overdue status, due date checks,
    sign-off timestamps). Returns naive UTC datetimes, matching how they are stored.
    """

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return utcnow()


@dataclass
class FixedClock(Clock):
    at: datetime

    def now(self) -> datetime:
        return self.at

    def set(self, at: datetime) -> None:
        self.at = at


def current_clock() -> Clock:
    return current_app.extensions["clock"]
