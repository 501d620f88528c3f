from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.policysignoff.models import Base, User
from app.policysignoff.utils import utcnow


class Policy(Base):
    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Object store key + original filename; set when an upload URL is issued.
    file_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    creator: Mapped[User] = relationship(
        "User",
        back_populates="policies",
        foreign_keys=[created_by_user_id],
        lazy="selectin",
    )

    signoffs: Mapped[list["Signoff"]] = relationship(
        "Signoff",
        back_populates="policy",
        lazy="selectin",
    )

    @property
    def has_file(self) -> bool:
        return self.file_path is not None


class Signoff(Base):
    """
    One acknowledgment per (policy, user). Rows are never updated or deleted.
    The unique constraint is what serializes concurrent sign-offs.
    """

    __tablename__ = "signoffs"
    __table_args__ = (
        UniqueConstraint("policy_id", "user_id", name="uq_signoff_policy_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    policy_id: Mapped[int] = mapped_column(ForeignKey("policies.id", ondelete="RESTRICT"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    signed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    policy: Mapped[Policy] = relationship(
        "Policy",
        back_populates="signoffs",
        lazy="selectin",
    )

    user: Mapped[User] = relationship("User", lazy="selectin")
