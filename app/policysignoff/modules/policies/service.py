from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.policysignoff.audit import policy_event
from app.policysignoff.errors import ConflictError, FieldError, ForbiddenError, NotFoundError, ValidationFailed
from app.policysignoff.models import User
from app.policysignoff.modules.policies.models import Policy, Signoff
from app.policysignoff.modules.policies.status import signoff_summary, status_for_user
from app.policysignoff.utils import iso_date, iso_zulu

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.policysignoff.storage import Storage

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 255
FILENAME_MAX_LENGTH = 255
UPLOAD_KEY_PREFIX = "policies"

# extension -> accepted MIME type
ALLOWED_FILE_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def parse_date(s: Any) -> date | None:
    """Parse YYYY-MM-DD date string."""
    if not isinstance(s, str):
        return None
    s = s.strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _text(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return value.strip() if isinstance(value, str) else ""


# --- Policies ---------------------------------------------------------------


def validate_policy_payload(payload: dict[str, Any], *, today: date) -> list[FieldError]:
    errs: list[FieldError] = []

    title = _text(payload, "title")
    if not title:
        errs.append(FieldError("title", "The title field is required."))
    elif len(title) > TITLE_MAX_LENGTH:
        errs.append(FieldError("title", f"The title field must not be greater than {TITLE_MAX_LENGTH} characters."))

    if not _text(payload, "description"):
        errs.append(FieldError("description", "The description field is required."))

    raw_due = payload.get("due_date")
    if raw_due is None or (isinstance(raw_due, str) and not raw_due.strip()):
        errs.append(FieldError("due_date", "The due date field is required."))
    else:
        due = parse_date(raw_due)
        if due is None:
            errs.append(FieldError("due_date", "The due date field must be a valid date."))
        elif due < today:
            errs.append(FieldError("due_date", "The due date field must be a date after or equal to today."))
    return errs


def create_policy(s: "Session", payload: dict[str, Any], *, user: User, today: date) -> Policy:
    errs = validate_policy_payload(payload, today=today)
    if errs:
        raise ValidationFailed(errs)

    p = Policy(
        title=_text(payload, "title"),
        description=_text(payload, "description"),
        due_date=parse_date(payload["due_date"]),
        created_by_user_id=user.id,
    )
    s.add(p)
    s.flush()
    policy_event(s, p, actor=user, action="create", title=p.title, due_date=iso_date(p.due_date))
    return p


def get_policy_or_404(s: "Session", policy_id: int) -> Policy:
    p = s.get(Policy, policy_id)
    if not p:
        raise NotFoundError("Policy not found.")
    return p


def list_policies(s: "Session") -> list[Policy]:
    return list(s.scalars(select(Policy).order_by(Policy.due_date.asc(), Policy.id.asc())))


def all_users(s: "Session") -> list[User]:
    return list(s.scalars(select(User).order_by(User.id.asc())))


def policy_list_item(p: Policy, *, user_id: int, today: date) -> dict[str, Any]:
    st = status_for_user(p, p.signoffs, user_id, today)
    return {
        "id": p.id,
        "title": p.title,
        "due_date": iso_date(p.due_date),
        "created_by": p.creator.name,
        "has_file": p.has_file,
        "signed": st.signed,
        "overdue": st.overdue,
    }


def policy_detail(p: Policy, *, user_id: int, users: list[User], today: date) -> dict[str, Any]:
    out = policy_list_item(p, user_id=user_id, today=today)
    summary = signoff_summary(p, p.signoffs, users, today)
    out["description"] = p.description
    out["signoff_summary"] = {
        "total_users": summary.total_users,
        "signed_count": summary.signed_count,
        "signoffs": [
            {
                "user": r.user_name,
                "user_id": r.user_id,
                "signed_at": iso_zulu(r.signed_at),
                "overdue": r.overdue,
            }
            for r in summary.rows
        ],
    }
    if p.file_name is not None:
        out["file_name"] = p.file_name
    return out


# --- Sign-off ledger ----------------------------------------------------------


SIGNOFF_UNIQUE_CONSTRAINT = "uq_signoff_policy_user"


def is_duplicate_signoff(exc: IntegrityError) -> bool:
    """
    True when `exc` is a violation of the (policy_id, user_id) unique constraint.

    Postgres names the constraint in the error text; SQLite only lists the
    columns ("UNIQUE constraint failed: signoffs.policy_id, signoffs.user_id").
    """
    msg = str(exc.orig)
    if SIGNOFF_UNIQUE_CONSTRAINT in msg:
        return True
    return "UNIQUE constraint failed" in msg and "signoffs.policy_id" in msg and "signoffs.user_id" in msg


def record_signoff(s: "Session", policy: Policy, *, user: User, signed_at: datetime) -> Signoff:
    """
    Insert the (policy, user) sign-off.

    The unique constraint on (policy_id, user_id) is the only duplicate check, so
    of two simultaneous requests exactly one succeeds. On a duplicate the
    transaction is rolled back and ConflictError is raised; nothing is written.
    """
    so = Signoff(policy_id=policy.id, user_id=user.id, signed_at=signed_at)
    s.add(so)
    try:
        s.flush()  # Force unique constraint check
    except IntegrityError as e:
        s.rollback()
        if not is_duplicate_signoff(e):
            raise
        logger.info("Duplicate sign-off rejected (policy_id=%s user_id=%s)", policy.id, user.id)
        raise ConflictError("Already signed") from None

    policy_event(s, policy, actor=user, action="signoff", signed_at=iso_zulu(signed_at))
    return so


# --- File references ----------------------------------------------------------


@dataclass(frozen=True)
class UploadTarget:
    upload_url: str
    key: str


@dataclass(frozen=True)
class DownloadTarget:
    download_url: str
    file_name: str | None


def file_extension(filename: str) -> str:
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def validate_upload_payload(payload: dict[str, Any]) -> list[FieldError]:
    errs: list[FieldError] = []
    filename = _text(payload, "filename")
    if not filename:
        errs.append(FieldError("filename", "The filename field is required."))
    elif len(filename) > FILENAME_MAX_LENGTH:
        errs.append(
            FieldError("filename", f"The filename field must not be greater than {FILENAME_MAX_LENGTH} characters.")
        )
    elif file_extension(filename) not in ALLOWED_FILE_TYPES:
        errs.append(FieldError("filename", "The filename must end in .pdf, .doc, or .docx."))

    content_type = _text(payload, "content_type")
    if not content_type:
        errs.append(FieldError("content_type", "The content type field is required."))
    elif content_type not in ALLOWED_FILE_TYPES.values():
        errs.append(FieldError("content_type", "The selected content type is invalid."))
    return errs


def new_object_key(filename: str) -> str:
    return f"{UPLOAD_KEY_PREFIX}/{uuid.uuid4()}.{file_extension(filename)}"


def request_upload_target(
    s: "Session",
    policy: Policy,
    payload: dict[str, Any],
    *,
    user: User,
    storage: "Storage",
    expires_in: int,
) -> UploadTarget:
    """
    Issue a presigned PUT URL and record the key on the policy right away.

    The file reference is written before the client uploads anything; if the
    browser's PUT fails the policy keeps pointing at an empty key.
    """
    if policy.created_by_user_id != user.id:
        raise ForbiddenError()

    errs = validate_upload_payload(payload)
    if errs:
        raise ValidationFailed(errs)

    filename = _text(payload, "filename")
    content_type = _text(payload, "content_type")
    key = new_object_key(filename)
    url = storage.presign_upload(key, content_type=content_type, expires_in=expires_in)

    policy.file_path = key
    policy.file_name = filename
    policy_event(s, policy, actor=user, action="upload_url", key=key, filename=filename, content_type=content_type)
    logger.info("Issued upload URL (policy_id=%s key=%s)", policy.id, key)
    return UploadTarget(upload_url=url, key=key)


def request_download_target(
    s: "Session",
    policy: Policy,
    *,
    user: User,
    storage: "Storage",
    expires_in: int,
) -> DownloadTarget:
    if not policy.file_path:
        raise NotFoundError("No file attached")

    url = storage.presign_download(policy.file_path, expires_in=expires_in)
    policy_event(s, policy, actor=user, action="download_url", key=policy.file_path)
    return DownloadTarget(download_url=url, file_name=policy.file_name)
