import json
from typing import TYPE_CHECKING, Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.policysignoff.models import AuditEvent, User

if TYPE_CHECKING:
    from app.policysignoff.modules.policies.models import Policy


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditEvent:
    """
    Append an audit event to the caller's transaction.

    Rows are never updated or deleted. Outside a request (scripts, seeding)
    request id and client address are left empty.
    """
    in_request = has_request_context()
    ev = AuditEvent(
        request_id=getattr(g, "request_id", None) if in_request else None,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True) if metadata else None,
        client_ip=request.remote_addr if in_request else None,
    )
    s.add(ev)
    return ev


def policy_event(s: Session, policy: "Policy", *, actor: User, action: str, **metadata: Any) -> AuditEvent:
    return record_event(
        s,
        actor=actor,
        action=f"policy.{action}",
        entity_type="Policy",
        entity_id=str(policy.id),
        metadata=metadata or None,
    )


def user_event(s: Session, user: User, *, action: str) -> AuditEvent:
    return record_event(s, actor=user, action=f"auth.{action}", entity_type="User", entity_id=str(user.id))
