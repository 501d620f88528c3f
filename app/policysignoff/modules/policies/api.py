from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, jsonify, request

from app.policysignoff.auth import current_user, require_login
from app.policysignoff.clock import current_clock
from app.policysignoff.db import db_session
from app.policysignoff.modules.policies.service import (
    all_users,
    create_policy,
    get_policy_or_404,
    list_policies,
    policy_detail,
    policy_list_item,
    record_signoff,
    request_download_target,
    request_upload_target,
)
from app.policysignoff.storage import storage_from_config
from app.policysignoff.utils import iso_zulu

bp = Blueprint("policies", __name__)


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@bp.get("/policies")
@require_login
def index():
    s = db_session()
    u = current_user()
    today = current_clock().today()
    return jsonify([policy_list_item(p, user_id=u.id, today=today) for p in list_policies(s)])


@bp.post("/policies")
@require_login
def store():
    s = db_session()
    u = current_user()
    today = current_clock().today()
    p = create_policy(s, _json_body(), user=u, today=today)
    s.commit()
    return jsonify(policy_list_item(p, user_id=u.id, today=today)), 201


@bp.get("/policies/<int:policy_id>")
@require_login
def show(policy_id: int):
    s = db_session()
    u = current_user()
    p = get_policy_or_404(s, policy_id)
    return jsonify(policy_detail(p, user_id=u.id, users=all_users(s), today=current_clock().today()))


@bp.post("/policies/<int:policy_id>/signoff")
@require_login
def signoff(policy_id: int):
    s = db_session()
    u = current_user()
    p = get_policy_or_404(s, policy_id)
    so = record_signoff(s, p, user=u, signed_at=current_clock().now())
    s.commit()
    return jsonify({"message": "Signed off successfully", "signed_at": iso_zulu(so.signed_at)})


@bp.post("/policies/<int:policy_id>/upload-url")
@require_login
def upload_url(policy_id: int):
    s = db_session()
    u = current_user()
    p = get_policy_or_404(s, policy_id)
    target = request_upload_target(
        s,
        p,
        _json_body(),
        user=u,
        storage=storage_from_config(current_app.config),
        expires_in=int(current_app.config["UPLOAD_URL_EXPIRES_SECONDS"]),
    )
    s.commit()
    return jsonify({"upload_url": target.upload_url, "key": target.key})


@bp.get("/policies/<int:policy_id>/download-url")
@require_login
def download_url(policy_id: int):
    s = db_session()
    u = current_user()
    p = get_policy_or_404(s, policy_id)
    target = request_download_target(
        s,
        p,
        user=u,
        storage=storage_from_config(current_app.config),
        expires_in=int(current_app.config["DOWNLOAD_URL_EXPIRES_SECONDS"]),
    )
    s.commit()
    return jsonify({"download_url": target.download_url, "file_name": target.file_name})
