"""Tests for presigned upload/download URLs on policies."""
from datetime import date, datetime
from urllib.parse import parse_qs, urlparse

import pytest
from werkzeug.security import generate_password_hash

from app.policysignoff import create_app
from app.policysignoff.clock import FixedClock
from app.policysignoff.db import session_scope
from app.policysignoff.models import AuditEvent, Base, User
from app.policysignoff.modules.policies.models import Policy
from app.policysignoff.modules.policies.service import file_extension, new_object_key, validate_upload_payload

S3_ENV = {
    "S3_ENDPOINT": "http://minio:9000",
    "S3_PUBLIC_URL": "http://localhost:9000",
    "S3_REGION": "us-east-1",
    "S3_BUCKET": "policies-bucket",
    "S3_ACCESS_KEY_ID": "minioadmin",
    "S3_SECRET_ACCESS_KEY": "minioadmin-secret",
}

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k, v in S3_ENV.items():
        monkeypatch.setenv(k, v)

    app = create_app(clock=FixedClock(datetime(2026, 1, 20, 12, 0)))
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        jane = User(name="Jane Admin", email="jane@example.com", password_hash=generate_password_hash("password"))
        bob = User(name="Bob Martinez", email="bob@example.com", password_hash=generate_password_hash("password"))
        s.add_all([jane, bob])
        s.flush()
        s.add(Policy(title="Handbook", description="Read it.", due_date=date(2026, 3, 1), created_by_user_id=jane.id))
    return app


@pytest.fixture()
def policy_id(app):
    with session_scope(app) as s:
        return s.query(Policy).one().id


def _login(client, email="jane@example.com") -> dict[str, str]:
    r = client.post("/auth/login", json={"email": email, "password": "password"})
    assert r.status_code == 200
    return {"X-XSRF-TOKEN": client.get("/auth/csrf-cookie").json["csrf_token"]}


def _policy(app, policy_id) -> Policy:
    with session_scope(app) as s:
        return s.get(Policy, policy_id)


class TestUploadValidation:
    def test_accepts_office_and_pdf_extensions_case_insensitive(self):
        for name, ctype in (("a.pdf", PDF), ("B.DOC", "application/msword"), ("c.Docx", DOCX)):
            assert validate_upload_payload({"filename": name, "content_type": ctype}) == []

    def test_rejects_other_extensions(self):
        errs = validate_upload_payload({"filename": "policy.txt", "content_type": PDF})
        assert [e.field for e in errs] == ["filename"]

    def test_rejects_unknown_content_type(self):
        errs = validate_upload_payload({"filename": "policy.pdf", "content_type": "text/plain"})
        assert [e.field for e in errs] == ["content_type"]

    def test_rejects_overlong_filename(self):
        errs = validate_upload_payload({"filename": "a" * 300 + ".pdf", "content_type": PDF})
        assert [(e.field, e.message) for e in errs] == [
            ("filename", "The filename field must not be greater than 255 characters.")
        ]
        assert validate_upload_payload({"filename": "a" * 251 + ".pdf", "content_type": PDF}) == []

    def test_missing_fields(self):
        errs = validate_upload_payload({})
        assert {e.field for e in errs} == {"filename", "content_type"}

    def test_object_keys_are_unique_and_keep_extension(self):
        k1, k2 = new_object_key("Policy.DOCX"), new_object_key("Policy.DOCX")
        assert k1 != k2
        assert k1.startswith("policies/")
        assert k1.endswith(".docx")
        assert file_extension("archive.tar.pdf") == "pdf"


def test_upload_url_records_file_reference(app, policy_id):
    client = app.test_client()
    headers = _login(client)
    r = client.post(
        f"/api/policies/{policy_id}/upload-url",
        json={"filename": "Handbook 2026.PDF", "content_type": PDF},
        headers=headers,
    )
    assert r.status_code == 200
    key = r.json["key"]
    assert key.startswith("policies/")
    assert key.endswith(".pdf")

    url = urlparse(r.json["upload_url"])
    # Signed for the browser-facing host, not the internal service address.
    assert f"{url.scheme}://{url.netloc}" == S3_ENV["S3_PUBLIC_URL"]
    assert url.path == f"/{S3_ENV['S3_BUCKET']}/{key}"
    qs = parse_qs(url.query)
    assert qs["X-Amz-Expires"] == ["900"]
    assert "X-Amz-Signature" in qs

    p = _policy(app, policy_id)
    assert p.file_path == key
    assert p.file_name == "Handbook 2026.PDF"

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "policy.upload_url").count() == 1

    row = client.get("/api/policies", headers=headers).json[0]
    assert row["has_file"] is True


def test_upload_url_rejects_txt_and_records_nothing(app, policy_id):
    client = app.test_client()
    headers = _login(client)
    r = client.post(
        f"/api/policies/{policy_id}/upload-url",
        json={"filename": "policy.txt", "content_type": PDF},
        headers=headers,
    )
    assert r.status_code == 422
    assert "filename" in r.json["errors"]

    p = _policy(app, policy_id)
    assert p.file_path is None
    assert p.file_name is None


def test_upload_url_rejects_overlong_filename_and_records_nothing(app, policy_id):
    client = app.test_client()
    headers = _login(client)
    r = client.post(
        f"/api/policies/{policy_id}/upload-url",
        json={"filename": "a" * 300 + ".pdf", "content_type": PDF},
        headers=headers,
    )
    assert r.status_code == 422
    assert "filename" in r.json["errors"]

    p = _policy(app, policy_id)
    assert p.file_path is None
    assert p.file_name is None
    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "policy.upload_url").count() == 0


def test_upload_url_only_for_creator(app, policy_id):
    client = app.test_client()
    headers = _login(client, "bob@example.com")
    r = client.post(
        f"/api/policies/{policy_id}/upload-url",
        json={"filename": "policy.pdf", "content_type": PDF},
        headers=headers,
    )
    assert r.status_code == 403
    assert _policy(app, policy_id).file_path is None


def test_upload_url_unknown_policy(app):
    client = app.test_client()
    headers = _login(client)
    r = client.post("/api/policies/999/upload-url", json={"filename": "a.pdf", "content_type": PDF}, headers=headers)
    assert r.status_code == 404


def test_download_url_without_file_is_not_found(app, policy_id):
    client = app.test_client()
    headers = _login(client, "bob@example.com")
    r = client.get(f"/api/policies/{policy_id}/download-url", headers=headers)
    assert r.status_code == 404
    assert r.json == {"message": "No file attached"}


def test_download_url_for_any_user(app, policy_id):
    with session_scope(app) as s:
        p = s.get(Policy, policy_id)
        p.file_path = "policies/employee-handbook-2026.pdf"
        p.file_name = "employee-handbook-2026.pdf"

    client = app.test_client()
    headers = _login(client, "bob@example.com")
    r = client.get(f"/api/policies/{policy_id}/download-url", headers=headers)
    assert r.status_code == 200
    assert r.json["file_name"] == "employee-handbook-2026.pdf"

    url = urlparse(r.json["download_url"])
    assert url.netloc == "localhost:9000"
    assert url.path == "/policies-bucket/policies/employee-handbook-2026.pdf"
    assert parse_qs(url.query)["X-Amz-Expires"] == ["3600"]


def test_upload_url_when_storage_not_configured(app, policy_id):
    app.config["S3_BUCKET"] = ""
    client = app.test_client()
    headers = _login(client)
    r = client.post(
        f"/api/policies/{policy_id}/upload-url",
        json={"filename": "policy.pdf", "content_type": PDF},
        headers=headers,
    )
    assert r.status_code == 503
    assert _policy(app, policy_id).file_path is None
