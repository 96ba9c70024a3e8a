"""End-to-end tests for the public intake routes."""

from __future__ import annotations

import types

import pytest
from fastapi.testclient import TestClient
from openai import OpenAIError

from app.cases.service import CaseControllerRegistry
from app.cases import InMemoryCaseRepository
from app.classification import ClassificationAdapter

TENANT = {"X-Tenant-Id": "acme"}


@pytest.fixture
def client(api_app):
    with TestClient(api_app) as test_client:
        yield test_client


def _submit(client, message="The invoice export is broken and the error is terrible", **kwargs):
    kwargs.setdefault("headers", TENANT)
    return client.post("/api/cases", data={"message": message}, **kwargs)


def test_submission_returns_receipt(client):
    resp = _submit(client)

    assert resp.status_code == 201
    body = resp.json()
    assert len(body["submission_id"]) == 10
    assert len(body["access_password"]) == 8
    assert body["status"] == "RECEIVED"
    assert body["history"][0]["sender"] == "USER"


def test_status_lookup_and_reply(client):
    receipt = _submit(client).json()
    credentials = {"case_id": receipt["submission_id"], "password": receipt["access_password"]}

    status = client.post("/api/cases/status", json=credentials, headers=TENANT)
    assert status.status_code == 200
    view = status.json()
    assert view["status"] == "RECEIVED"
    assert "access_password" not in view
    assert "analysis" not in view

    reply = client.post(
        f"/api/cases/{receipt['submission_id']}/replies",
        json={"password": receipt["access_password"], "message": "Still happening today."},
        headers=TENANT,
    )
    assert reply.status_code == 200
    assert reply.json()["status"] == "ACTION_REQUIRED"
    assert [m["sender"] for m in reply.json()["history"]] == ["USER", "USER"]


def test_wrong_password_is_indistinguishable_from_unknown_case(client):
    receipt = _submit(client).json()

    wrong = client.post(
        "/api/cases/status",
        json={"case_id": receipt["submission_id"], "password": "WRONG999"},
        headers=TENANT,
    )
    unknown = client.post(
        "/api/cases/status",
        json={"case_id": "NoSuchCase", "password": receipt["access_password"]},
        headers=TENANT,
    )

    assert wrong.status_code == unknown.status_code == 404
    assert wrong.json() == unknown.json() == {"detail": "Invalid Case ID or Password."}


def test_missing_credentials(client):
    resp = client.post("/api/cases/status", json={"case_id": " ", "password": ""}, headers=TENANT)

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please enter both Case ID and Password"


def test_reply_with_wrong_password_rejected(client):
    receipt = _submit(client).json()

    resp = client.post(
        f"/api/cases/{receipt['submission_id']}/replies",
        json={"password": "NOPE1234", "message": "hello"},
        headers=TENANT,
    )

    assert resp.status_code == 404


def test_empty_message_rejected(client):
    assert _submit(client, message="   ").status_code in (400, 422)


def test_attachment_type_validated(client):
    resp = _submit(client, files={"attachment": ("run.exe", b"MZ", "application/x-msdownload")})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Unsupported attachment type."


def test_oversized_attachment(client, monkeypatch):
    monkeypatch.setenv("UPLOAD_MAX_SIZE", str(1024 * 1024))
    from app.core.settings import reset_settings_cache

    reset_settings_cache()
    resp = _submit(client, files={"attachment": ("big.png", b"x" * (1024 * 1024 + 1), "image/png")})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "File is too large. Max 1MB allowed."


def test_image_attachment_accepted(client):
    resp = _submit(client, files={"attachment": ("shot.png", b"\x89PNG", "image/png")})

    assert resp.status_code == 201
    assert "image" in resp.json()["content"]["summary"]


def test_tenant_is_required(client):
    resp = client.post("/api/cases", data={"message": "hello there everyone, this is feedback"})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Tenant identifier is required"


def test_tenant_falls_back_to_environment(client, monkeypatch):
    monkeypatch.setenv("TENANT_ID", "acme")
    from app.core.settings import reset_settings_cache

    reset_settings_cache()
    resp = client.post("/api/cases", data={"message": "Please add a feature for exports"})

    assert resp.status_code == 201
    assert resp.json()["tenant_id"] == "acme"


def test_cases_are_isolated_per_tenant(client):
    receipt = _submit(client).json()

    resp = client.post(
        "/api/cases/status",
        json={"case_id": receipt["submission_id"], "password": receipt["access_password"]},
        headers={"X-Tenant-Id": "globex"},
    )

    assert resp.status_code == 404


def test_classification_failure_returns_generic_error(api_app):
    class Broken:
        def create(self, **kwargs):
            raise OpenAIError("upstream down")

    client = types.SimpleNamespace(chat=types.SimpleNamespace(completions=Broken()))
    api_app.state.case_registry = CaseControllerRegistry(
        lambda _tenant: InMemoryCaseRepository(),
        classifier=ClassificationAdapter(client),
    )
    with TestClient(api_app) as test_client:
        resp = _submit(test_client)

    assert resp.status_code == 502
    assert resp.json()["detail"] == "Failed to process your message. Please try again."


def test_submission_rate_limited(api_app, monkeypatch):
    monkeypatch.setenv("SUBMISSION_RATE_LIMIT", "2/minute")
    from app.core.settings import reset_settings_cache

    reset_settings_cache()
    with TestClient(api_app) as test_client:
        codes = [_submit(test_client).status_code for _ in range(3)]

    assert codes == [201, 201, 429]


def test_config_endpoint(client):
    resp = client.get("/api/config")

    assert resp.status_code == 200
    body = resp.json()
    assert body["BRAND_NAME"] == "SilentDrop"
    assert body["UPLOAD_MAX_SIZE"] == 5 * 1024 * 1024


def test_health_and_version(client):
    assert client.get("/api/health").json() == {"status": "ok"}
    assert "version" in client.get("/api/version").json()



def test_unlisted_tenant_is_rejected(api_app, monkeypatch):
    monkeypatch.setenv("ALLOWED_TENANT_IDS", "acme")
    from app.core.settings import reset_settings_cache

    reset_settings_cache()
    with TestClient(api_app) as test_client:
        accepted = _submit(test_client)
        rejected = [
            _submit(test_client, headers={"X-Tenant-Id": f"tenant-{n}"}).status_code
            for n in range(5)
        ]

    assert accepted.status_code == 201
    assert rejected == [404] * 5
    assert len(api_app.state.case_registry) == 1
