import json
import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from app import app
from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.rabbitmq import rabbitmq
from models.enums import (
    AuditAction,
    DocumentType,
    SignatureStatus,
    SignerRole,
    UserRole,
    VerificationType,
)
from repos.audit_log_repo import AuditLogRepo
from routes.webhooks_routes import verification_webhooks
from security.webhook_signature import VerifierWebhookSignature
from services.signature_service import SignatureCoordinator
from webhooks.verification_webhooks import VerificationWebhooks

from .conftest import make_user


class CurrentUser:
    def __init__(self):
        self.user = None

    async def __call__(self):
        return self.user


@pytest.fixture
def current_user():
    return CurrentUser()


@pytest.fixture
async def client(db, orchestrator, current_user, monkeypatch):
    published = []

    async def publish_json(exchange_name, routing_key, data):
        published.append((exchange_name, routing_key, data))

    monkeypatch.setattr(rabbitmq, "publish_json", publish_json)

    async def override_db():
        yield db

    app.dependency_overrides[get_db_async] = override_db
    app.dependency_overrides[get_current_user] = current_user
    app.dependency_overrides[verification_webhooks] = lambda: VerificationWebhooks(
        db, orchestrator=orchestrator
    )
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client
    app.dependency_overrides.clear()


def signed(body: dict):
    raw = json.dumps(body).encode()
    return raw, {
        VerifierWebhookSignature.HEADER: VerifierWebhookSignature.compute(raw),
        "content-type": "application/json",
    }


async def test_health(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


async def test_landlord_views_document(db, client, current_user, landlord, document):
    current_user.user = landlord

    resp = await client.get(f"/v2/documents/{document.id}")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "draft"
    assert body["expiration_status"] == "no_expiration"
    assert body["steps"] == []
    views = await AuditLogRepo(db).list(document.id, action=AuditAction.VIEW)
    assert [v.actor_id for v in views] == [landlord.id]


async def test_other_landlord_is_denied(db, client, current_user, document):
    current_user.user = await make_user(db, UserRole.LANDLORD)

    resp = await client.get(f"/v2/documents/{document.id}")

    assert resp.status_code == 403
    assert resp.json()["error"] == "AuthorizationDenied"


async def test_missing_document_is_404(client, current_user, landlord):
    current_user.user = landlord

    resp = await client.get(f"/v2/documents/{uuid.uuid4()}")

    assert resp.status_code == 404
    assert resp.json()["error"] == "ResourceNotFound"


async def test_verification_webhook_applies_once(client, document, orchestrator):
    steps = await orchestrator.start_workflow(document.id)
    verification = await orchestrator.verification.initiate(
        document.id, VerificationType.IDENTITY, step_id=steps[0].id
    )
    raw, headers = signed(
        {
            "id": verification.external_reference,
            "status": "completed",
            "results": {"verifiedFields": ["full_name"], "confidence": 0.9},
        }
    )

    first = await client.post("/v2/webhooks/verification", content=raw, headers=headers)
    second = await client.post("/v2/webhooks/verification", content=raw, headers=headers)

    assert first.status_code == 200
    assert first.json()["status"] == "ok"
    assert first.json()["verification_status"] == "verified"
    assert first.json()["step_status"] == "completed"
    assert second.json() == {"status": "already processed"}


async def test_verification_webhook_rejects_bad_signature(client):
    raw = json.dumps({"id": "ext-1", "status": "completed"}).encode()

    resp = await client.post(
        "/v2/webhooks/verification",
        content=raw,
        headers={VerifierWebhookSignature.HEADER: "0" * 128},
    )

    assert resp.status_code == 401


async def test_verification_webhook_rejects_malformed_body(client):
    raw, headers = signed({"status": "completed"})

    resp = await client.post("/v2/webhooks/verification", content=raw, headers=headers)

    assert resp.status_code == 422
    assert resp.json()["error"] == "ValidationError"


async def test_landlord_uploads_a_document(db, client, current_user, landlord, rental):
    current_user.user = landlord

    resp = await client.post(
        "/v2/documents/",
        json={
            "property_id": str(rental.id),
            "title": "  Lease 2026  ",
            "document_type": DocumentType.LEASE.value,
            "storage_url": "https://files.example.com/lease-2026.pdf",
            "jurisdiction": "CA",
        },
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["title"] == "Lease 2026"
    assert body["status"] == "draft"
    uploads = await AuditLogRepo(db).list(
        uuid.UUID(body["id"]), action=AuditAction.UPLOAD
    )
    assert [u.actor_id for u in uploads] == [landlord.id]


async def test_sign_records_the_observed_client(
    db, client, current_user, tenant, document, notifier, events
):
    coordinator = SignatureCoordinator(db, notifier=notifier, events=events)
    request = await coordinator.create(document.id, tenant.id, SignerRole.TENANT)
    current_user.user = tenant

    resp = await client.post(
        f"/v2/signatures/{request.id}/sign",
        json={
            "typed_signature": "Jordan Tenant",
            "ip_address": "198.51.100.66",
            "user_agent": "forged",
        },
        headers={"user-agent": "lease-portal/1.0"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == SignatureStatus.SIGNED.value
    assert body["evidence"]["ip_address"] == "127.0.0.1"
    assert body["evidence"]["user_agent"] == "lease-portal/1.0"
