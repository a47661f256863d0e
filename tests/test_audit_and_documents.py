import uuid
from datetime import timedelta

import pytest

from core.errors import ResourceNotFound
from models.enums import AuditAction, DocumentStatus, DocumentType
from models.event_listener import AuditLogImmutable
from schemas.schema import DocumentCreate
from services.audit_service import AuditRecorder
from services.document_service import DocumentService


@pytest.fixture
def documents(db, events, clock):
    return DocumentService(db, events=events, clock=clock)


async def test_audit_entries_cannot_be_changed(db, document, landlord, clock):
    entry = await AuditRecorder(db, clock=clock).record(
        document.id, AuditAction.VIEW, landlord.id, {"source": "dashboard"}
    )
    await db.commit()

    entry.details = {"source": "tampered"}
    with pytest.raises(AuditLogImmutable):
        await db.commit()
    await db.rollback()

    await db.refresh(entry)
    await db.delete(entry)
    with pytest.raises(AuditLogImmutable):
        await db.commit()
    await db.rollback()


async def test_audit_details_are_json_safe(db, document, landlord, clock):
    step_id = uuid.uuid4()

    entry = await AuditRecorder(db, clock=clock).record(
        document.id,
        AuditAction.APPROVE,
        landlord.id,
        {"step_id": step_id, "status": DocumentStatus.APPROVED, "at": clock.now},
    )

    assert entry.details == {
        "step_id": str(step_id),
        "status": "approved",
        "at": str(clock.now),
    }


async def test_upload_records_an_upload_entry(db, rental, landlord, documents, events):
    data = DocumentCreate(
        property_id=rental.id,
        title="  Pet addendum ",
        document_type=DocumentType.DISCLOSURE,
        storage_url="https://files.example.com/pets.pdf",
        jurisdiction="ny",
    )

    document = await documents.upload(data, actor_id=landlord.id)

    assert document.status == DocumentStatus.DRAFT
    assert document.title == "Pet addendum"
    assert document.jurisdiction == "NY"
    history = await documents.history(document.id)
    assert [e.action for e in history] == [AuditAction.UPLOAD]
    assert "document.uploaded" in events.names


async def test_upload_for_missing_property(landlord, documents):
    data = DocumentCreate(
        property_id=uuid.uuid4(),
        title="Lease",
        document_type=DocumentType.LEASE,
        storage_url="s3://bucket/lease.pdf",
        jurisdiction="CA",
    )

    with pytest.raises(ResourceNotFound):
        await documents.upload(data, actor_id=landlord.id)


async def test_history_filters(db, document, landlord, tenant, documents, clock):
    await documents.record_access(document.id, AuditAction.VIEW, tenant.id)
    clock.advance(hours=1)
    await documents.record_access(document.id, AuditAction.DOWNLOAD, landlord.id)
    clock.advance(hours=1)
    await documents.record_access(document.id, AuditAction.VIEW, landlord.id)

    views = await documents.history(document.id, action=AuditAction.VIEW)
    by_landlord = await documents.history(document.id, actor_id=landlord.id)
    recent = await documents.history(
        document.id, since=clock.now - timedelta(minutes=90)
    )

    assert [e.actor_id for e in views] == [tenant.id, landlord.id]
    assert [e.action for e in by_landlord] == [AuditAction.DOWNLOAD, AuditAction.VIEW]
    assert len(recent) == 2
