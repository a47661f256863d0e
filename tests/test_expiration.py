from datetime import datetime, timedelta

import pytest

from core.errors import ValidationError
from models.enums import AuditAction, DocumentStatus, ExpirationStatus
from repos.audit_log_repo import AuditLogRepo
from services.expiration_service import (
    ExpirationTracker,
    get_expiration_status,
    renewal_preview,
)

from .conftest import NOW, make_document


@pytest.fixture
def tracker(db, notifier, events, clock):
    return ExpirationTracker(db, notifier=notifier, events=events, clock=clock)


@pytest.mark.parametrize(
    "expiration_date, expected",
    [
        (None, ExpirationStatus.NO_EXPIRATION),
        (NOW - timedelta(seconds=1), ExpirationStatus.EXPIRED),
        (NOW + timedelta(days=10), ExpirationStatus.EXPIRING_SOON),
        (NOW + timedelta(days=30), ExpirationStatus.EXPIRING_SOON),
        (NOW + timedelta(days=31), ExpirationStatus.VALID),
    ],
)
def test_expiration_status(expiration_date, expected):
    assert get_expiration_status(expiration_date, NOW) == expected


def test_renewal_preview_counts_from_the_expiration_date():
    preview = renewal_preview(NOW + timedelta(days=45), 365, NOW)

    assert preview.status == ExpirationStatus.VALID
    assert preview.days_until_expiration == 45
    assert preview.next_expiration_date == NOW + timedelta(days=410)


def test_renewal_preview_without_expiration():
    preview = renewal_preview(None, 365, NOW)

    assert preview.status == ExpirationStatus.NO_EXPIRATION
    assert preview.next_expiration_date is None


async def test_renewing_twice_extends_from_each_boundary(db, rental, tenant, tracker):
    document = await make_document(
        db, rental, tenant, expiration_date=datetime(2026, 1, 1)
    )

    first = (await tracker.renew(document.id)).expiration_date
    second = (await tracker.renew(document.id)).expiration_date

    assert first == datetime(2027, 1, 1)
    assert second == datetime(2028, 1, 1)
    renewals = await AuditLogRepo(db).list(document.id, action=AuditAction.RENEW)
    assert len(renewals) == 2


async def test_renew_requires_an_expiration_date(db, document, tracker):
    with pytest.raises(ValidationError):
        await tracker.renew(document.id)


async def test_expired_document_returns_to_approved_after_renewal(
    db, rental, tenant, tracker, events
):
    document = await make_document(
        db,
        rental,
        tenant,
        status=DocumentStatus.APPROVED,
        expiration_date=NOW - timedelta(days=2),
    )

    refreshed = await tracker.refresh_status(document.id)
    assert refreshed.status == DocumentStatus.EXPIRED
    assert "document.expired" in events.names

    renewed = await tracker.renew(document.id, renewal_period_days=30)
    assert renewed.status == DocumentStatus.APPROVED
    assert renewed.expiration_date == NOW + timedelta(days=28)


async def test_refresh_leaves_unapproved_documents_alone(db, rental, tenant, tracker):
    document = await make_document(
        db, rental, tenant, expiration_date=NOW - timedelta(days=2)
    )

    refreshed = await tracker.refresh_status(document.id)

    assert refreshed.status == DocumentStatus.DRAFT


async def test_expire_due_sweeps_lapsed_approved_documents(db, rental, tenant, tracker):
    lapsed = await make_document(
        db,
        rental,
        tenant,
        status=DocumentStatus.APPROVED,
        expiration_date=NOW - timedelta(days=1),
    )
    await make_document(
        db,
        rental,
        tenant,
        status=DocumentStatus.APPROVED,
        expiration_date=NOW + timedelta(days=90),
    )

    assert await tracker.expire_due() == 1
    entries = await AuditLogRepo(db).list(lapsed.id, action=AuditAction.EXPIRE)
    assert len(entries) == 1
