import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.errors import ExternalServiceUnavailable
from core.get_db import Base
from models.enums import DocumentStatus, DocumentType, UserRole
from models.models import Document, Property, Tenancy, User
from services.signature_service import SignatureCoordinator
from services.workflow_service import WorkflowOrchestrator

NOW = datetime(2026, 3, 1, 12, 0, 0)

VALID_FINDINGS = (
    '{"isValid": true, "issues": [], '
    '"stateCompliance": {"state": "CA", "isCompliant": true, '
    '"requirements": ["Security deposit limit"]}, '
    '"recommendations": [], "riskLevel": "LOW"}'
)
INVALID_FINDINGS = (
    '{"isValid": false, "issues": ["Deposit exceeds two months rent"], '
    '"stateCompliance": {"state": "CA", "isCompliant": false, "requirements": []}, '
    '"recommendations": ["Lower the deposit"], "riskLevel": "high"}'
)


class MutableClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeVerifier:
    def __init__(self):
        self.fail = False
        self.submissions = []

    async def submit(self, verification_type, payload):
        self.submissions.append((verification_type, payload))
        if self.fail:
            raise ExternalServiceUnavailable("Verifier unreachable")
        return {"id": f"ext-{len(self.submissions)}"}


class FakeClassifier:
    def __init__(self, response: str = VALID_FINDINGS):
        self.response = response
        self.error = None
        self.calls = []

    async def classify(
        self, system_instruction, document_text, jurisdiction_rules, document_type
    ):
        self.calls.append(
            {
                "system_instruction": system_instruction,
                "document_text": document_text,
                "jurisdiction_rules": jurisdiction_rules,
                "document_type": document_type,
            }
        )
        if self.error:
            raise self.error
        return self.response


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def notify(
        self, target_id, notification_type, title, message, data=None, email=None
    ):
        self.sent.append(
            {
                "target_id": target_id,
                "type": notification_type,
                "title": title,
                "data": data or {},
                "email": email,
            }
        )
        return True


class EventRecorder:
    def __init__(self):
        self.events = []

    async def __call__(self, name, data):
        self.events.append((name, data))
        return True

    @property
    def names(self):
        return [name for name, _ in self.events]


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    session_factory = async_sessionmaker(
        bind=engine, expire_on_commit=False, autoflush=False
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def events():
    return EventRecorder()


@pytest.fixture
def orchestrator(db, verifier, classifier, notifier, events, clock):
    return WorkflowOrchestrator(
        db,
        verifier=verifier,
        classifier=classifier,
        notifier=notifier,
        events=events,
        clock=clock,
    )


@pytest.fixture
def signatures(db, orchestrator, notifier, events, clock):
    return SignatureCoordinator(
        db, orchestrator=orchestrator, notifier=notifier, events=events, clock=clock
    )


async def make_user(db, role: UserRole, is_active: bool = True, vendor_id=None) -> User:
    user = User(
        email=f"{role.value}-{uuid.uuid4().hex[:8]}@example.com",
        full_name=f"Test {role.value.title()}",
        role=role,
        vendor_id=vendor_id,
        is_active=is_active,
    )
    db.add(user)
    await db.commit()
    return user


async def make_property(db, owner: User, manager: User | None = None) -> Property:
    prop = Property(
        title="12 Harbor Lane",
        owner_id=owner.id,
        managed_by_id=manager.id if manager else None,
    )
    db.add(prop)
    await db.commit()
    return prop


async def make_tenancy(db, tenant: User, prop: Property, is_active: bool = True) -> Tenancy:
    tenancy = Tenancy(tenant_id=tenant.id, property_id=prop.id, is_active=is_active)
    db.add(tenancy)
    await db.commit()
    return tenancy


async def make_document(
    db,
    prop: Property,
    tenant: User | None = None,
    status: DocumentStatus = DocumentStatus.DRAFT,
    expiration_date: datetime | None = None,
    processed_text: str | None = "Residential lease agreement for 12 Harbor Lane.",
    renewal_period_days: int = 365,
) -> Document:
    document = Document(
        property_id=prop.id,
        tenant_id=tenant.id if tenant else None,
        title="Lease 2026",
        document_type=DocumentType.LEASE,
        storage_url="https://files.example.com/leases/2026.pdf",
        jurisdiction="ca",
        processed_text=processed_text,
        status=status,
        expiration_date=expiration_date,
        renewal_period_days=renewal_period_days,
        created_at=NOW,
        updated_at=NOW,
    )
    db.add(document)
    await db.commit()
    return document


@pytest.fixture
async def landlord(db):
    return await make_user(db, UserRole.LANDLORD)


@pytest.fixture
async def tenant(db):
    return await make_user(db, UserRole.TENANT)


@pytest.fixture
async def rental(db, landlord, tenant):
    prop = await make_property(db, landlord)
    await make_tenancy(db, tenant, prop)
    return prop


@pytest.fixture
async def document(db, rental, tenant):
    return await make_document(db, rental, tenant)
