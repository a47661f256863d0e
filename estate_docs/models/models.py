import uuid
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from core.date_helper import utcnow
from core.get_db import Base
from core.settings import settings

from .enums import (
    AuditAction,
    DocumentStatus,
    DocumentType,
    RiskLevel,
    SignatureStatus,
    SignerRole,
    StepStatus,
    UserRole,
    VerificationStatus,
    VerificationType,
)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, native_enum=False), nullable=False, index=True
    )
    vendor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    owned_properties: Mapped[List["Property"]] = relationship(
        "Property", back_populates="owner", foreign_keys="Property.owner_id"
    )
    managed_properties: Mapped[List["Property"]] = relationship(
        "Property", back_populates="managed_by", foreign_keys="Property.managed_by_id"
    )
    tenancies: Mapped[List["Tenancy"]] = relationship(
        "Tenancy", back_populates="tenant", cascade="all, delete-orphan"
    )


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner: Mapped["User"] = relationship(
        "User", back_populates="owned_properties", foreign_keys=[owner_id]
    )
    managed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    managed_by: Mapped[Optional["User"]] = relationship(
        "User", back_populates="managed_properties", foreign_keys=[managed_by_id]
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    documents: Mapped[List["Document"]] = relationship(
        "Document", back_populates="property", cascade="all, delete-orphan"
    )
    tenancies: Mapped[List["Tenancy"]] = relationship(
        "Tenancy", back_populates="property", cascade="all, delete-orphan"
    )


class Tenancy(Base):
    __tablename__ = "tenancies"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant: Mapped["User"] = relationship("User", back_populates="tenancies")
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    property: Mapped["Property"] = relationship("Property", back_populates="tenancies")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "property_id", name="uq_tenancy_tenant_property"),
    )


class Document(Base):
    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    property: Mapped["Property"] = relationship("Property", back_populates="documents")
    tenant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    uploaded_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    document_type: Mapped[DocumentType] = mapped_column(
        Enum(DocumentType, native_enum=False), nullable=False, index=True
    )
    storage_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    jurisdiction: Mapped[str] = mapped_column(String(2), nullable=False)
    processed_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, native_enum=False),
        nullable=False,
        default=DocumentStatus.DRAFT,
        index=True,
    )
    expiration_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, index=True
    )
    renewal_period_days: Mapped[int] = mapped_column(
        Integer, nullable=False, default=settings.DEFAULT_RENEWAL_PERIOD_DAYS
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    steps: Mapped[List["WorkflowStep"]] = relationship(
        "WorkflowStep",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WorkflowStep.position",
    )
    verifications: Mapped[List["VerificationResult"]] = relationship(
        "VerificationResult",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    compliance_reports: Mapped[List["ComplianceReport"]] = relationship(
        "ComplianceReport",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    signature_requests: Mapped[List["SignatureRequest"]] = relationship(
        "SignatureRequest",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    audit_entries: Mapped[List["AuditLogEntry"]] = relationship(
        "AuditLogEntry",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AuditLogEntry.created_at",
    )

    @validates("jurisdiction")
    def normalize_jurisdiction(self, key, value):
        value = (value or "").strip().upper()
        if len(value) != 2 or not value.isalpha():
            raise ValueError("Jurisdiction must be a two-letter state code.")
        return value

    @validates("renewal_period_days")
    def validate_renewal_period(self, key, value):
        if value is not None and value <= 0:
            raise ValueError("Renewal period must be positive.")
        return value


class WorkflowStep(Base):
    __tablename__ = "workflow_steps"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document: Mapped["Document"] = relationship("Document", back_populates="steps")
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[StepStatus] = mapped_column(
        Enum(StepStatus, native_enum=False),
        nullable=False,
        default=StepStatus.PENDING,
        index=True,
    )
    assignee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    requires_validation: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_signatures: Mapped[bool] = mapped_column(Boolean, default=False)
    validation_result: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    decision_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("document_id", "position", name="uq_step_document_position"),
    )

    def __repr__(self):
        return f"<WorkflowStep {self.position}:{self.name} status={self.status}>"


class VerificationResult(Base):
    __tablename__ = "document_verifications"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document: Mapped["Document"] = relationship(
        "Document", back_populates="verifications"
    )
    step_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("workflow_steps.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    retry_of_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("document_verifications.id", ondelete="SET NULL"),
        nullable=True,
    )
    verification_type: Mapped[VerificationType] = mapped_column(
        Enum(VerificationType, native_enum=False), nullable=False
    )
    status: Mapped[VerificationStatus] = mapped_column(
        Enum(VerificationStatus, native_enum=False),
        nullable=False,
        default=VerificationStatus.PENDING,
        index=True,
    )
    expected_fields: Mapped[list] = mapped_column(JSON, default=list)
    # Applicant fields forwarded to the verifier; reused on retry.
    subject: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    verified_fields: Mapped[list] = mapped_column(JSON, default=list)
    failed_fields: Mapped[list] = mapped_column(JSON, default=list)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_reference: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @validates("confidence")
    def validate_confidence(self, key, value):
        if value is not None and not 0.0 <= value <= 1.0:
            raise ValueError("Confidence must be within [0, 1].")
        return value


class ComplianceReport(Base):
    __tablename__ = "compliance_reports"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document: Mapped["Document"] = relationship(
        "Document", back_populates="compliance_reports"
    )
    step_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("workflow_steps.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    jurisdiction: Mapped[str] = mapped_column(String(2), nullable=False)
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False)
    issues: Mapped[list] = mapped_column(JSON, default=list)
    is_compliant: Mapped[bool] = mapped_column(Boolean, nullable=False)
    required_rules: Mapped[list] = mapped_column(JSON, default=list)
    recommendations: Mapped[list] = mapped_column(JSON, default=list)
    risk_level: Mapped[RiskLevel] = mapped_column(
        Enum(RiskLevel, native_enum=False), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class SignatureRequest(Base):
    __tablename__ = "signature_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document: Mapped["Document"] = relationship(
        "Document", back_populates="signature_requests"
    )
    signer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    signer_role: Mapped[SignerRole] = mapped_column(
        Enum(SignerRole, native_enum=False), nullable=False
    )
    status: Mapped[SignatureStatus] = mapped_column(
        Enum(SignatureStatus, native_enum=False),
        nullable=False,
        default=SignatureStatus.PENDING,
        index=True,
    )
    evidence: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    decline_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    replaces_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("signature_requests.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index(
            "uq_signature_pending_signer",
            "document_id",
            "signer_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    def is_overdue(self, now: datetime) -> bool:
        return now > self.expires_at


class AuditLogEntry(Base):
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document: Mapped["Document"] = relationship(
        "Document", back_populates="audit_entries"
    )
    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, native_enum=False), nullable=False, index=True
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True, index=True
    )
    details: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<AuditLogEntry {self.action} document={self.document_id}>"
