from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    field_validator,
    model_validator,
)

from models.enums import (
    AuditAction,
    DocumentStatus,
    DocumentType,
    ExpirationStatus,
    RiskLevel,
    SignatureStatus,
    SignerRole,
    StepDecision,
    StepStatus,
    VerificationStatus,
    VerificationType,
)


class DocumentCreate(BaseModel):
    property_id: uuid.UUID
    tenant_id: Optional[uuid.UUID] = None
    title: str
    document_type: DocumentType
    storage_url: str
    jurisdiction: str
    processed_text: Optional[str] = None
    expiration_date: Optional[datetime] = None
    renewal_period_days: Optional[int] = Field(default=None, gt=0)

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str):
        if not value or not value.strip():
            raise ValueError("Title cannot be empty.")
        return value.strip()

    @field_validator("storage_url")
    @classmethod
    def validate_storage_url(cls, value: str):
        if not value.startswith(("http://", "https://", "s3://")):
            raise ValueError("Storage URL must be an http(s) or s3 URL.")
        return value

    @field_validator("jurisdiction")
    @classmethod
    def validate_jurisdiction(cls, value: str):
        value = value.strip().upper()
        if len(value) != 2 or not value.isalpha():
            raise ValueError("Jurisdiction must be a two-letter state code.")
        return value


class DocumentOut(BaseModel):
    id: uuid.UUID
    property_id: uuid.UUID
    tenant_id: Optional[uuid.UUID] = None
    uploaded_by_id: Optional[uuid.UUID] = None
    title: str
    document_type: DocumentType
    storage_url: str
    jurisdiction: str
    status: DocumentStatus
    expiration_date: Optional[datetime] = None
    renewal_period_days: int
    created_at: datetime
    updated_at: datetime
    model_config = {"from_attributes": True}


class WorkflowStepOut(BaseModel):
    id: uuid.UUID
    document_id: uuid.UUID
    position: int
    name: str
    status: StepStatus
    assignee_id: Optional[uuid.UUID] = None
    due_date: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    requires_validation: bool
    requires_signatures: bool
    validation_result: Optional[dict] = None
    decision_reason: Optional[str] = None
    model_config = {"from_attributes": True}


class DocumentDetailOut(DocumentOut):
    steps: List[WorkflowStepOut] = []
    expiration_status: ExpirationStatus


class StepDefinitionIn(BaseModel):
    name: str
    requires_validation: bool = False
    requires_signatures: bool = False
    assignee_id: Optional[uuid.UUID] = None
    due_in_days: Optional[int] = Field(default=None, gt=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str):
        value = value.strip().lower()
        if not value:
            raise ValueError("Step name cannot be empty.")
        return value


class StartWorkflowIn(BaseModel):
    # None means the default lease workflow.
    steps: Optional[List[StepDefinitionIn]] = None


class StepOutcomeIn(BaseModel):
    decision: StepDecision
    reason: Optional[str] = None
    verification_id: Optional[uuid.UUID] = None
    report_id: Optional[uuid.UUID] = None
    override_reason: Optional[str] = None

    @model_validator(mode="after")
    def require_reason_on_reject(self):
        if self.decision == StepDecision.REJECT and not (self.reason or "").strip():
            raise ValueError("A reason is required to reject a step.")
        return self


class VerificationRequestIn(BaseModel):
    verification_type: VerificationType
    expected_fields: List[str] = []
    subject: dict = {}


class VerificationOut(BaseModel):
    id: uuid.UUID
    document_id: uuid.UUID
    step_id: Optional[uuid.UUID] = None
    retry_of_id: Optional[uuid.UUID] = None
    verification_type: VerificationType
    status: VerificationStatus
    expected_fields: List[str] = []
    verified_fields: List[str] = []
    failed_fields: List[str] = []
    confidence: float
    notes: Optional[str] = None
    external_reference: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    model_config = {"from_attributes": True}


class VerificationResults(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    verified_fields: List[str] = Field(default=[], alias="verifiedFields")
    failed_fields: List[str] = Field(default=[], alias="failedFields")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    notes: Optional[str] = None


class VerificationCallback(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "verificationId"))
    status: str
    results: VerificationResults = VerificationResults()

    @field_validator("status")
    @classmethod
    def normalize_status(cls, value: str):
        return value.strip().lower()

    @property
    def succeeded(self) -> bool:
        return self.status in {"completed", "verified"}


class StateCompliance(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    state: str = ""
    is_compliant: StrictBool = Field(alias="isCompliant")
    requirements: List[str] = []


class ClassifierFindings(BaseModel):
    """Shape the legal classifier must answer with."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    is_valid: StrictBool = Field(alias="isValid")
    issues: List[str] = []
    state_compliance: StateCompliance = Field(alias="stateCompliance")
    recommendations: List[str] = []
    risk_level: RiskLevel = Field(alias="riskLevel")

    @field_validator("risk_level", mode="before")
    @classmethod
    def lower_risk_level(cls, value):
        return value.lower() if isinstance(value, str) else value


class ComplianceReportOut(BaseModel):
    id: uuid.UUID
    document_id: uuid.UUID
    step_id: Optional[uuid.UUID] = None
    jurisdiction: str
    is_valid: bool
    issues: List[str]
    is_compliant: bool
    required_rules: List[str]
    recommendations: List[str]
    risk_level: RiskLevel
    created_at: datetime
    model_config = {"from_attributes": True}


class ClassifierRecommendations(BaseModel):
    model_config = ConfigDict(extra="ignore")

    recommendations: List[str]


class CategoryFindings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    is_compliant: StrictBool = Field(alias="isCompliant")
    issues: List[str] = []


class RecommendationsOut(BaseModel):
    document_id: uuid.UUID
    jurisdiction: str
    recommendations: List[str]


class CategoryComplianceOut(BaseModel):
    document_id: uuid.UUID
    jurisdiction: str
    category: str
    is_compliant: bool
    issues: List[str] = []


class RequirementCategory(BaseModel):
    category: str
    rules: List[str]


class StateRequirementOut(BaseModel):
    state: str
    requirements: List[RequirementCategory] = []


class SignatureRequestCreate(BaseModel):
    signer_id: uuid.UUID
    signer_role: SignerRole
    expires_in_days: int = Field(default=7, gt=0, le=90)


class SignatureEvidence(BaseModel):
    signature_image: Optional[str] = None
    typed_signature: Optional[str] = None

    @model_validator(mode="after")
    def require_a_mark(self):
        if not (self.signature_image or (self.typed_signature or "").strip()):
            raise ValueError("Provide a signature image or a typed signature.")
        return self


class DeclineIn(BaseModel):
    reason: str


class SignatureRequestOut(BaseModel):
    id: uuid.UUID
    document_id: uuid.UUID
    signer_id: uuid.UUID
    signer_role: SignerRole
    status: SignatureStatus
    evidence: Optional[dict] = None
    decline_reason: Optional[str] = None
    replaces_id: Optional[uuid.UUID] = None
    created_at: datetime
    expires_at: datetime
    resolved_at: Optional[datetime] = None
    model_config = {"from_attributes": True}


class AuditLogOut(BaseModel):
    id: uuid.UUID
    document_id: uuid.UUID
    action: AuditAction
    actor_id: Optional[uuid.UUID] = None
    details: dict
    created_at: datetime
    model_config = {"from_attributes": True}


class RenewIn(BaseModel):
    renewal_period_days: Optional[int] = Field(default=None, gt=0)


class ExpirationOut(BaseModel):
    document_id: uuid.UUID
    status: ExpirationStatus
    expiration_date: Optional[datetime] = None
    days_until_expiration: Optional[int] = None
    next_expiration_date: Optional[datetime] = None


class ApiMessage(BaseModel):
    success: bool = True
    message: str
