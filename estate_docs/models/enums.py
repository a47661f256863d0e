from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    LANDLORD = "landlord"
    PROPERTY_MANAGER = "property_manager"
    VENDOR = "vendor"
    TENANT = "tenant"


class DocumentType(str, Enum):
    LEASE = "lease"
    DISCLOSURE = "disclosure"
    APPLICATION = "application"
    OTHER = "other"


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    PENDING_VERIFICATION = "pending_verification"
    PENDING_VALIDATION = "pending_validation"
    PENDING_SIGNATURE = "pending_signature"
    SIGNED = "signed"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


TERMINAL_DOCUMENT_STATUSES = {
    DocumentStatus.APPROVED,
    DocumentStatus.REJECTED,
    DocumentStatus.EXPIRED,
}


class StepName(str, Enum):
    UPLOAD = "upload"
    TENANT_VERIFICATION = "tenant_verification"
    LEGAL_REVIEW = "legal_review"
    LANDLORD_APPROVAL = "landlord_approval"


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


OPEN_STEP_STATUSES = (StepStatus.PENDING, StepStatus.IN_PROGRESS)


class StepDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class VerificationType(str, Enum):
    IDENTITY = "identity"
    INCOME = "income"
    EMPLOYMENT = "employment"
    RENTAL_HISTORY = "rental_history"
    OTHER = "other"


BACKGROUND_CHECK_TYPES = {VerificationType.EMPLOYMENT, VerificationType.RENTAL_HISTORY}


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SignerRole(str, Enum):
    LANDLORD = "landlord"
    TENANT = "tenant"


class SignatureStatus(str, Enum):
    PENDING = "pending"
    SIGNED = "signed"
    EXPIRED = "expired"
    DECLINED = "declined"


class AuditAction(str, Enum):
    VIEW = "view"
    DOWNLOAD = "download"
    SHARE = "share"
    COMMENT = "comment"
    SIGN = "sign"
    APPROVE = "approve"
    REJECT = "reject"
    RENEW = "renew"
    UPLOAD = "upload"
    START = "start"
    VERIFY = "verify"
    VALIDATE = "validate"
    DECLINE = "decline"
    EXPIRE = "expire"
    REQUEST_SIGNATURE = "request_signature"


class ExpirationStatus(str, Enum):
    NO_EXPIRATION = "no_expiration"
    VALID = "valid"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"


class PermissionAction(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    SIGN = "sign"


class PermissionResource(str, Enum):
    TICKET = "ticket"
    PROPERTY = "property"
    VENDOR = "vendor"
    SETTINGS = "settings"
    USER = "user"
    DOCUMENT = "document"
    WORKFLOW = "workflow"
    SIGNATURE = "signature"
    VERIFICATION = "verification"
    AUDIT_LOG = "audit_log"


class OwnershipScope(str, Enum):
    OWN = "own"
    ASSIGNED = "assigned"


class ConditionField(str, Enum):
    PROPERTY_ID = "property_id"
    USER_ID = "user_id"
    VENDOR_ID = "vendor_id"


class NotificationType(str, Enum):
    SIGNATURE_REQUEST = "signature_request"
    DOCUMENT_SIGNED = "document_signed"
    SIGNATURE_DECLINED = "signature_declined"
    DOCUMENT_VERIFICATION = "document_verification"
    WORKFLOW_UPDATE = "workflow_update"
    DOCUMENT_RENEWED = "document_renewed"
