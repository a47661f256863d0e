from . import event_listener  # noqa: F401
from .models import (  # noqa: F401
    AuditLogEntry,
    ComplianceReport,
    Document,
    Property,
    SignatureRequest,
    Tenancy,
    User,
    VerificationResult,
    WorkflowStep,
)
