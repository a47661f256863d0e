class DocumentWorkflowError(Exception):
    """Base class for every error raised by the document workflow engine."""

    status_code: int = 400

    def __init__(self, detail: str = "", **context):
        self.detail = detail or self.__class__.__name__
        self.context = context
        super().__init__(self.detail)


class ValidationError(DocumentWorkflowError):
    status_code = 422


class ComplianceBlocked(ValidationError):
    """A stored compliance report says the document is invalid."""


class AuthorizationDenied(DocumentWorkflowError):
    status_code = 403


class ResourceNotFound(DocumentWorkflowError):
    status_code = 404


class StaleStepState(DocumentWorkflowError):
    """A conditional update lost: the row was no longer in the expected state."""

    status_code = 409


class StepOrderViolation(StaleStepState):
    """An earlier step is not completed yet."""


class AlreadyTerminal(DocumentWorkflowError):
    status_code = 409


class AlreadyStarted(DocumentWorkflowError):
    status_code = 409


class DuplicatePendingRequest(DocumentWorkflowError):
    status_code = 409


class Expired(DocumentWorkflowError):
    status_code = 410


class ClassifierResponseInvalid(DocumentWorkflowError):
    status_code = 502


class ExternalServiceUnavailable(DocumentWorkflowError):
    status_code = 503
