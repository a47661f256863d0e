import json
import logging
import uuid
from typing import Callable, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from core.date_helper import utcnow
from core.errors import (
    ClassifierResponseInvalid,
    ResourceNotFound,
    ValidationError,
)
from legal_ai.legal_classifier import LegalClassifierClient, legal_classifier
from models.enums import DocumentType
from models.models import ComplianceReport, Document
from repos.compliance_report_repo import ComplianceReportRepo
from repos.document_repo import DocumentRepo
from schemas.schema import (
    CategoryComplianceOut,
    CategoryFindings,
    ClassifierFindings,
    ClassifierRecommendations,
    RecommendationsOut,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

STATE_REQUIREMENTS: dict[str, dict] = {
    "CA": {
        "state": "California",
        "requirements": [
            {
                "category": "Lease Agreement",
                "rules": [
                    "Must include rent control information if applicable",
                    "Must specify security deposit limits",
                    "Must include lead paint disclosure",
                    "Must specify notice periods for rent increases",
                ],
            },
            {
                "category": "Security Deposit",
                "rules": [
                    "Maximum 2 months rent for unfurnished units",
                    "Maximum 3 months rent for furnished units",
                    "Must be returned within 21 days",
                ],
            },
        ],
    },
    "NY": {
        "state": "New York",
        "requirements": [
            {
                "category": "Lease Agreement",
                "rules": [
                    "Must include rent stabilization information if applicable",
                    "Must specify security deposit handling",
                    "Must include lead paint disclosure",
                    "Must specify notice periods for rent increases",
                ],
            },
            {
                "category": "Security Deposit",
                "rules": [
                    "Must be held in interest-bearing account",
                    "Must be returned within 14 days",
                ],
            },
        ],
    },
}

SYSTEM_INSTRUCTION = (
    "You are a legal assistant specializing in {state} real estate law. "
    "Analyze the following document for compliance with {state} requirements. "
    "Answer with a JSON object with the keys isValid (boolean), issues (list of "
    "strings), stateCompliance (object with state, isCompliant, requirements), "
    "recommendations (list of strings) and riskLevel (low, medium or high)."
)

RECOMMENDATIONS_INSTRUCTION = (
    "You are a legal assistant specializing in {state} real estate law. "
    "Provide specific recommendations for improving the following document to "
    "ensure compliance with {state} requirements. Answer with a JSON object "
    "with the key recommendations (list of strings)."
)

CATEGORY_INSTRUCTION = (
    "You are a legal assistant specializing in {state} real estate law. "
    "Check if the following document complies with the specified requirements. "
    "Answer with a JSON object with the keys isCompliant (boolean) and issues "
    "(list of strings)."
)


def get_state_requirements(jurisdiction: str) -> dict:
    """Static rule set for a state; unknown states get an empty rule set."""
    code = (jurisdiction or "").strip().upper()
    return STATE_REQUIREMENTS.get(code, {"state": code, "requirements": []})


def _parse(raw: str, schema: Type[T]) -> T:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        raise ClassifierResponseInvalid("Classifier response is not JSON")

    if not isinstance(data, dict):
        raise ClassifierResponseInvalid("Classifier response is not a JSON object")

    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise ClassifierResponseInvalid(
            f"Classifier response has the wrong shape: {e.error_count()} error(s)"
        )


def parse_findings(raw: str) -> ClassifierFindings:
    return _parse(raw, ClassifierFindings)


def _known_state(state: str) -> dict:
    rules = STATE_REQUIREMENTS.get(state)
    if rules is None:
        raise ValidationError(f"No requirements found for state: {state}", state=state)
    return rules


class ComplianceValidator:
    def __init__(
        self,
        db,
        classifier: Optional[LegalClassifierClient] = None,
        clock: Callable = utcnow,
    ):
        self.documents: DocumentRepo = DocumentRepo(db)
        self.reports: ComplianceReportRepo = ComplianceReportRepo(db)
        self.classifier = classifier or legal_classifier
        self.clock = clock

    async def _get_analyzable(self, document_id: uuid.UUID) -> Document:
        document = await self.documents.get(document_id)
        if not document:
            raise ResourceNotFound("Document not found", document_id=document_id)
        if not (document.processed_text or "").strip():
            raise ValidationError(
                "Document has no processed text to analyze", document_id=document_id
            )
        return document

    async def validate(
        self,
        document_id: uuid.UUID,
        jurisdiction: Optional[str] = None,
        document_type: Optional[DocumentType] = None,
        step_id: Optional[uuid.UUID] = None,
    ) -> ComplianceReport:
        """Run the classifier and append a report.

        Raises ClassifierResponseInvalid or ExternalServiceUnavailable
        without persisting anything. The caller commits.
        """
        document = await self._get_analyzable(document_id)

        state = (jurisdiction or document.jurisdiction).strip().upper()
        doc_type = DocumentType(document_type or document.document_type)
        rules = get_state_requirements(state)

        raw = await self.classifier.classify(
            system_instruction=SYSTEM_INSTRUCTION.format(state=rules["state"] or state),
            document_text=document.processed_text,
            jurisdiction_rules=rules,
            document_type=doc_type.value,
        )
        findings = parse_findings(raw)

        report = ComplianceReport(
            document_id=document_id,
            step_id=step_id,
            jurisdiction=state,
            is_valid=findings.is_valid,
            issues=findings.issues,
            is_compliant=findings.state_compliance.is_compliant,
            required_rules=findings.state_compliance.requirements,
            recommendations=findings.recommendations,
            risk_level=findings.risk_level,
            created_at=self.clock(),
        )
        await self.reports.add(report)
        logger.info(
            "Compliance report %s for document %s: valid=%s risk=%s",
            report.id,
            document_id,
            report.is_valid,
            report.risk_level.value,
        )
        return report

    async def recommendations(
        self, document_id: uuid.UUID, jurisdiction: Optional[str] = None
    ) -> RecommendationsOut:
        """Suggested edits for the document; nothing is persisted."""
        document = await self._get_analyzable(document_id)
        state = (jurisdiction or document.jurisdiction).strip().upper()
        rules = _known_state(state)

        raw = await self.classifier.classify(
            system_instruction=RECOMMENDATIONS_INSTRUCTION.format(state=rules["state"]),
            document_text=document.processed_text,
            jurisdiction_rules=rules,
            document_type=DocumentType(document.document_type).value,
        )
        found = _parse(raw, ClassifierRecommendations)
        return RecommendationsOut(
            document_id=document_id,
            jurisdiction=state,
            recommendations=found.recommendations,
        )

    async def check_category(
        self,
        document_id: uuid.UUID,
        category: str,
        jurisdiction: Optional[str] = None,
    ) -> CategoryComplianceOut:
        document = await self._get_analyzable(document_id)
        state = (jurisdiction or document.jurisdiction).strip().upper()
        rules = _known_state(state)

        wanted = (category or "").strip().lower()
        section = next(
            (r for r in rules["requirements"] if r["category"].lower() == wanted),
            None,
        )
        if section is None:
            raise ValidationError(
                f"No requirements found for category: {category}",
                state=state,
                category=category,
            )

        raw = await self.classifier.classify(
            system_instruction=CATEGORY_INSTRUCTION.format(state=rules["state"]),
            document_text=document.processed_text,
            jurisdiction_rules={"state": rules["state"], "requirements": [section]},
            document_type=DocumentType(document.document_type).value,
        )
        found = _parse(raw, CategoryFindings)
        logger.info(
            "Category check %s/%s for document %s: compliant=%s",
            state,
            section["category"],
            document_id,
            found.is_compliant,
        )
        return CategoryComplianceOut(
            document_id=document_id,
            jurisdiction=state,
            category=section["category"],
            is_compliant=found.is_compliant,
            issues=found.issues,
        )

    async def latest_report(
        self, document_id: uuid.UUID, step_id: Optional[uuid.UUID] = None
    ) -> Optional[ComplianceReport]:
        return await self.reports.latest(document_id, step_id)

    async def list_reports(self, document_id: uuid.UUID) -> list[ComplianceReport]:
        return await self.reports.list_for_document(document_id)
