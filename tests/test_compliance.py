import pytest

from core.errors import (
    ClassifierResponseInvalid,
    ExternalServiceUnavailable,
    ValidationError,
)
from models.enums import RiskLevel
from repos.compliance_report_repo import ComplianceReportRepo
from services.compliance_service import (
    ComplianceValidator,
    get_state_requirements,
    parse_findings,
)

from .conftest import INVALID_FINDINGS, VALID_FINDINGS, make_document


@pytest.fixture
def validator(db, classifier, clock):
    return ComplianceValidator(db, classifier=classifier, clock=clock)


def test_known_state_requirements():
    rules = get_state_requirements("ca")

    assert rules["state"] == "California"
    assert any(r["category"] == "Security Deposit" for r in rules["requirements"])


def test_unknown_state_has_no_rules():
    assert get_state_requirements("TX") == {"state": "TX", "requirements": []}


def test_parse_findings_normalizes_risk_level():
    findings = parse_findings(VALID_FINDINGS)

    assert findings.is_valid is True
    assert findings.risk_level == RiskLevel.LOW
    assert findings.state_compliance.requirements == ["Security deposit limit"]


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2, 3]",
        '{"isValid": "yes", "stateCompliance": {"isCompliant": true}, "riskLevel": "low"}',
        '{"isValid": true, "stateCompliance": {"isCompliant": true}}',
    ],
)
def test_parse_findings_rejects_malformed_responses(raw):
    with pytest.raises(ClassifierResponseInvalid):
        parse_findings(raw)


async def test_validate_stores_a_report(db, document, validator, classifier):
    classifier.response = INVALID_FINDINGS

    report = await validator.validate(document.id)
    await db.commit()

    assert report.jurisdiction == "CA"
    assert report.is_valid is False
    assert report.risk_level == RiskLevel.HIGH
    assert report.issues == ["Deposit exceeds two months rent"]
    assert classifier.calls[0]["document_type"] == "lease"
    assert "California" in classifier.calls[0]["system_instruction"]
    assert (await validator.latest_report(document.id)).id == report.id


async def test_missing_risk_level_stores_nothing(db, document, validator, classifier):
    classifier.response = '{"isValid": true, "stateCompliance": {"isCompliant": true}}'

    with pytest.raises(ClassifierResponseInvalid):
        await validator.validate(document.id)

    assert await ComplianceReportRepo(db).list_for_document(document.id) == []


async def test_document_without_text_cannot_be_validated(db, rental, tenant, validator):
    document = await make_document(db, rental, tenant, processed_text=None)

    with pytest.raises(ValidationError):
        await validator.validate(document.id)


async def test_unreachable_classifier_stores_nothing(db, document, validator, classifier):
    classifier.error = ExternalServiceUnavailable("Classifier timed out")

    with pytest.raises(ExternalServiceUnavailable):
        await validator.validate(document.id)

    assert await ComplianceReportRepo(db).list_for_document(document.id) == []


async def test_recommendations_for_the_document_state(document, validator, classifier):
    classifier.response = (
        '{"recommendations": ["State the deposit return deadline of 21 days"]}'
    )

    result = await validator.recommendations(document.id)

    assert result.jurisdiction == "CA"
    assert result.recommendations == ["State the deposit return deadline of 21 days"]
    assert "improving" in classifier.calls[0]["system_instruction"]
    assert classifier.calls[0]["jurisdiction_rules"]["state"] == "California"


async def test_recommendations_reject_unknown_state(document, validator, classifier):
    with pytest.raises(ValidationError):
        await validator.recommendations(document.id, jurisdiction="ZZ")

    assert classifier.calls == []


async def test_recommendations_must_be_a_list(document, validator, classifier):
    classifier.response = '{"recommendations": "Looks fine"}'

    with pytest.raises(ClassifierResponseInvalid):
        await validator.recommendations(document.id)


async def test_check_category_sends_only_that_category(
    db, document, validator, classifier
):
    classifier.response = (
        '{"isCompliant": false, "issues": ["Return period is 30 days"]}'
    )

    result = await validator.check_category(
        document.id, "security deposit", jurisdiction="ny"
    )

    assert result.jurisdiction == "NY"
    assert result.category == "Security Deposit"
    assert result.is_compliant is False
    assert result.issues == ["Return period is 30 days"]
    sent = classifier.calls[0]["jurisdiction_rules"]["requirements"]
    assert [section["category"] for section in sent] == ["Security Deposit"]
    assert await ComplianceReportRepo(db).list_for_document(document.id) == []


async def test_check_category_rejects_unknown_category(document, validator, classifier):
    with pytest.raises(ValidationError):
        await validator.check_category(document.id, "Pet Policy")

    assert classifier.calls == []
