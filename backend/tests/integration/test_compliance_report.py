"""Integration tests for document compliance reports."""
import pytest

from clinsign.db.models.signature import AuthMethod, SignatureMeaning
from clinsign.schemas.signature import PasswordCredential, TokenCredential
from clinsign.services.signature.compliance import ComplianceEvaluator, require_meaning
from tests.conftest import (
    ALICE_PASSWORD,
    BOB_PASSWORD,
    DOC_ID,
    TEST_SETTINGS,
    VALID_TOKEN,
    insert_signature,
)


pytestmark = pytest.mark.asyncio

ALICE_PW = PasswordCredential(password=ALICE_PASSWORD)


async def test_authored_and_approved_is_compliant(service, alice, bob):
    await service.sign_document(
        DOC_ID, alice, "AUTHORED", "PASSWORD", "10.1.2.3", ALICE_PW
    )
    await service.sign_document(
        DOC_ID, bob, "APPROVED", "PASSWORD", "10.1.2.4", PasswordCredential(password=BOB_PASSWORD)
    )

    report = await service.compliance_report(DOC_ID)
    assert report.document_id == DOC_ID
    assert report.is_compliant is True
    assert report.violations == []
    assert report.total_signatures == 2
    assert report.signatures_by_meaning == {
        SignatureMeaning.AUTHORED: 1,
        SignatureMeaning.APPROVED: 1,
    }
    assert report.signatures_by_method == {AuthMethod.PASSWORD: 2}
    assert [s.meaning for s in report.signatures] == [
        SignatureMeaning.AUTHORED,
        SignatureMeaning.APPROVED,
    ]


async def test_unsigned_document_is_not_compliant(service):
    report = await service.compliance_report(DOC_ID)
    assert report.is_compliant is False
    assert report.violations == ["Missing authored signature"]
    assert report.total_signatures == 0
    assert report.signatures_by_meaning == {}
    assert report.signatures == []


async def test_unknown_document_reports_like_unsigned(service):
    report = await service.compliance_report("never-signed")
    assert report.is_compliant is False
    assert report.total_signatures == 0


async def test_method_counts(service, alice):
    await service.sign_document(
        DOC_ID, alice, "AUTHORED", "PASSWORD", "10.1.2.3", ALICE_PW
    )
    await service.sign_document(
        DOC_ID, alice, "REVIEWED", "TOKEN", "10.1.2.3", TokenCredential(token=VALID_TOKEN)
    )
    report = await service.compliance_report(DOC_ID)
    assert report.signatures_by_method == {AuthMethod.PASSWORD: 1, AuthMethod.TOKEN: 1}


async def test_report_is_recomputed_each_call(service, alice):
    first = await service.compliance_report(DOC_ID)
    assert first.is_compliant is False

    await service.sign_document(
        DOC_ID, alice, "AUTHORED", "PASSWORD", "10.1.2.3", ALICE_PW
    )
    second = await service.compliance_report(DOC_ID)
    again = await service.compliance_report(DOC_ID)
    assert second.is_compliant is True
    assert second == again


async def test_missing_timestamp_violation(service, db_session):
    await insert_signature(db_session, use_now=False)
    report = await service.compliance_report(DOC_ID)
    assert report.is_compliant is False
    assert report.violations == ["Signature missing timestamp"]


async def test_configured_required_meanings(make_service, alice):
    service = make_service(
        TEST_SETTINGS.model_copy(
            update={
                "compliance_required_meanings": [
                    SignatureMeaning.AUTHORED,
                    SignatureMeaning.APPROVED,
                ]
            }
        )
    )
    await service.sign_document(
        DOC_ID, alice, "AUTHORED", "PASSWORD", "10.1.2.3", ALICE_PW
    )
    report = await service.compliance_report(DOC_ID)
    assert report.violations == ["Missing approved signature"]


async def test_custom_rules(service, db_session):
    await insert_signature(db_session, meaning=SignatureMeaning.WITNESSED)
    evaluator = ComplianceEvaluator(service.ledger, [require_meaning(SignatureMeaning.WITNESSED)])
    report = await evaluator.evaluate(DOC_ID)
    assert report.is_compliant is True
