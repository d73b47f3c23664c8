"""
21 CFR Part 11-style compliance evaluation over a document's signatures.

A rule is any callable taking the ordered signatures and returning a
list of human-readable violations (empty when satisfied). Rules are
evaluated in order and their findings concatenated.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable, Sequence

import structlog

from clinsign.db.models.signature import SignatureMeaning
from clinsign.schemas.signature import ComplianceReport, SignatureRecord
from clinsign.services.signature.ledger import SignatureLedger

_log = structlog.get_logger(__name__)

ComplianceRule = Callable[[Sequence[SignatureRecord]], list[str]]


def require_meaning(meaning: SignatureMeaning) -> ComplianceRule:
    """At least one signature with ``meaning`` must exist."""

    def rule(signatures: Sequence[SignatureRecord]) -> list[str]:
        if any(s.meaning == meaning for s in signatures):
            return []
        return [f"Missing {meaning.value.lower()} signature"]

    rule.__name__ = f"require_{meaning.value.lower()}"
    return rule


def require_timestamps(signatures: Sequence[SignatureRecord]) -> list[str]:
    """Every signature must carry a timestamp."""
    return ["Signature missing timestamp" for s in signatures if s.signed_at is None]


def default_rules(
    required_meanings: Iterable[SignatureMeaning] = (SignatureMeaning.AUTHORED,),
) -> list[ComplianceRule]:
    return [*(require_meaning(m) for m in required_meanings), require_timestamps]


class ComplianceEvaluator:
    def __init__(
        self,
        ledger: SignatureLedger,
        rules: Sequence[ComplianceRule] | None = None,
    ) -> None:
        self._ledger = ledger
        self._rules = list(rules) if rules is not None else default_rules()

    async def evaluate(self, document_id: str) -> ComplianceReport:
        """Recomputed from the ledger on every call."""
        signatures = await self._ledger.get_by_document(document_id)

        by_meaning = Counter(s.meaning for s in signatures)
        by_method = Counter(s.auth_method for s in signatures)

        violations: list[str] = []
        for rule in self._rules:
            violations.extend(rule(signatures))

        report = ComplianceReport(
            document_id=document_id,
            total_signatures=len(signatures),
            signatures_by_meaning=dict(by_meaning),
            signatures_by_method=dict(by_method),
            is_compliant=not violations,
            violations=violations,
            signatures=signatures,
        )
        _log.info(
            "compliance_evaluated",
            document_id=document_id,
            total_signatures=report.total_signatures,
            is_compliant=report.is_compliant,
            violation_count=len(violations),
        )
        return report
