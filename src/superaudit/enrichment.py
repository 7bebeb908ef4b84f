# SPDX-License-Identifier: MIT
"""Two-stage enrichment: deterministic findings first, optional explanations after.

Detection never waits on an enrichment provider. A provider (outside this
package) receives the eligible findings, returns payloads keyed by
FindingKey, and ``merge_enrichment`` attaches them. Merging is pure: the
same findings and payloads always produce the same result.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from superaudit.playbooks.parser import safe_error_summary
from superaudit.rules.base import Finding, FindingKey


class Enrichment(BaseModel):
    """Advisory context for one finding. Never changes the finding itself."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    explanation: str
    suggested_fix: str | None = None
    risk_score: int = Field(ge=0, le=10)
    confidence: float = Field(ge=0.0, le=1.0)


@dataclass(frozen=True)
class EnrichedFinding:
    finding: Finding
    enrichment: Enrichment | None = None

    def to_dict(self) -> dict[str, Any]:
        data = self.finding.to_dict()
        data["enrichment"] = self.enrichment.model_dump() if self.enrichment is not None else None
        return data


def enrichment_candidates(findings: Sequence[Finding]) -> list[Finding]:
    """Findings a provider may be asked about, in input order."""
    return [f for f in findings if f.eligible_for_enrichment]


def parse_enrichment(payload: Any) -> Enrichment:
    """Validate one provider payload.

    Raises:
        ValueError: Field paths and error codes only; provider text is not echoed.
    """
    try:
        return Enrichment.model_validate(payload)
    except ValidationError as e:
        raise ValueError(f"Invalid enrichment payload: {'; '.join(safe_error_summary(e))}") from None


def merge_enrichment(
    findings: Sequence[Finding],
    payloads: Mapping[FindingKey, Enrichment],
) -> list[EnrichedFinding]:
    """Attach payloads to findings by key.

    Order and content of ``findings`` are preserved. Payloads for ineligible
    findings or for keys no finding has are ignored.
    """
    merged: list[EnrichedFinding] = []
    for finding in findings:
        enrichment = payloads.get(finding.key) if finding.eligible_for_enrichment else None
        merged.append(EnrichedFinding(finding, enrichment))
    return merged
