from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from partrate.ruleset import ACCOUNTANT, NATIONAL_SUBSIDY, PRIVATE

RiskLevel = Literal["SAFE", "WARNING", "DANGER"]
GroupRisk = Literal["HIGH", "MEDIUM", "LOW"]

RISK_LEVELS: tuple[RiskLevel, ...] = ("DANGER", "WARNING", "SAFE")
RISK_LEVEL_ORDER = {lvl: i for i, lvl in enumerate(RISK_LEVELS)}  # smaller is worse


def _bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "y", "yes", "o"}


@dataclass(frozen=True)
class ParticipationAssignment:
    id: str
    member_id: str
    member_display_name: str
    project_id: str
    project_display_name: str
    rate: float
    settlement_system: str
    funding_org: str = ""
    period_start: str = ""
    period_end: str = ""
    is_document_only: bool = False
    note: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "memberId": self.member_id,
            "memberName": self.member_display_name,
            "projectId": self.project_id,
            "projectName": self.project_display_name,
            "rate": self.rate,
            "settlementSystem": self.settlement_system,
            "clientOrg": self.funding_org,
            "periodStart": self.period_start,
            "periodEnd": self.period_end,
            "isDocumentOnly": self.is_document_only,
            "note": self.note,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "ParticipationAssignment":
        return cls(
            id=str(d["id"]),
            member_id=str(d["memberId"]),
            member_display_name=str(d.get("memberName") or d["memberId"]),
            project_id=str(d["projectId"]),
            project_display_name=str(d.get("projectName") or d["projectId"]),
            rate=float(d["rate"]),
            settlement_system=str(d["settlementSystem"]),
            funding_org=str(d.get("clientOrg") or ""),
            period_start=str(d.get("periodStart") or ""),
            period_end=str(d.get("periodEnd") or ""),
            is_document_only=_bool(d.get("isDocumentOnly")),
            note=str(d.get("note") or ""),
            updated_at=str(d.get("updatedAt") or ""),
        )


@dataclass(frozen=True)
class MemberParticipationSummary:
    member_id: str
    member_display_name: str
    real_name: str
    nickname: str
    entries: tuple[ParticipationAssignment, ...]
    total_rate: float
    project_count: int
    by_system_rate: dict[str, float]
    org_rates: dict[str, float]
    max_verifiable_rate: float
    risk_level: RiskLevel = "SAFE"
    risk_details: tuple[str, ...] = ()

    @property
    def national_subsidy_rate(self) -> float:
        return self.by_system_rate.get(NATIONAL_SUBSIDY, 0.0)

    @property
    def accountant_rate(self) -> float:
        return self.by_system_rate.get(ACCOUNTANT, 0.0)

    @property
    def private_rate(self) -> float:
        return self.by_system_rate.get(PRIVATE, 0.0)

    @property
    def display_name(self) -> str:
        return f"{self.real_name}({self.nickname})" if self.nickname else self.real_name


@dataclass(frozen=True)
class CrossVerifyGroup:
    member_id: str
    member_display_name: str
    group_key: str
    group_label: str
    entries: tuple[ParticipationAssignment, ...]
    total_rate: float
    risk: GroupRisk
    is_over_limit: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "memberId": self.member_id,
            "memberName": self.member_display_name,
            "groupKey": self.group_key,
            "groupLabel": self.group_label,
            "entryIds": [e.id for e in self.entries],
            "totalRate": self.total_rate,
            "risk": self.risk,
            "isOverLimit": self.is_over_limit,
        }


@dataclass(frozen=True)
class CrossVerifyRule:
    system_a: str
    system_b: str
    risk: GroupRisk
    description: str = ""

    def matches(self, a: str, b: str) -> bool:
        return (self.system_a, self.system_b) in {(a, b), (b, a)}


@dataclass(frozen=True)
class RiskFinding:
    severity: Literal["WARNING", "DANGER"]
    rule: str
    message: str


def format_rate(value: float) -> str:
    """110.0 -> "110", 100.004 -> "100.004", 0.1 + 0.2 -> "0.3"."""
    # 10 significant digits absorb float noise without hiding real decimals.
    text = repr(float(f"{float(value):.10g}"))
    return text[:-2] if text.endswith(".0") else text
