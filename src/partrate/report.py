from __future__ import annotations

import csv
import datetime as dt
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from partrate.classify import compute_member_summaries
from partrate.models import (
    CrossVerifyGroup,
    MemberParticipationSummary,
    ParticipationAssignment,
    RiskLevel,
    format_rate,
)
from partrate.ruleset import DEFAULT_RULESET, RiskRuleset

logger = logging.getLogger(__name__)

NO_RISK = "리스크 없음"

ROW_COLUMNS = [
    "memberId",
    "name",
    "totalRate",
    "eNaraRate",
    "accountantRate",
    "privateRate",
    "orgRates",
    "maxVerifiableRate",
    "projectCount",
    "riskLevel",
    "risk",
    "riskDetails",
]


@dataclass(frozen=True)
class ParticipationRiskReportRow:
    member_id: str
    name: str
    total_rate: float
    national_subsidy_rate: float
    accountant_rate: float
    private_rate: float
    org_rates: dict[str, float]
    max_verifiable_rate: float
    project_count: int
    risk_level: RiskLevel
    risk: str
    risk_details: tuple[str, ...]

    @classmethod
    def from_summary(cls, s: MemberParticipationSummary) -> "ParticipationRiskReportRow":
        return cls(
            member_id=s.member_id,
            name=s.display_name,
            total_rate=s.total_rate,
            national_subsidy_rate=s.national_subsidy_rate,
            accountant_rate=s.accountant_rate,
            private_rate=s.private_rate,
            org_rates=dict(s.org_rates),
            max_verifiable_rate=s.max_verifiable_rate,
            project_count=s.project_count,
            risk_level=s.risk_level,
            risk=s.risk_details[0] if s.risk_details else NO_RISK,
            risk_details=tuple(s.risk_details),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "memberId": self.member_id,
            "name": self.name,
            "totalRate": self.total_rate,
            "eNaraRate": self.national_subsidy_rate,
            "accountantRate": self.accountant_rate,
            "privateRate": self.private_rate,
            "orgRates": dict(self.org_rates),
            "maxVerifiableRate": self.max_verifiable_rate,
            "projectCount": self.project_count,
            "riskLevel": self.risk_level,
            "risk": self.risk,
            "riskDetails": list(self.risk_details),
        }


@dataclass(frozen=True)
class ParticipationRiskReport:
    generated_at: str
    ruleset_version: str
    thresholds: dict[str, float]
    total_members: int
    rows: tuple[ParticipationRiskReportRow, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "rulesetVersion": self.ruleset_version,
            "thresholds": dict(self.thresholds),
            "totalMembers": self.total_members,
            "rows": [r.to_dict() for r in self.rows],
        }

    def count_by_level(self) -> dict[str, int]:
        out = {"DANGER": 0, "WARNING": 0, "SAFE": 0}
        for r in self.rows:
            out[r.risk_level] += 1
        return out


def _utc_now_iso() -> str:
    now = dt.datetime.now(dt.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_report(
    assignments: Iterable[ParticipationAssignment],
    ruleset: RiskRuleset = DEFAULT_RULESET,
    *,
    generated_at: str | None = None,
) -> ParticipationRiskReport:
    rows = tuple(ParticipationRiskReportRow.from_summary(s) for s in compute_member_summaries(assignments, ruleset))
    report = ParticipationRiskReport(
        generated_at=generated_at or _utc_now_iso(),
        ruleset_version=ruleset.version,
        thresholds=ruleset.thresholds(),
        total_members=len(rows),
        rows=rows,
    )
    logger.debug("report %s: %s", ruleset.version, report.count_by_level())
    return report


def _flat_row(r: ParticipationRiskReportRow) -> list[Any]:
    d = r.to_dict()
    d["orgRates"] = "; ".join(f"{org}={format_rate(rate)}" for org, rate in r.org_rates.items())
    d["riskDetails"] = " | ".join(r.risk_details)
    return [d[c] for c in ROW_COLUMNS]


def write_report_json(report: ParticipationRiskReport, path: Path) -> Path:
    out = path.expanduser()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(report.to_dict(), ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    logger.info("wrote report json %s (%d rows)", out, report.total_members)
    return out


def write_report_csv(report: ParticipationRiskReport, path: Path) -> Path:
    out = path.expanduser()
    out.parent.mkdir(parents=True, exist_ok=True)
    # utf-8-sig so spreadsheet tools detect the Korean text.
    with out.open("w", encoding="utf-8-sig", newline="") as f:
        w = csv.writer(f)
        w.writerow(ROW_COLUMNS)
        for r in report.rows:
            w.writerow(["" if v is None else str(v) for v in _flat_row(r)])
    logger.info("wrote report csv %s (%d rows)", out, report.total_members)
    return out


def write_report_xlsx(
    report: ParticipationRiskReport,
    path: Path,
    *,
    groups: Iterable[CrossVerifyGroup] = (),
) -> Path:
    """
    One workbook: member rows, one row per org sum, cross-verification groups,
    and a meta sheet with the ruleset version and thresholds.
    """
    import pandas as pd

    out = path.expanduser()
    out.parent.mkdir(parents=True, exist_ok=True)

    members = pd.DataFrame([_flat_row(r) for r in report.rows], columns=ROW_COLUMNS)
    orgs = pd.DataFrame(
        [(r.member_id, r.name, org, rate) for r in report.rows for org, rate in r.org_rates.items()],
        columns=["memberId", "name", "org", "rate"],
    )
    group_rows = [g.to_dict() for g in groups]
    for g in group_rows:
        g["entryIds"] = ", ".join(g["entryIds"])
    groups_df = pd.DataFrame(
        group_rows,
        columns=["memberId", "memberName", "groupKey", "groupLabel", "entryIds", "totalRate", "risk", "isOverLimit"],
    )
    meta = pd.DataFrame(
        [
            ("generatedAt", report.generated_at),
            ("rulesetVersion", report.ruleset_version),
            ("warningRate", report.thresholds.get("warningRate")),
            ("limitRate", report.thresholds.get("limitRate")),
            ("totalMembers", report.total_members),
        ],
        columns=["key", "value"],
    )

    with pd.ExcelWriter(out, engine="openpyxl") as w:
        members.to_excel(w, sheet_name="members", index=False)
        orgs.to_excel(w, sheet_name="org_rates", index=False)
        groups_df.to_excel(w, sheet_name="cross_verify", index=False)
        meta.to_excel(w, sheet_name="meta", index=False)
    logger.info("wrote report xlsx %s (%d rows)", out, report.total_members)
    return out
