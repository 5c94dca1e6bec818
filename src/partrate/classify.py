from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace

from partrate.aggregate import aggregate
from partrate.models import (
    RISK_LEVEL_ORDER,
    MemberParticipationSummary,
    ParticipationAssignment,
    RiskFinding,
    RiskLevel,
    format_rate,
)
from partrate.ruleset import (
    ACCOUNTANT,
    DEFAULT_RULESET,
    FAMILY_LABELS,
    NATIONAL_SUBSIDY,
    RiskRuleset,
)

logger = logging.getLogger(__name__)

# A member's whole capacity; independent of the ruleset's ceilings.
FULL_CAPACITY = 100.0

RULE_SYSTEM_CEILING = "system_ceiling"
RULE_SAME_ORG_CEILING = "same_org_ceiling"
RULE_CROSS_SYSTEM = "cross_system"
RULE_TOTAL_RATE = "total_rate"


def system_ceiling_rule(s: MemberParticipationSummary, rs: RiskRuleset) -> list[RiskFinding]:
    rate = s.national_subsidy_rate
    name = FAMILY_LABELS[NATIONAL_SUBSIDY]
    if rate > rs.limit_rate:
        return [
            RiskFinding(
                "DANGER",
                RULE_SYSTEM_CEILING,
                f"{name} 시스템 합산 {format_rate(rate)}% → {format_rate(rs.limit_rate)}% 초과! 즉시 환수 위험",
            )
        ]
    # Upper bound inclusive: exactly at the limit is still only a warning.
    if rate > rs.warning_rate:
        return [
            RiskFinding(
                "WARNING",
                RULE_SYSTEM_CEILING,
                f"{name} 시스템 합산 {format_rate(rate)}% (경고 수준, 추가 배정 주의)",
            )
        ]
    return []


def same_org_ceiling_rule(s: MemberParticipationSummary, rs: RiskRuleset) -> list[RiskFinding]:
    findings: list[RiskFinding] = []
    for org, rate in s.org_rates.items():
        if rate <= rs.warning_rate:
            continue
        in_org = [e for e in s.entries if rs.canonical_org(e.funding_org) == org]
        verifiable = any(rs.is_verifiable(e.settlement_system) for e in in_org)
        if not verifiable:
            continue
        if rs.is_sensitive_org(org) and rate > rs.limit_rate:
            findings.append(
                RiskFinding(
                    "DANGER",
                    RULE_SAME_ORG_CEILING,
                    f"{org} 발주 사업 합산 {format_rate(rate)}% → 동일 기관 {format_rate(rs.limit_rate)}% 초과",
                )
            )
        elif rate <= rs.limit_rate and any(rs.family_of(e.settlement_system) == NATIONAL_SUBSIDY for e in in_org):
            findings.append(
                RiskFinding(
                    "WARNING",
                    RULE_SAME_ORG_CEILING,
                    f"{org} 발주 {FAMILY_LABELS[NATIONAL_SUBSIDY]} 사업 합산 {format_rate(rate)}% (경고 수준)",
                )
            )
    return findings


def cross_system_rule(s: MemberParticipationSummary, rs: RiskRuleset) -> list[RiskFinding]:
    national = s.national_subsidy_rate
    accountant = s.accountant_rate
    if national <= 0 or accountant <= 0:
        return []
    cross = national + accountant
    if cross <= rs.limit_rate:
        return []
    # Potential only: the two systems are not cross-checked automatically.
    return [
        RiskFinding(
            "WARNING",
            RULE_CROSS_SYSTEM,
            f"{FAMILY_LABELS[NATIONAL_SUBSIDY]}({format_rate(national)}%) + "
            f"{FAMILY_LABELS[ACCOUNTANT]}({format_rate(accountant)}%) = {format_rate(cross)}% (교차 잠재 위험)",
        )
    ]


def total_rate_rule(s: MemberParticipationSummary, rs: RiskRuleset) -> list[RiskFinding]:
    if s.total_rate > FULL_CAPACITY:
        return [
            RiskFinding(
                "WARNING",
                RULE_TOTAL_RATE,
                f"전체 합산 {format_rate(s.total_rate)}% (교차검증 대상 외 사업 포함)",
            )
        ]
    return []


Rule = Callable[[MemberParticipationSummary, RiskRuleset], list[RiskFinding]]

# Priority order.
RULES: tuple[Rule, ...] = (system_ceiling_rule, same_org_ceiling_rule, cross_system_rule)
FALLBACK_RULES: tuple[Rule, ...] = (total_rate_rule,)


def evaluate_rules(s: MemberParticipationSummary, rs: RiskRuleset = DEFAULT_RULESET) -> list[RiskFinding]:
    findings: list[RiskFinding] = []
    for rule in RULES:
        findings.extend(rule(s, rs))
    if not findings:
        for rule in FALLBACK_RULES:
            findings.extend(rule(s, rs))
    return findings


def risk_level_of(findings: Iterable[RiskFinding]) -> RiskLevel:
    severities = {f.severity for f in findings}
    if "DANGER" in severities:
        return "DANGER"
    if "WARNING" in severities:
        return "WARNING"
    return "SAFE"


def classify_member(
    s: MemberParticipationSummary, rs: RiskRuleset = DEFAULT_RULESET
) -> MemberParticipationSummary:
    findings = evaluate_rules(s, rs)
    # DANGER messages first; rule order is kept within a severity.
    ordered = sorted(findings, key=lambda f: RISK_LEVEL_ORDER[f.severity])
    level = risk_level_of(findings)
    if findings:
        logger.debug("member %s -> %s via %s", s.member_id, level, [f.rule for f in ordered])
    return replace(s, risk_level=level, risk_details=tuple(f.message for f in ordered))


def risk_sort_key(s: MemberParticipationSummary) -> tuple[int, float]:
    return RISK_LEVEL_ORDER[s.risk_level], -s.total_rate


def classify(
    summaries: Sequence[MemberParticipationSummary], rs: RiskRuleset = DEFAULT_RULESET
) -> list[MemberParticipationSummary]:
    """Classify every member and sort DANGER > WARNING > SAFE, then total rate desc (stable)."""
    classified = [classify_member(s, rs) for s in summaries]
    return sorted(classified, key=risk_sort_key)


def compute_member_summaries(
    assignments: Iterable[ParticipationAssignment], rs: RiskRuleset = DEFAULT_RULESET
) -> list[MemberParticipationSummary]:
    return classify(aggregate(assignments, rs), rs)
