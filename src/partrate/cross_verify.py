from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence

from partrate.aggregate import group_by_member
from partrate.models import CrossVerifyGroup, CrossVerifyRule, GroupRisk, ParticipationAssignment
from partrate.ruleset import DEFAULT_RULESET, SETTLEMENT_SYSTEMS, RiskRuleset, system_label

logger = logging.getLogger(__name__)

# Systems that never form a verification group.
UNVERIFIED_SYSTEMS = frozenset({"NONE", "PRIVATE"})

# A-priori cross-verification risk between settlement systems (unordered pairs).
CROSS_VERIFY_RULES: tuple[CrossVerifyRule, ...] = (
    # national subsidy <-> R&D systems
    CrossVerifyRule("E_NARA_DOUM", "IRIS", "HIGH", "국고보조금 ↔ R&D 교차검증 (SFDS 실시간 감시)"),
    CrossVerifyRule("E_NARA_DOUM", "RCMS", "HIGH", "국고보조금 ↔ 실시간연구비 교차검증 (SFDS)"),
    CrossVerifyRule("E_NARA_DOUM", "EZBARO", "HIGH", "국고보조금 ↔ 이지바로 교차검증"),
    # R&D <-> R&D
    CrossVerifyRule("IRIS", "RCMS", "HIGH", "R&D 시스템 간 통합 교차검증"),
    CrossVerifyRule("IRIS", "EZBARO", "HIGH", "R&D 시스템 간 교차검증"),
    CrossVerifyRule("RCMS", "EZBARO", "HIGH", "R&D 시스템 간 교차검증"),
    # national subsidy <-> other public systems
    CrossVerifyRule("E_NARA_DOUM", "E_HIJO", "MEDIUM", "국비 ↔ 지방비 매칭사업 교차검증"),
    CrossVerifyRule("E_NARA_DOUM", "EDUFINE", "MEDIUM", "국고보조금 ↔ 교육재정 교차검증"),
    CrossVerifyRule("E_NARA_DOUM", "HAPPYEUM", "MEDIUM", "국고보조금 ↔ 사회보장 교차검증"),
    CrossVerifyRule("E_NARA_DOUM", "AGRIX", "MEDIUM", "국고보조금 ↔ 농림사업 교차검증"),
    CrossVerifyRule(
        "E_NARA_DOUM",
        "ACCOUNTANT",
        "LOW",
        "시스템 정산 ↔ 회계사정산 간 직접 교차검증 가능성 낮음 (단, 동일기관 주의)",
    ),
    CrossVerifyRule("RCMS", "AGRIX", "MEDIUM", "환경AC ↔ 농식품AC 대면심사 시 참여율 확인 가능"),
)

SAME_SYSTEM_DESCRIPTION = "동일 정산 시스템 내 — 반드시 합산 100% 이내"


def cross_verify_risk(
    a: str, b: str, rules: Sequence[CrossVerifyRule] = CROSS_VERIFY_RULES
) -> CrossVerifyRule | None:
    """Static risk between two settlement systems; None when nothing can cross-check."""
    if a in UNVERIFIED_SYSTEMS or b in UNVERIFIED_SYSTEMS:
        return None
    if a == b:
        return CrossVerifyRule(a, b, "HIGH", SAME_SYSTEM_DESCRIPTION)
    for rule in rules:
        if rule.matches(a, b):
            return rule
    return None


def risk_matrix(systems: Sequence[str] | None = None) -> list[tuple[str, str, CrossVerifyRule | None]]:
    """Every ordered (row, column) pair of `systems` with its static rule."""
    codes = [s for s in (systems or SETTLEMENT_SYSTEMS) if s not in UNVERIFIED_SYSTEMS]
    return [(a, b, cross_verify_risk(a, b)) for a in codes for b in codes]


def group_risk(total_rate: float, rs: RiskRuleset = DEFAULT_RULESET) -> GroupRisk:
    if total_rate > rs.limit_rate:
        return "HIGH"
    if total_rate > rs.warning_rate:
        return "MEDIUM"
    return "LOW"


def _make_group(
    member_id: str,
    member_name: str,
    key: str,
    label: str,
    entries: list[ParticipationAssignment],
    rs: RiskRuleset,
) -> CrossVerifyGroup:
    total = math.fsum(e.rate for e in entries)
    return CrossVerifyGroup(
        member_id=member_id,
        member_display_name=member_name,
        group_key=key,
        group_label=label,
        entries=tuple(entries),
        total_rate=total,
        risk=group_risk(total, rs),
        is_over_limit=total > rs.limit_rate,
    )


def cross_verify_groups(
    assignments: Iterable[ParticipationAssignment], rs: RiskRuleset = DEFAULT_RULESET
) -> list[CrossVerifyGroup]:
    """
    Matrix-style verification groups per member:
    one per settlement system used (except NONE/PRIVATE), then one per funding
    organization backing two or more non-private records.
    """
    groups: list[CrossVerifyGroup] = []
    for member_id, entries in group_by_member(assignments).items():
        member_name = entries[0].member_display_name

        by_system: dict[str, list[ParticipationAssignment]] = {}
        for e in entries:
            if e.settlement_system in UNVERIFIED_SYSTEMS:
                continue
            by_system.setdefault(e.settlement_system, []).append(e)
        for code, sys_entries in by_system.items():
            groups.append(
                _make_group(member_id, member_name, f"sys:{code}", f"{system_label(code)} 정산", sys_entries, rs)
            )

        by_org: dict[str, list[ParticipationAssignment]] = {}
        for e in entries:
            if e.settlement_system == "PRIVATE":
                continue
            by_org.setdefault(rs.canonical_org(e.funding_org), []).append(e)
        for org, org_entries in by_org.items():
            if len(org_entries) < 2:
                continue
            groups.append(_make_group(member_id, member_name, f"org:{org}", f"{org} (동일기관)", org_entries, rs))

    logger.debug("built %d cross-verification group(s)", len(groups))
    return groups
