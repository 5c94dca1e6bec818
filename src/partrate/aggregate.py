from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Sequence

from partrate.models import MemberParticipationSummary, ParticipationAssignment
from partrate.ruleset import DEFAULT_RULESET, FAMILIES, VERIFIABLE_FAMILIES, RiskRuleset

logger = logging.getLogger(__name__)

_DISPLAY_NAME_RE = re.compile(r"^(.+?)\((.+)\)$")


def parse_member_display_name(value: str) -> tuple[str, str]:
    """
    Split a "RealName(Nickname)" display string.
    Without a parenthetical nickname the whole string is the real name.
    """
    text = (value or "").strip()
    m = _DISPLAY_NAME_RE.match(text)
    if not m:
        return text, ""
    return m.group(1).strip(), m.group(2).strip()


def group_by_member(assignments: Iterable[ParticipationAssignment]) -> dict[str, list[ParticipationAssignment]]:
    by_member: dict[str, list[ParticipationAssignment]] = {}
    for a in assignments:
        by_member.setdefault(a.member_id, []).append(a)
    return by_member


def _sum_by(pairs: Iterable[tuple[str | None, float]]) -> dict[str | None, float]:
    # fsum keeps totals independent of input order.
    buckets: dict[str | None, list[float]] = {}
    for key, rate in pairs:
        buckets.setdefault(key, []).append(float(rate))
    return {k: math.fsum(v) for k, v in buckets.items()}


def summarize_member(
    member_id: str,
    entries: Sequence[ParticipationAssignment],
    ruleset: RiskRuleset = DEFAULT_RULESET,
) -> MemberParticipationSummary:
    if not entries:
        raise ValueError(f"member {member_id!r} has no assignments")

    first = entries[0]
    real_name, nickname = parse_member_display_name(first.member_display_name)

    # Period-sliced records for the same project add up to one project-level rate.
    # No temporal-overlap check happens here (see ingest.find_period_overlaps).
    project_rates = _sum_by((e.project_id, e.rate) for e in entries)
    total_rate = math.fsum(project_rates.values())

    # Codes outside the family table land under None and are dropped.
    family_sums = _sum_by((ruleset.family_of(e.settlement_system), e.rate) for e in entries)
    by_system_rate = {fam: family_sums.get(fam, 0.0) for fam in FAMILIES}

    org_rates = _sum_by((ruleset.canonical_org(e.funding_org), e.rate) for e in entries)

    candidates = [by_system_rate[f] for f in FAMILIES if f in VERIFIABLE_FAMILIES]
    candidates.extend(org_rates.values())
    max_verifiable_rate = max(candidates, default=0.0)

    return MemberParticipationSummary(
        member_id=member_id,
        member_display_name=first.member_display_name,
        real_name=real_name or first.member_display_name,
        nickname=nickname,
        entries=tuple(entries),
        total_rate=total_rate,
        project_count=len(project_rates),
        by_system_rate=by_system_rate,
        org_rates=org_rates,
        max_verifiable_rate=max_verifiable_rate,
    )


def aggregate(
    assignments: Iterable[ParticipationAssignment],
    ruleset: RiskRuleset = DEFAULT_RULESET,
) -> list[MemberParticipationSummary]:
    """
    Per-member participation totals. Risk fields are left at SAFE/empty;
    `partrate.classify.classify` fills and sorts them.
    """
    by_member = group_by_member(assignments)
    summaries = [summarize_member(mid, entries, ruleset) for mid, entries in by_member.items()]
    logger.debug(
        "aggregated %d assignment(s) into %d member summaries",
        sum(len(v) for v in by_member.values()),
        len(summaries),
    )
    return summaries


def affected_project_ids(assignments: Iterable[ParticipationAssignment], member_id: str) -> list[str]:
    """Distinct project ids a member actively participates in (rate > 0), first-seen order."""
    seen: dict[str, None] = {}
    for a in assignments:
        if a.member_id == member_id and a.rate > 0:
            seen.setdefault(a.project_id, None)
    return list(seen)
