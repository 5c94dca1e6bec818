from __future__ import annotations

import pytest

from partrate.models import ParticipationAssignment


def make_assignment(
    member_id: str,
    project_id: str,
    rate: float,
    settlement_system: str = "E_NARA_DOUM",
    funding_org: str = "환경부/한국환경산업기술원",
    *,
    member_name: str | None = None,
    period_start: str = "2026-01",
    period_end: str = "2026-12",
    entry_id: str | None = None,
) -> ParticipationAssignment:
    return ParticipationAssignment(
        id=entry_id or f"{member_id}-{project_id}-{period_start}",
        member_id=member_id,
        member_display_name=member_name or member_id,
        project_id=project_id,
        project_display_name=project_id.upper(),
        rate=rate,
        settlement_system=settlement_system,
        funding_org=funding_org,
        period_start=period_start,
        period_end=period_end,
        updated_at="2026-02-24T00:00:00.000Z",
    )


@pytest.fixture
def mixed_assignments() -> list[ParticipationAssignment]:
    return [
        # m1: DANGER, e나라도움 110
        make_assignment("m1", "p1", 60, member_name="홍길동(길동)"),
        make_assignment("m1", "p2", 50, member_name="홍길동(길동)"),
        # m2: WARNING, cross-system 40 + 70
        make_assignment("m2", "c1", 40, member_name="박민수"),
        make_assignment("m2", "c2", 70, "ACCOUNTANT", "농림식품부/한국농업기술진흥원", member_name="박민수"),
        # m3: SAFE
        make_assignment("m3", "r1", 30, "PRIVATE", "민간기관", member_name="최가람(가람)"),
        # m4: DANGER, KOICA 90 + 30 through an alias
        make_assignment("m4", "k1", 90, "ACCOUNTANT", "KOICA", member_name="김철수"),
        make_assignment("m4", "k2", 30, "ACCOUNTANT", "한국국제협력단", member_name="김철수"),
    ]
