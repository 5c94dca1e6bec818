from __future__ import annotations

from conftest import make_assignment
from partrate.classify import classify, compute_member_summaries
from partrate.ruleset import RiskRuleset


def _one(entries, ruleset=None):
    [s] = compute_member_summaries(entries) if ruleset is None else compute_member_summaries(entries, ruleset)
    return s


def test_national_subsidy_over_limit_is_danger():
    s = _one([make_assignment("m1", "p1", 60), make_assignment("m1", "p2", 50)])
    assert s.risk_level == "DANGER"
    assert s.national_subsidy_rate == 110
    assert "e나라도움 시스템 합산 110%" in s.risk_details[0]


def test_national_subsidy_exactly_at_limit_is_warning():
    s = _one([make_assignment("m1", "p1", 100)])
    assert s.risk_level == "WARNING"
    assert "경고 수준" in s.risk_details[0]


def test_national_subsidy_just_over_limit_is_danger():
    s = _one([make_assignment("m1", "p1", 50), make_assignment("m1", "p2", 50.01)])
    assert s.risk_level == "DANGER"
    assert "100.01%" in s.risk_details[0]


def test_danger_message_quotes_exact_sum():
    s = _one([make_assignment("m1", "p1", 50), make_assignment("m1", "p2", 50.004)])
    assert s.risk_level == "DANGER"
    assert s.risk_details[0] == "e나라도움 시스템 합산 100.004% → 100% 초과! 즉시 환수 위험"


def test_national_subsidy_exactly_at_warning_rate_triggers_nothing():
    s = _one([make_assignment("m1", "p1", 80)])
    assert s.risk_level == "SAFE"
    assert s.risk_details == ()


def test_national_subsidy_just_over_warning_rate_is_warning():
    s = _one([make_assignment("m1", "p1", 80.5)])
    assert s.risk_level == "WARNING"


def test_koica_alias_same_org_danger():
    s = _one(
        [
            make_assignment("m2", "k1", 90, "ACCOUNTANT", "KOICA", member_name="김철수"),
            make_assignment("m2", "k2", 30, "ACCOUNTANT", "한국국제협력단", member_name="김철수"),
        ]
    )
    assert s.org_rates["KOICA"] == 120
    assert s.risk_level == "DANGER"
    assert any("동일 기관 100% 초과" in d for d in s.risk_details)


def test_non_sensitive_org_over_limit_is_not_danger():
    s = _one(
        [
            make_assignment("m1", "a", 70, "ACCOUNTANT", "농림식품부/한국농업기술진흥원"),
            make_assignment("m1", "b", 50, "ACCOUNTANT", "농림식품부/한국농업기술진흥원"),
        ]
    )
    assert s.risk_level == "WARNING"
    # only the capacity fallback speaks
    assert s.risk_details == ("전체 합산 120% (교차검증 대상 외 사업 포함)",)


def test_same_org_national_subsidy_warning_band():
    s = _one(
        [
            make_assignment("m1", "a", 50, funding_org="문체부/예술경영지원센터"),
            make_assignment("m1", "b", 40, "ACCOUNTANT", "문체부/예술경영지원센터"),
        ]
    )
    assert s.risk_level == "WARNING"
    assert "문체부 발주 e나라도움 사업 합산 90% (경고 수준)" in s.risk_details


def test_same_org_exactly_at_warning_rate_triggers_nothing():
    s = _one(
        [
            make_assignment("m1", "a", 50, funding_org="문체부/예술경영지원센터"),
            make_assignment("m1", "b", 30, "ACCOUNTANT", "문체부/예술경영지원센터"),
        ]
    )
    assert s.org_rates["문체부"] == 80
    assert s.risk_level == "SAFE"
    assert s.risk_details == ()


def test_sensitive_org_exactly_at_limit_with_national_subsidy_is_warning():
    s = _one(
        [
            make_assignment("m1", "a", 60, funding_org="KOICA"),
            make_assignment("m1", "b", 40, "ACCOUNTANT", "한국국제협력단"),
        ]
    )
    assert s.org_rates["KOICA"] == 100
    assert s.risk_level == "WARNING"
    assert s.risk_details == ("KOICA 발주 e나라도움 사업 합산 100% (경고 수준)",)


def test_sensitive_org_exactly_at_limit_accountant_only_triggers_nothing():
    s = _one(
        [
            make_assignment("m1", "a", 60, "ACCOUNTANT", "KOICA"),
            make_assignment("m1", "b", 40, "ACCOUNTANT", "KOICA"),
        ]
    )
    assert s.risk_level == "SAFE"
    assert s.risk_details == ()


def test_same_org_backed_only_by_private_settlement_is_ignored():
    s = _one(
        [
            make_assignment("m1", "a", 50, "PRIVATE", "KOICA"),
            make_assignment("m1", "b", 40, "PRIVATE", "KOICA"),
        ]
    )
    assert s.risk_level == "SAFE"


def test_cross_system_rule_alone_never_danger():
    s = _one(
        [
            make_assignment("m4", "c1", 60, funding_org="환경부/한국환경산업기술원"),
            make_assignment("m4", "c2", 60, "ACCOUNTANT", "농림식품부/한국농업기술진흥원"),
        ]
    )
    assert s.risk_level == "WARNING"
    [detail] = s.risk_details
    assert "교차 잠재 위험" in detail
    assert "e나라도움(60%)" in detail
    assert "회계사정산(60%)" in detail
    assert "= 120%" in detail


def test_cross_system_at_limit_does_not_fire():
    s = _one(
        [
            make_assignment("m1", "c1", 40, funding_org="A"),
            make_assignment("m1", "c2", 60, "ACCOUNTANT", "B"),
        ]
    )
    assert s.risk_level == "SAFE"


def test_total_rate_fallback_only_when_nothing_else_fired():
    s = _one(
        [
            make_assignment("m1", "a", 70, "PRIVATE", "민간기관"),
            make_assignment("m1", "b", 40, "PRIVATE", "민간기관"),
        ]
    )
    assert s.risk_level == "WARNING"
    assert s.risk_details == ("전체 합산 110% (교차검증 대상 외 사업 포함)",)

    s = _one(
        [
            make_assignment("m1", "a", 90),
            make_assignment("m1", "b", 40, "PRIVATE", "민간기관"),
        ]
    )
    assert len(s.risk_details) == 2
    assert not any("전체 합산" in d for d in s.risk_details)


def test_private_single_project_is_safe():
    s = _one([make_assignment("m5", "r1", 30, "PRIVATE", "민간기관", member_name="최가람")])
    assert s.risk_level == "SAFE"
    assert s.risk_details == ()


def test_danger_details_come_first():
    s = _one(
        [
            make_assignment("m1", "eco", 90, funding_org="환경부/한국환경산업기술원"),
            make_assignment("m1", "k1", 70, "ACCOUNTANT", "KOICA"),
            make_assignment("m1", "k2", 50, "ACCOUNTANT", "KOICA"),
        ]
    )
    assert s.risk_level == "DANGER"
    assert "동일 기관" in s.risk_details[0]
    assert "e나라도움 시스템 합산 90%" in s.risk_details[1]
    assert "교차 잠재 위험" in s.risk_details[-1]


def test_sort_order_by_level_then_total_rate(mixed_assignments):
    summaries = compute_member_summaries(mixed_assignments)
    assert [s.member_id for s in summaries] == ["m4", "m1", "m2", "m3"]
    assert [s.risk_level for s in summaries] == ["DANGER", "DANGER", "WARNING", "SAFE"]


def test_sort_ties_keep_input_order():
    entries = [
        make_assignment("b", "x", 20, "PRIVATE", "민간"),
        make_assignment("a", "x", 20, "PRIVATE", "민간"),
        make_assignment("c", "x", 50, "PRIVATE", "민간"),
    ]
    assert [s.member_id for s in compute_member_summaries(entries)] == ["c", "b", "a"]


def test_classification_is_idempotent(mixed_assignments):
    first = compute_member_summaries(mixed_assignments)
    second = compute_member_summaries(mixed_assignments)
    assert first == second
    assert classify(first) == first


def test_thresholds_come_from_ruleset():
    strict = RiskRuleset(version="strict", warning_rate=60, limit_rate=90)
    s = _one([make_assignment("m1", "p1", 95)], strict)
    assert s.risk_level == "DANGER"
    assert "90% 초과" in s.risk_details[0]

    s = _one([make_assignment("m1", "p1", 70)], strict)
    assert s.risk_level == "WARNING"
