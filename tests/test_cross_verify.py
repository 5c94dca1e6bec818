from __future__ import annotations

from conftest import make_assignment
from partrate.cross_verify import (
    CROSS_VERIFY_RULES,
    cross_verify_groups,
    cross_verify_risk,
    group_risk,
    risk_matrix,
)
from partrate.ruleset import RiskRuleset


def _keys(groups):
    return [(g.member_id, g.group_key) for g in groups]


def test_system_groups_exclude_none_and_private():
    entries = [
        make_assignment("m1", "a", 30, "E_NARA_DOUM", "A"),
        make_assignment("m1", "b", 20, "IRIS", "B"),
        make_assignment("m1", "c", 50, "PRIVATE", "C"),
        make_assignment("m1", "d", 10, "NONE", "D"),
    ]
    groups = cross_verify_groups(entries)
    assert _keys(groups) == [("m1", "sys:E_NARA_DOUM"), ("m1", "sys:IRIS")]
    assert groups[0].group_label == "e나라도움 정산"


def test_org_group_needs_two_records():
    entries = [
        make_assignment("m1", "k1", 60, "ACCOUNTANT", "KOICA"),
        make_assignment("m1", "k2", 50, "ACCOUNTANT", "한국국제협력단"),
        make_assignment("m1", "e1", 30, "E_NARA_DOUM", "환경부/한국환경산업기술원"),
    ]
    groups = cross_verify_groups(entries)
    assert _keys(groups) == [
        ("m1", "sys:ACCOUNTANT"),
        ("m1", "sys:E_NARA_DOUM"),
        ("m1", "org:KOICA"),
    ]
    koica = groups[-1]
    assert koica.group_label == "KOICA (동일기관)"
    assert koica.total_rate == 110
    assert koica.risk == "HIGH"
    assert koica.is_over_limit
    assert [e.project_id for e in koica.entries] == ["k1", "k2"]


def test_private_records_do_not_form_org_groups():
    entries = [
        make_assignment("m1", "a", 60, "PRIVATE", "민간기관"),
        make_assignment("m1", "b", 60, "PRIVATE", "민간기관"),
    ]
    assert cross_verify_groups(entries) == []


def test_group_risk_boundaries():
    assert group_risk(100) == "MEDIUM"
    assert group_risk(100.01) == "HIGH"
    assert group_risk(80) == "LOW"
    assert group_risk(80.01) == "MEDIUM"
    assert group_risk(75, RiskRuleset(warning_rate=70, limit_rate=90)) == "MEDIUM"


def test_is_over_limit_is_strict():
    entries = [make_assignment("m1", "a", 60, funding_org="A"), make_assignment("m1", "b", 40, funding_org="B")]
    [group] = cross_verify_groups(entries)
    assert group.total_rate == 100
    assert not group.is_over_limit
    assert group.risk == "MEDIUM"


def test_groups_are_per_member():
    entries = [
        make_assignment("m1", "a", 30),
        make_assignment("m2", "a", 30),
    ]
    assert _keys(cross_verify_groups(entries)) == [("m1", "sys:E_NARA_DOUM"), ("m2", "sys:E_NARA_DOUM")]


def test_static_matrix_lookup_is_symmetric():
    rule = cross_verify_risk("IRIS", "E_NARA_DOUM")
    assert rule is not None and rule.risk == "HIGH"
    assert cross_verify_risk("E_NARA_DOUM", "IRIS") == rule
    assert cross_verify_risk("ACCOUNTANT", "E_NARA_DOUM").risk == "LOW"
    assert cross_verify_risk("AGRIX", "RCMS").risk == "MEDIUM"
    assert cross_verify_risk("E_HIJO", "AGRIX") is None


def test_same_system_is_always_high():
    for code in ["E_NARA_DOUM", "ACCOUNTANT", "AGRIX", "UNKNOWN_SYSTEM"]:
        rule = cross_verify_risk(code, code)
        assert rule is not None
        assert rule.risk == "HIGH"
        assert "동일 정산 시스템" in rule.description


def test_none_and_private_never_cross_verify():
    assert cross_verify_risk("PRIVATE", "PRIVATE") is None
    assert cross_verify_risk("NONE", "NONE") is None
    assert cross_verify_risk("E_NARA_DOUM", "PRIVATE") is None


def test_risk_matrix_covers_every_pair():
    cells = risk_matrix()
    codes = {a for a, _b, _r in cells}
    assert "PRIVATE" not in codes and "NONE" not in codes
    assert len(cells) == len(codes) ** 2
    assert all(r is not None and r.risk == "HIGH" for a, b, r in cells if a == b)
    listed = sum(1 for a, b, r in cells if a != b and r is not None)
    assert listed == 2 * len(CROSS_VERIFY_RULES)
