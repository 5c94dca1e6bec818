from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from rich.table import Table

from partrate.cross_verify import risk_matrix
from partrate.models import CrossVerifyGroup, format_rate
from partrate.report import ParticipationRiskReport
from partrate.ruleset import system_label

LEVEL_STYLE = {"DANGER": "bold red", "WARNING": "yellow", "SAFE": "green", "HIGH": "bold red", "MEDIUM": "yellow", "LOW": "green"}


def to_rich_table(columns: Sequence[str], rows: Sequence[Sequence[Any]], title: str | None = None) -> Table:
    t = Table(title=title, show_lines=False)
    for c in columns:
        t.add_column(str(c))
    for r in rows:
        t.add_row(*[("" if v is None else str(v)) for v in r])
    return t


def _styled(level: str) -> str:
    style = LEVEL_STYLE.get(level)
    return f"[{style}]{level}[/{style}]" if style else level


def report_table(report: ParticipationRiskReport, *, details: bool = False) -> Table:
    title = f"참여율 리스크 ({report.ruleset_version}, {report.total_members}명)"
    columns = ["name", "total", "e나라도움", "회계사정산", "민간", "max", "projects", "level", "risk"]
    rows = []
    for r in report.rows:
        risk = "\n".join(r.risk_details) if details and r.risk_details else r.risk
        rows.append(
            [
                r.name,
                format_rate(r.total_rate),
                format_rate(r.national_subsidy_rate),
                format_rate(r.accountant_rate),
                format_rate(r.private_rate),
                format_rate(r.max_verifiable_rate),
                r.project_count,
                _styled(r.risk_level),
                risk,
            ]
        )
    return to_rich_table(columns, rows, title=title)


def groups_table(groups: Sequence[CrossVerifyGroup]) -> Table:
    columns = ["member", "group", "entries", "total", "risk", "over limit"]
    rows = [
        [
            g.member_display_name,
            g.group_label,
            ", ".join(e.project_display_name for e in g.entries),
            format_rate(g.total_rate),
            _styled(g.risk),
            "Y" if g.is_over_limit else "",
        ]
        for g in groups
    ]
    return to_rich_table(columns, rows, title="교차검증 그룹")


def matrix_table(systems: Sequence[str] | None = None) -> Table:
    cells = risk_matrix(systems)
    codes: list[str] = []
    for a, _b, _rule in cells:
        if a not in codes:
            codes.append(a)
    lookup = {(a, b): rule for a, b, rule in cells}
    rows = []
    for a in codes:
        row: list[Any] = [system_label(a)]
        for b in codes:
            rule = lookup[(a, b)]
            row.append(_styled(rule.risk) if rule is not None else "-")
        rows.append(row)
    return to_rich_table(["", *[system_label(c) for c in codes]], rows, title="정산 시스템 간 교차검증 위험")
