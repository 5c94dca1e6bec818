from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import typer
from rich.console import Console

from partrate.aggregate import affected_project_ids
from partrate.config import PartrateConfig, load_config
from partrate.cross_verify import cross_verify_groups
from partrate.errors import RulesetError, ValidationError
from partrate.ingest import issues_to_table, load_assignments
from partrate.models import ParticipationAssignment
from partrate.render import groups_table, matrix_table, report_table
from partrate.report import build_report, write_report_csv, write_report_json, write_report_xlsx
from partrate.ruleset import RiskRuleset, load_ruleset

report_app = typer.Typer(help="참여율 합산 / 리스크 리포트.", add_completion=False)
console = Console()


def load_input(input_path: Path | None, cfg: PartrateConfig) -> list[ParticipationAssignment]:
    path = input_path or cfg.input_path_resolved
    if path is None:
        raise typer.BadParameter("--input 을 지정하거나 `partrate config set --input-path ...` 로 기본값을 설정하세요")
    try:
        assignments, stats = load_assignments(path)
    except ValidationError as e:
        console.print(issues_to_table(e.issues))
        raise SystemExit(1) from e
    except (OSError, ValueError) as e:
        raise typer.BadParameter(f"입력 파일을 읽을 수 없습니다: {path} ({e})") from e
    warnings = {k: v for k, v in stats.items() if k.startswith("warnings_") and v}
    if warnings:
        console.print(f"[yellow]warnings:[/yellow] {warnings}")
    return assignments


def load_rules(ruleset_path: Path | None, cfg: PartrateConfig) -> RiskRuleset:
    try:
        if ruleset_path is not None:
            return load_ruleset(ruleset_path)
        return cfg.ruleset()
    except RulesetError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(2) from e


@report_app.command("members")
def report_members(
    input_path: Path | None = typer.Option(None, "--input", "-i", help="배정 입력 파일 (.csv/.xlsx/.json)"),
    ruleset_path: Path | None = typer.Option(None, "--ruleset", help="룰셋 TOML (설정값보다 우선)"),
    level: str | None = typer.Option(None, help="DANGER / WARNING / SAFE 중 하나만 표시"),
    details: bool = typer.Option(False, "--details", help="모든 리스크 사유 표시"),
    json_path: Path | None = typer.Option(None, "--json", help="JSON 리포트 출력 경로"),
    csv_path: Path | None = typer.Option(None, "--csv", help="CSV 리포트 출력 경로"),
    xlsx_path: Path | None = typer.Option(None, "--xlsx", help="XLSX 리포트 출력 경로 (교차검증 그룹 포함)"),
) -> None:
    cfg = load_config()
    rules = load_rules(ruleset_path, cfg)
    assignments = load_input(input_path, cfg)
    report = build_report(assignments, rules)

    outputs: dict[str, str] = {}
    if json_path is not None:
        outputs["json"] = str(write_report_json(report, json_path))
    if csv_path is not None:
        outputs["csv"] = str(write_report_csv(report, csv_path))
    if xlsx_path is not None:
        outputs["xlsx"] = str(write_report_xlsx(report, xlsx_path, groups=cross_verify_groups(assignments, rules)))
    if outputs:
        console.print({**outputs, "rows": report.total_members, "rulesetVersion": report.ruleset_version})
        return

    if level is not None:
        wanted = level.strip().upper()
        if wanted not in {"DANGER", "WARNING", "SAFE"}:
            raise typer.BadParameter("--level 은 DANGER / WARNING / SAFE 중 하나")
        rows = tuple(r for r in report.rows if r.risk_level == wanted)
        report = replace(report, rows=rows, total_members=len(rows))
    console.print(report_table(report, details=details))
    console.print(report.count_by_level() if level is None else {"rows": report.total_members})


@report_app.command("groups")
def report_groups(
    input_path: Path | None = typer.Option(None, "--input", "-i", help="배정 입력 파일 (.csv/.xlsx/.json)"),
    ruleset_path: Path | None = typer.Option(None, "--ruleset", help="룰셋 TOML (설정값보다 우선)"),
    over_limit_only: bool = typer.Option(False, "--over-limit-only", help="합산이 한도를 넘는 그룹만 표시"),
) -> None:
    cfg = load_config()
    rules = load_rules(ruleset_path, cfg)
    groups = cross_verify_groups(load_input(input_path, cfg), rules)
    if over_limit_only:
        groups = [g for g in groups if g.is_over_limit]
    console.print(groups_table(groups))
    console.print({"groups": len(groups), "over_limit": sum(1 for g in groups if g.is_over_limit)})


@report_app.command("matrix")
def report_matrix() -> None:
    console.print(matrix_table())


@report_app.command("affected")
def report_affected(
    member_id: str = typer.Option(..., "--member", "-m", help="직원 ID"),
    input_path: Path | None = typer.Option(None, "--input", "-i", help="배정 입력 파일 (.csv/.xlsx/.json)"),
) -> None:
    cfg = load_config()
    project_ids = affected_project_ids(load_input(input_path, cfg), member_id)
    console.print({"memberId": member_id, "projectIds": project_ids})
