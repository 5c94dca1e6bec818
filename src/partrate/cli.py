from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from partrate.commands.config import config_app
from partrate.commands.report import load_input, report_app
from partrate.commands.ruleset import ruleset_app
from partrate.config import load_config
from partrate.ingest import export_assignment_template_xlsx
from partrate.logs import setup_logging

app = typer.Typer(
    name="partrate",
    help="partrate - 과제 참여율 합산 및 교차검증 리스크 점검 CLI.",
    add_completion=False,
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")
app.add_typer(ruleset_app, name="ruleset")
app.add_typer(report_app, name="report")

console = Console()


@app.callback()
def _root_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="디버그 로그 출력"),
) -> None:
    setup_logging(verbose)


@app.command("validate")
def validate(
    input_path: Path | None = typer.Option(None, "--input", "-i", help="배정 입력 파일 (.csv/.xlsx/.json)"),
) -> None:
    """
    입력 파일만 검증합니다 (필수 필드, 참여율 범위, 중복 행). 문제가 있으면 exit 1.
    """
    assignments = load_input(input_path, load_config())
    console.print(
        {
            "assignments": len(assignments),
            "members": len({a.member_id for a in assignments}),
            "projects": len({a.project_id for a in assignments}),
        }
    )


@app.command("export-template")
def export_template(
    output: str = typer.Option("participation_assignments.xlsx", "--output", "-o", help="출력 XLSX 파일 경로"),
) -> None:
    out = export_assignment_template_xlsx(Path(output))
    console.print({"output": str(out)})
