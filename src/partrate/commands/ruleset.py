from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from partrate.commands.report import load_rules
from partrate.config import load_config
from partrate.render import to_rich_table
from partrate.ruleset import FAMILIES, SETTLEMENT_SYSTEMS, system_label

ruleset_app = typer.Typer(help="리스크 룰셋(임계값, 기관 별칭, 정산 계열) 확인.", add_completion=False)
console = Console()


@ruleset_app.command("show")
def ruleset_show(
    ruleset_path: Path | None = typer.Option(None, "--ruleset", help="룰셋 TOML (설정값보다 우선)"),
) -> None:
    rules = load_rules(ruleset_path, load_config())
    console.print(
        {
            "version": rules.version,
            "thresholds": rules.thresholds(),
            "sensitive_org_keywords": list(rules.sensitive_org_keywords),
            "org_aliases": {k: list(v) for k, v in rules.org_aliases.items()},
        }
    )
    rows = [
        [code, system_label(code, short=False), rules.family_of(code) or "-", "Y" if rules.is_verifiable(code) else ""]
        for code in SETTLEMENT_SYSTEMS
    ]
    console.print(to_rich_table(["code", "label", "family", "verifiable"], rows, title=f"families: {', '.join(FAMILIES)}"))
