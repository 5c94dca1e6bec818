from __future__ import annotations

import typer
from rich.console import Console

from partrate.config import PartrateConfig, load_config, save_config

config_app = typer.Typer(help="로컬 설정(룰셋 경로, 기본 입력 파일, 리포트 출력 폴더) 관리.", add_completion=False)
console = Console()


@config_app.command("set")
def config_set(
    ruleset_path: str | None = typer.Option(None, help="룰셋 TOML 경로 (미지정 시 내장 기본 룰셋)"),
    input_path: str | None = typer.Option(None, help="기본 배정 입력 파일 (.csv/.xlsx/.json)"),
    output_dir: str | None = typer.Option(None, help="리포트 출력 폴더 (기본 ~/.partrate/reports)"),
) -> None:
    current = load_config()
    cfg = PartrateConfig(
        ruleset_path=ruleset_path if ruleset_path is not None else current.ruleset_path,
        input_path=input_path if input_path is not None else current.input_path,
        output_dir=output_dir if output_dir is not None else current.output_dir,
    )
    # Fail before writing if the ruleset does not load.
    cfg.ruleset()
    save_config(cfg)
    console.print("[green]설정을 저장했습니다:[/green]")
    console.print(load_config().as_dict())


@config_app.command("show")
def config_show() -> None:
    cfg = load_config()
    console.print(cfg.as_dict())


@config_app.command("path")
def config_path() -> None:
    cfg = load_config()
    console.print(
        {
            "config": str(cfg.config_path),
            "output_dir": str(cfg.output_dir_path),
        }
    )
