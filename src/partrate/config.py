from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import tomllib

from partrate.errors import ConfigError
from partrate.ruleset import RiskRuleset, load_ruleset


def _default_home() -> Path:
    return Path(os.environ.get("PARTRATE_HOME", Path.home() / ".partrate")).expanduser()


def _safe_toml_str(value: str) -> str:
    # Minimal TOML string escaping for our config needs.
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass(frozen=True)
class PartrateConfig:
    ruleset_path: str | None = None
    input_path: str | None = None
    output_dir: str | None = None

    @property
    def home_dir(self) -> Path:
        return _default_home()

    @property
    def config_path(self) -> Path:
        return self.home_dir / "config.toml"

    @property
    def ruleset_path_resolved(self) -> Path | None:
        if self.ruleset_path:
            return Path(self.ruleset_path).expanduser()
        return None

    @property
    def input_path_resolved(self) -> Path | None:
        if self.input_path:
            return Path(self.input_path).expanduser()
        return None

    @property
    def output_dir_path(self) -> Path:
        if self.output_dir:
            return Path(self.output_dir).expanduser()
        return self.home_dir / "reports"

    def ruleset(self) -> RiskRuleset:
        return load_ruleset(self.ruleset_path_resolved)

    def as_dict(self) -> dict[str, Any]:
        return {
            "ruleset_path": str(self.ruleset_path_resolved or ""),
            "input_path": str(self.input_path_resolved or ""),
            "output_dir": str(self.output_dir_path),
            "PARTRATE_HOME": str(self.home_dir),
        }


def load_config() -> PartrateConfig:
    """
    Read ~/.partrate/config.toml. Without a config file the defaults apply:
    built-in ruleset, no default input, reports under ~/.partrate/reports.
    """
    path = _default_home() / "config.toml"
    if not path.exists():
        return PartrateConfig()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e
    return PartrateConfig(
        ruleset_path=data.get("ruleset_path"),
        input_path=data.get("input_path"),
        output_dir=data.get("output_dir"),
    )


def save_config(cfg: PartrateConfig) -> None:
    cfg.home_dir.mkdir(parents=True, exist_ok=True)
    lines: list[str] = []
    for key, value in {
        "ruleset_path": cfg.ruleset_path or "",
        "input_path": cfg.input_path or "",
        "output_dir": cfg.output_dir or "",
    }.items():
        if value == "":
            continue
        lines.append(f"{key} = {_safe_toml_str(str(value))}")

    cfg.config_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
