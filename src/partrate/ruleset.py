from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import tomllib

from partrate.errors import RulesetError

logger = logging.getLogger(__name__)


# Settlement systems: the external reporting system that executes/verifies spending.
SETTLEMENT_SYSTEMS = (
    "E_NARA_DOUM",
    "IRIS",
    "RCMS",
    "EZBARO",
    "E_HIJO",
    "EDUFINE",
    "HAPPYEUM",
    "AGRIX",
    "ACCOUNTANT",
    "PRIVATE",
    "NONE",
)

SETTLEMENT_SYSTEM_LABELS = {
    "E_NARA_DOUM": "e나라도움 (국고보조금통합관리)",
    "IRIS": "IRIS (범부처통합연구지원)",
    "RCMS": "RCMS (실시간연구비)",
    "EZBARO": "이지바로 (EZBaro)",
    "E_HIJO": "e호조 (지방재정)",
    "EDUFINE": "에듀파인 (교육재정)",
    "HAPPYEUM": "행복이음 (사회보장)",
    "AGRIX": "아그릭스 (농림사업)",
    "ACCOUNTANT": "회계사정산",
    "PRIVATE": "민간사업",
    "NONE": "미정",
}

SETTLEMENT_SYSTEM_SHORT = {
    "E_NARA_DOUM": "e나라도움",
    "IRIS": "IRIS",
    "RCMS": "RCMS",
    "EZBARO": "이지바로",
    "E_HIJO": "e호조",
    "EDUFINE": "에듀파인",
    "HAPPYEUM": "행복이음",
    "AGRIX": "아그릭스",
    "ACCOUNTANT": "회계사정산",
    "PRIVATE": "민간",
    "NONE": "미정",
}

# Families used for member-level sums. Codes outside this table belong to no family.
NATIONAL_SUBSIDY = "NATIONAL_SUBSIDY"
ACCOUNTANT = "ACCOUNTANT"
PRIVATE = "PRIVATE"
FAMILIES = (NATIONAL_SUBSIDY, ACCOUNTANT, PRIVATE)
VERIFIABLE_FAMILIES = frozenset({NATIONAL_SUBSIDY, ACCOUNTANT})

FAMILY_LABELS = {
    NATIONAL_SUBSIDY: "e나라도움",
    ACCOUNTANT: "회계사정산",
    PRIVATE: "민간",
}

DEFAULT_SYSTEM_FAMILIES = {
    "E_NARA_DOUM": NATIONAL_SUBSIDY,
    "ACCOUNTANT": ACCOUNTANT,
    "PRIVATE": PRIVATE,
}

DEFAULT_ORG_ALIASES = {
    "KOICA": ("koica", "한국국제협력단"),
}

DEFAULT_SENSITIVE_ORG_KEYWORDS = ("KOICA", "한국국제협력단")


def system_label(code: str, *, short: bool = True) -> str:
    table = SETTLEMENT_SYSTEM_SHORT if short else SETTLEMENT_SYSTEM_LABELS
    return table.get(code, code)


@dataclass(frozen=True)
class RiskRuleset:
    version: str = "2026-02-24-rules-v1"
    warning_rate: float = 80.0
    limit_rate: float = 100.0
    sensitive_org_keywords: tuple[str, ...] = DEFAULT_SENSITIVE_ORG_KEYWORDS
    org_aliases: dict[str, tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_ORG_ALIASES))
    system_families: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SYSTEM_FAMILIES))

    def family_of(self, settlement_system: str) -> str | None:
        return self.system_families.get(settlement_system)

    def is_verifiable(self, settlement_system: str) -> bool:
        return self.family_of(settlement_system) in VERIFIABLE_FAMILIES

    def canonical_org(self, funding_org: str) -> str:
        """
        Canonical funding-organization key: the segment before the first "/",
        collapsed through the alias table (case-insensitive substring match).
        """
        raw = (funding_org or "").split("/", 1)[0].strip()
        lowered = raw.lower()
        for canonical, aliases in self.org_aliases.items():
            if any(a.lower() in lowered for a in aliases if a):
                return canonical
        return raw

    def is_sensitive_org(self, org: str) -> bool:
        key = (org or "").lower()
        return any(kw.lower() in key for kw in self.sensitive_org_keywords if kw)

    def thresholds(self) -> dict[str, float]:
        return {"warningRate": self.warning_rate, "limitRate": self.limit_rate}

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "warning_rate": self.warning_rate,
            "limit_rate": self.limit_rate,
            "sensitive_org_keywords": list(self.sensitive_org_keywords),
            "org_aliases": {k: list(v) for k, v in self.org_aliases.items()},
            "system_families": dict(self.system_families),
        }


DEFAULT_RULESET = RiskRuleset()

_KNOWN_KEYS = {"version", "warning_rate", "limit_rate", "sensitive_org_keywords", "org_aliases", "system_families"}


def _as_rate(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise RulesetError(f"{key} must be a number")
    try:
        v = float(value)
    except (TypeError, ValueError) as e:
        raise RulesetError(f"{key} must be a number, got {value!r}") from e
    if not math.isfinite(v) or v <= 0:
        raise RulesetError(f"{key} must be a positive finite number, got {value!r}")
    return v


def _as_str_list(key: str, value: Any) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise RulesetError(f"{key} must be a list of strings")
    return tuple(str(v) for v in value)


def ruleset_from_dict(data: dict[str, Any], *, base: RiskRuleset = DEFAULT_RULESET) -> RiskRuleset:
    """Override any subset of `base` with values from `data`."""
    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise RulesetError(f"Unknown ruleset keys: {unknown}")

    changes: dict[str, Any] = {}
    if "version" in data:
        version = str(data["version"]).strip()
        if not version:
            raise RulesetError("version must not be empty")
        changes["version"] = version
    if "warning_rate" in data:
        changes["warning_rate"] = _as_rate("warning_rate", data["warning_rate"])
    if "limit_rate" in data:
        changes["limit_rate"] = _as_rate("limit_rate", data["limit_rate"])
    if "sensitive_org_keywords" in data:
        changes["sensitive_org_keywords"] = _as_str_list("sensitive_org_keywords", data["sensitive_org_keywords"])
    if "org_aliases" in data:
        aliases = data["org_aliases"]
        if not isinstance(aliases, dict):
            raise RulesetError("org_aliases must be a table of canonical name -> alias list")
        changes["org_aliases"] = {str(k): _as_str_list(f"org_aliases.{k}", v) for k, v in aliases.items()}
    if "system_families" in data:
        fams = data["system_families"]
        if not isinstance(fams, dict):
            raise RulesetError("system_families must be a table of code -> family")
        bad = sorted({str(v) for v in fams.values()} - set(FAMILIES))
        if bad:
            raise RulesetError(f"Unknown settlement families: {bad} (allowed: {list(FAMILIES)})")
        changes["system_families"] = {str(k): str(v) for k, v in fams.items()}

    ruleset = replace(base, **changes)
    if ruleset.warning_rate >= ruleset.limit_rate:
        raise RulesetError(
            f"warning_rate ({ruleset.warning_rate}) must be lower than limit_rate ({ruleset.limit_rate})"
        )
    return ruleset


def load_ruleset(path: Path | None) -> RiskRuleset:
    if path is None:
        return DEFAULT_RULESET
    p = Path(path).expanduser()
    if not p.exists():
        raise RulesetError(f"Ruleset file not found: {p}")
    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise RulesetError(f"Invalid ruleset TOML {p}: {e}") from e
    ruleset = ruleset_from_dict(data)
    logger.info("Loaded ruleset %s from %s", ruleset.version, p)
    return ruleset
