from __future__ import annotations

import csv
import datetime as dt
import itertools
import json
import logging
import math
import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rich.table import Table

from partrate.errors import ValidationError
from partrate.models import ParticipationAssignment
from partrate.ruleset import SETTLEMENT_SYSTEM_LABELS, SETTLEMENT_SYSTEM_SHORT, SETTLEMENT_SYSTEMS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportIssue:
    file: str
    row: int
    key: str
    field: str
    message: str


def issues_to_table(issues: list[ImportIssue], *, title: str = "Data Quality Issues") -> Table:
    table = Table(title=f"{title} (showing up to 50)")
    table.add_column("file")
    table.add_column("row", justify="right")
    table.add_column("key")
    table.add_column("field")
    table.add_column("message")
    for i in issues[:50]:
        table.add_row(i.file, str(i.row), i.key, i.field, i.message)
    return table


FIELDS = [
    "id",
    "member_id",
    "member_name",
    "project_id",
    "project_name",
    "rate",
    "settlement_system",
    "funding_org",
    "period_start",
    "period_end",
    "is_document_only",
    "note",
    "updated_at",
]
REQUIRED_FIELDS = ("member_id", "project_id", "settlement_system")

# Normalized header -> field. camelCase wire names and the Korean sheet headers.
HEADER_ALIASES = {
    "memberid": "member_id",
    "membername": "member_name",
    "member_display_name": "member_name",
    "projectid": "project_id",
    "projectname": "project_name",
    "project_display_name": "project_name",
    "settlementsystem": "settlement_system",
    "clientorg": "funding_org",
    "client_org": "funding_org",
    "fundingorg": "funding_org",
    "periodstart": "period_start",
    "periodend": "period_end",
    "isdocumentonly": "is_document_only",
    "updatedat": "updated_at",
    "직원id": "member_id",
    "참여자": "member_name",
    "성명": "member_name",
    "사업id": "project_id",
    "사업명": "project_name",
    "참여율": "rate",
    "정산시스템": "settlement_system",
    "정산": "settlement_system",
    "발주기관": "funding_org",
    "시작월": "period_start",
    "종료월": "period_end",
    "서류상인력": "is_document_only",
    "비고": "note",
}

_SETTLEMENT_LOOKUP = {code.lower(): code for code in SETTLEMENT_SYSTEMS}
_SETTLEMENT_LOOKUP.update({label.lower(): code for code, label in SETTLEMENT_SYSTEM_SHORT.items()})
_SETTLEMENT_LOOKUP.update({label.lower(): code for code, label in SETTLEMENT_SYSTEM_LABELS.items()})

_MONTH_RE = re.compile(r"^(\d{4})[-./](\d{1,2})")


def _norm_header(name: str) -> str:
    s = (name or "").strip()
    if not s:
        return ""
    if s.endswith("*"):
        s = s[:-1]
    s = s.strip().lower().replace(" ", "_")
    return HEADER_ALIASES.get(s, s)


def _cell(row: dict[str, Any], key: str) -> str:
    v = row.get(key)
    if v is None:
        return ""
    if isinstance(v, float) and math.isnan(v):
        return ""
    return str(v).strip()


def _parse_rate(s: str) -> float:
    s = (s or "").strip().rstrip("%").strip()
    if not s:
        raise ValueError("missing rate")
    v = float(s)
    if not math.isfinite(v):
        raise ValueError(f"rate is not finite: {s}")
    if not (0.0 <= v <= 100.0):
        raise ValueError(f"rate must be in [0, 100], got {s}")
    return v


def _parse_bool(s: str) -> bool:
    return (s or "").strip().lower() in {"1", "true", "y", "yes", "o", "예"}


def normalize_settlement_system(value: str) -> str:
    s = (value or "").strip()
    return _SETTLEMENT_LOOKUP.get(s.lower(), s.upper())


def parse_month(s: str) -> dt.date | None:
    """First day of a "YYYY-MM" month; None for anything else (e.g. "2~11월")."""
    m = _MONTH_RE.match((s or "").strip())
    if not m:
        return None
    year, month = int(m.group(1)), int(m.group(2))
    if not 1 <= month <= 12:
        return None
    return dt.date(year, month, 1)


def _ranges_overlap(a_start: dt.date, a_end: dt.date | None, b_start: dt.date, b_end: dt.date | None) -> bool:
    a2 = a_end or dt.date.max
    b2 = b_end or dt.date.max
    return not (a2 < b_start or b2 < a_start)


def find_period_overlaps(assignments: list[ParticipationAssignment]) -> list[tuple[str, str, str, str]]:
    """
    (member_id, project_id, id_a, id_b) for period-sliced records of the same
    member and project whose months overlap with nonzero rates. Records whose
    periods are not "YYYY-MM" are skipped.
    """
    by_key: dict[tuple[str, str], list[tuple[dt.date, dt.date | None, str]]] = {}
    for a in assignments:
        if a.rate <= 0:
            continue
        start = parse_month(a.period_start)
        if start is None:
            continue
        by_key.setdefault((a.member_id, a.project_id), []).append((start, parse_month(a.period_end), a.id))

    out: list[tuple[str, str, str, str]] = []
    for (mid, pid), ranges in by_key.items():
        ranges_sorted = sorted(ranges, key=lambda x: x[0])
        for (a_s, a_e, a_id), (b_s, b_e, b_id) in itertools.combinations(ranges_sorted, 2):
            if _ranges_overlap(a_s, a_e, b_s, b_e):
                out.append((mid, pid, a_id, b_id))
    return out


def _generated_ids(taken: set[str]) -> Iterator[str]:
    """pe0001, pe0002, ... skipping ids given explicitly in the input."""
    for n in itertools.count(1):
        candidate = f"pe{n:04d}"
        if candidate not in taken:
            yield candidate


def parse_assignments(
    rows: list[dict[str, Any]], *, file: str = "assignments"
) -> tuple[list[ParticipationAssignment], dict[str, int]]:
    """
    Validate raw rows (already keyed by field name) into assignments.
    Collects every issue, then raises ValidationError if any.
    """
    issues: list[ImportIssue] = []
    stats = {
        "rows": 0,
        "assignments": 0,
        "warnings_unknown_settlement_system": 0,
        "warnings_period_overlap": 0,
        "warnings_unparsed_period": 0,
    }
    out: list[ParticipationAssignment] = []
    seen: dict[tuple[str, str, str, str], int] = {}
    id_rows: dict[str, int] = {}

    normalized = [{_norm_header(str(k)): v for k, v in raw.items() if k is not None} for raw in rows]
    new_ids = _generated_ids({_cell(r, "id") for r in normalized} - {""})

    for idx, row in enumerate(normalized, start=2):
        if all(_cell(row, f) == "" for f in FIELDS):
            continue
        stats["rows"] += 1

        member_id = _cell(row, "member_id")
        project_id = _cell(row, "project_id")
        key = f"{member_id}:{project_id}"

        missing = [f for f in REQUIRED_FIELDS if not _cell(row, f)]
        for f in missing:
            issues.append(ImportIssue(file, idx, key, f, f"missing {f}"))

        try:
            rate = _parse_rate(_cell(row, "rate"))
        except ValueError as e:
            issues.append(ImportIssue(file, idx, key, "rate", str(e)))
            continue
        if missing:
            continue

        period_start = _cell(row, "period_start")
        period_end = _cell(row, "period_end")
        dedup_key = (member_id, project_id, period_start, period_end)
        if dedup_key in seen:
            issues.append(
                ImportIssue(
                    file,
                    idx,
                    key,
                    "period",
                    f"duplicate of row {seen[dedup_key]} (same member, project and period)",
                )
            )
            continue
        seen[dedup_key] = idx

        entry_id = _cell(row, "id")
        if entry_id in id_rows:
            issues.append(ImportIssue(file, idx, key, "id", f"id {entry_id} already used on row {id_rows[entry_id]}"))
            continue
        if entry_id:
            id_rows[entry_id] = idx
        else:
            entry_id = next(new_ids)

        if period_start and parse_month(period_start) is None:
            stats["warnings_unparsed_period"] += 1

        system = normalize_settlement_system(_cell(row, "settlement_system"))
        if system not in SETTLEMENT_SYSTEMS:
            stats["warnings_unknown_settlement_system"] += 1

        out.append(
            ParticipationAssignment(
                id=entry_id,
                member_id=member_id,
                member_display_name=_cell(row, "member_name") or member_id,
                project_id=project_id,
                project_display_name=_cell(row, "project_name") or project_id,
                rate=rate,
                settlement_system=system,
                funding_org=_cell(row, "funding_org"),
                period_start=period_start,
                period_end=period_end,
                is_document_only=_parse_bool(_cell(row, "is_document_only")),
                note=_cell(row, "note"),
                updated_at=_cell(row, "updated_at"),
            )
        )

    if issues:
        logger.info("%s: %d issue(s) in %d row(s)", file, len(issues), stats["rows"])
        raise ValidationError(issues)

    stats["warnings_period_overlap"] = len(find_period_overlaps(out))
    stats["assignments"] = len(out)
    return out, stats


def read_csv_rows(path: Path) -> list[dict[str, Any]]:
    with path.open("r", encoding="utf-8-sig", newline="") as f:
        return [dict(r) for r in csv.DictReader(f)]


def read_xlsx_rows(path: Path, *, sheet: str = "assignments") -> list[dict[str, Any]]:
    try:
        from openpyxl import load_workbook  # type: ignore[import-not-found]
    except Exception as e:  # noqa: BLE001
        raise ModuleNotFoundError(
            "Missing dependency 'openpyxl'. Install it (e.g. `pip install openpyxl`) to import XLSX."
        ) from e

    wb = load_workbook(path, data_only=True)
    name_map = {str(n).strip().lower(): n for n in wb.sheetnames}
    actual = name_map.get(sheet.lower())
    ws = wb[actual] if actual is not None else wb.active
    rows_iter = ws.iter_rows(values_only=True)
    try:
        header_row = next(rows_iter)
    except StopIteration:
        return []
    headers = ["" if h is None else str(h) for h in header_row]
    out_rows: list[dict[str, Any]] = []
    for r in rows_iter:
        if r is None:
            continue
        d: dict[str, Any] = {}
        for k, v in zip(headers, r, strict=False):
            if not k:
                continue
            if isinstance(v, (dt.datetime, dt.date)):
                # Month granularity.
                d[k] = v.strftime("%Y-%m")
            else:
                d[k] = v
        out_rows.append(d)
    return out_rows


def read_json_rows(path: Path) -> list[dict[str, Any]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("entries", data.get("assignments"))
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of assignments or an object with 'entries'")
    return [dict(r) for r in data]


def load_assignments(path: Path) -> tuple[list[ParticipationAssignment], dict[str, int]]:
    p = Path(path).expanduser()
    suffix = p.suffix.lower()
    if suffix == ".csv":
        rows = read_csv_rows(p)
    elif suffix in {".xlsx", ".xlsm"}:
        rows = read_xlsx_rows(p)
    elif suffix == ".json":
        rows = read_json_rows(p)
    else:
        raise ValueError(f"Unsupported input format: {p.name} (expected .csv, .xlsx or .json)")
    assignments, stats = parse_assignments(rows, file=p.name)
    logger.info("loaded %d assignment(s) from %s", len(assignments), p)
    return assignments, stats


def export_assignment_template_xlsx(output: Path) -> Path:
    """
    Workbook for collecting assignments by hand; `partrate validate --input` reads it back.
    """
    from openpyxl import Workbook
    from openpyxl.styles import Alignment, Font
    from openpyxl.worksheet.datavalidation import DataValidation

    out = output.expanduser()
    out.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws0 = wb.active
    ws0.title = "README"
    ws0["A1"] = "참여율 배정 입력 템플릿"
    ws0["A1"].font = Font(bold=True, size=14)
    ws0["A3"] = "1) assignments 시트에 배정 건을 한 줄씩 입력합니다 (* 필수)."
    ws0["A4"] = "2) 검증: partrate validate --input <this.xlsx>"
    ws0["A5"] = "3) 리포트: partrate report members --input <this.xlsx>"
    ws0["A7"] = "- rate: 0~100 (%)"
    ws0["A8"] = "- period_start / period_end: YYYY-MM; 같은 사업의 기간별 참여율은 기간을 겹치지 않게 나눠 입력"
    ws0["A9"] = "- funding_org: '부처/전담기관' 형식 가능 (첫 구간이 기관명)"
    ws0["A10"] = "- settlement_system: " + ", ".join(SETTLEMENT_SYSTEMS)
    ws0.column_dimensions["A"].width = 100
    for r in range(3, 11):
        ws0.cell(row=r, column=1).alignment = Alignment(wrap_text=True, vertical="top")

    ws = wb.create_sheet("assignments")
    headers = [f"{f}*" if f in REQUIRED_FIELDS or f == "rate" else f for f in FIELDS]
    ws.append(headers)
    for c in range(1, len(headers) + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center", vertical="center")
    ws.freeze_panes = "A2"

    col = FIELDS.index("settlement_system") + 1
    letter = ws.cell(row=1, column=col).column_letter
    dv = DataValidation(type="list", formula1='"' + ",".join(SETTLEMENT_SYSTEMS) + '"', allow_blank=False)
    ws.add_data_validation(dv)
    dv.add(f"{letter}2:{letter}2000")

    wb.save(out)
    return out
