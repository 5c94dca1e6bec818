from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from partrate.ingest import ImportIssue


class PartrateError(Exception):
    pass


class RulesetError(PartrateError):
    pass


class ValidationError(PartrateError):
    """Raised at the ingestion boundary when assignment rows are malformed."""

    def __init__(self, issues: Sequence["ImportIssue"]) -> None:
        self.issues = list(issues)
        head = self.issues[0] if self.issues else None
        if head is None:
            msg = "invalid participation assignments"
        else:
            msg = f"{len(self.issues)} invalid row(s); first: row {head.row} {head.field}: {head.message}"
        super().__init__(msg)


class ConfigError(PartrateError):
    pass
