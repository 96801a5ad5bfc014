"""
Domain errors for the PSGC hierarchy engine.

Integrity violations are not exceptions: they are findings in the audit
report. Everything here is either an input problem (source rows, lookup
codes), a store problem (batch rejected, backend down) or a lookup miss.
"""
from typing import Any, Dict, List, Optional


class GeoRefError(Exception):
    """Base error for the geographic reference engine."""


# ──────────────────────────────────────────────
# INGESTION
# ──────────────────────────────────────────────

class SourceError(GeoRefError):
    """A tabular source could not be read at all."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Cannot read source {source}: {reason}")


class SourceParseError(GeoRefError):
    """A single source row is malformed."""

    def __init__(self, level: str, row_number: int, row: Dict[str, Any], reason: str):
        self.level = level
        self.row_number = row_number
        self.row = row
        self.reason = reason
        super().__init__(f"{level} row {row_number}: {reason}")


class BatchUpsertError(GeoRefError):
    """The store rejected one upsert batch."""

    def __init__(self, level: str, batch_index: int, sample: List[Dict[str, Any]], cause: str):
        self.level = level
        self.batch_index = batch_index
        self.sample = sample
        self.cause = cause
        super().__init__(f"{level} batch {batch_index} failed: {cause}")


class ImportAbortedError(GeoRefError):
    """Fail-fast policy stopped the pipeline at a level."""

    def __init__(self, level: str, errors: List[str]):
        self.level = level
        self.errors = errors
        first = errors[0] if errors else "unknown error"
        super().__init__(f"Import aborted at level '{level}': {first}")


# ──────────────────────────────────────────────
# LOOKUP
# ──────────────────────────────────────────────

class InvalidCodeError(GeoRefError):
    """Lookup code has a length that maps to no hierarchy level."""

    def __init__(self, code: str, reason: Optional[str] = None):
        self.code = code
        self.reason = reason or "code length must be 2, 4, 6 or at least 9 digits"
        super().__init__(f"Invalid PSGC code '{code}': {self.reason}")


class CodeNotFoundError(GeoRefError):
    """The requested code does not exist at its level."""

    def __init__(self, level: str, code: str):
        self.level = level
        self.code = code
        super().__init__(f"{level} '{code}' not found")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "not_found",
            "level": self.level,
            "code": self.code,
            "detail": str(self),
        }


class AncestorNotFoundError(CodeNotFoundError):
    """A link in the ancestor chain is missing."""

    def __init__(self, level: str, code: str, child_level: str, child_code: str):
        self.child_level = child_level
        self.child_code = child_code
        super().__init__(level, code)
        self.args = (f"{level} '{code}' referenced by {child_level} '{child_code}' not found",)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["error"] = "ancestor_not_found"
        data["child_level"] = self.child_level
        data["child_code"] = self.child_code
        return data


# ──────────────────────────────────────────────
# BACKEND
# ──────────────────────────────────────────────

class BackendUnavailableError(GeoRefError):
    """The backing store failed; distinct from a lookup miss."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Backend failure during {operation}: {cause}")
