"""
PSGC Ingestion Pipeline

Imports the four hierarchy levels from tabular sources.

Flow per level (always Region → Province → City → Barangay):
  1. Normalize raw rows into the canonical shape
  2. Split into batches of `batch_size`
  3. Upsert each batch keyed by `code` (insert if absent, update if present)
  4. On a batch error: record it with a sample of rows, then continue or
     abort depending on the configured policy
  5. Re-count the table and compare against what was submitted

Levels never run concurrently; batches inside one level may, bounded by
`max_workers`. There is no transaction spanning the whole import: a failure
half-way leaves earlier levels committed, which the integrity audit detects.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from georef.config.hierarchy import LEVELS, LEVEL_DEFINITIONS
from georef.core.config import Settings, settings as default_settings
from georef.core.exceptions import BatchUpsertError, ImportAbortedError, SourceParseError
from georef.services import psgc_store
from georef.services.psgc_normalizer import normalize_rows
from georef.services.psgc_sources import PsgcSources, read_source

logger = logging.getLogger(__name__)


class ImportMode(str, Enum):
    MERGE = "merge"        # upsert only, rows absent from the source are kept
    REPLACE = "replace"    # clear the imported levels first, then insert


class ErrorPolicy(str, Enum):
    CONTINUE = "continue"  # best-effort: log the failed batch, keep going
    ABORT = "abort"        # fail-fast: stop at the first failed batch


@dataclass
class ImportOptions:
    mode: ImportMode = ImportMode.MERGE
    on_error: ErrorPolicy = ErrorPolicy.CONTINUE
    batch_size: int = 1000
    max_workers: int = 1
    strict: bool = False
    error_sample_size: int = 3

    def __post_init__(self):
        self.mode = ImportMode(self.mode)
        self.on_error = ErrorPolicy(self.on_error)
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    @classmethod
    def from_settings(cls, config: Settings = None, **overrides) -> "ImportOptions":
        config = config or default_settings
        values = {
            "mode": config.IMPORT_MODE,
            "on_error": config.IMPORT_ON_ERROR,
            "batch_size": config.IMPORT_BATCH_SIZE,
            "max_workers": config.IMPORT_MAX_WORKERS,
            "strict": config.IMPORT_STRICT_PARSE,
            "error_sample_size": config.IMPORT_ERROR_SAMPLE_SIZE,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class LevelImportResult:
    level: str
    table: str
    received: int = 0
    submitted: int = 0
    upserted: int = 0
    skipped: int = 0
    duplicates: int = 0
    count_before: int = 0
    count_after: int = 0
    missing_after_import: int = 0
    expected_count: Optional[int] = None
    cleared: int = 0
    prefix_mismatches: int = 0
    parse_errors: List[Dict[str, Any]] = field(default_factory=list)
    batch_errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def discrepancy(self) -> bool:
        if self.expected_count is not None and self.count_after != self.expected_count:
            return True
        return self.missing_after_import > 0 or self.upserted != self.submitted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "table": self.table,
            "received": self.received,
            "submitted": self.submitted,
            "upserted": self.upserted,
            "skipped": self.skipped,
            "duplicates": self.duplicates,
            "cleared": self.cleared,
            "count_before": self.count_before,
            "count_after": self.count_after,
            "missing_after_import": self.missing_after_import,
            "prefix_mismatches": self.prefix_mismatches,
            "expected_count": self.expected_count,
            "discrepancy": self.discrepancy,
            "parse_errors": self.parse_errors,
            "batch_errors": self.batch_errors,
        }


@dataclass
class ImportReport:
    options: ImportOptions
    levels: List[LevelImportResult] = field(default_factory=list)
    aborted: bool = False
    aborted_level: Optional[str] = None
    abort_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.aborted and not any(
            r.discrepancy or r.batch_errors for r in self.levels
        )

    def level(self, name: str) -> Optional[LevelImportResult]:
        for result in self.levels:
            if result.level == name:
                return result
        return None

    def raise_for_abort(self) -> None:
        if self.aborted:
            errors = []
            result = self.level(self.aborted_level)
            if result:
                errors = [e["error"] for e in result.batch_errors + result.parse_errors]
            raise ImportAbortedError(self.aborted_level, errors or [self.abort_reason or ""])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.options.mode.value,
            "on_error": self.options.on_error.value,
            "batch_size": self.options.batch_size,
            "ok": self.ok,
            "aborted": self.aborted,
            "aborted_level": self.aborted_level,
            "abort_reason": self.abort_reason,
            "levels": [r.to_dict() for r in self.levels],
        }


class IngestionPipeline:
    """
    Configurable, idempotent importer for the PSGC hierarchy.

    Args:
        session_factory: sessionmaker bound to the target database
        options: clear-vs-merge, abort-vs-continue, batch size, workers
    """

    def __init__(self, session_factory: sessionmaker, options: ImportOptions = None):
        self.session_factory = session_factory
        self.options = options or ImportOptions()

    # ──────────────────────────────────────────────
    # ENTRY POINTS
    # ──────────────────────────────────────────────

    def run_sources(self, sources: PsgcSources, timeout: float = 30.0) -> ImportReport:
        """Reads every configured source, then imports them level by level."""
        row_sets = {level: read_source(source, timeout=timeout) for level, source in sources.items()}
        return self.run(row_sets)

    def run(self, row_sets: Mapping[str, List[Dict[str, Any]]]) -> ImportReport:
        """
        Imports raw rows for any subset of levels.

        Levels are processed in hierarchy order whatever the mapping order.
        """
        unknown = set(row_sets) - set(LEVELS)
        if unknown:
            raise ValueError(f"Unknown levels: {', '.join(sorted(unknown))}")

        levels = [level for level in LEVELS if level in row_sets]
        report = ImportReport(options=self.options)

        logger.info(
            f"[Ingestion] 🚀 Importing {', '.join(levels) or 'nothing'} "
            f"(mode={self.options.mode.value}, on_error={self.options.on_error.value}, "
            f"batch_size={self.options.batch_size})"
        )

        cleared = {}
        if self.options.mode == ImportMode.REPLACE:
            try:
                cleared = self._clear_levels(levels)
            except ImportAbortedError as e:
                report.aborted = True
                report.aborted_level = e.level
                report.abort_reason = str(e)
                logger.error(f"[Ingestion] ❌ {e}")
                return report

        for level in levels:
            result = LevelImportResult(level=level, table=LEVEL_DEFINITIONS[level]["table"])
            result.cleared = cleared.get(level, 0)
            report.levels.append(result)
            try:
                self._import_level(level, row_sets[level], result)
            except ImportAbortedError as e:
                report.aborted = True
                report.aborted_level = level
                report.abort_reason = str(e)
                logger.error(f"[Ingestion] ❌ {e}")
                break

        if report.ok:
            logger.info("[Ingestion] ✅ Import complete")
        else:
            logger.warning("[Ingestion] ⚠️ Import finished with issues")
        return report

    # ──────────────────────────────────────────────
    # LEVEL IMPORT
    # ──────────────────────────────────────────────

    def _clear_levels(self, levels: List[str]) -> Dict[str, int]:
        """Deletes the imported levels child-first."""
        cleared = {}
        db = self.session_factory()
        try:
            for level in reversed(LEVELS):
                if level in levels:
                    cleared[level] = psgc_store.delete_all(db, level)
                    logger.info(f"[Ingestion] 🧹 Cleared {cleared[level]} {level} rows")
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise ImportAbortedError(levels[0] if levels else "none", [f"clear failed: {e}"]) from e
        finally:
            db.close()
        return cleared

    def _import_level(self, level: str, raw_rows: List[Dict[str, Any]], result: LevelImportResult) -> None:
        options = self.options
        normalized = normalize_rows(level, raw_rows)

        result.received = len(raw_rows)
        result.submitted = len(normalized.rows)
        result.duplicates = normalized.duplicates
        result.prefix_mismatches = len(normalized.prefix_mismatches)
        result.skipped = len(normalized.errors)
        result.parse_errors = [self._parse_error_entry(e) for e in normalized.errors]

        for error in normalized.errors:
            logger.warning(f"[Ingestion] Skipping {error} | row={error.row}")

        if normalized.errors and options.strict:
            raise ImportAbortedError(level, [str(e) for e in normalized.errors])

        result.count_before = self._count(level)

        batches = [
            normalized.rows[start:start + options.batch_size]
            for start in range(0, len(normalized.rows), options.batch_size)
        ]
        logger.info(
            f"[Ingestion] 📊 {level}: {result.submitted} rows in {len(batches)} batches"
        )

        errors = self._run_batches(level, batches, result)

        result.count_after = self._count(level)
        self._verify(level, normalized.rows, result)

        if errors and options.on_error == ErrorPolicy.ABORT:
            raise ImportAbortedError(level, [str(e) for e in errors])

    def _run_batches(self, level: str, batches: List[List[Dict]], result: LevelImportResult) -> List[BatchUpsertError]:
        errors: List[BatchUpsertError] = []
        abort = self.options.on_error == ErrorPolicy.ABORT

        if self.options.max_workers == 1 or len(batches) <= 1:
            for index, batch in enumerate(batches, start=1):
                outcome = self._upsert_batch(level, index, batch)
                if self._record(level, len(batches), outcome, result, errors) and abort:
                    break
            return errors

        with ThreadPoolExecutor(max_workers=self.options.max_workers) as executor:
            futures = [
                executor.submit(self._upsert_batch, level, index, batch)
                for index, batch in enumerate(batches, start=1)
            ]
            for future in futures:
                if future.cancelled():
                    continue
                failed = self._record(level, len(batches), future.result(), result, errors)
                if failed and abort:
                    for pending in futures:
                        pending.cancel()
        return errors

    def _record(self, level, total_batches, outcome, result, errors) -> bool:
        """Accumulates one batch outcome. Returns True when the batch failed."""
        if isinstance(outcome, BatchUpsertError):
            errors.append(outcome)
            result.batch_errors.append({
                "batch": outcome.batch_index,
                "error": str(outcome),
                "sample": outcome.sample,
            })
            logger.error(
                f"[Ingestion] ❌ {level} batch {outcome.batch_index}/{total_batches}: "
                f"{outcome.cause} | sample={outcome.sample}"
            )
            return True

        result.upserted += outcome
        logger.info(
            f"[Ingestion] ✅ {level}: {result.upserted}/{result.submitted} rows imported"
        )
        return False

    def _upsert_batch(self, level: str, index: int, batch: List[Dict]):
        """Upserts one batch in its own session; returns row count or the error."""
        db = self.session_factory()
        try:
            written = psgc_store.upsert_rows(db, level, batch)
            db.commit()
            return written
        except SQLAlchemyError as e:
            db.rollback()
            sample = batch[:self.options.error_sample_size]
            return BatchUpsertError(level, index, sample, str(e).splitlines()[0])
        finally:
            db.close()

    # ──────────────────────────────────────────────
    # VERIFICATION
    # ──────────────────────────────────────────────

    def _count(self, level: str) -> int:
        db = self.session_factory()
        try:
            return psgc_store.count_rows(db, level)
        finally:
            db.close()

    def _verify(self, level: str, rows: List[Dict], result: LevelImportResult) -> None:
        """Checks every submitted code is now present in the table."""
        db = self.session_factory()
        try:
            present = psgc_store.existing_codes(db, level, [row["code"] for row in rows])
        finally:
            db.close()

        result.missing_after_import = len(rows) - len(present)

        if self.options.mode == ImportMode.REPLACE:
            # Replace mode starts from an empty table
            result.expected_count = result.submitted

        if result.discrepancy:
            logger.warning(
                f"[Ingestion] ⚠️ {level}: submitted {result.submitted}, upserted {result.upserted}, "
                f"table has {result.count_after}, missing {result.missing_after_import}"
            )
        else:
            logger.info(f"[Ingestion] 📈 {result.table}: {result.count_after} records")

    @staticmethod
    def _parse_error_entry(error: SourceParseError) -> Dict[str, Any]:
        return {
            "row": error.row_number,
            "error": error.reason,
            "data": error.row,
        }
