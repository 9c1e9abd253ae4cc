"""Inspection extraction: survey-capture SQLite export to canonical records.

Reads the export through SQLAlchemy in read-only mode and reconstructs
``Section`` and ``Observation`` records:

1. Node lookup (NODE) first; when it is missing, node names fall back to
   the section's own key or its raw node reference.
2. Sections (SECTION), deleted rows dropped, ordered by sort order when
   present, else by key. Item numbers come from the sort order when it is
   complete and unique, else they are assigned 1-based.
3. Observations (SECOBS joined through SECINSP), traversal markers
   excluded, ordered by distance along the run.
4. Grade rollups (SECSTAT), highest grade kept per category.

A missing required table or column raises ``ExtractionError`` before any
result is returned. Individual malformed rows are skipped and logged.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote

from sqlalchemy import Engine, create_engine, inspect, select
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import column, table

from src.ingestion.defect_summary import encode_defect_summary
from src.ingestion.schema import (
    ALL_TABLES,
    GRADE_CATEGORY_TAGS,
    MARKER_CODES,
    NODE,
    SECINSP,
    SECOBS,
    SECSTAT,
    SECTION,
    TableSchema,
)
from src.models.common import DefectCategory
from src.models.inspection import (
    UNKNOWN,
    ExtractionResult,
    GradeRollup,
    Observation,
    Section,
)

logger = logging.getLogger(__name__)

_SQLITE_MAGIC = b"SQLite format 3\x00"


class ExtractionError(Exception):
    """The export cannot produce a canonical set (fatal for the import)."""


@dataclass(frozen=True)
class _BoundTable:
    """A schema resolved against the physical export."""

    schema: TableSchema
    table_name: str
    columns: dict[str, str]  # canonical field -> physical column


def _is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def _as_text(value: Any) -> str:
    """Render an optional export value, UNKNOWN when absent."""
    if _is_blank(value):
        return UNKNOWN
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _as_int(value: Any) -> int | None:
    if _is_blank(value):
        return None
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        return None
    if not as_float.is_integer():
        return None
    return int(as_float)


def _split_timestamp(value: Any) -> tuple[str, str]:
    if _is_blank(value):
        return UNKNOWN, UNKNOWN
    parts = str(value).strip().replace("T", " ").split()
    date = parts[0]
    time = parts[1] if len(parts) > 1 else UNKNOWN
    return date, time


def _nodes_from_key(key: str | None) -> tuple[str, str] | None:
    """Derive (upstream, downstream) from a section key like ``SW01-SW02``."""
    if not key:
        return None
    for sep in ("-", "/"):
        parts = [p.strip() for p in key.split(sep)]
        if len(parts) == 2 and all(parts):
            return parts[0], parts[1]
    return None


class InspectionExtractor:
    """Deterministic extractor for one export snapshot.

    Holds no state between calls; concurrent imports each use their own
    engine and connection.
    """

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def extract(self, path: str | Path) -> ExtractionResult:
        """Extract canonical sections and observations from an export file.

        Raises:
            ExtractionError: If the file is missing, is not an SQLite
                database, or lacks a required table or column.
        """
        path = Path(path)
        if not path.is_file():
            msg = f"Export file not found: {path}"
            raise ExtractionError(msg)

        with path.open("rb") as fh:
            header = fh.read(len(_SQLITE_MAGIC))
        if header != _SQLITE_MAGIC:
            msg = f"Not an SQLite database: {path}"
            raise ExtractionError(msg)

        # SQLAlchemy unquotes the database part of its own URL, so the
        # read-only URI goes straight to sqlite3 with "#", "?" and "%"
        # in the path percent-encoded.
        uri = f"file:{quote(path.resolve().as_posix())}?mode=ro"
        engine = create_engine("sqlite://", creator=lambda: sqlite3.connect(uri, uri=True))
        try:
            return self.extract_from_engine(engine, source=str(path))
        finally:
            engine.dispose()

    def extract_from_engine(self, engine: Engine, *, source: str) -> ExtractionResult:
        """Extract from an already-open SQLAlchemy engine."""
        try:
            bound = self._resolve_tables(engine, source)
            with engine.connect() as conn:
                return self._extract(conn, bound, source)
        except SQLAlchemyError as exc:
            msg = f"Failed to read export {source}: {exc}"
            raise ExtractionError(msg) from exc

    # ------------------------------------------------------------------
    # Schema resolution
    # ------------------------------------------------------------------

    def _resolve_tables(self, engine: Engine, source: str) -> dict[str, _BoundTable]:
        inspector = inspect(engine)
        physical = {name.lower(): name for name in inspector.get_table_names()}
        bound: dict[str, _BoundTable] = {}

        for schema in ALL_TABLES:
            table_name = physical.get(schema.name.lower())
            if table_name is None:
                if schema.required:
                    msg = f"Required table {schema.name} missing from {source}"
                    raise ExtractionError(msg)
                logger.warning("Optional table %s missing from %s", schema.name, source)
                continue

            present = {c["name"] for c in inspector.get_columns(table_name)}
            missing = schema.missing_columns(present)
            if missing:
                if schema.required:
                    msg = f"Table {schema.name} in {source} missing required columns: {missing}"
                    raise ExtractionError(msg)
                logger.warning(
                    "Optional table %s in %s missing columns %s; ignoring it",
                    schema.name,
                    source,
                    missing,
                )
                continue

            by_lower = {p.lower(): p for p in present}
            columns = {
                col.field: by_lower[col.name.lower()]
                for col in schema.columns
                if col.name.lower() in by_lower
            }
            bound[schema.name] = _BoundTable(schema=schema, table_name=table_name, columns=columns)

        return bound

    @staticmethod
    def _read_rows(conn: Connection, bound: _BoundTable) -> list[dict[str, Any]]:
        """Select the mapped columns, keyed by canonical field name."""
        tbl = table(bound.table_name, *(column(c) for c in bound.columns.values()))
        stmt = select(*(tbl.c[phys].label(field) for field, phys in bound.columns.items()))
        return [dict(row._mapping) for row in conn.execute(stmt)]

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def _extract(
        self,
        conn: Connection,
        bound: dict[str, _BoundTable],
        source: str,
    ) -> ExtractionResult:
        skipped = 0

        node_names: dict[str, str] = {}
        if NODE.name in bound:
            for row in self._read_rows(conn, bound[NODE.name]):
                if _is_blank(row["node_id"]) or _is_blank(row["name"]):
                    continue
                node_names[str(row["node_id"])] = str(row["name"]).strip()

        section_rows, n_skipped = self._live_section_rows(
            self._read_rows(conn, bound[SECTION.name]), source
        )
        skipped += n_skipped
        item_numbers = self._item_numbers(section_rows)

        inspection_to_section: dict[str, str] = {}
        for row in self._read_rows(conn, bound[SECINSP.name]):
            if _is_blank(row["inspection_pk"]) or _is_blank(row["section_pk"]):
                logger.warning("Skipping malformed SECINSP row in %s: %r", source, row)
                skipped += 1
                continue
            inspection_to_section[str(row["inspection_pk"])] = str(row["section_pk"])

        live_keys = {str(r["section_pk"]) for r in section_rows}

        observations, n_skipped = self._observations(
            self._read_rows(conn, bound[SECOBS.name]),
            inspection_to_section,
            live_keys,
            source,
        )
        skipped += n_skipped

        rollups, n_skipped = self._grade_rollups(
            self._read_rows(conn, bound[SECSTAT.name]),
            inspection_to_section,
            live_keys,
            source,
        )
        skipped += n_skipped

        sections: list[Section] = []
        ordered_observations: list[Observation] = []
        for row, item_no in zip(section_rows, item_numbers):
            section_key = str(row["section_pk"])
            section_obs = observations.get(section_key, [])
            ordered_observations.extend(section_obs)
            sections.append(
                self._build_section(
                    row,
                    item_no=item_no,
                    node_names=node_names,
                    observations=section_obs,
                    rollups=rollups.get(section_key, {}),
                )
            )

        logger.info(
            "Extracted %d sections and %d observations from %s (%d rows skipped)",
            len(sections),
            len(ordered_observations),
            source,
            skipped,
        )
        return ExtractionResult(
            source=source,
            sections=tuple(sections),
            observations=tuple(ordered_observations),
            skipped_rows=skipped,
        )

    @staticmethod
    def _live_section_rows(
        rows: list[dict[str, Any]],
        source: str,
    ) -> tuple[list[dict[str, Any]], int]:
        """Drop deleted and malformed rows, then order the rest."""
        live: list[dict[str, Any]] = []
        skipped = 0
        seen: set[str] = set()
        for row in rows:
            if not _is_blank(row.get("deleted")):
                continue
            if _is_blank(row["section_pk"]) or str(row["section_pk"]) in seen:
                logger.warning("Skipping malformed SECTION row in %s: %r", source, row)
                skipped += 1
                continue
            seen.add(str(row["section_pk"]))
            live.append(row)

        def sort_key(row: dict[str, Any]) -> tuple[bool, int, str, str]:
            order = _as_int(row.get("sort_order"))
            return (
                order is None,
                order if order is not None else 0,
                str(row.get("key") or ""),
                str(row["section_pk"]),
            )

        live.sort(key=sort_key)
        return live, skipped

    @staticmethod
    def _item_numbers(rows: list[dict[str, Any]]) -> list[int]:
        """Sort order as item number when complete and unique, else 1..n."""
        orders = [_as_int(r.get("sort_order")) for r in rows]
        valid = [o for o in orders if o is not None and o >= 1]
        if rows and len(valid) == len(rows) and len(set(valid)) == len(valid):
            return valid
        return list(range(1, len(rows) + 1))

    @staticmethod
    def _observations(
        rows: list[dict[str, Any]],
        inspection_to_section: dict[str, str],
        live_keys: set[str],
        source: str,
    ) -> tuple[dict[str, list[Observation]], int]:
        by_section: dict[str, list[Observation]] = {}
        skipped = 0
        for row in rows:
            if _is_blank(row["code"]):
                logger.warning("Skipping SECOBS row without a code in %s: %r", source, row)
                skipped += 1
                continue
            code = str(row["code"]).strip().upper()
            if code in MARKER_CODES:
                continue

            section_key = inspection_to_section.get(str(row["inspection_pk"]))
            if section_key is None:
                logger.warning("Skipping SECOBS row with unknown inspection in %s: %r", source, row)
                skipped += 1
                continue
            if section_key not in live_keys:
                continue

            distance = row.get("distance")
            try:
                position = 0.0 if _is_blank(distance) else float(distance)
            except (TypeError, ValueError):
                position = -1.0
            if position < 0:
                logger.warning("Skipping SECOBS row with bad distance in %s: %r", source, row)
                skipped += 1
                continue

            detail = None if _is_blank(row.get("detail")) else str(row["detail"]).strip()
            by_section.setdefault(section_key, []).append(
                Observation(section_key=section_key, code=code, position_m=position, detail=detail)
            )

        for observations in by_section.values():
            observations.sort(key=lambda o: o.position_m)
        return by_section, skipped

    @staticmethod
    def _grade_rollups(
        rows: list[dict[str, Any]],
        inspection_to_section: dict[str, str],
        live_keys: set[str],
        source: str,
    ) -> tuple[dict[str, dict[DefectCategory, int]], int]:
        """Highest grade per (section, category)."""
        highest: dict[str, dict[DefectCategory, int]] = {}
        skipped = 0
        for row in rows:
            category = GRADE_CATEGORY_TAGS.get(str(row["category"] or "").strip().upper())
            grade = _as_int(row["grade"])
            section_key = inspection_to_section.get(str(row["inspection_pk"]))
            if category is None or grade is None or not 0 <= grade <= 5 or section_key is None:
                logger.warning("Skipping malformed SECSTAT row in %s: %r", source, row)
                skipped += 1
                continue
            if section_key not in live_keys:
                continue
            per_section = highest.setdefault(section_key, {})
            per_section[category] = max(grade, per_section.get(category, 0))
        return highest, skipped

    @staticmethod
    def _build_section(
        row: dict[str, Any],
        *,
        item_no: int,
        node_names: dict[str, str],
        observations: list[Observation],
        rollups: dict[DefectCategory, int],
    ) -> Section:
        key = None if _is_blank(row.get("key")) else str(row["key"]).strip()
        derived = _nodes_from_key(key)

        def node_name(ref: Any, derived_name: str | None) -> str:
            if not _is_blank(ref) and str(ref) in node_names:
                return node_names[str(ref)]
            if derived_name:
                return derived_name
            return _as_text(ref)

        upstream = node_name(row["from_node"], derived[0] if derived else None)
        downstream = node_name(row["to_node"], derived[1] if derived else None)
        date, time = _split_timestamp(row.get("timestamp"))
        length = _as_text(row.get("total_length"))

        return Section(
            section_key=str(row["section_pk"]),
            item_no=item_no,
            upstream_node=upstream,
            downstream_node=downstream,
            pipe_size=_as_text(row.get("pipe_size")),
            pipe_material=_as_text(row.get("pipe_material")),
            total_length=length,
            length_surveyed=length,
            inspection_date=date,
            inspection_time=time,
            defects=encode_defect_summary(observations),
            grade_rollups=tuple(
                GradeRollup(category=category, highest_grade=grade)
                for category, grade in sorted(rollups.items())
            ),
        )
