"""Shared pytest fixtures for the InspectOS test suite.

Provides:
- make_export: factory building a survey-capture SQLite export in tmp_path
- sample_export: a small export covering markers, duplicates and deletions
- write_rules: factory writing a rule-set JSON file in tmp_path
- rule_engine: RuleEngine over the bundled rule set
"""

import json
import sqlite3
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import Column, Float, Integer, MetaData, Table, Text, create_engine
from sqlalchemy.sql import column, table

from src.config.settings import DEFAULT_RULES_PATH
from src.engine.rules import RuleEngine, RuleSetCache, load_rule_set

_NUMERIC = {"OBJ_SortOrder": Integer, "OBS_Distance": Float, "STA_HighestGrade": Integer}

EXPORT_COLUMNS: dict[str, list[str]] = {
    "NODE": ["OBJ_PK", "OBJ_Key"],
    "SECTION": [
        "OBJ_PK",
        "OBJ_Key",
        "OBJ_SortOrder",
        "OBJ_Size1",
        "OBJ_Material",
        "OBJ_Length",
        "OBJ_FromNode_REF",
        "OBJ_ToNode_REF",
        "OBJ_TimeStamp",
        "OBJ_Deleted",
    ],
    "SECINSP": ["INS_PK", "INS_Section_FK"],
    "SECOBS": ["OBS_Inspection_FK", "OBS_OpCode", "OBS_Distance", "OBS_Observation"],
    "SECSTAT": ["STA_Inspection_FK", "STA_Type", "STA_HighestGrade"],
}


def section(pk: str, from_ref: str, to_ref: str, **extra: Any) -> dict[str, Any]:
    """SECTION row with the required columns set."""
    return {"OBJ_PK": pk, "OBJ_FromNode_REF": from_ref, "OBJ_ToNode_REF": to_ref, **extra}


def obs(inspection: str, code: str | None, distance: Any = None, text: str | None = None) -> dict[str, Any]:
    return {
        "OBS_Inspection_FK": inspection,
        "OBS_OpCode": code,
        "OBS_Distance": distance,
        "OBS_Observation": text,
    }


def stat(inspection: str, kind: str, grade: Any) -> dict[str, Any]:
    return {"STA_Inspection_FK": inspection, "STA_Type": kind, "STA_HighestGrade": grade}


@pytest.fixture
def make_export(tmp_path: Path):
    """Factory: build an export file from per-table row dicts.

    ``inspections`` defaults to one inspection ``INS-<pk>`` per section.
    ``omit_tables`` drops whole tables; ``omit_columns`` maps a table name
    to columns left out of its DDL. ``directory`` places the file somewhere
    other than tmp_path.
    """
    counter = iter(range(1, 1000))

    def _make(
        *,
        directory: Path | None = None,
        nodes: list[dict[str, Any]] | None = None,
        sections: list[dict[str, Any]] | None = None,
        inspections: list[dict[str, Any]] | None = None,
        observations: list[dict[str, Any]] | None = None,
        stats: list[dict[str, Any]] | None = None,
        omit_tables: tuple[str, ...] = (),
        omit_columns: dict[str, tuple[str, ...]] | None = None,
    ) -> Path:
        sections = sections or []
        if inspections is None:
            inspections = [{"INS_PK": f"INS-{s['OBJ_PK']}", "INS_Section_FK": s["OBJ_PK"]} for s in sections]
        rows = {
            "NODE": nodes or [],
            "SECTION": sections,
            "SECINSP": inspections,
            "SECOBS": observations or [],
            "SECSTAT": stats or [],
        }
        omit_columns = omit_columns or {}

        target_dir = directory or tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / f"export_{next(counter)}.db3"
        engine = create_engine("sqlite://", creator=lambda: sqlite3.connect(path))
        metadata = MetaData()
        tables: dict[str, Table] = {}
        for name, columns in EXPORT_COLUMNS.items():
            if name in omit_tables:
                continue
            kept = [c for c in columns if c not in omit_columns.get(name, ())]
            tables[name] = Table(name, metadata, *(Column(c, _NUMERIC.get(c, Text)) for c in kept))
        metadata.create_all(engine)

        # Untyped insert so malformed cells (text in a REAL column) reach
        # the file as-is, the way a capture tool can leave them.
        with engine.begin() as conn:
            for name, ddl in tables.items():
                if rows[name]:
                    names = [c.name for c in ddl.columns]
                    target = table(name, *(column(n) for n in names))
                    values = [{n: row.get(n) for n in names} for row in rows[name]]
                    conn.execute(target.insert(), values)
        engine.dispose()
        return path

    return _make


@pytest.fixture
def sample_export(make_export) -> Path:
    """Three sections (one deleted) with markers, a duplicate grade and roots."""
    return make_export(
        nodes=[
            {"OBJ_PK": "n-1", "OBJ_Key": "SW01"},
            {"OBJ_PK": "n-2", "OBJ_Key": "SW02"},
            {"OBJ_PK": "n-3", "OBJ_Key": "SW03"},
        ],
        sections=[
            section(
                "s-b",
                "n-2",
                "n-3",
                OBJ_Key="SW02-SW03",
                OBJ_SortOrder=2,
                OBJ_Size1=225,
                OBJ_Material="Clay",
                OBJ_Length="18.2",
                OBJ_TimeStamp="2024-03-05 10:15:00",
            ),
            section(
                "s-a",
                "n-1",
                "n-2",
                OBJ_Key="SW01-SW02",
                OBJ_SortOrder=1,
                OBJ_Size1=150,
                OBJ_Material="PVC",
                OBJ_Length="25.0",
                OBJ_TimeStamp="2024-03-05 09:30:00",
            ),
            section("s-del", "n-1", "n-3", OBJ_SortOrder=3, OBJ_Deleted="1"),
        ],
        observations=[
            obs("INS-s-a", "MH", 0, "Start manhole"),
            obs("INS-s-a", "DER", 20.47, "Deposits attached"),
            obs("INS-s-a", "WL", 0, "Water level 5%"),
            obs("INS-s-a", "DER", 1.8, "Deposits attached"),
            obs("INS-s-a", "MHF", 25.0, "Finish manhole"),
            obs("INS-s-b", "RI", 4.2, "Root intrusion at joint"),
            obs("INS-s-del", "FC", 2.0, "Fracture"),
        ],
        stats=[
            stat("INS-s-a", "STR", 1),
            stat("INS-s-a", "OPE", 2),
            stat("INS-s-a", "OPE", 3),
            stat("INS-s-b", "OPE", 3),
            stat("INS-s-del", "STR", 5),
        ],
    )


@pytest.fixture
def write_rules(tmp_path: Path):
    """Factory: write a rule document to tmp_path and return its path."""

    def _write(document: dict[str, Any] | str, name: str = "rules.json") -> Path:
        path = tmp_path / name
        text = document if isinstance(document, str) else json.dumps(document)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def rule_engine() -> RuleEngine:
    """RuleEngine over the bundled rule set, held static."""
    return RuleEngine(RuleSetCache(rule_set=load_rule_set(DEFAULT_RULES_PATH)))
