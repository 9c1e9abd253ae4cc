"""Explicit column schemas for the survey-capture SQLite export.

Each export table is described once here: which physical column feeds
which canonical field, and whether its absence aborts the import. Extra
columns in the export are ignored.
"""

from dataclasses import dataclass

from src.models.common import DefectCategory


@dataclass(frozen=True)
class ColumnSpec:
    """One physical column mapped to a canonical field name."""

    name: str
    field: str
    required: bool = True


@dataclass(frozen=True)
class TableSchema:
    """A physical table and the columns read from it."""

    name: str
    columns: tuple[ColumnSpec, ...]
    required: bool = True

    @property
    def required_columns(self) -> list[str]:
        return [c.name for c in self.columns if c.required]

    def missing_columns(self, present: set[str]) -> list[str]:
        """Required columns absent from ``present`` (case-insensitive)."""
        lowered = {p.lower() for p in present}
        return [c for c in self.required_columns if c.lower() not in lowered]


NODE = TableSchema(
    name="NODE",
    required=False,
    columns=(
        ColumnSpec("OBJ_PK", "node_id"),
        ColumnSpec("OBJ_Key", "name"),
    ),
)

SECTION = TableSchema(
    name="SECTION",
    columns=(
        ColumnSpec("OBJ_PK", "section_pk"),
        ColumnSpec("OBJ_Key", "key", required=False),
        ColumnSpec("OBJ_SortOrder", "sort_order", required=False),
        ColumnSpec("OBJ_Size1", "pipe_size", required=False),
        ColumnSpec("OBJ_Material", "pipe_material", required=False),
        ColumnSpec("OBJ_Length", "total_length", required=False),
        ColumnSpec("OBJ_FromNode_REF", "from_node"),
        ColumnSpec("OBJ_ToNode_REF", "to_node"),
        ColumnSpec("OBJ_TimeStamp", "timestamp", required=False),
        ColumnSpec("OBJ_Deleted", "deleted", required=False),
    ),
)

SECINSP = TableSchema(
    name="SECINSP",
    columns=(
        ColumnSpec("INS_PK", "inspection_pk"),
        ColumnSpec("INS_Section_FK", "section_pk"),
    ),
)

SECOBS = TableSchema(
    name="SECOBS",
    columns=(
        ColumnSpec("OBS_Inspection_FK", "inspection_pk"),
        ColumnSpec("OBS_OpCode", "code"),
        ColumnSpec("OBS_Distance", "distance", required=False),
        ColumnSpec("OBS_Observation", "detail", required=False),
    ),
)

SECSTAT = TableSchema(
    name="SECSTAT",
    columns=(
        ColumnSpec("STA_Inspection_FK", "inspection_pk"),
        ColumnSpec("STA_Type", "category"),
        ColumnSpec("STA_HighestGrade", "grade"),
    ),
)

ALL_TABLES: tuple[TableSchema, ...] = (NODE, SECTION, SECINSP, SECOBS, SECSTAT)

# Start/finish-of-traversal markers; they are not defects.
MARKER_CODES: frozenset[str] = frozenset({"MH", "MHF", "IC", "ICF"})

# STA_Type tag -> grading category.
GRADE_CATEGORY_TAGS: dict[str, DefectCategory] = {
    "STR": DefectCategory.STRUCTURAL,
    "OPE": DefectCategory.SERVICE,
    "SER": DefectCategory.SERVICE,
}
