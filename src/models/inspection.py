"""Canonical inspection records reconstructed from a survey export.

Sections, observations and grade rollups are created once per import and
replaced wholesale on re-import, so every model here is frozen.
"""

from pydantic import Field

from src.models.common import DefectCategory, Grade, InspectOSBase, UTCTimestamp, utc_now

# Placeholder for optional export fields that are absent or empty.
UNKNOWN = "UNKNOWN"


class GradeRollup(InspectOSBase, frozen=True):
    """Highest grade recorded for one category on one section."""

    category: DefectCategory
    highest_grade: Grade


class Observation(InspectOSBase, frozen=True):
    """One coded defect or event at a position along a section."""

    section_key: str = Field(..., min_length=1, description="Owning section primary key.")
    code: str
    position_m: float = Field(default=0.0, ge=0.0)
    detail: str | None = None


class Section(InspectOSBase, frozen=True):
    """One inspected pipe run between two nodes.

    ``defects`` is the serialized observation summary
    (``CODE at p1m, p2m; CODE2 at p3m``) kept for export compatibility.
    """

    section_key: str = Field(..., min_length=1)
    item_no: int = Field(..., ge=1)
    upstream_node: str = UNKNOWN
    downstream_node: str = UNKNOWN
    pipe_size: str = UNKNOWN
    pipe_material: str = UNKNOWN
    total_length: str = UNKNOWN
    length_surveyed: str = UNKNOWN
    inspection_date: str = UNKNOWN
    inspection_time: str = UNKNOWN
    defects: str = ""
    grade_rollups: tuple[GradeRollup, ...] = ()

    def grade_for(self, category: DefectCategory) -> int | None:
        """Return the rolled-up grade for a category, or None if not graded."""
        for rollup in self.grade_rollups:
            if rollup.category == category:
                return rollup.highest_grade
        return None

    @property
    def structural_grade(self) -> int:
        return self.grade_for(DefectCategory.STRUCTURAL) or 0

    @property
    def service_grade(self) -> int:
        return self.grade_for(DefectCategory.SERVICE) or 0


class ExtractionResult(InspectOSBase, frozen=True):
    """Complete canonical set produced by one import."""

    source: str
    sections: tuple[Section, ...] = ()
    observations: tuple[Observation, ...] = ()
    skipped_rows: int = 0
    extracted_at: UTCTimestamp = Field(default_factory=utc_now)

    def observations_for(self, section_key: str) -> list[Observation]:
        """Observations owned by one section, in position order."""
        return [o for o in self.observations if o.section_key == section_key]
