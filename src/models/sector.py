"""Sector policy profiles and classification results."""

from pydantic import Field

from src.models.common import AdoptionStatus, DefectCategory, Grade, InspectOSBase, PriorityLevel


class SectorStandard(InspectOSBase, frozen=True):
    """A published standard a sector's reports are assessed against."""

    name: str
    description: str = ""
    authority: str = ""
    version: str | None = None


class SectorProfile(InspectOSBase, frozen=True):
    """Regulatory-domain escalation and adoption policy.

    Thresholds are inclusive: a grade at or above an escalation threshold
    escalates. Adoption limits are the highest grade still adoptable.
    """

    sector: str = Field(..., min_length=1)
    display_name: str = ""
    structural_escalation_grade: Grade = 4
    service_escalation_grade: Grade = 4
    adoption_max_structural_grade: Grade = 2
    adoption_max_service_grade: Grade = 2
    root_codes: frozenset[str] = frozenset({"RI", "RF", "RM", "RT"})
    infiltration_codes: frozenset[str] = frozenset({"I", "IS", "ID", "IR", "IG", "E", "X"})
    always_urgent_codes: frozenset[str] = frozenset({"FC", "FL", "C"})
    adoption_banned_codes: frozenset[str] = frozenset()
    roots_block_adoption: bool = False
    standards: tuple[SectorStandard, ...] = ()
    compliance_note: str = ""
    export_format_name: str = "Water UK Compliance"
    compatible_with: tuple[str, ...] = ("Water UK",)

    @property
    def standard_names(self) -> list[str]:
        return [s.name for s in self.standards]


class ClassificationResult(InspectOSBase, frozen=True):
    """Escalation flags derived for one defect (or a merged section)."""

    urgent_repair_flag: bool = False
    cleaning_required: bool = False
    reinspection_needed: bool = False
    priority_level: PriorityLevel = PriorityLevel.LOW
    adoptable: bool = True
    actions: tuple[str, ...] = ()

    def merge(self, other: "ClassificationResult") -> "ClassificationResult":
        """Combine two results: flags OR'd, highest priority, actions appended."""
        return ClassificationResult(
            urgent_repair_flag=self.urgent_repair_flag or other.urgent_repair_flag,
            cleaning_required=self.cleaning_required or other.cleaning_required,
            reinspection_needed=self.reinspection_needed or other.reinspection_needed,
            priority_level=PriorityLevel.highest(self.priority_level, other.priority_level),
            adoptable=self.adoptable and other.adoptable,
            actions=self.actions + other.actions,
        )


class AdoptabilityResult(InspectOSBase, frozen=True):
    """OS20x / Section 104 adoption assessment for one section."""

    adoptable: bool
    reasons: tuple[str, ...] = ()
    required_actions: tuple[str, ...] = ()
    compliance_level: AdoptionStatus = AdoptionStatus.FULL


class ClassifiedSection(InspectOSBase, frozen=True):
    """Per-section rollup consumed by the export formatter and validation."""

    item_no: int
    section_key: str
    upstream_node: str
    downstream_node: str
    structural_grade: Grade = 0
    service_grade: Grade = 0
    defect_description: str = ""
    recommended_action: str = ""
    action_type: int | None = None
    recommendation_summary: str = ""
    classification: ClassificationResult = Field(default_factory=ClassificationResult)
    adoption: AdoptabilityResult | None = None
    plr: int | None = Field(default=None, ge=1, le=5)

    @property
    def primary_category(self) -> DefectCategory:
        """Structural when it carries a grade, else service."""
        if self.structural_grade > 0:
            return DefectCategory.STRUCTURAL
        return DefectCategory.SERVICE
