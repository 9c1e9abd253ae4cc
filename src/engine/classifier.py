"""Sector classifier: escalation flags, adoptability and PLR.

Applies a ``SectorProfile`` over graded defects. Every function here is
pure; the profile is the only policy input.

Escalation order, each trigger appending its actions in turn:

1. grade threshold (structural -> urgent repair, service -> cleaning)
2. root ingress
3. infiltration / exfiltration
4. always-urgent structural codes (collapse / fracture family)

Flags are OR'd and the priority takes the highest level reached, so a
higher grade can never lower the outcome.
"""

from collections.abc import Iterable, Sequence

from src.engine.sector_profiles import UTILITIES
from src.models.common import AdoptionStatus, DefectCategory, PriorityLevel
from src.models.inspection import UNKNOWN, Observation, Section
from src.models.rules import SectionRecommendation
from src.models.sector import (
    AdoptabilityResult,
    ClassificationResult,
    ClassifiedSection,
    SectorProfile,
)

URGENT_REPAIR_ACTIONS = (
    "Flag for urgent repair (Grade ≥ 4)",
    "Consider excavation or CIPP lining",
)
CLEANING_ACTIONS = (
    "Flag for cleaning and reinspection (Grade ≥ 4)",
    "High-pressure jetting required",
)
ROOT_ACTION = "Mechanical root cut + reinspection"
INFILTRATION_ACTION = "Pressure test or seal lining"
ALWAYS_URGENT_ACTIONS = (
    "Structural assessment required",
    "Consider emergency bypass if critical",
)

_INFILTRATION_WORDS = ("infiltration", "exfiltration")


def calculate_plr(structural_grade: int, service_grade: int) -> int:
    """Pipeline Likelihood Rating (1-5) from the two grades."""
    peak = max(structural_grade, service_grade)
    if peak >= 5:
        return 5
    if peak >= 4:
        return 4
    average = (structural_grade + service_grade) / 2
    if average >= 3:
        return 3
    if average >= 2:
        return 2
    return 1


def _dedupe(items: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


class SectorClassifier:
    """Classifies defects and sections under one sector profile."""

    def __init__(self, profile: SectorProfile | None = None) -> None:
        self._profile = profile or UTILITIES

    @property
    def profile(self) -> SectorProfile:
        return self._profile

    # ------------------------------------------------------------------
    # Per-defect
    # ------------------------------------------------------------------

    def classify(
        self,
        defect_code: str,
        grade: int,
        category: DefectCategory,
        description: str = "",
    ) -> ClassificationResult:
        """Escalation flags for one graded defect."""
        profile = self._profile
        code = defect_code.strip().upper()
        text = description.lower()

        urgent = cleaning = reinspect = False
        adoptable = True
        priority = PriorityLevel.LOW
        actions: list[str] = []

        if category == DefectCategory.STRUCTURAL and grade >= profile.structural_escalation_grade:
            urgent = True
            adoptable = False
            priority = PriorityLevel.URGENT
            actions.extend(URGENT_REPAIR_ACTIONS)

        if category == DefectCategory.SERVICE and grade >= profile.service_escalation_grade:
            cleaning = reinspect = True
            adoptable = False
            level = PriorityLevel.URGENT if grade >= 5 else PriorityLevel.HIGH
            priority = PriorityLevel.highest(priority, level)
            actions.extend(CLEANING_ACTIONS)

        special_level = PriorityLevel.HIGH if grade >= 3 else PriorityLevel.MEDIUM

        if code in profile.root_codes or "root" in text:
            cleaning = True
            priority = PriorityLevel.highest(priority, special_level)
            actions.append(ROOT_ACTION)

        if code in profile.infiltration_codes or any(w in text for w in _INFILTRATION_WORDS):
            priority = PriorityLevel.highest(priority, special_level)
            actions.append(INFILTRATION_ACTION)

        if code in profile.always_urgent_codes:
            urgent = True
            adoptable = False
            priority = PriorityLevel.URGENT
            actions.extend(ALWAYS_URGENT_ACTIONS)

        return ClassificationResult(
            urgent_repair_flag=urgent,
            cleaning_required=cleaning,
            reinspection_needed=reinspect,
            priority_level=priority,
            adoptable=adoptable,
            actions=tuple(actions),
        )

    def check_adoptability(
        self,
        codes: Iterable[str],
        structural_grade: int,
        service_grade: int,
        descriptions: Iterable[str] = (),
    ) -> AdoptabilityResult:
        """OS20x / Section 104 adoption assessment.

        Grades above the profile limits, banned codes and (where the
        profile forbids them) roots reject. An otherwise adoptable section
        carrying any service grade is adoptable on condition of a
        post-clean verification survey.
        """
        profile = self._profile
        code_set = [c.strip().upper() for c in codes]
        text = " ".join(descriptions).lower()
        reasons: list[str] = []
        actions: list[str] = []

        if structural_grade > profile.adoption_max_structural_grade:
            reasons.append(
                f"Structural grade {structural_grade} exceeds adoption limit "
                f"(≤{profile.adoption_max_structural_grade})"
            )
            actions.append(
                f"Repair structural defects to grade {profile.adoption_max_structural_grade} or below"
            )

        if service_grade > profile.adoption_max_service_grade:
            reasons.append(
                f"Service grade {service_grade} exceeds adoption limit "
                f"(≤{profile.adoption_max_service_grade})"
            )
            actions.append(
                f"Resolve service defects to grade {profile.adoption_max_service_grade} or below"
            )

        for code in _dedupe(c for c in code_set if c in profile.adoption_banned_codes):
            reasons.append(f"Defect {code} is not permitted for adoption")
            actions.append("Complete structural repairs before adoption consideration")

        has_roots = any(c in profile.root_codes for c in code_set) or "root" in text
        if profile.roots_block_adoption and has_roots:
            reasons.append("Root ingress detected - not acceptable for adoption")
            actions.append("Remove roots and install root barrier before adoption")

        adoptable = not reasons
        if adoptable and service_grade > 0:
            actions.append("Post-clean CCTV verification before handover")

        if not adoptable:
            level = AdoptionStatus.REJECTED
        elif actions:
            level = AdoptionStatus.CONDITIONAL
        else:
            level = AdoptionStatus.FULL

        return AdoptabilityResult(
            adoptable=adoptable,
            reasons=tuple(reasons),
            required_actions=_dedupe(actions),
            compliance_level=level,
        )

    # ------------------------------------------------------------------
    # Per-section
    # ------------------------------------------------------------------

    def classify_section(
        self,
        section: Section,
        observations: Sequence[Observation],
    ) -> ClassificationResult:
        """Merge per-observation results over both grade categories.

        Observations carry no grade of their own, so each is classified
        against the section's structural and service rollups. A graded
        section with no observations is classified as one ``UNKNOWN``
        defect.
        """
        items: list[tuple[str, str]] = [(o.code, o.detail or "") for o in observations]
        if not items and max(section.structural_grade, section.service_grade) > 0:
            items = [(UNKNOWN, "")]

        result = ClassificationResult()
        for code, detail in items:
            for category in (DefectCategory.STRUCTURAL, DefectCategory.SERVICE):
                grade = section.grade_for(category) or 0
                result = result.merge(self.classify(code, grade, category, detail))

        return result.model_copy(update={"actions": _dedupe(result.actions)})

    def assess_section(
        self,
        section: Section,
        observations: Sequence[Observation],
        recommendation: SectionRecommendation,
    ) -> ClassifiedSection:
        """Full per-section rollup: flags, adoption, PLR and export fields."""
        adoption = self.check_adoptability(
            (o.code for o in observations),
            section.structural_grade,
            section.service_grade,
            (o.detail or "" for o in observations),
        )
        primary = recommendation.primary
        return ClassifiedSection(
            item_no=section.item_no,
            section_key=section.section_key,
            upstream_node=section.upstream_node,
            downstream_node=section.downstream_node,
            structural_grade=section.structural_grade,
            service_grade=section.service_grade,
            defect_description=section.defects,
            recommended_action=primary.rationale,
            action_type=primary.operational_action,
            recommendation_summary=recommendation.summary,
            classification=self.classify_section(section, observations),
            adoption=adoption,
            plr=calculate_plr(section.structural_grade, section.service_grade),
        )
