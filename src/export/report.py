"""Section 104 adoption compliance report (plain text)."""

from collections.abc import Sequence
from datetime import datetime

from src.engine.sector_profiles import ADOPTION
from src.models.common import AdoptionStatus, utc_now
from src.models.sector import ClassifiedSection, SectorProfile

UNASSESSED = "UNASSESSED"


def _status(section: ClassifiedSection) -> str:
    if section.adoption is None:
        return UNASSESSED
    return section.adoption.compliance_level.value


def build_section_104_report(
    sections: Sequence[ClassifiedSection],
    profile: SectorProfile = ADOPTION,
    generated_at: datetime | None = None,
) -> str:
    """Summary counts, adoption rate and per-item detail.

    The adoption rate is the share of fully adoptable sections, 0% for an
    empty batch.
    """
    generated_at = generated_at or utc_now()
    statuses = [_status(s) for s in sections]
    total = len(sections)
    full = statuses.count(AdoptionStatus.FULL.value)
    conditional = statuses.count(AdoptionStatus.CONDITIONAL.value)
    rejected = statuses.count(AdoptionStatus.REJECTED.value)
    rate = round(full / total * 100) if total else 0

    lines = [
        "SECTION 104 ADOPTION COMPLIANCE REPORT",
        f"Generated: {generated_at.isoformat()}",
        f"Standards Applied: {', '.join(profile.standard_names)}",
        "",
        "SUMMARY:",
        f"- Total sections assessed: {total}",
        f"- Fully adoptable: {full}",
        f"- Conditional adoption: {conditional}",
        f"- Rejected for adoption: {rejected}",
        "",
        f"ADOPTION RATE: {rate}%",
        "",
        "DETAILED ASSESSMENT:",
    ]
    for section, status in zip(sections, statuses):
        lines.extend(
            [
                "",
                f"Item {section.item_no}: {section.upstream_node} → {section.downstream_node}",
                f"Structural Grade: {section.structural_grade} | Service Grade: {section.service_grade}",
                f"Status: {status}",
                f"Defects: {section.defect_description}",
            ]
        )
        if section.adoption is not None:
            lines.extend(f"  Reason: {r}" for r in section.adoption.reasons)
            lines.extend(f"  Action: {a}" for a in section.adoption.required_actions)

    if profile.compliance_note:
        lines.extend(["", profile.compliance_note])
    return "\n".join(lines)
