"""Validation engine configuration.

Defaults follow UK drainage contracting practice: a two-hour travel
baseline included in standard rates, per-work-type mileage allowances,
and the keyword conventions used to locate a group's day rate.
"""

from __future__ import annotations

from pydantic import Field

from src.models.common import DefectCategory, InspectOSBase
from src.models.validation import TravelAllowance


class ValidationConfig(InspectOSBase):
    """Thresholds and lookup conventions for export-readiness checks."""

    travel_baseline_minutes: float = Field(default=120.0, gt=0.0)

    # Pricing option labels (lowercase substrings) that hold a day rate,
    # tried in order.
    day_rate_labels: tuple[str, ...] = ("day rate", "rate")

    # Category-id substrings locating the configuration for a defect group
    # when sections do not name their configuration.
    category_keywords: dict[DefectCategory, tuple[str, ...]] = Field(
        default_factory=lambda: {
            DefectCategory.SERVICE: ("cctv",),
            DefectCategory.STRUCTURAL: ("patch",),
        },
    )

    work_type_allowances: dict[str, TravelAllowance] = Field(
        default_factory=lambda: {
            "patching": TravelAllowance(max_travel_distance=30, per_mile_over=2.50),
            "cctv": TravelAllowance(max_travel_distance=50, per_mile_over=1.80),
            "jetting": TravelAllowance(max_travel_distance=40, per_mile_over=2.20),
            "tankering": TravelAllowance(max_travel_distance=25, per_mile_over=3.00),
            "directional_water_cutting": TravelAllowance(
                max_travel_distance=35, per_mile_over=2.80
            ),
        },
    )

    summary_ready: str = "Report ready for export"
    summary_errors: str = "Issues must be resolved before export"
    summary_warnings: str = "Warnings present - review recommended"
