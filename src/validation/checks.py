"""Validation engine: export-readiness checks over classified sections.

Each ``check_*`` method runs one independent phase and returns zero or
more ``ValidationIssue`` objects. ``validate`` runs every applicable phase
and merges the issues, errors ranked ahead of warnings.

Business-rule violations never raise; they are reported as issues so one
call surfaces the complete picture.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from src.models.common import DefectCategory, IssueSeverity, IssueType
from src.models.validation import (
    PricingConfiguration,
    ReportSection,
    TravelInfo,
    ValidationIssue,
    ValidationResult,
    VehicleTravelRate,
    WorkCategory,
)
from src.validation.config import ValidationConfig

logger = logging.getLogger(__name__)

_GROUPS = (DefectCategory.SERVICE, DefectCategory.STRUCTURAL)


def _group(sections: Sequence[ReportSection], category: DefectCategory) -> list[ReportSection]:
    return [s for s in sections if s.defect_type == category]


class ValidationEngine:
    """Runs the four readiness phases and derives the overall verdict."""

    def __init__(self, config: ValidationConfig | None = None) -> None:
        self._config = config or ValidationConfig()

    @property
    def config(self) -> ValidationConfig:
        return self._config

    # ---------------------------------------------------------------
    # Phase checks
    # ---------------------------------------------------------------

    def check_configurations(self, sections: Sequence[ReportSection]) -> list[ValidationIssue]:
        """Every section needs a pricing configuration.

        One ERROR listing all unconfigured items.
        """
        missing = [s for s in sections if not s.has_configuration]
        if not missing:
            return []
        return [
            ValidationIssue(
                type=IssueType.CONFIGURATION,
                severity=IssueSeverity.ERROR,
                message=f"{len(missing)} items missing pricing configurations",
                item_ids=tuple(s.item_no for s in missing),
                suggested_action="Set up pricing configurations for the listed items",
            )
        ]

    def check_minimum_quantities(
        self,
        sections: Sequence[ReportSection],
        configurations: Sequence[PricingConfiguration],
    ) -> list[ValidationIssue]:
        """Configured sections below their minimum quantity, per defect group.

        One WARNING per non-empty group with ``calculated_value`` set to
        the group's day rate divided by its item count. The value is left
        unset when no day rate can be found for the group.
        """
        below = [s for s in sections if s.has_configuration and not s.meets_minimum]
        issues: list[ValidationIssue] = []

        for category in _GROUPS:
            group = _group(below, category)
            if not group:
                continue
            day_rate = self.day_rate_for(group, category, configurations)
            issues.append(
                ValidationIssue(
                    type=IssueType.QUANTITY,
                    severity=IssueSeverity.WARNING,
                    message=f"{len(group)} {category.value} items below minimum quantity",
                    item_ids=tuple(s.item_no for s in group),
                    suggested_action="Adjust day rate to meet minimum requirements",
                    calculated_value=day_rate / len(group) if day_rate is not None else None,
                )
            )

        return issues

    def check_travel(
        self,
        travel_info: TravelInfo,
        sections: Sequence[ReportSection],
    ) -> list[ValidationIssue]:
        """Projects beyond the travel baseline, per defect group.

        One WARNING per non-empty group with ``calculated_value`` set to
        the additional travel cost split evenly over the group's items.
        """
        if not self.is_outside_baseline(travel_info):
            return []

        hours = self._config.travel_baseline_minutes / 60
        issues: list[ValidationIssue] = []
        for category in _GROUPS:
            group = _group(sections, category)
            if not group:
                continue
            issues.append(
                ValidationIssue(
                    type=IssueType.TRAVEL,
                    severity=IssueSeverity.WARNING,
                    message=(
                        f"Project outside {hours:g}-hour travel radius - "
                        f"{len(group)} {category.value} items"
                    ),
                    item_ids=tuple(s.item_no for s in group),
                    suggested_action=f"Split additional travel cost across {category.value} items",
                    calculated_value=travel_info.additional_cost / len(group),
                )
            )
        return issues

    def check_vehicle_rates(
        self,
        work_categories: Sequence[WorkCategory],
        vehicle_rates: Sequence[VehicleTravelRate],
        configurations: Sequence[PricingConfiguration],
    ) -> list[ValidationIssue]:
        """Configured work categories without a vehicle travel rate.

        A configuration matches a work category when either name contains
        the other (case-insensitive). One WARNING naming every category
        without a rate.
        """
        rated = {r.work_category_id for r in vehicle_rates}
        without_rates: list[str] = []

        for config in configurations:
            name = config.display_name.strip().lower()
            if not name:
                continue
            match = next(
                (
                    wc
                    for wc in work_categories
                    if wc.name.strip() and (name in wc.name.lower() or wc.name.lower() in name)
                ),
                None,
            )
            if match is not None and match.id not in rated and match.name not in without_rates:
                without_rates.append(match.name)

        if not without_rates:
            return []
        return [
            ValidationIssue(
                type=IssueType.VEHICLE,
                severity=IssueSeverity.WARNING,
                message=f"{len(without_rates)} configured work categories missing vehicle travel rates",
                suggested_action=f"Set up vehicle travel rates for: {', '.join(without_rates)}",
            )
        ]

    # ---------------------------------------------------------------
    # Aggregate
    # ---------------------------------------------------------------

    def validate(
        self,
        sections: Sequence[ReportSection],
        configurations: Sequence[PricingConfiguration],
        travel_info: TravelInfo | None = None,
        work_categories: Sequence[WorkCategory] | None = None,
        vehicle_rates: Sequence[VehicleTravelRate] | None = None,
    ) -> ValidationResult:
        """Run all applicable phases and derive readiness.

        Travel runs only with travel context; vehicle rates only when both
        work categories and vehicle rates are supplied.
        """
        issues: list[ValidationIssue] = []
        issues.extend(self.check_configurations(sections))
        issues.extend(self.check_minimum_quantities(sections, configurations))
        if travel_info is not None:
            issues.extend(self.check_travel(travel_info, sections))
        if work_categories is not None and vehicle_rates is not None:
            issues.extend(self.check_vehicle_rates(work_categories, vehicle_rates, configurations))

        # Stable: phase order is kept within each severity.
        issues.sort(key=lambda i: 0 if i.severity == IssueSeverity.ERROR else 1)

        has_errors = any(i.severity == IssueSeverity.ERROR for i in issues)
        if has_errors:
            summary = self._config.summary_errors
        elif issues:
            summary = self._config.summary_warnings
        else:
            summary = self._config.summary_ready

        logger.debug(
            "Validated %d sections: %d issues, ready=%s", len(sections), len(issues), not has_errors
        )
        return ValidationResult(is_ready=not has_errors, issues=tuple(issues), summary=summary)

    # ---------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------

    def is_outside_baseline(self, travel_info: TravelInfo) -> bool:
        """Explicit flag wins; otherwise compare travel time to the baseline."""
        if travel_info.is_within_two_hours is not None:
            return not travel_info.is_within_two_hours
        return travel_info.travel_time_minutes > self._config.travel_baseline_minutes

    def configuration_for(
        self,
        sections: Sequence[ReportSection],
        category: DefectCategory,
        configurations: Sequence[PricingConfiguration],
    ) -> PricingConfiguration | None:
        """The configuration a group is priced under.

        A configuration named by the group's sections wins; otherwise the
        first whose category id carries the group's keyword.
        """
        by_id = {c.id: c for c in configurations}
        for section in sections:
            if section.configuration_id and section.configuration_id in by_id:
                return by_id[section.configuration_id]

        keywords = self._config.category_keywords.get(category, ())
        for config in configurations:
            category_id = config.category_id.lower()
            if any(k in category_id for k in keywords):
                return config
        return None

    def day_rate_for(
        self,
        sections: Sequence[ReportSection],
        category: DefectCategory,
        configurations: Sequence[PricingConfiguration],
    ) -> float | None:
        config = self.configuration_for(sections, category, configurations)
        if config is None:
            return None
        for label in self._config.day_rate_labels:
            for option in config.pricing_options:
                if label in option.label.lower():
                    return option.numeric_value()
        return None
