"""Export-readiness validation models.

Issues are derived views: they are recomputed from sections, pricing
configuration and travel context on every call and never persisted.
"""

from __future__ import annotations

from pydantic import AliasChoices, Field

from src.models.common import (
    DefectCategory,
    InspectOSBase,
    IssueSeverity,
    IssueType,
    UUIDv7,
    new_uuid7,
)

# --- Validation inputs ---


class ReportSection(InspectOSBase, frozen=True):
    """One classified section as seen by the pricing layer."""

    item_no: int = Field(..., ge=1, validation_alias=AliasChoices("item_no", "itemNo"))
    defect_type: DefectCategory | None = Field(
        default=None, validation_alias=AliasChoices("defect_type", "defectType")
    )
    has_configuration: bool = Field(
        default=False, validation_alias=AliasChoices("has_configuration", "hasConfiguration")
    )
    meets_minimum: bool = Field(
        default=True, validation_alias=AliasChoices("meets_minimum", "meetsMinimum")
    )
    configuration_id: str | None = Field(
        default=None, validation_alias=AliasChoices("configuration_id", "configurationId")
    )
    cost: float | None = None


class PricingOption(InspectOSBase, frozen=True):
    label: str
    value: str | float | None = None

    def numeric_value(self) -> float:
        """Parse the option value, 0.0 when absent or not a number."""
        if self.value is None:
            return 0.0
        try:
            return float(self.value)
        except (TypeError, ValueError):
            return 0.0


class PricingConfiguration(InspectOSBase, frozen=True):
    """A configured pricing category (CCTV, patching, jetting, ...)."""

    id: str
    category_id: str = Field(default="", validation_alias=AliasChoices("category_id", "categoryId"))
    category_name: str = Field(
        default="", validation_alias=AliasChoices("category_name", "categoryName")
    )
    pricing_options: tuple[PricingOption, ...] = Field(
        default=(), validation_alias=AliasChoices("pricing_options", "pricingOptions")
    )

    @property
    def display_name(self) -> str:
        return self.category_name or self.category_id


class TravelInfo(InspectOSBase, frozen=True):
    """Already-resolved travel context for a project site."""

    distance: float = Field(default=0.0, ge=0.0)
    travel_time_minutes: float = Field(
        ..., ge=0.0, validation_alias=AliasChoices("travel_time_minutes", "travelTime")
    )
    is_within_two_hours: bool | None = Field(
        default=None, validation_alias=AliasChoices("is_within_two_hours", "isWithinTwoHours")
    )
    additional_cost: float = Field(
        default=0.0, ge=0.0, validation_alias=AliasChoices("additional_cost", "additionalCost")
    )


class WorkCategory(InspectOSBase, frozen=True):
    id: str
    name: str


class VehicleTravelRate(InspectOSBase, frozen=True):
    work_category_id: str = Field(
        ..., validation_alias=AliasChoices("work_category_id", "workCategoryId")
    )
    hourly_rate: float = Field(
        default=0.0, ge=0.0, validation_alias=AliasChoices("hourly_rate", "hourlyRate")
    )


class TravelAllowance(InspectOSBase, frozen=True):
    """Distance allowance for one work type before per-mile charges apply."""

    max_travel_distance: float = Field(..., ge=0.0)
    per_mile_over: float = Field(..., ge=0.0)


# --- Validation outputs ---


class ValidationIssue(InspectOSBase, frozen=True):
    """One detected export blocker or warning."""

    issue_id: UUIDv7 = Field(default_factory=new_uuid7, serialization_alias="issueId")
    type: IssueType
    severity: IssueSeverity
    message: str
    item_ids: tuple[int, ...] = Field(default=(), serialization_alias="itemIds")
    suggested_action: str | None = Field(default=None, serialization_alias="suggestedAction")
    calculated_value: float | None = Field(default=None, serialization_alias="calculatedValue")


class ValidationResult(InspectOSBase, frozen=True):
    """Readiness verdict. Dump with ``by_alias=True`` for the camelCase payload."""

    is_ready: bool = Field(..., serialization_alias="isReady")
    issues: tuple[ValidationIssue, ...] = ()
    summary: str

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.WARNING]


# --- Cost adjustments ---


class CostAdjustment(InspectOSBase, frozen=True):
    """Adjusted cost for one item and how it was derived."""

    item_no: int
    current_cost: float
    adjusted_cost: float
    reason: str = ""

    @property
    def delta(self) -> float:
        return self.adjusted_cost - self.current_cost


class ShortfallResult(InspectOSBase, frozen=True):
    """Minimum-shift shortfall spread evenly across a group of items."""

    minimum_shift_cost: float
    current_total: float
    shortfall: float
    per_item_increase: float
    adjustments: tuple[CostAdjustment, ...] = ()

    @property
    def adjusted_total(self) -> float:
        return sum(a.adjusted_cost for a in self.adjustments)


class TravelCostBreakdown(InspectOSBase, frozen=True):
    distance_cost: float
    time_cost: float

    @property
    def total_additional_cost(self) -> float:
        return self.distance_cost + self.time_cost
