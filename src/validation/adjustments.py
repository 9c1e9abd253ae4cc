"""Cost adjustments seeded by validation issues.

The adjusted cost of an item is computed here, not by the caller: a
minimum-shift shortfall spread evenly over a group, explicit per-item
overrides, and the extra cost of travel beyond the baseline.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from src.models.validation import (
    CostAdjustment,
    ReportSection,
    ShortfallResult,
    TravelCostBreakdown,
)
from src.validation.config import ValidationConfig


def _current_cost(section: ReportSection) -> float:
    return section.cost or 0.0


def spread_shortfall(
    sections: Sequence[ReportSection],
    *,
    day_rate: float,
    runs_per_shift: int,
) -> ShortfallResult:
    """Spread the gap to the minimum shift cost evenly across items.

    The minimum is the full day rate once the group fills a shift,
    otherwise the pro-rata share ``day_rate / runs_per_shift * items``.

    Raises:
        ValueError: If ``runs_per_shift`` is not positive.
    """
    if runs_per_shift <= 0:
        msg = f"runs_per_shift must be positive, got {runs_per_shift}"
        raise ValueError(msg)

    count = len(sections)
    if count >= runs_per_shift:
        minimum = day_rate
    else:
        minimum = day_rate / runs_per_shift * count

    current_total = sum(_current_cost(s) for s in sections)
    shortfall = max(0.0, minimum - current_total)
    per_item = shortfall / count if count else 0.0

    adjustments = tuple(
        CostAdjustment(
            item_no=s.item_no,
            current_cost=_current_cost(s),
            adjusted_cost=_current_cost(s) + per_item,
            reason="Minimum shift shortfall spread across items",
        )
        for s in sections
    )
    return ShortfallResult(
        minimum_shift_cost=minimum,
        current_total=current_total,
        shortfall=shortfall,
        per_item_increase=per_item,
        adjustments=adjustments,
    )


def _parse_cost(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def apply_manual_overrides(
    sections: Sequence[ReportSection],
    overrides: Mapping[int, str | float | None],
) -> list[CostAdjustment]:
    """Apply explicit per-item costs keyed by item number.

    An absent or non-numeric override keeps the item's current cost.
    """
    adjustments: list[CostAdjustment] = []
    for section in sections:
        current = _current_cost(section)
        parsed = _parse_cost(overrides.get(section.item_no))
        adjustments.append(
            CostAdjustment(
                item_no=section.item_no,
                current_cost=current,
                adjusted_cost=current if parsed is None else parsed,
                reason="Manual override" if parsed is not None else "Unchanged",
            )
        )
    return adjustments


def calculate_travel_additional_cost(
    distance: float,
    work_type: str,
    travel_time_minutes: float,
    vehicle_hourly_rate: float,
    config: ValidationConfig | None = None,
) -> TravelCostBreakdown:
    """Extra travel cost: mileage over the work type's allowance plus time over baseline.

    Unknown work types carry no mileage charge.
    """
    config = config or ValidationConfig()
    allowance = config.work_type_allowances.get(work_type)
    distance_cost = 0.0
    if allowance is not None:
        distance_cost = max(0.0, distance - allowance.max_travel_distance) * allowance.per_mile_over

    excess_hours = max(0.0, (travel_time_minutes - config.travel_baseline_minutes) / 60)
    return TravelCostBreakdown(
        distance_cost=distance_cost,
        time_cost=excess_hours * vehicle_hourly_rate,
    )
