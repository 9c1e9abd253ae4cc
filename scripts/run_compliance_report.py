"""Run the compliance pipeline over one survey export.

Usage:
    python -m scripts.run_compliance_report survey.db3
    python -m scripts.run_compliance_report survey.db3 --sector adoption \\
        --format JSON --pricing pricing.json --output report.json
    python -m scripts.run_compliance_report survey.db3 --excel report.xlsx --override

The optional pricing file is JSON::

    {
      "configurations": [{"id": "c1", "categoryId": "cctv", "pricingOptions": [...]}],
      "configuredItems": {"1": "c1"},
      "belowMinimumItems": [3],
      "travelInfo": {"travelTime": 150, "additionalCost": 40},
      "workCategories": [...],
      "vehicleTravelRates": [...]
    }
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from src.config.logging import configure_logging
from src.config.settings import get_settings
from src.engine.rules import RuleEngine, RuleLoadError, RuleSetCache
from src.export.formatter import ComplianceFormatter
from src.export.orchestrator import (
    CompliancePipeline,
    PipelineRequest,
    PipelineStatus,
    PricingContext,
)
from src.ingestion.extraction import ExtractionError
from src.models.common import ExportFormat
from src.models.validation import (
    PricingConfiguration,
    TravelInfo,
    ValidationResult,
    VehicleTravelRate,
    WorkCategory,
)
from src.validation.checks import ValidationEngine
from src.validation.config import ValidationConfig


def load_pricing(path: Path) -> PricingContext:
    """Build a PricingContext from a pricing JSON file.

    Raises:
        OSError: If the file cannot be read.
        json.JSONDecodeError: If the file is not JSON.
        ValidationError: If an entry does not fit its model.
        ValueError: If an item number is not an integer or the
            document is not a JSON object.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        msg = f"Pricing file {path} must hold a JSON object"
        raise ValueError(msg)
    travel = data.get("travelInfo")
    work_categories = data.get("workCategories")
    vehicle_rates = data.get("vehicleTravelRates")
    return PricingContext(
        configurations=[PricingConfiguration.model_validate(c) for c in data.get("configurations", [])],
        configured_items={int(k): str(v) for k, v in data.get("configuredItems", {}).items()},
        below_minimum_items={int(i) for i in data.get("belowMinimumItems", [])},
        travel_info=TravelInfo.model_validate(travel) if travel is not None else None,
        work_categories=(
            [WorkCategory.model_validate(w) for w in work_categories]
            if work_categories is not None
            else None
        ),
        vehicle_rates=(
            [VehicleTravelRate.model_validate(v) for v in vehicle_rates]
            if vehicle_rates is not None
            else None
        ),
    )


def _print_validation(result: ValidationResult) -> None:
    print(f"  {result.summary}", file=sys.stderr)
    for issue in result.issues:
        line = f"  [{issue.severity.value.upper()}] {issue.type.value}: {issue.message}"
        if issue.calculated_value is not None:
            line += f" (suggested {issue.calculated_value:.2f})"
        print(line, file=sys.stderr)


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Classify a survey export and produce a compliance report",
    )
    parser.add_argument("export_path", type=Path, help="Path to the SQLite survey export")
    parser.add_argument("--sector", default=None, help="Sector profile (default from settings)")
    parser.add_argument(
        "--format",
        dest="export_format",
        choices=[f.value for f in ExportFormat],
        default=ExportFormat.CSV.value,
        help="Export serialization",
    )
    parser.add_argument("--rules", type=Path, default=None, help="Rule-set JSON file")
    parser.add_argument("--pricing", type=Path, default=None, help="Pricing context JSON file")
    parser.add_argument("--output", type=Path, default=None, help="Write the export here")
    parser.add_argument("--excel", type=Path, default=None, help="Also write an Excel workbook")
    parser.add_argument(
        "--override",
        action="store_true",
        help="Export even when validation reports errors",
    )
    args = parser.parse_args()

    settings = get_settings()
    log = configure_logging(settings)

    cache = RuleSetCache(
        args.rules or settings.RULES_PATH,
        ttl_seconds=settings.RULES_CACHE_TTL_SECONDS,
    )
    pipeline = CompliancePipeline(
        rule_engine=RuleEngine(cache),
        validator=ValidationEngine(
            ValidationConfig(travel_baseline_minutes=settings.TRAVEL_BASELINE_MINUTES)
        ),
        default_sector=settings.DEFAULT_SECTOR,
    )

    try:
        request = PipelineRequest(
            export_path=args.export_path,
            sector=args.sector,
            export_format=ExportFormat(args.export_format),
            pricing=load_pricing(args.pricing) if args.pricing else PricingContext(),
            override=args.override,
        )
    except (OSError, json.JSONDecodeError, ValidationError, ValueError) as exc:
        log.error("pricing_invalid", error=str(exc), pricing=str(args.pricing))
        sys.exit(2)

    try:
        result = pipeline.run(request)
    except (ExtractionError, RuleLoadError, KeyError) as exc:
        log.error("pipeline_failed", error=str(exc), export=str(args.export_path))
        sys.exit(2)

    _print_validation(result.validation)

    if result.status == PipelineStatus.BLOCKED:
        log.warning("export_blocked", reasons=result.blocking_reasons)
        sys.exit(1)

    assert result.export is not None
    if args.output:
        args.output.write_text(result.export, encoding="utf-8")
    else:
        sys.stdout.write(result.export)

    if args.excel:
        args.excel.write_bytes(ComplianceFormatter(result.profile).to_excel(result.sections))

    log.info(
        "export_complete",
        sections=len(result.sections),
        rules=result.rule_version,
        overridden=result.overridden,
    )


if __name__ == "__main__":
    main()
