"""Compliance pipeline: one export file to a gated compliance report.

1. Extract canonical sections and observations
2. Evaluate each section against the rule set
3. Classify under the sector profile (flags, adoption, PLR)
4. Validate pricing readiness
5. Render the export, blocked when validation reports errors unless the
   caller overrides

Extraction and rule-load failures are fatal and propagate; nothing is
rendered from a partial import.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from src.engine.classifier import SectorClassifier
from src.engine.rules import RuleEngine
from src.engine.sector_profiles import get_sector_profile
from src.export.formatter import ComplianceFormatter
from src.export.report import build_section_104_report
from src.ingestion.extraction import InspectionExtractor
from src.models.common import ExportFormat
from src.models.inspection import ExtractionResult
from src.models.rules import RuleSet
from src.models.sector import ClassifiedSection, SectorProfile
from src.models.validation import (
    PricingConfiguration,
    ReportSection,
    TravelInfo,
    ValidationResult,
    VehicleTravelRate,
    WorkCategory,
)
from src.validation.checks import ValidationEngine

logger = logging.getLogger(__name__)


class PipelineStatus(StrEnum):
    """Pipeline outcome."""

    COMPLETED = "COMPLETED"
    BLOCKED = "BLOCKED"


@dataclass
class PricingContext:
    """Pricing-layer inputs to validation, resolved by the caller.

    ``configured_items`` maps item number to the configuration it is
    priced under; ``below_minimum_items`` lists items that do not meet
    their configuration's minimum quantity.
    """

    configurations: list[PricingConfiguration] = field(default_factory=list)
    configured_items: Mapping[int, str] = field(default_factory=dict)
    below_minimum_items: set[int] = field(default_factory=set)
    travel_info: TravelInfo | None = None
    work_categories: list[WorkCategory] | None = None
    vehicle_rates: list[VehicleTravelRate] | None = None


@dataclass
class PipelineRequest:
    export_path: Path
    sector: str | None = None
    export_format: ExportFormat = ExportFormat.CSV
    pricing: PricingContext = field(default_factory=PricingContext)
    override: bool = False


@dataclass
class PipelineResult:
    """Everything one run produced, rendered or blocked."""

    status: PipelineStatus
    profile: SectorProfile
    rule_version: str
    extraction: ExtractionResult
    sections: list[ClassifiedSection]
    validation: ValidationResult
    export: str | None = None
    adoption_report: str | None = None
    overridden: bool = False
    blocking_reasons: list[str] = field(default_factory=list)


def to_report_sections(
    sections: Sequence[ClassifiedSection],
    pricing: PricingContext,
) -> list[ReportSection]:
    """Sections needing priced work, as the validation engine sees them.

    Only graded sections need pricing. An item counts as configured only
    when its configuration id names one of ``pricing.configurations``.
    """
    known_ids = {c.id for c in pricing.configurations}
    report: list[ReportSection] = []
    for s in sections:
        if max(s.structural_grade, s.service_grade) == 0:
            continue
        configuration_id = pricing.configured_items.get(s.item_no)
        report.append(
            ReportSection(
                item_no=s.item_no,
                defect_type=s.primary_category,
                has_configuration=configuration_id in known_ids,
                meets_minimum=s.item_no not in pricing.below_minimum_items,
                configuration_id=configuration_id,
            )
        )
    return report


class CompliancePipeline:
    """Coordinate extraction, classification, validation and export."""

    def __init__(
        self,
        *,
        rule_engine: RuleEngine | None = None,
        extractor: InspectionExtractor | None = None,
        validator: ValidationEngine | None = None,
        default_sector: str = "utilities",
    ) -> None:
        self._rules = rule_engine or RuleEngine()
        self._extractor = extractor or InspectionExtractor()
        self._validator = validator or ValidationEngine()
        self._default_sector = default_sector

    def classify(
        self,
        extraction: ExtractionResult,
        profile: SectorProfile,
        rule_set: RuleSet | None = None,
    ) -> list[ClassifiedSection]:
        """Evaluate and classify every section against one rule-set snapshot."""
        if rule_set is None:
            rule_set = self._rules.rule_set
        classifier = SectorClassifier(profile)
        classified: list[ClassifiedSection] = []
        for section in extraction.sections:
            grade = max(section.structural_grade, section.service_grade)
            recommendation = self._rules.evaluate_section(
                section.section_key, section.defects, grade, rule_set
            )
            observations = extraction.observations_for(section.section_key)
            classified.append(classifier.assess_section(section, observations, recommendation))
        return classified

    def run(self, request: PipelineRequest) -> PipelineResult:
        """Execute the pipeline for one export file.

        Raises:
            ExtractionError: If the export cannot be read.
            RuleLoadError: If the rule set cannot be loaded.
            KeyError: If the sector is unknown.
        """
        profile = get_sector_profile(request.sector or self._default_sector)
        extraction = self._extractor.extract(request.export_path)
        rule_set = self._rules.rule_set
        rule_version = rule_set.version
        sections = self.classify(extraction, profile, rule_set)

        pricing = request.pricing
        validation = self._validator.validate(
            to_report_sections(sections, pricing),
            pricing.configurations,
            travel_info=pricing.travel_info,
            work_categories=pricing.work_categories,
            vehicle_rates=pricing.vehicle_rates,
        )

        result = PipelineResult(
            status=PipelineStatus.COMPLETED,
            profile=profile,
            rule_version=rule_version,
            extraction=extraction,
            sections=sections,
            validation=validation,
        )

        if not validation.is_ready:
            result.blocking_reasons = [i.message for i in validation.errors]
            if not request.override:
                logger.warning(
                    "Export of %s blocked: %s",
                    request.export_path,
                    "; ".join(result.blocking_reasons),
                )
                result.status = PipelineStatus.BLOCKED
                return result
            logger.warning("Export of %s forced past %d errors", request.export_path, len(validation.errors))
            result.overridden = True

        formatter = ComplianceFormatter(profile)
        result.export = formatter.format(sections, request.export_format)
        result.adoption_report = build_section_104_report(sections, profile)
        logger.info(
            "Exported %d sections from %s as %s (rules %s)",
            len(sections),
            request.export_path,
            request.export_format,
            rule_version,
        )
        return result
