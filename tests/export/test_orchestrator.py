"""Tests for the compliance pipeline.

Covers: validation gate before rendering, override of a blocked export,
rule-driven recommendations in the rendered rows, sector selection and
fatal input errors.
"""

import csv
import io
import json

import pytest

from src.engine.rules import RuleEngine, RuleSetCache
from src.export.orchestrator import (
    CompliancePipeline,
    PipelineRequest,
    PipelineStatus,
    PricingContext,
    to_report_sections,
)
from src.ingestion.extraction import ExtractionError, InspectionExtractor
from src.models.common import AdoptionStatus, DefectCategory, ExportFormat
from src.models.sector import ClassifiedSection
from src.models.validation import PricingConfiguration, PricingOption
from src.validation.checks import ValidationEngine

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

CCTV = PricingConfiguration(
    id="cfg-cctv",
    category_id="cctv",
    category_name="CCTV",
    pricing_options=(PricingOption(label="Day rate", value="150"),),
)


def _priced(*items: int, below_minimum: set[int] | None = None) -> PricingContext:
    return PricingContext(
        configurations=[CCTV],
        configured_items={i: CCTV.id for i in items},
        below_minimum_items=below_minimum or set(),
    )


@pytest.fixture
def pipeline(rule_engine) -> CompliancePipeline:
    return CompliancePipeline(
        rule_engine=rule_engine,
        extractor=InspectionExtractor(),
        validator=ValidationEngine(),
    )


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


class TestValidationGate:
    def test_unpriced_sections_block_export(self, pipeline, sample_export) -> None:
        result = pipeline.run(PipelineRequest(export_path=sample_export))
        assert result.status == PipelineStatus.BLOCKED
        assert result.export is None
        assert result.adoption_report is None
        assert result.blocking_reasons == ["2 items missing pricing configurations"]

    def test_override_renders_anyway(self, pipeline, sample_export) -> None:
        result = pipeline.run(PipelineRequest(export_path=sample_export, override=True))
        assert result.status == PipelineStatus.COMPLETED
        assert result.overridden is True
        assert result.export is not None
        assert result.blocking_reasons

    def test_unknown_configuration_id_blocks(self, pipeline, sample_export) -> None:
        pricing = PricingContext(configurations=[CCTV], configured_items={1: "deleted-cfg", 2: CCTV.id})
        result = pipeline.run(PipelineRequest(export_path=sample_export, pricing=pricing))
        assert result.status == PipelineStatus.BLOCKED
        assert result.export is None
        assert result.blocking_reasons == ["1 items missing pricing configurations"]
        assert result.validation.errors[0].item_ids == (1,)

    def test_warnings_do_not_block(self, pipeline, sample_export) -> None:
        request = PipelineRequest(export_path=sample_export, pricing=_priced(1, 2, below_minimum={2}))
        result = pipeline.run(request)
        assert result.status == PipelineStatus.COMPLETED
        assert result.overridden is False
        assert len(result.validation.warnings) == 1


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRendering:
    def test_csv_rows_carry_recommendations(self, pipeline, sample_export) -> None:
        result = pipeline.run(PipelineRequest(export_path=sample_export, pricing=_priced(1, 2)))
        rows = list(csv.DictReader(io.StringIO(result.export)))
        assert [r["Item No"] for r in rows] == ["1", "2"]
        assert rows[0]["Upstream Node"] == "SW01"
        assert rows[0]["Action Type"] == "10"
        assert rows[0]["Defect Description"] == "WL at 0m; DER at 1.8m, 20.47m"
        assert rows[1]["Action Type"] == "15"

    def test_recommendation_summary_kept(self, pipeline, sample_export) -> None:
        result = pipeline.run(PipelineRequest(export_path=sample_export, pricing=_priced(1, 2)))
        assert result.sections[0].recommendation_summary == "clean, 2x patch"

    def test_json_export_and_rule_version(self, pipeline, sample_export) -> None:
        request = PipelineRequest(
            export_path=sample_export,
            sector="Adoption",
            export_format=ExportFormat.JSON,
            pricing=_priced(1, 2),
        )
        result = pipeline.run(request)
        doc = json.loads(result.export)
        assert doc["metadata"]["sector"] == "adoption"
        assert result.rule_version == "2025.1"

    def test_adoption_assessed_under_sector(self, pipeline, sample_export) -> None:
        request = PipelineRequest(export_path=sample_export, sector="adoption", pricing=_priced(1, 2))
        result = pipeline.run(request)
        levels = [s.adoption.compliance_level for s in result.sections]
        assert levels == [AdoptionStatus.REJECTED, AdoptionStatus.REJECTED]
        assert "Root ingress detected - not acceptable for adoption" in result.adoption_report

    def test_adoption_report_always_built(self, pipeline, sample_export) -> None:
        result = pipeline.run(PipelineRequest(export_path=sample_export, pricing=_priced(1, 2)))
        assert result.adoption_report.startswith("SECTION 104 ADOPTION COMPLIANCE REPORT")


# ---------------------------------------------------------------------------
# Rule-set version per batch
# ---------------------------------------------------------------------------


def _catch_all_rules(version: str, rec_type: str) -> dict:
    return {
        "version": version,
        "defaults": {"unknown": {"rec_type": "reinspect", "severity": 1, "wr_ref": "default"}},
        "rules": [
            {
                "when": {"code_regex": ".*"},
                "outcome": {"rec_type": rec_type, "severity": 3, "wr_ref": version},
            }
        ],
    }


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _EditedMidBatch(RuleEngine):
    """Rewrites the rule file and expires the cache after the first section."""

    def __init__(self, cache: RuleSetCache, clock: _Clock, next_rules: dict) -> None:
        super().__init__(cache)
        self._clock = clock
        self._next_rules = next_rules
        self._edited = False

    def evaluate_section(self, *args, **kwargs):
        result = super().evaluate_section(*args, **kwargs)
        if not self._edited:
            self._cache.path.write_text(json.dumps(self._next_rules), encoding="utf-8")
            self._clock.now += 10.0
            self._edited = True
        return result


class TestRuleVersionPinning:
    def test_one_version_per_run(self, write_rules, sample_export) -> None:
        clock = _Clock()
        path = write_rules(_catch_all_rules("v1", "patch"))
        engine = _EditedMidBatch(
            RuleSetCache(path, ttl_seconds=5.0, clock=clock),
            clock,
            _catch_all_rules("v2", "liner"),
        )
        pipeline = CompliancePipeline(rule_engine=engine)

        result = pipeline.run(PipelineRequest(export_path=sample_export, pricing=_priced(1, 2)))
        assert result.rule_version == "v1"
        assert [s.recommendation_summary for s in result.sections] == ["3x patch", "patch"]

        second = pipeline.run(PipelineRequest(export_path=sample_export, pricing=_priced(1, 2)))
        assert second.rule_version == "v2"
        assert [s.recommendation_summary for s in second.sections] == ["3x liner", "liner"]


# ---------------------------------------------------------------------------
# Report sections
# ---------------------------------------------------------------------------


class TestReportSections:
    def _classified(self, item_no: int, structural: int, service: int) -> ClassifiedSection:
        return ClassifiedSection(
            item_no=item_no,
            section_key=f"s{item_no}",
            upstream_node="A",
            downstream_node="B",
            structural_grade=structural,
            service_grade=service,
        )

    def test_ungraded_sections_need_no_pricing(self) -> None:
        sections = [self._classified(1, 0, 0), self._classified(2, 0, 3)]
        report = to_report_sections(sections, PricingContext())
        assert [r.item_no for r in report] == [2]

    def test_defect_group(self) -> None:
        sections = [self._classified(1, 2, 3), self._classified(2, 0, 3)]
        report = to_report_sections(sections, _priced(1))
        assert [r.defect_type for r in report] == [DefectCategory.STRUCTURAL, DefectCategory.SERVICE]
        assert [r.has_configuration for r in report] == [True, False]
        assert report[0].configuration_id == "cfg-cctv"

    def test_reference_to_missing_configuration_is_unconfigured(self) -> None:
        pricing = PricingContext(configurations=[], configured_items={1: "does-not-exist"})
        (report,) = to_report_sections([self._classified(1, 4, 0)], pricing)
        assert report.has_configuration is False
        assert report.configuration_id == "does-not-exist"


# ---------------------------------------------------------------------------
# Fatal errors
# ---------------------------------------------------------------------------


class TestFatalErrors:
    def test_unknown_sector(self, pipeline, sample_export) -> None:
        with pytest.raises(KeyError):
            pipeline.run(PipelineRequest(export_path=sample_export, sector="aviation"))

    def test_missing_export(self, pipeline, tmp_path) -> None:
        with pytest.raises(ExtractionError):
            pipeline.run(PipelineRequest(export_path=tmp_path / "missing.db3"))
