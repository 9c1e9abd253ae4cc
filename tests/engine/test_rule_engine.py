"""Tests for the rule engine: loading, evaluation, aggregation, hot reload.

Covers the bundled WRc rule set's expected outcomes, totality and
determinism, section-level aggregation, and the time-boxed cache.
"""

import json

import pytest

from src.config.settings import DEFAULT_RULES_PATH
from src.engine.rules import (
    MONITOR_SUMMARY,
    RuleEngine,
    RuleLoadError,
    RuleSetCache,
    evaluate_rules,
    load_rule_set,
    parse_rule_set,
    summarize,
)
from src.models.common import RecType
from src.models.rules import ObservationRef

# ===================================================================
# Fixtures
# ===================================================================


def _rules_doc(version: str, rec_type: str = "patch") -> dict:
    return {
        "version": version,
        "notes": f"test rules {version}",
        "defaults": {
            "unknown": {
                "rec_type": "reinspect",
                "severity": 1,
                "wr_ref": "default",
                "operational_action": 15,
                "rationale": "unmapped",
            }
        },
        "rules": [
            {
                "when": {"code_regex": "^DER$", "min_grade": 2},
                "outcome": {
                    "rec_type": rec_type,
                    "severity": 3,
                    "wr_ref": "WRc",
                    "operational_action": 10,
                    "rationale": "rule",
                },
            }
        ],
    }


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _rec(engine: RuleEngine, code: str | None, grade: int | None, pos: float | None = None):
    (rec,) = engine.evaluate(ObservationRef(code=code, grade=grade, position_m=pos))
    return rec


# ===================================================================
# Bundled rule set
# ===================================================================


class TestBundledRules:
    """Expected outcomes of the shipped WRc mapping."""

    @pytest.mark.parametrize(
        ("code", "grade", "expected"),
        [
            ("WL", 2, RecType.CLEAN),
            ("WL", 1, RecType.REINSPECT),
            ("DER", 2, RecType.PATCH),
            ("DER", 1, RecType.REINSPECT),
            ("LL", 2, RecType.LINER),
            ("LL", 1, RecType.REINSPECT),
            ("JN", 2, RecType.PATCH),
            ("JN", 1, RecType.REINSPECT),
            ("CP", 2, RecType.CLEAN),
            ("CP", 1, RecType.REINSPECT),
            ("REF", 0, RecType.REINSPECT),
            ("REF", 5, RecType.REINSPECT),
            ("RG", 2, RecType.CLEAN),
            ("RG", 1, RecType.REINSPECT),
            ("OF", 3, RecType.LINER),
            ("OF", 2, RecType.REINSPECT),
            ("JS", 3, RecType.LINER),
            ("JS", 2, RecType.REINSPECT),
        ],
    )
    def test_code_grade_outcomes(self, rule_engine, code: str, grade: int, expected: RecType) -> None:
        assert _rec(rule_engine, code, grade).rec_type == expected

    def test_lowercase_code_matches(self, rule_engine) -> None:
        assert _rec(rule_engine, "wl", 2).rec_type == RecType.CLEAN

    def test_unknown_code_gets_default(self, rule_engine) -> None:
        """An unknown code resolves to the declared default."""
        rec = _rec(rule_engine, "XYZ", 2)
        default = rule_engine.rule_set.defaults.unknown
        assert rec.matched_default is True
        assert rec.rec_type == default.rec_type
        assert rec.standard_reference == default.standard_reference

    def test_empty_code_gets_default(self, rule_engine) -> None:
        assert _rec(rule_engine, "", 3).matched_default is True

    def test_null_grade_gets_default(self, rule_engine) -> None:
        assert _rec(rule_engine, "DER", None).rec_type == RecType.REINSPECT

    def test_traceability(self, rule_engine) -> None:
        rec = _rec(rule_engine, "DER", 3, 1.8)
        assert (rec.source.code, rec.source.grade, rec.source.position_m) == ("DER", 3, 1.8)

    def test_version_info(self, rule_engine) -> None:
        info = rule_engine.version_info()
        assert info["version"] == "2025.1"
        assert "first match wins" in info["notes"]

    def test_stats(self, rule_engine) -> None:
        stats = rule_engine.stats()
        assert stats["rule_count"] == 6
        assert {"WL", "DER", "LL", "JN", "CP", "REF", "RG", "OF", "JS"} == set(stats["covered_codes"])
        assert set(stats["action_types"]) == {"liner", "patch", "clean", "reinspect"}


# ===================================================================
# Properties
# ===================================================================


class TestEvaluationProperties:
    @pytest.mark.parametrize("code", ["WL", "DER", "XYZ", "", "fc", "123", "D E R"])
    @pytest.mark.parametrize("grade", [None, 0, 1, 2, 3, 4, 5])
    def test_total(self, rule_engine, code: str, grade: int | None) -> None:
        recs = rule_engine.evaluate(ObservationRef(code=code, grade=grade))
        assert len(recs) >= 1

    def test_none_code_is_total(self, rule_engine) -> None:
        assert rule_engine.evaluate(ObservationRef(code=None, grade=3))

    def test_deterministic(self, rule_engine) -> None:
        obs = ObservationRef(code="DER", grade=3, position_m=2.0)
        assert rule_engine.evaluate(obs) == rule_engine.evaluate(obs)

    def test_first_match_wins(self) -> None:
        doc = _rules_doc("order")
        doc["rules"].append(
            {
                "when": {"code_regex": "^DER$"},
                "outcome": {"rec_type": "liner", "severity": 9, "wr_ref": "later"},
            }
        )
        rule_set = parse_rule_set(doc)
        (rec,) = evaluate_rules(rule_set, ObservationRef(code="DER", grade=2))
        assert rec.rec_type == RecType.PATCH
        (low,) = evaluate_rules(rule_set, ObservationRef(code="DER", grade=1))
        assert low.rec_type == RecType.LINER


# ===================================================================
# Section aggregation
# ===================================================================


class TestEvaluateSection:
    def test_two_observations_two_recommendations(self, rule_engine) -> None:
        """WL then DER: primary is the more severe."""
        result = rule_engine.evaluate_section("S1", "WL at 0m; DER at 1.8m", 3)
        assert len(result.recommendations) == 2
        assert result.primary.rec_type == RecType.PATCH
        assert result.summary == "clean, patch"

    def test_counts_in_summary(self, rule_engine) -> None:
        result = rule_engine.evaluate_section("S1", "DER at 1.8m, 20.47m; REF at 0m", 2)
        assert result.summary == "2x patch, reinspect"

    def test_no_defects_gets_monitor(self, rule_engine) -> None:
        """No observations and grade 0 gives the monitor default."""
        result = rule_engine.evaluate_section("S1", "No defects observed", 0)
        assert result.recommendations == ()
        assert result.primary.rec_type == RecType.REINSPECT
        assert result.primary.operational_action == 15
        assert result.summary == MONITOR_SUMMARY

    def test_graded_without_observations_uses_unknown_code(self, rule_engine) -> None:
        result = rule_engine.evaluate_section("S1", "", 3)
        assert len(result.recommendations) == 1
        assert result.recommendations[0].source.code == "UNKNOWN"
        assert result.recommendations[0].matched_default is True

    def test_tie_keeps_first(self, rule_engine) -> None:
        result = rule_engine.evaluate_section("S1", "DER at 1m; JN at 2m", 2)
        assert result.primary.source.code == "DER"

    def test_summarize_empty(self) -> None:
        assert summarize([]) == MONITOR_SUMMARY


# ===================================================================
# Loading and cache
# ===================================================================


class TestLoading:
    def test_bundled_file_loads(self) -> None:
        assert load_rule_set(DEFAULT_RULES_PATH).version == "2025.1"

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(RuleLoadError, match="Cannot read"):
            load_rule_set(tmp_path / "missing.json")

    def test_invalid_json(self, write_rules) -> None:
        with pytest.raises(RuleLoadError, match="not valid JSON"):
            load_rule_set(write_rules("{not json"))

    def test_schema_violation(self, write_rules) -> None:
        with pytest.raises(RuleLoadError, match="Invalid rule set"):
            load_rule_set(write_rules({"version": "x", "rules": []}))

    def test_bad_regex(self, write_rules) -> None:
        doc = _rules_doc("bad")
        doc["rules"][0]["when"]["code_regex"] = "^(DER"
        with pytest.raises(RuleLoadError):
            load_rule_set(write_rules(doc))

    def test_cache_requires_source(self) -> None:
        with pytest.raises(ValueError):
            RuleSetCache()


class TestHotReload:
    def test_reused_within_window(self, write_rules) -> None:
        path = write_rules(_rules_doc("v1"))
        clock = FakeClock()
        engine = RuleEngine(RuleSetCache(path, ttl_seconds=5.0, clock=clock))
        assert engine.version_info()["version"] == "v1"

        path.write_text(json.dumps(_rules_doc("v2")), encoding="utf-8")
        clock.now = 4.9
        assert engine.version_info()["version"] == "v1"

    def test_reloaded_after_window(self, write_rules) -> None:
        path = write_rules(_rules_doc("v1", rec_type="patch"))
        clock = FakeClock()
        engine = RuleEngine(RuleSetCache(path, ttl_seconds=5.0, clock=clock))
        assert _rec(engine, "DER", 2).rec_type == RecType.PATCH

        path.write_text(json.dumps(_rules_doc("v2", rec_type="liner")), encoding="utf-8")
        clock.now = 5.0
        assert _rec(engine, "DER", 2).rec_type == RecType.LINER
        assert engine.version_info()["version"] == "v2"

    def test_reload_swaps_snapshot(self, write_rules) -> None:
        path = write_rules(_rules_doc("v1"))
        clock = FakeClock()
        cache = RuleSetCache(path, ttl_seconds=5.0, clock=clock)
        old = cache.get()

        path.write_text(json.dumps(_rules_doc("v2")), encoding="utf-8")
        clock.now = 10.0
        new = cache.get()
        assert old.version == "v1"
        assert new.version == "v2"
        assert old is not new

    def test_static_cache_never_reloads(self) -> None:
        rule_set = parse_rule_set(_rules_doc("static"))
        clock = FakeClock()
        cache = RuleSetCache(rule_set=rule_set, clock=clock)
        clock.now = 1000.0
        assert cache.get() is rule_set

    def test_versions_coexist(self) -> None:
        a = RuleEngine(RuleSetCache(rule_set=parse_rule_set(_rules_doc("a", rec_type="patch"))))
        b = RuleEngine(RuleSetCache(rule_set=parse_rule_set(_rules_doc("b", rec_type="liner"))))
        assert _rec(a, "DER", 2).rec_type == RecType.PATCH
        assert _rec(b, "DER", 2).rec_type == RecType.LINER

    def test_broken_reload_is_fatal(self, write_rules) -> None:
        path = write_rules(_rules_doc("v1"))
        clock = FakeClock()
        engine = RuleEngine(RuleSetCache(path, ttl_seconds=5.0, clock=clock))
        engine.version_info()

        path.write_text("{broken", encoding="utf-8")
        clock.now = 6.0
        with pytest.raises(RuleLoadError):
            engine.evaluate(ObservationRef(code="DER", grade=2))

    def test_pinned_snapshot_ignores_reload(self, write_rules) -> None:
        path = write_rules(_rules_doc("v1", rec_type="patch"))
        clock = FakeClock()
        engine = RuleEngine(RuleSetCache(path, ttl_seconds=5.0, clock=clock))
        pinned = engine.rule_set

        path.write_text(json.dumps(_rules_doc("v2", rec_type="liner")), encoding="utf-8")
        clock.now = 10.0
        result = engine.evaluate_section("S1", "DER at 1m", 3, pinned)
        assert result.primary.rec_type == RecType.PATCH
        assert engine.evaluate_section("S1", "DER at 1m", 3).primary.rec_type == RecType.LINER
