"""WRc / MSCC5 rule engine.

Loads a versioned, ordered rule file and evaluates observations against
it. Evaluation is pure and total: the first matching rule wins, and an
observation that matches nothing resolves to the rule set's declared
``defaults.unknown`` outcome rather than raising.

The rule file is cached in a ``RuleSetCache`` and re-read once the
staleness window has elapsed, so policy edits apply without a restart.
Refresh replaces the cached snapshot wholesale; readers holding the
previous ``RuleSet`` keep a consistent view.
"""

import json
import logging
import threading
import time
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from src.config.settings import get_settings
from src.ingestion.defect_summary import decode_defect_summary
from src.models.common import RecType
from src.models.inspection import UNKNOWN
from src.models.rules import (
    ObservationRef,
    Outcome,
    PatternKind,
    Recommendation,
    RuleSet,
    SectionRecommendation,
)

logger = logging.getLogger(__name__)

# Primary recommendation for a section with nothing to evaluate.
MONITOR_OUTCOME = Outcome(
    rec_type=RecType.REINSPECT,
    severity=1,
    standard_reference="WRc standards",
    operational_action=15,
    rationale="Monitor condition, no immediate action required",
)
MONITOR_SUMMARY = "Monitor condition"


class RuleLoadError(Exception):
    """The rule file is unreadable or malformed."""


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def parse_rule_set(data: Any, *, source: str = "<memory>") -> RuleSet:
    """Validate a decoded rule document.

    Raises:
        RuleLoadError: If the document violates the rule-set schema or a
            code pattern is not a valid regular expression.
    """
    try:
        return RuleSet.model_validate(data)
    except ValidationError as exc:
        msg = f"Invalid rule set {source}: {exc}"
        raise RuleLoadError(msg) from exc


def load_rule_set(path: str | Path) -> RuleSet:
    """Read and validate a rule file.

    Raises:
        RuleLoadError: If the file cannot be read, is not JSON, or is not
            a valid rule set.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read rule file {path}: {exc}"
        raise RuleLoadError(msg) from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        msg = f"Rule file {path} is not valid JSON: {exc}"
        raise RuleLoadError(msg) from exc

    return parse_rule_set(data, source=str(path))


@dataclass(frozen=True)
class RuleSetSnapshot:
    """One loaded rule set and when it was loaded."""

    rule_set: RuleSet
    loaded_at: float


class RuleSetCache:
    """Time-boxed cache over a rule file.

    A cache built with ``rule_set=`` and no ``path`` is static and never
    reloads. ``clock`` is injectable so staleness can be driven in tests.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        ttl_seconds: float = 5.0,
        rule_set: RuleSet | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if path is None and rule_set is None:
            msg = "RuleSetCache needs a rule file path or a rule set"
            raise ValueError(msg)
        self._path = Path(path) if path is not None else None
        self._ttl = ttl_seconds
        self._clock = clock
        self._reload_lock = threading.Lock()
        self._snapshot: RuleSetSnapshot | None = (
            RuleSetSnapshot(rule_set=rule_set, loaded_at=clock()) if rule_set is not None else None
        )

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def snapshot(self) -> RuleSetSnapshot | None:
        return self._snapshot

    def is_stale(self) -> bool:
        snapshot = self._snapshot
        if snapshot is None:
            return True
        if self._path is None:
            return False
        return self._clock() - snapshot.loaded_at >= self._ttl

    def get(self) -> RuleSet:
        """Return the current rule set, reloading it first if stale."""
        if self.is_stale():
            return self.reload().rule_set
        snapshot = self._snapshot
        assert snapshot is not None
        return snapshot.rule_set

    def reload(self) -> RuleSetSnapshot:
        """Re-read the rule file and swap in the new snapshot."""
        if self._path is None:
            assert self._snapshot is not None
            return self._snapshot

        with self._reload_lock:
            rule_set = load_rule_set(self._path)
            snapshot = RuleSetSnapshot(rule_set=rule_set, loaded_at=self._clock())
            self._snapshot = snapshot

        logger.info(
            "Loaded rule set %s (%d rules) from %s",
            rule_set.version,
            len(rule_set.rules),
            self._path,
        )
        return snapshot


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def evaluate_rules(rule_set: RuleSet, observation: ObservationRef) -> list[Recommendation]:
    """Evaluate one observation against a rule set. Never empty."""
    code = (observation.code or "").strip()
    for rule in rule_set.rules:
        if rule.when.matches(code, observation.grade):
            return [Recommendation.from_outcome(rule.outcome, observation)]
    return [Recommendation.from_outcome(rule_set.defaults.unknown, observation, matched_default=True)]


def summarize(recommendations: Iterable[Recommendation]) -> str:
    """Kind counts in first-seen order, e.g. ``"2x patch, reinspect"``."""
    counts = Counter(r.rec_type.value for r in recommendations)
    parts = [f"{n}x {kind}" if n > 1 else kind for kind, n in counts.items()]
    return ", ".join(parts) or MONITOR_SUMMARY


def primary_recommendation(recommendations: list[Recommendation]) -> Recommendation:
    """Highest severity wins; ties keep the earliest."""
    if not recommendations:
        return Recommendation.from_outcome(MONITOR_OUTCOME, ObservationRef())
    primary = recommendations[0]
    for rec in recommendations[1:]:
        if rec.severity > primary.severity:
            primary = rec
    return primary


class RuleEngine:
    """Rule evaluation over a cached, hot-reloadable rule set.

    Each public entry point reads the rule set once. A caller spanning
    several sections takes one snapshot from ``rule_set`` and passes it to
    every ``evaluate_section`` call, so a reload mid-batch is not seen.
    """

    def __init__(self, cache: RuleSetCache | None = None) -> None:
        if cache is None:
            settings = get_settings()
            cache = RuleSetCache(settings.RULES_PATH, ttl_seconds=settings.RULES_CACHE_TTL_SECONDS)
        self._cache = cache

    @property
    def rule_set(self) -> RuleSet:
        return self._cache.get()

    def evaluate(self, observation: ObservationRef) -> list[Recommendation]:
        return evaluate_rules(self._cache.get(), observation)

    def evaluate_many(
        self,
        observations: Iterable[ObservationRef],
        rule_set: RuleSet | None = None,
    ) -> list[Recommendation]:
        if rule_set is None:
            rule_set = self._cache.get()
        recommendations: list[Recommendation] = []
        for obs in observations:
            recommendations.extend(evaluate_rules(rule_set, obs))
        return recommendations

    def evaluate_section(
        self,
        section_id: str | int,
        defects: str | None,
        grade: int | None,
        rule_set: RuleSet | None = None,
    ) -> SectionRecommendation:
        """Evaluate a section from its defect summary string.

        Every parsed observation is graded with the section grade. A
        section with no parseable observations but a grade above 0 is
        evaluated as a single ``UNKNOWN`` observation; one with grade 0
        gets the monitor recommendation. Pass ``rule_set``, a snapshot
        taken from the ``rule_set`` property, to pin several sections to
        one version.
        """
        section_key = str(section_id)
        refs = [
            ObservationRef(code=o.code, grade=grade, position_m=o.position_m)
            for o in decode_defect_summary(defects, section_key)
        ]
        if not refs and (grade or 0) > 0:
            refs = [ObservationRef(code=UNKNOWN, grade=grade)]

        recommendations = self.evaluate_many(refs, rule_set)
        return SectionRecommendation(
            section_id=section_key,
            primary=primary_recommendation(recommendations),
            recommendations=tuple(recommendations),
            summary=summarize(recommendations),
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def version_info(self) -> dict[str, str]:
        rule_set = self._cache.get()
        return {"version": rule_set.version, "notes": rule_set.notes}

    def stats(self) -> dict[str, Any]:
        """Rule count, codes named by exact/set patterns, and action kinds."""
        rule_set = self._cache.get()
        covered: set[str] = set()
        action_types: list[str] = []
        for rule in rule_set.rules:
            if rule.when.pattern.kind in (PatternKind.EXACT, PatternKind.ONE_OF):
                covered.update(rule.when.pattern.codes)
            kind = rule.outcome.rec_type.value
            if kind not in action_types:
                action_types.append(kind)
        return {
            "version": rule_set.version,
            "rule_count": len(rule_set.rules),
            "covered_codes": sorted(covered),
            "action_types": action_types,
        }
