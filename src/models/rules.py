"""Rule-set and recommendation models for the WRc / MSCC5 rule engine.

A rule set is an ordered list of ``when -> outcome`` rules plus a declared
default outcome for unmatched observations. Rule order is part of the
contract: the first matching rule wins.

Code patterns are authored as text (``code_regex``) and parsed into a
tagged ``CodePattern`` at load time so intent is explicit:

* no pattern            -> ANY (always matches)
* ``^WL$``              -> EXACT
* ``^(DER|DES)$``       -> ONE_OF
* anything else         -> REGEX (case-insensitive search)
"""

import re
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, model_validator

from src.models.common import InspectOSBase, RecType

_EXACT_RE = re.compile(r"^\^([A-Za-z0-9]+)\$$")
_ONE_OF_RE = re.compile(r"^\^\((?:\?:)?([A-Za-z0-9]+(?:\|[A-Za-z0-9]+)+)\)\$$")


class PatternKind(StrEnum):
    """How a rule's code pattern is matched."""

    ANY = "ANY"
    EXACT = "EXACT"
    ONE_OF = "ONE_OF"
    REGEX = "REGEX"


class CodePattern(InspectOSBase, frozen=True):
    """Tagged defect-code pattern. Matching is case-insensitive."""

    kind: PatternKind
    codes: tuple[str, ...] = ()
    regex: str | None = None

    @classmethod
    def any(cls) -> "CodePattern":
        return cls(kind=PatternKind.ANY)

    @classmethod
    def from_text(cls, text: str | None) -> "CodePattern":
        """Parse an authored ``code_regex`` into its tagged form.

        Raises:
            ValueError: If the text is not a valid regular expression.
        """
        if text is None or text == "":
            return cls.any()

        exact = _EXACT_RE.match(text)
        if exact:
            return cls(kind=PatternKind.EXACT, codes=(exact.group(1).upper(),))

        one_of = _ONE_OF_RE.match(text)
        if one_of:
            codes = tuple(c.upper() for c in one_of.group(1).split("|"))
            return cls(kind=PatternKind.ONE_OF, codes=codes)

        try:
            re.compile(text)
        except re.error as exc:
            msg = f"Invalid code_regex {text!r}: {exc}"
            raise ValueError(msg) from exc
        return cls(kind=PatternKind.REGEX, regex=text)

    def matches(self, code: str) -> bool:
        if self.kind == PatternKind.ANY:
            return True
        if self.kind in (PatternKind.EXACT, PatternKind.ONE_OF):
            return code.strip().upper() in self.codes
        return re.search(self.regex or "", code, re.IGNORECASE) is not None


class Outcome(InspectOSBase, frozen=True):
    """Recommendation template attached to a rule or to the rule-set default."""

    rec_type: RecType = Field(..., validation_alias=AliasChoices("rec_type", "recType"))
    severity: int = Field(..., ge=0)
    standard_reference: str = Field(
        ...,
        validation_alias=AliasChoices("standard_reference", "wr_ref", "standardReference", "wrRef"),
    )
    operational_action: int | None = Field(
        default=None,
        validation_alias=AliasChoices("operational_action", "operationalAction"),
    )
    rationale: str = ""


class RuleCondition(InspectOSBase, frozen=True):
    """``when`` clause of a rule. Absent fields always match."""

    code_regex: str | None = Field(
        default=None,
        validation_alias=AliasChoices("code_regex", "codeRegex"),
    )
    min_grade: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("min_grade", "minGrade"),
    )
    pattern: CodePattern = Field(default_factory=CodePattern.any)

    @model_validator(mode="before")
    @classmethod
    def _parse_pattern(cls, data: Any) -> Any:
        if isinstance(data, dict) and "pattern" not in data:
            text = data.get("code_regex", data.get("codeRegex"))
            data = {**data, "pattern": CodePattern.from_text(text)}
        return data

    def matches(self, code: str, grade: int | None) -> bool:
        if not self.pattern.matches(code):
            return False
        if self.min_grade is None:
            return True
        return (grade or 0) >= self.min_grade


class Rule(InspectOSBase, frozen=True):
    """One ordered classification rule."""

    when: RuleCondition = Field(default_factory=RuleCondition)
    outcome: Outcome


class RuleDefaults(InspectOSBase, frozen=True):
    """Declared fallbacks. ``unknown`` guarantees every observation resolves."""

    unknown: Outcome


class RuleSet(InspectOSBase, frozen=True):
    """Versioned, ordered classification policy."""

    version: str = Field(..., min_length=1)
    notes: str = ""
    defaults: RuleDefaults
    rules: tuple[Rule, ...] = ()


class ObservationRef(InspectOSBase, frozen=True):
    """Traceability back to the observation a recommendation came from."""

    code: str | None = None
    grade: int | None = None
    position_m: float | None = None


class Recommendation(InspectOSBase, frozen=True):
    """Outcome of evaluating one observation."""

    rec_type: RecType
    severity: int
    standard_reference: str
    operational_action: int | None = None
    rationale: str = ""
    source: ObservationRef = Field(default_factory=ObservationRef)
    matched_default: bool = False

    @classmethod
    def from_outcome(
        cls,
        outcome: Outcome,
        source: ObservationRef,
        *,
        matched_default: bool = False,
    ) -> "Recommendation":
        return cls(
            rec_type=outcome.rec_type,
            severity=outcome.severity,
            standard_reference=outcome.standard_reference,
            operational_action=outcome.operational_action,
            rationale=outcome.rationale,
            source=source,
            matched_default=matched_default,
        )


class SectionRecommendation(InspectOSBase, frozen=True):
    """Section-level aggregate of per-observation recommendations."""

    section_id: str
    primary: Recommendation
    recommendations: tuple[Recommendation, ...] = ()
    summary: str
