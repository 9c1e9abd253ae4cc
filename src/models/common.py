"""Shared types, enums, and base models used across InspectOS domain models."""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field
from uuid_extensions import uuid7


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def new_uuid7() -> UUID:
    """Generate a new time-sortable UUID v7."""
    return uuid7()


# --- Reusable annotated types ---

UUIDv7 = Annotated[UUID, Field(description="Time-sortable UUID v7.")]
UTCTimestamp = Annotated[
    datetime, Field(description="UTC timezone-aware timestamp.")
]
Grade = Annotated[int, Field(ge=0, le=5, description="MSCC5 condition grade (0-5).")]


# --- Shared enums ---


class DefectCategory(StrEnum):
    """MSCC5 grading scale a defect is scored on."""

    STRUCTURAL = "structural"
    SERVICE = "service"


class RecType(StrEnum):
    """Recommendation kinds emitted by the rule engine."""

    PATCH = "patch"
    LINER = "liner"
    CLEAN = "clean"
    REINSPECT = "reinspect"


class PriorityLevel(StrEnum):
    """Escalation priority, ordered LOW < MEDIUM < HIGH < URGENT."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def highest(cls, *levels: "PriorityLevel") -> "PriorityLevel":
        """Return the most severe of the given levels (LOW if none)."""
        return max(levels, key=lambda p: p.rank, default=cls.LOW)


_PRIORITY_RANK: dict[PriorityLevel, int] = {
    PriorityLevel.LOW: 0,
    PriorityLevel.MEDIUM: 1,
    PriorityLevel.HIGH: 2,
    PriorityLevel.URGENT: 3,
}


class AdoptionStatus(StrEnum):
    """OS20x / Section 104 compliance level."""

    FULL = "FULL"
    CONDITIONAL = "CONDITIONAL"
    REJECTED = "REJECTED"


class IssueSeverity(StrEnum):
    """Severity of a validation issue. Errors block export."""

    ERROR = "error"
    WARNING = "warning"


class IssueType(StrEnum):
    """Validation phase that produced an issue."""

    CONFIGURATION = "configuration"
    QUANTITY = "quantity"
    TRAVEL = "travel"
    VEHICLE = "vehicle"


class ExportFormat(StrEnum):
    """Compliance export serialization."""

    CSV = "CSV"
    JSON = "JSON"


# --- Base model ---


class InspectOSBase(BaseModel):
    """Base model with common configuration for all InspectOS Pydantic models."""

    model_config = {
        "populate_by_name": True,
        "protected_namespaces": (),
    }
