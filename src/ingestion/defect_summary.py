"""Encode and decode the defect summary string.

The summary is the export-facing serialization of a section's
observations::

    WL at 0m; DER at 1.8m, 20.47m; LL at 15.52m

Same-code observations share one ``CODE at ...`` group (groups in order of
first appearance, positions in order); groups are joined with ``"; "``.
Free-text detail is not carried.
"""

import re
from collections.abc import Iterable

from src.models.inspection import Observation

NO_DEFECTS = "No defects observed"

_GROUP_RE = re.compile(r"^([A-Za-z][A-Za-z0-9]*)\s+at\s+(.+)$")
_POSITION_RE = re.compile(r"^(\d+(?:\.\d+)?)m?$")


def format_position(position_m: float) -> str:
    """Render a position with up to three decimals and no trailing zeros."""
    text = f"{position_m:.3f}".rstrip("0").rstrip(".")
    return f"{text}m"


def encode_defect_summary(observations: Iterable[Observation]) -> str:
    """Serialize observations into the summary string.

    Returns ``NO_DEFECTS`` when there are no observations.
    """
    groups: dict[str, list[float]] = {}
    for obs in observations:
        groups.setdefault(obs.code.upper(), []).append(obs.position_m)

    if not groups:
        return NO_DEFECTS

    return "; ".join(
        f"{code} at {', '.join(format_position(p) for p in positions)}"
        for code, positions in groups.items()
    )


def decode_defect_summary(summary: str | None, section_key: str) -> list[Observation]:
    """Parse a summary string back into observations for one section.

    Groups that do not read ``CODE at ...`` are ignored, and an
    unparseable position degrades to 0.0. ``NO_DEFECTS`` and empty text
    decode to no observations.
    """
    if not summary or summary.strip() == NO_DEFECTS:
        return []

    observations: list[Observation] = []
    for part in summary.split(";"):
        match = _GROUP_RE.match(part.strip())
        if not match:
            continue
        code, positions = match.group(1).upper(), match.group(2)
        for raw in positions.split(","):
            pos = _POSITION_RE.match(raw.strip())
            observations.append(
                Observation(
                    section_key=section_key,
                    code=code,
                    position_m=float(pos.group(1)) if pos else 0.0,
                )
            )
    return observations
