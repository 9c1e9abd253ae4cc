"""Compliance export formatter (Water UK style).

Serializes classified section rollups as CSV, JSON or an Excel workbook.
All three share one row shape keyed by the CSV header, so field names
match one-to-one across formats.
"""

import csv
import io
import json
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from openpyxl import Workbook

from src.engine.classifier import calculate_plr
from src.engine.sector_profiles import UTILITIES
from src.models.common import ExportFormat, utc_now
from src.models.sector import ClassifiedSection, SectorProfile

CSV_HEADER: tuple[str, ...] = (
    "Item No",
    "PLR",
    "Upstream Node",
    "Downstream Node",
    "Structural Grade",
    "Service Grade",
    "Defect Description",
    "Recommended Action",
    "Action Type",
)


def section_row(section: ClassifiedSection) -> dict[str, Any]:
    """One export row. PLR is computed when the section carries none."""
    plr = section.plr
    if plr is None:
        plr = calculate_plr(section.structural_grade, section.service_grade)
    return {
        "Item No": section.item_no,
        "PLR": plr,
        "Upstream Node": section.upstream_node,
        "Downstream Node": section.downstream_node,
        "Structural Grade": section.structural_grade,
        "Service Grade": section.service_grade,
        "Defect Description": section.defect_description,
        "Recommended Action": section.recommended_action,
        "Action Type": section.action_type,
    }


class ComplianceFormatter:
    """Render classified sections for one sector profile."""

    def __init__(
        self,
        profile: SectorProfile | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._profile = profile or UTILITIES
        self._clock = clock

    def format(self, sections: Sequence[ClassifiedSection], fmt: ExportFormat | str) -> str:
        """Render sections as CSV or JSON text.

        Raises:
            ValueError: If ``fmt`` is not a supported export format.
        """
        try:
            export_format = ExportFormat(str(fmt).upper())
        except ValueError as exc:
            msg = f"Unsupported export format {fmt!r}; expected CSV or JSON"
            raise ValueError(msg) from exc

        if export_format == ExportFormat.CSV:
            return self.to_csv(sections)
        return self.to_json(sections)

    # ------------------------------------------------------------------
    # Formats
    # ------------------------------------------------------------------

    def to_csv(self, sections: Sequence[ClassifiedSection]) -> str:
        """Header row then one row per section; string fields are quoted."""
        buf = io.StringIO()
        writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for section in sections:
            row = section_row(section)
            writer.writerow(["" if row[h] is None else row[h] for h in CSV_HEADER])
        return buf.getvalue()

    def metadata(self) -> dict[str, Any]:
        profile = self._profile
        return {
            "sector": profile.sector,
            "display_name": profile.display_name,
            "standards_used": profile.standard_names,
            "standards": [s.model_dump(mode="json") for s in profile.standards],
            "compliance_note": profile.compliance_note,
            "export_format": profile.export_format_name,
            "generated_at": self._clock().isoformat(),
        }

    def to_json(self, sections: Sequence[ClassifiedSection]) -> str:
        """Metadata block plus a ``sections`` array tagged for compatibility."""
        metadata = self.metadata()
        compatible_with = ", ".join(self._profile.compatible_with)
        rows = [
            {
                **section_row(s),
                "Compatible With": compatible_with,
                "Export Timestamp": metadata["generated_at"],
            }
            for s in sections
        ]
        return json.dumps({"metadata": metadata, "sections": rows}, indent=2, ensure_ascii=False)

    def to_excel(self, sections: Sequence[ClassifiedSection]) -> bytes:
        """Workbook with a ``Sections`` sheet and a ``Metadata`` sheet."""
        wb = Workbook()
        wb.remove(wb.active)

        ws = wb.create_sheet("Sections")
        for col, header in enumerate(CSV_HEADER, 1):
            ws.cell(row=1, column=col, value=header)
        for row_idx, section in enumerate(sections, 2):
            row = section_row(section)
            for col, header in enumerate(CSV_HEADER, 1):
                ws.cell(row=row_idx, column=col, value=row[header])

        meta = wb.create_sheet("Metadata")
        metadata = self.metadata()
        entries = [
            ("Sector", metadata["sector"]),
            ("Display Name", metadata["display_name"]),
            ("Export Format", metadata["export_format"]),
            ("Standards Used", ", ".join(metadata["standards_used"])),
            ("Generated At", metadata["generated_at"]),
            ("Section Count", len(sections)),
        ]
        for row_idx, (label, value) in enumerate(entries, 1):
            meta.cell(row=row_idx, column=1, value=label)
            meta.cell(row=row_idx, column=2, value=value)

        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()
