"""Built-in sector profiles and their standards catalogue.

Each profile fixes the escalation thresholds, adoption limits and
trigger-code sets the classifier applies for one regulatory domain.
"""

from src.models.sector import SectorProfile, SectorStandard

MSCC5 = SectorStandard(
    name="MSCC5",
    version="5th Edition",
    authority="WRc",
    description="Manual of Sewer Condition Classification",
)
SRM = SectorStandard(
    name="SRM",
    version="5th Edition",
    authority="WRc",
    description="Sewerage Risk Management scoring",
)
BS_EN_752 = SectorStandard(
    name="BS EN 752",
    version="2017",
    authority="BSI",
    description="Drain and sewer systems outside buildings",
)
BS_EN_1610 = SectorStandard(
    name="BS EN 1610",
    version="2015",
    authority="BSI",
    description="Construction and testing of drains and sewers",
)
WATER_INDUSTRY_ACT = SectorStandard(
    name="Water Industry Act 1991",
    authority="UK Parliament",
    description="Section 104 adoption agreements",
)
DRAIN_REPAIR_BOOK = SectorStandard(
    name="WRc Drain Repair Book",
    version="4th Edition",
    authority="WRc",
    description="Repair method selection",
)
SEWER_CLEANING_MANUAL = SectorStandard(
    name="WRc Sewer Cleaning Manual",
    authority="WRc",
    description="Cleaning method selection and thresholds",
)
SEWERS_FOR_ADOPTION = SectorStandard(
    name="Sewers for Adoption",
    version="8th Edition",
    authority="Water UK",
    description="Design and construction guide for adoptable sewers",
)
OS20X = SectorStandard(
    name="OS20x",
    authority="WRc",
    description="Sewer adoption CCTV coding standard",
)
SSG = SectorStandard(
    name="SSG",
    authority="Water UK",
    description="Sewerage Sector Guidance",
)
DCSG = SectorStandard(
    name="DCSG",
    authority="Water UK",
    description="Design and Construction Guidance",
)
HADDMS = SectorStandard(
    name="HADDMS",
    authority="National Highways",
    description="Drainage Data Management System manual",
)
DMRB = SectorStandard(
    name="DMRB CD 535",
    authority="National Highways",
    description="Drainage asset data and risk management",
)
HIGHWAYS_ACT = SectorStandard(
    name="Highways Act 1980",
    authority="UK Parliament",
    description="Highway drainage duties",
)
ABI_GUIDANCE = SectorStandard(
    name="ABI Guidance",
    authority="Association of British Insurers",
    description="Drain claim documentation",
)
BUILDING_ACT = SectorStandard(
    name="Building Act 1984",
    authority="UK Parliament",
    description="Section 59 drainage of buildings",
)

UTILITIES = SectorProfile(
    sector="utilities",
    display_name="Utilities",
    standards=(
        MSCC5,
        SRM,
        BS_EN_752,
        WATER_INDUSTRY_ACT,
        DRAIN_REPAIR_BOOK,
        SEWER_CLEANING_MANUAL,
    ),
    compliance_note="Water company asset inspection graded to MSCC5 with SRM risk scoring.",
)

ADOPTION = SectorProfile(
    sector="adoption",
    display_name="Sewer Adoption (Section 104)",
    adoption_banned_codes=frozenset({"FC", "FL", "C", "CR"}),
    roots_block_adoption=True,
    standards=(
        SEWERS_FOR_ADOPTION,
        OS20X,
        SSG,
        DCSG,
        BS_EN_1610,
        WATER_INDUSTRY_ACT,
    ),
    compliance_note=(
        "Assessed against Section 104 Water Industry Act 1991 and OS20x "
        "Sewer Adoption CCTV Coding Standards."
    ),
    compatible_with=("Water UK", "Section 104"),
)

HIGHWAYS = SectorProfile(
    sector="highways",
    display_name="Highways / HADDMS",
    standards=(HADDMS, DMRB, BS_EN_752, HIGHWAYS_ACT),
    compliance_note="Highway drainage asset inspection coded for HADDMS.",
    export_format_name="HADDMS Compliance",
    compatible_with=("HADDMS", "Water UK"),
)

INSURANCE = SectorProfile(
    sector="insurance",
    display_name="Insurance",
    structural_escalation_grade=3,
    standards=(MSCC5, ABI_GUIDANCE, DRAIN_REPAIR_BOOK),
    compliance_note="Claim documentation to MSCC5; grade 3 and above is claim relevant.",
    export_format_name="Insurance Claim Report",
)

CONSTRUCTION = SectorProfile(
    sector="construction",
    display_name="Construction (Pre/Post Build Validation)",
    adoption_banned_codes=frozenset({"FC", "FL", "C", "CR"}),
    standards=(MSCC5, BS_EN_1610, SEWERS_FOR_ADOPTION, DCSG),
    compliance_note="Pre and post construction validation surveys for developments.",
)

DOMESTIC = SectorProfile(
    sector="domestic",
    display_name="Domestic",
    standards=(MSCC5, DRAIN_REPAIR_BOOK, BUILDING_ACT),
    compliance_note="Household and private drain assessment.",
    export_format_name="Domestic Drain Report",
)

SECTOR_PROFILES: dict[str, SectorProfile] = {
    p.sector: p for p in (UTILITIES, ADOPTION, HIGHWAYS, INSURANCE, CONSTRUCTION, DOMESTIC)
}


def get_sector_profile(sector: str) -> SectorProfile:
    """Look up a built-in profile by sector name (case-insensitive).

    Raises:
        KeyError: If no profile exists for the sector.
    """
    key = sector.strip().lower()
    if key not in SECTOR_PROFILES:
        msg = f"Unknown sector {sector!r}; expected one of {sorted(SECTOR_PROFILES)}"
        raise KeyError(msg)
    return SECTOR_PROFILES[key]
