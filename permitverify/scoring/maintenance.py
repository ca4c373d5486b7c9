"""
Maintenance detection for PermitVerify.

Keyword heuristic flagging permits that describe routine maintenance or
repair work rather than a new commercial project.
"""

from typing import Iterable, Optional

MAINTENANCE_KEYWORDS = [
    "maintenance", "repair", "replace hvac", "filter", "emergency",
    "patch", "fix", "swap", "roof replacement", "sewer line", "paving",
    "stucco", "parking lot", "reseal", "restore", "repaint", "upgrade"
]


def is_maintenance_like(description: Optional[str], permit_type: Optional[str],
                        keywords: Optional[Iterable[str]] = None) -> bool:
    """
    Check whether a permit looks like maintenance work.

    Matching is a case-insensitive substring test, so "fix" also hits
    "fixture".

    Args:
        description: Permit description
        permit_type: Permit type label
        keywords: Keyword list (defaults to MAINTENANCE_KEYWORDS)

    Returns:
        True if any keyword occurs in the description or permit type
    """
    lower_desc = description.lower() if isinstance(description, str) else ""
    lower_type = permit_type.lower() if isinstance(permit_type, str) else ""

    return any(
        k in lower_desc or k in lower_type
        for k in (kw.lower() for kw in (keywords or MAINTENANCE_KEYWORDS))
    )
