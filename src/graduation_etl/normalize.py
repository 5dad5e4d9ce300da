"""Normalization functions for graduation-status CSV ingestion.

All functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import re

_NRP_RE = re.compile(r"[0-9]{10}")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: NRP (registration number)
# ---------------------------------------------------------------------------

def is_valid_nrp(value: str | None) -> bool:
    """True for exactly ten ASCII digits.

    ``str.isdigit`` and ``\\d`` both accept non-ASCII digits, so the check
    uses an explicit character class.
    """
    if value is None:
        return False
    return _NRP_RE.fullmatch(value) is not None
