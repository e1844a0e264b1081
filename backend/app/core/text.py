# app/core/text.py
from __future__ import annotations

from typing import Optional


def collapse_whitespace(value: Optional[str]) -> Optional[str]:
    """
    Trim and collapse inner runs of whitespace; blank input becomes None.
    Used for person, company and store names.
    """
    if value is None:
        return None
    v = " ".join(value.split())
    return v or None
