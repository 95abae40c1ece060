from __future__ import annotations

import re

# Callers that match clients by phone treat anything shorter as garbage input.
MIN_MATCH_DIGITS = 8

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_phone(raw: str | None) -> str:
    """Strip everything but decimal digits; blank or missing input yields ``""``."""

    if not raw:
        return ""
    return _NON_DIGITS.sub("", str(raw))
