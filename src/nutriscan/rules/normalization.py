from __future__ import annotations

import re

_WS = re.compile(r"\s+")


def normalize_keyword(value: str | None) -> str:
    """Lowercase and trim; inner whitespace runs collapse to one space."""
    if not value:
        return ""
    return _WS.sub(" ", str(value)).strip().lower()
