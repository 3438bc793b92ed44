from __future__ import annotations

import re
from collections.abc import Iterable

from orgflow.core.config import settings


LEGACY_PREFIX = re.compile(r"^EMP-", re.IGNORECASE)


def numeric_id(employee_id: str) -> int | None:
    """Parse ``"10042"`` or the legacy ``"EMP-1042"`` form; ``None`` otherwise."""
    text = LEGACY_PREFIX.sub("", str(employee_id).strip())
    # str.isdigit also accepts superscripts and other digits int() rejects.
    if not (text.isascii() and text.isdigit()):
        return None
    return int(text)


def next_employee_id(existing_ids: Iterable[str], floor: int | None = None) -> str:
    """Return one more than the largest numeric id, never below ``floor + 1``."""
    max_id = settings.employee_id_floor if floor is None else floor
    for employee_id in existing_ids:
        value = numeric_id(employee_id)
        if value is not None and value > max_id:
            max_id = value
    return str(max_id + 1)
