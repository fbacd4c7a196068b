"""Email address format check shared by config validation and policy."""

from __future__ import annotations

import re

# local part of letters/digits/._%+-, dot-separated domain labels,
# alphabetic top-level label of at least two characters
EMAIL_RE = re.compile(
    r"[A-Za-z0-9._%+-]+@(?:[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?\.)+[A-Za-z]{2,}",
)


def is_valid_email(value: str) -> bool:
    return EMAIL_RE.fullmatch(value) is not None
