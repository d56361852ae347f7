import re
from typing import Optional

_E164_RE = re.compile(r"^\+\d{1,3}\d{8,15}$")
_STRIP_RE = re.compile(r"[\s\-().]")


def normalize_phone(phone: Optional[str]) -> str:
    """Strip spaces, dashes, dots and parentheses; keep the leading +."""
    if not phone:
        return ""
    return _STRIP_RE.sub("", phone.strip())


def is_valid_phone(phone: Optional[str]) -> bool:
    return bool(_E164_RE.match(normalize_phone(phone)))

