"""Natural-key normalization for menu catalog names and codes.

Names (categories, items, modifier groups, modifiers) are matched
case-insensitively within a catalog scope. This module produces the
normalized form used both by the import validator and by the unique
`name_key` columns in the store, so both sides agree on what a
duplicate is.

Examples:
    >>> normalize_name_key("  Iced   Coffee ")
    'iced coffee'

    >>> normalize_name_key("CAFÉ")
    'café'

    >>> normalize_name_key("   ") is None
    True
"""

import re
import unicodedata
from typing import Optional

_WHITESPACE = re.compile(r"\s+")


def normalize_name_key(name: Optional[str]) -> Optional[str]:
    """Return the case-insensitive natural key for a display name.

    Algorithm:
        1. Normalize Unicode to NFKC (compatibility composition)
        2. Collapse runs of whitespace to a single space
        3. Strip leading/trailing whitespace
        4. Casefold

    Args:
        name: Display name, possibly None or blank

    Returns:
        Normalized key, or None when the name is blank
    """
    if name is None:
        return None
    normalized = unicodedata.normalize("NFKC", str(name))
    normalized = _WHITESPACE.sub(" ", normalized).strip()
    if not normalized:
        return None
    return normalized.casefold()


def normalize_code(code: Optional[str]) -> Optional[str]:
    """Return a trimmed size code; codes are case-sensitive ("S" != "s")."""
    if code is None:
        return None
    code = str(code).strip()
    return code or None
