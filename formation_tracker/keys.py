"""Natural key and storage id of a formation.

A formation is identified by its extended code and start date.  The
natural key joins the two with ``|``, which never appears in a session
code or an ISO date; inputs containing it are rejected rather than
escaped, so two distinct pairs can never produce the same key.
"""

from __future__ import annotations

import hashlib
import re

from .errors import InvalidKeyError

KEY_SEPARATOR = "|"

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_\-]")


def is_valid_key_part(value: object) -> bool:
    """True when *value* can be one half of a natural key."""
    return isinstance(value, str) and bool(value.strip()) and KEY_SEPARATOR not in value


def _clean(value: str, field: str) -> str:
    if not is_valid_key_part(value):
        raise InvalidKeyError(f"Unusable {field} for a formation key: {value!r}")
    return value.strip()


def natural_key(extended_code: str, start_date: str) -> str:
    """Return ``"<extended_code>|<start_date>"`` after validating both parts."""
    return f"{_clean(extended_code, 'extended code')}{KEY_SEPARATOR}{_clean(start_date, 'start date')}"


def derive_id(extended_code: str, start_date: str) -> str:
    """Derive the storage id of a formation.

    Readable prefix plus a short digest of the natural key: the prefix is
    lossy (unsafe characters become ``_``) but the digest keeps ids of
    distinct keys apart.
    """
    key = natural_key(extended_code, start_date)
    code, date = key.split(KEY_SEPARATOR)
    readable = _UNSAFE_ID_CHARS.sub("_", f"{code.upper()}-{date}")
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:8]
    return f"{readable}-{digest}"
