"""
Identifiers
===========

Thread ids and file names end up as single path components under the data
directory, so they are restricted to a conservative character set.
"""

import re
from typing import Optional

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_\-][A-Za-z0-9_.\-]*$")


def is_safe_name(value: Optional[str]) -> bool:
    """True when ``value`` can be used as one path component."""
    return bool(value) and _SAFE_NAME.match(value) is not None and ".." not in value
