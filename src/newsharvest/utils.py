"""
Filesystem-safe names for debug artifacts.
"""

import re

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9]+")

# Device names Windows refuses as file stems.
_RESERVED_STEMS = frozenset({"con", "prn", "aux", "nul"} | {f"com{i}" for i in range(1, 10)} | {f"lpt{i}" for i in range(1, 10)})


def slugify(text: str, max_length: int = 80) -> str:
    """
    Lowercase ``text`` and collapse every run of non-alphanumerics to a single hyphen.

    >>> slugify("Bitcoin hits $100k: what's next?")
    'bitcoin-hits-100k-what-s-next'
    >>> slugify("CON")
    'con-reserved'
    """
    result = _UNSAFE_RE.sub("-", text.strip()).strip("-").lower()
    if result.split("-", 1)[0] in _RESERVED_STEMS:
        result = f"{result}-reserved"
    if len(result) > max_length:
        result = result[:max_length].rstrip("-")
    return result
