"""User-Agent classification."""

from __future__ import annotations

import re

# Tokens that identify phones and tablets. "Mobile" also covers mobile Safari,
# Chrome and Firefox on platforms not listed explicitly.
_MOBILE_UA_PATTERN = re.compile(
    r"android|iphone|ipad|ipod|blackberry|bb10|iemobile|opera mini|windows phone"
    r"|webos|kindle|silk|mobile",
    re.IGNORECASE,
)


def is_mobile_user_agent(user_agent: str | None) -> bool:
    """Return True when ``user_agent`` looks like a phone or tablet browser."""
    if not user_agent:
        return False
    return _MOBILE_UA_PATTERN.search(user_agent) is not None
