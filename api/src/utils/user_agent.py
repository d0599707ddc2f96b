"""
User-Agent classification.

Only coarse browser / OS / device labels are derived; they are stored with
refresh tokens so users can tell their sessions apart.
"""

import re
from typing import Optional

from api.src.models.auth import ClientContext

# Order matters: Edge and Opera user agents also contain "Chrome" and "Safari"
_BROWSERS = (
    ("Edge", re.compile(r"Edg(?:e|A|iOS)?/")),
    ("Opera", re.compile(r"OPR/|Opera")),
    ("Samsung Internet", re.compile(r"SamsungBrowser/")),
    ("Firefox", re.compile(r"Firefox/|FxiOS/")),
    ("Chrome", re.compile(r"Chrome/|CriOS/")),
    ("Safari", re.compile(r"Safari/")),
    ("curl", re.compile(r"^curl/")),
)

_OPERATING_SYSTEMS = (
    ("iOS", re.compile(r"iPhone|iPad|iPod")),
    ("Android", re.compile(r"Android")),
    ("Windows", re.compile(r"Windows")),
    ("macOS", re.compile(r"Mac OS X|Macintosh")),
    ("Chrome OS", re.compile(r"CrOS")),
    ("Linux", re.compile(r"Linux")),
)

_TABLET = re.compile(r"iPad|Tablet|Android(?!.*Mobile)")
_MOBILE = re.compile(r"Mobi|iPhone|iPod|Android.*Mobile")
_BOT = re.compile(r"bot|crawler|spider|curl|wget|python-requests|httpx", re.IGNORECASE)


def _match(patterns, user_agent: str) -> Optional[str]:
    for label, pattern in patterns:
        if pattern.search(user_agent):
            return label
    return None


def parse_client_context(user_agent: Optional[str]) -> ClientContext:
    """
    Classify a User-Agent header.

    Args:
        user_agent: Raw header value

    Returns:
        ClientContext with browser, os and device_type (desktop, mobile,
        tablet or bot); unknown parts are None
    """
    if not user_agent:
        return ClientContext()

    if _BOT.search(user_agent):
        device_type = "bot"
    elif _TABLET.search(user_agent):
        device_type = "tablet"
    elif _MOBILE.search(user_agent):
        device_type = "mobile"
    else:
        device_type = "desktop"

    return ClientContext(
        user_agent=user_agent[:512],
        browser=_match(_BROWSERS, user_agent),
        os=_match(_OPERATING_SYSTEMS, user_agent),
        device_type=device_type,
    )
