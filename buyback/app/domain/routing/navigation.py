"""Map deep links for drivers."""

from urllib.parse import quote

NAVIGATION_BASE_URL = "https://maps.google.com/maps"


def build_navigation_url(address: str) -> str:
    """Turn-by-turn navigation link for an address."""
    return f"{NAVIGATION_BASE_URL}?q={quote(address, safe='')}&navigate=yes"
