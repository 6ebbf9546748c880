"""
rollcall.constants — Shared Constants & Helpers
================================================

Single source of truth for default thresholds and the username
normalization rules.  Import from here instead of re-implementing the
underscore/space handling in each module.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------
DEFAULT_FACTION_API_BASE_URL = "https://ucp.gta.world/api"
DEFAULT_FORUM_API_PATH = "app.php/booskit/phpbbapi"

DEFAULT_ROSTER_CACHE_MINUTES = 24 * 60
DEFAULT_ABAS_CACHE_MINUTES = 24 * 60
DEFAULT_FORUM_CACHE_MINUTES = 24 * 60

# Organisation category types (unit / detail)
CATEGORY_UNIT = "cat_2"
CATEGORY_DETAIL = "cat_3"
CATEGORY_TYPES: frozenset[str] = frozenset({CATEGORY_UNIT, CATEGORY_DETAIL})


# ---------------------------------------------------------------------------
# Name normalization
# ---------------------------------------------------------------------------
def normalize_name(name: str | None) -> str:
    """Return the space-separated form of a character or forum name.

    Forum usernames use ``First_Last`` while the game API reports
    ``First Last``; every underscore is treated as a space.
    """
    if not name:
        return ""
    return name.replace("_", " ").strip()
