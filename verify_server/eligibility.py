"""
Eligibility of an intranet user, decided from the /v2/me claims.
Pure functions: no I/O, never raise, so fixtures can be thrown at them directly.
"""
from typing import Any


def is_eligible(claims: Any) -> bool:
    """
    True only for a current 42 student:
    login and email present, not staff, at least one cursus, at least one campus,
    and not explicitly flagged inactive.
    """
    if not isinstance(claims, dict):
        return False
    if not claims.get("login") or not claims.get("email"):
        return False
    if claims.get("staff?"):
        return False
    if not _non_empty_list(claims.get("cursus_users")):
        return False
    if not _non_empty_list(claims.get("campus")):
        return False
    # Absent means unknown; only an explicit False rejects
    if claims.get("active?") is False:
        return False
    return True


def _non_empty_list(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


def _first_entry(claims: Any, key: str) -> dict | None:
    """First element of a list-valued claim when it is an object, else None."""
    if not isinstance(claims, dict):
        return None
    entries = claims.get(key)
    if not isinstance(entries, list) or not entries or not isinstance(entries[0], dict):
        return None
    return entries[0]


def primary_campus(claims: dict) -> str | None:
    campus = _first_entry(claims, "campus")
    return campus.get("name") if campus else None


def primary_cursus(claims: dict) -> str | None:
    cursus_user = _first_entry(claims, "cursus_users")
    if not cursus_user:
        return None
    cursus = cursus_user.get("cursus")
    return cursus.get("name") if isinstance(cursus, dict) else None


def current_level(claims: dict) -> float | None:
    cursus_user = _first_entry(claims, "cursus_users")
    return cursus_user.get("level") if cursus_user else None


def summarize_claims(claims: dict) -> dict[str, Any]:
    """Non-sensitive summary used for logs and the success message (no email)."""
    if not isinstance(claims, dict):
        claims = {}
    return {
        "login": claims.get("login"),
        "display_name": claims.get("displayname"),
        "campus": primary_campus(claims),
        "cursus": primary_cursus(claims),
        "level": current_level(claims),
        "pool_year": claims.get("pool_year"),
        "pool_month": claims.get("pool_month"),
        "is_staff": bool(claims.get("staff?")),
    }
