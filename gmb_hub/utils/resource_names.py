"""
Google Business Profile resource-name helpers

The Business Information API names locations "locations/{id}" while the v4
reviews/media API wants "accounts/{a}/locations/{id}", and the Performance
API wants the bare "locations/{id}" form again.
"""
import re
from typing import Optional, Tuple

_LOCATION_PREFIX = re.compile(r"^(accounts/.*/)?locations/")
_FULL_LOCATION = re.compile(r"^accounts/([^/]+)/locations/([^/]+)")


def normalize_account_resource(account_id: Optional[str]) -> Optional[str]:
    """'123' or 'accounts/123' -> 'accounts/123'"""
    if not account_id:
        return None
    account_id = account_id.strip().strip("/")
    if not account_id:
        return None
    return account_id if account_id.startswith("accounts/") else f"accounts/{account_id}"


def location_id_only(location_name: str) -> str:
    """Strip any 'accounts/{a}/locations/' or 'locations/' prefix."""
    return _LOCATION_PREFIX.sub("", location_name or "")


def build_location_resource_name(account_id: str, location_name: str) -> str:
    """Full v4 resource name 'accounts/{a}/locations/{l}'."""
    if location_name.startswith("accounts/") and "/locations/" in location_name:
        return location_name
    account_resource = normalize_account_resource(account_id)
    return f"{account_resource}/locations/{location_id_only(location_name)}"


def performance_location_name(location_name: str) -> str:
    """Bare 'locations/{l}' form used by the Performance API."""
    return f"locations/{location_id_only(location_name)}"


def parse_location_resource_name(resource_name: str) -> Optional[Tuple[str, str]]:
    """'accounts/1/locations/2' -> ('1', '2'); anything else -> None"""
    match = _FULL_LOCATION.match(resource_name or "")
    if not match:
        return None
    return match.group(1), match.group(2)


def resolve_v4_location_name(account_resource: Optional[str], location_name: str) -> Optional[str]:
    """
    Resource name to use against the v4 API, or None when it cannot be built.

    Stored names without the 'accounts/' prefix are rebuilt from the account
    resource; without an account resource there is nothing to call.
    """
    if not location_name:
        return None
    if location_name.startswith("accounts/"):
        return location_name if "/locations/" in location_name else None
    if not account_resource:
        return None
    return build_location_resource_name(account_resource, location_name)
