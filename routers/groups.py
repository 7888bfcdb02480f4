from typing import Dict, Mapping, Optional

from fastapi import APIRouter

from routers.matches import matches_router
from routers.messages import messages_router
from routers.placeholders import unmounted_router

# each group is mounted under /api/<name>, in this order
HANDLER_GROUPS = ("auth", "users", "orders", "offers", "matches", "messages", "reviews")

BUILTIN_GROUPS = {
    "matches": matches_router,
    "messages": messages_router,
}


def resolve_handler_groups(overrides: Optional[Mapping[str, APIRouter]] = None) -> Dict[str, APIRouter]:
    """Pick the router for each group: explicit override, built-in, or a 501 placeholder."""
    overrides = dict(overrides or {})
    unknown = set(overrides) - set(HANDLER_GROUPS)
    if unknown:
        raise ValueError(f"Unknown handler groups: {sorted(unknown)}")
    groups = {}
    for name in HANDLER_GROUPS:
        groups[name] = overrides.get(name) or BUILTIN_GROUPS.get(name) or unmounted_router(name)
    return groups
