from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from constants import DEFAULT_FRONTEND_URL

DEFAULT_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:3000",
    DEFAULT_FRONTEND_URL,
)

AllowList = Tuple[str, ...]


@dataclass(frozen=True)
class CorsDecision:
    allowed: bool
    origin: Optional[str] = None


def build_allow_list(frontend_url: str, defaults: Iterable[str] = DEFAULT_ORIGINS) -> AllowList:
    """Configured frontend first, then the fixed defaults; duplicates dropped, order kept."""
    return tuple(dict.fromkeys([frontend_url, *defaults]))


def decide(declared_origin: Optional[str], allow_list: AllowList) -> CorsDecision:
    """Decide whether a request or handshake with this Origin header may proceed.

    A missing origin (server-to-server calls, curl, native apps) is allowed.
    Otherwise the origin must match an allow list entry exactly; no
    normalisation of case, trailing slashes or default ports is done.
    """
    if not declared_origin:
        return CorsDecision(allowed=True, origin=None)
    return CorsDecision(allowed=declared_origin in allow_list, origin=declared_origin)
