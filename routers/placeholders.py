from fastapi import APIRouter

from errors import DomainError

PLACEHOLDER_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def unmounted_router(name: str) -> APIRouter:
    """Router for a handler group that has not been plugged in; answers everything with 501."""
    router = APIRouter(tags=[name])

    async def not_mounted(path: str = ""):
        raise DomainError(501, "Not Implemented", f"The {name} handler group is not mounted on this gateway")

    router.add_api_route("", not_mounted, methods=PLACEHOLDER_METHODS, include_in_schema=False)
    router.add_api_route("/{path:path}", not_mounted, methods=PLACEHOLDER_METHODS, include_in_schema=False)
    return router
