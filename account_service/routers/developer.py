"""Development-only diagnostic endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request
from starlette.routing import Route

router = APIRouter(prefix="/devapi", tags=["developer"])


@router.get("/routemap")
async def route_map(request: Request) -> dict[str, object]:
    """List every registered route with its name and methods."""
    routes = [
        {
            "name": route.name,
            "path": route.path,
            "methods": sorted(route.methods or ()),
        }
        for route in request.app.routes
        if isinstance(route, Route)
    ]
    routes.sort(key=lambda item: (str(item["path"]), str(item["name"])))
    return {"routes": routes, "total_routes": len(routes)}
