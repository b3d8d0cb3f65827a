"""Absolute response-link generation from named application routes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlencode

import structlog
from starlette.routing import NoMatchFound, Router

from account_service.core.errors import LinkDispatchError

logger = structlog.get_logger(__name__)


class LinkBuilder(Protocol):
    """Contract for building absolute links that carry a response code."""

    def build_link(self, area: str, controller: str, action: str, code: str) -> str:
        """Return an absolute URL for the action with ``code`` in its query string."""


def route_name(area: str, controller: str, action: str) -> str:
    """Compose the dotted route name for an area/controller/action triple."""
    return ".".join(part for part in (area, controller, action) if part).lower()


@dataclass(frozen=True)
class RouteLinkBuilder:
    """Resolve links against the application's route table."""

    router: Router
    base_url: str

    def build_link(self, area: str, controller: str, action: str, code: str) -> str:
        """Build ``{base_url}{route path}?code=...`` or raise LinkDispatchError."""
        name = route_name(area, controller, action)
        try:
            path = str(self.router.url_path_for(name))
        except NoMatchFound as exc:
            raise LinkDispatchError(f"Route '{name}' is not registered.") from exc

        base_url = self.base_url.strip().rstrip("/")
        if not path or not base_url:
            raise LinkDispatchError("Requested link could not be generated.")

        link = f"{base_url}{path}?{urlencode({'code': code})}"
        logger.debug("response_link_built", route=name)
        return link
