"""Shared FastAPI dependency helpers."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.config import Settings, get_settings
from account_service.core.links import LinkBuilder, RouteLinkBuilder
from account_service.db.session import get_db_session
from account_service.services.confirmation_service import ConfirmationService
from account_service.services.identity_store import IdentityStore, SqlAlchemyIdentityStore
from account_service.services.notifications import NotificationSender, get_notification_sender


async def get_database_session() -> AsyncGenerator[AsyncSession, None]:
    """Expose the request-scoped async database session dependency."""
    async for session in get_db_session():
        yield session


def get_identity_store(
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> IdentityStore:
    """Bind the identity store to the request's database session."""
    return SqlAlchemyIdentityStore(
        db_session=db_session,
        token_ttl_seconds=settings.confirmation.token_ttl_seconds,
    )


def get_link_builder(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> LinkBuilder:
    """Build links against this app's routes, preferring the configured public URL."""
    base_url = settings.confirmation.public_base_url or request.base_url
    return RouteLinkBuilder(router=request.app.router, base_url=str(base_url))


def get_confirmation_service(
    identity_store: Annotated[IdentityStore, Depends(get_identity_store)],
    link_builder: Annotated[LinkBuilder, Depends(get_link_builder)],
    notification_sender: Annotated[NotificationSender, Depends(get_notification_sender)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ConfirmationService:
    """Assemble a per-request confirmation workflow."""
    return ConfirmationService(
        identity_store=identity_store,
        notification_sender=notification_sender,
        link_builder=link_builder,
        collaborator_timeout_seconds=settings.confirmation.collaborator_timeout_seconds,
    )
