"""Shared integration-test fixtures using a Postgres testcontainer."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable, Iterator
from typing import Any

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from testcontainers.postgres import PostgresContainer

from docker.errors import DockerException


def _clear_dependency_caches() -> None:
    """Clear all relevant lru-cache dependencies between test phases."""
    from account_service.config import get_settings
    from account_service.db.session import get_engine, get_session_factory
    from account_service.services.notifications import get_notification_sender

    get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()
    get_notification_sender.cache_clear()


async def _dispose_async_singletons() -> None:
    """Dispose loop-bound async resources before changing event loops."""
    from account_service.db.session import dispose_engine, get_engine

    if get_engine.cache_info().currsize:
        await dispose_engine()


def _postgres_async_url(postgres: PostgresContainer) -> str:
    """Return a postgresql+asyncpg URL across testcontainers versions."""
    try:
        # testcontainers>=4 supports explicitly disabling default psycopg2 driver.
        postgres_url = postgres.get_connection_url(driver=None)
    except TypeError:
        postgres_url = postgres.get_connection_url()

    if postgres_url.startswith("postgresql+"):
        postgres_url = "postgresql://" + postgres_url.split("://", 1)[1]

    return postgres_url.replace("postgresql://", "postgresql+asyncpg://", 1)


def _set_env_values(env_values: dict[str, str]) -> Callable[[], None]:
    """Apply env vars and return a restore callback."""
    original = {key: os.environ.get(key) for key in env_values}
    os.environ.update(env_values)

    def _restore() -> None:
        for key, value in original.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    return _restore


@pytest.fixture(scope="session")
def integration_env() -> Iterator[dict[str, str]]:
    """Start Postgres and configure app settings for database-backed tests."""
    try:
        postgres = PostgresContainer("postgres:16")
        postgres.start()
    except DockerException as exc:
        if os.environ.get("CI", "").lower() in {"1", "true", "yes"}:
            pytest.fail(
                f"Docker daemon unavailable in CI for testcontainers-backed integration tests: {exc}"
            )
        pytest.skip(f"Docker daemon unavailable for testcontainers-backed integration tests: {exc}")

    database_url = _postgres_async_url(postgres)
    restore_env = _set_env_values(
        {
            "APP__ENVIRONMENT": "development",
            "APP__SERVICE": "account-service",
            "APP__LOG_LEVEL": "INFO",
            "DATABASE__URL": database_url,
            "EMAIL__BACKEND": "null",
            "CONFIRMATION__TOKEN_TTL_SECONDS": "3600",
        }
    )
    _clear_dependency_caches()

    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(alembic_cfg, "head")

    try:
        yield {"database_url": database_url}
    finally:
        try:
            _clear_dependency_caches()
        finally:
            restore_env()
            postgres.stop()


@pytest.fixture(scope="function")
async def reset_state(integration_env: dict[str, str]) -> AsyncIterator[None]:
    """Clear the users table and isolate async singletons per event loop."""
    del integration_env
    from account_service.db.session import get_session_factory
    from account_service.models.user import User

    await _dispose_async_singletons()
    _clear_dependency_caches()

    async with get_session_factory()() as session:
        await session.execute(delete(User))
        await session.commit()

    try:
        yield
    finally:
        await _dispose_async_singletons()
        _clear_dependency_caches()


@pytest.fixture(scope="function")
async def db_session_factory(
    integration_env: dict[str, str],
    reset_state: None,
) -> async_sessionmaker[AsyncSession]:
    """Expose async session factory bound to integration Postgres."""
    del integration_env, reset_state
    from account_service.db.session import get_session_factory

    return get_session_factory()


@pytest.fixture(scope="function")
async def db_session(
    db_session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a write-capable async DB session for test seeding and assertions."""
    async with db_session_factory() as session:
        yield session


@pytest.fixture(scope="function")
def app_factory(integration_env: dict[str, str], reset_state: None) -> Callable[[], Any]:
    """Build isolated FastAPI app instances for database-backed tests."""
    del integration_env, reset_state
    from account_service.main import create_app

    def _factory() -> Any:
        return create_app()

    return _factory


@pytest.fixture(scope="function")
async def user_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Create unconfirmed user rows through the identity store."""
    from account_service.services.identity_store import SqlAlchemyIdentityStore

    store = SqlAlchemyIdentityStore(db_session=db_session, token_ttl_seconds=3600)

    async def _create(email: str) -> Any:
        return await store.create_user(email)

    return _create
