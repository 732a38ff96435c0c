"""Integration test fixtures -- real PostgreSQL + real MinIO, no mocks.

Session-scoped containers (started once per test run) provide real
PostgreSQL and MinIO instances. ``db_session`` gives each test an isolated
session with savepoint rollback; ``session_factory`` hands out independent
committing sessions for concurrency tests, and the tables are truncated
afterwards.
"""

import os

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from testcontainers.minio import MinioContainer
from testcontainers.postgres import PostgresContainer

pytestmark = pytest.mark.integration

_DB_DIR = os.path.join(os.path.dirname(__file__), "..", "..", "..", "db")

_TABLES = (
    "audit_events",
    "visa_workflow_logs",
    "visa_attendants",
    "visa_applications",
    "documents",
    "visa_country_requirements",
)


# ---------------------------------------------------------------------------
# Session-scoped: containers + engine + migrations
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def pg_container():
    with PostgresContainer(
        image="postgres:16",
        username="test",
        password="test",
        dbname="test",
    ) as pg:
        yield pg


@pytest.fixture(scope="session")
def minio_container():
    with MinioContainer() as mc:
        yield mc


@pytest.fixture(scope="session")
def db_url(pg_container):
    """Async DB URL for asyncpg."""
    host = pg_container.get_container_host_ip()
    port = pg_container.get_exposed_port(5432)
    return f"postgresql+asyncpg://test:test@{host}:{port}/test"


@pytest.fixture(scope="session")
def sync_db_url(pg_container):
    """Sync DB URL for Alembic (psycopg2)."""
    host = pg_container.get_container_host_ip()
    port = pg_container.get_exposed_port(5432)
    return f"postgresql://test:test@{host}:{port}/test"


@pytest.fixture(scope="session")
def alembic_config(sync_db_url):
    from alembic.config import Config

    cfg = Config(os.path.join(_DB_DIR, "alembic.ini"))
    cfg.set_main_option("script_location", os.path.join(_DB_DIR, "alembic"))
    cfg.set_main_option("sqlalchemy.url", sync_db_url)
    return cfg


@pytest.fixture(scope="session", autouse=True)
def _run_migrations(sync_db_url, alembic_config):
    from alembic import command

    os.environ["DATABASE_URL"] = sync_db_url
    command.upgrade(alembic_config, "head")


@pytest.fixture(scope="session")
def async_engine(db_url, _run_migrations):
    engine = create_async_engine(db_url, echo=False, poolclass=NullPool)
    yield engine


@pytest.fixture(scope="session")
def storage_service(minio_container):
    """StorageService against the test MinIO, installed as the module singleton."""
    from mediconnect_api.services import storage as storage_mod

    cfg = minio_container.get_config()
    svc = storage_mod.StorageService(
        endpoint=f"http://{cfg['endpoint']}",
        access_key=cfg["access_key"],
        secret_key=cfg["secret_key"],
        bucket="test-documents",
    )
    storage_mod._service = svc
    yield svc
    storage_mod._service = None


# ---------------------------------------------------------------------------
# Function-scoped sessions
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_session(async_engine):
    """Per-test DB session with savepoint rollback."""
    conn = await async_engine.connect()
    txn = await conn.begin()
    session = AsyncSession(
        bind=conn,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    yield session
    await session.close()
    await txn.rollback()
    await conn.close()


@pytest_asyncio.fixture
async def session_factory(async_engine):
    """Factory for independent, committing sessions. Tables are truncated afterwards."""
    factory = async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    async with async_engine.begin() as conn:
        await conn.execute(text(f"TRUNCATE {', '.join(_TABLES)} RESTART IDENTITY CASCADE"))
