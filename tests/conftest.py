"""Pytest configuration and fixtures for Bazaar tests."""

import io
import os
import uuid
import zipfile
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Callable

# Fixed key so tokens minted by the tests verify against the app settings
os.environ.setdefault("BAZAAR_SECRET_KEY", "test-secret-key-for-bazaar-import-tests-0123456789")

import pytest
import pytest_asyncio
from beanie import init_beanie
from httpx import ASGITransport, AsyncClient
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from bazaar.database import get_document_models
from bazaar.services.auth import create_access_token
from bazaar.services.import_service import (
    ImportSessionManager,
    generate_csv,
    get_session_manager,
)
from bazaar.services.import_service.constants import TEMPLATE_HEADERS


# MongoDB connection URL for tests (can be overridden with env var)
TEST_MONGODB_URL = os.environ.get("TEST_MONGODB_URL", "mongodb://localhost:27017")

MERCHANT_ID = "64b7f0c2a1b2c3d4e5f60718"
OTHER_MERCHANT_ID = "64b7f0c2a1b2c3d4e5f60719"

# Minimal valid PNG (1x1 pixel)
PNG_BYTES = bytes([
    0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A,  # PNG signature
    0x00, 0x00, 0x00, 0x0D, 0x49, 0x48, 0x44, 0x52,  # IHDR
    0x00, 0x00, 0x00, 0x01, 0x00, 0x00, 0x00, 0x01,  # 1x1
    0x08, 0x02, 0x00, 0x00, 0x00, 0x90, 0x77, 0x53, 0xDE,
    0x00, 0x00, 0x00, 0x0C, 0x49, 0x44, 0x41, 0x54,  # IDAT
    0x08, 0xD7, 0x63, 0xF8, 0xFF, 0xFF, 0x3F, 0x00,
    0x05, 0xFE, 0x02, 0xFE, 0xA3, 0x1A, 0x8D, 0xEB,
    0x00, 0x00, 0x00, 0x00, 0x49, 0x45, 0x4E, 0x44,  # IEND
    0xAE, 0x42, 0x60, 0x82,
])


# Create a test-specific app to avoid lifespan conflicts
def create_test_app():
    """Create a FastAPI app configured for testing (no database lifespan)."""
    from fastapi import FastAPI

    from bazaar import __version__

    # Empty lifespan for testing - we manage the database ourselves
    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        yield

    test_app = FastAPI(
        title="Bazaar Test",
        version=__version__,
        lifespan=test_lifespan,
    )

    # Copy routes from the main app
    from bazaar.main import app as main_app

    for route in main_app.routes:
        test_app.routes.append(route)

    return test_app


_test_app = None


def get_test_app():
    """Get the test app singleton."""
    global _test_app
    if _test_app is None:
        _test_app = create_test_app()
    return _test_app


def make_token(user_id: str = "user_1", role: str | None = "merchant", merchant_id: str | None = MERCHANT_ID,
               in_metadata: bool = False) -> str:
    """Mint a bearer token shaped like the identity provider's session token."""
    claims: dict[str, Any] = {"sub": user_id}
    metadata = {k: v for k, v in (("role", role), ("merchantId", merchant_id)) if v}
    if in_metadata:
        claims["public_metadata"] = metadata
    else:
        if role:
            claims["role"] = role
        if merchant_id:
            claims["merchant_id"] = merchant_id
    return create_access_token(data=claims)


@pytest.fixture
def session_manager() -> ImportSessionManager:
    """A fresh session manager injected into the import routes."""
    from bazaar.main import app as main_app

    manager = ImportSessionManager()
    # Copied routes resolve overrides through the app they were registered on
    apps = (get_test_app(), main_app)
    for app in apps:
        app.dependency_overrides[get_session_manager] = lambda: manager
    yield manager
    for app in apps:
        app.dependency_overrides.pop(get_session_manager, None)


@pytest_asyncio.fixture(scope="function")
async def client(session_manager) -> AsyncGenerator[AsyncClient, None]:
    """Async client authenticated as a merchant user of MERCHANT_ID."""
    transport = ASGITransport(app=get_test_app())
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": f"Bearer {make_token()}"},
    ) as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def unauthenticated_client(session_manager) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client without authentication."""
    transport = ASGITransport(app=get_test_app())
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": f"Bearer {make_token(user_id='admin_1', role='admin', merchant_id=None)}"}


@pytest_asyncio.fixture(scope="function")
async def mongo_client():
    """MongoDB client for integration tests; skips when no server is reachable."""
    client = AsyncIOMotorClient(
        TEST_MONGODB_URL,
        maxPoolSize=10,
        minPoolSize=1,
        serverSelectionTimeoutMS=2000,
    )
    try:
        await client.admin.command("ping")
    except PyMongoError:
        client.close()
        pytest.skip(f"MongoDB not reachable at {TEST_MONGODB_URL}")
    yield client
    client.close()


@pytest_asyncio.fixture(scope="function")
async def init_test_db(mongo_client):
    """Initialize Beanie with a unique test database, dropped after the test."""
    db_name = f"test_bazaar_{uuid.uuid4().hex[:8]}"
    db = mongo_client[db_name]

    await init_beanie(
        database=db,
        document_models=get_document_models(),
    )
    yield db

    await mongo_client.drop_database(db_name)


@pytest.fixture
def sample_image_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def make_zip() -> Callable[[dict[str, bytes]], bytes]:
    """Build an in-memory ZIP archive from a name -> content mapping."""

    def _make_zip(files: dict[str, bytes]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for name, content in files.items():
                archive.writestr(name, content)
        return buffer.getvalue()

    return _make_zip


@pytest.fixture
def make_damaged_zip() -> Callable[[dict[str, bytes], str], bytes]:
    """Build a stored (uncompressed) ZIP whose ``damaged`` member fails its CRC check."""

    def _make_damaged_zip(files: dict[str, bytes], damaged: str) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_STORED) as archive:
            for name, content in files.items():
                archive.writestr(name, content)
        data = buffer.getvalue()
        original = files[damaged]
        flipped = bytes([original[0] ^ 0xFF]) + original[1:]
        assert data.count(original) == 1
        return data.replace(original, flipped)

    return _make_damaged_zip


@pytest.fixture
def make_csv() -> Callable[..., bytes]:
    """Render product rows as CSV bytes using the template columns."""

    def _make_csv(rows: list[dict[str, Any]], headers: list[str] | None = None) -> bytes:
        return generate_csv(headers or TEMPLATE_HEADERS, rows).encode("utf-8")

    return _make_csv
