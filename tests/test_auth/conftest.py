import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import NullPool

from shared.database import get_engine, get_session

from auth_service.db import Base, get_db
from auth_service.main import app


@pytest_asyncio.fixture
async def auth_sessions(tmp_path):
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield get_session(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def auth_client(auth_sessions):
    async def override_get_db():
        async with auth_sessions() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def registration():
    def _body(**overrides):
        body = {
            "email": "Alice@Example.com",
            "password": "s3cret-pass",
            "fullName": "Alice Doe",
            "phone": "+1 555 0100",
            "role": "customer",
        }
        body.update(overrides)
        return body

    return _body
