"""Shared pytest fixtures for Promptify tests."""
import os

# Settings are read at import time; set them before importing promptify.
os.environ.setdefault("SECRET", "test-secret-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./promptify-test.db")
os.environ["STARTING_COINS"] = "10"

import pytest
from httpx import ASGITransport, AsyncClient

from promptify.database import Base, build_engine, build_session_maker, get_db
from promptify.errors import NotAuthenticated
from promptify.main import app
from promptify.models import Profile, Prompt, PromptSecret, Role
from promptify.schemas import Identity
from promptify.utils import require_identity


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'promptify.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_profile(session_maker):
    async def _make(profile_id="user-1", coins=10, role=Role.user):
        async with session_maker() as session:
            session.add(Profile(id=profile_id, email=f"{profile_id}@example.com", name=profile_id, coins=coins, role=role))
            await session.commit()
        return profile_id
    return _make


@pytest.fixture
def make_prompt(session_maker):
    async def _make(title="Neon city", secret="a neon city at dusk, 35mm, volumetric fog", **fields):
        async with session_maker() as session:
            prompt = Prompt(title=title, unlock_count=0, **fields)
            session.add(prompt)
            await session.flush()
            if secret is not None:
                session.add(PromptSecret(prompt_id=prompt.id, secret_text=secret))
            await session.commit()
            return prompt.id
    return _make


@pytest.fixture
def fetch(session_maker):
    """Read a row in a fresh session, bypassing any identity map."""
    async def _fetch(model, key):
        async with session_maker() as session:
            return await session.get(model, key)
    return _fetch


class IdentitySwitch:
    def __init__(self):
        self.identity = None

    def sign_in(self, user_id="user-1", **claims):
        self.identity = Identity(id=user_id, email=claims.pop("email", f"{user_id}@example.com"), **claims)
        return self.identity

    def sign_out(self):
        self.identity = None


@pytest.fixture
def identity():
    return IdentitySwitch()


@pytest.fixture
async def client(session_maker, identity):
    async def _get_db():
        async with session_maker() as session:
            yield session

    async def _require_identity():
        if identity.identity is None:
            raise NotAuthenticated()
        return identity.identity

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[require_identity] = _require_identity
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
