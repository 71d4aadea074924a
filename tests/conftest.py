import fnmatch
import os
import time
from typing import AsyncGenerator, Dict, List, Optional

# Settings are read at import time; configure them before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_MAX_REQUESTS"] = "10000"

import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.models import User
from app.auth.security import create_access_token, hash_password
from app.core.cache import ResponseCache
from app.core.enums import UserRole
from app.core.models import Classroom, School, Student
from app.db.init_db import create_tables
from app.db.session import get_db
from app.main import create_app

TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_PASSWORD = "Str0ng@Pass"


class FakeRedis:
    """In-memory stand-in for the subset of ``redis.asyncio.Redis`` the cache uses."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._expires: Dict[str, float] = {}
        self.commands: List[str] = []

    def _alive(self, key: str) -> bool:
        expires_at = self._expires.get(key)
        if expires_at is not None and expires_at <= time.monotonic():
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return key in self._data

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[str]:
        self.commands.append("GET")
        return self._data[key] if self._alive(key) else None

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self.commands.append("SET")
        self._data[key] = value
        if ex is not None:
            self._expires[key] = time.monotonic() + ex
        else:
            self._expires.pop(key, None)
        return True

    async def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if self._alive(key))

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return removed

    async def scan_iter(self, match: str = "*", count: Optional[int] = None):
        for key in list(self._data):
            if self._alive(key) and fnmatch.fnmatchcase(key, match):
                yield key

    def ttl(self, key: str) -> int:
        if not self._alive(key):
            return -2
        expires_at = self._expires.get(key)
        return -1 if expires_at is None else int(expires_at - time.monotonic())

    def expires_in(self, key: str) -> float:
        """Seconds until the key expires; infinite for keys without a TTL."""
        expires_at = self._expires.get(key)
        return float("inf") if expires_at is None else expires_at - time.monotonic()

    def keys_with_prefix(self, prefix: str) -> List[str]:
        return sorted(key for key in self._data if key.startswith(prefix) and self._alive(key))

    async def aclose(self) -> None:
        return None


class BrokenRedis:
    """Every command fails as if the server were unreachable."""

    async def _fail(self, *args, **kwargs):
        raise RedisConnectionError("Connection refused")

    ping = get = set = exists = delete = _fail

    async def scan_iter(self, match: str = "*", count: Optional[int] = None):
        raise RedisConnectionError("Connection refused")
        yield  # pragma: no cover

    async def aclose(self) -> None:
        return None


@pytest.fixture()
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging data directly in the store."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def cache(fake_redis: FakeRedis) -> ResponseCache:
    return ResponseCache(fake_redis)


@pytest.fixture()
def app(session_factory, cache: ResponseCache):
    application = create_app(cache=cache)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture()
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(user.id, user.role, user.school_id)
    return {"Authorization": f"Bearer {token}"}


async def create_school(db: AsyncSession, name: str = "Springfield High") -> School:
    school = School(name=name, address="742 Evergreen Terrace", contact_email="office@springfield.edu")
    db.add(school)
    await db.commit()
    await db.refresh(school)
    return school


async def create_classroom(db: AsyncSession, school: School, name: str = "Room 101", capacity: int = 30) -> Classroom:
    classroom = Classroom(school_id=school.id, name=name, capacity=capacity, resources=["projector"])
    db.add(classroom)
    await db.commit()
    await db.refresh(classroom)
    return classroom


async def create_student(
    db: AsyncSession,
    school: School,
    name: str = "Bart Simpson",
    classroom: Optional[Classroom] = None,
) -> Student:
    student = Student(
        school_id=school.id,
        classroom_id=classroom.id if classroom else None,
        name=name,
        age=10,
    )
    db.add(student)
    await db.commit()
    await db.refresh(student)
    return student


async def create_user(
    db: AsyncSession,
    username: str,
    role: UserRole,
    school: Optional[School] = None,
    password: str = TEST_PASSWORD,
) -> User:
    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role.value,
        school_id=school.id if school else None,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture()
async def school(db_session: AsyncSession) -> School:
    return await create_school(db_session, "Springfield High")


@pytest.fixture()
async def other_school(db_session: AsyncSession) -> School:
    return await create_school(db_session, "Shelbyville High")


@pytest.fixture()
async def superadmin(db_session: AsyncSession) -> User:
    return await create_user(db_session, "root", UserRole.SUPERADMIN)


@pytest.fixture()
async def schooladmin(db_session: AsyncSession, school: School) -> User:
    return await create_user(db_session, "skinner", UserRole.SCHOOLADMIN, school)


@pytest.fixture()
def superadmin_headers(superadmin: User) -> Dict[str, str]:
    return auth_headers(superadmin)


@pytest.fixture()
def schooladmin_headers(schooladmin: User) -> Dict[str, str]:
    return auth_headers(schooladmin)
