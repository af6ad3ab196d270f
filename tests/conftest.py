import json
import os
import tempfile

# settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("UPLOAD_FOLDER", tempfile.mkdtemp(prefix="food_explorer_uploads_"))

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from food_explorer.auth import get_password_hash
from food_explorer.database import Database
from food_explorer.main import create_app
from food_explorer.models import User
from food_explorer.storage import DiskStorage


class RecordingStorage(DiskStorage):
    """DiskStorage that remembers every filename it was asked to delete."""

    def __init__(self, upload_folder: str):
        super().__init__(upload_folder)
        self.deleted = []

    async def delete_file(self, filename: str) -> None:
        self.deleted.append(filename)
        await super().delete_file(filename)


# --- 1) Fresh SQLite file and upload folder per test ---
@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.create_all()
    yield db
    await db.drop_all()
    await db.dispose()


@pytest.fixture
def storage(tmp_path):
    return RecordingStorage(str(tmp_path / "uploads"))


@pytest_asyncio.fixture
async def db_session(database):
    async with database.session() as session:
        yield session


@pytest_asyncio.fixture
async def client(database, storage):
    app = create_app(database=database, storage=storage)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# --- 2) Seed users: one admin, two customers ---
@pytest_asyncio.fixture(autouse=True)
async def seed_users(db_session: AsyncSession):
    admin = User(
        name="Admin",
        email="admin@email.com",
        password=get_password_hash("adminpass"),
        is_admin=True,
    )
    customer = User(
        name="Customer",
        email="customer@email.com",
        password=get_password_hash("customerpass"),
        is_admin=False,
    )
    other = User(
        name="Other",
        email="other@email.com",
        password=get_password_hash("otherpass"),
        is_admin=False,
    )
    db_session.add_all([admin, customer, other])
    await db_session.commit()
    return {"admin": admin, "customer": customer, "other": other}


# --- 3) Helpers to grab JWT tokens ---
async def _login(client: AsyncClient, email: str, password: str) -> str:
    r = await client.post("/sessions", data={"username": email, "password": password})
    assert r.status_code == 200
    return r.json()["token"]


@pytest_asyncio.fixture
async def admin_token(client):
    return await _login(client, "admin@email.com", "adminpass")


@pytest_asyncio.fixture
async def customer_token(client):
    return await _login(client, "customer@email.com", "customerpass")


@pytest_asyncio.fixture
async def other_token(client):
    return await _login(client, "other@email.com", "otherpass")


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_token):
    return auth(admin_token)


@pytest.fixture
def customer_headers(customer_token):
    return auth(customer_token)


@pytest.fixture
def other_headers(other_token):
    return auth(other_token)


@pytest.fixture
def make_dish(client, admin_token):
    async def _make_dish(name="Salada Ravanello", description="Rabanetes, folhas verdes e molho agridoce",
                         category="meal", price=49.97, ingredients=("alface", "rabanete"),
                         image=("salad.png", b"\x89PNG fake image", "image/png")):
        data = {
            "name": name,
            "description": description,
            "category": category,
            "price": str(price),
            "ingredients": json.dumps(list(ingredients)),
        }
        r = await client.post(
            "/dishes", data=data, files={"image": image}, headers=auth(admin_token)
        )
        assert r.status_code == 201, r.text
        return r.json()["id"]
    return _make_dish

