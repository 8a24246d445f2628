import itertools
import os
import uuid
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Ledger tests need transactions, i.e. a replica set (a single-node rs0 is enough).
TEST_MONGODB_URI = os.environ.get("TEST_MONGODB_URI", "mongodb://localhost:27017/?replicaSet=rs0")

os.environ.setdefault("MONGODB_URI", TEST_MONGODB_URI)
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["TELEGRAM_ADMIN_CHAT_ID"] = ""


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    from app.main import app
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def db():
    """Fresh database per test; skipped when no replica set is reachable."""
    from pymongo.errors import PyMongoError

    from app.db.init import close_db, create_client, init_db

    probe = create_client(TEST_MONGODB_URI, 1500)
    try:
        hello = await probe.admin.command("hello")
    except PyMongoError as e:
        pytest.skip(f"MongoDB not reachable at {TEST_MONGODB_URI}: {e}")
    finally:
        probe.close()
    if not hello.get("setName"):
        pytest.skip("MongoDB transactions need a replica set")

    name = f"kaiveni_test_{uuid.uuid4().hex[:10]}"
    mongo = await init_db(uri=TEST_MONGODB_URI, db_name=name)
    yield mongo[name]
    await mongo.drop_database(name)
    close_db()


@pytest.fixture
def pricing():
    from app.services.pricing import Pricing, StaticPricingProvider
    return StaticPricingProvider(Pricing(coin_price_mvr=Decimal("10.00"), cost_post=2, cost_connect=5))


@pytest.fixture
def fund(db):
    """Give a user coins the way production does: through a ledger entry."""
    from app.db.transaction import run_in_transaction
    from app.models.coin_ledger import LedgerReason
    from app.services import balance

    async def _fund(user_id, coins: int):
        async def _op(session):
            return await balance.apply_ledger_entry(
                session, user_id, coins, LedgerReason.OTHER, description="test funding"
            )
        return await run_in_transaction(_op)

    return _fund


@pytest.fixture
def make_user(db, fund):
    from app.models.user import User, UserRole, UserStatus

    counter = itertools.count()

    async def _make(status: UserStatus = UserStatus.APPROVED, coins: int = 0, role: UserRole = UserRole.USER):
        user = await User(
            username=f"user{next(counter)}",
            full_name="Test User",
            status=status,
            role=role,
        ).insert()
        if coins:
            await fund(user.id, coins)
        return await User.get(user.id)

    return _make


class Recorder:
    """Stands in for notify() / record_audit() and keeps the calls."""

    def __init__(self) -> None:
        self.notifications: list[tuple] = []
        self.audits: list[tuple] = []

    async def notify(self, user_id, kind, payload):
        self.notifications.append((user_id, kind, payload))

    async def audit(self, admin_id, action, entity, entity_id, meta=None, ip=None):
        self.audits.append((admin_id, action, entity, entity_id, meta))


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
