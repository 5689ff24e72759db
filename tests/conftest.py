"""Shared fixtures: a throwaway SQLite store per test and seed helpers."""

import itertools
import os
import sys
import tempfile

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

# Must be set before config/db are imported anywhere
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.mkdtemp(prefix="dispatch-tests-"), "app.db"
)
os.environ["DB_CREATE_ALL"] = "false"
os.environ["DISPATCH_WEBHOOK_URL"] = ""
os.environ["TIMELINE_POSITION_SAMPLE_SECONDS"] = "0"

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import models  # noqa: F401
from db.database import Base, get_db
from models.driver import Driver
from models.order import Order, OrderItem
from models.vehicle import Vehicle
from services import dispatch_events

_seq = itertools.count(1)


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP client against the app, wired to the per-test store."""
    from main import app

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _isolated_hooks():
    saved = list(dispatch_events._subscribers)
    dispatch_events._subscribers.clear()
    yield
    dispatch_events._subscribers[:] = saved


@pytest.fixture
def reload(db):
    """Fetch a fresh copy of a row, bypassing whatever the session holds."""
    async def _reload(model, pk):
        result = await db.execute(
            select(model).where(model.id == pk).execution_options(populate_existing=True)
        )
        return result.scalar_one()
    return _reload


# ── Seed helpers ───────────────────────────────────────────

@pytest.fixture
def make_order(db):
    async def _make(
        center="NORTH",
        status="READY_FOR_DISPATCH",
        priority="NORMAL",
        customer_name=None,
        order_date=None,
    ):
        n = next(_seq)
        order = Order(
            order_code=f"ORD-TEST-{n:04d}",
            customer_name=customer_name or f"Customer {n}",
            delivery_address=f"{n} Test Street",
            items=[OrderItem(product_ref=f"SKU-{n}", quantity=2, unit_price=5.0)],
            total_amount=10.0,
            priority=priority,
            delivery_center=center,
            status=status,
        )
        if order_date is not None:
            order.order_date = order_date
        db.add(order)
        await db.commit()
        return order
    return _make


@pytest.fixture
def make_driver(db):
    async def _make(center="NORTH", approval_status="APPROVED", active_status="ACTIVE", full_name=None):
        n = next(_seq)
        driver = Driver(
            full_name=full_name or f"Driver {n}",
            email=f"driver{n}@example.com",
            phone=f"555010{n:04d}",
            center=center,
            approval_status=approval_status,
            active_status=active_status,
        )
        db.add(driver)
        await db.commit()
        return driver
    return _make


@pytest.fixture
def make_vehicle(db):
    async def _make(center="NORTH", active_status="ACTIVE"):
        n = next(_seq)
        vehicle = Vehicle(
            vehicle_code=f"VH-{n:04d}",
            model="Transit",
            license_plate=f"TST-{n:04d}",
            vehicle_type="VAN",
            center=center,
            active_status=active_status,
        )
        db.add(vehicle)
        await db.commit()
        return vehicle
    return _make
