"""Pytest configuration and fixtures for LoRaWatch tests."""

from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from lorawatch.main import fastapi_app as app
from lorawatch.models.base import Base
# Import all models to ensure they're registered with Base.metadata
from lorawatch.models import (
    Alarm, AlarmWindow, AutomationRule, Device, DeviceState, Tenant, Zone, ZoneDevice,
)
from lorawatch.core.deps import get_db, get_redis

# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DEV_EUI = "a84041000181c061"
RELAY_DEV_EUI = "a8404127a1839e2b"


class FixedClock:
    """Clock pinned to a settable instant."""

    def __init__(self, now: datetime):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now


@pytest.fixture
def fixed_clock() -> FixedClock:
    """Clock pinned to Wednesday 2024-05-15 12:00 UTC."""
    return FixedClock(datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine with shared connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine) -> async_sessionmaker:
    """Session factory bound to the test engine, as the stores expect."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Redis client double for stream and dedup calls."""
    redis = AsyncMock()
    redis.set = AsyncMock(return_value=True)
    redis.xadd = AsyncMock(return_value=b"1-0")
    redis.xack = AsyncMock(return_value=1)
    return redis


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, mock_redis) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database and Redis overrides."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_tenant(db_session: AsyncSession) -> Tenant:
    """Create a test organization."""
    tenant = Tenant(id="tenant-1", name="Acme Foods")
    db_session.add(tenant)
    await db_session.commit()
    return tenant


@pytest_asyncio.fixture
async def test_device(db_session: AsyncSession, test_tenant: Tenant) -> Device:
    """Create an EM300-TH climate sensor placed in a cold room."""
    device = Device(
        dev_eui=DEV_EUI,
        name="Cold Room Sensor",
        device_type=12,
        temperature_calibration=0.5,
        humidity_calibration=0.0,
        tags={},
        tenant_id=test_tenant.id,
    )
    zone = Zone(name="Cold Room 1", category=0, tenant_id=test_tenant.id)
    db_session.add_all([device, zone])
    await db_session.flush()
    db_session.add(ZoneDevice(zone_id=zone.id, dev_eui=DEV_EUI))
    await db_session.commit()
    return device


@pytest_asyncio.fixture
async def test_alarm(db_session: AsyncSession, test_device: Device) -> Alarm:
    """Create a temperature alarm with a 10..20 band."""
    alarm = Alarm(
        dev_eui=test_device.dev_eui,
        min_threshold=10.0,
        max_threshold=20.0,
        metrics=["temperature"],
        is_time_limit_active=False,
        zone_category=0,
        is_active=True,
        recipient_ids=["user-1", "user-2"],
    )
    db_session.add(alarm)
    await db_session.commit()
    return alarm


@pytest_asyncio.fixture
async def test_relay_rule(db_session: AsyncSession, test_device: Device) -> AutomationRule:
    """Create a rule switching an LT22222L relay when temperature exceeds 30."""
    db_session.add(
        Device(dev_eui=RELAY_DEV_EUI, name="Fan Relay", device_type=6, tags={})
    )
    rule = AutomationRule(
        sender_dev_eui=test_device.dev_eui,
        sender_device_type=12,
        receiver_dev_eui=RELAY_DEV_EUI,
        receiver_device_type=6,
        condition="temperature,over,30",
        action="AwEA",
        trigger_type="device",
        is_active=True,
    )
    db_session.add(rule)
    await db_session.commit()
    return rule
