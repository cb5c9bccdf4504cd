import asyncio
import os
from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_appointments.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from appointment_desk.models import Appointment, AppointmentCreate, User  # noqa: E402

DAY = date(2025, 6, 1)


@pytest.fixture
def run_db():
    """Run an async scenario against a fresh in-memory database; returns its result."""

    def runner(scenario):
        async def _main():
            engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
            async with engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
            try:
                async with maker() as session:
                    return await scenario(session)
            finally:
                await engine.dispose()

        return asyncio.run(_main())

    return runner


def appointment_data(start: str, end: str, day: date = DAY, **overrides) -> AppointmentCreate:
    fields = {
        "name": "Budget review",
        "day": day,
        "start_time": start,
        "end_time": end,
        "reason": "finance",
        "counterpart": "Ms. Perera",
    }
    fields.update(overrides)
    return AppointmentCreate(**fields)


async def add_user(session: AsyncSession, email: str = "staff@example.com", is_admin: bool = False) -> User:
    user = User(email=email, full_name="Staff Member", hashed_password="x", is_admin=is_admin)
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user


def numbering(appointments: list[Appointment]) -> list[tuple[str, int]]:
    return [(a.start_time, a.sequence_number) for a in sorted(appointments, key=lambda a: a.start_time)]
