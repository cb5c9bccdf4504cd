import asyncio
from datetime import date, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from conftest import add_user, appointment_data

from appointment_desk import main
from appointment_desk.core.config import settings
from appointment_desk.models.appointment_request import AppointmentRequestCreate, RequestStatus
from appointment_desk.services.appointment_service import create_appointment, list_appointments
from appointment_desk.services.request_service import decide_request, list_requests, submit_request


def _run_housekeeping_scenario(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Seed an old rejection plus a past and a future appointment, run housekeeping on 2025-06-01."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'housekeeping.db'}", poolclass=NullPool)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    monkeypatch.setattr(main, "async_session_maker", maker)

    async def _scenario():
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        async with maker() as session:
            user = await add_user(session)
            old = await submit_request(
                session,
                user.id,
                AppointmentRequestCreate(
                    name="Old", day=date(2025, 5, 1), start_time="09:00", end_time="10:00", counterpart="A"
                ),
            )
            await decide_request(session, old.id, "rejected")
            await create_appointment(session, appointment_data("09:00", "10:00", day=date(2025, 5, 1)))
            await create_appointment(session, appointment_data("09:00", "10:00", day=date(2025, 6, 10)))
            await session.commit()

        await main.run_housekeeping(datetime(2025, 6, 1, 8, 0))

        async with maker() as session:
            result = (
                await list_requests(session, status=RequestStatus.REJECTED),
                await list_appointments(session),
            )
        await engine.dispose()
        return result

    return asyncio.run(_scenario())


def test_default_housekeeping_purges_rejections_but_keeps_past_appointments(
    tmp_path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings, "appointment_retention_days", None)

    rejected, appointments = _run_housekeeping_scenario(tmp_path, monkeypatch)

    assert rejected == []
    assert [a.day for a in appointments] == [date(2025, 5, 1), date(2025, 6, 10)]


def test_housekeeping_sweeps_past_appointments_when_retention_configured(
    tmp_path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings, "appointment_retention_days", 0)

    rejected, appointments = _run_housekeeping_scenario(tmp_path, monkeypatch)

    assert rejected == []
    assert [a.day for a in appointments] == [date(2025, 6, 10)]


def test_housekeeping_failure_is_logged(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    def _broken():
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(main, "async_session_maker", _broken)

    asyncio.run(main.run_housekeeping(datetime(2025, 6, 1, 8, 0)))

    assert "Housekeeping failed" in caplog.text
