"""Appointment request workflow: pending -> approved | rejected.

Approval re-checks overlap against the confirmed appointments at decision time
and auto-rejects on conflict; a clean approval materializes an Appointment.
"""
import logging
from datetime import UTC, date, datetime, time, timedelta
from typing import NamedTuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_desk.core.errors import (
    InvalidStateError,
    NotFoundError,
    SchedulingConflict,
    ValidationError,
)
from appointment_desk.models.appointment import Appointment, AppointmentCreate
from appointment_desk.models.appointment_request import (
    AppointmentRequest,
    AppointmentRequestCreate,
    RequestStatus,
    ensure_transition,
)
from appointment_desk.models.user import User
from appointment_desk.services.appointment_service import create_appointment
from appointment_desk.services.overlap_service import check_no_overlap
from appointment_desk.services.time_range import TimeRange

logger = logging.getLogger(__name__)


class DecisionOutcome(NamedTuple):
    request: AppointmentRequest
    requested: RequestStatus
    appointment: Appointment | None = None
    reason: str | None = None

    @property
    def status(self) -> RequestStatus:
        return self.request.status

    @property
    def auto_rejected(self) -> bool:
        return self.requested == RequestStatus.APPROVED and self.request.status == RequestStatus.REJECTED


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _appointment_data(request: AppointmentRequest) -> AppointmentCreate:
    return AppointmentCreate(
        name=request.name,
        day=request.day,
        start_time=request.start_time,
        end_time=request.end_time,
        reason=request.reason,
        counterpart=request.counterpart,
        phone=request.phone,
    )


async def submit_request(
    session: AsyncSession, user_id: int, data: AppointmentRequestCreate
) -> AppointmentRequest:
    """Create a pending request. Conflicting pending requests may coexist."""
    if not await session.get(User, user_id):
        raise NotFoundError("Requesting user not found.")
    name = (data.name or "").strip()
    counterpart = (data.counterpart or "").strip()
    if not name or not counterpart:
        raise ValidationError("Name and counterpart are required.")
    time_range = TimeRange.parse(data.start_time, data.end_time)
    request = AppointmentRequest(
        user_id=user_id,
        name=name,
        day=data.day,
        reason=(data.reason or "").strip() or None,
        counterpart=counterpart,
        phone=(data.phone or "").strip() or None,
        status=RequestStatus.PENDING,
        **time_range.as_dict(),
    )
    session.add(request)
    await session.flush()
    await session.refresh(request)
    logger.info("Appointment request %s submitted by user %s for %s", request.id, user_id, request.day)
    return request


async def get_request(session: AsyncSession, request_id: int) -> AppointmentRequest:
    request = await session.get(AppointmentRequest, request_id)
    if not request:
        raise NotFoundError("Appointment request not found.")
    return request


async def get_requester(session: AsyncSession, request: AppointmentRequest) -> User | None:
    return await session.get(User, request.user_id)


async def list_requests(
    session: AsyncSession,
    status: RequestStatus | None = None,
    day: date | None = None,
    from_date: date | None = None,
    user_id: int | None = None,
) -> list[AppointmentRequest]:
    q = select(AppointmentRequest).order_by(
        AppointmentRequest.day, AppointmentRequest.start_time, AppointmentRequest.id
    )
    if status:
        q = q.where(AppointmentRequest.status == RequestStatus(status))
    if day:
        q = q.where(AppointmentRequest.day == day)
    if from_date:
        q = q.where(AppointmentRequest.day >= from_date)
    if user_id is not None:
        q = q.where(AppointmentRequest.user_id == user_id)
    result = await session.execute(q)
    return list(result.scalars().all())


async def _auto_reject(
    session: AsyncSession, request: AppointmentRequest, conflict: SchedulingConflict
) -> DecisionOutcome:
    request.transition(RequestStatus.REJECTED)
    session.add(request)
    await session.flush()
    logger.info(
        "Approval of request %s auto-rejected: conflicts with appointment %s",
        request.id,
        conflict.conflicting_id,
    )
    return DecisionOutcome(request, RequestStatus.APPROVED, None, conflict.message)


async def decide_request(
    session: AsyncSession, request_id: int, decision: RequestStatus | str
) -> DecisionOutcome:
    try:
        decision = RequestStatus(decision)
    except ValueError:
        raise ValidationError("Status must be either approved or rejected.") from None
    if decision == RequestStatus.PENDING:
        raise ValidationError("Status must be either approved or rejected.")

    request = await get_request(session, request_id)
    ensure_transition(request.status, decision)

    if decision == RequestStatus.REJECTED:
        request.transition(RequestStatus.REJECTED)
        session.add(request)
        await session.flush()
        logger.info("Appointment request %s rejected", request.id)
        return DecisionOutcome(request, decision)

    time_range = TimeRange.parse(request.start_time, request.end_time)
    try:
        await check_no_overlap(session, request.day, time_range)
        appointment = await create_appointment(session, _appointment_data(request))
    except SchedulingConflict as e:
        return await _auto_reject(session, request, e)

    request.transition(RequestStatus.APPROVED)
    request.appointment_id = appointment.id
    session.add(request)
    await session.flush()
    logger.info("Appointment request %s approved as appointment %s", request.id, appointment.id)
    return DecisionOutcome(request, decision, appointment)


async def cancel_request(session: AsyncSession, request_id: int) -> None:
    """Delete a pending request. Decided requests cannot be cancelled."""
    request = await get_request(session, request_id)
    if request.status != RequestStatus.PENDING:
        raise InvalidStateError("Only pending appointment requests can be cancelled.")
    await session.delete(request)
    await session.flush()
    logger.info("Appointment request %s cancelled", request_id)


def _last_expired_day(now: datetime, retention_hours: int) -> date:
    """Latest day whose midnight lies strictly before now - retention_hours."""
    cutoff = now - timedelta(hours=retention_hours)
    if cutoff.time() > time.min:
        return cutoff.date()
    return cutoff.date() - timedelta(days=1)


async def purge_expired_rejections(
    session: AsyncSession, now: datetime | None = None, retention_hours: int = 24
) -> int:
    """Delete rejected requests whose day fell more than `retention_hours` behind `now`.

    Compares the request's day, not its created_at. Days are local wall-clock
    dates, so `now` defaults to local time.
    """
    now = now or datetime.now()
    last_day = _last_expired_day(now, retention_hours)
    result = await session.execute(
        delete(AppointmentRequest).where(
            AppointmentRequest.status == RequestStatus.REJECTED,
            AppointmentRequest.day <= last_day,
        )
    )
    await session.flush()
    return result.rowcount or 0


async def reconcile_approved_requests(session: AsyncSession) -> tuple[int, int]:
    """Repair approved requests that carry no appointment.

    `decide_request` links the appointment in the same flush as the approval, so
    such rows only come from writes made outside this service (manual SQL,
    imports).

    The appointment is re-created when the slot is still free; otherwise the
    request is reverted to rejected. Returns (restored, reverted).
    """
    result = await session.execute(
        select(AppointmentRequest).where(
            AppointmentRequest.status == RequestStatus.APPROVED,
            AppointmentRequest.appointment_id.is_(None),
        )
    )
    restored = reverted = 0
    for request in result.scalars().all():
        try:
            appointment = await create_appointment(session, _appointment_data(request))
        except SchedulingConflict:
            request.status = RequestStatus.REJECTED
            request.decided_at = _utc_naive_now()
            session.add(request)
            await session.flush()
            reverted += 1
            logger.warning("Approved request %s reverted to rejected: its slot is taken", request.id)
            continue
        request.appointment_id = appointment.id
        session.add(request)
        await session.flush()
        restored += 1
        logger.info("Approved request %s restored as appointment %s", request.id, appointment.id)
    return restored, reverted
