import logging
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_desk.api.deps import get_current_user, get_session, require_admin
from appointment_desk.api.schemas.appointment import AppointmentIn, PurgeResponse
from appointment_desk.core.config import settings
from appointment_desk.models.appointment import Appointment, AppointmentPublic
from appointment_desk.models.user import User
from appointment_desk.services.appointment_service import (
    create_appointment,
    delete_appointment,
    delete_past_appointments,
    get_appointment,
    list_appointments,
    update_appointment,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/appointments", tags=["appointments"])


def _to_public(a: Appointment) -> AppointmentPublic:
    return AppointmentPublic.model_validate(a)


@router.post("", response_model=AppointmentPublic, status_code=status.HTTP_201_CREATED)
async def add_appointment(
    body: AppointmentIn,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
) -> AppointmentPublic:
    appointment = await create_appointment(session, body.to_create())
    return _to_public(appointment)


@router.get("", response_model=list[AppointmentPublic])
async def get_appointments(
    day: date | None = Query(None),
    from_date: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[AppointmentPublic]:
    appointments = await list_appointments(session, day=day, from_date=from_date)
    return [_to_public(a) for a in appointments]


@router.delete("/past", response_model=PurgeResponse)
async def purge_past_appointments(
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
) -> PurgeResponse:
    """Admin endpoint: delete appointments whose day has passed."""
    n = await delete_past_appointments(session, date.today(), settings.appointment_retention_days or 0)
    logger.info("Admin %s purged %d past appointment(s)", admin.email, n)
    return PurgeResponse(deleted=n)


@router.get("/{appointment_id}", response_model=AppointmentPublic)
async def get_one_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> AppointmentPublic:
    return _to_public(await get_appointment(session, appointment_id))


@router.put("/{appointment_id}", response_model=AppointmentPublic)
async def edit_appointment(
    appointment_id: int,
    body: AppointmentIn,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
) -> AppointmentPublic:
    appointment = await update_appointment(session, appointment_id, body.to_create())
    return _to_public(appointment)


@router.delete("/{appointment_id}")
async def remove_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
) -> dict:
    await delete_appointment(session, appointment_id)
    return {"message": "Appointment deleted and appointment numbers reassigned"}
