from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_desk.api.deps import get_session
from appointment_desk.api.schemas.appointment import AvailableSlotsResponse, SlotInfo
from appointment_desk.services.slot_service import find_free_slots

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/available", response_model=AvailableSlotsResponse)
async def available_slots(
    date_param: date = Query(..., alias="date"),
    session: AsyncSession = Depends(get_session),
) -> AvailableSlotsResponse:
    """Free time ranges of the given day inside the working window, in chronological order."""
    slots = await find_free_slots(session, date_param)
    return AvailableSlotsResponse(
        date=date_param.isoformat(),
        slots=[SlotInfo(start_time=s.start_str, end_time=s.end_str) for s in slots],
    )
