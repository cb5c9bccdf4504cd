import logging
from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_desk.api.deps import get_current_user, get_session, require_admin
from appointment_desk.api.schemas.appointment import PurgeResponse
from appointment_desk.api.schemas.appointment_request import (
    AppointmentRequestIn,
    DecisionIn,
    DecisionResponse,
    ReconcileResponse,
)
from appointment_desk.core.config import settings
from appointment_desk.models.appointment import AppointmentPublic
from appointment_desk.models.appointment_request import (
    AppointmentRequest,
    AppointmentRequestPublic,
    RequestStatus,
)
from appointment_desk.models.user import User
from appointment_desk.services.email_service import send_request_decision_email
from appointment_desk.services.request_service import (
    cancel_request,
    decide_request,
    get_request,
    get_requester,
    list_requests,
    purge_expired_rejections,
    reconcile_approved_requests,
    submit_request,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/requests", tags=["requests"])


def _to_public(r: AppointmentRequest) -> AppointmentRequestPublic:
    return AppointmentRequestPublic.model_validate(r)


@router.post("", response_model=AppointmentRequestPublic, status_code=status.HTTP_201_CREATED)
async def add_request(
    body: AppointmentRequestIn,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> AppointmentRequestPublic:
    request = await submit_request(session, current_user.id, body.to_create())
    return _to_public(request)


@router.get("", response_model=list[AppointmentRequestPublic])
async def get_requests(
    status_param: RequestStatus | None = Query(None, alias="status"),
    day: date | None = Query(None),
    from_date: date | None = Query(None),
    user_id: int | None = Query(None),
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
) -> list[AppointmentRequestPublic]:
    requests = await list_requests(
        session, status=status_param, day=day, from_date=from_date, user_id=user_id
    )
    return [_to_public(r) for r in requests]


@router.get("/mine", response_model=list[AppointmentRequestPublic])
async def get_my_requests(
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[AppointmentRequestPublic]:
    return [_to_public(r) for r in await list_requests(session, user_id=current_user.id)]


@router.delete("/rejected", response_model=PurgeResponse)
async def purge_rejected_requests(
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
) -> PurgeResponse:
    n = await purge_expired_rejections(session, retention_hours=settings.rejected_request_retention_hours)
    logger.info("Admin %s purged %d rejected request(s)", admin.email, n)
    return PurgeResponse(deleted=n)


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_requests(
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
) -> ReconcileResponse:
    restored, reverted = await reconcile_approved_requests(session)
    return ReconcileResponse(restored=restored, reverted=reverted)


@router.get("/{request_id}", response_model=AppointmentRequestPublic)
async def get_one_request(
    request_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> AppointmentRequestPublic:
    request = await get_request(session, request_id)
    if request.user_id != current_user.id and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to view this appointment request",
        )
    return _to_public(request)


@router.put("/{request_id}/status", response_model=DecisionResponse)
async def decide(
    request_id: int,
    body: DecisionIn,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Approve or reject a pending request.

    An approval whose slot is no longer free auto-rejects the request and
    answers 409; the rejection is still committed and the requester notified.
    """
    outcome = await decide_request(session, request_id, body.status)
    request = outcome.request

    requester = await get_requester(session, request)
    if requester:
        background_tasks.add_task(
            send_request_decision_email,
            to_email=requester.email,
            recipient_name=requester.full_name or request.counterpart,
            status=request.status.value,
            day=request.day,
            start_time=request.start_time,
            end_time=request.end_time,
            reason=outcome.reason,
        )
    else:
        logger.warning("Requester %s of request %s not found; no notification sent", request.user_id, request.id)

    if outcome.auto_rejected:
        response = DecisionResponse(
            request=_to_public(request),
            message=f"Approval failed and the request was rejected: {outcome.reason}",
        )
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=jsonable_encoder(response),
            background=background_tasks,
        )
    return DecisionResponse(
        request=_to_public(request),
        appointment=AppointmentPublic.model_validate(outcome.appointment) if outcome.appointment else None,
        message=f"Appointment request {request.status.value} successfully",
    )


@router.delete("/{request_id}")
async def cancel(
    request_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> dict:
    request = await get_request(session, request_id)
    if request.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the requester can cancel this appointment request",
        )
    await cancel_request(session, request_id)
    return {"message": "Appointment request cancelled"}
