from datetime import UTC, date, datetime
from enum import Enum

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from appointment_desk.core.errors import InvalidStateError


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Only pending requests can move; approved and rejected are terminal.
_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}


def ensure_transition(current: RequestStatus, target: RequestStatus) -> None:
    if target not in _TRANSITIONS[RequestStatus(current)]:
        raise InvalidStateError(
            f"Appointment request is already {RequestStatus(current).value}; "
            f"it cannot become {RequestStatus(target).value}."
        )


class AppointmentRequestBase(SQLModel):
    name: str
    day: date = Field(index=True)
    start_time: str = Field(max_length=5)
    end_time: str = Field(max_length=5)
    reason: str | None = None
    counterpart: str
    phone: str | None = None


class AppointmentRequest(AppointmentRequestBase, table=True):
    __tablename__ = "appointment_requests"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    status: RequestStatus = Field(
        default=RequestStatus.PENDING,
        sa_column=sa.Column(
            sa.Enum(
                RequestStatus,
                name="request_status",
                native_enum=False,
                length=16,
                values_callable=lambda e: [m.value for m in e],
            ),
            nullable=False,
            index=True,
        ),
    )
    # Set once an approval has materialized an appointment. Not a foreign key:
    # the link must survive deletion of the appointment itself.
    appointment_id: int | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now)
    decided_at: datetime | None = None

    def transition(self, target: RequestStatus) -> None:
        ensure_transition(self.status, target)
        self.status = target
        self.decided_at = _utc_naive_now()


class AppointmentRequestCreate(SQLModel):
    name: str
    day: date
    start_time: str
    end_time: str
    reason: str | None = None
    counterpart: str
    phone: str | None = None


class AppointmentRequestPublic(AppointmentRequestBase):
    id: int
    user_id: int
    status: RequestStatus
    appointment_id: int | None = None
    created_at: datetime
    decided_at: datetime | None = None
