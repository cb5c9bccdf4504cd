from datetime import UTC, date, datetime
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class AppointmentBase(SQLModel):
    name: str
    day: date = Field(index=True)
    # zero-padded "HH:MM", so string order is chronological
    start_time: str = Field(max_length=5)
    end_time: str = Field(max_length=5)
    reason: str | None = None
    counterpart: str | None = None
    phone: str | None = None


class Appointment(AppointmentBase, table=True):
    __tablename__ = "appointments"
    id: int | None = Field(default=None, primary_key=True)
    sequence_number: int = Field(ge=1)
    created_at: datetime = Field(default_factory=_utc_naive_now)


class AppointmentCreate(SQLModel):
    name: str
    day: date
    start_time: str
    end_time: str
    reason: str | None = None
    counterpart: str | None = None
    phone: str | None = None


class AppointmentPublic(AppointmentBase):
    id: int
    sequence_number: int
    created_at: datetime
