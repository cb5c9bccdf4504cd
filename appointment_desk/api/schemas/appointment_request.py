from datetime import date
from typing import Literal

from pydantic import BaseModel

from appointment_desk.api.schemas.appointment import TimeRangeIn
from appointment_desk.models.appointment import AppointmentPublic
from appointment_desk.models.appointment_request import AppointmentRequestCreate, AppointmentRequestPublic


class AppointmentRequestIn(BaseModel):
    name: str
    day: date
    time_range: TimeRangeIn
    reason: str | None = None
    counterpart: str
    phone: str | None = None

    def to_create(self) -> AppointmentRequestCreate:
        return AppointmentRequestCreate(
            name=self.name,
            day=self.day,
            start_time=self.time_range.start_time,
            end_time=self.time_range.end_time,
            reason=self.reason,
            counterpart=self.counterpart,
            phone=self.phone,
        )


class DecisionIn(BaseModel):
    status: Literal["approved", "rejected"]


class DecisionResponse(BaseModel):
    request: AppointmentRequestPublic
    appointment: AppointmentPublic | None = None
    message: str


class ReconcileResponse(BaseModel):
    restored: int
    reverted: int
