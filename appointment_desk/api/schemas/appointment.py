from datetime import date

from pydantic import BaseModel

from appointment_desk.models.appointment import AppointmentCreate


class TimeRangeIn(BaseModel):
    start_time: str
    end_time: str


class AppointmentIn(BaseModel):
    name: str
    day: date
    time_range: TimeRangeIn
    reason: str | None = None
    counterpart: str | None = None
    phone: str | None = None

    def to_create(self) -> AppointmentCreate:
        return AppointmentCreate(
            name=self.name,
            day=self.day,
            start_time=self.time_range.start_time,
            end_time=self.time_range.end_time,
            reason=self.reason,
            counterpart=self.counterpart,
            phone=self.phone,
        )


class SlotInfo(BaseModel):
    start_time: str  # HH:MM
    end_time: str


class AvailableSlotsResponse(BaseModel):
    date: str  # YYYY-MM-DD
    slots: list[SlotInfo]


class PurgeResponse(BaseModel):
    deleted: int
