from appointment_desk.models.user import User, UserCreate, UserPublic
from appointment_desk.models.refresh_token import RefreshToken
from appointment_desk.models.appointment import Appointment, AppointmentCreate, AppointmentPublic
from appointment_desk.models.appointment_request import (
    AppointmentRequest,
    AppointmentRequestCreate,
    AppointmentRequestPublic,
    RequestStatus,
)

__all__ = [
    "User",
    "UserCreate",
    "UserPublic",
    "RefreshToken",
    "Appointment",
    "AppointmentCreate",
    "AppointmentPublic",
    "AppointmentRequest",
    "AppointmentRequestCreate",
    "AppointmentRequestPublic",
    "RequestStatus",
]
