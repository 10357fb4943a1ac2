from .user import User, RefreshToken, Profile
from .hospital import Hospital, Department
from .doctor import Doctor, DoctorStatus
from .appointment import Appointment, AppointmentStatus
from .queue_status import QueueStatus
from .notification import Notification

__all__ = [
    "User",
    "RefreshToken",
    "Profile",
    "Hospital",
    "Department",
    "Doctor",
    "DoctorStatus",
    "Appointment",
    "AppointmentStatus",
    "QueueStatus",
    "Notification",
]
