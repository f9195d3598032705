"""
SQLAlchemy модели для базы данных
"""
from .customer import Customer
from .appointment import Appointment, AppointmentStatus
from .notification_settings import NotificationSettings
from .notification_log import NotificationLog

__all__ = [
    "Customer",
    "Appointment",
    "AppointmentStatus",
    "NotificationSettings",
    "NotificationLog"
]
