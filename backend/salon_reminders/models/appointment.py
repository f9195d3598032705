"""
Модель записи на прием
"""
from enum import Enum

from sqlalchemy import Column, Integer, ForeignKey, String, Text, Boolean, DateTime
from sqlalchemy.orm import relationship
from ..database import Base


class AppointmentStatus(str, Enum):
    """Статусы записи"""
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class Appointment(Base):
    """Запись на прием"""

    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    service_type = Column(String(100), nullable=False)
    appointment_time = Column(DateTime, nullable=False, index=True)  # UTC
    status = Column(String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value, index=True)
    price = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)

    # Напоминания
    notification_sent = Column(Boolean, default=False)  # legacy: первое успешное напоминание
    reminder_count = Column(Integer, nullable=False, default=0)
    last_reminder_sent_at = Column(DateTime, nullable=True)  # UTC

    customer = relationship("Customer", back_populates="appointments")

    def __repr__(self):
        return f"<Appointment {self.appointment_time} (Status: {self.status}, reminders: {self.reminder_count})>"
