"""
Модель журнала уведомлений
"""
from sqlalchemy import Column, Integer, String, Text, DateTime
from ..database import Base, utcnow


class NotificationLog(Base):
    """Одна попытка доставки email/SMS (только добавление)"""

    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(10), nullable=False)  # email, sms
    recipient = Column(String(100), nullable=False)
    subject = Column(String(200), nullable=True)
    status = Column(String(10), nullable=False)  # success, error
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime, default=utcnow, index=True)  # UTC

    def __repr__(self):
        return f"<NotificationLog {self.type} -> {self.recipient} (Status: {self.status})>"
