"""
Модель настроек уведомлений (одна строка на всю систему)
"""
from sqlalchemy import Column, Integer, String, Boolean
from ..database import Base


class NotificationSettings(Base):
    """Настройки каналов SMS (Netgsm) и Email (SMTP)"""

    __tablename__ = "notification_settings"

    id = Column(Integer, primary_key=True, index=True)

    # Netgsm
    netgsm_user = Column(String(100), default="")
    netgsm_password = Column(String(100), default="")
    netgsm_header = Column(String(20), default="")
    sms_enabled = Column(Boolean, default=False)

    # SMTP
    smtp_host = Column(String(100), default="")
    smtp_port = Column(Integer, default=587)
    smtp_user = Column(String(100), default="")
    smtp_pass = Column(String(100), default="")
    email_enabled = Column(Boolean, default=False)

    def __repr__(self):
        return f"<NotificationSettings sms={self.sms_enabled} email={self.email_enabled}>"
