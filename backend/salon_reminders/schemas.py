"""
Pydantic схемы настроек и журнала уведомлений
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _blank_to_none(value):
    # В БД пустые учётные данные хранятся как ""
    if isinstance(value, str) and not value.strip():
        return None
    return value


class EmailChannelSettings(BaseModel):
    """Канал Email (SMTP)"""
    enabled: bool = False
    host: Optional[str] = None
    port: int = Field(587, ge=1, le=65535)
    user: Optional[str] = None
    password: Optional[str] = None

    @field_validator("host", "user", "password", mode="before")
    @classmethod
    def normalize_blank(cls, value):
        return _blank_to_none(value)

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.user and self.password)


class SmsChannelSettings(BaseModel):
    """Канал SMS (Netgsm)"""
    enabled: bool = False
    user: Optional[str] = None
    password: Optional[str] = None
    header: Optional[str] = None

    @field_validator("user", "password", "header", mode="before")
    @classmethod
    def normalize_blank(cls, value):
        return _blank_to_none(value)

    @property
    def is_configured(self) -> bool:
        return bool(self.user and self.password and self.header)


class NotificationSettingsData(BaseModel):
    """Проверенные настройки уведомлений, по одной записи на канал"""
    email: EmailChannelSettings = EmailChannelSettings()
    sms: SmsChannelSettings = SmsChannelSettings()

    @classmethod
    def from_row(cls, row) -> "NotificationSettingsData":
        return cls(
            email=EmailChannelSettings(
                enabled=bool(row.email_enabled),
                host=row.smtp_host,
                port=row.smtp_port or 587,
                user=row.smtp_user,
                password=row.smtp_pass,
            ),
            sms=SmsChannelSettings(
                enabled=bool(row.sms_enabled),
                user=row.netgsm_user,
                password=row.netgsm_password,
                header=row.netgsm_header,
            ),
        )


class NotificationSettingsResponse(BaseModel):
    """Плоское представление настроек для API (пароли скрыты)"""
    sms_enabled: bool
    netgsm_user: str
    netgsm_header: str
    netgsm_password_set: bool
    email_enabled: bool
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_pass_set: bool

    @classmethod
    def from_data(cls, data: NotificationSettingsData) -> "NotificationSettingsResponse":
        return cls(
            sms_enabled=data.sms.enabled,
            netgsm_user=data.sms.user or "",
            netgsm_header=data.sms.header or "",
            netgsm_password_set=bool(data.sms.password),
            email_enabled=data.email.enabled,
            smtp_host=data.email.host or "",
            smtp_port=data.email.port,
            smtp_user=data.email.user or "",
            smtp_pass_set=bool(data.email.password),
        )


class NotificationSettingsUpdate(BaseModel):
    """Частичное обновление настроек"""
    sms_enabled: Optional[bool] = None
    netgsm_user: Optional[str] = Field(None, max_length=100)
    netgsm_password: Optional[str] = Field(None, max_length=100)
    netgsm_header: Optional[str] = Field(None, max_length=20)
    email_enabled: Optional[bool] = None
    smtp_host: Optional[str] = Field(None, max_length=100)
    smtp_port: Optional[int] = Field(None, ge=1, le=65535)
    smtp_user: Optional[str] = Field(None, max_length=100)
    smtp_pass: Optional[str] = Field(None, max_length=100)


class NotificationLogResponse(BaseModel):
    id: int
    type: str
    recipient: str
    subject: Optional[str]
    status: str
    error_message: Optional[str]
    sent_at: Optional[datetime]

    class Config:
        from_attributes = True
