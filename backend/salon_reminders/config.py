"""
Конфигурация сервиса напоминаний
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path


class Settings(BaseSettings):
    """Настройки приложения"""

    # Database
    DATABASE_URL: str = "sqlite:///./salon.db"

    # Security (сессия админки)
    SECRET_KEY: str = "local-development-secret-key-change-in-production"
    ADMIN_PASSWORD: str = "salon2024"

    # Application
    SITE_URL: str = "http://localhost:8000"
    SMTP_FROM_NAME: str = "Salon Takip"

    # Напоминания о записях
    REMINDER_WINDOW_MINUTES: int = 30  # ищем записи в интервале [now, now + 30 мин]
    REMINDER_MAX_ATTEMPTS: int = 3
    REMINDER_MIN_INTERVAL_MINUTES: int = 10  # минимум между двумя напоминаниями
    REMINDER_SCAN_INTERVAL_SECONDS: int = 60
    REMINDER_SCHEDULER_ENABLED: bool = True
    REMINDER_SMS_ENABLED: bool = False  # SMS-напоминания выключены, канал оставлен
    REMINDER_CONSUME_WITHOUT_CHANNEL: bool = True  # считать попытку, даже если канала нет
    REMINDER_LANGUAGE: str = "tr"  # tr, ru, en
    DISPLAY_TIMEZONE: str = "Europe/Istanbul"

    # Провайдеры
    NOTIFICATION_TIMEOUT_SECONDS: float = 15.0  # одна попытка в шлюзе
    REMINDER_SEND_TIMEOUT_SECONDS: float = 20.0  # внешняя граница, больше таймаута шлюза
    NETGSM_API_URL: str = "https://api.netgsm.com.tr/sms/send/xml"

    # Development
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    class Config:
        # Путь к .env относительно корня проекта
        env_file = Path(__file__).resolve().parent.parent.parent / ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Получить настройки приложения (с кешированием)"""
    return Settings()
