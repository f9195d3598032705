"""
Подключение к базе данных (PostgreSQL или SQLite)
"""
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from .config import get_settings

settings = get_settings()


def build_engine(database_url: str, echo: bool = False):
    """Создать движок под конкретный URL"""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # In-memory SQLite - одно соединение на весь процесс
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo
        )
    if database_url.startswith("sqlite"):
        # SQLite - для локальной разработки
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=echo
        )
    # PostgreSQL - для продакшена
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        echo=echo
    )


# SQL-эхо только при LOG_LEVEL=DEBUG
engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG and settings.LOG_LEVEL == "DEBUG")

# Создание фабрики сессий
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Базовый класс для моделей
Base = declarative_base()


def utcnow() -> datetime:
    """Текущее время в UTC без tzinfo (так время хранится в БД)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def init_db(bind=None):
    """
    Инициализация базы данных
    Создание всех таблиц, определенных в моделях
    """
    from . import models  # noqa: F401  регистрация моделей в metadata

    Base.metadata.create_all(bind=bind or engine)
