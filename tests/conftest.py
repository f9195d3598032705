"""
Общие фикстуры: in-memory SQLite, хранилища и поддельный шлюз.
"""
import asyncio
import os
from datetime import datetime, timedelta

# До импорта пакета: настройки читаются один раз
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["REMINDER_SCHEDULER_ENABLED"] = "false"
os.environ["DEBUG"] = "false"

import pytest
from sqlalchemy.orm import sessionmaker

from salon_reminders.database import Base, build_engine, init_db
from salon_reminders.models import Appointment, AppointmentStatus, Customer, NotificationSettings
from salon_reminders.services.reminders import ReminderScheduler
from salon_reminders.storage import AppointmentStore, NotificationLogStore, NotificationSettingsStore

NOW = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def appointment_store(session_factory):
    return AppointmentStore(session_factory, window_minutes=30, max_attempts=3, min_interval_minutes=10)


@pytest.fixture
def settings_store(session_factory):
    return NotificationSettingsStore(session_factory)


@pytest.fixture
def log_store(session_factory):
    return NotificationLogStore(session_factory)


def set_channels(db, email_enabled=True, sms_enabled=False, **credentials):
    """Записать строку настроек уведомлений"""
    row = db.query(NotificationSettings).first()
    if row is None:
        row = NotificationSettings()
        db.add(row)
    row.email_enabled = email_enabled
    row.sms_enabled = sms_enabled
    row.smtp_host = credentials.get("smtp_host", "smtp.example.com")
    row.smtp_port = credentials.get("smtp_port", 587)
    row.smtp_user = credentials.get("smtp_user", "salon@example.com")
    row.smtp_pass = credentials.get("smtp_pass", "secret")
    row.netgsm_user = credentials.get("netgsm_user", "8500000000")
    row.netgsm_password = credentials.get("netgsm_password", "netgsm-pass")
    row.netgsm_header = credentials.get("netgsm_header", "SALON")
    db.commit()
    return row


def add_appointment(
    db,
    appointment_time: datetime,
    status: str = AppointmentStatus.SCHEDULED.value,
    reminder_count: int = 0,
    last_reminder_sent_at=None,
    email="ayse@example.com",
    phone="5551234567",
    name="Ayşe Yılmaz"
) -> int:
    customer = Customer(full_name=name, phone_number=phone, email=email)
    db.add(customer)
    db.flush()
    appointment = Appointment(
        customer_id=customer.id,
        service_type="Saç Kesimi",
        appointment_time=appointment_time,
        status=status,
        reminder_count=reminder_count,
        last_reminder_sent_at=last_reminder_sent_at
    )
    db.add(appointment)
    db.commit()
    return appointment.id


def load_appointment(session_factory, appointment_id) -> Appointment:
    session = session_factory()
    try:
        appointment = session.get(Appointment, appointment_id)
        session.expunge(appointment)
        return appointment
    finally:
        session.close()


class FakeGateway:
    """Шлюз-заглушка: запоминает вызовы, результат настраивается"""

    def __init__(self, result=True, delay: float = 0, error: Exception = None):
        self.result = result
        self.delay = delay
        self.error = error
        self.emails = []
        self.sms = []

    async def _respond(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result

    async def send_email(self, to, subject, body):
        self.emails.append((to, subject, body))
        return await self._respond()

    async def send_sms(self, to, message):
        self.sms.append((to, message))
        return await self._respond()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def make_scheduler(appointment_store, settings_store):
    def factory(gateway, **kwargs):
        kwargs.setdefault("min_interval_minutes", 10)
        kwargs.setdefault("sms_enabled", False)
        kwargs.setdefault("consume_without_channel", True)
        kwargs.setdefault("send_timeout", 5)
        kwargs.setdefault("language", "tr")
        kwargs.setdefault("timezone_name", "Europe/Istanbul")
        return ReminderScheduler(appointment_store, settings_store, gateway, **kwargs)
    return factory


def minutes(n) -> timedelta:
    return timedelta(minutes=n)
