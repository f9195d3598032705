"""
Доступ к данным для напоминаний: записи, настройки и журнал уведомлений

Каждый метод открывает короткую сессию из переданной фабрики,
поэтому хранилища можно использовать из планировщика и из тестов.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, sessionmaker

from .config import get_settings
from .models.appointment import Appointment, AppointmentStatus
from .models.customer import Customer
from .models.notification_log import NotificationLog
from .models.notification_settings import NotificationSettings
from .schemas import NotificationSettingsData, NotificationSettingsUpdate

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderCandidate:
    """Запись-кандидат вместе с контактами клиента"""
    appointment_id: int
    appointment_time: datetime
    reminder_count: int
    last_reminder_sent_at: Optional[datetime]
    customer_name: str
    customer_email: Optional[str]
    customer_phone: Optional[str]


class AppointmentStore:
    """Чтение кандидатов и обновление состояния напоминаний"""

    def __init__(
        self,
        session_factory: sessionmaker,
        window_minutes: int = settings.REMINDER_WINDOW_MINUTES,
        max_attempts: int = settings.REMINDER_MAX_ATTEMPTS,
        min_interval_minutes: int = settings.REMINDER_MIN_INTERVAL_MINUTES
    ):
        self.session_factory = session_factory
        self.window = timedelta(minutes=window_minutes)
        self.max_attempts = max_attempts
        self.min_interval = timedelta(minutes=min_interval_minutes)

    def find_reminder_candidates(self, now: datetime) -> List[ReminderCandidate]:
        """
        Запланированные записи с началом в [now, now + окно] и числом
        напоминаний меньше лимита
        """
        db: Session = self.session_factory()
        try:
            rows = db.query(Appointment, Customer).join(
                Customer, Appointment.customer_id == Customer.id
            ).filter(
                Appointment.status == AppointmentStatus.SCHEDULED.value,
                Appointment.appointment_time >= now,
                Appointment.appointment_time <= now + self.window,
                func.coalesce(Appointment.reminder_count, 0) < self.max_attempts
            ).order_by(Appointment.appointment_time).all()

            return [
                ReminderCandidate(
                    appointment_id=apt.id,
                    appointment_time=apt.appointment_time,
                    reminder_count=apt.reminder_count or 0,
                    last_reminder_sent_at=apt.last_reminder_sent_at,
                    customer_name=customer.full_name,
                    customer_email=customer.email or None,
                    customer_phone=customer.phone_number or None
                )
                for apt, customer in rows
            ]
        finally:
            db.close()

    def record_reminder_attempt(self, appointment_id: int, sent_at: datetime) -> bool:
        """
        Атомарно засчитать попытку напоминания

        Одним UPDATE: reminder_count += 1, last_reminder_sent_at = sent_at,
        но только пока запись запланирована, лимит не исчерпан и прошло
        не меньше минимального интервала. Возвращает False, если строку уже
        обработал другой цикл.
        """
        db: Session = self.session_factory()
        try:
            updated = db.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.status == AppointmentStatus.SCHEDULED.value,
                func.coalesce(Appointment.reminder_count, 0) < self.max_attempts,
                or_(
                    Appointment.last_reminder_sent_at.is_(None),
                    Appointment.last_reminder_sent_at <= sent_at - self.min_interval
                )
            ).update(
                {
                    Appointment.reminder_count: func.coalesce(Appointment.reminder_count, 0) + 1,
                    Appointment.last_reminder_sent_at: sent_at
                },
                synchronize_session=False
            )
            db.commit()
            return updated == 1
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def mark_notification_sent(self, appointment_id: int) -> None:
        """Legacy-флаг: хотя бы одно напоминание доставлено"""
        db: Session = self.session_factory()
        try:
            db.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.notification_sent.isnot(True)
            ).update({Appointment.notification_sent: True}, synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class NotificationSettingsStore:
    """Единственная строка настроек уведомлений"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @staticmethod
    def _get_or_create(db: Session) -> NotificationSettings:
        row = db.query(NotificationSettings).order_by(NotificationSettings.id).first()
        if row is None:
            row = NotificationSettings(
                netgsm_user="",
                netgsm_password="",
                netgsm_header="",
                sms_enabled=False,
                smtp_host="",
                smtp_port=587,
                smtp_user="",
                smtp_pass="",
                email_enabled=False
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info("Создана строка настроек уведомлений по умолчанию")
        return row

    def get_notification_settings(self) -> NotificationSettingsData:
        db: Session = self.session_factory()
        try:
            return NotificationSettingsData.from_row(self._get_or_create(db))
        finally:
            db.close()

    def update_notification_settings(self, updates: NotificationSettingsUpdate) -> NotificationSettingsData:
        """Обновить только переданные поля"""
        db: Session = self.session_factory()
        try:
            row = self._get_or_create(db)
            for field, value in updates.model_dump(exclude_unset=True).items():
                if value is None:
                    continue
                setattr(row, field, value)
            db.commit()
            db.refresh(row)
            return NotificationSettingsData.from_row(row)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class NotificationLogStore:
    """Журнал попыток доставки"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create_notification_log(
        self,
        type: str,
        recipient: str,
        subject: Optional[str],
        status: str,
        error_message: Optional[str] = None
    ) -> NotificationLog:
        db: Session = self.session_factory()
        try:
            entry = NotificationLog(
                type=type,
                recipient=recipient,
                subject=subject,
                status=status,
                error_message=error_message
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            db.expunge(entry)
            return entry
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_notification_logs(self, limit: int = 100) -> List[NotificationLog]:
        db: Session = self.session_factory()
        try:
            entries = db.query(NotificationLog).order_by(
                NotificationLog.sent_at.desc(), NotificationLog.id.desc()
            ).limit(limit).all()
            db.expunge_all()
            return entries
        finally:
            db.close()
