"""
Напоминания клиентам о ближайших записях

Один цикл сканирования: кандидаты на ближайшие 30 минут -> ограничение
частоты -> атомарный захват попытки -> отправка через шлюз.
"""
import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytz

from ..config import get_settings
from ..database import utcnow
from ..storage import AppointmentStore, NotificationSettingsStore, ReminderCandidate
from .notifications import NotificationGateway

settings = get_settings()
logger = logging.getLogger(__name__)


# Шаблоны сообщений по языку салона
REMINDER_TEMPLATES = {
    "tr": {
        "subject": "Randevu Hatırlatması",
        "message": "Sayın {name}, randevunuza 30 dakikadan az kaldı! ({time})",
    },
    "ru": {
        "subject": "Напоминание о записи",
        "message": "{name}, до вашей записи осталось меньше 30 минут! ({time})",
    },
    "en": {
        "subject": "Appointment Reminder",
        "message": "Dear {name}, your appointment starts in less than 30 minutes! ({time})",
    },
}


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def format_local_time(value: datetime, timezone_name: str) -> str:
    """HH:MM во временной зоне салона"""
    local = pytz.utc.localize(to_naive_utc(value)).astimezone(pytz.timezone(timezone_name))
    return local.strftime("%H:%M")


def compose_reminder(
    customer_name: str,
    appointment_time: datetime,
    language: str = settings.REMINDER_LANGUAGE,
    timezone_name: str = settings.DISPLAY_TIMEZONE
) -> tuple:
    """Вернуть (тема, текст) напоминания"""
    template = REMINDER_TEMPLATES.get(language, REMINDER_TEMPLATES["tr"])
    message = template["message"].format(
        name=customer_name,
        time=format_local_time(appointment_time, timezone_name)
    )
    return template["subject"], message


@dataclass
class ScanReport:
    """Итоги одного цикла сканирования"""
    candidates: int = 0
    dispatched: int = 0
    rate_limited: int = 0
    already_claimed: int = 0
    no_channel: int = 0
    failed: int = 0
    aborted: bool = False
    skipped_overlap: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class ReminderScheduler:
    """Выбор записей для напоминания и защита от повторных отправок"""

    def __init__(
        self,
        appointment_store: AppointmentStore,
        settings_store: NotificationSettingsStore,
        gateway: NotificationGateway,
        min_interval_minutes: int = settings.REMINDER_MIN_INTERVAL_MINUTES,
        sms_enabled: bool = settings.REMINDER_SMS_ENABLED,
        consume_without_channel: bool = settings.REMINDER_CONSUME_WITHOUT_CHANNEL,
        send_timeout: float = settings.REMINDER_SEND_TIMEOUT_SECONDS,
        language: str = settings.REMINDER_LANGUAGE,
        timezone_name: str = settings.DISPLAY_TIMEZONE
    ):
        self.appointment_store = appointment_store
        self.settings_store = settings_store
        self.gateway = gateway
        self.min_interval = timedelta(minutes=min_interval_minutes)
        self.sms_enabled = sms_enabled
        self.consume_without_channel = consume_without_channel
        self.send_timeout = send_timeout
        self.language = language
        self.timezone_name = timezone_name
        self._cycle_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    async def run_scan_cycle(self, now: Optional[datetime] = None) -> ScanReport:
        """
        Один цикл отправки напоминаний

        Если предыдущий цикл ещё идёт, вызов пропускается.
        Ошибки хранилища прерывают только текущий цикл.
        """
        if self._cycle_lock.locked():
            logger.warning("[Reminders] Предыдущий цикл ещё выполняется, пропускаем тик")
            return ScanReport(skipped_overlap=True)

        async with self._cycle_lock:
            now = to_naive_utc(now) if now is not None else utcnow()
            report = ScanReport()

            try:
                candidates = self.appointment_store.find_reminder_candidates(now)
                notification_settings = self.settings_store.get_notification_settings()
            except Exception:
                logger.exception("[Reminders] Ошибка чтения кандидатов, цикл прерван")
                report.aborted = True
                return report

            report.candidates = len(candidates)
            logger.info(f"[Reminders] Кандидатов в ближайшие 30 минут: {len(candidates)}")

            for candidate in candidates:
                try:
                    await self._process_candidate(candidate, now, notification_settings, report)
                except Exception:
                    report.failed += 1
                    logger.exception(f"[Reminders] Ошибка обработки записи {candidate.appointment_id}")

            logger.info(f"[Reminders] Цикл завершён: {report.to_dict()}")
            return report

    async def _process_candidate(self, candidate: ReminderCandidate, now, notification_settings, report: ScanReport):
        if candidate.last_reminder_sent_at is not None:
            elapsed = now - candidate.last_reminder_sent_at
            if elapsed < self.min_interval:
                report.rate_limited += 1
                logger.info(
                    f"[Reminders] Пропуск записи {candidate.appointment_id}: "
                    f"последнее напоминание {elapsed.total_seconds() / 60:.1f} мин назад"
                )
                return

        use_email = notification_settings.email.enabled and bool(candidate.customer_email)
        use_sms = self.sms_enabled and notification_settings.sms.enabled and bool(candidate.customer_phone)

        if not use_email and not use_sms:
            report.no_channel += 1
            if not self.consume_without_channel:
                logger.info(f"[Reminders] Запись {candidate.appointment_id}: нет доступного канала, попытка не засчитана")
                return
            logger.warning(
                f"[Reminders] Запись {candidate.appointment_id}: нет доступного канала, "
                f"попытка {candidate.reminder_count + 1} всё равно засчитана"
            )

        # Захват до отправки: параллельный цикл не отправит второй раз
        if not self.appointment_store.record_reminder_attempt(candidate.appointment_id, now):
            report.already_claimed += 1
            logger.info(f"[Reminders] Запись {candidate.appointment_id} уже обработана другим циклом")
            return

        if not use_email and not use_sms:
            return

        logger.info(
            f"[Reminders] Напоминание {candidate.reminder_count + 1}/{self.appointment_store.max_attempts} "
            f"для записи {candidate.appointment_id}"
        )
        subject, message = compose_reminder(
            candidate.customer_name,
            candidate.appointment_time,
            language=self.language,
            timezone_name=self.timezone_name
        )

        delivered = False
        if use_email:
            delivered |= await self._bounded(
                self.gateway.send_email(candidate.customer_email, subject, message),
                candidate.appointment_id
            )
        if use_sms:
            delivered |= await self._bounded(
                self.gateway.send_sms(candidate.customer_phone, message),
                candidate.appointment_id
            )

        report.dispatched += 1
        if delivered:
            self.appointment_store.mark_notification_sent(candidate.appointment_id)

    async def _bounded(self, send, appointment_id: int) -> bool:
        """Отправка с таймаутом: зависший провайдер не блокирует цикл"""
        try:
            return await asyncio.wait_for(send, timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.error(f"[Reminders] Таймаут отправки для записи {appointment_id} ({self.send_timeout}s)")
            return False
