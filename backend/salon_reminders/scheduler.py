"""
Таймер напоминаний

APScheduler запускает цикл сканирования каждые 60 секунд.
max_instances=1 - тик, пришедший во время работы цикла, не запускает второй.
"""
import logging
from typing import Any, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import sessionmaker

from .config import get_settings
from .services.notifications import NotificationGateway
from .services.reminders import ReminderScheduler
from .storage import AppointmentStore, NotificationLogStore, NotificationSettingsStore

settings = get_settings()
logger = logging.getLogger(__name__)

JOB_ID = "appointment_reminders"


def build_reminder_scheduler(session_factory: sessionmaker) -> ReminderScheduler:
    """Собрать планировщик с хранилищами поверх фабрики сессий"""
    settings_store = NotificationSettingsStore(session_factory)
    gateway = NotificationGateway(settings_store, NotificationLogStore(session_factory))
    return ReminderScheduler(AppointmentStore(session_factory), settings_store, gateway)


class ReminderTimer:
    """Периодический запуск ReminderScheduler.run_scan_cycle"""

    def __init__(
        self,
        reminder_scheduler: ReminderScheduler,
        interval_seconds: int = settings.REMINDER_SCAN_INTERVAL_SECONDS,
        enabled: bool = settings.REMINDER_SCHEDULER_ENABLED
    ):
        self.reminder_scheduler = reminder_scheduler
        self.interval_seconds = interval_seconds
        self.enabled = enabled

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False

    async def start(self) -> None:
        """Запустить таймер (нужен работающий event loop)"""
        if not self.enabled:
            logger.info("ReminderTimer выключен, пропускаем запуск")
            return

        if self._is_running:
            logger.warning("ReminderTimer уже запущен")
            return

        scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler = scheduler

        scheduler.add_job(
            self._tick,
            IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            name="Appointment Reminders",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.interval_seconds,
        )

        scheduler.start()
        self._is_running = True
        logger.info(f"ReminderTimer запущен, интервал {self.interval_seconds}s")

    async def stop(self) -> None:
        """Остановить таймер"""
        if self._scheduler and self._is_running:
            self._scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("ReminderTimer остановлен")

    async def _tick(self) -> None:
        try:
            await self.reminder_scheduler.run_scan_cycle()
        except Exception:
            logger.exception("[Reminders] Непредвиденная ошибка цикла")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def get_jobs_info(self) -> List[dict[str, Any]]:
        """Информация о задачах для /health"""
        if not self._scheduler:
            return []

        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self._scheduler.get_jobs()
        ]
