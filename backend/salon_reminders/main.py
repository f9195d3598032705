"""
Главный файл FastAPI приложения
Salon Reminders - фоновые напоминания о записях
"""
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from sqlalchemy.orm import sessionmaker
from starlette.middleware.sessions import SessionMiddleware

from .admin import setup_admin
from .config import get_settings
from .database import SessionLocal, init_db
from .scheduler import ReminderTimer, build_reminder_scheduler
from .schemas import NotificationLogResponse, NotificationSettingsResponse, NotificationSettingsUpdate
from .storage import NotificationLogStore, NotificationSettingsStore

settings = get_settings()
logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )
    # Без этого каждый тик APScheduler попадает в INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def create_app(session_factory: Optional[sessionmaker] = None, start_timer: bool = True) -> FastAPI:
    """Собрать приложение поверх фабрики сессий (по умолчанию SessionLocal)"""
    session_factory = session_factory or SessionLocal
    engine = session_factory.kw["bind"]

    reminder_scheduler = build_reminder_scheduler(session_factory)
    timer = ReminderTimer(reminder_scheduler, enabled=settings.REMINDER_SCHEDULER_ENABLED and start_timer)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(bind=engine)
        await timer.start()
        try:
            yield
        finally:
            await timer.stop()

    app = FastAPI(
        title="Salon Reminders API",
        description="Напоминания клиентам о записях",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    app.state.reminder_scheduler = reminder_scheduler
    app.state.timer = timer
    app.state.settings_store = NotificationSettingsStore(session_factory)
    app.state.log_store = NotificationLogStore(session_factory)

    # Session Middleware (для админки)
    app.add_middleware(SessionMiddleware, secret_key=settings.SECRET_KEY)

    register_routes(app)

    # Админ-панель (настройки каналов и журнал)
    setup_admin(app, engine)

    return app


def register_routes(app: FastAPI):

    @app.get("/health")
    async def health_check(request: Request):
        timer: ReminderTimer = request.app.state.timer
        return {
            "status": "ok",
            "environment": settings.ENVIRONMENT,
            "reminder_timer": timer.is_running,
            "jobs": timer.get_jobs_info(),
        }

    # ==================== НАПОМИНАНИЯ КЛИЕНТАМ ====================

    @app.post("/api/admin/send-reminders")
    async def trigger_reminders(request: Request):
        """Ручной запуск одного цикла напоминаний (для внешнего cron)"""
        report = await request.app.state.reminder_scheduler.run_scan_cycle()
        return {"success": not report.aborted, **report.to_dict()}

    # ==================== НАСТРОЙКИ УВЕДОМЛЕНИЙ ====================

    @app.get("/api/settings/notifications", response_model=NotificationSettingsResponse)
    def get_notification_settings(request: Request):
        try:
            data = request.app.state.settings_store.get_notification_settings()
        except Exception:
            logger.exception("Ошибка чтения настроек уведомлений")
            raise HTTPException(status_code=500, detail="Failed to fetch settings")
        return NotificationSettingsResponse.from_data(data)

    @app.post("/api/settings/notifications", response_model=NotificationSettingsResponse)
    def update_notification_settings(updates: NotificationSettingsUpdate, request: Request):
        try:
            data = request.app.state.settings_store.update_notification_settings(updates)
        except Exception:
            logger.exception("Ошибка сохранения настроек уведомлений")
            raise HTTPException(status_code=500, detail="Failed to update settings")
        return NotificationSettingsResponse.from_data(data)

    @app.get("/api/notification-logs", response_model=List[NotificationLogResponse])
    def get_notification_logs(request: Request, limit: int = Query(100, ge=1, le=1000)):
        return request.app.state.log_store.list_notification_logs(limit=limit)


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("salon_reminders.main:app", host="127.0.0.1", port=8000, reload=settings.DEBUG)
