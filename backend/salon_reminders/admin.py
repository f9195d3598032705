"""
Админ-панель салона: записи, клиенты, настройки уведомлений и журнал
Доступ: http://localhost:8000/admin
Логин: admin / Пароль: из .env (ADMIN_PASSWORD)
"""
from sqladmin import Admin, ModelView
from sqladmin.authentication import AuthenticationBackend
from starlette.requests import Request
from .config import get_settings
from .models.appointment import Appointment
from .models.customer import Customer
from .models.notification_log import NotificationLog
from .models.notification_settings import NotificationSettings

settings = get_settings()

ADMIN_USERNAME = "admin"


class AdminAuth(AuthenticationBackend):
    """Простая авторизация для админки"""

    async def login(self, request: Request) -> bool:
        form = await request.form()
        username = form.get("username")
        password = form.get("password")

        if username == ADMIN_USERNAME and password == settings.ADMIN_PASSWORD:
            request.session.update({"authenticated": True})
            return True
        return False

    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True

    async def authenticate(self, request: Request) -> bool:
        return request.session.get("authenticated", False)


# ==================== МОДЕЛИ ДЛЯ АДМИНКИ ====================

class AppointmentAdmin(ModelView, model=Appointment):
    """Записи клиентов и состояние напоминаний"""
    name = "Randevu"
    name_plural = "Randevular"
    icon = "fa-solid fa-calendar-check"

    column_list = [
        Appointment.id,
        Appointment.appointment_time,
        Appointment.service_type,
        Appointment.status,
        Appointment.customer_id,
        Appointment.reminder_count,
        Appointment.last_reminder_sent_at
    ]
    column_searchable_list = [Appointment.status, Appointment.service_type]
    column_sortable_list = [Appointment.appointment_time, Appointment.status, Appointment.reminder_count]
    column_default_sort = [(Appointment.appointment_time, True)]
    # Счётчик напоминаний меняет только планировщик
    form_excluded_columns = [
        Appointment.reminder_count,
        Appointment.last_reminder_sent_at,
        Appointment.notification_sent
    ]

    column_labels = {
        "id": "ID",
        "appointment_time": "Zaman (UTC)",
        "service_type": "Hizmet",
        "status": "Durum",
        "customer_id": "Müşteri",
        "reminder_count": "Hatırlatma",
        "last_reminder_sent_at": "Son hatırlatma",
        "notes": "Notlar"
    }


class CustomerAdmin(ModelView, model=Customer):
    """Клиенты"""
    name = "Müşteri"
    name_plural = "Müşteriler"
    icon = "fa-solid fa-users"

    column_list = [
        Customer.id,
        Customer.full_name,
        Customer.phone_number,
        Customer.email,
        Customer.created_at
    ]
    column_searchable_list = [Customer.full_name, Customer.phone_number, Customer.email]
    column_sortable_list = [Customer.full_name, Customer.created_at]
    form_excluded_columns = [Customer.appointments, Customer.created_at]

    column_labels = {
        "id": "ID",
        "full_name": "Ad Soyad",
        "phone_number": "Telefon",
        "email": "Email",
        "notes": "Notlar",
        "created_at": "Kayıt tarihi"
    }


class NotificationSettingsAdmin(ModelView, model=NotificationSettings):
    """Настройки SMS/Email (одна строка)"""
    name = "Bildirim ayarı"
    name_plural = "Bildirim ayarları"
    icon = "fa-solid fa-sliders"
    can_create = False
    can_delete = False

    column_list = [
        NotificationSettings.id,
        NotificationSettings.email_enabled,
        NotificationSettings.smtp_host,
        NotificationSettings.smtp_user,
        NotificationSettings.sms_enabled,
        NotificationSettings.netgsm_user,
        NotificationSettings.netgsm_header
    ]
    column_details_exclude_list = [NotificationSettings.smtp_pass, NotificationSettings.netgsm_password]
    form_widget_args = {
        "smtp_pass": {"type": "password", "autocomplete": "new-password"},
        "netgsm_password": {"type": "password", "autocomplete": "new-password"},
    }


class NotificationLogAdmin(ModelView, model=NotificationLog):
    """Журнал уведомлений (только чтение)"""
    name = "Bildirim kaydı"
    name_plural = "Bildirim kayıtları"
    icon = "fa-solid fa-envelope-open-text"
    can_create = False
    can_edit = False
    can_delete = False

    column_list = [
        NotificationLog.id,
        NotificationLog.type,
        NotificationLog.recipient,
        NotificationLog.subject,
        NotificationLog.status,
        NotificationLog.error_message,
        NotificationLog.sent_at
    ]
    column_searchable_list = [NotificationLog.recipient, NotificationLog.status]
    column_sortable_list = [NotificationLog.sent_at, NotificationLog.status, NotificationLog.type]
    column_default_sort = [(NotificationLog.sent_at, True)]


def setup_admin(app, engine):
    """Настройка админ-панели"""
    authentication_backend = AdminAuth(secret_key=settings.SECRET_KEY)

    admin = Admin(
        app,
        engine,
        authentication_backend=authentication_backend,
        title="Salon Takip Admin",
        base_url="/admin"
    )

    # Регистрация моделей
    admin.add_view(AppointmentAdmin)
    admin.add_view(CustomerAdmin)
    admin.add_view(NotificationSettingsAdmin)
    admin.add_view(NotificationLogAdmin)

    return admin
