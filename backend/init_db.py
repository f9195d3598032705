"""
Скрипт инициализации базы данных
Создаёт таблицы, строку настроек уведомлений и демо-данные
Запуск из папки backend: python init_db.py
"""
import sys
from datetime import timedelta

sys.path.insert(0, '.')

from salon_reminders.database import SessionLocal, init_db, utcnow
from salon_reminders.models import Appointment, AppointmentStatus, Customer
from salon_reminders.storage import NotificationSettingsStore

INITIAL_CUSTOMERS = [
    {
        "full_name": "Ayşe Yılmaz",
        "phone_number": "5551234567",
        "email": "ayse@example.com",
        "notes": "Saç boyasına alerjisi olabilir, test yap."
    },
    {
        "full_name": "Fatma Demir",
        "phone_number": "5559876543",
        "email": "fatma@example.com",
        "notes": "Kısa saç kesimi seviyor."
    },
]


def seed_demo_data(db):
    """Демо-клиенты и записи (только если база пустая)"""
    if db.query(Customer).count() > 0:
        print("Клиенты уже есть, демо-данные пропущены")
        return

    customers = [Customer(**data) for data in INITIAL_CUSTOMERS]
    db.add_all(customers)
    db.flush()

    now = utcnow()
    db.add_all([
        Appointment(
            customer_id=customers[0].id,
            service_type="Saç Kesimi",
            appointment_time=now - timedelta(days=1),
            status=AppointmentStatus.COMPLETED.value,
            price=500,
            notes="Memnun kaldı."
        ),
        Appointment(
            customer_id=customers[1].id,
            service_type="Manikür",
            appointment_time=now + timedelta(minutes=25),
            status=AppointmentStatus.SCHEDULED.value,
            price=300
        ),
        Appointment(
            customer_id=customers[0].id,
            service_type="Fön",
            appointment_time=now + timedelta(days=1),
            status=AppointmentStatus.SCHEDULED.value,
            price=250
        ),
    ])
    db.commit()
    print(f"Добавлено клиентов: {len(customers)}, записей: 3")


if __name__ == "__main__":
    print("Создание таблиц...")
    init_db()
    print("Таблицы созданы!")

    NotificationSettingsStore(SessionLocal).get_notification_settings()
    print("Настройки уведомлений готовы (каналы выключены)")

    if "--demo" in sys.argv:
        db = SessionLocal()
        try:
            seed_demo_data(db)
        finally:
            db.close()
