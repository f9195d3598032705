import asyncio
import time
from datetime import datetime, timezone

import pytest

from conftest import NOW, FakeGateway, add_appointment, load_appointment, minutes, set_channels
from salon_reminders.models import AppointmentStatus, NotificationLog
from salon_reminders.services.notifications import NotificationGateway
from salon_reminders.services.reminders import compose_reminder, format_local_time


class SlowSMTP:
    """SMTP-сервер, который долго отвечает на login"""

    def __init__(self, host, port, timeout=None, context=None):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def has_extn(self, name):
        return False

    def login(self, user, password):
        time.sleep(0.3)

    def send_message(self, message):
        pass


class TestCandidateSelection:
    """Какие записи получают напоминание"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [
        AppointmentStatus.COMPLETED.value,
        AppointmentStatus.CANCELLED.value,
        AppointmentStatus.NO_SHOW.value,
    ])
    async def test_not_scheduled_never_reminded(self, db, session_factory, make_scheduler, fake_gateway, status):
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(15), status=status)

        report = await make_scheduler(fake_gateway).run_scan_cycle(NOW)

        assert report.candidates == 0
        assert fake_gateway.emails == []
        assert load_appointment(session_factory, apt_id).reminder_count == 0

    @pytest.mark.asyncio
    async def test_reminder_cap_reached(self, db, session_factory, make_scheduler, fake_gateway):
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(15), reminder_count=3)

        for offset in (0, 11, 22):
            await make_scheduler(fake_gateway).run_scan_cycle(NOW + minutes(offset))

        assert fake_gateway.emails == []
        assert load_appointment(session_factory, apt_id).reminder_count == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("offset", [-1, 31, 120])
    async def test_outside_window(self, db, session_factory, make_scheduler, fake_gateway, offset):
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(offset))

        await make_scheduler(fake_gateway).run_scan_cycle(NOW)

        assert fake_gateway.emails == []
        assert load_appointment(session_factory, apt_id).reminder_count == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("offset", [0, 30])
    async def test_window_bounds_inclusive(self, db, make_scheduler, fake_gateway, offset):
        set_channels(db)
        add_appointment(db, NOW + minutes(offset))

        report = await make_scheduler(fake_gateway).run_scan_cycle(NOW)

        assert report.dispatched == 1
        assert len(fake_gateway.emails) == 1


class TestRateLimit:

    @pytest.mark.asyncio
    async def test_first_second_and_skipped_reminders(self, db, session_factory, make_scheduler, fake_gateway):
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(15))
        scheduler = make_scheduler(fake_gateway)

        await scheduler.run_scan_cycle(NOW)
        apt = load_appointment(session_factory, apt_id)
        assert len(fake_gateway.emails) == 1
        assert apt.reminder_count == 1
        assert apt.last_reminder_sent_at == NOW

        report = await scheduler.run_scan_cycle(NOW + minutes(5))
        assert report.rate_limited == 1
        assert len(fake_gateway.emails) == 1
        assert load_appointment(session_factory, apt_id).reminder_count == 1

        await scheduler.run_scan_cycle(NOW + minutes(11))
        apt = load_appointment(session_factory, apt_id)
        assert len(fake_gateway.emails) == 2
        assert apt.reminder_count == 2
        assert apt.last_reminder_sent_at == NOW + minutes(11)

    @pytest.mark.asyncio
    async def test_repeated_call_same_instant(self, db, session_factory, make_scheduler, fake_gateway):
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(15))
        scheduler = make_scheduler(fake_gateway)

        await scheduler.run_scan_cycle(NOW)
        await scheduler.run_scan_cycle(NOW)

        assert len(fake_gateway.emails) == 1
        assert load_appointment(session_factory, apt_id).reminder_count == 1

    @pytest.mark.asyncio
    async def test_overlapping_cycles_single_flight(self, db, session_factory, make_scheduler):
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(15))
        gateway = FakeGateway(delay=0.05)
        scheduler = make_scheduler(gateway)

        first, second = await asyncio.gather(scheduler.run_scan_cycle(NOW), scheduler.run_scan_cycle(NOW))

        assert [first.skipped_overlap, second.skipped_overlap].count(True) == 1
        assert len(gateway.emails) == 1
        assert load_appointment(session_factory, apt_id).reminder_count == 1

    @pytest.mark.asyncio
    async def test_two_schedulers_share_database(self, db, session_factory, make_scheduler):
        # Два независимых воркера: захват в БД не даёт отправить дважды
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(15))
        gateway = FakeGateway(delay=0.05)

        await asyncio.gather(
            make_scheduler(gateway).run_scan_cycle(NOW),
            make_scheduler(gateway).run_scan_cycle(NOW)
        )

        assert len(gateway.emails) == 1
        assert load_appointment(session_factory, apt_id).reminder_count == 1


class TestDispatchOutcome:

    @pytest.mark.asyncio
    async def test_failed_delivery_counts_and_is_logged(
        self, db, session_factory, make_scheduler, settings_store, log_store
    ):
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(15))

        def refuse(host, port, timeout=None):
            raise OSError("connection refused")

        gateway = NotificationGateway(settings_store, log_store, smtp_factory=refuse)
        report = await make_scheduler(gateway).run_scan_cycle(NOW)

        apt = load_appointment(session_factory, apt_id)
        assert report.dispatched == 1
        assert apt.reminder_count == 1
        assert apt.notification_sent is False

        logs = db.query(NotificationLog).all()
        assert len(logs) == 1
        assert logs[0].status == "error"
        assert logs[0].recipient == "ayse@example.com"
        assert "connection refused" in logs[0].error_message

    @pytest.mark.asyncio
    async def test_send_cut_by_cycle_timeout_is_logged(
        self, db, session_factory, make_scheduler, settings_store, log_store
    ):
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(15))
        gateway = NotificationGateway(settings_store, log_store, smtp_factory=SlowSMTP, timeout=5)

        report = await make_scheduler(gateway, send_timeout=0.05).run_scan_cycle(NOW)

        assert report.dispatched == 1
        assert load_appointment(session_factory, apt_id).reminder_count == 1
        rows = db.query(NotificationLog).all()
        assert len(rows) == 1
        assert rows[0].status == "error"
        assert rows[0].error_message == "cancelled"

    @pytest.mark.asyncio
    async def test_gateway_timeout_is_logged(self, db, session_factory, make_scheduler, settings_store, log_store):
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(15))
        gateway = NotificationGateway(settings_store, log_store, smtp_factory=SlowSMTP, timeout=0.05)

        report = await make_scheduler(gateway, send_timeout=5).run_scan_cycle(NOW)

        apt = load_appointment(session_factory, apt_id)
        assert report.dispatched == 1
        assert apt.reminder_count == 1
        assert apt.notification_sent is False
        rows = db.query(NotificationLog).all()
        assert len(rows) == 1
        assert rows[0].status == "error"
        assert rows[0].error_message.startswith("timeout")

    @pytest.mark.asyncio
    async def test_success_sets_legacy_flag(self, db, session_factory, make_scheduler, fake_gateway):
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(15))

        await make_scheduler(fake_gateway).run_scan_cycle(NOW)

        assert load_appointment(session_factory, apt_id).notification_sent is True

    @pytest.mark.asyncio
    async def test_email_disabled_still_consumes_attempt(self, db, session_factory, make_scheduler, fake_gateway):
        set_channels(db, email_enabled=False)
        apt_id = add_appointment(db, NOW + minutes(15))

        report = await make_scheduler(fake_gateway).run_scan_cycle(NOW)

        assert fake_gateway.emails == []
        assert fake_gateway.sms == []
        assert report.no_channel == 1
        assert report.dispatched == 0
        assert load_appointment(session_factory, apt_id).reminder_count == 1

    @pytest.mark.asyncio
    async def test_email_disabled_attempt_kept_when_configured(
        self, db, session_factory, make_scheduler, fake_gateway
    ):
        set_channels(db, email_enabled=False)
        apt_id = add_appointment(db, NOW + minutes(15))

        report = await make_scheduler(fake_gateway, consume_without_channel=False).run_scan_cycle(NOW)

        assert report.no_channel == 1
        apt = load_appointment(session_factory, apt_id)
        assert apt.reminder_count == 0
        assert apt.last_reminder_sent_at is None

    @pytest.mark.asyncio
    async def test_customer_without_email(self, db, make_scheduler, fake_gateway):
        set_channels(db)
        add_appointment(db, NOW + minutes(15), email=None)

        report = await make_scheduler(fake_gateway).run_scan_cycle(NOW)

        assert fake_gateway.emails == []
        assert report.no_channel == 1

    @pytest.mark.asyncio
    async def test_sms_only_when_policy_allows(self, db, make_scheduler):
        set_channels(db, sms_enabled=True)
        add_appointment(db, NOW + minutes(15))
        gated, allowed = FakeGateway(), FakeGateway()

        await make_scheduler(gated).run_scan_cycle(NOW)
        await make_scheduler(allowed, sms_enabled=True).run_scan_cycle(NOW + minutes(10))

        assert gated.sms == []
        assert len(allowed.sms) == 1
        assert allowed.sms[0][0] == "5551234567"

    @pytest.mark.asyncio
    async def test_timeout_counts_as_attempt(self, db, session_factory, make_scheduler):
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(15))
        gateway = FakeGateway(delay=1)

        report = await make_scheduler(gateway, send_timeout=0.05).run_scan_cycle(NOW)

        apt = load_appointment(session_factory, apt_id)
        assert report.dispatched == 1
        assert apt.reminder_count == 1
        assert apt.notification_sent is False


class TestFailureIsolation:

    @pytest.mark.asyncio
    async def test_store_failure_aborts_cycle(self, settings_store, fake_gateway):
        from salon_reminders.services.reminders import ReminderScheduler

        class BrokenStore:
            max_attempts = 3

            def find_reminder_candidates(self, now):
                raise RuntimeError("database is locked")

        scheduler = ReminderScheduler(BrokenStore(), settings_store, fake_gateway)
        report = await scheduler.run_scan_cycle(NOW)

        assert report.aborted is True
        assert fake_gateway.emails == []
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_one_bad_candidate_does_not_stop_others(self, db, session_factory, make_scheduler):
        set_channels(db)
        bad_id = add_appointment(db, NOW + minutes(10), email="bad@example.com", phone="5550000001")
        good_id = add_appointment(db, NOW + minutes(20), email="good@example.com", phone="5550000002")

        class PickyGateway(FakeGateway):
            async def send_email(self, to, subject, body):
                if to == "bad@example.com":
                    raise RuntimeError("boom")
                return await super().send_email(to, subject, body)

        gateway = PickyGateway()
        report = await make_scheduler(gateway).run_scan_cycle(NOW)

        assert report.failed == 1
        assert report.dispatched == 1
        assert [email[0] for email in gateway.emails] == ["good@example.com"]
        assert load_appointment(session_factory, bad_id).reminder_count == 1
        assert load_appointment(session_factory, good_id).reminder_count == 1

    @pytest.mark.asyncio
    async def test_aware_now_is_normalized(self, db, session_factory, make_scheduler, fake_gateway):
        set_channels(db)
        apt_id = add_appointment(db, NOW + minutes(15))

        await make_scheduler(fake_gateway).run_scan_cycle(NOW.replace(tzinfo=timezone.utc))

        assert load_appointment(session_factory, apt_id).last_reminder_sent_at == NOW


class TestMessage:

    def test_turkish_message_uses_local_time(self):
        subject, message = compose_reminder("Ayşe Yılmaz", datetime(2026, 3, 10, 12, 15), "tr", "Europe/Istanbul")

        assert subject == "Randevu Hatırlatması"
        assert message == "Sayın Ayşe Yılmaz, randevunuza 30 dakikadan az kaldı! (15:15)"

    def test_unknown_language_falls_back_to_turkish(self):
        subject, _ = compose_reminder("Fatma", datetime(2026, 3, 10, 12, 15), "de", "UTC")
        assert subject == "Randevu Hatırlatması"

    def test_russian_template(self):
        subject, message = compose_reminder("Анна", datetime(2026, 3, 10, 12, 15), "ru", "Europe/Moscow")
        assert subject == "Напоминание о записи"
        assert "(15:15)" in message

    def test_format_local_time_aware_input(self):
        value = datetime(2026, 7, 1, 9, 5, tzinfo=timezone.utc)
        assert format_local_time(value, "Europe/Istanbul") == "12:05"
