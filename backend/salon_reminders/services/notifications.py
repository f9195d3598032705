"""
Шлюз уведомлений: одна попытка доставки Email (SMTP) или SMS (Netgsm)
Ничего не выбрасывает наружу - результат всегда bool
"""
import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from enum import Enum
from typing import Callable, Optional
from xml.sax.saxutils import escape

import httpx

from ..config import get_settings
from ..schemas import EmailChannelSettings, SmsChannelSettings
from ..storage import NotificationLogStore, NotificationSettingsStore

settings = get_settings()
logger = logging.getLogger(__name__)

# Коды ошибок Netgsm: ответ начинается с кода, при успехе - "00 <id>"
NETGSM_ERROR_CODES = ("30", "40", "50", "60", "70", "80", "85")


class NotificationChannel(str, Enum):
    """Каналы доставки"""
    EMAIL = "email"
    SMS = "sms"


class DeliveryStatus(str, Enum):
    """Статус в журнале"""
    SUCCESS = "success"
    ERROR = "error"


def build_netgsm_xml(sms: SmsChannelSettings, to: str, message: str) -> str:
    """XML-тело запроса Netgsm (тип 1:n)"""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        "<mainbody>\n"
        "    <header>\n"
        '        <company dil="TR">Netgsm</company>\n'
        f"        <usercode>{escape(sms.user)}</usercode>\n"
        f"        <password>{escape(sms.password)}</password>\n"
        "        <type>1:n</type>\n"
        f"        <msgheader>{escape(sms.header)}</msgheader>\n"
        "    </header>\n"
        "    <body>\n"
        f"        <msg><![CDATA[{message}]]></msg>\n"
        f"        <no>{escape(to)}</no>\n"
        "    </body>\n"
        "</mainbody>"
    )


def is_netgsm_success(status_code: int, body: str) -> bool:
    """Успех: HTTP 2xx и тело не начинается с кода ошибки"""
    if not 200 <= status_code < 300:
        return False
    text = body.strip()
    if not text:
        return False
    return not text.startswith(NETGSM_ERROR_CODES)


class NotificationGateway:
    """Сервис для отправки Email и SMS клиентам"""

    def __init__(
        self,
        settings_store: NotificationSettingsStore,
        log_store: NotificationLogStore,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
        smtp_ssl_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP_SSL,
        timeout: float = settings.NOTIFICATION_TIMEOUT_SECONDS,
        netgsm_url: str = settings.NETGSM_API_URL,
        from_name: str = settings.SMTP_FROM_NAME
    ):
        self.settings_store = settings_store
        self.log_store = log_store
        self.http_transport = http_transport
        self.smtp_factory = smtp_factory
        self.smtp_ssl_factory = smtp_ssl_factory
        self.timeout = timeout
        self.netgsm_url = netgsm_url
        self.from_name = from_name

    def _write_log(
        self,
        channel: NotificationChannel,
        recipient: str,
        subject: Optional[str],
        status: DeliveryStatus,
        error_message: Optional[str] = None
    ):
        try:
            self.log_store.create_notification_log(
                type=channel.value,
                recipient=recipient,
                subject=subject,
                status=status.value,
                error_message=error_message
            )
        except Exception:
            logger.exception(f"[{channel.value.upper()}] Не удалось записать журнал для {recipient}")

    # ==================== EMAIL ====================

    def _deliver_email(self, email: EmailChannelSettings, to: str, subject: str, body: str):
        """Синхронная отправка через smtplib (вызывается в отдельном потоке)"""
        message = EmailMessage()
        message["From"] = formataddr((self.from_name, email.user))
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        if email.port == 465:
            smtp = self.smtp_ssl_factory(email.host, email.port, timeout=self.timeout,
                                         context=ssl.create_default_context())
        else:
            smtp = self.smtp_factory(email.host, email.port, timeout=self.timeout)

        with smtp:
            if email.port != 465 and smtp.has_extn("starttls"):
                smtp.starttls(context=ssl.create_default_context())
            smtp.login(email.user, email.password)
            smtp.send_message(message)

    async def send_email(self, to: str, subject: str, body: str) -> bool:
        """
        Отправить email

        Args:
            to: Адрес получателя
            subject: Тема
            body: Текст письма

        Returns:
            bool: True если письмо принято SMTP-сервером
        """
        try:
            email = self.settings_store.get_notification_settings().email
        except Exception:
            logger.exception("[EMAIL] Не удалось прочитать настройки уведомлений")
            return False

        if not email.enabled:
            logger.info("[EMAIL] Email выключен в настройках, пропускаем")
            return False

        if not email.is_configured:
            logger.info(f"[EMAIL] SMTP не настроен, пропускаем отправку для {to}: {subject}")
            return False

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._deliver_email, email, to, subject, body),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"[EMAIL] Таймаут отправки на {to} ({self.timeout}s)")
            self._write_log(NotificationChannel.EMAIL, to, subject, DeliveryStatus.ERROR,
                            f"timeout after {self.timeout}s")
            return False
        except asyncio.CancelledError:
            # Внешний таймаут: попытка была, фиксируем её в журнале
            self._write_log(NotificationChannel.EMAIL, to, subject, DeliveryStatus.ERROR, "cancelled")
            raise
        except Exception as e:
            logger.exception(f"[EMAIL] Ошибка отправки на {to}")
            self._write_log(NotificationChannel.EMAIL, to, subject, DeliveryStatus.ERROR, str(e) or type(e).__name__)
            return False

        logger.info(f"[EMAIL] Письмо отправлено на {to}")
        self._write_log(NotificationChannel.EMAIL, to, subject, DeliveryStatus.SUCCESS)
        return True

    # ==================== SMS ====================

    async def send_sms(self, to: str, message: str) -> bool:
        """
        Отправить SMS через Netgsm

        Returns:
            bool: True если Netgsm вернул идентификатор отправки
        """
        subject = "SMS Notification"

        try:
            sms = self.settings_store.get_notification_settings().sms
        except Exception:
            logger.exception("[SMS] Не удалось прочитать настройки уведомлений")
            return False

        if not sms.enabled:
            logger.info("[SMS] SMS выключены в настройках, пропускаем")
            return False

        if not sms.is_configured:
            logger.info(f"[SMS] Netgsm не настроен, пропускаем отправку на {to}")
            return False

        try:
            async with httpx.AsyncClient(transport=self.http_transport, timeout=self.timeout) as client:
                response = await asyncio.wait_for(
                    client.post(
                        self.netgsm_url,
                        content=build_netgsm_xml(sms, to, message).encode("utf-8"),
                        headers={"Content-Type": "text/xml"}
                    ),
                    timeout=self.timeout
                )
        except asyncio.TimeoutError:
            logger.error(f"[SMS] Таймаут отправки на {to} ({self.timeout}s)")
            self._write_log(NotificationChannel.SMS, to, subject, DeliveryStatus.ERROR,
                            f"timeout after {self.timeout}s")
            return False
        except asyncio.CancelledError:
            self._write_log(NotificationChannel.SMS, to, subject, DeliveryStatus.ERROR, "cancelled")
            raise
        except Exception as e:
            logger.exception(f"[SMS] Ошибка отправки на {to}")
            self._write_log(NotificationChannel.SMS, to, subject, DeliveryStatus.ERROR, str(e) or type(e).__name__)
            return False

        result = response.text.strip()
        logger.info(f"[SMS] Ответ Netgsm: {response.status_code} {result}")

        if is_netgsm_success(response.status_code, result):
            self._write_log(NotificationChannel.SMS, to, subject, DeliveryStatus.SUCCESS)
            return True

        self._write_log(
            NotificationChannel.SMS, to, subject, DeliveryStatus.ERROR,
            f"NetGsm Error: {response.status_code} {result}"
        )
        return False
