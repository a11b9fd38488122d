from __future__ import annotations

import logging
import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Protocol

from training_passport.config import BaseConfig
from training_passport.store import DocumentStore
from training_passport.utils.datetime import as_utc, utc_now

logger = logging.getLogger("training_passport.notify")

LAST_ASSIGNMENT_CHECK = "lastAssignmentCheck"


class NotificationSender(Protocol):
    def send(self, recipient: str, subject: str, html: str) -> None: ...


class LogSender:
    """Used when SMTP is not configured: the digest is logged instead of mailed."""

    def send(self, recipient: str, subject: str, html: str) -> None:
        logger.info("notification (smtp disabled) to=%s subject=%s bytes=%d", recipient, subject, len(html))


class SmtpSender:
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        *,
        user: str = "",
        password: str = "",
        starttls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.sender = sender
        self.user = user
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: BaseConfig) -> "SmtpSender":
        return cls(
            cfg.SMTP_HOST,
            cfg.SMTP_PORT,
            cfg.SMTP_FROM,
            user=cfg.SMTP_USER,
            password=cfg.SMTP_PASS,
            starttls=cfg.SMTP_STARTTLS,
        )

    def build_message(self, recipient: str, subject: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html, subtype="html")
        return msg

    def send(self, recipient: str, subject: str, html: str) -> None:
        msg = self.build_message(recipient, subject, html)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as s:
            if self.starttls:
                s.starttls()
            if self.user and self.password:
                s.login(self.user, self.password)
            s.send_message(msg)
        logger.info("notification sent to=%s subject=%s", recipient, subject)


def sender_from_config(cfg: BaseConfig) -> NotificationSender:
    if cfg.SMTP_ENABLED:
        return SmtpSender.from_config(cfg)
    return LogSender()


class SettingsCursorStore:
    """Named timestamps kept in the ``settings`` collection."""

    def __init__(self, store: DocumentStore) -> None:
        self._settings = store.settings

    def get(self, name: str) -> datetime | None:
        doc = self._settings.get(name)
        if not doc:
            return None
        value = doc.get("value")
        return as_utc(value) if isinstance(value, datetime) else None

    def set(self, name: str, value: datetime) -> None:
        self._settings.upsert(name, {"value": as_utc(value), "updatedAt": utc_now()})
