from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

from tracker.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailNotification:
  to: str
  subject: str
  body: str


class Notifier(Protocol):
  async def send(self, msg: EmailNotification) -> None: ...


class LocalNotifier:
  """Keeps messages in memory; used when no SMTP host is configured."""

  def __init__(self) -> None:
    self.sent: list[EmailNotification] = []

  async def send(self, msg: EmailNotification) -> None:
    logger.debug("Email to %s suppressed (no SMTP host): %s", msg.to, msg.subject)
    self.sent.append(msg)


class SmtpNotifier:
  def __init__(
    self,
    *,
    host: str,
    port: int,
    from_addr: str,
    username: str | None = None,
    password: str | None = None,
    starttls: bool = True,
  ) -> None:
    self.host = host
    self.port = port
    self.from_addr = from_addr
    self.username = username
    self.password = password
    self.starttls = starttls

  async def send(self, msg: EmailNotification) -> None:
    def _send_sync() -> None:
      m = EmailMessage()
      m["Subject"] = msg.subject
      m["From"] = self.from_addr
      m["To"] = msg.to
      m.set_content(msg.body)
      with smtplib.SMTP(host=self.host, port=self.port, timeout=15) as s:
        s.ehlo()
        if self.starttls:
          s.starttls()
          s.ehlo()
        if self.username and self.password:
          s.login(self.username, self.password)
        s.send_message(m)

    await asyncio.to_thread(_send_sync)


def build_notifier() -> Notifier:
  if not settings.smtp_host:
    return LocalNotifier()
  return SmtpNotifier(
    host=settings.smtp_host,
    port=settings.smtp_port,
    from_addr=settings.smtp_from,
    username=settings.smtp_username,
    password=settings.smtp_password,
    starttls=settings.smtp_starttls,
  )


notifier = build_notifier()
