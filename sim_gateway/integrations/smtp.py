"""SMTP email delivery."""
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Any

from sim_gateway.errors import NotificationError

logger = logging.getLogger(__name__)


def build_email(config: dict[str, Any], message: dict[str, str]) -> EmailMessage:
    email = EmailMessage()
    email["Subject"] = f"[IoT] {message['title']}"
    email["From"] = config.get("from") or config["user"]
    email["To"] = config["to"]
    email.set_content(message["content"])
    email.add_alternative(message["html"], subtype="html")
    return email


def _send_sync(config: dict[str, Any], email: EmailMessage, timeout: float) -> None:
    host = config["host"]
    port = int(config.get("port") or 465)
    # Implicit TLS unless explicitly disabled, as on port 465.
    if config.get("secure", True) is not False:
        server = smtplib.SMTP_SSL(host, port, timeout=timeout)
    else:
        server = smtplib.SMTP(host, port, timeout=timeout)
    with server:
        server.login(config["user"], config["pass"])
        server.send_message(email)


async def send(config: dict[str, Any], message: dict[str, str], timeout: float = 10.0) -> bool:
    if not (config.get("host") and config.get("user") and config.get("pass") and config.get("to")):
        return False
    email = build_email(config, message)
    try:
        await asyncio.to_thread(_send_sync, config, email, timeout)
    except (smtplib.SMTPException, OSError) as e:
        raise NotificationError("smtp", str(e)) from e
    logger.info("SMTP notification sent to %s", config["to"])
    return True
