"""Notification fan-out to WeCom, Feishu and SMTP channels."""
import asyncio
import html
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from sim_gateway.db import Store
from sim_gateway.errors import StorageError
from sim_gateway.integrations import feishu, smtp, wecom
from sim_gateway.repositories import push_config as push_config_repo
from sim_gateway.services.timeutil import now_canonical

logger = logging.getLogger(__name__)

Sender = Callable[[httpx.AsyncClient, dict[str, Any], dict[str, str]], Awaitable[bool]]


@dataclass(frozen=True)
class DeliveryResult:
    channel: str
    success: bool
    error: str | None = None


def _lines(event: str, data: dict[str, Any]) -> tuple[str, list[tuple[str, Any]]] | None:
    dev_id = data.get("dev_id", "")
    if event == "sms":
        direction = "Sent SMS" if data.get("direction") == "out" else "New SMS"
        return direction, [
            ("Phone", data.get("phone_num", "")),
            ("Content", data.get("content", "")),
            ("Device", dev_id),
            ("Slot", data.get("slot", "")),
        ]
    if event == "call":
        return "Call", [
            ("Phone", data.get("phone_num", "")),
            ("Status", data.get("call_type", "")),
            ("Device", dev_id),
            ("Slot", data.get("slot", "")),
        ]
    if event == "device_status":
        return "Device status", [
            ("Device", dev_id),
            ("Status", data.get("status", "")),
            ("IP", data.get("ip") or "unknown"),
        ]
    if event == "sim":
        return "SIM status", [
            ("Device", dev_id),
            ("Slot", data.get("slot", "")),
            ("Status", data.get("status", "")),
            ("Event", data.get("label", "")),
        ]
    if event == "system":
        return "System event", [("Device", dev_id), ("Event", data.get("label", ""))]
    return None


def format_message(event: str, data: dict[str, Any]) -> dict[str, str] | None:
    """
    Build the channel-agnostic message for an event.

    ``content`` is plain text, ``markdown`` is used by the chat webhooks and
    ``html`` by email. Returns None for events with no template.
    """
    parsed = _lines(event, data)
    if parsed is None:
        return None
    title, fields = parsed
    fields = [*fields, ("Time", now_canonical())]
    content = "\n".join(f"{k}: {v}" for k, v in fields)
    markdown = f"**{title}**\n" + "\n".join(f"> {k}: {v}" for k, v in fields)
    rows = "".join(
        f"<tr><td><strong>{html.escape(k)}</strong></td><td>{html.escape(str(v))}</td></tr>" for k, v in fields
    )
    body = f"<h3>{html.escape(title)}</h3><table>{rows}</table>"
    return {"title": title, "content": content, "markdown": markdown, "html": body}


class Dispatcher:
    """Delivers one event to every enabled, subscribed channel concurrently."""

    def __init__(
        self,
        store: Store,
        timeout: float = 10.0,
        senders: dict[str, Sender] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.store = store
        self.timeout = timeout
        self.transport = transport
        self.senders: dict[str, Sender] = senders or {
            "wecom": wecom.send,
            "feishu": feishu.send,
            "smtp": self._send_smtp,
        }

    async def _send_smtp(self, client: httpx.AsyncClient, config: dict[str, Any], message: dict[str, str]) -> bool:
        return await smtp.send(config, message, timeout=self.timeout)

    async def _deliver(
        self, client: httpx.AsyncClient, channel: str, config: dict[str, Any], message: dict[str, str]
    ) -> DeliveryResult:
        sender = self.senders.get(channel)
        if sender is None:
            return DeliveryResult(channel, False, "no sender for channel")
        try:
            sent = await sender(client, config, message)
        except Exception as e:
            logger.exception("Notification via %s failed", channel)
            return DeliveryResult(channel, False, str(e))
        if not sent:
            return DeliveryResult(channel, False, "channel not configured")
        return DeliveryResult(channel, True)

    async def dispatch(self, event: str, data: dict[str, Any]) -> list[DeliveryResult]:
        """Never raises; each channel's outcome is returned and logged."""
        try:
            async with self.store.session() as session:
                channels = [
                    (c.channel, dict(c.config or {})) for c in await push_config_repo.list_subscribed(session, event)
                ]
        except StorageError:
            logger.exception("Loading push config failed")
            return []
        if not channels:
            return []
        message = format_message(event, data)
        if message is None:
            return []

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            outcomes = await asyncio.gather(
                *(self._deliver(client, channel, config, message) for channel, config in channels),
                return_exceptions=True,
            )
        results = []
        for (channel, _), outcome in zip(channels, outcomes):
            if isinstance(outcome, BaseException):
                results.append(DeliveryResult(channel, False, str(outcome)))
            else:
                results.append(outcome)
        return results


class NotificationQueue:
    """
    Bounded hand-off between ingestion and the dispatcher.

    ``submit`` never blocks the caller; when the queue is full the event is dropped.
    """

    def __init__(self, dispatcher: Dispatcher, maxsize: int = 1000):
        self.dispatcher = dispatcher
        self._queue: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue(maxsize)
        self._worker: asyncio.Task | None = None

    def submit(self, event: str, data: dict[str, Any]) -> bool:
        try:
            self._queue.put_nowait((event, data))
        except asyncio.QueueFull:
            logger.warning("Notification queue full, dropping %s event for %s", event, data.get("dev_id"))
            return False
        return True

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            event, data = await self._queue.get()
            try:
                await self.dispatcher.dispatch(event, data)
            except Exception:
                logger.exception("Dispatching %s event failed", event)
            finally:
                self._queue.task_done()

    async def stop(self, drain_timeout: float = 10.0) -> None:
        """Drain queued events, then stop the worker."""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning("Dropping %d undelivered notifications at shutdown", self._queue.qsize())
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
